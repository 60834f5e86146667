# sidequests/cli.py

import argparse
import logging
import sys
import time
from typing import Optional
from uuid import UUID

from dotenv import load_dotenv

from .app import SideQuestsApp, setup_logging
from .config import Settings
from .errors import LocationError
from .models import Coordinate, FAVORITES_PACK_ID, Prompt
from .storage import load_latest_prompt

log = logging.getLogger("sidequests.cli")

EMPTY_STATE_MESSAGES = {
    "no_packs": "No prompt packs selected. Use 'sidequests packs' and 'toggle-pack' to choose some.",
    "no_favorites": "No favorites yet. Use 'sidequests favorite <prompt-id>' to add one.",
    "filtered_out": "No prompt fits where you are and the time of day right now.",
}


def _coordinate(value: str) -> Coordinate:
    try:
        lat, lon = (float(part) for part in value.split(","))
        return Coordinate(latitude=lat, longitude=lon)
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"expected LAT,LON, got '{value}': {e}")


def _uuid(value: str) -> UUID:
    try:
        return UUID(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid id: '{value}'")


def _pack_id(value: str) -> UUID:
    return FAVORITES_PACK_ID if value.lower() == "favorites" else _uuid(value)


def _bounded(name: str, limit: float):
    def parse(value: str) -> float:
        try:
            number = float(value)
        except ValueError:
            raise argparse.ArgumentTypeError(f"{name} must be a number, got '{value}'")
        if not -limit <= number <= limit:
            raise argparse.ArgumentTypeError(f"{name} must be between -{limit:g} and {limit:g}, got {value}")
        return number
    return parse


def _format_prompt(prompt: Prompt) -> str:
    meta = prompt.metadata
    lines = [
        prompt.text,
        f"  pack: {prompt.pack_name}   duration: {meta.duration_in_minutes} min   id: {prompt.id}",
    ]
    if meta.tools:
        lines.append(f"  tools: {', '.join(meta.tools)}")
    if meta.vibe:
        lines.append(f"  vibe: {meta.vibe}")
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# COMMAND HANDLERS
# ---------------------------------------------------------------------------
def handle_packs(args, app: SideQuestsApp) -> int:
    state = app.session.snapshot()
    for pack in app.selector.display_packs():
        marker = "*" if pack.id in state.active_pack_ids else " "
        print(f"[{marker}] {pack.name:<24} {len(pack.prompts):>3} prompt(s)  {pack.id}")
    return 0


def handle_next(args, app: SideQuestsApp) -> int:
    prompt = app.refresh_prompt()
    if prompt is None:
        print(EMPTY_STATE_MESSAGES[app.selector.empty_state().value])
        return 0
    print(_format_prompt(prompt))
    return 0


def handle_toggle_pack(args, app: SideQuestsApp) -> int:
    pack_id = args.pack_id
    if pack_id != FAVORITES_PACK_ID and app.catalog.get_pack(pack_id) is None:
        print(f"Unknown pack: {args.pack_id}")
        return 1
    state = app.selector.toggle_pack(pack_id)
    print("Active packs: " + (", ".join(sorted(str(p) for p in state.active_pack_ids)) or "none"))
    return 0


def handle_favorite(args, app: SideQuestsApp) -> int:
    prompt_id = args.prompt_id
    if app.catalog.get_prompt(prompt_id) is None:
        print(f"Unknown prompt: {args.prompt_id}")
        return 1
    is_favorite = app.selector.toggle_favorite(prompt_id)
    print("Added to favorites." if is_favorite else "Removed from favorites.")
    return 0


def handle_home(args, app: SideQuestsApp) -> int:
    if args.home_command == "set":
        if args.lat is not None and args.lon is not None:
            app.presence.configure_home(Coordinate(latitude=args.lat, longitude=args.lon))
        else:
            try:
                app.presence.capture_current_location_as_home()
            except LocationError as e:
                print(e.message)
                return 1
        print("Home location set.")
    elif args.home_command == "clear":
        app.presence.clear_home()
        print("Home location cleared.")

    presence = app.presence.snapshot()
    if presence.home_location is None:
        print("No home location set.")
    else:
        home = presence.home_location
        print(f"Home: {home.latitude:.5f}, {home.longitude:.5f}")
        if presence.is_at_home is None:
            print("Determining home status...")
        else:
            print("Currently at home" if presence.is_at_home else "Currently away from home")
    print(f"Authorization: {presence.authorization_status.value}")
    if presence.last_error is not None:
        print(f"Last error: {presence.last_error.message}")
    return 0


def handle_phase(args, app: SideQuestsApp) -> int:
    print(f"Day phase: {app.day_phase.current.value}")
    if app.day_phase.next_boundary is not None:
        print(f"Next change: {app.day_phase.next_boundary.astimezone(app.day_phase.tz).isoformat()}")
    return 0


def handle_latest(args, app: SideQuestsApp) -> int:
    prompt = load_latest_prompt(app.shared_store)
    if prompt is None:
        print("No prompt published yet.")
        return 0
    print(_format_prompt(prompt))
    return 0


def handle_run(args, app: SideQuestsApp) -> int:
    """Keeps the app alive so the day phase refreshes the published prompt."""
    prompt = app.refresh_prompt()
    if prompt:
        print(_format_prompt(prompt))
    try:
        while True:
            time.sleep(1)
    except (KeyboardInterrupt, SystemExit):
        log.info("Shutdown signal received.")
    return 0


def main(argv: Optional[list] = None) -> int:
    load_dotenv()
    parser = argparse.ArgumentParser(
        prog="sidequests",
        description="SideQuests: contextual activity prompts"
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging.")
    parser.add_argument("--at", type=_coordinate, default=None, metavar="LAT,LON",
                        help="Current position, used for home presence and capture.")
    subparsers = parser.add_subparsers(dest="command", title="Available Commands", required=True)

    subparsers.add_parser("packs", help="List packs (Favorites first, active packs marked *).") \
        .set_defaults(func=handle_packs)
    subparsers.add_parser("next", help="Pick and publish the next prompt.").set_defaults(func=handle_next)

    parser_toggle = subparsers.add_parser("toggle-pack", help="Select or deselect a pack ('favorites' for Favorites).")
    parser_toggle.add_argument("pack_id", type=_pack_id)
    parser_toggle.set_defaults(func=handle_toggle_pack)

    parser_favorite = subparsers.add_parser("favorite", help="Star or unstar a prompt.")
    parser_favorite.add_argument("prompt_id", type=_uuid)
    parser_favorite.set_defaults(func=handle_favorite)

    parser_home = subparsers.add_parser("home", help="Manage the home location.")
    home_subparsers = parser_home.add_subparsers(dest="home_command", required=True)
    parser_home_set = home_subparsers.add_parser("set", help="Set home (defaults to the current position).")
    parser_home_set.add_argument("--lat", type=_bounded("latitude", 90), default=None)
    parser_home_set.add_argument("--lon", type=_bounded("longitude", 180), default=None)
    home_subparsers.add_parser("clear", help="Forget the home location.")
    home_subparsers.add_parser("status", help="Show home and presence.")
    parser_home.set_defaults(func=handle_home)

    subparsers.add_parser("phase", help="Show the current day phase.").set_defaults(func=handle_phase)
    subparsers.add_parser("latest", help="Show the prompt published for the widget.").set_defaults(func=handle_latest)
    subparsers.add_parser("run", help="Run in the foreground, refreshing at day phase changes.") \
        .set_defaults(func=handle_run)

    args = parser.parse_args(argv)
    settings = Settings()
    setup_logging(settings, debug=args.debug)

    app = SideQuestsApp(settings)
    if args.at is not None:
        app.provider.update_location(args.at)
    if not app.start(auto_refresh=args.command == "run"):
        log.error("SideQuests failed to start. Exiting.")
        return 1
    try:
        return args.func(args, app)
    finally:
        app.stop()


if __name__ == "__main__":
    sys.exit(main())
