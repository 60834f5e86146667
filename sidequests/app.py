"""
Application composition root.
Builds every service once, wires them together and owns their lifetime.
"""
import logging
import sys
from datetime import timedelta
from typing import Callable, FrozenSet, List, Optional
from uuid import UUID

from apscheduler.schedulers.background import BackgroundScheduler

from .catalog import PackCatalog
from .config import Settings
from .day_phase import DayPhaseClock, SolarCalculator
from .location.presence import PresenceTracker
from .location.provider import CoordinateLocationProvider, LocationProvider
from .models import Prompt, TimeOfDay
from .selector import PromptSelector
from .session import SessionSnapshot, SessionState
from .storage import PreferenceStore, SharedBlobStore

log = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# LOGGING SETUP
# ---------------------------------------------------------------------------
def setup_logging(settings: Settings, debug: bool = False) -> logging.Logger:
    """Configures console (and optional file) logging for the app."""
    log_format = "%(asctime)s - %(levelname)s - [%(threadName)s:%(name)s] - %(message)s"
    log_level = logging.DEBUG if debug else getattr(logging, settings.log_level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(logging.Formatter(log_format))
    root_logger.addHandler(console_handler)

    if settings.log_file:
        try:
            settings.log_file.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(settings.log_file, mode='a')
            file_handler.setFormatter(logging.Formatter(log_format))
            root_logger.addHandler(file_handler)
        except OSError as e:
            print(f"Error setting up file logger at {settings.log_file}: {e}", file=sys.stderr)

    # Noisy libraries
    logging.getLogger("apscheduler.scheduler").setLevel(logging.WARNING)
    logging.getLogger("apscheduler.executors.default").setLevel(logging.WARNING)

    return logging.getLogger(__name__)


class SideQuestsApp:
    def __init__(
        self,
        settings: Optional[Settings] = None,
        provider: Optional[LocationProvider] = None,
        solar: Optional[SolarCalculator] = None,
        scheduler: Optional[BackgroundScheduler] = None,
    ):
        self.settings = settings or Settings()
        self.preferences = PreferenceStore(self.settings.preferences_path)
        self.shared_store = SharedBlobStore(self.settings.shared_path)
        self.catalog = PackCatalog(self.settings.questpacks_dir)
        self.scheduler = scheduler or BackgroundScheduler(timezone=self.settings.scheduler_timezone)

        self.provider = provider or CoordinateLocationProvider()
        self.presence = PresenceTracker(
            self.provider,
            self.preferences,
            region_id=self.settings.home_region_id,
            radius_m=self.settings.home_region_radius_m,
            request_timeout_s=self.settings.location_request_timeout_s,
        )
        self.day_phase = DayPhaseClock(
            self.presence,
            self.scheduler,
            solar=solar,
            local_tz=self.settings.local_tz,
            twilight_window=timedelta(minutes=self.settings.twilight_window_minutes),
            boundary_guard=timedelta(seconds=self.settings.boundary_guard_s),
            rollover=self.settings.day_phase_rollover,
        )
        self.session = SessionState(self.preferences)
        self.selector = PromptSelector(
            self.catalog,
            self.session,
            self.presence,
            self.day_phase,
            self.preferences,
            shared_store=self.shared_store,
        )
        self._active_seen: Optional[FrozenSet[UUID]] = None
        self._unsubscribers: List[Callable[[], None]] = []
        self._running = False

    # ---------------------------------------------------------------------------
    # LIFECYCLE
    # ---------------------------------------------------------------------------
    def start(self, auto_refresh: bool = True) -> bool:
        log.info("--- Starting SideQuests ---")
        packs = self.catalog.load_packs()
        if packs:
            self.session.ensure_default_selection(packs[0].id)
        self._active_seen = self.session.snapshot().active_pack_ids

        self._unsubscribe_all()
        if auto_refresh:
            self._unsubscribers = [
                self.day_phase.subscribe(self._on_day_phase_change),
                self.session.subscribe(self._on_session_change),
            ]

        try:
            if not self.scheduler.running:
                self.scheduler.start()
        except Exception as e:
            log.error(f"Failed to start scheduler: {e}", exc_info=True)
            return False
        self.day_phase.start()
        self._running = True
        log.info(f"SideQuests running. Day phase: {self.day_phase.current.value}")
        return True

    def stop(self) -> None:
        log.info("--- Stopping SideQuests ---")
        self._unsubscribe_all()
        self.day_phase.stop()
        if self.scheduler.running:
            try:
                self.scheduler.shutdown(wait=True)
            except Exception as e:
                log.error(f"Error shutting down scheduler: {e}", exc_info=True)
        self._running = False

    def _unsubscribe_all(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []

    # ---------------------------------------------------------------------------
    # REFRESH
    # ---------------------------------------------------------------------------
    def refresh_prompt(self) -> Optional[Prompt]:
        """Selects a new prompt and publishes it for the widget."""
        return self.selector.select_next()

    def _on_day_phase_change(self, time_of_day: TimeOfDay) -> None:
        log.info(f"Refreshing prompt for {time_of_day.value}")
        self.refresh_prompt()

    def _on_session_change(self, snapshot: SessionSnapshot) -> None:
        if snapshot.active_pack_ids == self._active_seen:
            return
        self._active_seen = snapshot.active_pack_ids
        if snapshot.active_pack_ids:
            self.refresh_prompt()
