"""
Prompt selection.

Narrows the prompt universe through a chain of gates and picks one at random:

    universe -> location gate -> time-of-day gate -> anti-repeat -> random pick

Everything before the final pick is deterministic for a given session,
presence and day phase.
"""
from __future__ import annotations

import enum
import logging
import random
from typing import List, Optional, Sequence
from uuid import UUID

from .catalog import PackCatalog
from .day_phase import DayPhaseClock
from .location.presence import PresenceTracker
from .models import LocationContext, Prompt, PromptPack, TimeOfDay, all_prompts, build_favorites_pack
from .session import SessionSnapshot, SessionState
from .storage import PreferenceStore, SharedBlobStore, publish_latest_prompt

log = logging.getLogger(__name__)

USE_LOCATION_FILTERING_KEY = "useLocationFiltering"
FILTER_BY_TIME_OF_DAY_KEY = "filterByTimeOfDay"


class EmptyState(str, enum.Enum):
    """Why there is nothing to show. Not an error."""
    NO_PACKS = "no_packs"
    NO_FAVORITES = "no_favorites"
    FILTERED_OUT = "filtered_out"


# ---------------------------------------------------------------------------
# GATES
# ---------------------------------------------------------------------------
def universe(packs: Sequence[PromptPack], state: SessionSnapshot) -> List[Prompt]:
    if state.favorites_mode:
        return [p for p in all_prompts(packs) if p.id in state.favorite_prompt_ids]
    return all_prompts(p for p in packs if p.id in state.active_pack_ids)


def location_gate(prompts: Sequence[Prompt], is_at_home: Optional[bool]) -> List[Prompt]:
    """With unknown presence, only prompts that can be done anywhere pass."""
    if is_at_home is None:
        return [p for p in prompts if p.metadata.location_context == LocationContext.ANY]
    wanted = LocationContext.HOME if is_at_home else LocationContext.NOT_HOME
    return [p for p in prompts if p.metadata.location_context in (LocationContext.ANY, wanted)]


def time_gate(prompts: Sequence[Prompt], time_of_day: TimeOfDay) -> List[Prompt]:
    return [p for p in prompts if time_of_day in p.metadata.times_of_day]


def without_repeat(prompts: Sequence[Prompt], last_shown_id: Optional[UUID]) -> List[Prompt]:
    """Drops the last shown prompt unless it is the only candidate left."""
    remaining = [p for p in prompts if p.id != last_shown_id]
    return remaining or list(prompts)


class PromptSelector:
    def __init__(
        self,
        catalog: PackCatalog,
        session: SessionState,
        presence: PresenceTracker,
        day_phase: DayPhaseClock,
        preferences: PreferenceStore,
        shared_store: Optional[SharedBlobStore] = None,
        rng: Optional[random.Random] = None,
    ):
        self.catalog = catalog
        self.session = session
        self.presence = presence
        self.day_phase = day_phase
        self.preferences = preferences
        self.shared_store = shared_store
        self.rng = rng or random.Random()

    # --------------- preferences ------------------------------------------
    @property
    def use_location_filtering(self) -> bool:
        return self.preferences.get_bool(USE_LOCATION_FILTERING_KEY, True)

    @property
    def filter_by_time_of_day(self) -> bool:
        return self.preferences.get_bool(FILTER_BY_TIME_OF_DAY_KEY, True)

    def set_location_filtering(self, enabled: bool) -> None:
        self.preferences.set(USE_LOCATION_FILTERING_KEY, bool(enabled))
        if not enabled:
            # Turning location filtering off also forgets the home
            self.presence.clear_home()

    def set_time_of_day_filtering(self, enabled: bool) -> None:
        self.preferences.set(FILTER_BY_TIME_OF_DAY_KEY, bool(enabled))

    # --------------- selection --------------------------------------------
    def candidates(self, state: Optional[SessionSnapshot] = None) -> List[Prompt]:
        """The gated candidate set, before anti-repeat."""
        state = state or self.session.snapshot()
        prompts = universe(self.catalog.packs, state)
        if prompts and self.use_location_filtering:
            prompts = location_gate(prompts, self.presence.is_at_home)
        if prompts and self.filter_by_time_of_day:
            prompts = time_gate(prompts, self.day_phase.current)
        return prompts

    def select_next(self) -> Optional[Prompt]:
        """Picks the next prompt, or None when nothing is available."""
        prompt = self.session.serve(self._choose)
        if prompt is None:
            log.info(f"No prompt available ({self.empty_state().value})")
            return None
        if self.shared_store is not None:
            publish_latest_prompt(self.shared_store, prompt)
        return prompt

    def _choose(self, state: SessionSnapshot) -> Optional[Prompt]:
        gated = self.candidates(state)
        if not gated:
            return None
        prompt = self.rng.choice(without_repeat(gated, state.last_shown_prompt_id))
        log.debug(f"Selected prompt {prompt.id} from '{prompt.pack_name}' ({len(gated)} candidate(s))")
        return prompt

    def empty_state(self, state: Optional[SessionSnapshot] = None) -> EmptyState:
        state = state or self.session.snapshot()
        if state.favorites_mode and not state.favorite_prompt_ids:
            return EmptyState.NO_FAVORITES
        if not universe(self.catalog.packs, state):
            return EmptyState.NO_FAVORITES if state.favorites_mode else EmptyState.NO_PACKS
        return EmptyState.FILTERED_OUT

    # --------------- pack / favorite toggling -----------------------------
    def toggle_pack(self, pack_id: UUID) -> SessionSnapshot:
        return self.session.toggle_pack(pack_id)

    def toggle_favorite(self, prompt_id: UUID) -> bool:
        return self.session.toggle_favorite(prompt_id)

    def display_packs(self) -> List[PromptPack]:
        """Favorites first, then active packs, then the rest, each by name."""
        state = self.session.snapshot()
        favorites = build_favorites_pack(self.catalog.packs, set(state.favorite_prompt_ids))
        ordered = sorted(
            self.catalog.packs,
            key=lambda p: (p.id not in state.active_pack_ids, p.name),
        )
        return [favorites] + ordered
