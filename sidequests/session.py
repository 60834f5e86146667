"""
Session state shared by the selector and the display layer.

Every compound change (for example entering favorites mode, which touches
both the active and the saved selection) happens under one lock and is
published as an immutable snapshot, so readers never see half of a change.
"""
from __future__ import annotations

import logging
import threading
from typing import Callable, FrozenSet, List, Optional, Tuple, TypeVar
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from .events import Subscribers
from .models import FAVORITES_PACK_ID
from .storage import PreferenceStore

log = logging.getLogger(__name__)

# Preference keys
ACTIVE_PACKS_KEY = "activePackIDs"
LAST_ACTIVE_PACKS_KEY = "lastActivePackIDs"
FAVORITES_KEY = "favoritePromptIDs"
HISTORY_KEY = "promptHistory"
LAST_SHOWN_KEY = "lastShownPromptID"
MAX_DURATION_KEY = "maxDurationPreference"
THEME_KEY = "selectedTheme"

DEFAULT_MAX_DURATION = 15
DEFAULT_THEME = "system"

T = TypeVar("T")


class SessionSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    active_pack_ids: FrozenSet[UUID] = frozenset()
    last_active_pack_ids: FrozenSet[UUID] = frozenset()
    favorite_prompt_ids: FrozenSet[UUID] = frozenset()
    prompt_history: Tuple[UUID, ...] = ()
    last_shown_prompt_id: Optional[UUID] = None
    max_duration_preference: int = DEFAULT_MAX_DURATION
    selected_theme: str = DEFAULT_THEME

    @property
    def favorites_mode(self) -> bool:
        return self.active_pack_ids == frozenset({FAVORITES_PACK_ID})


def _uuid_set(values) -> FrozenSet[UUID]:
    return frozenset(UUID(str(v)) for v in values or [])


def _uuid_list(values) -> List[str]:
    return sorted(str(v) for v in values)


class SessionState:
    def __init__(self, preferences: PreferenceStore):
        self.preferences = preferences
        self._lock = threading.RLock()
        self._state: Optional[SessionSnapshot] = None
        self._selection_stored = False
        self._changes = Subscribers("session")

    # ---------------------------------------------------------------------------
    # READS
    # ---------------------------------------------------------------------------
    def snapshot(self) -> SessionSnapshot:
        with self._lock:
            if self._state is None:
                self._state = self._load()
            return self._state

    def subscribe(self, callback: Callable[[SessionSnapshot], None]) -> Callable[[], None]:
        return self._changes.subscribe(callback)

    def is_favorite(self, prompt_id: UUID) -> bool:
        return prompt_id in self.snapshot().favorite_prompt_ids

    # ---------------------------------------------------------------------------
    # TRANSITIONS
    # ---------------------------------------------------------------------------
    def toggle_pack(self, pack_id: UUID) -> SessionSnapshot:
        """
        Toggles a pack's membership in the active selection.

        Selecting Favorites saves the current selection and replaces it with
        the Favorites sentinel; deselecting it restores the saved selection.
        Toggling any other pack always leaves favorites mode.
        """
        def change(state: SessionSnapshot) -> dict:
            active = set(state.active_pack_ids)
            if pack_id == FAVORITES_PACK_ID:
                if FAVORITES_PACK_ID in active:
                    return {"active_pack_ids": state.last_active_pack_ids}
                return {
                    "last_active_pack_ids": state.active_pack_ids,
                    "active_pack_ids": frozenset({FAVORITES_PACK_ID}),
                }
            active.symmetric_difference_update({pack_id})
            active.discard(FAVORITES_PACK_ID)
            return {"active_pack_ids": frozenset(active)}
        return self._transition(change)

    def toggle_favorite(self, prompt_id: UUID) -> bool:
        """Stars or unstars a prompt. Returns True when it is now a favorite."""
        def change(state: SessionSnapshot) -> dict:
            return {"favorite_prompt_ids": state.favorite_prompt_ids ^ {prompt_id}}
        return prompt_id in self._transition(change).favorite_prompt_ids

    def record_served(self, prompt_id: UUID) -> SessionSnapshot:
        def change(state: SessionSnapshot) -> dict:
            return {
                "prompt_history": state.prompt_history + (prompt_id,),
                "last_shown_prompt_id": prompt_id,
            }
        return self._transition(change)

    def serve(self, choose: Callable[[SessionSnapshot], Optional[T]]) -> Optional[T]:
        """
        Runs ``choose`` on the current state and records what it returns as served,
        all under the session lock. Concurrent callers therefore never pick
        against the same last-shown prompt.
        """
        with self._lock:
            item = choose(self.snapshot())
            if item is None:
                return None
            new_state = self._apply(lambda state: {
                "prompt_history": state.prompt_history + (item.id,),
                "last_shown_prompt_id": item.id,
            })
        self._changes.notify(new_state)
        return item

    def clear_history(self) -> SessionSnapshot:
        return self._transition(lambda state: {"prompt_history": (), "last_shown_prompt_id": None})

    def ensure_default_selection(self, pack_id: UUID) -> SessionSnapshot:
        """Activates ``pack_id`` on first launch, when no selection was ever stored."""
        with self._lock:
            state = self.snapshot()
            if self._selection_stored:
                return state
            log.info(f"First launch: activating default pack {pack_id}")
            return self._transition(lambda s: {"active_pack_ids": frozenset({pack_id})})

    def set_max_duration(self, minutes: int) -> SessionSnapshot:
        return self._transition(lambda state: {"max_duration_preference": int(minutes)})

    def set_theme(self, theme: str) -> SessionSnapshot:
        return self._transition(lambda state: {"selected_theme": theme})

    # ---------------------------------------------------------------------------
    # INTERNALS
    # ---------------------------------------------------------------------------
    def _transition(self, change: Callable[[SessionSnapshot], dict]) -> SessionSnapshot:
        new_state = self._apply(change)
        self._changes.notify(new_state)
        return new_state

    def _apply(self, change: Callable[[SessionSnapshot], dict]) -> SessionSnapshot:
        with self._lock:
            previous = self.snapshot()
            new_state = previous.model_copy(update=change(previous))
            self._state = new_state
            self._persist(previous, new_state)
            return new_state

    def _load(self) -> SessionSnapshot:
        prefs = self.preferences
        self._selection_stored = ACTIVE_PACKS_KEY in prefs
        try:
            last_shown = prefs.get(LAST_SHOWN_KEY)
            state = SessionSnapshot(
                active_pack_ids=_uuid_set(prefs.get(ACTIVE_PACKS_KEY, [])),
                last_active_pack_ids=_uuid_set(prefs.get(LAST_ACTIVE_PACKS_KEY, [])),
                favorite_prompt_ids=_uuid_set(prefs.get(FAVORITES_KEY, [])),
                prompt_history=tuple(UUID(str(v)) for v in prefs.get(HISTORY_KEY, [])),
                last_shown_prompt_id=UUID(str(last_shown)) if last_shown else None,
                max_duration_preference=int(prefs.get(MAX_DURATION_KEY, DEFAULT_MAX_DURATION)),
                selected_theme=str(prefs.get(THEME_KEY, DEFAULT_THEME)),
            )
        except (TypeError, ValueError) as e:
            log.error(f"Stored session state is corrupt, starting fresh: {e}", exc_info=True)
            return SessionSnapshot()
        log.debug(f"Session loaded: {len(state.active_pack_ids)} active pack(s), "
                  f"{len(state.favorite_prompt_ids)} favorite(s), {len(state.prompt_history)} served")
        return state

    def _persist(self, previous: SessionSnapshot, state: SessionSnapshot) -> None:
        prefs = self.preferences
        if state.active_pack_ids != previous.active_pack_ids or not self._selection_stored:
            prefs.set(ACTIVE_PACKS_KEY, _uuid_list(state.active_pack_ids))
            self._selection_stored = True
        if state.last_active_pack_ids != previous.last_active_pack_ids:
            prefs.set(LAST_ACTIVE_PACKS_KEY, _uuid_list(state.last_active_pack_ids))
        if state.favorite_prompt_ids != previous.favorite_prompt_ids:
            prefs.set(FAVORITES_KEY, _uuid_list(state.favorite_prompt_ids))
        if state.prompt_history != previous.prompt_history:
            prefs.set(HISTORY_KEY, [str(v) for v in state.prompt_history])
        if state.last_shown_prompt_id != previous.last_shown_prompt_id:
            if state.last_shown_prompt_id is None:
                prefs.remove(LAST_SHOWN_KEY)
            else:
                prefs.set(LAST_SHOWN_KEY, str(state.last_shown_prompt_id))
        if state.max_duration_preference != previous.max_duration_preference:
            prefs.set(MAX_DURATION_KEY, state.max_duration_preference)
        if state.selected_theme != previous.selected_theme:
            prefs.set(THEME_KEY, state.selected_theme)
