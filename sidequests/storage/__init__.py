import logging
from typing import Optional

from pydantic import ValidationError

from ..models import Prompt
from .kv import PreferenceStore, SharedBlobStore, SqliteKeyValueStore

log = logging.getLogger(__name__)

LATEST_PROMPT_KEY = "latestPrompt"


def publish_latest_prompt(store: SharedBlobStore, prompt: Prompt) -> bool:
    """Saves the latest prompt so the widget can show it without running the selector."""
    return store.set(LATEST_PROMPT_KEY, prompt.to_json().encode("utf-8"))


def load_latest_prompt(store: SharedBlobStore) -> Optional[Prompt]:
    data = store.get(LATEST_PROMPT_KEY)
    if data is None:
        return None
    try:
        return Prompt.model_validate_json(data)
    except ValidationError as e:
        log.warning(f"Stored latest prompt could not be decoded: {e}")
        return None


__all__ = [
    "LATEST_PROMPT_KEY",
    "PreferenceStore",
    "SharedBlobStore",
    "SqliteKeyValueStore",
    "load_latest_prompt",
    "publish_latest_prompt",
]
