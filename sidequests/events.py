import logging
import threading
from typing import Any, Callable, List

log = logging.getLogger(__name__)

Listener = Callable[[Any], None]


class Subscribers:
    """Callbacks notified after a mutation has completed."""

    def __init__(self, name: str):
        self.name = name
        self._lock = threading.Lock()
        self._listeners: List[Listener] = []

    def subscribe(self, callback: Listener) -> Callable[[], None]:
        """Registers ``callback``; returns a function that unregisters it."""
        with self._lock:
            self._listeners.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._listeners:
                    self._listeners.remove(callback)
        return unsubscribe

    def notify(self, value: Any) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for callback in listeners:
            try:
                callback(value)
            except Exception as e:
                log.error(f"Error notifying {self.name} listener {callback!r}: {e}", exc_info=True)

    def __len__(self) -> int:
        return len(self._listeners)
