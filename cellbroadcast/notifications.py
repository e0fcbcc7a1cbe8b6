"""
Change notification fan-out.

The provider is handed a ChangeNotifier at construction and calls
notify_change() once per successful mutation, after storage has committed.
Delivery is fire-and-forget: a failing listener is logged and does not
affect the mutating call or the other listeners.
"""

import logging
import threading
from typing import Callable, List

from cellbroadcast.metrics import record_change_notification

logger = logging.getLogger(__name__)

ChangeListener = Callable[[str], None]


class ChangeNotifier:
    """Thread-safe registry of listeners for "resource changed" events."""

    def __init__(self):
        self._listeners: List[ChangeListener] = []
        self._lock = threading.Lock()

    def register(self, listener: ChangeListener) -> Callable[[], None]:
        """
        Subscribe a listener.

        Returns:
            A callable that unregisters the listener
        """
        with self._lock:
            self._listeners.append(listener)
        return lambda: self.unregister(listener)

    def unregister(self, listener: ChangeListener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def notify_change(self, uri: str) -> None:
        """Signal that the data behind `uri` changed."""
        with self._lock:
            listeners = list(self._listeners)

        logger.debug(f"Change notification: uri={uri}, listeners={len(listeners)}")
        record_change_notification(uri)

        for listener in listeners:
            try:
                listener(uri)
            except Exception:
                logger.exception(f"Change listener failed for {uri}")
