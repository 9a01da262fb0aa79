"""Minimal thread-safe observer registry used for tail signals."""

import threading
from collections import defaultdict


class EventEmitter:
    def __init__(self):
        self._listeners: dict[str, list] = defaultdict(list)
        self._listeners_lock = threading.Lock()

    def on(self, event: str, callback):
        """Register *callback* for *event*. Returns the callback."""
        with self._listeners_lock:
            self._listeners[event].append(callback)
        return callback

    def once(self, event: str, callback):
        """Register *callback* to run on the next *event* only."""
        def _wrapper(*args):
            self.off(event, _wrapper)
            callback(*args)

        _wrapper.original = callback
        return self.on(event, _wrapper)

    def off(self, event: str, callback) -> None:
        with self._listeners_lock:
            listeners = self._listeners.get(event, [])
            for i, registered in enumerate(listeners):
                if registered is callback or getattr(registered, "original", None) is callback:
                    del listeners[i]
                    return

    def listener_count(self, event: str) -> int:
        with self._listeners_lock:
            return len(self._listeners.get(event, []))

    def emit(self, event: str, *args) -> bool:
        """Call every listener of *event* in registration order.

        Returns True if there was at least one listener.
        """
        with self._listeners_lock:
            listeners = list(self._listeners.get(event, []))
        for callback in listeners:
            callback(*args)
        return bool(listeners)
