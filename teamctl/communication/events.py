"""
Named-event publishing: register/unregister handlers per event name.
"""

import threading
from collections import defaultdict
from typing import Any, Callable, Dict, List, Optional

from teamctl.utils.logger import TeamLogger, silent_logger

Handler = Callable[..., Any]


class EventEmitter:
    """
    Minimal observer registry. Handlers run synchronously in the emitting
    thread; an exception from one handler is logged and does not stop the
    remaining handlers.
    """

    def __init__(self, logger: Optional[TeamLogger] = None):
        self._handlers: Dict[str, List[Handler]] = defaultdict(list)
        self._lock = threading.Lock()
        self._log = logger or silent_logger

    def on(self, event: str, handler: Handler) -> Handler:
        with self._lock:
            self._handlers[event].append(handler)
        return handler

    def off(self, event: str, handler: Handler) -> None:
        with self._lock:
            handlers = self._handlers.get(event, [])
            if handler in handlers:
                handlers.remove(handler)

    def listener_count(self, event: str) -> int:
        with self._lock:
            return len(self._handlers.get(event, []))

    def emit(self, event: str, *args: Any) -> int:
        """Call every handler registered for `event`. Returns how many ran."""
        with self._lock:
            handlers = list(self._handlers.get(event, []))
        for handler in handlers:
            try:
                handler(*args)
            except Exception as e:
                self._log.error(f"Handler for '{event}' failed:", str(e))
        return len(handlers)
