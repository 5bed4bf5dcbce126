"""Synchronous observer lists used for state notifications."""
import logging
from typing import Any, Callable, List

logger = logging.getLogger(__name__)


class Signal:
    """
    A named notification with an ordered list of handlers.

    Handlers run on the emitting thread, in registration order. A handler that
    raises is logged and skipped so the remaining observers still run.
    """

    def __init__(self, name: str):
        self.name = name
        self._handlers: List[Callable[..., Any]] = []

    def connect(self, handler: Callable[..., Any]) -> Callable[..., Any]:
        if handler not in self._handlers:
            self._handlers.append(handler)
        return handler

    def disconnect(self, handler: Callable[..., Any]) -> None:
        try:
            self._handlers.remove(handler)
        except ValueError:
            logger.debug("Handler %r was not connected to '%s'", handler, self.name)

    @property
    def receivers(self) -> List[Callable[..., Any]]:
        return list(self._handlers)

    def emit(self, *args: Any) -> None:
        for handler in list(self._handlers):
            try:
                handler(*args)
            except Exception:
                logger.exception("Handler for '%s' failed", self.name)

    def __repr__(self) -> str:
        return f"Signal({self.name!r}, receivers={len(self._handlers)})"
