"""Minimal synchronous event emitter shared by sessions, transports and APIs."""

from __future__ import annotations

import logging
from typing import Any, Callable

logger = logging.getLogger(__name__)

Listener = Callable[..., Any]


class EventEmitter:
    """Mixin giving an object ``on``/``once``/``emit`` style events.

    Listeners run synchronously, in registration order, inside ``emit``.
    An exception raised by a listener propagates to the emitter.
    """

    def __init__(self) -> None:
        self._listeners: dict[str, list[Listener]] = {}

    def on(self, event: str, listener: Listener) -> Listener:
        """Register ``listener`` for ``event`` and return it."""
        self._listeners.setdefault(event, []).append(listener)
        return listener

    def once(self, event: str, listener: Listener) -> Listener:
        """Register ``listener`` to run at most one time."""

        def wrapper(*args: Any) -> Any:
            self.remove_listener(event, wrapper)
            return listener(*args)

        wrapper.listener = listener  # type: ignore[attr-defined]
        return self.on(event, wrapper)

    def remove_listener(self, event: str, listener: Listener) -> None:
        listeners = self._listeners.get(event)
        if not listeners:
            return
        for i, registered in enumerate(listeners):
            if registered is listener or getattr(registered, "listener", None) is listener:
                del listeners[i]
                break
        if not listeners:
            del self._listeners[event]

    def remove_all_listeners(self, event: str | None = None) -> None:
        if event is None:
            self._listeners.clear()
        else:
            self._listeners.pop(event, None)

    def listeners(self, event: str) -> list[Listener]:
        return list(self._listeners.get(event, ()))

    def emit(self, event: str, *args: Any) -> bool:
        """Call every listener of ``event`` with ``args``.

        Returns:
            True if at least one listener was registered
        """
        listeners = self._listeners.get(event)
        if not listeners:
            return False
        for listener in list(listeners):
            listener(*args)
        return True
