"""Minimal synchronous event emitter.

Listeners run in registration order; exceptions raised by a listener
propagate to the caller of ``emit``.
"""

from __future__ import annotations

from collections import defaultdict
from typing import Callable

Listener = Callable[..., object]


class EventEmitter:
    """Named-event listener registry.

    Example:
        >>> emitter = EventEmitter()
        >>> seen = []
        >>> _ = emitter.on("error", seen.append)
        >>> emitter.emit("error", ValueError("x"))
        True
    """

    def __init__(self) -> None:
        self._events: defaultdict[str, list[Listener]] = defaultdict(list)

    def on(self, event: str, listener: Listener) -> EventEmitter:
        self._events[event].append(listener)
        return self

    def once(self, event: str, listener: Listener) -> EventEmitter:
        def wrapper(*args: object) -> object:
            self.remove_listener(event, wrapper)
            return listener(*args)

        return self.on(event, wrapper)

    def remove_listener(self, event: str, listener: Listener) -> EventEmitter:
        listeners = self._events.get(event)
        if listeners and listener in listeners:
            listeners.remove(listener)
        return self

    def listeners(self, event: str) -> list[Listener]:
        return list(self._events.get(event, ()))

    def emit(self, event: str, *args: object) -> bool:
        """Call every listener for ``event``. Returns False when there were none."""
        listeners = self.listeners(event)
        for listener in listeners:
            listener(*args)
        return bool(listeners)
