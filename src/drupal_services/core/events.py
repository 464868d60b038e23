"""Minimal synchronous event registry for models, collections and sessions.

Listeners are plain callables invoked in registration order. A listener that
raises stops dispatch and the exception propagates to whoever triggered the
event.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Callable
from typing import Any

Listener = Callable[..., Any]

ALL_EVENTS = "all"


class Events:
    """Mixin providing ``on``/``off``/``trigger``.

    Listeners registered for ``"all"`` receive every event, with the event
    name prepended to the arguments.
    """

    def __init__(self) -> None:
        self._listeners: defaultdict[str, list[Listener]] = defaultdict(list)

    def on(self, event: str, callback: Listener) -> Listener:
        """Register *callback* for *event*; returns the callback for decorator use."""
        self._listeners[event].append(callback)
        return callback

    def once(self, event: str, callback: Listener) -> Listener:
        """Register *callback* for a single delivery of *event*."""

        def _once(*args: Any) -> Any:
            self.off(event, _once)
            return callback(*args)

        self.on(event, _once)
        return _once

    def off(self, event: str | None = None, callback: Listener | None = None) -> None:
        """Remove listeners.

        With no arguments every listener is dropped; with only *event* all
        listeners for that event are dropped; with only *callback* it is
        removed from every event.
        """
        if event is None and callback is None:
            self._listeners.clear()
            return

        names = [event] if event is not None else list(self._listeners)
        for name in names:
            if callback is None:
                self._listeners.pop(name, None)
                continue
            listeners = self._listeners.get(name)
            if not listeners:
                continue
            self._listeners[name] = [cb for cb in listeners if cb != callback]
            if not self._listeners[name]:
                del self._listeners[name]

    def has_listeners(self, event: str) -> bool:
        return bool(self._listeners.get(event)) or bool(self._listeners.get(ALL_EVENTS))

    def trigger(self, event: str, *args: Any) -> None:
        """Invoke listeners for *event* with *args*."""
        # Copy so listeners may unregister themselves while dispatching.
        for callback in list(self._listeners.get(event, ())):
            callback(*args)
        if event != ALL_EVENTS:
            for callback in list(self._listeners.get(ALL_EVENTS, ())):
                callback(event, *args)
