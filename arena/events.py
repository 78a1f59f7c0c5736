"""
Minimal event emitter used by transports, session handles and the controller.

Handlers are plain callables invoked synchronously from `emit`, in registration
order, on the asyncio event loop thread. Since only one handler runs at a time,
state touched by handlers needs no locking.

`on()` returns a Subscription so callers can treat a registration as a scoped
acquisition (it works as a context manager and with contextlib.ExitStack).
"""

from __future__ import annotations

from typing import Any, Callable, Dict, List

Handler = Callable[..., Any]


class Subscription:
    """Handle for a single handler registration. Releasing twice is harmless."""

    def __init__(self, emitter: "EventEmitter", event: str, handler: Handler) -> None:
        self.emitter = emitter
        self.event = event
        self.handler = handler
        self.active = True

    def release(self) -> None:
        if not self.active:
            return
        self.active = False
        self.emitter.off(self.event, self.handler)

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.release()


class EventEmitter:
    """Typed-by-name observer lists with on/off/emit."""

    def __init__(self) -> None:
        self._handlers: Dict[str, List[Handler]] = {}

    def on(self, event: str, handler: Handler) -> Subscription:
        self._handlers.setdefault(event, []).append(handler)
        return Subscription(self, event, handler)

    def off(self, event: str, handler: Handler) -> None:
        handlers = self._handlers.get(event)
        if not handlers:
            return
        try:
            handlers.remove(handler)
        except ValueError:
            return
        if not handlers:
            del self._handlers[event]

    def listener_count(self, event: str) -> int:
        return len(self._handlers.get(event, ()))

    def emit(self, event: str, *args: Any) -> None:
        # Copy so a handler may unsubscribe itself (or others) mid-dispatch.
        for handler in list(self._handlers.get(event, ())):
            handler(*args)

    def remove_all_listeners(self) -> None:
        self._handlers.clear()


__all__ = ["EventEmitter", "Subscription", "Handler"]
