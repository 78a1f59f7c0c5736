"""Exception types raised by the debate arena."""

from __future__ import annotations

from typing import Optional


class ArenaError(Exception):
    """Base class for every error raised by the arena."""


class InvalidStateError(ArenaError):
    """An operation was attempted in a state that forbids it."""


class SessionConnectionError(ArenaError):
    """A streaming session failed to connect (handshake, timeout or cancellation)."""

    def __init__(self, message: str, *, side: Optional[str] = None) -> None:
        super().__init__(message)
        self.side = side


class TransportFault(ArenaError):
    """An established session reported an unrecoverable transport error."""

    def __init__(self, side: str, cause: BaseException) -> None:
        super().__init__(f"{side} session failed: {cause}")
        self.side = side
        self.cause = cause


__all__ = [
    "ArenaError",
    "InvalidStateError",
    "SessionConnectionError",
    "TransportFault",
]
