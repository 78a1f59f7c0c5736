"""
Turn-taking between two live debaters.

The orchestrator subscribes to both session handles, accumulates each side's
transcription fragments in that side's TranscriptBuffer and, when a side
completes its turn, forwards the assembled text to the opposite side as a
rebuttal prompt.

    SETUP -> OPENING -> IN_TURN(left) -> HANDOFF(left) -> IN_TURN(right) -> ...
      any state -> ENDED   (stop(), a transport error, or a handler failure)

All handlers run on the event loop one at a time, so the buffers and the turn
state need no locking. Once ENDED, every handler is a no-op.
"""

from __future__ import annotations

import asyncio
import contextlib
import functools
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional

from .errors import ArenaError, SessionConnectionError, TransportFault
from .events import EventEmitter
from .prompts import opening_prompt, rebuttal_prompt, system_instruction
from .session import SessionHandle, SessionState
from .transcript import TranscriptBuffer
from .transport import SessionConfig

logger = logging.getLogger(__name__)


class Side(Enum):
    LEFT = "left"
    RIGHT = "right"

    @property
    def other(self) -> "Side":
        return Side.RIGHT if self is Side.LEFT else Side.LEFT


class TurnState(Enum):
    SETUP = "setup"
    OPENING = "opening"
    IN_TURN = "in_turn"
    HANDOFF = "handoff"
    ENDED = "ended"


class EndReason(Enum):
    STOPPED = "stopped"  # user asked for it
    FAILED = "failed"  # forced by a connection or transport failure


@dataclass
class SideState:
    """One debater: its session and its transcript buffer."""

    side: Side
    session: SessionHandle
    buffer: TranscriptBuffer


def _guarded(handler: Callable[..., None]) -> Callable[..., None]:
    """
    Wrap a transport event handler so it never raises into dispatch.

    Handlers become no-ops once the debate has ended; an unexpected exception
    ends the debate as FAILED instead of leaving the buffers half-updated.
    """

    @functools.wraps(handler)
    def wrapper(self: "TurnOrchestrator", *args: Any) -> None:
        if self.state is TurnState.ENDED:
            return
        try:
            handler(self, *args)
        except Exception as exc:
            logger.error(f"❌ Orchestrator handler {handler.__name__} failed: {exc}", exc_info=True)
            self.end(EndReason.FAILED, exc)

    return wrapper


class TurnOrchestrator(EventEmitter):
    """
    Runs one debate between `left` and `right`.

    A fresh orchestrator is built for every debate; its subscriptions on both
    session handles are released on every path into ENDED.

    Events: ``turn(side, text)`` after a handoff is forwarded,
    ``transcript(side, fragment)`` per fragment, ``statechange(state, side)``
    and ``ended(reason, error)``.
    """

    def __init__(
        self,
        left: SideState,
        right: SideState,
        *,
        connect_timeout: float = 15.0,
    ) -> None:
        super().__init__()
        self.sides = {Side.LEFT: left, Side.RIGHT: right}
        self.connect_timeout = connect_timeout
        self.topic: Optional[str] = None
        self.state = TurnState.SETUP
        self.active_side: Optional[Side] = None
        self.end_reason: Optional[EndReason] = None
        self.error: Optional[BaseException] = None
        self.turns_forwarded = 0
        self._subscriptions = contextlib.ExitStack()
        self._closing: Optional[asyncio.Future] = None

    @property
    def left(self) -> SideState:
        return self.sides[Side.LEFT]

    @property
    def right(self) -> SideState:
        return self.sides[Side.RIGHT]

    @property
    def ended(self) -> bool:
        return self.state is TurnState.ENDED

    def _set_state(self, state: TurnState, side: Optional[Side] = None) -> None:
        self.state = state
        self.active_side = side
        logger.debug(f"Turn state -> {state.value}{f'({side.value})' if side else ''}")
        self.emit("statechange", state, side)

    async def open(self, topic: str) -> None:
        """
        SETUP -> OPENING -> IN_TURN(left).

        Configures and connects both sessions concurrently and sends the opening
        prompt to the left side only once both are connected. Returns quietly
        if stop() ends the debate while connecting.

        Raises:
            SessionConnectionError: either side failed or timed out
        """
        if self.state is not TurnState.SETUP:
            raise ArenaError(f"open() called in state {self.state.value}")
        self.topic = topic
        self._subscribe()

        left, right = self.left, self.right
        left.session.configure(self._session_config(left, right, opens=True))
        right.session.configure(self._session_config(right, left, opens=False))

        logger.info(f"🎙️  Connecting {left.session.profile.display_name} and {right.session.profile.display_name}")
        try:
            await asyncio.wait_for(
                asyncio.gather(left.session.connect(), right.session.connect()),
                timeout=self.connect_timeout,
            )
        except (asyncio.TimeoutError, SessionConnectionError) as exc:
            if self.end_reason is EndReason.STOPPED:
                # stop() aborted the attempt; that is not a failure.
                await self.wait_closed()
                logger.info("Debate stopped while connecting")
                return
            if isinstance(exc, SessionConnectionError):
                error = exc
            else:
                error = SessionConnectionError(
                    f"sessions did not connect within {self.connect_timeout:.1f}s"
                )
            await self._fail_open(error)
            raise error from (None if error is exc else exc)

        if self.ended:
            logger.info("Debate ended while connecting; opening prompt not sent")
            return
        if not (left.session.connected and right.session.connected):
            error = SessionConnectionError("a session dropped before the opening prompt")
            await self._fail_open(error)
            raise error

        self._set_state(TurnState.OPENING)
        logger.info(f"Both debaters connected, opening on: {topic}")
        left.session.send({"text": opening_prompt(topic)})
        self._set_state(TurnState.IN_TURN, Side.LEFT)

    async def _fail_open(self, error: SessionConnectionError) -> None:
        # A transport fault may already have ended the debate; keep its reason.
        self.end(EndReason.FAILED, error)
        await self.wait_closed()

    def _session_config(self, me: SideState, opponent: SideState, *, opens: bool) -> SessionConfig:
        return SessionConfig(
            voice=me.session.profile.voice_id,
            system_instruction_text=system_instruction(
                me.session.profile, opponent.session.profile, opens=opens
            ),
            request_transcription=True,
        )

    def _subscribe(self) -> None:
        for side, state in self.sides.items():
            session = state.session
            self._subscriptions.enter_context(
                session.on("transcription", functools.partial(self._on_transcription, side))
            )
            self._subscriptions.enter_context(
                session.on("turncomplete", functools.partial(self._on_turn_complete, side))
            )
            self._subscriptions.enter_context(
                session.on("error", functools.partial(self._on_error, side))
            )
            self._subscriptions.enter_context(
                session.on("statechange", functools.partial(self._on_session_state, side))
            )

    @_guarded
    def _on_transcription(self, side: Side, text: str) -> None:
        self.sides[side].buffer.append(text)
        if self.state is not TurnState.IN_TURN or self.active_side is not side:
            self._set_state(TurnState.IN_TURN, side)
        logger.debug(f"{side.value}: fragment {text!r}")
        self.emit("transcript", side, text)

    @_guarded
    def _on_turn_complete(self, side: Side) -> None:
        me = self.sides[side]
        opponent = self.sides[side.other]
        self._set_state(TurnState.HANDOFF, side)

        text = me.buffer.flush()
        if not text.strip():
            # Nothing to rebut: wait for this side's next turn, don't re-prompt.
            logger.info(f"{side.value}: turn completed with empty transcript, nothing forwarded")
            self._set_state(TurnState.IN_TURN, side)
            return

        logger.info(f"{side.value} -> {side.other.value}: forwarding {len(text)} chars")
        opponent.session.send({"text": rebuttal_prompt(me.session.profile, text)})
        self.turns_forwarded += 1
        self._set_state(TurnState.IN_TURN, side.other)
        self.emit("turn", side, text)

    @_guarded
    def _on_session_state(self, side: Side, state: SessionState) -> None:
        # FAILED is followed by an error event, which carries the cause.
        if self.state is TurnState.SETUP or state not in (SessionState.IDLE, SessionState.DISCONNECTING):
            return
        logger.error(f"❌ {side.value} session dropped ({state.value}); ending debate")
        self.end(EndReason.FAILED, TransportFault(side.value, ConnectionResetError("session dropped")))

    @_guarded
    def _on_error(self, side: Side, exc: BaseException) -> None:
        logger.error(f"❌ {side.value} session reported a transport error; ending debate")
        self.end(EndReason.FAILED, TransportFault(side.value, exc))

    def end(self, reason: EndReason, error: Optional[BaseException] = None) -> Optional[asyncio.Future]:
        """
        Move to ENDED from any state.

        Synchronous so it can run inside an event handler: both sessions leave
        CONNECTED before this returns. Await wait_closed() for the teardown.
        Ending twice keeps the first reason.
        """
        if self.ended:
            return self._closing
        self.end_reason = reason
        self.error = error
        self._set_state(TurnState.ENDED)
        self._subscriptions.close()

        for side_state in self.sides.values():
            side_state.buffer.clear()
        teardowns = [side_state.session.disconnect() for side_state in self.sides.values()]
        self._closing = asyncio.gather(*teardowns, return_exceptions=True)

        if reason is EndReason.FAILED:
            logger.warning(f"⏹️  Debate ended after failure: {error}")
        else:
            logger.info("⏹️  Debate stopped")
        self.emit("ended", reason, error)
        return self._closing

    async def stop(self) -> None:
        """User-initiated end. Safe from any state, including mid-connect."""
        self.end(EndReason.STOPPED)
        await self.wait_closed()

    async def wait_closed(self) -> None:
        if self._closing is not None:
            await self._closing

    def describe(self) -> Dict[str, Any]:
        return {
            "state": self.state.value,
            "activeSide": self.active_side.value if self.active_side else None,
            "turnsForwarded": self.turns_forwarded,
            "sessions": {
                side.value: state.session.state.value for side, state in self.sides.items()
            },
        }


__all__ = ["Side", "TurnState", "EndReason", "SideState", "TurnOrchestrator"]
