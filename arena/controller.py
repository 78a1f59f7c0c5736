"""
Debate controller: the thin surface the UI layer talks to.

The controller owns both session handles and transcript buffers for its whole
lifetime and builds a fresh TurnOrchestrator for each debate. UI code calls
start(topic) / stop() and reads (or subscribes to) the observable state:
phase, end reason, per-side committed transcript and per-side live volume.

Events: ``change(snapshot)`` on phase changes and committed turns,
``transcript(side, fragment)``, ``volume(side, level)`` and
``audio(side, pcm)``.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from .errors import InvalidStateError
from .events import EventEmitter
from .orchestrator import EndReason, Side, SideState, TurnOrchestrator, TurnState
from .session import SessionHandle
from .transcript import TranscriptBuffer

logger = logging.getLogger(__name__)


class DebatePhase(Enum):
    SETUP = "setup"
    ACTIVE = "active"
    ENDED = "ended"


@dataclass
class Debate:
    """The debate record owned by the controller."""

    topic: str
    phase: DebatePhase
    left: SideState
    right: SideState


class DebateController(EventEmitter):
    """start()/stop() plus read-only state for one pair of debaters."""

    def __init__(
        self,
        left: SessionHandle,
        right: SessionHandle,
        *,
        connect_timeout: float = 15.0,
    ) -> None:
        super().__init__()
        self.connect_timeout = connect_timeout
        self._left = SideState(Side.LEFT, left, TranscriptBuffer(Side.LEFT.value))
        self._right = SideState(Side.RIGHT, right, TranscriptBuffer(Side.RIGHT.value))
        self.debate: Optional[Debate] = None
        self.orchestrator: Optional[TurnOrchestrator] = None
        self.end_reason: Optional[EndReason] = None
        self.error: Optional[str] = None

        # Volume and audio are forwarded for the controller's whole lifetime,
        # independent of any one debate.
        self._relays = contextlib.ExitStack()
        for side_state in (self._left, self._right):
            side = side_state.side
            session = side_state.session
            self._relays.enter_context(
                session.on("volume", lambda level, side=side: self.emit("volume", side, level))
            )
            self._relays.enter_context(
                session.on("audio", lambda pcm, side=side: self.emit("audio", side, pcm))
            )

    # ------------------------------------------------------------------
    # Observable state
    # ------------------------------------------------------------------

    @property
    def phase(self) -> DebatePhase:
        return self.debate.phase if self.debate else DebatePhase.SETUP

    @property
    def topic(self) -> Optional[str]:
        return self.debate.topic if self.debate else None

    @property
    def left_transcript(self) -> str:
        return self._left.buffer.committed_log

    @property
    def right_transcript(self) -> str:
        return self._right.buffer.committed_log

    @property
    def left_volume(self) -> float:
        return self._left.session.volume

    @property
    def right_volume(self) -> float:
        return self._right.session.volume

    @property
    def failed(self) -> bool:
        return self.end_reason is EndReason.FAILED

    def side(self, side: Side) -> SideState:
        return self._left if side is Side.LEFT else self._right

    def snapshot(self) -> Dict[str, Any]:
        """Plain-data view of the observable state, for UI bridges."""
        sides = {}
        for side_state in (self._left, self._right):
            profile = side_state.session.profile
            sides[side_state.side.value] = {
                "agentId": profile.id,
                "name": profile.display_name,
                "color": profile.color,
                "session": side_state.session.state.value,
                "transcript": side_state.buffer.committed_log,
                "pending": side_state.buffer.pending_text,
                "volume": side_state.session.volume,
            }
        orchestrator = self.orchestrator
        return {
            "phase": self.phase.value,
            "topic": self.topic,
            "endReason": self.end_reason.value if self.end_reason else None,
            "error": self.error,
            "turn": orchestrator.state.value if orchestrator else TurnState.SETUP.value,
            "activeSide": (
                orchestrator.active_side.value
                if orchestrator and orchestrator.active_side
                else None
            ),
            "sides": sides,
        }

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    async def start(self, topic: str) -> None:
        """
        Start a debate on `topic`.

        Raises:
            ValueError: the topic is empty or whitespace
            InvalidStateError: a debate is already running
            SessionConnectionError: a session failed to connect (the debate is
                left ENDED with end_reason FAILED)
        """
        topic = (topic or "").strip()
        if not topic:
            raise ValueError("Debate topic must not be empty")
        if self.orchestrator is not None and not self.orchestrator.ended:
            raise InvalidStateError("A debate is already in progress")

        # Claim the debate before the first await, so stop() and a second
        # start() see it while the previous sessions are still closing.
        self._left.buffer.reset()
        self._right.buffer.reset()
        self.end_reason = None
        self.error = None
        self.debate = Debate(topic=topic, phase=DebatePhase.SETUP, left=self._left, right=self._right)

        orchestrator = TurnOrchestrator(self._left, self._right, connect_timeout=self.connect_timeout)
        self.orchestrator = orchestrator
        orchestrator.on("transcript", self._on_fragment)
        orchestrator.on("turn", self._on_turn)
        orchestrator.on("ended", self._on_ended)
        logger.info(f"📝 Starting debate on: {topic}")
        self.emit("change", self.snapshot())

        try:
            # A previous debate may still be tearing its sessions down.
            await self._left.session.disconnect()
            await self._right.session.disconnect()
            if orchestrator.ended:
                logger.info("Debate stopped before its sessions were free; not connecting")
                return
            await orchestrator.open(topic)
        except asyncio.CancelledError:
            orchestrator.end(EndReason.STOPPED)
            raise
        except Exception as exc:
            if not orchestrator.ended:
                orchestrator.end(EndReason.FAILED, exc)
                await orchestrator.wait_closed()
            logger.error(f"❌ Debate failed to start: {exc}")
            raise

        if not orchestrator.ended:
            self.debate.phase = DebatePhase.ACTIVE
            self.emit("change", self.snapshot())

    async def stop(self) -> None:
        """End the running debate, if any. Safe to call from any state."""
        orchestrator = self.orchestrator
        if orchestrator is None:
            return
        await orchestrator.stop()

    async def close(self) -> None:
        """Stop and release the controller's own subscriptions."""
        await self.stop()
        self._relays.close()

    # ------------------------------------------------------------------
    # Orchestrator callbacks
    # ------------------------------------------------------------------

    def _on_fragment(self, side: Side, fragment: str) -> None:
        self.emit("transcript", side, fragment)

    def _on_turn(self, side: Side, text: str) -> None:
        self.emit("change", self.snapshot())

    def _on_ended(self, reason: EndReason, error: Optional[BaseException]) -> None:
        self.end_reason = reason
        self.error = str(error) if error is not None else None
        if self.debate is not None:
            self.debate.phase = DebatePhase.ENDED
        self.emit("change", self.snapshot())


__all__ = ["DebatePhase", "Debate", "DebateController"]
