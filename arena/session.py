"""
Lifecycle wrapper around one streaming transport.

A SessionHandle owns exactly one transport connection for one debater. It
tracks the connection state, queues outgoing messages, re-emits the
transport's events to its own subscribers and keeps the latest volume level.

State machine:

    IDLE -> CONNECTING -> CONNECTED -> DISCONNECTING -> IDLE
                 \\             \\
                  +-> FAILED <--+          (disconnect() leaves FAILED too)

Events re-emitted by the handle: ``transcription``, ``turncomplete``,
``volume``, ``audio``, ``error``, plus ``statechange`` on every transition.
Nothing but ``statechange`` is emitted unless the handle is CONNECTED.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from enum import Enum
from typing import Any, Awaitable, Dict, Mapping, Optional

from .errors import InvalidStateError, SessionConnectionError
from .events import EventEmitter
from .profiles import AgentProfile
from .transport import LiveTransport, SessionConfig

logger = logging.getLogger(__name__)


class SessionState(Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTING = "disconnecting"
    FAILED = "failed"


class SessionHandle(EventEmitter):
    """
    One debater's streaming session.

    configure() before connect(); send() only while connected (otherwise the
    message is logged and dropped); disconnect() from anywhere, any number of
    times.
    """

    def __init__(self, profile: AgentProfile, transport: LiveTransport, *, side: str) -> None:
        super().__init__()
        self.profile = profile
        self.transport = transport
        self.side = side
        self.state = SessionState.IDLE
        self.volume = 0.0
        self.configuration: Optional[SessionConfig] = None

        self._connecting: Optional[asyncio.Task] = None
        self._teardown: Optional[asyncio.Future] = None
        self._outbox: Optional[asyncio.Queue] = None
        self._pump_task: Optional[asyncio.Task] = None
        self._forwarding = contextlib.ExitStack()

    @property
    def connected(self) -> bool:
        return self.state is SessionState.CONNECTED

    def configure(self, config: SessionConfig) -> None:
        if self.state is not SessionState.IDLE:
            raise InvalidStateError(
                f"{self.side}: configure() requires an idle session (state is {self.state.value})"
            )
        self.transport.configure(config)
        self.configuration = config
        logger.debug(f"{self.side}: configured with voice {config.voice}")

    async def connect(self) -> None:
        """
        Open the session.

        Concurrent callers share the in-flight attempt and see its outcome.
        Cancelling a waiter does not abort the attempt; disconnect() does.

        Raises:
            InvalidStateError: not configured, or the handle is FAILED/DISCONNECTING
            SessionConnectionError: the handshake failed or was aborted
        """
        if self.state is SessionState.CONNECTED:
            return
        if self.state is not SessionState.CONNECTING:
            if self.state is not SessionState.IDLE:
                raise InvalidStateError(
                    f"{self.side}: cannot connect while {self.state.value}; disconnect() first"
                )
            if self.configuration is None:
                raise InvalidStateError(f"{self.side}: configure() must be called before connect()")
            self._set_state(SessionState.CONNECTING)
            self._connecting = asyncio.create_task(self._open(), name=f"{self.side}-connect")

        task = self._connecting
        try:
            await asyncio.shield(task)
        except asyncio.CancelledError:
            if task.cancelled():
                raise SessionConnectionError(
                    f"{self.side}: connect aborted by disconnect()", side=self.side
                ) from None
            raise

    async def _open(self) -> None:
        logger.info(f"{self.side}: connecting {self.profile.display_name}")
        try:
            await self.transport.connect()
        except asyncio.CancelledError:
            raise
        except SessionConnectionError as exc:
            logger.error(f"{self.side}: connection failed: {exc}")
            self._set_state(SessionState.FAILED)
            exc.side = self.side
            raise
        except Exception as exc:
            logger.error(f"{self.side}: connection failed: {exc}", exc_info=True)
            self._set_state(SessionState.FAILED)
            raise SessionConnectionError(f"{self.side}: {exc}", side=self.side) from exc

        forwarding = self._forwarding
        forwarding.enter_context(self.transport.on("transcription", self._on_transcription))
        forwarding.enter_context(self.transport.on("turncomplete", self._on_turn_complete))
        forwarding.enter_context(self.transport.on("volume", self._on_volume))
        forwarding.enter_context(self.transport.on("audio", self._on_audio))
        forwarding.enter_context(self.transport.on("error", self._on_transport_error))

        self._outbox = asyncio.Queue()
        self._pump_task = asyncio.create_task(self._pump(self._outbox), name=f"{self.side}-send")
        self._set_state(SessionState.CONNECTED)
        logger.info(f"✅ {self.side}: {self.profile.display_name} connected")

    def disconnect(self) -> Awaitable[None]:
        """
        Tear the session down.

        The handle leaves CONNECTED/CONNECTING before this returns, so callers
        in the same dispatch tick never observe a live session afterwards.
        Await the result to wait for the transport teardown to finish.
        """
        if self.state is SessionState.DISCONNECTING and self._teardown is not None:
            return self._teardown
        if self.state is SessionState.IDLE:
            done = asyncio.get_running_loop().create_future()
            done.set_result(None)
            return done

        logger.info(f"{self.side}: disconnecting (was {self.state.value})")
        self._stop_forwarding()
        if self._connecting is not None and not self._connecting.done():
            self._connecting.cancel()
        teardown = self._teardown = asyncio.ensure_future(self._close())
        # Listeners may call disconnect() again; they get the same teardown.
        self._set_state(SessionState.DISCONNECTING)
        return teardown

    async def _close(self) -> None:
        try:
            await self.transport.disconnect()
        except Exception as exc:
            logger.warning(f"{self.side}: transport teardown failed: {exc}")
        finally:
            self._connecting = None
            self.volume = 0.0
            self._set_state(SessionState.IDLE)

    def send(self, message: Mapping[str, str]) -> bool:
        """Queue a message for the transport. Returns False when dropped."""
        if self.state is not SessionState.CONNECTED or self._outbox is None:
            logger.warning(
                f"{self.side}: dropping send while {self.state.value}: {message.get('text', '')[:60]!r}"
            )
            return False
        self._outbox.put_nowait(dict(message))
        logger.debug(f"{self.side}: queued message ({self._outbox.qsize()} pending)")
        return True

    async def drain(self) -> None:
        """Wait until every queued message has been handed to the transport."""
        outbox, pump = self._outbox, self._pump_task
        if outbox is None or pump is None or pump.done():
            return
        joiner = asyncio.ensure_future(outbox.join())
        try:
            await asyncio.wait({joiner, pump}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            joiner.cancel()

    async def _pump(self, outbox: asyncio.Queue) -> None:
        while True:
            message = await outbox.get()
            try:
                await self.transport.send(message)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.error(f"{self.side}: send failed: {exc}", exc_info=True)
                self._fault(exc)
                return
            finally:
                outbox.task_done()

    def _stop_forwarding(self) -> None:
        self._forwarding.close()
        self._forwarding = contextlib.ExitStack()
        pump, self._pump_task = self._pump_task, None
        # Pending sends are dropped; delivery after stop is not guaranteed.
        self._outbox = None
        if pump is not None and pump is not asyncio.current_task() and not pump.done():
            pump.cancel()

    def _fault(self, exc: BaseException) -> None:
        if self.state is not SessionState.CONNECTED:
            return
        logger.error(f"❌ {self.side}: session fault: {exc}")
        self._set_state(SessionState.FAILED)
        self._stop_forwarding()
        self._set_volume(0.0)
        self.emit("error", exc)

    def _set_state(self, state: SessionState) -> None:
        if state is self.state:
            return
        logger.debug(f"{self.side}: {self.state.value} -> {state.value}")
        self.state = state
        self.emit("statechange", state)

    def _set_volume(self, level: float) -> None:
        self.volume = max(0.0, min(1.0, float(level)))
        self.emit("volume", self.volume)

    def _on_transcription(self, text: str) -> None:
        if self.state is SessionState.CONNECTED:
            self.emit("transcription", text)

    def _on_turn_complete(self) -> None:
        if self.state is SessionState.CONNECTED:
            self.emit("turncomplete")

    def _on_volume(self, level: float) -> None:
        if self.state is SessionState.CONNECTED:
            self._set_volume(level)

    def _on_audio(self, pcm: bytes) -> None:
        if self.state is SessionState.CONNECTED:
            self.emit("audio", pcm)

    def _on_transport_error(self, exc: BaseException) -> None:
        self._fault(exc)

    def describe(self) -> Dict[str, Any]:
        return {
            "side": self.side,
            "agent": self.profile.id,
            "state": self.state.value,
            "volume": self.volume,
        }

    def __repr__(self) -> str:
        return f"SessionHandle(side={self.side!r}, agent={self.profile.id!r}, state={self.state.value})"


__all__ = ["SessionHandle", "SessionState"]
