"""
Arena WebSocket server: bridges browser clients to the debate controller.

Flow:
1. Browser connects and receives a `connected` acknowledgment
2. Browser sends `{"type": "start_debate", "topic": ...}`
3. Controller connects both Live sessions and the debate runs
4. State changes, transcript fragments and audio frames are queued and fanned
   out to all connected browsers; both faces are pushed on their own clock
5. `{"type": "stop_debate"}` (or the last browser leaving) ends the debate
"""

from __future__ import annotations

import asyncio
import base64
import json
import logging
from typing import Any, Dict, Optional, Set

import websockets
from pydantic import ValidationError

from .config import ArenaConfig
from .controller import DebateController
from .errors import ArenaError, SessionConnectionError
from .face import face_signal
from .orchestrator import Side
from .profiles import AgentProfile
from .schemas import (
    AudioChunk,
    Connected,
    ErrorMessage,
    Init,
    StartDebate,
    StateUpdate,
    StopDebate,
    TranscriptFragment,
    VolumeLevel,
    parse_client_message,
)
from .session import SessionHandle
from .transport import OUTPUT_SAMPLE_RATE, GeminiLiveTransport

logger = logging.getLogger(__name__)

# Face frames pushed to browsers per second.
FACE_FPS = 30
# Blink speed is tuned for a 60 frames-per-second animation clock.
BLINK_FRAME_RATE = 60


def build_controller(config: ArenaConfig, left: AgentProfile, right: AgentProfile) -> DebateController:
    """Wire two Gemini Live sessions into a controller."""
    if not config.api_key:
        logger.error("GEMINI_API_KEY environment variable not set!")
    else:
        logger.info(f"Gemini API key found (length: {len(config.api_key)})")

    handles = []
    for side, profile in ((Side.LEFT, left), (Side.RIGHT, right)):
        transport = GeminiLiveTransport.from_api_key(
            config.api_key, config.model, name=f"{side.value}:{profile.id}"
        )
        handles.append(SessionHandle(profile, transport, side=side.value))
    return DebateController(handles[0], handles[1], connect_timeout=config.connect_timeout)


class ArenaServer:
    """
    Main arena server that:
    1. Owns the debate controller
    2. Accepts start/stop commands from browsers
    3. Broadcasts debate state and audio to every connected browser
    """

    def __init__(self, controller: DebateController, config: ArenaConfig) -> None:
        self.controller = controller
        self.config = config
        self.web_clients: Set[Any] = set()
        self.outbox: asyncio.Queue = asyncio.Queue()
        self.debate_task: Optional[asyncio.Task] = None

        controller.on("change", self._on_change)
        controller.on("transcript", self._on_transcript)
        controller.on("audio", self._on_audio)

    # ------------------------------------------------------------------
    # Controller events -> outbox
    # ------------------------------------------------------------------

    def _publish(self, payload: Dict[str, Any]) -> None:
        if self.web_clients:
            self.outbox.put_nowait(payload)

    def _on_change(self, snapshot: Dict[str, Any]) -> None:
        self._publish(StateUpdate(state=snapshot).to_wire())

    def _on_transcript(self, side: Side, text: str) -> None:
        self._publish(TranscriptFragment(side=side.value, text=text).to_wire())

    def _face_message(self, side: Side, frame: int) -> Dict[str, Any]:
        session = self.controller.side(side).session
        face = face_signal(session.volume, session.profile.color, frame)
        return VolumeLevel(
            side=side.value,
            level=session.volume,
            eye_scale=face.eye_scale,
            mouth_scale=face.mouth_scale,
            color=face.color,
        ).to_wire()

    def _on_audio(self, side: Side, pcm: bytes) -> None:
        self._publish(
            AudioChunk(
                side=side.value,
                data=base64.b64encode(pcm).decode("ascii"),
                sample_rate=OUTPUT_SAMPLE_RATE,
            ).to_wire()
        )

    # ------------------------------------------------------------------
    # Outbox -> browsers
    # ------------------------------------------------------------------

    async def broadcast_to_clients(self) -> None:
        """Drain the outbox and send every message to all connected clients."""
        logger.info("Starting broadcast to clients task")
        try:
            while True:
                payload = await self.outbox.get()
                if not self.web_clients:
                    continue
                message_json = json.dumps(payload)
                logger.debug(
                    f"Broadcasting {payload.get('type', 'unknown')} to {len(self.web_clients)} clients"
                )
                await asyncio.gather(
                    *[client.send(message_json) for client in list(self.web_clients)],
                    return_exceptions=True,
                )
        except asyncio.CancelledError:
            logger.info("⏹️  Broadcast task cancelled")
            raise

    async def animate_faces(self, interval: float = 1 / FACE_FPS) -> None:
        """
        Push both faces to the browsers on a fixed clock.

        Eyes keep blinking while a debater is silent; the mouth follows the
        session's latest volume.
        """
        logger.info("Starting face animation task")
        loop = asyncio.get_running_loop()
        started = loop.time()
        try:
            while True:
                await asyncio.sleep(interval)
                if not self.web_clients:
                    continue
                frame = int((loop.time() - started) * BLINK_FRAME_RATE)
                for side in Side:
                    self._publish(self._face_message(side, frame))
        except asyncio.CancelledError:
            logger.info("⏹️  Face animation task cancelled")
            raise

    # ------------------------------------------------------------------
    # Debate lifecycle
    # ------------------------------------------------------------------

    async def run_debate(self, topic: str) -> None:
        """Start a debate and report a failed start to the browsers."""
        try:
            await self.controller.start(topic)
        except SessionConnectionError as exc:
            self._publish(ErrorMessage(message="Debate failed to start", detail=str(exc)).to_wire())
        except (ValueError, ArenaError) as exc:
            self._publish(ErrorMessage(message=str(exc)).to_wire())
        except Exception as exc:
            logger.error(f"❌ Error in run_debate: {exc}", exc_info=True)
            self._publish(ErrorMessage(message="Debate failed", detail=str(exc)).to_wire())

    async def stop_debate(self) -> None:
        await self.controller.stop()
        task, self.debate_task = self.debate_task, None
        if task is not None and not task.done():
            await task

    # ------------------------------------------------------------------
    # WebSocket handling
    # ------------------------------------------------------------------

    async def websocket_handler(self, websocket) -> None:
        """
        Handle one browser connection.

        Flow:
        1. Client connects and gets an acknowledgment plus the current state
        2. Client sends start_debate / stop_debate commands
        3. When the last client leaves, any running debate is stopped
        """
        client_id = id(websocket)
        logger.info(f"New WebSocket client connected: {client_id}")
        self.web_clients.add(websocket)
        logger.info(f"Total connected clients: {len(self.web_clients)}")

        try:
            await websocket.send(
                json.dumps(Connected(message="Connected to debate arena. Waiting for debate topic...").to_wire())
            )
            await websocket.send(json.dumps(StateUpdate(state=self.controller.snapshot()).to_wire()))

            async for message in websocket:
                if isinstance(message, bytes):
                    logger.warning(f"Received unexpected binary message from client {client_id}")
                    continue

                logger.debug(f"Received message from client {client_id}: {message[:100]}...")
                try:
                    command = parse_client_message(message)
                except ValidationError as exc:
                    logger.error(f"Invalid message from client {client_id}: {message[:100]}... Error: {exc}")
                    await websocket.send(
                        json.dumps(ErrorMessage(message="Invalid message", detail=str(exc)).to_wire())
                    )
                    continue

                if isinstance(command, StartDebate):
                    await self._handle_start(websocket, command.topic)
                elif isinstance(command, StopDebate):
                    logger.info(f"Client {client_id} requested stop")
                    await self.stop_debate()

        except websockets.exceptions.ConnectionClosed as e:
            logger.info(f"WebSocket connection closed for client {client_id}: {e}")
        finally:
            self.web_clients.discard(websocket)
            logger.info(f"Client {client_id} disconnected. Total clients: {len(self.web_clients)}")
            if not self.web_clients:
                logger.info("⏹️  All clients disconnected - stopping debate")
                await self.stop_debate()

    async def _handle_start(self, websocket, topic: str) -> None:
        if self.debate_task is not None and not self.debate_task.done():
            logger.warning("Start requested, but a debate is already starting")
            await websocket.send(json.dumps(ErrorMessage(message="Debate already in progress").to_wire()))
            return
        if not topic.strip():
            await websocket.send(json.dumps(ErrorMessage(message="Debate topic must not be empty").to_wire()))
            return
        logger.info(f"📝 Received debate topic: {topic}")
        await websocket.send(json.dumps(Init(topic=topic, status="Debate starting...").to_wire()))
        self.debate_task = asyncio.create_task(self.run_debate(topic), name="debate-start")

    async def run(self) -> None:
        """Serve browsers until cancelled."""
        broadcast_task = asyncio.create_task(self.broadcast_to_clients(), name="broadcast")
        faces_task = asyncio.create_task(self.animate_faces(), name="faces")
        try:
            logger.info(f"Starting WebSocket server on {self.config.ws_host}:{self.config.ws_port}")
            async with websockets.serve(
                self.websocket_handler,
                self.config.ws_host,
                self.config.ws_port,
                max_size=self.config.max_message_size,
            ):
                logger.info(f"🌐 WebSocket server started on ws://{self.config.ws_host}:{self.config.ws_port}")
                await asyncio.Future()
        finally:
            await self.controller.close()
            faces_task.cancel()
            broadcast_task.cancel()
            await asyncio.gather(faces_task, broadcast_task, return_exceptions=True)
            logger.info("WebSocket server closed")


__all__ = ["ArenaServer", "build_controller"]
