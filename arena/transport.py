"""
Gemini Live streaming transport.

One transport instance owns one `client.aio.live` session. It turns incoming
server messages into events on the shared EventEmitter surface:

- ``transcription(text)``: one per `output_transcription` fragment, in order
- ``audio(pcm_bytes)`` and ``volume(level)``: one per inline audio part
- ``turncomplete()``: when the server marks the model turn complete
- ``error(exc)``: when the receive loop dies; no events follow it

Session handles depend only on the LiveTransport protocol, so tests can swap in
an in-memory fake.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Protocol

import numpy as np
from google import genai
from google.genai import types

from .errors import InvalidStateError, SessionConnectionError
from .events import EventEmitter, Handler, Subscription

logger = logging.getLogger(__name__)

# Gemini Live returns 16-bit little-endian mono PCM at 24kHz.
OUTPUT_SAMPLE_RATE = 24000


class ResponseModality(str, Enum):
    AUDIO = "AUDIO"
    TEXT = "TEXT"


@dataclass(frozen=True)
class SessionConfig:
    """Per-connection options. Immutable for the life of a connection."""

    voice: str
    system_instruction_text: str
    response_modality: ResponseModality = ResponseModality.AUDIO
    request_transcription: bool = True

    def to_live_config(self) -> types.LiveConnectConfig:
        """Map onto the google-genai Live connect config."""
        kwargs: Dict[str, Any] = {
            "response_modalities": [types.Modality(self.response_modality.value)],
            "speech_config": types.SpeechConfig(
                voice_config=types.VoiceConfig(
                    prebuilt_voice_config=types.PrebuiltVoiceConfig(voice_name=self.voice)
                )
            ),
            "system_instruction": types.Content(
                parts=[types.Part(text=self.system_instruction_text)]
            ),
        }
        if self.request_transcription:
            kwargs["output_audio_transcription"] = types.AudioTranscriptionConfig()
        return types.LiveConnectConfig(**kwargs)


class LiveTransport(Protocol):
    """What a session handle needs from a streaming client."""

    def configure(self, config: SessionConfig) -> None: ...

    async def connect(self) -> None: ...

    async def disconnect(self) -> None: ...

    async def send(self, message: Mapping[str, str]) -> None: ...

    def on(self, event: str, handler: Handler) -> Subscription: ...

    def off(self, event: str, handler: Handler) -> None: ...


def pcm16_volume(pcm: bytes) -> float:
    """RMS level of a 16-bit PCM frame, normalized to 0..1."""
    if len(pcm) < 2:
        return 0.0
    # Drop a trailing odd byte rather than failing on a split sample.
    usable = len(pcm) - (len(pcm) % 2)
    samples = np.frombuffer(pcm[:usable], dtype="<i2").astype(np.float32) / 32768.0
    rms = float(np.sqrt(np.mean(samples ** 2)))
    return min(1.0, rms)


class GeminiLiveTransport(EventEmitter):
    """Streaming transport backed by `genai.Client().aio.live.connect`."""

    def __init__(self, client: genai.Client, model: str, *, name: str = "live") -> None:
        super().__init__()
        self.client = client
        self.model = model
        self.name = name
        self._config: Optional[SessionConfig] = None
        self._stack: Optional[contextlib.AsyncExitStack] = None
        self._session: Any = None
        self._receive_task: Optional[asyncio.Task] = None

    @classmethod
    def from_api_key(cls, api_key: Optional[str], model: str, *, name: str = "live") -> "GeminiLiveTransport":
        return cls(genai.Client(api_key=api_key), model, name=name)

    def configure(self, config: SessionConfig) -> None:
        if self._session is not None:
            raise InvalidStateError(f"{self.name}: cannot configure an open session")
        self._config = config

    async def connect(self) -> None:
        if self._config is None:
            raise InvalidStateError(f"{self.name}: configure() must be called before connect()")
        if self._session is not None:
            return

        logger.info(f"{self.name}: opening Live session on {self.model} (voice {self._config.voice})")
        stack = contextlib.AsyncExitStack()
        try:
            self._session = await stack.enter_async_context(
                self.client.aio.live.connect(
                    model=self.model, config=self._config.to_live_config()
                )
            )
        except asyncio.CancelledError:
            await stack.aclose()
            raise
        except Exception as exc:
            await stack.aclose()
            # A session that asked for transcription and cannot get it is not
            # usable for turn handoff, so this is a connect failure too.
            raise SessionConnectionError(
                f"{self.name}: Live handshake failed: {exc}", side=self.name
            ) from exc

        self._stack = stack
        self._receive_task = asyncio.create_task(
            self._receive_loop(), name=f"{self.name}-receive"
        )
        logger.info(f"{self.name}: Live session ready")

    async def disconnect(self) -> None:
        task, self._receive_task = self._receive_task, None
        stack, self._stack = self._stack, None
        self._session = None

        if task is not None and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        if stack is not None:
            try:
                await stack.aclose()
            except Exception as exc:
                # Teardown is best effort: the socket may already be gone.
                logger.warning(f"{self.name}: error while closing Live session: {exc}")
        logger.info(f"{self.name}: Live session closed")

    async def send(self, message: Mapping[str, str]) -> None:
        if self._session is None:
            raise InvalidStateError(f"{self.name}: send() on a closed session")
        text = message["text"]
        logger.debug(f"{self.name}: sending {len(text)} chars")
        await self._session.send_client_content(
            turns=types.Content(role="user", parts=[types.Part(text=text)]),
            turn_complete=True,
        )

    async def _receive_loop(self) -> None:
        session = self._session
        try:
            while True:
                received = 0
                # receive() stops after each completed model turn.
                async for message in session.receive():
                    received += 1
                    self._dispatch(message)
                if received == 0:
                    raise ConnectionResetError("Live session closed by server")
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.error(f"{self.name}: receive loop failed: {exc}", exc_info=True)
            self.emit("error", exc)

    def _dispatch(self, message: types.LiveServerMessage) -> None:
        if message.go_away is not None:
            logger.warning(f"{self.name}: server sent go_away ({message.go_away.time_left})")

        content = message.server_content
        if content is None:
            return

        if content.model_turn is not None and content.model_turn.parts:
            for part in content.model_turn.parts:
                if part.inline_data is not None and part.inline_data.data:
                    pcm = part.inline_data.data
                    self.emit("audio", pcm)
                    self.emit("volume", pcm16_volume(pcm))

        if content.output_transcription is not None and content.output_transcription.text:
            self.emit("transcription", content.output_transcription.text)

        if content.turn_complete:
            self.emit("volume", 0.0)
            self.emit("turncomplete")


__all__ = [
    "ResponseModality",
    "SessionConfig",
    "LiveTransport",
    "GeminiLiveTransport",
    "pcm16_volume",
    "OUTPUT_SAMPLE_RATE",
]
