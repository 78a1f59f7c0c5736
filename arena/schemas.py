"""WebSocket message models exchanged with browser clients."""

from __future__ import annotations

from typing import Annotated, Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class _Model(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


# ----------------------------------------------------------------------
# Client -> server
# ----------------------------------------------------------------------


class StartDebate(_Model):
    type: Literal["start_debate"]
    topic: str = ""


class StopDebate(_Model):
    type: Literal["stop_debate"]


ClientMessage = Annotated[Union[StartDebate, StopDebate], Field(discriminator="type")]
_client_message = TypeAdapter(ClientMessage)


def parse_client_message(raw: Union[str, bytes]) -> ClientMessage:
    """Parse and validate a JSON client message (raises pydantic.ValidationError)."""
    return _client_message.validate_json(raw)


# ----------------------------------------------------------------------
# Server -> client
# ----------------------------------------------------------------------


class Connected(_Model):
    type: Literal["connected"] = "connected"
    message: str


class Init(_Model):
    type: Literal["init"] = "init"
    topic: str
    status: str


class StateUpdate(_Model):
    type: Literal["state"] = "state"
    state: Dict[str, Any]


class TranscriptFragment(_Model):
    type: Literal["transcript"] = "transcript"
    side: str
    text: str


class VolumeLevel(_Model):
    type: Literal["volume"] = "volume"
    side: str
    level: float
    eye_scale: float = Field(alias="eyeScale")
    mouth_scale: float = Field(alias="mouthScale")
    color: str


class AudioChunk(_Model):
    type: Literal["audio"] = "audio"
    side: str
    data: str  # base64 PCM16
    sample_rate: int = Field(alias="sampleRate")


class ErrorMessage(_Model):
    type: Literal["error"] = "error"
    message: str
    detail: Optional[str] = None


__all__ = [
    "StartDebate",
    "StopDebate",
    "ClientMessage",
    "parse_client_message",
    "Connected",
    "Init",
    "StateUpdate",
    "TranscriptFragment",
    "VolumeLevel",
    "AudioChunk",
    "ErrorMessage",
]
