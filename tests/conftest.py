"""Pytest configuration and fixtures."""

import asyncio
from typing import List, Mapping, Optional

import pytest

from arena.controller import DebateController
from arena.events import EventEmitter
from arena.profiles import CHARLOTTE, PAUL
from arena.session import SessionHandle
from arena.transport import SessionConfig


class FakeTransport(EventEmitter):
    """In-memory stand-in for a Live transport.

    Tests drive the "server side" with speak(), complete_turn(), fail() and
    read what the debater was sent from `sent`.
    """

    def __init__(self, name: str = "fake") -> None:
        super().__init__()
        self.name = name
        self.config: Optional[SessionConfig] = None
        self.sent: List[str] = []
        self.is_open = False
        self.connect_calls = 0
        self.disconnect_calls = 0
        self.connect_gate: Optional[asyncio.Event] = None
        self.disconnect_gate: Optional[asyncio.Event] = None
        self.connect_error: Optional[BaseException] = None
        self.send_error: Optional[BaseException] = None

    def configure(self, config: SessionConfig) -> None:
        self.config = config

    async def connect(self) -> None:
        self.connect_calls += 1
        if self.connect_gate is not None:
            await self.connect_gate.wait()
        if self.connect_error is not None:
            raise self.connect_error
        self.is_open = True

    async def disconnect(self) -> None:
        self.disconnect_calls += 1
        if self.disconnect_gate is not None:
            await self.disconnect_gate.wait()
        self.is_open = False

    async def send(self, message: Mapping[str, str]) -> None:
        if self.send_error is not None:
            raise self.send_error
        self.sent.append(message["text"])

    def speak(self, *fragments: str) -> None:
        for fragment in fragments:
            self.emit("transcription", fragment)

    def complete_turn(self) -> None:
        self.emit("turncomplete")

    def fail(self, exc: BaseException) -> None:
        self.emit("error", exc)


async def settle(rounds: int = 10) -> None:
    """Let pending callbacks and tasks run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def left_transport():
    return FakeTransport("left")


@pytest.fixture
def right_transport():
    return FakeTransport("right")


@pytest.fixture
def left_session(left_transport):
    return SessionHandle(PAUL, left_transport, side="left")


@pytest.fixture
def right_session(right_transport):
    return SessionHandle(CHARLOTTE, right_transport, side="right")


@pytest.fixture
def controller(left_session, right_session):
    return DebateController(left_session, right_session, connect_timeout=1.0)


@pytest.fixture
def session_config():
    return SessionConfig(voice="Fenrir", system_instruction_text="You are Paul.")
