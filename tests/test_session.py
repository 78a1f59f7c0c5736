"""Tests for the session handle lifecycle."""

import asyncio

import pytest

from arena.errors import InvalidStateError, SessionConnectionError
from arena.session import SessionState

from conftest import settle


async def test_configure_and_connect(left_session, left_transport, session_config):
    left_session.configure(session_config)
    assert left_transport.config is session_config

    await left_session.connect()

    assert left_session.state is SessionState.CONNECTED
    assert left_transport.is_open


async def test_connect_requires_configuration(left_session):
    with pytest.raises(InvalidStateError):
        await left_session.connect()
    assert left_session.state is SessionState.IDLE


async def test_configure_while_connected_is_rejected(left_session, session_config):
    left_session.configure(session_config)
    await left_session.connect()

    with pytest.raises(InvalidStateError):
        left_session.configure(session_config)


async def test_concurrent_connects_share_one_attempt(left_session, left_transport, session_config):
    left_session.configure(session_config)
    left_transport.connect_gate = asyncio.Event()

    first = asyncio.create_task(left_session.connect())
    second = asyncio.create_task(left_session.connect())
    await settle()
    assert left_session.state is SessionState.CONNECTING

    left_transport.connect_gate.set()
    await asyncio.gather(first, second)

    assert left_transport.connect_calls == 1
    assert left_session.state is SessionState.CONNECTED
    # Connecting again once connected is a no-op.
    await left_session.connect()
    assert left_transport.connect_calls == 1


async def test_handshake_failure_leaves_failed(left_session, left_transport, session_config):
    left_session.configure(session_config)
    left_transport.connect_error = RuntimeError("handshake rejected")

    with pytest.raises(SessionConnectionError) as excinfo:
        await left_session.connect()

    assert excinfo.value.side == "left"
    assert left_session.state is SessionState.FAILED
    with pytest.raises(InvalidStateError):
        await left_session.connect()

    await left_session.disconnect()
    assert left_session.state is SessionState.IDLE


async def test_disconnect_while_connecting_aborts_connect(left_session, left_transport, session_config):
    left_session.configure(session_config)
    left_transport.connect_gate = asyncio.Event()
    attempt = asyncio.create_task(left_session.connect())
    await settle()

    teardown = left_session.disconnect()
    assert left_session.state is SessionState.DISCONNECTING

    with pytest.raises(SessionConnectionError):
        await attempt
    await teardown
    assert left_session.state is SessionState.IDLE


async def test_disconnect_is_idempotent(left_session, left_transport, session_config):
    left_session.configure(session_config)
    await left_session.connect()

    first = left_session.disconnect()
    second = left_session.disconnect()
    await first
    await second
    await left_session.disconnect()

    assert left_session.state is SessionState.IDLE
    assert left_transport.disconnect_calls == 1


async def test_send_while_not_connected_is_dropped(left_session, left_transport, session_config):
    assert left_session.send({"text": "too early"}) is False

    left_session.configure(session_config)
    await left_session.connect()
    await left_session.disconnect()
    assert left_session.send({"text": "too late"}) is False

    assert left_transport.sent == []


async def test_send_reaches_transport_in_order(left_session, left_transport, session_config):
    left_session.configure(session_config)
    await left_session.connect()

    assert left_session.send({"text": "one"})
    assert left_session.send({"text": "two"})
    await left_session.drain()

    assert left_transport.sent == ["one", "two"]


async def test_disconnect_drops_pending_sends(left_session, left_transport, session_config):
    left_session.configure(session_config)
    await left_session.connect()

    left_session.send({"text": "never delivered"})
    await left_session.disconnect()
    await settle()

    assert left_transport.sent == []


async def test_events_are_reemitted_while_connected(left_session, left_transport, session_config):
    seen = []
    left_session.on("transcription", lambda text: seen.append(("text", text)))
    left_session.on("turncomplete", lambda: seen.append(("done",)))
    left_session.on("volume", lambda level: seen.append(("volume", level)))

    # Not connected yet: nothing is forwarded.
    left_transport.speak("ignored")

    left_session.configure(session_config)
    await left_session.connect()
    left_transport.speak("Hel", "lo")
    left_transport.emit("volume", 0.4)
    left_transport.complete_turn()

    assert seen == [("text", "Hel"), ("text", "lo"), ("volume", 0.4), ("done",)]
    assert left_session.volume == 0.4


async def test_volume_is_clamped(left_session, left_transport, session_config):
    left_session.configure(session_config)
    await left_session.connect()

    left_transport.emit("volume", 3.0)
    assert left_session.volume == 1.0
    left_transport.emit("volume", -1.0)
    assert left_session.volume == 0.0


async def test_transport_error_fails_session_and_silences_it(left_session, left_transport, session_config):
    errors = []
    fragments = []
    left_session.on("error", errors.append)
    left_session.on("transcription", fragments.append)
    left_session.configure(session_config)
    await left_session.connect()

    fault = RuntimeError("socket reset")
    left_transport.fail(fault)
    left_transport.speak("after the fault")
    left_transport.fail(RuntimeError("second fault"))

    assert errors == [fault]
    assert fragments == []
    assert left_session.state is SessionState.FAILED
    assert left_session.send({"text": "nope"}) is False


async def test_send_failure_is_a_session_fault(left_session, left_transport, session_config):
    errors = []
    left_session.on("error", errors.append)
    left_session.configure(session_config)
    await left_session.connect()
    left_transport.send_error = RuntimeError("write failed")

    left_session.send({"text": "boom"})
    await settle()

    assert left_session.state is SessionState.FAILED
    assert len(errors) == 1


async def test_reconnect_after_disconnect(left_session, left_transport, session_config):
    left_session.configure(session_config)
    await left_session.connect()
    await left_session.disconnect()

    left_session.configure(session_config)
    await left_session.connect()

    assert left_session.state is SessionState.CONNECTED
    assert left_transport.connect_calls == 2


async def test_statechange_events_follow_lifecycle(left_session, session_config):
    states = []
    left_session.on("statechange", states.append)
    left_session.configure(session_config)

    await left_session.connect()
    await left_session.disconnect()

    assert states == [
        SessionState.CONNECTING,
        SessionState.CONNECTED,
        SessionState.DISCONNECTING,
        SessionState.IDLE,
    ]
