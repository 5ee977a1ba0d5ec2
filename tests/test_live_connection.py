from __future__ import annotations

import json

import pytest

from perfwatch.live import ConnectionState, Envelope, LiveConnection, MessageName
from perfwatch.runtime import AsyncioScheduler

from conftest import FakeClock, FakeDialer, FakeSocket, ManualScheduler

URL = "ws://relay.test:4000"


@pytest.fixture
def received() -> list[Envelope]:
    return []


@pytest.fixture
def connection(
    scheduler: ManualScheduler,
    dialer: FakeDialer,
    clock: FakeClock,
    received: list[Envelope],
) -> LiveConnection:
    return LiveConnection(
        url=URL,
        scheduler=scheduler,
        dialer=dialer,
        reconnect_interval_sec=2.0,
        clock=clock,
        session_id="session_1_abcdefghi",
        on_message=received.append,
    )


def test_only_one_connect_in_flight(connection: LiveConnection, scheduler: ManualScheduler) -> None:
    connection.connect()
    connection.connect()
    assert connection.state is ConnectionState.CONNECTING
    assert len(scheduler.spawned) == 1


def test_open_exchange_and_single_reconnect(
    connection: LiveConnection,
    scheduler: ManualScheduler,
    dialer: FakeDialer,
    clock: FakeClock,
    received: list[Envelope],
) -> None:
    socket = FakeSocket(
        [
            json.dumps({"event": "ping"}),
            "garbage{",
            json.dumps({"type": "metrics", "data": [{"type": "custom"}]}),
        ]
    )
    dialer.upcoming.append(socket)
    connection.connect()
    scheduler.drain()

    frames = [json.loads(text) for text in socket.sent]
    assert frames[0] == {"event": "hello", "payload": {"sessionId": "session_1_abcdefghi", "ts": clock()}}
    assert frames[1] == {"event": "pong", "payload": {"ts": clock()}}
    assert len(frames) == 2
    assert [e.name for e in received] == ["metrics"]

    assert connection.state is ConnectionState.DISCONNECTED
    assert connection.reconnect_pending is True
    assert len(scheduler.pending_timers) == 1
    connection.handle_close()
    assert len(scheduler.pending_timers) == 1

    scheduler.advance(1.0)
    assert len(dialer.dialed) == 1
    scheduler.advance(1.0)
    assert connection.state is ConnectionState.CONNECTING
    scheduler.drain()
    assert len(dialer.dialed) == 2


def test_manual_close_suppresses_reconnect(
    connection: LiveConnection,
    scheduler: ManualScheduler,
    dialer: FakeDialer,
) -> None:
    connection.connect()
    scheduler.discard()
    socket = FakeSocket()
    connection.handle_open(socket)
    connection.close()
    scheduler.drain()
    assert socket.closed is True
    connection.handle_close()
    assert connection.reconnect_pending is False
    connection.connect()
    assert connection.state is ConnectionState.DISCONNECTED
    assert scheduler.spawned == []

    connection.reset()
    connection.connect()
    assert connection.state is ConnectionState.CONNECTING


def test_close_cancels_pending_reconnect(connection: LiveConnection, scheduler: ManualScheduler) -> None:
    connection.handle_close()
    assert connection.reconnect_pending is True
    connection.close()
    assert connection.reconnect_pending is False
    scheduler.advance(10.0)
    assert scheduler.spawned == []


def test_stale_run_after_close_does_not_reconnect(
    connection: LiveConnection,
    scheduler: ManualScheduler,
    dialer: FakeDialer,
) -> None:
    connection.connect()
    connection.close()
    scheduler.drain()
    assert dialer.sockets[0].sent == []
    assert connection.state is ConnectionState.DISCONNECTED
    assert connection.reconnect_pending is False


def test_dial_failure_schedules_reconnect(
    connection: LiveConnection,
    scheduler: ManualScheduler,
    dialer: FakeDialer,
) -> None:
    dialer.fail = True
    connection.connect()
    scheduler.drain()
    assert connection.state is ConnectionState.DISCONNECTED
    assert connection.reconnect_pending is True
    dialer.fail = False
    scheduler.advance(2.0)
    scheduler.drain()
    assert dialer.dialed == [URL, URL]


def test_send_requires_open_socket(connection: LiveConnection, scheduler: ManualScheduler) -> None:
    assert connection.send(MessageName.METRICS_BATCH, []) is False
    connection.connect()
    assert connection.send(MessageName.METRICS_BATCH, []) is False
    scheduler.discard()
    socket = FakeSocket()
    connection.handle_open(socket)
    scheduler.drain()
    assert connection.send(MessageName.METRICS_BATCH, [{"type": "custom"}]) is True
    scheduler.drain()
    assert json.loads(socket.sent[-1]) == {"event": "metrics_batch", "payload": [{"type": "custom"}]}


def test_open_without_session_skips_hello(scheduler: ManualScheduler, dialer: FakeDialer, clock: FakeClock) -> None:
    connection = LiveConnection(URL, scheduler, dialer, 1.0, clock)
    socket = FakeSocket()
    connection.handle_open(socket)
    scheduler.drain()
    assert socket.sent == []
    connection.handle_message(json.dumps({"event": "metrics", "payload": []}))


def test_connect_without_a_running_loop_stays_disconnected(dialer: FakeDialer, clock: FakeClock) -> None:
    connection = LiveConnection(URL, AsyncioScheduler(), dialer, 1.0, clock)
    connection.connect()
    assert connection.state is ConnectionState.DISCONNECTED
    assert dialer.dialed == []
    connection.handle_close()
    assert connection.reconnect_pending is False
