from __future__ import annotations

import json

from perfwatch.config import FeedConfig
from perfwatch.live import ConnectionState, LiveFeed

from conftest import FakeClock, FakeDialer, FakeSocket, ManualScheduler


def _request(status: int, duration: float, n: int = 0) -> dict[str, object]:
    return {"type": "api_request", "endpoint": f"/e{n}", "status": status, "duration": duration}


def _feed(scheduler: ManualScheduler, dialer: FakeDialer, clock: FakeClock, max_events: int = 200) -> LiveFeed:
    return LiveFeed(FeedConfig(url="ws://relay.test", max_events=max_events), scheduler, dialer, clock)


def test_failure_rate_is_derived_from_raw_counts(
    scheduler: ManualScheduler,
    dialer: FakeDialer,
    clock: FakeClock,
) -> None:
    feed = _feed(scheduler, dialer, clock)
    feed.apply_batch([_request(200, 100.0), _request(500, 300.0)])
    feed.apply_batch([_request(200, 50.0), _request(200, 50.0), {"type": "error", "message": "x"}])
    summary = feed.summary
    assert summary.total_requests == 4
    assert feed.total_failures == 1
    assert summary.error_rate == 25.0
    assert summary.avg_latency == 50.0


def test_empty_feed_summary(scheduler: ManualScheduler, dialer: FakeDialer, clock: FakeClock) -> None:
    summary = _feed(scheduler, dialer, clock).summary
    assert (summary.total_requests, summary.error_rate, summary.avg_latency) == (0, 0.0, 0.0)


def test_recent_events_are_bounded_and_newest_first(
    scheduler: ManualScheduler,
    dialer: FakeDialer,
    clock: FakeClock,
) -> None:
    feed = _feed(scheduler, dialer, clock, max_events=3)
    feed.apply_batch([_request(200, 1.0, n) for n in range(2)])
    feed.apply_batch([_request(200, 1.0, n) for n in range(2, 4)])
    assert [e.endpoint for e in feed.snapshot()] == ["/e3", "/e2", "/e1"]


def test_feed_consumes_relay_frames(scheduler: ManualScheduler, dialer: FakeDialer, clock: FakeClock) -> None:
    dialer.upcoming.append(
        FakeSocket(
            [
                json.dumps({"type": "hello", "data": "connected"}),
                json.dumps({"type": "metrics", "data": [_request(200, 10.0)]}),
                json.dumps({"type": "metrics", "data": {"not": "a batch"}}),
                json.dumps({"type": "ping"}),
            ]
        )
    )
    feed = _feed(scheduler, dialer, clock)
    feed.start()
    assert feed.state is ConnectionState.CONNECTING
    scheduler.drain()
    assert feed.total_requests == 1
    assert json.loads(dialer.sockets[0].sent[0])["type"] == "pong"

    feed.stop()
    assert feed.state is ConnectionState.DISCONNECTED
    scheduler.advance(5.0)
    assert scheduler.spawned == []
