"""Tests for observer management and periodic broadcasting."""

import asyncio
import json

import pytest

from portwatch.broadcaster import Broadcaster, encode_snapshot
from portwatch.models import ServiceRecord


SNAPSHOT = (
    ServiceRecord(port=3001, url="http://localhost:3001", title="Web", favicon="http://127.0.0.1:3001/favicon.ico"),
    ServiceRecord(port=8080, url="http://localhost:8080", title="Unknown Service (8080)", favicon=None),
)


class FakeScanner:
    def __init__(self, snapshot=SNAPSHOT):
        self.snapshot = snapshot
        self.scans = 0

    async def run_scan(self):
        self.scans += 1
        return self.snapshot


class FakeObserver:
    def __init__(self, fail=False, is_open=True, on_send=None):
        self.sent = []
        self.fail = fail
        self.is_open = is_open
        self.on_send = on_send

    async def send(self, payload):
        if self.fail:
            raise ConnectionResetError("gone")
        if self.on_send:
            self.on_send()
        self.sent.append(json.loads(payload))


class TestEncodeSnapshot:
    def test_payload_shape(self):
        assert json.loads(encode_snapshot(SNAPSHOT)) == [
            {"port": 3001, "url": "http://localhost:3001", "title": "Web",
             "favicon": "http://127.0.0.1:3001/favicon.ico"},
            {"port": 8080, "url": "http://localhost:8080", "title": "Unknown Service (8080)",
             "favicon": None},
        ]

    def test_empty_snapshot(self):
        assert encode_snapshot(()) == "[]"


class TestBroadcaster:
    @pytest.mark.asyncio
    async def test_no_scan_without_observers(self):
        scanner = FakeScanner()
        b = Broadcaster(scanner)
        assert await b.tick() is False
        assert scanner.scans == 0

    @pytest.mark.asyncio
    async def test_subscribe_pushes_immediately_to_new_observer_only(self):
        scanner = FakeScanner()
        b = Broadcaster(scanner)
        first, second = FakeObserver(), FakeObserver()
        await b.subscribe(first)
        await b.subscribe(second)
        assert scanner.scans == 2
        assert len(first.sent) == 1
        assert len(second.sent) == 1
        assert second.sent[0][1]["port"] == 8080

    @pytest.mark.asyncio
    async def test_tick_scans_once_and_pushes_to_all(self):
        scanner = FakeScanner()
        b = Broadcaster(scanner)
        observers = [FakeObserver() for _ in range(3)]
        for o in observers:
            b._observers.add(o)
        assert await b.tick() is True
        assert scanner.scans == 1
        assert all(len(o.sent) == 1 for o in observers)

    @pytest.mark.asyncio
    async def test_observers_get_independent_copies(self):
        b = Broadcaster(FakeScanner())
        a, c = FakeObserver(), FakeObserver()
        b._observers.update({a, c})
        await b.tick()
        a.sent[0][0]["title"] = "mutated"
        assert c.sent[0][0]["title"] == "Web"

    @pytest.mark.asyncio
    async def test_failed_push_drops_only_that_observer(self):
        b = Broadcaster(FakeScanner())
        good, bad = FakeObserver(), FakeObserver(fail=True)
        b._observers.update({good, bad})
        await b.tick()
        assert len(good.sent) == 1
        assert b.observer_count == 1
        await b.tick()
        assert len(good.sent) == 2

    @pytest.mark.asyncio
    async def test_closed_observer_is_dropped(self):
        b = Broadcaster(FakeScanner())
        closed = FakeObserver(is_open=False)
        b._observers.add(closed)
        await b.tick()
        assert closed.sent == []
        assert b.observer_count == 0

    @pytest.mark.asyncio
    async def test_unsubscribe_during_broadcast(self):
        b = Broadcaster(FakeScanner())
        victim = FakeObserver()
        killer = FakeObserver(on_send=lambda: b.unsubscribe(victim))
        b._observers.update({victim, killer})
        await b.tick()
        assert b.observer_count == 1
        assert len(killer.sent) == 1
        await b.tick()
        assert len(killer.sent) == 2

    @pytest.mark.asyncio
    async def test_unsubscribe_unknown_is_noop(self):
        b = Broadcaster(FakeScanner())
        b.unsubscribe(FakeObserver())
        assert b.observer_count == 0


class TestStuckObservers:
    @pytest.mark.asyncio
    async def test_hung_observer_does_not_block_others(self):
        class HungObserver(FakeObserver):
            async def send(self, payload):
                await asyncio.sleep(3600)

        b = Broadcaster(FakeScanner(), send_timeout=0.1)
        hung, healthy = HungObserver(), FakeObserver()
        b._observers.update({hung, healthy})
        done = await asyncio.wait_for(b.tick(), timeout=0.5)
        assert done is True
        assert len(healthy.sent) == 1
        # the stuck observer is dropped, the healthy one stays
        assert b.observer_count == 1
        assert healthy in b._observers

    @pytest.mark.asyncio
    async def test_slow_observers_are_pushed_concurrently(self):
        class SlowObserver(FakeObserver):
            async def send(self, payload):
                await asyncio.sleep(0.2)
                self.sent.append(json.loads(payload))

        b = Broadcaster(FakeScanner(), send_timeout=1.0)
        observers = [SlowObserver() for _ in range(5)]
        b._observers.update(observers)
        loop = asyncio.get_running_loop()
        start = loop.time()
        await b.tick()
        assert loop.time() - start < 0.6
        assert all(len(o.sent) == 1 for o in observers)


class TestPeriodicLoop:
    @pytest.mark.asyncio
    async def test_idle_loop_never_scans(self):
        scanner = FakeScanner()
        b = Broadcaster(scanner, interval=0.02)
        b.start()
        assert b.running
        await asyncio.sleep(0.15)
        await b.stop()
        assert scanner.scans == 0
        assert not b.running

    @pytest.mark.asyncio
    async def test_one_scan_per_tick_with_observers(self):
        scanner = FakeScanner()
        b = Broadcaster(scanner, interval=0.1)
        observer = FakeObserver()
        b._observers.add(observer)
        b.start()
        await asyncio.sleep(0.35)
        await b.stop()
        assert 2 <= scanner.scans <= 4
        assert len(observer.sent) == scanner.scans

    @pytest.mark.asyncio
    async def test_start_is_idempotent(self):
        b = Broadcaster(FakeScanner(), interval=10)
        b.start()
        task = b._task
        b.start()
        assert b._task is task
        await b.stop()

    @pytest.mark.asyncio
    async def test_scan_error_does_not_kill_loop(self):
        class Flaky(FakeScanner):
            async def run_scan(self):
                self.scans += 1
                if self.scans == 1:
                    raise RuntimeError("boom")
                return self.snapshot

        scanner = Flaky()
        b = Broadcaster(scanner, interval=0.05)
        observer = FakeObserver()
        b._observers.add(observer)
        b.start()
        await asyncio.sleep(0.18)
        await b.stop()
        assert scanner.scans >= 2
        assert len(observer.sent) >= 1
