"""Tests for the event listener."""

import asyncio

import pytest

from surety_oracle.listener import EventListener
from tests.conftest import AIRLINE, FakeLedger, wait_until


def recorder():
    seen = []

    async def handler(event):
        seen.append(event)

    return seen, handler


class TestPollOnce:
    @pytest.mark.asyncio
    async def test_replays_history_from_genesis(self):
        ledger = FakeLedger()
        ledger.emit("OracleRequest", index=1, airline=AIRLINE, flightNumber="UA1", timestamp=1)
        ledger.emit("OracleReport", airline=AIRLINE, flightNumber="UA1", timestamp=1, status=10)
        ledger.emit("OracleRequest", index=2, airline=AIRLINE, flightNumber="UA2", timestamp=2)
        requests, on_request = recorder()
        reports, on_report = recorder()
        listener = EventListener(ledger, {"OracleRequest": on_request, "OracleReport": on_report})

        assert await listener.poll_once() == 3

        assert [e.args["flightNumber"] for e in requests] == ["UA1", "UA2"]
        assert len(reports) == 1
        assert listener.cursors == {"OracleRequest": 4, "OracleReport": 4}

    @pytest.mark.asyncio
    async def test_only_new_blocks_are_fetched_next_time(self):
        ledger = FakeLedger()
        ledger.emit("OracleRequest", index=1, airline=AIRLINE, flightNumber="UA1", timestamp=1)
        seen, handler = recorder()
        listener = EventListener(ledger, {"OracleRequest": handler})

        await listener.poll_once()
        ledger.emit("OracleRequest", index=2, airline=AIRLINE, flightNumber="UA2", timestamp=2)
        await listener.poll_once()

        assert [e.args["index"] for e in seen] == [1, 2]
        assert ledger.log_queries[-1] == ("OracleRequest", 2, 2)

    @pytest.mark.asyncio
    async def test_large_ranges_are_split(self):
        ledger = FakeLedger()
        ledger.head = 25
        listener = EventListener(ledger, {"OracleRequest": recorder()[1]}, max_block_range=10)

        await listener.poll_once()

        assert ledger.log_queries == [
            ("OracleRequest", 0, 9),
            ("OracleRequest", 10, 19),
            ("OracleRequest", 20, 25),
        ]

    @pytest.mark.asyncio
    async def test_handler_failure_drops_event_and_moves_on(self):
        ledger = FakeLedger()
        ledger.emit("OracleRequest", index=1, airline=AIRLINE, flightNumber="UA1", timestamp=1)
        ledger.emit("OracleRequest", index=2, airline=AIRLINE, flightNumber="UA2", timestamp=2)
        seen = []

        async def handler(event):
            if event.args["index"] == 1:
                raise ValueError("bad payload")
            seen.append(event)

        listener = EventListener(ledger, {"OracleRequest": handler})
        await listener.poll_once()

        assert [e.args["index"] for e in seen] == [2]
        assert listener.cursors["OracleRequest"] == 3


class TestRun:
    @pytest.mark.asyncio
    async def test_delivers_live_events_until_stopped(self):
        ledger = FakeLedger()
        seen, handler = recorder()
        listener = EventListener(ledger, {"OracleRequest": handler}, poll_interval=0.01)
        task = asyncio.create_task(listener.run())

        await wait_until(lambda: listener.running)
        ledger.emit("OracleRequest", index=3, airline=AIRLINE, flightNumber="UA3", timestamp=3)
        await wait_until(lambda: len(seen) == 1)

        listener.stop()
        await asyncio.wait_for(task, timeout=1)
        assert not listener.running

    @pytest.mark.asyncio
    async def test_resubscribes_after_connection_errors(self):
        ledger = FakeLedger()
        ledger.fail_polls = 3
        ledger.emit("OracleRequest", index=3, airline=AIRLINE, flightNumber="UA3", timestamp=3)
        seen, handler = recorder()
        listener = EventListener(
            ledger,
            {"OracleRequest": handler},
            poll_interval=0.01,
            backoff_initial=0.01,
            backoff_max=0.02,
        )
        task = asyncio.create_task(listener.run())

        await wait_until(lambda: len(seen) == 1)
        listener.stop()
        await asyncio.wait_for(task, timeout=1)

        assert listener.reconnects == 3
        assert "connection reset" in listener.status()["last_error"]

    @pytest.mark.asyncio
    async def test_stop_interrupts_backoff(self):
        ledger = FakeLedger()
        ledger.fail_polls = 100
        listener = EventListener(ledger, {"OracleRequest": recorder()[1]}, backoff_initial=60)
        task = asyncio.create_task(listener.run())

        await wait_until(lambda: listener.reconnects == 1)
        listener.stop()
        await asyncio.wait_for(task, timeout=1)


class TestUnexpectedErrors:
    @pytest.mark.asyncio
    async def test_decoding_error_does_not_kill_listener(self):
        ledger = FakeLedger()
        original = ledger.get_events
        calls = {"n": 0}

        async def flaky(name, from_block, to_block):
            calls["n"] += 1
            if calls["n"] == 1:
                raise KeyError("args")
            return await original(name, from_block, to_block)

        ledger.get_events = flaky
        seen, handler = recorder()
        listener = EventListener(
            ledger,
            {"OracleRequest": handler},
            poll_interval=0.01,
            backoff_initial=0.01,
        )
        task = asyncio.create_task(listener.run())

        await wait_until(lambda: listener.reconnects == 1)
        ledger.emit("OracleRequest", index=3, airline=AIRLINE, flightNumber="UA3", timestamp=3)
        await wait_until(lambda: len(seen) == 1)

        assert not task.done()
        assert "args" in listener.status()["last_error"]
        listener.stop()
        await asyncio.wait_for(task, timeout=1)
