"""
Unit Tests for SingleFlight
"""

import asyncio

import pytest

from menu_tts.core.concurrency.single_flight import SingleFlight


@pytest.mark.unit
class TestSingleFlight:
    async def test_concurrent_callers_share_one_call(self):
        flight = SingleFlight()
        calls = 0

        async def work():
            nonlocal calls
            calls += 1
            await asyncio.sleep(0.01)
            return "value"

        results = await asyncio.gather(*(flight.run("k", work) for _ in range(10)))

        assert results == ["value"] * 10
        assert calls == 1

    async def test_different_keys_run_separately(self):
        flight = SingleFlight()
        seen = []

        async def work(name):
            seen.append(name)
            await asyncio.sleep(0)
            return name

        a, b = await asyncio.gather(flight.run("a", lambda: work("a")), flight.run("b", lambda: work("b")))

        assert (a, b) == ("a", "b")
        assert sorted(seen) == ["a", "b"]

    async def test_failure_reaches_every_waiter_and_is_not_reused(self):
        flight = SingleFlight()
        attempts = 0

        async def failing():
            nonlocal attempts
            attempts += 1
            await asyncio.sleep(0.01)
            raise RuntimeError("boom")

        results = await asyncio.gather(
            *(flight.run("k", failing) for _ in range(3)), return_exceptions=True
        )

        assert all(isinstance(r, RuntimeError) for r in results)
        assert attempts == 1
        assert not flight.in_flight("k")

        with pytest.raises(RuntimeError):
            await flight.run("k", failing)
        assert attempts == 2

    async def test_cancelled_waiter_does_not_cancel_shared_work(self):
        flight = SingleFlight()
        release = asyncio.Event()

        async def work():
            await release.wait()
            return 42

        first = asyncio.ensure_future(flight.run("k", work))
        second = asyncio.ensure_future(flight.run("k", work))
        await asyncio.sleep(0)

        first.cancel()
        release.set()

        assert await second == 42

    async def test_len_counts_in_flight_keys(self):
        flight = SingleFlight()
        release = asyncio.Event()

        async def work():
            await release.wait()

        task = asyncio.ensure_future(flight.run("k", work))
        await asyncio.sleep(0)

        assert len(flight) == 1
        assert flight.in_flight("k")

        release.set()
        await task
        assert len(flight) == 0
