"""Tests for the cancellable ticker."""

import asyncio

import pytest

from ibc_relayer.utils.ticker import do_now, run_until_stopped


class TestRunUntilStopped:
    """Tests for run_until_stopped."""

    @pytest.mark.asyncio
    async def test_returns_result(self):
        async def work():
            return 7

        assert await run_until_stopped(asyncio.Event(), work()) == (True, 7)

    @pytest.mark.asyncio
    async def test_already_stopped(self):
        stop_event = asyncio.Event()
        stop_event.set()
        ran = []

        async def work():
            ran.append(True)

        assert await run_until_stopped(stop_event, work()) == (False, None)
        assert ran == []

    @pytest.mark.asyncio
    async def test_stop_cancels_work(self):
        stop_event = asyncio.Event()
        cancelled = asyncio.Event()

        async def work():
            try:
                await asyncio.sleep(60)
            except asyncio.CancelledError:
                cancelled.set()
                raise

        asyncio.get_running_loop().call_later(0.01, stop_event.set)
        assert await run_until_stopped(stop_event, work()) == (False, None)
        assert cancelled.is_set()

    @pytest.mark.asyncio
    async def test_propagates_error(self):
        async def work():
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError, match="boom"):
            await run_until_stopped(asyncio.Event(), work())

    @pytest.mark.asyncio
    async def test_outer_cancel_cancels_work(self):
        started = asyncio.Event()
        cancelled = asyncio.Event()

        async def work():
            started.set()
            try:
                await asyncio.sleep(60)
            except asyncio.CancelledError:
                cancelled.set()
                raise

        task = asyncio.create_task(run_until_stopped(asyncio.Event(), work()))
        await started.wait()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        await asyncio.sleep(0)
        assert cancelled.is_set()


class TestDoNow:
    """Tests for do_now."""

    @pytest.mark.asyncio
    async def test_first_call_is_immediate(self):
        stop_event = asyncio.Event()
        calls = []

        async def tick():
            calls.append(True)
            stop_event.set()

        await asyncio.wait_for(do_now(stop_event, 60, tick), timeout=1)
        assert calls == [True]

    @pytest.mark.asyncio
    async def test_repeats_until_stopped(self):
        stop_event = asyncio.Event()
        calls = []

        async def tick():
            calls.append(True)
            if len(calls) == 3:
                stop_event.set()

        await asyncio.wait_for(do_now(stop_event, 0.01, tick), timeout=1)
        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_stop_during_wait(self):
        stop_event = asyncio.Event()
        calls = []

        async def tick():
            calls.append(True)

        asyncio.get_running_loop().call_later(0.05, stop_event.set)
        await asyncio.wait_for(do_now(stop_event, 60, tick), timeout=1)
        assert calls == [True]

    @pytest.mark.asyncio
    async def test_error_ends_loop(self):
        calls = []

        async def tick():
            calls.append(True)
            raise ValueError("tick failed")

        with pytest.raises(ValueError, match="tick failed"):
            await do_now(asyncio.Event(), 0.01, tick)
        assert len(calls) == 1
