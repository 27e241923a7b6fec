import asyncio

import pytest

from warden.util.timer import Timer, unix_now


def test_unix_now_is_integer_seconds():
    now = unix_now()
    assert isinstance(now, int)
    assert now > 1_600_000_000


@pytest.mark.asyncio
async def test_timer_fires_after_delay():
    fired = asyncio.Event()

    async def callback():
        fired.set()

    timer = Timer(callback, 0.01, name="test")
    timer.start()
    assert timer.active
    await asyncio.wait_for(fired.wait(), timeout=1)
    await asyncio.sleep(0)
    assert not timer.active


@pytest.mark.asyncio
async def test_restart_replaces_pending_run():
    calls = []

    async def callback():
        calls.append(unix_now())

    timer = Timer(callback, 0.05, name="test")
    timer.start()
    await asyncio.sleep(0.02)
    timer.start()
    await asyncio.sleep(0.02)
    timer.start()
    await asyncio.sleep(0.15)

    assert len(calls) == 1


@pytest.mark.asyncio
async def test_cancel_prevents_callback():
    calls = []

    async def callback():
        calls.append(1)

    timer = Timer(callback, 0.02, name="test")
    timer.start()
    timer.cancel()
    await asyncio.sleep(0.05)

    assert calls == []
    assert not timer.active


@pytest.mark.asyncio
async def test_callback_can_rearm_its_own_timer():
    calls = []
    done = asyncio.Event()

    async def callback():
        calls.append(1)
        if len(calls) < 3:
            timer.start()
        else:
            done.set()

    timer = Timer(callback, 0.01, name="test")
    timer.start()
    await asyncio.wait_for(done.wait(), timeout=1)

    assert len(calls) == 3


@pytest.mark.asyncio
async def test_callback_exception_is_logged_not_raised():
    done = asyncio.Event()

    async def callback():
        done.set()
        raise ValueError("boom")

    timer = Timer(callback, 0.01, name="test")
    timer.start()
    await asyncio.wait_for(done.wait(), timeout=1)
    await asyncio.sleep(0.01)

    # The timer can still be used afterwards
    done.clear()
    timer.start(0.01)
    await asyncio.wait_for(done.wait(), timeout=1)
    assert timer.delay == 0.01
