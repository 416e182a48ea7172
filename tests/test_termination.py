import asyncio
import os
import signal
import sys

import pytest

from cloudburst.models import Duration, FixedCount, Result
from cloudburst.termination import (
    REASON_DEADLINE,
    REASON_INTERRUPT,
    StopSignal,
    TerminationController,
)


async def test_stop_signal_first_fire_wins():
    stop = StopSignal()
    assert stop.fire(REASON_INTERRUPT) is True
    assert stop.fire(REASON_DEADLINE) is False
    assert stop.is_set
    assert await stop.wait() == REASON_INTERRUPT


async def test_duration_timer_fires_once():
    controller = TerminationController(Duration(0.05))
    controller.start()
    controller.start()
    try:
        reason = await asyncio.wait_for(controller.wait(), timeout=2)
    finally:
        controller.close()
    assert reason == REASON_DEADLINE
    assert controller.deadline_reached
    assert controller.should_stop(Result())


async def test_interrupt_beats_deadline():
    controller = TerminationController(Duration(0.05))
    controller.start()
    assert controller.interrupt() is True
    await asyncio.sleep(0.1)
    controller.close()

    assert controller.stop_signal.reason == REASON_INTERRUPT
    assert not controller.deadline_reached
    assert controller.interrupt() is False


async def test_close_cancels_pending_deadline():
    controller = TerminationController(Duration(0.05))
    controller.start()
    controller.close()
    await asyncio.sleep(0.1)
    assert not controller.stop_signal.is_set


def test_fixed_count_is_per_worker():
    controller = TerminationController(FixedCount(2))
    busy, idle = Result(requests=2), Result(requests=1)
    assert controller.should_stop(busy)
    assert not controller.should_stop(idle)


async def test_interrupt_stops_fixed_count_run():
    controller = TerminationController(FixedCount(1000))
    controller.start()
    controller.interrupt()
    assert controller.should_stop(Result())
    controller.close()


@pytest.mark.skipif(sys.platform == "win32", reason="POSIX signals")
async def test_sigterm_fires_stop_signal(capsys):
    controller = TerminationController(Duration(30))
    controller.start()
    controller.install_signal_handlers()
    try:
        os.kill(os.getpid(), signal.SIGTERM)
        reason = await asyncio.wait_for(controller.wait(), timeout=2)
    finally:
        controller.close()
    assert reason == REASON_INTERRUPT
    assert "SIGTERM" in capsys.readouterr().out
