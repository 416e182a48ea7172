import asyncio
import logging
import signal

from .models import Duration, FixedCount, Result, StopCriterion

logger = logging.getLogger(__name__)

REASON_DEADLINE = "deadline"
REASON_INTERRUPT = "interrupt"


class StopSignal:
    """One-shot cooperative stop flag; the first ``fire`` wins."""

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason: str | None = None

    def fire(self, reason: str) -> bool:
        if self._event.is_set():
            logger.debug(f"Stop already requested ({self.reason}), ignoring {reason}")
            return False
        self.reason = reason
        self._event.set()
        logger.info(f"Stop requested: {reason}")
        return True

    @property
    def is_set(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> str | None:
        await self._event.wait()
        return self.reason


class TerminationController:
    """
    Decides when workers stop.

    ``FixedCount`` is evaluated per worker against its own Result. A
    ``Duration`` arms a single timer at ``start()``. Both the timer and an
    operator interrupt go through the same ``StopSignal``, and an interrupt
    also ends a fixed-count run.
    """

    SIGNALS = (signal.SIGINT, signal.SIGTERM)

    def __init__(self, criterion: StopCriterion, stop_signal: StopSignal | None = None):
        self.criterion = criterion
        self.stop_signal = stop_signal or StopSignal()
        self._timer: asyncio.TimerHandle | None = None
        self._started = False
        self._loop: asyncio.AbstractEventLoop | None = None
        self._installed: list[signal.Signals] = []
        self._previous_handlers: dict[signal.Signals, object] = {}

    def start(self) -> None:
        if self._started:
            return
        self._started = True
        self._loop = asyncio.get_running_loop()
        if isinstance(self.criterion, Duration):
            self._timer = self._loop.call_later(
                self.criterion.seconds, self.stop_signal.fire, REASON_DEADLINE
            )
            logger.debug(f"Deadline armed for {self.criterion.seconds}s")

    def interrupt(self) -> bool:
        return self.stop_signal.fire(REASON_INTERRUPT)

    def should_stop(self, result: Result) -> bool:
        if self.stop_signal.is_set:
            return True
        if isinstance(self.criterion, FixedCount):
            return result.requests >= self.criterion.requests
        return False

    @property
    def deadline_reached(self) -> bool:
        return self.stop_signal.reason == REASON_DEADLINE

    async def wait(self) -> str | None:
        return await self.stop_signal.wait()

    # ────────────────────────────────
    # Signal Handling
    # ────────────────────────────────

    def install_signal_handlers(self) -> None:
        loop = self._loop = self._loop or asyncio.get_running_loop()
        for sig in self.SIGNALS:
            try:
                loop.add_signal_handler(sig, self._on_signal, sig)
            except NotImplementedError:
                # Event loops without add_signal_handler (Windows)
                self._previous_handlers[sig] = signal.signal(
                    sig,
                    lambda signum, frame: loop.call_soon_threadsafe(
                        self._on_signal, signal.Signals(signum)
                    ),
                )
            self._installed.append(sig)

    def _on_signal(self, sig: signal.Signals) -> None:
        print(f"\n[!] Received {sig.name}. Stopping...")
        self.interrupt()

    def close(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        loop = self._loop
        for sig in self._installed:
            if sig in self._previous_handlers:
                signal.signal(sig, self._previous_handlers.pop(sig))
            elif loop is not None:
                loop.remove_signal_handler(sig)
        self._installed.clear()
