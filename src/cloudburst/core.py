import asyncio
import logging
from collections.abc import Sequence

from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TextColumn,
    TimeElapsedColumn,
)

from .metrics import aggregate
from .models import Configuration, FixedCount, MetricsCallback, Outcome, Stats
from .templating import build_target_set
from .termination import TerminationController
from .utils import now
from .worker import Worker

logger = logging.getLogger(__name__)


class LoadDispatcher:
    """
    Top-level driver for one load run.

    Spawns ``config.concurrency`` workers over a shared, read-only target set,
    waits until they all finish or the stop signal fires, and aggregates their
    results. ``report()`` may be called at any time; it never stops workers.
    """

    def __init__(
        self,
        config: Configuration,
        targets: Sequence[str] | None = None,
        metrics_callback: MetricsCallback | None = None,
        use_progress_bar: bool = True,
        handle_signals: bool = False,
    ) -> None:
        self.config = config
        if targets is None:
            targets = build_target_set(config.urls, config.max_expand, config.seed)
        self.targets = tuple(targets)
        self.metrics_callback = metrics_callback
        self.use_progress_bar = use_progress_bar
        self.handle_signals = handle_signals

        self.controller = TerminationController(config.criterion)
        self.workers = [
            Worker(i, config, self.targets, self.controller, on_outcome=self._on_outcome)
            for i in range(config.concurrency)
        ]

        self._t0: float | None = None
        self._t1: float | None = None
        self._progress: Progress | None = None
        self._task_id: TaskID | None = None

        logger.info(
            f"Initialized dispatcher with {len(self.targets)} URLs, "
            f"clients={config.concurrency}, criterion={config.criterion}"
        )

    # ────────────────────────────────
    # Reporting
    # ────────────────────────────────

    def elapsed(self) -> float:
        if self._t0 is None:
            return 0.0
        end = self._t1 if self._t1 is not None else now()
        return end - self._t0

    def report(self) -> Stats:
        correction = (
            self.config.legacy_deadline_correction and self.controller.deadline_reached
        )
        return aggregate(
            [w.result for w in self.workers],
            self.elapsed(),
            metrics_callback=self.metrics_callback,
            deadline_correction=correction,
        )

    # ────────────────────────────────
    # Progress Display
    # ────────────────────────────────

    def _start_progress(self) -> None:
        if not self.use_progress_bar:
            return
        total = None
        if isinstance(self.config.criterion, FixedCount):
            total = self.config.criterion.requests * self.config.concurrency
        self._progress = Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            MofNCompleteColumn(),
            TimeElapsedColumn(),
        )
        self._progress.start()
        self._task_id = self._progress.add_task("[cyan]Bursting...", total=total)

    def _stop_progress(self) -> None:
        if self._progress:
            self._progress.stop()
            self._progress = None

    def _on_outcome(self, worker_id: int, outcome: Outcome) -> None:
        if self._progress and self._task_id is not None and outcome is not Outcome.CANCELLED:
            self._progress.advance(self._task_id)

    # ────────────────────────────────
    # Main Runner
    # ────────────────────────────────

    async def run(self) -> Stats:
        logger.info(f"Dispatching {len(self.workers)} clients")

        self._start_progress()
        self._t0 = now()
        self.controller.start()
        if self.handle_signals:
            self.controller.install_signal_handlers()

        tasks = [
            asyncio.create_task(w.run(), name=f"worker-{w.worker_id}")
            for w in self.workers
        ]
        all_done = asyncio.create_task(asyncio.wait(tasks))
        stopped = asyncio.create_task(self.controller.wait())

        try:
            await asyncio.wait({all_done, stopped}, return_when=asyncio.FIRST_COMPLETED)
            self._t1 = now()
            if not all_done.done():
                logger.info(f"Stopping workers ({self.controller.stop_signal.reason})")
                await self._shutdown(tasks)
        finally:
            stopped.cancel()
            for t in tasks:
                if not t.done():
                    t.cancel()
            await asyncio.gather(all_done, stopped, *tasks, return_exceptions=True)
            self.controller.close()
            self._stop_progress()

        if self._t1 is None:
            self._t1 = now()
        for t in tasks:
            if not t.cancelled() and t.exception() is not None:
                raise t.exception()

        stats = self.report()
        logger.info(
            f"Run completed: {stats.requests} requests, {stats.success} succeeded in {stats.elapsed}s"
        )
        return stats

    async def _shutdown(self, tasks: list[asyncio.Task]) -> None:
        pending = {t for t in tasks if not t.done()}
        grace = self.config.shutdown_grace
        if pending and grace > 0:
            logger.debug(f"Waiting up to {grace}s for {len(pending)} in-flight workers")
            _, pending = await asyncio.wait(pending, timeout=grace)
        for t in pending:
            t.cancel()
        if pending:
            logger.debug(f"Cancelled {len(pending)} workers")
        await asyncio.gather(*tasks, return_exceptions=True)
