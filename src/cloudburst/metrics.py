import logging
from collections.abc import Iterable
from dataclasses import fields, replace

from .models import MetricsCallback, Result, Stats

logger = logging.getLogger(__name__)

_COUNTERS = tuple(f.name for f in fields(Result))


def merge_results(results: Iterable[Result]) -> Result:
    total = Result()
    for result in results:
        for name in _COUNTERS:
            setattr(total, name, getattr(total, name) + getattr(result, name))
    return total


def apply_deadline_correction(total: Result) -> Result:
    """
    Drop a single network failure caused by the deadline cutting off a request.

    Only a run with exactly one network failure overall and no cancelled
    request is corrected; the request total and the network failure count
    both lose one. A cancelled request already accounts for the cut-off, so
    the remaining failure is a genuine one and is kept.
    """
    if total.network_failures != 1 or total.cancelled:
        return total
    logger.debug("Discounting one network failure attributed to the deadline")
    return replace(
        total,
        requests=total.requests - 1,
        network_failures=total.network_failures - 1,
    )


def aggregate(
    results: Iterable[Result],
    elapsed_seconds: float,
    metrics_callback: MetricsCallback | None = None,
    deadline_correction: bool = False,
) -> Stats:
    total = merge_results(results)
    if deadline_correction:
        total = apply_deadline_correction(total)

    elapsed = max(1, int(elapsed_seconds))
    logger.debug(
        f"Aggregating stats: requests={total.requests}, success={total.success}, elapsed={elapsed}s"
    )

    stats = Stats(
        requests=total.requests,
        success=total.success,
        bad_failures=total.bad_failures,
        network_failures=total.network_failures,
        io_failures=total.io_failures,
        cancelled=total.cancelled,
        bytes_read=total.bytes_read,
        bytes_written=total.bytes_written,
        elapsed=elapsed,
        success_rate=total.success // elapsed,
        read_rate=total.bytes_read // elapsed,
        write_rate=total.bytes_written // elapsed,
    )

    if metrics_callback:
        metrics_callback(stats.to_dict())

    if not stats.requests:
        logger.info("No requests recorded.")
    return stats
