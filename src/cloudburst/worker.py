import asyncio
import logging
from collections.abc import Sequence

import aiohttp

from .connection import InstrumentedConnector
from .models import Configuration, Outcome, OutcomeCallback, Result
from .termination import TerminationController

logger = logging.getLogger(__name__)

# Errors raised by aiohttp and the event loop for a failed exchange
TRANSPORT_ERRORS = (aiohttp.ClientError, asyncio.TimeoutError, OSError)


def classify_status(status: int) -> Outcome:
    if 200 <= status <= 299:
        return Outcome.SUCCESS
    return Outcome.BAD_STATUS


def build_request_headers(config: Configuration) -> dict[str, str]:
    headers = {"Connection": "keep-alive" if config.keep_alive else "close"}
    if config.body is not None and config.content_type:
        headers["Content-Type"] = config.content_type
    headers.update(config.headers)
    return headers


class Worker:
    """
    One virtual client.

    Cycles over the target set with its own ``aiohttp.ClientSession`` until
    the termination controller says stop, recording exactly one outcome per
    request into ``self.result``. Nothing else is mutated.
    """

    DRAIN_CHUNK_SIZE = 64 * 1024

    def __init__(
        self,
        worker_id: int,
        config: Configuration,
        targets: Sequence[str],
        controller: TerminationController,
        on_outcome: OutcomeCallback | None = None,
    ) -> None:
        self.worker_id = worker_id
        self.config = config
        self.targets = tuple(targets)
        self.controller = controller
        self.on_outcome = on_outcome
        self.result = Result()
        self._headers = build_request_headers(config)

    def _should_stop(self) -> bool:
        return self.controller.should_stop(self.result)

    def _create_session(self) -> aiohttp.ClientSession:
        connector = InstrumentedConnector(
            self.result,
            write_timeout=self.config.write_timeout,
            force_close=not self.config.keep_alive,
            ssl=self.config.verify_tls,
        )
        timeout = aiohttp.ClientTimeout(
            total=None,
            sock_connect=self.config.connect_timeout,
            sock_read=self.config.read_timeout,
        )
        return aiohttp.ClientSession(
            connector=connector,
            timeout=timeout,
            auto_decompress=False,
            trust_env=self.config.trust_env,
        )

    # ────────────────────────────────
    # Main Loop
    # ────────────────────────────────

    async def run(self) -> Result:
        if not self.targets:
            logger.warning(f"[W{self.worker_id}] Empty target set, nothing to do")
            return self.result

        async with self._create_session() as session:
            while not self._should_stop():
                for url in self.targets:
                    if self._should_stop():
                        break
                    await self.perform_request(session, url)

        logger.debug(
            f"[W{self.worker_id}] Stopped after {self.result.requests} requests"
        )
        return self.result

    async def perform_request(self, session: aiohttp.ClientSession, url: str) -> Outcome:
        try:
            outcome = await self._fetch_once(session, url)
        except asyncio.CancelledError:
            self._record(Outcome.CANCELLED)
            raise
        self._record(outcome)
        return outcome

    def _record(self, outcome: Outcome) -> None:
        self.result.record(outcome)
        if self.on_outcome is not None:
            self.on_outcome(self.worker_id, outcome)

    # ────────────────────────────────
    # HTTP Exchange
    # ────────────────────────────────

    async def _fetch_once(self, session: aiohttp.ClientSession, url: str) -> Outcome:
        try:
            async with session.request(
                self.config.method,
                url,
                data=self.config.body,
                headers=self._headers,
            ) as resp:
                status = resp.status
                try:
                    await self._drain(resp)
                except TRANSPORT_ERRORS as e:
                    logger.debug(
                        f"[W{self.worker_id}] Body read failed for {url} (status={status}): {e!r}"
                    )
                    return Outcome.IO_FAILURE
        except TRANSPORT_ERRORS as e:
            logger.debug(f"[W{self.worker_id}] Request to {url} failed: {e!r}")
            return Outcome.NETWORK_FAILURE

        return classify_status(status)

    async def _drain(self, resp: aiohttp.ClientResponse) -> None:
        # Read to EOF without keeping the body so the connection can be reused
        async for _ in resp.content.iter_chunked(self.DRAIN_CHUNK_SIZE):
            pass
