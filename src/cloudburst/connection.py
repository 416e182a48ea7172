"""
Byte accounting underneath aiohttp.

Every connection a worker opens is created by an ``InstrumentedConnector``.
Its protocol wraps the raw asyncio transport in an ``InstrumentedTransport``
so that every byte aiohttp writes, and every byte the event loop delivers,
is added to the worker's own ``Result``. Counters are per worker, so nothing
here is shared between workers.

For TLS connections the counted bytes are the application bytes above the
SSL layer.
"""

import asyncio
import functools
import logging

import aiohttp
from aiohttp.client_proto import ResponseHandler

from .models import Result

logger = logging.getLogger(__name__)


class InstrumentedTransport(asyncio.Transport):
    """
    Decorator around any asyncio transport.

    Successful writes are counted into ``result.bytes_written`` and renew the
    write deadline. When the deadline expires with data still buffered the
    underlying transport is aborted.
    """

    def __init__(
        self,
        transport: asyncio.Transport,
        result: Result,
        write_timeout: float | None = None,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        super().__init__()
        self._transport = transport
        self._result = result
        self._write_timeout = write_timeout
        self._loop = loop or asyncio.get_running_loop()
        self._write_timer: asyncio.TimerHandle | None = None

    @property
    def wrapped(self) -> asyncio.Transport:
        return self._transport

    # ────────────────────────────────
    # Counted Operations
    # ────────────────────────────────

    def write(self, data) -> None:
        self._transport.write(data)
        self._on_written(len(data))

    def writelines(self, list_of_data) -> None:
        chunks = list(list_of_data)
        self._transport.writelines(chunks)
        self._on_written(sum(len(c) for c in chunks))

    def _on_written(self, n: int) -> None:
        if not n:
            return
        self._result.bytes_written += n
        self._renew_write_deadline()

    def _renew_write_deadline(self) -> None:
        if self._write_timeout is None:
            return
        if self._write_timer is not None:
            self._write_timer.cancel()
        self._write_timer = self._loop.call_later(
            self._write_timeout, self._write_deadline_expired
        )

    def _write_deadline_expired(self) -> None:
        self._write_timer = None
        if self._transport.is_closing():
            return
        pending = self._transport.get_write_buffer_size()
        if pending:
            logger.debug(
                f"Write stalled for {self._write_timeout}s with {pending} bytes pending, aborting"
            )
            self._transport.abort()

    def release(self) -> None:
        if self._write_timer is not None:
            self._write_timer.cancel()
            self._write_timer = None

    # ────────────────────────────────
    # Forwarded Operations
    # ────────────────────────────────

    def get_extra_info(self, name, default=None):
        return self._transport.get_extra_info(name, default)

    def is_closing(self) -> bool:
        return self._transport.is_closing()

    def close(self) -> None:
        self.release()
        self._transport.close()

    def abort(self) -> None:
        self.release()
        self._transport.abort()

    def set_protocol(self, protocol) -> None:
        self._transport.set_protocol(protocol)

    def get_protocol(self):
        return self._transport.get_protocol()

    def is_reading(self) -> bool:
        return self._transport.is_reading()

    def pause_reading(self) -> None:
        self._transport.pause_reading()

    def resume_reading(self) -> None:
        self._transport.resume_reading()

    def set_write_buffer_limits(self, high=None, low=None) -> None:
        self._transport.set_write_buffer_limits(high=high, low=low)

    def get_write_buffer_size(self) -> int:
        return self._transport.get_write_buffer_size()

    def get_write_buffer_limits(self):
        return self._transport.get_write_buffer_limits()

    def write_eof(self) -> None:
        self._transport.write_eof()

    def can_write_eof(self) -> bool:
        return self._transport.can_write_eof()


class InstrumentedResponseHandler(ResponseHandler):
    """aiohttp protocol that counts received bytes and wraps its transport."""

    def __init__(
        self,
        loop: asyncio.AbstractEventLoop,
        result: Result,
        write_timeout: float | None = None,
    ) -> None:
        super().__init__(loop)
        self._result = result
        self._write_timeout = write_timeout

    def connection_made(self, transport) -> None:
        super().connection_made(
            InstrumentedTransport(
                transport, self._result, self._write_timeout, loop=self._loop
            )
        )

    def data_received(self, data: bytes) -> None:
        self._result.bytes_read += len(data)
        super().data_received(data)

    def connection_lost(self, exc) -> None:
        transport = self.transport
        if isinstance(transport, InstrumentedTransport):
            transport.release()
        super().connection_lost(exc)


class InstrumentedConnector(aiohttp.TCPConnector):
    """TCP connector whose connections account their traffic to one Result."""

    def __init__(
        self,
        result: Result,
        write_timeout: float | None = None,
        **kwargs,
    ) -> None:
        super().__init__(**kwargs)
        self.result = result
        # Private BaseConnector attribute holding the protocol factory (aiohttp 3.x)
        self._factory = functools.partial(
            InstrumentedResponseHandler,
            loop=self._loop,
            result=result,
            write_timeout=write_timeout,
        )
        logger.debug(f"Created instrumented connector (write_timeout={write_timeout})")
