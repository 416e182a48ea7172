import asyncio
import socket

import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer

from cloudburst.models import Configuration, FixedCount
from cloudburst.termination import TerminationController
from cloudburst.worker import Worker

HITS = web.AppKey("hits", list)
BODY = "test response"


async def ok(request):
    request.app[HITS].append(
        (request.path, request.headers.copy(), await request.read())
    )
    return web.Response(text=BODY)


async def no_content(request):
    request.app[HITS].append((request.path, request.headers.copy(), b""))
    return web.Response(status=204)


async def missing(request):
    request.app[HITS].append((request.path, request.headers.copy(), b""))
    return web.Response(status=404, text="not found")


@pytest_asyncio.fixture
async def http_server():
    app = web.Application()
    app[HITS] = []
    app.router.add_route("*", "/ok", ok)
    app.router.add_route("*", "/ok/{n}", ok)
    app.router.add_get("/empty", no_content)
    app.router.add_get("/missing", missing)
    server = TestServer(app, host="127.0.0.1")
    await server.start_server()
    try:
        yield server
    finally:
        await server.close()


def hits(server: TestServer) -> list:
    return server.app[HITS]


@pytest_asyncio.fixture
async def silent_server():
    """Accepts connections and reads requests, but never answers."""

    async def handle(reader, writer):
        try:
            await reader.read()
        finally:
            writer.close()

    server = await asyncio.start_server(handle, "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]
    try:
        yield f"http://127.0.0.1:{port}/"
    finally:
        server.close()


@pytest_asyncio.fixture
async def truncating_server():
    """Sends a 200 status line and headers, then hangs up mid-body."""

    async def handle(reader, writer):
        await reader.readuntil(b"\r\n\r\n")
        writer.write(
            b"HTTP/1.1 200 OK\r\n"
            b"Content-Type: text/plain\r\n"
            b"Content-Length: 100\r\n"
            b"\r\n"
            b"abc"
        )
        await writer.drain()
        writer.close()

    server = await asyncio.start_server(handle, "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]
    try:
        yield f"http://127.0.0.1:{port}/"
    finally:
        server.close()


@pytest.fixture
def closed_port_url():
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        port = s.getsockname()[1]
    return f"http://127.0.0.1:{port}/"


def make_config(*urls, **overrides) -> Configuration:
    options = dict(
        criterion=FixedCount(1),
        concurrency=1,
        connect_timeout=2.0,
        read_timeout=2.0,
        write_timeout=2.0,
        trust_env=False,
    )
    options.update(overrides)
    return Configuration(urls=tuple(urls), **options)


async def run_worker(config: Configuration, targets=None):
    controller = TerminationController(config.criterion)
    controller.start()
    worker = Worker(0, config, targets if targets is not None else config.urls, controller)
    try:
        return await worker.run()
    finally:
        controller.close()
