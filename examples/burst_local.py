"""
Quick sanity test: a short duration burst against a set of URLs.
Run: uv run examples/burst_local.py
"""
import asyncio
import os

from cloudburst import Configuration, Duration, LoadDispatcher, render_report

URLS = [
    "https://example.com/",
    "https://httpbin.org/anything/{S5,1-100}",
]


async def main():
    config = Configuration(
        urls=tuple(URLS),
        criterion=Duration(float(os.getenv("BURST_DURATION_S", "5"))),
        concurrency=8,
        keep_alive=True,
        read_timeout=float(os.getenv("HTTP_REQUEST_TIMEOUT_S", "10")),
        headers={"User-Agent": "cloudburst-example"},
    )
    stats = await LoadDispatcher(config).run()
    print()
    print(render_report(stats))

if __name__ == "__main__":
    asyncio.run(main())
