#!/usr/bin/env python3
# cli.py: command-line front end for Cloudburst

import argparse
import asyncio
import logging
import sys

from cloudburst import __version__
from cloudburst.core import LoadDispatcher
from cloudburst.exceptions import CloudburstError, ConfigurationError
from cloudburst.logging_config import setup_logging
from cloudburst.models import DEFAULT_MAX_EXPAND, Configuration, Duration, FixedCount
from cloudburst.rendering import render_report
from cloudburst.utils import parse_headers, read_body, read_lines

DEFAULT_TIMEOUT_MS = 10_000

URL_HELP = f"""URL to load, repeatable. Supports one template such as {{S10,1-100}} or {{R14,2-9}}:
S or s yields a sequence starting at 1 in [1,100], 10 values;
R or r yields 14 random numbers in [2,9].
At most {DEFAULT_MAX_EXPAND} URLs are generated from one template by default.
For example http://example.com/?{{s3,1-10}} produces
http://example.com/?1 http://example.com/?2 http://example.com/?3"""


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="cloudburst",
        description="⛈️ Cloudburst: concurrent HTTP(S) load generator",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    # Load Shape
    parser.add_argument(
        "-c",
        "--clients",
        type=int,
        default=100,
        help="Number of concurrent clients",
    )
    stop = parser.add_mutually_exclusive_group(required=True)
    stop.add_argument(
        "-r",
        "--requests",
        type=int,
        help="Number of requests per client",
    )
    stop.add_argument(
        "-t",
        "--duration",
        type=float,
        help="Duration for performing requests (in seconds)",
    )

    # Targets
    parser.add_argument("-u", "--url", action="append", default=[], help=URL_HELP)
    parser.add_argument(
        "-f",
        "--urls-file",
        default=None,
        help="File with one URL (or URL template) per line",
    )
    parser.add_argument(
        "--max-expand",
        type=int,
        default=DEFAULT_MAX_EXPAND,
        help="Maximum number of URLs generated from one template",
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=None,
        help="Seed for random URL templates ({R...}), for reproducible target sets",
    )

    # Request
    parser.add_argument(
        "-d",
        "--data-file",
        default=None,
        help="HTTP POST data file path: cloudburst -u http://localhost -t 10 -d ./data.json",
    )
    parser.add_argument(
        "-b",
        "--body",
        default=None,
        help="HTTP POST body: cloudburst -u http://localhost -t 10 -b '{\"name\":\"max\"}'",
    )
    parser.add_argument("--content-type", default=None, help="Content type of post body")
    parser.add_argument(
        "-k",
        "--keep-alive",
        action="store_true",
        help="Do HTTP keep-alive",
    )
    parser.add_argument(
        "--auth",
        default=None,
        help="Authorization header: cloudburst -u http://localhost -t 10 --auth 'Basic QWxhZGRpbjpvcGVuIHNlc2FtZQ=='",
    )
    parser.add_argument(
        "--headers",
        default=None,
        help="Additional header fields: cloudburst -u http://localhost -t 10 --headers key1=value1,key2=value2",
    )

    # Timeouts (milliseconds)
    parser.add_argument(
        "--timeout",
        type=int,
        default=DEFAULT_TIMEOUT_MS,
        help="Default connect/read/write timeout (in milliseconds)",
    )
    parser.add_argument("--tc", type=int, default=None, help="Connect timeout (in milliseconds)")
    parser.add_argument("--tr", type=int, default=None, help="Read timeout (in milliseconds)")
    parser.add_argument("--tw", type=int, default=None, help="Write timeout (in milliseconds)")

    # Transport & Shutdown
    parser.add_argument(
        "--verify-tls",
        action="store_true",
        help="Verify server TLS certificates",
    )
    parser.add_argument(
        "--no-proxy-env",
        action="store_true",
        help="Ignore HTTP(S)_PROXY environment variables",
    )
    parser.add_argument(
        "--grace",
        type=float,
        default=0.0,
        help="Seconds to let in-flight requests finish after the run is stopped",
    )
    parser.add_argument(
        "--legacy-deadline-correction",
        action="store_true",
        help="Discount a single network failure at the end of a duration run",
    )

    # Logging & Output
    parser.add_argument("--debug", action="store_true", help="Enable debug-level logging")
    parser.add_argument(
        "--log-file",
        type=str,
        default=None,
        help="Optional file to write logs to (e.g., cloudburst.log)",
    )
    parser.add_argument(
        "--no-progress",
        action="store_true",
        help="Disable the progress display",
    )

    return parser.parse_args(argv)


def _ms(value: int | None, default: int) -> float:
    return (value if value is not None else default) / 1000.0


def build_configuration(args: argparse.Namespace) -> Configuration:
    urls: list[str] = []
    if args.urls_file:
        urls.extend(read_lines(args.urls_file))
    urls.extend(args.url)
    if not urls:
        raise ConfigurationError("Url is required (-u or -f)")

    body = None
    if args.data_file:
        body = read_body(args.data_file)
    elif args.body is not None:
        body = args.body.encode("utf-8")

    if args.requests is not None:
        criterion = FixedCount(args.requests)
    else:
        criterion = Duration(args.duration)

    return Configuration(
        urls=tuple(urls),
        criterion=criterion,
        concurrency=args.clients,
        body=body,
        content_type=args.content_type,
        keep_alive=args.keep_alive,
        headers=parse_headers(args.headers, auth=args.auth),
        connect_timeout=_ms(args.tc, args.timeout),
        read_timeout=_ms(args.tr, args.timeout),
        write_timeout=_ms(args.tw, args.timeout),
        verify_tls=args.verify_tls,
        trust_env=not args.no_proxy_env,
        seed=args.seed,
        max_expand=args.max_expand,
        shutdown_grace=args.grace,
        legacy_deadline_correction=args.legacy_deadline_correction,
    )


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)

    log_level = "DEBUG" if args.debug else "INFO"
    setup_logging(level=log_level, log_file=args.log_file)

    try:
        config = build_configuration(args)
        dispatcher = LoadDispatcher(
            config,
            use_progress_bar=not args.no_progress,
            handle_signals=True,
        )
    except CloudburstError as e:
        logging.error(str(e))
        return 1

    print(f"Dispatching {config.concurrency} clients")
    print("Waiting for results...")

    try:
        stats = asyncio.run(dispatcher.run())
    except KeyboardInterrupt:
        # Interrupted before signal handlers were in place
        stats = dispatcher.report()

    print()
    print(render_report(stats))
    return 0


def run():
    sys.exit(main())


if __name__ == "__main__":
    run()
