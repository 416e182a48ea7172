import logging
import time

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

# ────────────────────────────────
# Time Helpers
# ────────────────────────────────


def now() -> float:
    return time.perf_counter()


# ────────────────────────────────
# Header Parsing
# ────────────────────────────────


def parse_headers(raw: str | None, auth: str | None = None) -> dict[str, str]:
    """
    Parse ``key1=value1,key2=value2`` into a header mapping.

    Whitespace around keys and values is trimmed, entries that are not a
    single ``key=value`` pair are skipped and a repeated key keeps its last
    value. ``auth`` becomes the ``Authorization`` header.
    """
    headers: dict[str, str] = {}
    if auth:
        headers["Authorization"] = auth
    for entry in (raw or "").split(","):
        parts = entry.split("=")
        if len(parts) != 2 or not parts[0].strip():
            if entry.strip():
                logger.warning(f"Ignoring malformed header entry: {entry!r}")
            continue
        headers[parts[0].strip()] = parts[1].strip()
    return headers


# ────────────────────────────────
# File Inputs
# ────────────────────────────────


def read_lines(path: str) -> list[str]:
    """Non-empty lines of a text file, stripped."""
    try:
        with open(path, encoding="utf-8") as f:
            return [line.strip() for line in f if line.strip()]
    except OSError as e:
        raise ConfigurationError(f"Error while reading URLs from file {path}: {e}") from e


def read_body(path: str) -> bytes:
    try:
        with open(path, "rb") as f:
            return f.read()
    except OSError as e:
        raise ConfigurationError(
            f"Error while reading post body from file {path}: {e}"
        ) from e
