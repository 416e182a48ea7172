from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Union
from collections.abc import Callable, Mapping

from yarl import URL

from .exceptions import ConfigurationError


DEFAULT_MAX_EXPAND = 1000


@dataclass(frozen=True)
class FixedCount:
    requests: int

    def __post_init__(self):
        if self.requests < 1:
            raise ConfigurationError(
                f"Request count must be at least 1, got {self.requests}"
            )


@dataclass(frozen=True)
class Duration:
    seconds: float

    def __post_init__(self):
        if self.seconds <= 0:
            raise ConfigurationError(
                f"Duration must be positive, got {self.seconds}s"
            )


StopCriterion = Union[FixedCount, Duration]


@dataclass(frozen=True)
class Configuration:
    urls: tuple[str, ...]
    criterion: StopCriterion
    concurrency: int = 100
    body: bytes | None = None
    content_type: str | None = None
    keep_alive: bool = False
    headers: Mapping[str, str] = field(default_factory=dict)
    connect_timeout: float = 10.0
    read_timeout: float = 10.0
    write_timeout: float = 10.0
    verify_tls: bool = False
    trust_env: bool = True
    seed: int | None = None
    max_expand: int = DEFAULT_MAX_EXPAND
    shutdown_grace: float = 0.0
    legacy_deadline_correction: bool = False

    def __post_init__(self):
        # Own copies of caller-supplied sequences and mappings
        object.__setattr__(self, "urls", tuple(u.strip() for u in self.urls))
        object.__setattr__(self, "headers", dict(self.headers))

        if not self.urls:
            raise ConfigurationError("At least one URL is required")
        for u in self.urls:
            _check_url(u)
        if not isinstance(self.criterion, (FixedCount, Duration)):
            raise ConfigurationError(
                f"Unknown stopping criterion: {self.criterion!r}"
            )
        if self.concurrency < 1:
            raise ConfigurationError("Number of clients must be larger than 0")
        for name in ("connect_timeout", "read_timeout", "write_timeout"):
            if getattr(self, name) <= 0:
                raise ConfigurationError(f"{name} must be positive")
        if self.max_expand < 1:
            raise ConfigurationError("max_expand must be at least 1")
        if self.shutdown_grace < 0:
            raise ConfigurationError("shutdown_grace must not be negative")

    @property
    def method(self) -> str:
        return "POST" if self.body is not None else "GET"

    @property
    def is_duration(self) -> bool:
        return isinstance(self.criterion, Duration)


def _check_url(raw: str) -> None:
    if not raw:
        raise ConfigurationError("Empty URL")
    # Template braces are not valid URL characters; check the parts around them
    try:
        url = URL(raw.replace("{", "").replace("}", ""))
    except ValueError as e:
        raise ConfigurationError(f"Invalid URL {raw!r}: {e}") from e
    if url.scheme not in ("http", "https") or not url.host:
        raise ConfigurationError(f"Unsupported URL {raw!r}: expected http(s)://host/...")


class Outcome(Enum):
    SUCCESS = "success"
    BAD_STATUS = "bad_status"
    NETWORK_FAILURE = "network_failure"
    IO_FAILURE = "io_failure"
    CANCELLED = "cancelled"


_OUTCOME_FIELDS = {
    Outcome.SUCCESS: "success",
    Outcome.BAD_STATUS: "bad_failures",
    Outcome.NETWORK_FAILURE: "network_failures",
    Outcome.IO_FAILURE: "io_failures",
}


@dataclass
class Result:
    """Counters owned by exactly one worker."""

    requests: int = 0
    success: int = 0
    bad_failures: int = 0
    network_failures: int = 0
    io_failures: int = 0
    cancelled: int = 0
    bytes_read: int = 0
    bytes_written: int = 0

    def record(self, outcome: Outcome) -> None:
        if outcome is Outcome.CANCELLED:
            self.cancelled += 1
            return
        self.requests += 1
        name = _OUTCOME_FIELDS[outcome]
        setattr(self, name, getattr(self, name) + 1)


@dataclass
class Stats:
    requests: int
    success: int
    bad_failures: int
    network_failures: int
    io_failures: int
    cancelled: int
    bytes_read: int
    bytes_written: int
    elapsed: int
    success_rate: int
    read_rate: int
    write_rate: int

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


# Metrics callback: callable accepting stats dict
MetricsCallback = Callable[[dict[str, Any]], None]

# Outcome callback: called by a worker after every recorded request
OutcomeCallback = Callable[[int, Outcome], None]
