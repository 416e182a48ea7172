import logging
import random
from collections.abc import Iterable

from .exceptions import ExpansionError
from .models import DEFAULT_MAX_EXPAND

logger = logging.getLogger(__name__)

SEQUENCE_SELECTORS = "Ss"
RANDOM_SELECTORS = "Rr"

# ────────────────────────────────
# Template Parsing
# ────────────────────────────────


def parse_template(expr: str) -> tuple[str, int, int, int]:
    """
    Parse the inside of a ``{...}`` span, e.g. ``S10,1-100``.

    Returns ``(selector, count, start, end)``. The grammar is a selector
    letter, the number of values to generate, a comma and an inclusive
    ``from-to`` range.
    """
    if not expr or expr[0] not in SEQUENCE_SELECTORS + RANDOM_SELECTORS:
        raise ExpansionError(
            f"invalid url expression {{{expr}}}: must start with one of S, s, R, r"
        )
    selector, rest = expr[0], expr[1:]

    count_part, sep, range_part = rest.partition(",")
    if not sep:
        raise ExpansionError(
            f"invalid url expression {{{expr}}}: no enough comma separated fields"
        )
    start_part, sep, end_part = range_part.partition("-")
    if not sep:
        raise ExpansionError(f"invalid url expression {{{expr}}}: range invalid")

    count = _to_int(count_part, "count", expr)
    start = _to_int(start_part, "from", expr)
    end = _to_int(end_part, "to", expr)

    if count < 1:
        raise ExpansionError(
            f"invalid url expression {{{expr}}}: count must be at least 1"
        )
    if start > end:
        raise ExpansionError(
            f"invalid url expression {{{expr}}}: range start {start} is above end {end}"
        )
    return selector, count, start, end


def _to_int(value: str, name: str, expr: str) -> int:
    try:
        return int(value.strip())
    except ValueError:
        raise ExpansionError(
            f"invalid url expression {{{expr}}}: {name} {value!r} is not an integer"
        ) from None


def generate_values(
    expr: str,
    max_expand: int = DEFAULT_MAX_EXPAND,
    rng: random.Random | None = None,
) -> list[int]:
    selector, count, start, end = parse_template(expr)
    limit = min(count, max_expand)

    if selector in SEQUENCE_SELECTORS:
        return list(range(start, start + min(limit, end - start + 1)))

    rng = rng or random.Random()
    return [rng.randint(start, end) for _ in range(limit)]


# ────────────────────────────────
# URL Expansion
# ────────────────────────────────


def find_span(url: str) -> tuple[int, int] | None:
    """Locate the template span; None when the URL carries no template."""
    left, right = url.find("{"), url.find("}")
    # The span must sit after the scheme ("http:" is five characters)
    if left > 4 and right > left:
        if url[left + 1] in SEQUENCE_SELECTORS + RANDOM_SELECTORS:
            return left, right
    return None


def expand_url(
    url: str,
    max_expand: int = DEFAULT_MAX_EXPAND,
    rng: random.Random | None = None,
) -> list[str]:
    """
    Expand a URL pattern such as ``http://host/?{S3,1-10}`` into concrete URLs.

    ``S``/``s`` produces consecutive numbers starting at ``from``; ``R``/``r``
    produces uniform random draws in ``[from, to]``. At most ``max_expand``
    URLs are generated for one pattern. A URL without a template comes back
    unchanged as a one-element list.
    """
    span = find_span(url)
    if span is None:
        return [url]

    left, right = span
    prefix, suffix = url[:left], url[right + 1 :]
    values = generate_values(url[left + 1 : right], max_expand=max_expand, rng=rng)

    expanded = []
    for i, value in enumerate(values):
        expanded.append(f"{prefix}{value}{suffix}")
        logger.debug(f"Generated url [{i}]: {expanded[-1]}")
    return expanded


def build_target_set(
    patterns: Iterable[str],
    max_expand: int = DEFAULT_MAX_EXPAND,
    seed: int | None = None,
) -> tuple[str, ...]:
    rng = random.Random(seed)
    targets: list[str] = []
    for pattern in patterns:
        targets.extend(expand_url(pattern, max_expand=max_expand, rng=rng))
    logger.info(f"Target set ready: {len(targets)} URLs")
    return tuple(targets)
