__all__ = [
    "Configuration",
    "Duration",
    "FixedCount",
    "LoadDispatcher",
    "Result",
    "Stats",
    "expand_url",
    "render_report",
]

__version__ = "0.3.0"

from .core import LoadDispatcher
from .models import Configuration, Duration, FixedCount, Result, Stats
from .rendering import render_report
from .templating import expand_url
