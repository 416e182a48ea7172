from .models import Stats

LABEL_WIDTH = 32


def _line(label: str, value: int, unit: str) -> str:
    return f"{label + ':':<{LABEL_WIDTH}}{value:>10d} {unit}"


def render_report(stats: Stats) -> str:
    lines = [
        _line("Requests", stats.requests, "hits"),
        _line("Successful requests", stats.success, "hits"),
        _line("Network failed", stats.network_failures, "hits"),
        _line("Bad requests failed (!2xx)", stats.bad_failures, "hits"),
        _line("Read failed (I/O)", stats.io_failures, "hits"),
    ]
    if stats.cancelled:
        lines.append(_line("Cancelled in flight", stats.cancelled, "hits"))
    lines += [
        _line("Successful requests rate", stats.success_rate, "hits/sec"),
        _line("Read transferred", stats.bytes_read, "bytes"),
        _line("Write transferred", stats.bytes_written, "bytes"),
        _line("Read speed", stats.read_rate, "bytes/sec"),
        _line("Write speed", stats.write_rate, "bytes/sec"),
        _line("Test time", stats.elapsed, "sec"),
    ]
    return "\n".join(lines)
