"""Time helpers for voice-transcribe.

Elapsed-time formatting for the status line and a context manager for
timing slow operations (the upload).
"""

import time
from contextlib import contextmanager

from .logging import get_logger, get_session_id


def format_elapsed(seconds: float) -> str:
    """Formats elapsed seconds as MM:SS (whole seconds, truncated)."""
    total = max(0, int(seconds))
    return f"{total // 60:02d}:{total % 60:02d}"


def parse_elapsed(value: str) -> int:
    """Parses MM:SS back into seconds.

    Raises:
        ValueError: If the value is not MM:SS
    """
    minutes, sep, seconds = value.strip().partition(":")
    if not sep:
        raise ValueError(f"Invalid elapsed time: {value!r}")
    return int(minutes) * 60 + int(seconds)


def format_duration(milliseconds: float) -> str:
    """ms for short durations, s for longer ones."""
    if milliseconds >= 1000:
        return f"{milliseconds / 1000:.2f}s"
    return f"{milliseconds:.0f}ms"


@contextmanager
def timed_operation(name: str, *, logger=None):
    """Logs how long the wrapped block took.

    Usage:
        with timed_operation("Upload"):
            response = client.post(...)
    """
    op_logger = logger or get_logger()
    start = time.perf_counter()
    try:
        yield
    finally:
        elapsed_ms = (time.perf_counter() - start) * 1000
        op_logger.info(f"[{get_session_id()}] {name}: {format_duration(elapsed_ms)}")
