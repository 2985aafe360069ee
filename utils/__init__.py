"""Utility modules for voice-transcribe.

Logging, timing, state and IPC helpers.

Usage:
    from utils import setup_logging, log, error, timed_operation

    setup_logging(debug=True)
    with timed_operation("Upload"):
        do_something()
"""

# NOTE:
# Keep this package-level re-export small. Modules importing `config` or
# `voice_platform` (daemon, env) are imported directly by their users.

from .logging import setup_logging, log, error, get_logger, get_session_id
from .timing import timed_operation, format_duration, format_elapsed

__all__ = [
    "setup_logging",
    "log",
    "error",
    "get_logger",
    "get_session_id",
    "timed_operation",
    "format_duration",
    "format_elapsed",
]
