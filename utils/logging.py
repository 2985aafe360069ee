"""Logging setup for voice-transcribe.

Rotating file log plus optional stderr output. The detached recorder has
its standard streams pointed at /dev/null, so the file is all it leaves behind.
"""

import logging
import sys
import uuid
from logging.handlers import RotatingFileHandler
from pathlib import Path

logger = logging.getLogger("voice_transcribe")

_FILE_FORMAT = "%(asctime)s [%(levelname)s] %(threadName)s: %(message)s"

# Session id for correlating launcher and daemon lines
_session_id: str = ""


def _generate_session_id() -> str:
    """Short, readable id (8 chars)."""
    return uuid.uuid4().hex[:8]


def get_session_id() -> str:
    """Returns the current session id."""
    global _session_id
    if not _session_id:
        _session_id = _generate_session_id()
    return _session_id


def get_logger() -> logging.Logger:
    return logger


def _file_handler(path: Path) -> RotatingFileHandler:
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        path, maxBytes=1_000_000, backupCount=3, encoding="utf-8"
    )
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter(_FILE_FORMAT, "%H:%M:%S"))
    return handler


def setup_logging(debug: bool = False) -> None:
    """Configures logging: rotating file + stderr in debug mode.

    Args:
        debug: Also log to stderr
    """
    # Lazy import keeps utils importable from config-free contexts
    from config import LOG_FILE

    get_session_id()

    # Repeated calls only adjust the level
    if logger.handlers:
        logger.setLevel(logging.DEBUG if debug else logging.INFO)
        return

    logger.setLevel(logging.DEBUG if debug else logging.INFO)

    handler_added = False
    for path in (LOG_FILE, Path("/tmp/voice_transcribe.log")):
        try:
            logger.addHandler(_file_handler(path))
            handler_added = True
            break
        except OSError:
            # Home not writable (sandbox), try /tmp
            continue

    if debug or not handler_added:
        stderr_handler = logging.StreamHandler(sys.stderr)
        stderr_handler.setLevel(logging.DEBUG if debug else logging.INFO)
        stderr_handler.setFormatter(logging.Formatter("[%(levelname)s] %(message)s"))
        logger.addHandler(stderr_handler)


def log(message: str) -> None:
    """Status message on stderr.

    stdout stays reserved for `--status` output.
    """
    print(message, file=sys.stderr)


def error(message: str) -> None:
    """Error message on stderr."""
    print(f"Error: {message}", file=sys.stderr)
