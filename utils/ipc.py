"""File-based status channel for external visualizers.

Why a file?
- The visualizer is a separate, independently launched process
- Any language can poll a single text line
- No sockets, no consumer bookkeeping, no backpressure

Protocol:
    Daemon                          Visualizer(s)
       │                                 │
       │── replace status file ─────────►│ (polls every ~50ms)
       │   STATUS|level|MM:SS            │
       │                                 │ stop polling shortly after
       │                                 │ COPIED / FAILED / NO_AUDIO

Only the latest record exists; every publish rewrites the whole file.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path

from .logging import error
from .state import StatusRecord

logger = logging.getLogger("voice_transcribe.ipc")


def _atomic_write(path: Path, text: str) -> None:
    """Write text atomically using tmp-file-then-rename.

    Readers poll continuously. A seek+truncate rewrite would let them see
    an empty or half-written line.
    """
    tmp_path = path.with_name(f"{path.name}.tmp")
    try:
        tmp_path.write_text(text, encoding="utf-8")
        tmp_path.replace(path)  # Atomic on POSIX filesystems
    except OSError as e:
        logger.debug(f"Atomic status write failed, writing in place: {e}")
        path.write_text(text, encoding="utf-8")


class StatusChannel:
    """Single-writer, last-write-wins status broadcast.

    Usage:
        channel = StatusChannel(STATUS_FILE)
        channel.open()
        channel.publish(StatusRecord(RecordingStatus.RECORDING, 0.42, 65))
        ...
        channel.close()
    """

    def __init__(self, path: Path) -> None:
        self.path = path
        self._enabled = False
        self._lock = threading.Lock()

    @property
    def is_open(self) -> bool:
        return self._enabled

    def open(self) -> bool:
        """Creates the channel file. Failure is reported but not fatal."""
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.touch()
        except OSError as e:
            logger.error(f"Cannot create status file {self.path}: {e}")
            error(f"Cannot create status file: {self.path}")
            self._enabled = False
            return False
        self._enabled = True
        return True

    def publish(self, record: StatusRecord) -> None:
        """Replaces the channel content with `record`."""
        if not self._enabled:
            return
        with self._lock:
            try:
                _atomic_write(self.path, record.to_line())
            except OSError as e:
                # Observability is best-effort, recording goes on
                logger.warning(f"Status write failed: {e}")

    def close(self, remove: bool = True) -> None:
        """Closes the channel, removing the file by default."""
        with self._lock:
            self._enabled = False
            if remove:
                self.path.unlink(missing_ok=True)
                self.path.with_name(f"{self.path.name}.tmp").unlink(missing_ok=True)


def read_status(path: Path) -> StatusRecord | None:
    """Reader side: latest record, or None if missing, empty or unparsable.

    Tolerates partially written lines from writers without atomic replace.
    """
    try:
        line = path.read_text(encoding="utf-8").strip()
    except (OSError, UnicodeDecodeError) as e:
        logger.debug(f"Status read failed: {e}")
        return None
    if not line:
        return None
    try:
        return StatusRecord.from_line(line.splitlines()[0])
    except ValueError:
        return None


__all__ = ["StatusChannel", "read_status"]
