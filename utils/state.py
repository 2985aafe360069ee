"""Recording state shared between the capture thread, the status thread
and the main thread.
"""

from __future__ import annotations

import math
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable

from .timing import format_elapsed, parse_elapsed


class RecordingStatus(Enum):
    CONNECTING = "CONNECTING"  # Opening the capture device
    READY = "READY"
    RECORDING = "RECORDING"
    MAX_TIME = "MAX_TIME"  # Ceiling hit, finalizing like a normal stop
    PROCESSING = "PROCESSING"
    UPLOADING = "UPLOADING"
    COPIED = "COPIED"
    FAILED = "FAILED"
    NO_AUDIO = "NO_AUDIO"
    ERROR = "ERROR"  # No usable capture device

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset(
    {
        RecordingStatus.COPIED,
        RecordingStatus.FAILED,
        RecordingStatus.NO_AUDIO,
        RecordingStatus.ERROR,
    }
)


@dataclass(frozen=True)
class StatusRecord:
    """One line of the status channel: `STATUS|level|MM:SS`."""

    status: RecordingStatus
    level: float = 0.0
    elapsed: int = 0  # whole seconds

    def to_line(self) -> str:
        level = min(max(self.level, 0.0), 1.0)
        return f"{self.status.value}|{level:.2f}|{format_elapsed(self.elapsed)}\n"

    @classmethod
    def from_line(cls, line: str) -> "StatusRecord":
        """Parses a status line. Missing level/time fields default to zero.

        Raises:
            ValueError: Unknown status or malformed fields (e.g. truncated line)
        """
        parts = line.strip().split("|")
        status = RecordingStatus(parts[0])
        level = float(parts[1]) if len(parts) > 1 and parts[1] else 0.0
        if not (math.isfinite(level) and 0.0 <= level <= 1.0):
            raise ValueError(f"Level out of range: {parts[1]!r}")
        elapsed = parse_elapsed(parts[2]) if len(parts) > 2 and parts[2] else 0
        return cls(status=status, level=level, elapsed=elapsed)


class RecordingSession:
    """State of one recording attempt.

    Passed by reference to both worker threads. The stop flag is an Event so
    the signal handler, the timeout and the orchestrator can all set it while
    the capture loop polls it without blocking. The level is a single float
    behind a lock (written by capture, read by the status thread).
    """

    def __init__(
        self,
        publish: Callable[[StatusRecord], None] | None = None,
        clock: Callable[[], float] = time.monotonic,
        stop_event: threading.Event | None = None,
    ) -> None:
        self._publish = publish
        self._clock = clock
        # May be created early so signal handlers exist before the session does
        self._stop = stop_event if stop_event is not None else threading.Event()
        self._lock = threading.Lock()
        self._level = 0.0
        self._status = RecordingStatus.CONNECTING
        self.history: list[RecordingStatus] = []
        self.started_at = clock()

    def restart_clock(self) -> None:
        self.started_at = self._clock()

    # --- stop flag ---

    @property
    def stop_event(self) -> threading.Event:
        return self._stop

    def request_stop(self) -> None:
        self._stop.set()

    @property
    def stop_requested(self) -> bool:
        return self._stop.is_set()

    # --- level ---

    @property
    def level(self) -> float:
        with self._lock:
            return self._level

    @level.setter
    def level(self, value: float) -> None:
        with self._lock:
            self._level = value

    # --- status ---

    @property
    def status(self) -> RecordingStatus:
        with self._lock:
            return self._status

    def set_status(self, status: RecordingStatus) -> None:
        """Moves to `status` and publishes it right away."""
        with self._lock:
            self._status = status
            self.history.append(status)
        self.publish_current()

    def publish_current(self) -> None:
        """Republishes the current state without recording a transition."""
        if self._publish is not None:
            self._publish(self.snapshot())

    def elapsed(self) -> float:
        return self._clock() - self.started_at

    def snapshot(self) -> StatusRecord:
        """Current state as a status record. Level is only shown while recording."""
        with self._lock:
            status = self._status
            level = self._level if status is RecordingStatus.RECORDING else 0.0
        return StatusRecord(status=status, level=level, elapsed=int(self.elapsed()))
