"""
Shared test fixtures for voice-transcribe.

These fixtures isolate tests from the outside world:
- File system (PID file, status file, log file)
- Environment variables (API key, VOICE_TRANSCRIBE_*)
- Audio hardware (FakeCaptureDevice)
"""

import os
import sys
import time
from pathlib import Path

import pytest

# Add project root to the Python path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from audio import DeviceError  # noqa: E402
from voice_daemon import Pacing  # noqa: E402

# No UI pacing in tests, but a non-zero status tick to avoid a hot loop
FAST_PACING = Pacing(
    status_interval=0.001,
    status_drain=0.0,
    ready_settle=0.0,
    processing=0.0,
    uploading=0.0,
    copied=0.0,
    failed=0.0,
)


def pcm_frame(*samples: int) -> bytes:
    """Little-endian int16 PCM from sample values."""
    return b"".join(s.to_bytes(2, "little", signed=True) for s in samples)


class FakeCaptureDevice:
    """Stands in for CaptureDevice.

    Returns the given frames in order. Once they run out it calls
    `on_exhausted` (once) and keeps returning empty frames, or raises
    DeviceError when `fail_after_frames` is set.
    """

    def __init__(
        self,
        frames=(),
        *,
        fail_open: bool = False,
        fail_after_frames: bool = False,
        endless: bool = False,
        on_exhausted=None,
    ):
        self.frames = list(frames)
        self.fail_open = fail_open
        self.fail_after_frames = fail_after_frames
        self.endless = endless
        self.on_exhausted = on_exhausted
        self.opened = False
        self.closed = False
        self.reads = 0
        self._notified = False

    def open(self):
        if self.fail_open:
            raise DeviceError("Cannot open audio device: no device")
        self.opened = True

    def read_frame(self) -> bytes:
        self.reads += 1
        if self.endless:
            time.sleep(0.001)
            return pcm_frame(100, -100)
        if self.frames:
            return self.frames.pop(0)
        if self.fail_after_frames:
            raise DeviceError("Capture recovery failed")
        if not self._notified and self.on_exhausted is not None:
            self._notified = True
            self.on_exhausted()
        time.sleep(0.001)
        return b""

    def close(self):
        self.closed = True


@pytest.fixture
def fast_pacing():
    return FAST_PACING


@pytest.fixture(autouse=True)
def isolated_log_file(tmp_path, monkeypatch):
    """Keeps setup_logging() out of the real home directory."""
    import config

    monkeypatch.setattr(config, "LOG_FILE", tmp_path / "logs" / "voice_transcribe.log")


@pytest.fixture
def temp_files(tmp_path, monkeypatch):
    """
    Replaces the PID and status file paths with temporary ones.

    Prevents conflicts with a real running recorder.
    """
    import voice_transcribe

    pid_file = tmp_path / "voice_transcribe.pid"
    status_file = tmp_path / "voice_transcribe.status"
    monkeypatch.setattr(voice_transcribe, "PID_FILE", pid_file)
    monkeypatch.setattr(voice_transcribe, "STATUS_FILE", status_file)
    return tmp_path


@pytest.fixture
def clean_env(monkeypatch):
    """Removes OPENAI_API_KEY and all VOICE_TRANSCRIBE_* variables."""
    for key in list(os.environ.keys()):
        if key.startswith("VOICE_TRANSCRIBE_") or key == "OPENAI_API_KEY":
            monkeypatch.delenv(key, raising=False)


@pytest.fixture
def mock_env(monkeypatch):
    """Sets a test API key."""
    monkeypatch.setenv("OPENAI_API_KEY", "test-key-openai")
