"""
voice_daemon.py – Recording orchestrator for voice-transcribe.

Runs inside the detached recorder process:
- CaptureWorker: opens the microphone, fills the AudioBuffer, updates the level
- StatusWorker: publishes STATUS|level|MM:SS for external visualizers
- Main thread: joins both, then encodes, uploads and copies the transcript

State-Flow:
    CONNECTING → READY → RECORDING → PROCESSING → UPLOADING → COPIED | FAILED
                                  ↘ MAX_TIME ↗              ↘ NO_AUDIO (empty buffer)
    CONNECTING → ERROR (no capture device)
"""

from __future__ import annotations

import logging
import shlex
import signal
import subprocess
import threading
import time
from dataclasses import dataclass

from audio import AudioBuffer, CaptureDevice, DeviceError, peak_level
from config import (
    COPIED_DWELL,
    FAILED_DWELL,
    MAX_RECORDING_SECONDS,
    PROCESSING_DWELL,
    READY_SETTLE,
    STATUS_DRAIN,
    STATUS_INTERVAL,
    UPLOADING_DWELL,
)
from utils.ipc import StatusChannel
from utils.logging import get_session_id
from utils.state import RecordingSession, RecordingStatus

logger = logging.getLogger("voice_transcribe")

STOP_SIGNALS = (signal.SIGINT, signal.SIGTERM, signal.SIGUSR1)


def install_stop_handlers(stop_event: threading.Event) -> None:
    """Routes the stop signals to `stop_event`.

    Must run in the daemon before its PID is published, otherwise an early
    SIGUSR1 would hit the default action and kill the process.
    """

    def _handle_stop_signal(signum, _frame) -> None:
        stop_event.set()

    for sig in STOP_SIGNALS:
        signal.signal(sig, _handle_stop_signal)


@dataclass(frozen=True)
class Pacing:
    """UI pacing in seconds. Tests use near-zero values."""

    status_interval: float = STATUS_INTERVAL
    status_drain: float = STATUS_DRAIN
    ready_settle: float = READY_SETTLE
    processing: float = PROCESSING_DWELL
    uploading: float = UPLOADING_DWELL
    copied: float = COPIED_DWELL
    failed: float = FAILED_DWELL


class RecordingDaemon:
    """
    One recording session, from CONNECTING to a terminal status.

    Collaborators are injected so the session can run without hardware,
    network or clipboard:
        device_factory: () -> CaptureDevice
        transcriber: object with transcribe(pcm) -> str | None
        clipboard: object with copy(text) -> bool
    """

    def __init__(
        self,
        transcriber,
        clipboard,
        channel: StatusChannel | None = None,
        device_factory=CaptureDevice,
        buffer: AudioBuffer | None = None,
        max_seconds: float = MAX_RECORDING_SECONDS,
        visualizer: str | None = None,
        pacing: Pacing | None = None,
        stop_event: threading.Event | None = None,
    ) -> None:
        self.transcriber = transcriber
        self.clipboard = clipboard
        self.channel = channel
        self.device_factory = device_factory
        # An empty buffer has len() == 0, so test for None explicitly
        self.buffer = buffer if buffer is not None else AudioBuffer()
        self.max_seconds = max_seconds
        self.visualizer = visualizer
        self.pacing = pacing or Pacing()

        self.session = RecordingSession(
            publish=channel.publish if channel is not None else None,
            stop_event=stop_event,
        )
        self.transcript: str | None = None
        self._device_failed = False
        self._visualizer_process: subprocess.Popen | None = None

    # =========================================================================
    # Signals
    # =========================================================================

    def install_signal_handlers(self) -> None:
        """SIGINT, SIGTERM and SIGUSR1 all mean: stop and transcribe."""
        install_stop_handlers(self.session.stop_event)

    # =========================================================================
    # Workers
    # =========================================================================

    def _capture_worker(self) -> None:
        """Producer: device → buffer + level. The device lives only in here."""
        session = self.session
        device = self.device_factory()

        try:
            device.open()
        except DeviceError as e:
            logger.error(f"[{get_session_id()}] {e}")
            self._device_failed = True
            session.set_status(RecordingStatus.ERROR)
            return

        try:
            session.set_status(RecordingStatus.READY)
            time.sleep(self.pacing.ready_settle)
            session.set_status(RecordingStatus.RECORDING)
            logger.info(f"[{get_session_id()}] Recording started")

            while not session.stop_requested:
                if session.elapsed() > self.max_seconds:
                    logger.info(
                        f"[{get_session_id()}] Max recording time reached "
                        f"({self.max_seconds:.0f}s)"
                    )
                    session.set_status(RecordingStatus.MAX_TIME)
                    break

                try:
                    frame = device.read_frame()
                except DeviceError as e:
                    logger.error(f"[{get_session_id()}] Capture aborted: {e}")
                    break

                if frame:
                    self.buffer.append(frame)
                    session.level = peak_level(frame)
        except Exception:
            logger.exception(f"[{get_session_id()}] Capture worker crashed")
        finally:
            device.close()

        logger.info(
            f"[{get_session_id()}] Recording stopped: {session.elapsed():.1f}s, "
            f"{len(self.buffer)} bytes"
        )

    def _launch_visualizer(self) -> None:
        """Starts the configured visualizer, low priority, output discarded."""
        if not self.visualizer:
            return
        command = ["nice", "-n", "10", *shlex.split(self.visualizer)]
        try:
            self._visualizer_process = subprocess.Popen(
                command,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                start_new_session=True,
            )
            logger.debug(f"Visualizer started: {self.visualizer}")
        except OSError as e:
            logger.warning(f"Visualizer could not be started: {e}")

    def _status_worker(self) -> None:
        """Republishes the session state until stop is requested."""
        if self.channel is None:
            return
        self._launch_visualizer()
        while not self.session.stop_requested:
            self.channel.publish(self.session.snapshot())
            time.sleep(self.pacing.status_interval)
        time.sleep(self.pacing.status_drain)
        self._reap_visualizer()

    def _reap_visualizer(self) -> None:
        """Collects the visualizer's exit status if it has already quit."""
        process = self._visualizer_process
        if process is None:
            return
        returncode = process.poll()
        if returncode is not None:
            logger.debug(f"Visualizer exited with code {returncode}")
            self._visualizer_process = None

    # =========================================================================
    # Finalize
    # =========================================================================

    def _hold(self, status: RecordingStatus, seconds: float) -> RecordingStatus:
        self.session.set_status(status)
        time.sleep(seconds)
        return status

    def _finalize(self) -> RecordingStatus:
        """PROCESSING is done; upload if there is audio."""
        pcm = self.buffer.getvalue()
        if not pcm:
            logger.warning(f"[{get_session_id()}] No audio recorded")
            return self._hold(RecordingStatus.NO_AUDIO, self.pacing.failed)

        self._hold(RecordingStatus.UPLOADING, self.pacing.uploading)
        try:
            text = self.transcriber.transcribe(pcm)
        except Exception:
            logger.exception(f"[{get_session_id()}] Transcription crashed")
            text = None
        if not text:
            return self._hold(RecordingStatus.FAILED, self.pacing.failed)

        self.transcript = text
        if not self.clipboard.copy(text):
            logger.warning(f"[{get_session_id()}] Clipboard sink reported failure")
        logger.info(f"[{get_session_id()}] Transcript copied: {len(text)} chars")
        return self._hold(RecordingStatus.COPIED, self.pacing.copied)

    # =========================================================================
    # Main
    # =========================================================================

    def run(self) -> RecordingStatus:
        """Runs the session to a terminal status. Never raises for
        device or upload failures; those end up in the status channel."""
        session = self.session
        session.restart_clock()
        session.set_status(RecordingStatus.CONNECTING)

        # Capture first: the buffer exists before anyone is told we started
        capture = threading.Thread(target=self._capture_worker, name="CaptureWorker")
        status = threading.Thread(target=self._status_worker, name="StatusWorker")
        capture.start()
        status.start()

        try:
            capture.join()

            if self._device_failed:
                session.request_stop()
                status.join()
                # The status worker may have overwritten ERROR on its way out
                session.publish_current()
                time.sleep(self.pacing.failed)
                return RecordingStatus.ERROR

            session.set_status(RecordingStatus.PROCESSING)
            time.sleep(self.pacing.processing)
            session.request_stop()
            status.join()

            return self._finalize()
        finally:
            self.buffer.release()
