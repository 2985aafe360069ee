"""End-to-end tests for RecordingDaemon with fake device, transcriber and clipboard."""

import os
import signal
import threading
import time
from unittest.mock import MagicMock, Mock, patch

import pytest

from audio import AudioBuffer
from conftest import FakeCaptureDevice, pcm_frame
from providers.openai import OpenAITranscriber
from utils.ipc import StatusChannel, read_status
from utils.state import RecordingStatus
from voice_daemon import STOP_SIGNALS, RecordingDaemon, install_stop_handlers

S = RecordingStatus


@pytest.fixture
def channel(tmp_path):
    channel = StatusChannel(tmp_path / "voice_transcribe.status")
    channel.open()
    yield channel
    channel.close()


@pytest.fixture
def transcriber():
    mock = Mock()
    mock.transcribe.return_value = "hello world"
    return mock


@pytest.fixture
def clipboard():
    mock = Mock()
    mock.copy.return_value = True
    return mock


def _make_daemon(device, transcriber, clipboard, fast_pacing, **kwargs):
    """Daemon whose device asks for a stop once its frames are used up."""
    kwargs.setdefault("buffer", AudioBuffer(initial_capacity=64))
    daemon = RecordingDaemon(
        transcriber=transcriber,
        clipboard=clipboard,
        device_factory=lambda: device,
        pacing=fast_pacing,
        **kwargs,
    )
    if device.on_exhausted is None:
        device.on_exhausted = daemon.session.request_stop
    return daemon


class TestSessionOutcomes:
    """One test per terminal status."""

    def test_no_audio(self, transcriber, clipboard, fast_pacing, channel):
        """Stop before any audio arrives: NO_AUDIO, no upload, no clipboard."""
        device = FakeCaptureDevice(frames=[])
        daemon = _make_daemon(device, transcriber, clipboard, fast_pacing, channel=channel)

        assert daemon.run() is S.NO_AUDIO

        transcriber.transcribe.assert_not_called()
        clipboard.copy.assert_not_called()
        assert daemon.session.history[-2:] == [S.PROCESSING, S.NO_AUDIO]
        assert read_status(channel.path).status is S.NO_AUDIO
        assert device.closed

    def test_copied(self, transcriber, clipboard, fast_pacing, channel):
        frames = [pcm_frame(1, 2, 3, 4), pcm_frame(-5, 6)]
        device = FakeCaptureDevice(frames=frames)
        daemon = _make_daemon(device, transcriber, clipboard, fast_pacing, channel=channel)

        assert daemon.run() is S.COPIED

        transcriber.transcribe.assert_called_once_with(b"".join(frames))
        clipboard.copy.assert_called_once_with("hello world")
        assert daemon.transcript == "hello world"
        assert read_status(channel.path).status is S.COPIED

    def test_copied_through_real_transcriber(self, clipboard, fast_pacing, channel):
        """Full pipeline down to the HTTP client."""
        transcriber = OpenAITranscriber("sk-test")
        transcriber._client = MagicMock()
        create = transcriber._client.audio.transcriptions.with_raw_response.create
        create.return_value = Mock(text='{"text":"hello world"}')

        device = FakeCaptureDevice(frames=[pcm_frame(10, 20, 30)])
        daemon = _make_daemon(device, transcriber, clipboard, fast_pacing, channel=channel)

        assert daemon.run() is S.COPIED
        clipboard.copy.assert_called_once_with("hello world")
        assert create.call_args.kwargs["file"][1][:4] == b"RIFF"

    def test_failed_upload(self, transcriber, clipboard, fast_pacing, channel):
        transcriber.transcribe.return_value = None
        device = FakeCaptureDevice(frames=[pcm_frame(1, 2)])
        daemon = _make_daemon(device, transcriber, clipboard, fast_pacing, channel=channel)

        assert daemon.run() is S.FAILED

        clipboard.copy.assert_not_called()
        assert daemon.transcript is None
        assert read_status(channel.path).status is S.FAILED

    def test_empty_transcript_is_failure(self, transcriber, clipboard, fast_pacing):
        transcriber.transcribe.return_value = ""
        device = FakeCaptureDevice(frames=[pcm_frame(1, 2)])
        daemon = _make_daemon(device, transcriber, clipboard, fast_pacing)

        assert daemon.run() is S.FAILED
        clipboard.copy.assert_not_called()

    def test_clipboard_failure_still_copied(self, transcriber, clipboard, fast_pacing):
        """The sink's result is logged, not surfaced."""
        clipboard.copy.return_value = False
        device = FakeCaptureDevice(frames=[pcm_frame(1, 2)])
        daemon = _make_daemon(device, transcriber, clipboard, fast_pacing)

        assert daemon.run() is S.COPIED

    def test_device_error(self, transcriber, clipboard, fast_pacing, channel):
        device = FakeCaptureDevice(fail_open=True)
        daemon = _make_daemon(device, transcriber, clipboard, fast_pacing, channel=channel)

        assert daemon.run() is S.ERROR

        assert daemon.session.history == [S.CONNECTING, S.ERROR]
        transcriber.transcribe.assert_not_called()
        assert read_status(channel.path).status is S.ERROR

    def test_read_failure_keeps_captured_audio(self, transcriber, clipboard, fast_pacing):
        """Device lost mid-recording: what was captured is still transcribed."""
        device = FakeCaptureDevice(frames=[pcm_frame(7, 8)], fail_after_frames=True)
        daemon = _make_daemon(device, transcriber, clipboard, fast_pacing)

        assert daemon.run() is S.COPIED
        transcriber.transcribe.assert_called_once_with(pcm_frame(7, 8))
        assert device.closed

    def test_max_time(self, transcriber, clipboard, fast_pacing, channel):
        device = FakeCaptureDevice(endless=True)
        daemon = _make_daemon(
            device, transcriber, clipboard, fast_pacing, channel=channel, max_seconds=0.05
        )

        assert daemon.run() is S.COPIED

        history = daemon.session.history
        assert S.MAX_TIME in history
        assert history.index(S.MAX_TIME) < history.index(S.PROCESSING)
        assert device.reads > 0
        transcriber.transcribe.assert_called_once()


class TestStateMachine:
    """Status ordering across the whole session."""

    def test_full_order(self, transcriber, clipboard, fast_pacing):
        device = FakeCaptureDevice(frames=[pcm_frame(1)])
        daemon = _make_daemon(device, transcriber, clipboard, fast_pacing)

        daemon.run()

        assert daemon.session.history == [
            S.CONNECTING,
            S.READY,
            S.RECORDING,
            S.PROCESSING,
            S.UPLOADING,
            S.COPIED,
        ]

    def test_exactly_one_terminal_status(self, transcriber, clipboard, fast_pacing):
        device = FakeCaptureDevice(frames=[pcm_frame(1)])
        daemon = _make_daemon(device, transcriber, clipboard, fast_pacing)

        daemon.run()

        terminal = [s for s in daemon.session.history if s.is_terminal]
        assert terminal == [daemon.session.history[-1]]

    def test_buffer_released_after_run(self, transcriber, clipboard, fast_pacing):
        device = FakeCaptureDevice(frames=[pcm_frame(1)])
        daemon = _make_daemon(device, transcriber, clipboard, fast_pacing)

        daemon.run()
        assert daemon.buffer.released

    def test_transcriber_crash_is_failed(self, transcriber, clipboard, fast_pacing, channel):
        """An unexpected error while encoding/uploading ends as FAILED, not a crash."""
        transcriber.transcribe.side_effect = RuntimeError("soundfile blew up")
        device = FakeCaptureDevice(frames=[pcm_frame(1)])
        daemon = _make_daemon(device, transcriber, clipboard, fast_pacing, channel=channel)

        assert daemon.run() is S.FAILED

        assert daemon.session.history[-2:] == [S.UPLOADING, S.FAILED]
        assert read_status(channel.path).status is S.FAILED
        clipboard.copy.assert_not_called()
        assert daemon.buffer.released

    def test_injected_buffer_is_used(self, transcriber, clipboard, fast_pacing):
        """Frames larger than the initial capacity grow the injected buffer."""
        buffer = AudioBuffer(initial_capacity=64)
        frames = [pcm_frame(*range(50)), pcm_frame(*range(100))]
        device = FakeCaptureDevice(frames=frames)
        daemon = _make_daemon(device, transcriber, clipboard, fast_pacing, buffer=buffer)
        capacities = []

        def record_then_stop():
            capacities.append(buffer.capacity)
            daemon.session.request_stop()

        device.on_exhausted = record_then_stop

        assert daemon.buffer is buffer
        assert daemon.run() is S.COPIED
        # 64 -> 128 -> 256 -> 512 for 300 bytes
        assert capacities == [512]
        transcriber.transcribe.assert_called_once_with(b"".join(frames))
        assert buffer.released

    def test_level_published_while_recording(self, transcriber, clipboard, fast_pacing):
        """A loud frame shows up in the level meter."""
        snapshots = []
        device = FakeCaptureDevice(frames=[pcm_frame(16384)])
        daemon = _make_daemon(device, transcriber, clipboard, fast_pacing)

        def snapshot_then_stop():
            snapshots.append(daemon.session.snapshot())
            daemon.session.request_stop()

        device.on_exhausted = snapshot_then_stop
        daemon.run()

        assert snapshots[0].status is S.RECORDING
        assert snapshots[0].level == pytest.approx(0.5)


@pytest.fixture
def restore_signal_handlers():
    saved = {sig: signal.getsignal(sig) for sig in STOP_SIGNALS}
    yield
    for sig, handler in saved.items():
        signal.signal(sig, handler)


class TestSignals:
    """SIGINT, SIGTERM and SIGUSR1 all request a graceful stop."""

    @pytest.mark.parametrize("sig", STOP_SIGNALS, ids=lambda s: s.name)
    def test_signal_requests_stop(
        self, sig, transcriber, clipboard, fast_pacing, restore_signal_handlers
    ):
        device = FakeCaptureDevice(endless=True)
        daemon = _make_daemon(device, transcriber, clipboard, fast_pacing)
        daemon.install_signal_handlers()

        os.kill(os.getpid(), sig)

        # The Python-level handler runs on the main thread shortly after delivery
        deadline = time.monotonic() + 1.0
        while not daemon.session.stop_requested and time.monotonic() < deadline:
            time.sleep(0.01)
        assert daemon.session.stop_requested

    def test_stop_signal_ends_recording(
        self, transcriber, clipboard, fast_pacing, restore_signal_handlers
    ):
        device = FakeCaptureDevice(endless=True)
        daemon = _make_daemon(device, transcriber, clipboard, fast_pacing)
        daemon.install_signal_handlers()
        device.endless = False
        device.frames = [pcm_frame(3, 4)]
        device.on_exhausted = lambda: os.kill(os.getpid(), signal.SIGUSR1)

        assert daemon.run() is S.COPIED
        transcriber.transcribe.assert_called_once_with(pcm_frame(3, 4))

    def test_early_signal_is_not_lost(
        self, transcriber, clipboard, fast_pacing, restore_signal_handlers
    ):
        """Handlers exist before the daemon; the session picks up the stop."""
        stop_event = threading.Event()
        install_stop_handlers(stop_event)

        os.kill(os.getpid(), signal.SIGUSR1)
        assert stop_event.wait(timeout=1.0)

        device = FakeCaptureDevice(frames=[pcm_frame(1)])
        daemon = _make_daemon(
            device, transcriber, clipboard, fast_pacing, stop_event=stop_event
        )
        assert daemon.session.stop_event is stop_event
        assert daemon.session.stop_requested

        # Stopped before the first read: nothing captured, but a clean terminal status
        assert daemon.run() is S.NO_AUDIO
        assert device.reads == 0


class TestVisualizer:
    def test_launched_with_nice(self, transcriber, clipboard, fast_pacing, channel):
        device = FakeCaptureDevice(frames=[pcm_frame(1)])
        daemon = _make_daemon(
            device,
            transcriber,
            clipboard,
            fast_pacing,
            channel=channel,
            visualizer="my-visualizer --compact",
        )

        with patch("voice_daemon.subprocess.Popen") as mock_popen:
            daemon.run()

        mock_popen.assert_called_once()
        assert mock_popen.call_args.args[0] == [
            "nice",
            "-n",
            "10",
            "my-visualizer",
            "--compact",
        ]
        assert mock_popen.call_args.kwargs["start_new_session"] is True

    def test_launch_failure_does_not_stop_session(
        self, transcriber, clipboard, fast_pacing, channel
    ):
        device = FakeCaptureDevice(frames=[pcm_frame(1)])
        daemon = _make_daemon(
            device, transcriber, clipboard, fast_pacing, channel=channel, visualizer="nope"
        )

        with patch("voice_daemon.subprocess.Popen", side_effect=FileNotFoundError("nice")):
            assert daemon.run() is S.COPIED

    def test_not_launched_without_channel(self, transcriber, clipboard, fast_pacing):
        device = FakeCaptureDevice(frames=[pcm_frame(1)])
        daemon = _make_daemon(device, transcriber, clipboard, fast_pacing, visualizer="viz")

        with patch("voice_daemon.subprocess.Popen") as mock_popen:
            daemon.run()

        mock_popen.assert_not_called()

    def test_exited_visualizer_is_reaped(self, transcriber, clipboard, fast_pacing, channel):
        device = FakeCaptureDevice(frames=[pcm_frame(1)])
        daemon = _make_daemon(
            device, transcriber, clipboard, fast_pacing, channel=channel, visualizer="viz"
        )

        with patch("voice_daemon.subprocess.Popen") as mock_popen:
            mock_popen.return_value.poll.return_value = 0
            daemon.run()

        mock_popen.return_value.poll.assert_called_once()
        assert daemon._visualizer_process is None

    def test_running_visualizer_is_left_alone(
        self, transcriber, clipboard, fast_pacing, channel
    ):
        device = FakeCaptureDevice(frames=[pcm_frame(1)])
        daemon = _make_daemon(
            device, transcriber, clipboard, fast_pacing, channel=channel, visualizer="viz"
        )

        with patch("voice_daemon.subprocess.Popen") as mock_popen:
            mock_popen.return_value.poll.return_value = None
            daemon.run()

        mock_popen.return_value.kill.assert_not_called()
        assert daemon._visualizer_process is mock_popen.return_value
