#!/usr/bin/env python3
"""
CLI entry point for voice-transcribe.

One command, two meanings:
- nothing recording → start a detached recorder and return immediately
- recording        → tell that recorder to stop, transcribe and copy

The transcript lands in the clipboard; progress is published to
/tmp/voice_transcribe.status for visualizers. Messages go to stderr.

Usage:
    voice-transcribe            # start / stop
    voice-transcribe --status   # print the current status line
    voice-transcribe --debug --max-time 60
"""

import logging
import threading
from functools import partial
from typing import Annotated

import typer

from config import MAX_RECORDING_SECONDS, PID_FILE, PRIMARY_CAPTURE_DEVICE, STATUS_FILE
from utils.daemon import DaemonizeError, InstanceController, daemonize
from utils.env import load_api_key
from utils.ipc import StatusChannel, read_status
from utils.logging import error, get_session_id, log, setup_logging

app = typer.Typer(
    help="Toggle background voice recording and transcription",
    add_completion=False,
)

logger = logging.getLogger("voice_transcribe")


def _parse_device(value: str | None) -> str | int | None:
    """CLI device → sounddevice device. 'default' skips the hardware attempt."""
    if value is None:
        return PRIMARY_CAPTURE_DEVICE
    value = value.strip()
    if value.lower() in ("", "default", "none"):
        return None
    if value.isdigit():
        return int(value)
    return value


def print_status() -> None:
    """Prints the current status line, or IDLE when nothing is published."""
    record = read_status(STATUS_FILE)
    if record is None:
        print("IDLE")
    else:
        print(record.to_line().strip())


def run_recorder(
    instance: InstanceController,
    api_key: str,
    *,
    model: str | None,
    max_time: float,
    device: str | int | None,
    visualizer: str | None,
    clipboard_command: str | None,
    stop_event: threading.Event | None = None,
) -> None:
    """Daemon side: one recording session, then cleanup. Always returns normally.

    `stop_event` carries a stop signal that arrived before the session existed.
    """
    from audio import CaptureDevice
    from providers import get_transcriber
    from voice_daemon import RecordingDaemon
    from voice_platform import get_clipboard

    channel = StatusChannel(STATUS_FILE)
    channel.open()
    try:
        daemon = RecordingDaemon(
            transcriber=get_transcriber(api_key, model=model),
            clipboard=get_clipboard(clipboard_command),
            channel=channel,
            device_factory=partial(CaptureDevice, primary_device=device),
            max_seconds=max_time,
            visualizer=visualizer,
            stop_event=stop_event,
        )
        daemon.install_signal_handlers()
        final_status = daemon.run()
        logger.info(f"[{get_session_id()}] Session finished: {final_status.value}")
    except Exception:
        logger.exception(f"[{get_session_id()}] Recorder crashed")
    finally:
        channel.close()
        instance.release()


@app.command()
def main(
    status: Annotated[
        bool,
        typer.Option("--status", help="Print the current status line and exit"),
    ] = False,
    model: Annotated[
        str | None,
        typer.Option(
            help="Transcription model (default: whisper-1)",
            envvar="VOICE_TRANSCRIBE_MODEL",
        ),
    ] = None,
    max_time: Annotated[
        int,
        typer.Option(
            "--max-time",
            min=1,
            help="Maximum recording length in seconds",
            envvar="VOICE_TRANSCRIBE_MAX_TIME",
        ),
    ] = MAX_RECORDING_SECONDS,
    device: Annotated[
        str | None,
        typer.Option(
            help=f"Preferred capture device (default: {PRIMARY_CAPTURE_DEVICE}, "
            "'default' for the system device only)",
            envvar="VOICE_TRANSCRIBE_DEVICE",
        ),
    ] = None,
    visualizer: Annotated[
        str | None,
        typer.Option(
            help="Command to launch a status visualizer",
            envvar="VOICE_TRANSCRIBE_VISUALIZER",
        ),
    ] = None,
    clipboard: Annotated[
        str | None,
        typer.Option(
            help="Clipboard command receiving the transcript on stdin",
            envvar="VOICE_TRANSCRIBE_CLIPBOARD",
        ),
    ] = None,
    debug: Annotated[
        bool,
        typer.Option(help="Enable debug logging"),
    ] = False,
) -> None:
    """Start recording, or stop the running recording and transcribe it."""
    setup_logging(debug=debug)

    if status:
        print_status()
        return

    instance = InstanceController(PID_FILE)

    # Stop path: never needs the API key
    running_pid = instance.find_running()
    if running_pid is not None:
        if instance.request_stop(running_pid):
            log(f"⏹  Stopping recording (PID: {running_pid})")
        else:
            log("Recording already finished")
        return

    api_key = load_api_key()
    if not api_key:
        error("OPENAI_API_KEY not found (environment, ~/.voice_transcribe/.env or ./.env)")
        raise typer.Exit(1)

    if not instance.claim():
        log("Another recording is just starting")
        return

    from voice_daemon import install_stop_handlers

    stop_event = threading.Event()
    try:
        is_daemon = daemonize(instance, prepare=partial(install_stop_handlers, stop_event))
    except DaemonizeError as e:
        instance.release()
        error(str(e))
        raise typer.Exit(1)

    if not is_daemon:
        pid = instance.wait_for_daemon_pid()
        log(f"🔴 Recording started (PID: {pid})" if pid else "🔴 Recording started")
        return

    run_recorder(
        instance,
        api_key,
        model=model,
        max_time=max_time,
        device=_parse_device(device),
        visualizer=visualizer,
        clipboard_command=clipboard,
        stop_event=stop_event,
    )


if __name__ == "__main__":
    app()
