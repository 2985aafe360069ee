"""Clipboard sinks.

The transcript is piped into an external command:
Wayland: wl-copy
X11: xclip
macOS: pbcopy
Fallback: pyperclip
"""

import logging
import os
import shlex
import shutil
import subprocess
import sys

logger = logging.getLogger("voice_transcribe.platform.clipboard")

CLIPBOARD_ENV = "VOICE_TRANSCRIBE_CLIPBOARD"


def _get_utf8_env() -> dict:
    """Environment with a UTF-8 locale so umlauts survive the pipe."""
    env = os.environ.copy()
    env.setdefault("LANG", "C.UTF-8")
    env["LC_ALL"] = env.get("LC_ALL") or "C.UTF-8"
    return env


class CommandClipboard:
    """Writes text to the stdin of a clipboard command."""

    def __init__(self, command: list[str]) -> None:
        self.command = command

    def copy(self, text: str) -> bool:
        try:
            process = subprocess.run(
                self.command,
                input=text.encode("utf-8"),
                timeout=2,
                capture_output=True,
                env=_get_utf8_env(),
            )
        except subprocess.TimeoutExpired:
            logger.error(f"{self.command[0]} timed out")
            return False
        except OSError as e:
            logger.error(f"Clipboard error: {e}")
            return False

        if process.returncode != 0:
            logger.error(
                f"{self.command[0]} failed: {process.stderr.decode(errors='replace')}"
            )
            return False
        logger.debug(f"{self.command[0]}: {len(text)} chars copied")
        return True


class PyperclipClipboard:
    """Cross-platform fallback via pyperclip."""

    def copy(self, text: str) -> bool:
        import pyperclip

        try:
            pyperclip.copy(text)
            return True
        except pyperclip.PyperclipException as e:
            logger.error(f"Clipboard error: {e}")
            return False


def get_clipboard(command: str | None = None):
    """Picks the clipboard sink for the current session.

    Args:
        command: Explicit command line, overrides detection
            (default: VOICE_TRANSCRIBE_CLIPBOARD)
    """
    command = command or os.getenv(CLIPBOARD_ENV)
    if command:
        return CommandClipboard(shlex.split(command))

    if sys.platform == "darwin":
        return CommandClipboard(["pbcopy"])
    if os.getenv("WAYLAND_DISPLAY") and shutil.which("wl-copy"):
        return CommandClipboard(["wl-copy"])
    if os.getenv("DISPLAY") and shutil.which("xclip"):
        return CommandClipboard(["xclip", "-selection", "clipboard"])
    return PyperclipClipboard()


__all__ = ["CommandClipboard", "PyperclipClipboard", "get_clipboard", "CLIPBOARD_ENV"]
