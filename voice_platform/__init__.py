"""Platform glue for voice-transcribe.

Usage:
    from voice_platform import get_clipboard, get_daemon_controller

    get_clipboard().copy("Hello World")

    controller = get_daemon_controller()
    if controller.is_running(pid):
        controller.stop(pid)
"""

from .clipboard import get_clipboard
from .daemon import get_daemon_controller

__all__ = [
    "get_clipboard",
    "get_daemon_controller",
]
