"""Process control for the recorder daemon.

POSIX only: liveness via signal 0, graceful stop via SIGUSR1.
"""

import logging
import os
import signal
import subprocess

logger = logging.getLogger("voice_transcribe.platform.daemon")

# Names the daemon can show up as in `ps`: script or console entry point
PROCESS_MARKERS = ("voice_transcribe", "voice-transcribe")

STOP_SIGNAL = signal.SIGUSR1


class PosixDaemonController:
    """Liveness probe and stop signalling for a recorded PID."""

    def is_running(self, pid: int) -> bool:
        """Checks whether the process exists via signal 0."""
        try:
            os.kill(pid, 0)  # Signal 0 = existence check, no side effects
            return True
        except ProcessLookupError:
            return False
        except PermissionError:
            # Exists, but belongs to someone else
            return True

    def is_own_process(self, pid: int) -> bool:
        """Checks that PID belongs to a voice-transcribe process (PID recycling).

        If `ps` cannot be run at all we cannot tell, and assume it is ours.
        """
        try:
            result = subprocess.run(
                ["ps", "-p", str(pid), "-o", "command="],
                capture_output=True,
                text=True,
                timeout=1,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            logger.debug(f"ps not usable ({e}), assuming PID {pid} is ours")
            return True

        if result.returncode != 0:
            return False
        command = result.stdout.strip()
        return any(marker in command for marker in PROCESS_MARKERS)

    def stop(self, pid: int) -> bool:
        """Asks the daemon to stop and transcribe via SIGUSR1.

        Returns:
            True if the signal was delivered
        """
        try:
            os.kill(pid, STOP_SIGNAL)
            logger.debug(f"SIGUSR1 sent to PID {pid}")
            return True
        except ProcessLookupError:
            logger.debug(f"Process {pid} is gone")
            return False
        except PermissionError:
            logger.error(f"No permission to signal PID {pid}")
            return False


def get_daemon_controller() -> PosixDaemonController:
    return PosixDaemonController()


__all__ = [
    "PosixDaemonController",
    "get_daemon_controller",
    "PROCESS_MARKERS",
    "STOP_SIGNAL",
]
