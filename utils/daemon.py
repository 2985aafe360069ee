"""
Single-instance control and daemonizing.

The identity file (PID file) turns a second invocation into a stop command:
    absent          -> we become the owner and start recording
    live PID        -> send SIGUSR1 to it and exit
    stale/garbage   -> remove it and become the owner
"""

import logging
import os
import sys
import time
from pathlib import Path

from utils.logging import get_session_id

logger = logging.getLogger("voice_transcribe")


class DaemonizeError(Exception):
    """Backgrounding failed (fork or setsid)."""


class InstanceController:
    """Owns the identity file protocol.

    Usage:
        instance = InstanceController(PID_FILE)
        pid = instance.find_running()
        if pid:
            instance.request_stop(pid)
        elif instance.claim():
            ...  # record, then instance.release()
    """

    def __init__(self, pid_file: Path, controller=None) -> None:
        from voice_platform import get_daemon_controller

        self.pid_file = pid_file
        self.controller = controller or get_daemon_controller()

    def read_pid(self) -> int | None:
        """PID from the identity file, None if absent.

        Raises:
            ValueError: File content is not a PID
        """
        try:
            content = self.pid_file.read_text().strip()
        except FileNotFoundError:
            return None
        pid = int(content)
        if pid <= 0:
            raise ValueError(f"Invalid PID: {pid}")
        return pid

    def find_running(self) -> int | None:
        """Returns the PID of a live recorder, removing stale identity files."""
        try:
            pid = self.read_pid()
        except ValueError:
            logger.info(f"[{get_session_id()}] Invalid PID file removed: {self.pid_file}")
            self.pid_file.unlink(missing_ok=True)
            return None
        except OSError as e:
            # Unreadable: leave it, claim() will refuse to overwrite it
            logger.error(f"[{get_session_id()}] Cannot read PID file {self.pid_file}: {e}")
            return None

        if pid is None:
            return None

        if not self.controller.is_running(pid):
            logger.info(
                f"[{get_session_id()}] Stale PID file removed (process {pid} gone): "
                f"{self.pid_file}"
            )
            self.pid_file.unlink(missing_ok=True)
            return None

        if not self.controller.is_own_process(pid):
            logger.warning(
                f"[{get_session_id()}] PID {pid} is not a voice-transcribe process, "
                f"removing PID file only (PID recycling?)"
            )
            self.pid_file.unlink(missing_ok=True)
            return None

        return pid

    def request_stop(self, pid: int) -> bool:
        """Sends the graceful stop signal to the running recorder."""
        sent = self.controller.stop(pid)
        if sent:
            logger.info(f"[{get_session_id()}] Stop requested for PID {pid}")
        return sent

    def claim(self) -> bool:
        """Creates the identity file exclusively with our PID.

        Returns:
            False if another invocation created it first
        """
        self.pid_file.parent.mkdir(parents=True, exist_ok=True)
        try:
            fd = os.open(self.pid_file, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        except FileExistsError:
            return False
        with os.fdopen(fd, "w") as f:
            f.write(f"{os.getpid()}\n")
        return True

    def write_pid(self, pid: int) -> None:
        """Replaces the identity file content (launcher PID -> daemon PID)."""
        tmp_path = self.pid_file.with_name(f"{self.pid_file.name}.tmp")
        tmp_path.write_text(f"{pid}\n")
        tmp_path.replace(self.pid_file)

    def wait_for_daemon_pid(self, timeout: float = 1.0) -> int | None:
        """Launcher side: waits until the daemon has written its own PID."""
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            try:
                pid = self.read_pid()
            except ValueError:
                pid = None
            if pid and pid != os.getpid():
                return pid
            time.sleep(0.02)
        return None

    def release(self) -> None:
        """Removes the identity file. Called unconditionally by the owner on exit."""
        try:
            self.pid_file.unlink(missing_ok=True)
        except OSError as e:
            logger.error(f"[{get_session_id()}] Cannot remove PID file {self.pid_file}: {e}")


def _redirect_std_streams() -> None:
    """Points stdin/stdout/stderr at /dev/null."""
    devnull = os.open(os.devnull, os.O_RDWR)
    for fd in (0, 1, 2):
        os.dup2(devnull, fd)
    if devnull > 2:
        os.close(devnull)


def daemonize(instance: InstanceController, prepare=None) -> bool:
    """
    Double fork into a detached recorder process.

    The launcher waits for the intermediate child only, so it returns quickly
    and no zombie is left behind. The grandchild runs `prepare` (signal
    handlers), then writes its PID into the identity file and detaches from
    the terminal.

    Returns:
        True in the daemon process, False in the launcher

    Raises:
        DaemonizeError: fork or setsid failed (launcher side)
    """
    sys.stdout.flush()
    sys.stderr.flush()

    try:
        pid = os.fork()
    except OSError as e:
        raise DaemonizeError(f"Fork failed: {e}") from e

    if pid > 0:
        # Launcher: the intermediate child exits right after the second fork
        _, status = os.waitpid(pid, 0)
        if os.waitstatus_to_exitcode(status) != 0:
            raise DaemonizeError("Could not create background session")
        return False

    # Intermediate child: become session leader, then fork the real daemon
    try:
        os.setsid()
        pid = os.fork()
    except OSError:
        os._exit(1)
    if pid > 0:
        os._exit(0)

    # Grandchild: the actual daemon. Ready for a stop signal before anyone
    # can read our PID.
    if prepare is not None:
        prepare()
    instance.write_pid(os.getpid())
    _redirect_std_streams()
    return True


__all__ = ["DaemonizeError", "InstanceController", "daemonize"]
