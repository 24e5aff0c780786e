import sys
import errno
import logging
import threading
import subprocess
from typing import Any, Callable, Dict, List, Optional

import psutil

from hotswap import settings
from hotswap.config import TargetSpec
from hotswap.errors import SpawnError, SpawnRetryExhaustedError
from hotswap.supervisor.args_loader import load_arguments

log = logging.getLogger(__name__)

# errno for "Text file busy": the binary is still open for writing by the build.
ETXTBSY = errno.ETXTBSY


class ChildHandle:
    """
    The single running (or exited) instance of the target.

    Owned by the supervisor for one loop iteration. The psutil view is taken at
    spawn time so a later kill cannot hit a recycled PID.
    """

    def __init__(self, process: subprocess.Popen, name: str):
        self.process = process
        self.pid: int = process.pid
        self.name = name
        try:
            self.proc: Optional[psutil.Process] = psutil.Process(process.pid)
        except psutil.NoSuchProcess:
            self.proc = None

    def wait(self, timeout: Optional[float] = None) -> int:
        """Blocks until the child exits and returns its exit code (negative for a signal on POSIX)."""
        return self.process.wait(timeout=timeout)

    def poll(self) -> Optional[int]:
        return self.process.poll()

    @property
    def returncode(self) -> Optional[int]:
        return self.process.returncode

    def __repr__(self) -> str:
        return f"<ChildHandle {self.name} pid={self.pid}>"


#* --- Output relay ---
def _read_pipe(pipe, child_name: str, level: int) -> None:
    """Target function for reader threads. Relays lines from a child pipe to the `proc.` logger."""
    proc_logger = logging.getLogger(f"proc.{child_name}")
    try:
        for line_bytes in iter(pipe.readline, b""):
            line = line_bytes.decode("utf-8", errors="replace").rstrip()
            if line:
                proc_logger.log(level, line)
    except (OSError, ValueError) as e:
        proc_logger.debug(f"Pipe reader for {child_name} stream exited: {e}")
    finally:
        pipe.close()


def log_process_output(process: subprocess.Popen, child_name: str) -> None:
    """Starts daemon threads that drain the child's stdout (INFO) and stderr (ERROR)."""
    if process.stdout:
        threading.Thread(
            target=_read_pipe, args=(process.stdout, child_name, logging.INFO),
            daemon=True, name=f"{child_name}-stdout"
        ).start()
    if process.stderr:
        threading.Thread(
            target=_read_pipe, args=(process.stderr, child_name, logging.ERROR),
            daemon=True, name=f"{child_name}-stderr"
        ).start()


#* --- Process Creation ---
def get_popen_kwargs(capture_output: bool) -> Dict[str, Any]:
    """
    Returns the platform-specific keyword arguments for subprocess.Popen.

    On POSIX the child gets its own session so a terminal Ctrl+C reaches only
    the supervisor. On Windows the child gets its own process group.

    :param capture_output: Pipe stdout/stderr instead of inheriting them.
    :return dict: Keyword arguments for Popen.
    """
    kwargs: Dict[str, Any] = {"stdin": subprocess.DEVNULL}
    if sys.platform == "win32":
        kwargs["creationflags"] = subprocess.CREATE_NEW_PROCESS_GROUP
    else:
        kwargs["start_new_session"] = True
    if capture_output:
        kwargs["stdout"] = subprocess.PIPE
        kwargs["stderr"] = subprocess.PIPE
    return kwargs


class ProcessLauncher:
    """Starts the target described by a TargetSpec, retrying while its image is busy."""

    def __init__(
        self,
        spec: TargetSpec,
        max_attempts: Optional[int] = None,
        capture_output: Optional[bool] = None,
        popen: Callable[..., subprocess.Popen] = subprocess.Popen
    ):
        self.spec = spec
        self.max_attempts = settings.MAX_SPAWN_ATTEMPTS if max_attempts is None else max_attempts
        self.capture_output = settings.CAPTURE_CHILD_OUTPUT if capture_output is None else capture_output
        self._popen = popen
        self.attempts = 0

    def build_command(self) -> List[str]:
        """Reads the arguments file and returns the full command line."""
        return [str(self.spec.binary_path), *load_arguments(self.spec.args_path)]

    def spawn(self) -> ChildHandle:
        """
        Starts one instance of the target.

        The arguments file is read on every call. A busy binary is retried
        immediately, up to `max_attempts` attempts in total.

        :return ChildHandle: The handle of the started child.
        :raises ArgsFileNotFoundError: If the arguments file is missing.
        :raises SpawnError: On any non-busy OS error.
        :raises SpawnRetryExhaustedError: If every attempt found the binary busy.
        """
        command = self.build_command()
        name = self.spec.binary_path.name
        popen_kwargs = get_popen_kwargs(self.capture_output)
        log.info(f'Running command "{" ".join(command)}"')

        self.attempts = 0
        while self.attempts < self.max_attempts:
            self.attempts += 1
            try:
                process = self._popen(command, **popen_kwargs)
            except OSError as e:
                if e.errno == ETXTBSY:
                    log.debug(f"{self.spec.binary_path} is busy (attempt {self.attempts}/{self.max_attempts})")
                    continue
                raise SpawnError(f"Failed to start {self.spec.binary_path}: {e.strerror or e}") from e

            if self.attempts > 1:
                log.info(f"{name} was busy, started after {self.attempts} attempts")
            child = ChildHandle(process, name)
            if self.capture_output:
                log_process_output(process, name)
            log.info(f"{name} started with PID: {child.pid}")
            return child

        raise SpawnRetryExhaustedError(
            f"{self.spec.binary_path} was still busy after {self.max_attempts} attempts"
        )
