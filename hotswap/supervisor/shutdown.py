import logging
from typing import TYPE_CHECKING, List, Optional

import psutil

if TYPE_CHECKING:
    from .process_utils import ChildHandle

log = logging.getLogger(__name__)


def _collect_descendants(child: "ChildHandle") -> List[psutil.Process]:
    """Returns every process the child started, as seen before the kill."""
    if child.proc is None:
        return []
    try:
        return child.proc.children(recursive=True)
    except psutil.NoSuchProcess:
        log.debug(f"Process {child.pid} no longer exists, skipping children retrieval.")
        return []


def _kill_descendants(processes: List[psutil.Process]) -> None:
    """Forcefully kills processes left behind by the child (e.g. by a wrapper script)."""
    if not processes:
        return

    for proc in processes:
        try:
            log.debug(f"Killing descendant process {proc.pid}.")
            proc.kill()
        except psutil.NoSuchProcess:
            continue


def kill_child(child: Optional["ChildHandle"]) -> Optional[int]:
    """
    Forcefully kills the child, together with the processes it started, and reaps it.

    There is no SIGTERM grace period: the child is sent SIGKILL (TerminateProcess
    on Windows). A child that already exited is only reaped.

    :param child: The handle to kill, or None when nothing is running.
    :return int: The child's final return code, or None if there was no child.
    """
    if child is None:
        return None

    if child.poll() is None:
        descendants = _collect_descendants(child)
        log.warning(f"Killing {child.name} (PID {child.pid}).")
        try:
            if child.proc is not None:
                child.proc.kill()
            else:
                child.process.kill()
        except psutil.NoSuchProcess:
            log.debug(f"Process {child.pid} no longer exists, skipping forceful kill.")
        _kill_descendants(descendants)
    else:
        log.debug(f"{child.name} (PID {child.pid}) already exited, reaping only.")

    returncode = child.wait()
    log.debug(f"{child.name} (PID {child.pid}) reaped with code {returncode}")
    return returncode
