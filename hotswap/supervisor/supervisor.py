import queue
import signal
import logging
import threading
from enum import Enum
from typing import Optional

from hotswap import settings
from hotswap.config import TargetSpec
from hotswap.supervisor import shutdown
from hotswap.supervisor.events import EventKind, SupervisorEvent
from hotswap.supervisor.process_utils import ChildHandle, ProcessLauncher
from hotswap.supervisor.signals import SignalWatcher
from hotswap.supervisor.watcher import ChangeDetector, ReloadChannel

log = logging.getLogger(__name__)


class SupervisorState(Enum):
    IDLE = "idle"
    SPAWNING = "spawning"
    RUNNING = "running"
    RESTARTING = "restarting"
    SHUTTING_DOWN = "shutting_down"


class Supervisor:
    """
    Keeps exactly one instance of the target running.

    Each loop iteration spawns a child, then waits on a single event queue fed
    by three sources: the child's waiter thread, the change detector and the
    signal watcher. The first relevant event decides the iteration: an exit
    respawns, a reload kills and respawns, a termination signal kills and
    ends the loop.
    """

    def __init__(
        self,
        spec: TargetSpec,
        launcher: Optional[ProcessLauncher] = None,
        detector: Optional[ChangeDetector] = None,
        signal_watcher: Optional[SignalWatcher] = None,
        events: Optional["queue.Queue[SupervisorEvent]"] = None
    ) -> None:
        self.spec = spec
        self.events: "queue.Queue[SupervisorEvent]" = events if events is not None else queue.Queue()
        self.reloads = ReloadChannel(self.events)
        self.launcher = launcher or ProcessLauncher(spec)
        self.detector = detector or ChangeDetector(spec.binary_path, spec.poll_interval, self.reloads)
        self.signal_watcher = signal_watcher or SignalWatcher(self.events)

        self.state = SupervisorState.IDLE
        self.child: Optional[ChildHandle] = None
        self.restarts = 0

    #* --- Loop steps ---
    def _spawn(self) -> ChildHandle:
        """Starts the next child. Reload notifications up to this point are satisfied by it."""
        self.state = SupervisorState.SPAWNING
        self.reloads.clear()
        child = self.launcher.spawn()
        self.child = child
        threading.Thread(
            target=self._await_exit, args=(child,), daemon=True, name=f"ChildWaiter-{child.pid}"
        ).start()
        self.state = SupervisorState.RUNNING
        return child

    def _await_exit(self, child: ChildHandle) -> None:
        child.wait()
        self.events.put(SupervisorEvent(EventKind.CHILD_EXITED, child=child))

    def _next_event(self, child: ChildHandle) -> SupervisorEvent:
        """
        Blocks until the first event that applies to the current child.

        Exit events of earlier children and reload notifications already
        satisfied by a spawn are dropped.
        """
        while True:
            event = self.events.get()
            if event.kind is EventKind.CHILD_EXITED and event.child is not child:
                log.debug(f"Ignoring exit of previous child {event.child!r}")
                continue
            if event.kind is EventKind.RELOAD and not self.reloads.consume():
                log.debug("Ignoring reload already handled by the last spawn")
                continue
            return event

    def _handle_exit(self, child: ChildHandle) -> None:
        returncode = child.wait()
        binary = self.spec.binary_path
        if returncode == 0:
            log.info(f"{binary} exited with success")
        elif returncode < 0:
            try:
                signame = signal.Signals(-returncode).name
            except ValueError:
                signame = str(-returncode)
            log.error(f"{binary} was terminated by signal {signame}")
        else:
            log.error(f"{binary} exited with error code {returncode}")
        self.child = None

    def _handle_reload(self, child: ChildHandle) -> None:
        log.info(f"{self.spec.binary_path} changed, killing PID {child.pid}")
        shutdown.kill_child(child)
        self.child = None

    def _handle_terminate(self, child: Optional[ChildHandle], signum: Optional[int]) -> None:
        self.state = SupervisorState.SHUTTING_DOWN
        if signum is not None:
            log.info(f"Shutting down on {signal.Signals(signum).name}")
        if child is not None:
            log.info(f"Killing PID {child.pid} before exiting")
            shutdown.kill_child(child)
        self.child = None

    #* --- Public API ---
    def step(self) -> EventKind:
        """
        Runs one loop iteration: spawn, wait for the first event, apply its policy.

        :return EventKind: The event that resolved the iteration.
        """
        child = self._spawn()
        event = self._next_event(child)

        if event.kind is EventKind.TERMINATE:
            self._handle_terminate(child, event.signum)
        else:
            self.state = SupervisorState.RESTARTING
            if event.kind is EventKind.RELOAD:
                self._handle_reload(child)
            else:
                self._handle_exit(child)
            self.restarts += 1
        return event.kind

    def run(self) -> int:
        """
        Supervises the target until a termination signal arrives.

        :return int: The process exit status, 0 on signal-driven shutdown.
        :raises HotswapError: On any fatal configuration or spawn error.
        """
        log.info(f"Supervising {self.spec.binary_path} (arguments from {self.spec.args_path})")
        self.signal_watcher.install()
        self.detector.start()
        try:
            while self.step() is not EventKind.TERMINATE:
                pass
        finally:
            if self.child is not None:
                # Fatal error mid-iteration: never leave an orphan behind.
                shutdown.kill_child(self.child)
                self.child = None
            self.detector.stop(timeout=settings.DETECTOR_JOIN_TIMEOUT)
            self.signal_watcher.uninstall()
            if self.detector.error is not None:
                log.error(f"Change detection had failed: {self.detector.error}")

        log.info(f"Supervisor stopped after {self.restarts} restarts")
        return 0
