import queue
import signal
import socket
import logging
import threading
from typing import Any, Dict, Optional, Tuple

from hotswap.supervisor.events import EventKind, SupervisorEvent

log = logging.getLogger(__name__)


def termination_signals() -> Tuple[int, ...]:
    """SIGINT, SIGTERM and, where the platform has it, SIGHUP."""
    signals = [signal.SIGINT, signal.SIGTERM]
    if hasattr(signal, "SIGHUP"):
        signals.append(signal.SIGHUP)
    return tuple(signals)


class SignalWatcher:
    """
    Turns the first termination signal into a TERMINATE event.

    The Python-level handler only records the signal; delivery goes through
    `signal.set_wakeup_fd` into a socket pair that a relay thread reads, so the
    event queue is never touched from inside a signal handler. All three
    signals are treated alike.
    """

    def __init__(self, events: "queue.Queue[SupervisorEvent]"):
        self._events = events
        self._previous_handlers: Dict[int, Any] = {}
        self._previous_wakeup_fd = -1
        self._reader: Optional[socket.socket] = None
        self._writer: Optional[socket.socket] = None
        self._relay: Optional[threading.Thread] = None
        self.received: Optional[int] = None

    @property
    def installed(self) -> bool:
        return self._reader is not None

    def install(self) -> None:
        """
        Subscribes to the termination signals. Must be called from the main thread.
        """
        if self.installed:
            return

        self._reader, self._writer = socket.socketpair()
        self._reader.setblocking(True)
        self._writer.setblocking(False)
        self._previous_wakeup_fd = signal.set_wakeup_fd(self._writer.fileno())

        for signum in termination_signals():
            self._previous_handlers[signum] = signal.signal(signum, self._handle)

        self._relay = threading.Thread(target=self._relay_signals, daemon=True, name="SignalRelayThread")
        self._relay.start()
        log.debug("Termination signal handlers installed")

    def _handle(self, signum, frame) -> None:
        if self.received is None:
            self.received = signum

    def _relay_signals(self) -> None:
        """
        Drains the wakeup socket until it is closed and posts TERMINATE for the
        first termination signal only.
        """
        watched = set(termination_signals())
        reader = self._reader
        posted = False
        while reader is not None:
            try:
                data = reader.recv(64)
            except OSError:
                return
            if not data:
                return
            for signum in data:
                if signum not in watched:
                    continue
                if posted:
                    log.debug(f"Already shutting down, ignoring {signal.Signals(signum).name}")
                    continue
                log.info(f"Received signal {signal.Signals(signum).name}")
                self._events.put(SupervisorEvent(EventKind.TERMINATE, signum=signum))
                posted = True

    def uninstall(self) -> None:
        """Restores the previous handlers and wakeup fd, and closes the socket pair."""
        if not self.installed:
            return

        for signum, handler in self._previous_handlers.items():
            signal.signal(signum, handler)
        self._previous_handlers.clear()
        signal.set_wakeup_fd(self._previous_wakeup_fd)

        for sock in (self._writer, self._reader):
            if sock is not None:
                try:
                    sock.shutdown(socket.SHUT_RDWR)
                except OSError:
                    pass
                sock.close()
        self._reader = self._writer = None
        log.debug("Termination signal handlers restored")
