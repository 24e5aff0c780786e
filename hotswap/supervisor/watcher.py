import os
import queue
import logging
import threading
from pathlib import Path
from typing import NamedTuple, Optional

from hotswap.errors import WatchError
from hotswap.supervisor.events import EventKind, SupervisorEvent

log = logging.getLogger(__name__)


class FileFingerprint(NamedTuple):
    """Existence and identity of the watched file at one poll instant."""
    exists: bool
    created: Optional[int] = None
    inode: Optional[int] = None


ABSENT = FileFingerprint(exists=False)


def take_fingerprint(path: Path) -> FileFingerprint:
    """
    Samples the file's existence, creation time and inode.

    The creation time is `st_birthtime` where the platform reports it and
    `st_ctime` otherwise, rounded to whole seconds.

    :param path: The watched file.
    :return FileFingerprint: The sample; `ABSENT` when the file does not exist.
    :raises WatchError: On any stat failure other than the file being absent.
    """
    try:
        st = os.stat(path)
    except FileNotFoundError:
        return ABSENT
    except OSError as e:
        raise WatchError(f"Cannot inspect {path}: {e.strerror or e}") from e

    created = getattr(st, "st_birthtime", None)
    if created is None:
        created = st.st_ctime
    return FileFingerprint(exists=True, created=round(created), inode=st.st_ino)


def has_changed(before: FileFingerprint, after: FileFingerprint) -> bool:
    """
    Decides whether two present samples describe a replaced file.

    An absent sample on either side never counts as a change: the build is
    assumed to be mid-rewrite.
    """
    if not (before.exists and after.exists):
        return False
    return before.created != after.created or before.inode != after.inode


class ReloadChannel:
    """
    Coalescing reload notifications from the detector to the supervisor.

    At most one RELOAD event is queued per pending period. The pending flag is
    cleared when the supervisor starts a spawn, so a notification means
    "the file changed at least once since the last spawn".
    """

    def __init__(self, events: "queue.Queue[SupervisorEvent]"):
        self._events = events
        self._lock = threading.Lock()
        self._pending = False

    @property
    def pending(self) -> bool:
        with self._lock:
            return self._pending

    def notify(self) -> bool:
        """Flags a reload. Returns False when it coalesced into one already pending."""
        with self._lock:
            if self._pending:
                return False
            self._pending = True
        self._events.put(SupervisorEvent(EventKind.RELOAD))
        return True

    def consume(self) -> bool:
        """Takes the pending flag. Returns False for a notification already consumed by a spawn."""
        with self._lock:
            pending = self._pending
            self._pending = False
        return pending

    clear = consume


class ChangeDetector:
    """
    Polls one file at a fixed interval and notifies the reload channel when
    two consecutive present samples show that the file was replaced.

    While the file is missing, the last present sample is kept as the
    baseline. The first present/present pair after the file reappears is
    compared against it, so a delete-and-recreate build still reloads.
    """

    def __init__(self, path: Path, interval: float, channel: ReloadChannel):
        self.path = path
        self.interval = interval
        self.channel = channel
        self.error: Optional[WatchError] = None
        self.reloads_emitted = 0
        self.samples = 0
        self._previous: Optional[FileFingerprint] = None
        self._baseline: Optional[FileFingerprint] = None
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        """Starts the polling thread."""
        self._stop_event.clear()
        self._previous = self._baseline = None
        self._thread = threading.Thread(target=self.run, daemon=True, name="ChangeDetectorThread")
        self._thread.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop_event.set()
        if self._thread and self._thread.is_alive() and self._thread is not threading.current_thread():
            self._thread.join(timeout=timeout)

    def is_alive(self) -> bool:
        return bool(self._thread and self._thread.is_alive())

    def check(self, before: FileFingerprint, after: FileFingerprint) -> bool:
        """
        Compares two samples, logs transitions and emits a reload on change.

        :return bool: True if a change was detected.
        """
        if not before.exists and not after.exists:
            log.debug(f"{self.path} is absent, waiting for it to reappear")
            return False
        if before.exists != after.exists:
            state = "disappeared" if before.exists else "appeared"
            log.info(f"{self.path} {state}, assuming it is being rewritten")
            return False
        if not has_changed(before, after):
            return False

        log.info(f"{self.path} was replaced, requesting reload")
        self.reloads_emitted += 1
        if not self.channel.notify():
            log.debug("Reload already pending, notification coalesced")
        return True

    def observe(self, current: FileFingerprint) -> bool:
        """
        Feeds one sample to the detector.

        Present/present pairs are checked against the baseline, which is the
        previous sample or, after a gap, the last sample taken before the file
        went missing. Pairs involving an absent sample are only logged.

        :return bool: True if a reload was requested for this sample.
        """
        previous, baseline = self._previous, self._baseline
        self._previous = current
        self.samples += 1
        if previous is None:
            self._baseline = current if current.exists else None
            return False

        if previous.exists and current.exists and baseline is not None:
            changed = self.check(baseline, current)
        else:
            changed = self.check(previous, current)

        if current.exists and (previous.exists or baseline is None):
            self._baseline = current
        return changed

    def run(self) -> None:
        """
        Polling loop. Ends when stop() is called or when the file cannot be inspected.
        """
        log.debug(f"Watching {self.path} every {self.interval}s")
        try:
            self.observe(take_fingerprint(self.path))
            while not self._stop_event.wait(self.interval):
                self.observe(take_fingerprint(self.path))
        except WatchError as e:
            self.error = e
            log.error(f"Change detection stopped: {e}")
