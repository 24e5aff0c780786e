# tests/test_watcher.py: Unit tests for fingerprints, the reload channel and the change detector.

import os
import time
import queue
import pytest
from pathlib import Path

from hotswap.errors import WatchError
from hotswap.supervisor import watcher
from hotswap.supervisor.events import EventKind
from hotswap.supervisor.watcher import (
    ABSENT, ChangeDetector, FileFingerprint, ReloadChannel, has_changed, take_fingerprint
)
from tests.helpers import wait_for

PRESENT = FileFingerprint(exists=True, created=100, inode=7)


def make_detector(path: Path, interval: float = 0.05):
    events = queue.Queue()
    channel = ReloadChannel(events)
    return ChangeDetector(path, interval, channel), channel, events

def drain(events: queue.Queue) -> list:
    items = []
    while True:
        try:
            items.append(events.get_nowait())
        except queue.Empty:
            return items

#* --- Fingerprints ---
def test_take_fingerprint_present(tmp_path: Path):
    binary = tmp_path / "app"
    binary.write_text("v1")

    fingerprint = take_fingerprint(binary)

    assert fingerprint.exists
    assert isinstance(fingerprint.created, int)
    assert fingerprint.inode == os.stat(binary).st_ino

def test_take_fingerprint_absent(tmp_path: Path):
    assert take_fingerprint(tmp_path / "app") == ABSENT

def test_take_fingerprint_permission_error(tmp_path: Path, monkeypatch):
    """Stat failures other than absence are raised as WatchError."""
    binary = tmp_path / "app"
    real_stat = os.stat

    def fake_stat(path, *args, **kwargs):
        if Path(path) == binary:
            raise PermissionError(13, "Permission denied")
        return real_stat(path, *args, **kwargs)

    monkeypatch.setattr(watcher.os, "stat", fake_stat)
    with pytest.raises(WatchError, match="Permission denied"):
        take_fingerprint(binary)

@pytest.mark.parametrize("before, after, expected", [
    (ABSENT, ABSENT, False),
    (ABSENT, PRESENT, False),
    (PRESENT, ABSENT, False),
    (PRESENT, PRESENT, False),
    (PRESENT, PRESENT._replace(created=101), True),
    (PRESENT, PRESENT._replace(inode=8), True),
])
def test_has_changed(before, after, expected):
    assert has_changed(before, after) is expected

#* --- Reload channel ---
def test_reload_channel_coalesces():
    """Only one event is queued while a reload is pending."""
    events = queue.Queue()
    channel = ReloadChannel(events)

    assert channel.notify() is True
    assert channel.notify() is False
    assert channel.pending

    queued = drain(events)
    assert [e.kind for e in queued] == [EventKind.RELOAD]

def test_reload_channel_consume_and_clear():
    events = queue.Queue()
    channel = ReloadChannel(events)
    channel.notify()

    assert channel.consume() is True
    assert channel.consume() is False

    channel.notify()
    channel.clear()
    assert not channel.pending
    assert channel.notify() is True
    assert len(drain(events)) == 2

#* --- Detector ---
def test_check_emits_once_per_change(tmp_path: Path):
    detector, channel, events = make_detector(tmp_path / "app")

    assert detector.check(PRESENT, PRESENT._replace(created=101)) is True
    assert detector.check(PRESENT, PRESENT) is False

    assert detector.reloads_emitted == 1
    assert [e.kind for e in drain(events)] == [EventKind.RELOAD]

@pytest.mark.parametrize("before, after", [(ABSENT, ABSENT), (ABSENT, PRESENT), (PRESENT, ABSENT)])
def test_check_tolerates_absence(tmp_path: Path, before, after):
    detector, channel, events = make_detector(tmp_path / "app")

    assert detector.check(before, after) is False
    assert drain(events) == []
    assert not channel.pending

def test_detector_reports_replaced_file(tmp_path: Path):
    """Replacing the watched file with a new one produces exactly one reload."""
    binary = tmp_path / "app"
    binary.write_text("v1")
    detector, channel, events = make_detector(binary)
    detector.start()
    try:
        assert wait_for(lambda: detector.samples >= 1)
        replacement = tmp_path / "app.new"
        replacement.write_text("v2")
        os.replace(replacement, binary)

        event = events.get(timeout=5)
        assert event.kind is EventKind.RELOAD
        assert wait_for(lambda: detector.reloads_emitted >= 1)
    finally:
        detector.stop(timeout=5)

    assert detector.reloads_emitted == 1
    assert detector.error is None

def test_detector_tolerates_missing_file(tmp_path: Path):
    binary = tmp_path / "app"
    detector, channel, events = make_detector(binary, interval=0.01)
    detector.start()
    try:
        with pytest.raises(queue.Empty):
            events.get(timeout=0.2)
        assert detector.is_alive()
    finally:
        detector.stop(timeout=5)

    assert detector.error is None
    assert not detector.is_alive()

def test_detector_stops_on_watch_error(tmp_path: Path, monkeypatch):
    """An unreadable file ends the detector thread and leaves the error on the detector."""
    binary = tmp_path / "app"
    binary.write_text("v1")

    def failing_fingerprint(path):
        raise WatchError(f"Cannot inspect {path}: Permission denied")

    monkeypatch.setattr(watcher, "take_fingerprint", failing_fingerprint)
    detector, channel, events = make_detector(binary, interval=0.01)
    detector.start()

    assert wait_for(lambda: not detector.is_alive())
    assert isinstance(detector.error, WatchError)
    assert drain(events) == []

def test_observe_reloads_after_delete_and_recreate(tmp_path: Path):
    """A file that disappears and comes back as a new file is reloaded once it is present twice."""
    detector, channel, events = make_detector(tmp_path / "app")
    rebuilt = PRESENT._replace(created=105, inode=8)

    assert detector.observe(PRESENT) is False
    assert detector.observe(ABSENT) is False
    assert detector.observe(ABSENT) is False
    assert detector.observe(rebuilt) is False
    assert drain(events) == []

    assert detector.observe(rebuilt) is True
    assert detector.observe(rebuilt) is False
    assert [e.kind for e in drain(events)] == [EventKind.RELOAD]

def test_observe_same_file_after_gap_is_not_a_change(tmp_path: Path):
    detector, channel, events = make_detector(tmp_path / "app")

    for sample in (PRESENT, ABSENT, PRESENT, PRESENT):
        assert detector.observe(sample) is False
    assert drain(events) == []

def test_observe_file_created_after_start_is_not_a_change(tmp_path: Path):
    """Without an earlier present sample there is nothing to compare a new file against."""
    detector, channel, events = make_detector(tmp_path / "app")

    for sample in (ABSENT, PRESENT, PRESENT):
        assert detector.observe(sample) is False
    assert detector.observe(PRESENT._replace(inode=8)) is True

def test_detector_reports_recreated_file(tmp_path: Path):
    """Deleting the file, letting the detector see it missing, then rebuilding it produces a reload."""
    binary = tmp_path / "app"
    binary.write_text("v1")
    detector, channel, events = make_detector(binary)
    detector.start()
    try:
        assert wait_for(lambda: detector.samples >= 1)
        binary.unlink()
        seen = detector.samples
        assert wait_for(lambda: detector.samples >= seen + 2)
        assert drain(events) == []
        # A new creation second, in case the filesystem hands the old inode back.
        time.sleep(1.1)

        replacement = tmp_path / "app.new"
        replacement.write_text("v2")
        os.replace(replacement, binary)

        event = events.get(timeout=5)
        assert event.kind is EventKind.RELOAD
    finally:
        detector.stop(timeout=5)

    assert detector.reloads_emitted == 1
    assert detector.error is None
