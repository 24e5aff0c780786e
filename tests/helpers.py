# tests/helpers.py: Fakes and helpers shared by the supervisor tests.

import os
import sys
import stat
import time
import threading
from pathlib import Path
from typing import Callable, List, Optional

import pytest


posix_only = pytest.mark.skipif(sys.platform == "win32", reason="uses /bin/sh scripts and POSIX signals")


def wait_for(predicate: Callable[[], bool], timeout: float = 5.0, interval: float = 0.02) -> bool:
    """Polls `predicate` until it is true or the timeout expires."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


def write_script(path: Path, body: str) -> Path:
    """Writes an executable /bin/sh script through a fresh file, so the path gets a new inode."""
    tmp = path.with_name(path.name + ".new")
    tmp.write_text("#!/bin/sh\n" + body)
    tmp.chmod(tmp.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    os.replace(tmp, path)
    return path


class FakeProc:
    """Stands in for psutil.Process on a FakeChild."""

    def __init__(self, child: "FakeChild"):
        self.child = child

    def children(self, recursive: bool = False) -> list:
        return []

    def kill(self) -> None:
        self.child.finish(-9)


class FakeChild:
    """A ChildHandle look-alike whose exit is driven by the test."""

    def __init__(self, pid: int, launcher: "FakeLauncher"):
        self.pid = pid
        self.name = "app"
        self.launcher = launcher
        self.proc = FakeProc(self)
        self.process = None
        self._exited = threading.Event()
        self._code: Optional[int] = None

    def finish(self, code: int) -> None:
        if not self._exited.is_set():
            self._code = code
            self._exited.set()
            self.launcher.live.discard(self.pid)

    def wait(self, timeout: Optional[float] = None) -> int:
        if not self._exited.wait(timeout):
            raise TimeoutError(f"fake child {self.pid} still running")
        return self._code

    def poll(self) -> Optional[int]:
        return self._code if self._exited.is_set() else None

    @property
    def killed(self) -> bool:
        return self._code == -9


class FakeLauncher:
    """
    Hands out FakeChild objects and records the live set so tests can assert
    that two children never overlap. `on_spawn(n, child)` scripts each iteration.
    """

    def __init__(self, on_spawn: Optional[Callable[[int, FakeChild], None]] = None):
        self.on_spawn = on_spawn
        self.children: List[FakeChild] = []
        self.live = set()
        self.max_live = 0

    def spawn(self) -> FakeChild:
        child = FakeChild(pid=1000 + len(self.children), launcher=self)
        self.children.append(child)
        self.live.add(child.pid)
        self.max_live = max(self.max_live, len(self.live))
        if self.on_spawn:
            self.on_spawn(len(self.children), child)
        return child


class FakeDetector:
    def __init__(self):
        self.started = False
        self.stopped = False
        self.error = None

    def start(self) -> None:
        self.started = True

    def stop(self, timeout: Optional[float] = None) -> None:
        self.stopped = True


class FakeSignalWatcher:
    def __init__(self):
        self.installed = False
        self.uninstalled = False

    def install(self) -> None:
        self.installed = True

    def uninstall(self) -> None:
        self.uninstalled = True
