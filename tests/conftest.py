# tests/conftest.py: Shared fixtures for the supervisor tests.

from pathlib import Path

import pytest

from hotswap.config import TargetSpec


@pytest.fixture
def target(tmp_path: Path) -> TargetSpec:
    """A TargetSpec for tmp_path/app with tmp_path/app.args containing `--port 8080`."""
    binary = tmp_path / "app"
    binary.write_text("")
    args = tmp_path / "app.args"
    args.write_text("--port 8080\n")
    return TargetSpec(binary_path=binary, args_path=args, poll_interval=0.05)


