import logging
from pathlib import Path
from typing import NamedTuple, Optional, Union

from hotswap import settings
from hotswap.errors import ConfigError

log = logging.getLogger(__name__)

PathLike = Union[str, Path]


class TargetSpec(NamedTuple):
    """The supervised executable, its arguments file and the watch interval."""
    binary_path: Path
    args_path: Path
    poll_interval: float


def default_args_path(binary_path: Path) -> Path:
    """
    Returns the arguments file path used when none is given.

    The binary's extension is replaced (or added) with `settings.ARGS_EXTENSION`,
    so `/tmp/app` becomes `/tmp/app.args` and `build/app.exe` becomes `build/app.args`.

    :param binary_path: The path of the supervised executable.
    :return pathlib.Path: The sidecar arguments file path.
    """
    return binary_path.with_suffix(f".{settings.ARGS_EXTENSION}")


def build_target_spec(
    binary_path: PathLike,
    args_path: Optional[PathLike] = None,
    poll_interval: Optional[float] = None
) -> TargetSpec:
    """
    Validates the startup inputs and returns the immutable TargetSpec.

    The binary must exist now. The arguments file is not checked here because
    it is re-checked before every spawn.

    :param binary_path: Path to the executable to supervise.
    :param args_path: Optional arguments file path.
    :param poll_interval: Optional watch interval in seconds.
    :return TargetSpec: The validated target.
    :raises ConfigError: If the binary is missing or the interval is not positive.
    """
    binary = Path(binary_path)
    try:
        binary.stat()
    except OSError as e:
        raise ConfigError(f"{binary}: {e.strerror or e}") from e

    interval = settings.DEFAULT_WATCH_INTERVAL if poll_interval is None else float(poll_interval)
    if interval <= 0:
        raise ConfigError(f"Watch interval must be positive, got {interval}.")

    args = Path(args_path) if args_path else default_args_path(binary)

    log.info(f"Binary {binary} exists")
    log.debug(f"Arguments file is {args}, watch interval is {interval}s")
    return TargetSpec(binary_path=binary, args_path=args, poll_interval=interval)
