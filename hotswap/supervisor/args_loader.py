import logging
from pathlib import Path
from typing import List

from hotswap.errors import ArgsFileNotFoundError

log = logging.getLogger(__name__)


def load_arguments(args_path: Path) -> List[str]:
    """
    Reads the whitespace-delimited argument list for the target.

    Every line is split on whitespace and the tokens are kept in file order.
    No shell quoting or escaping is applied: `--name "a b"` yields the three
    tokens `--name`, `"a`, `b"`.

    :param args_path: The arguments file.
    :return list: The argument tokens.
    :raises ArgsFileNotFoundError: If the file's metadata cannot be read.
    """
    try:
        args_path.stat()
    except OSError as e:
        raise ArgsFileNotFoundError(f"{args_path}: {e.strerror or e}") from e

    args: List[str] = []
    with args_path.open('r', encoding='utf-8') as f:
        for line in f:
            args.extend(line.split())

    log.debug(f"Loaded {len(args)} arguments from {args_path}")
    return args
