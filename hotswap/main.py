import sys
import logging
import argparse
from typing import List, Optional

import setproctitle

from hotswap import __version__
from hotswap.config import build_target_spec
from hotswap.errors import HotswapError
from hotswap.log.setup import setup_logging
from hotswap.supervisor import Supervisor

log = logging.getLogger("hotswap")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="hotswap",
        description="Run a binary and restart it whenever it is rebuilt or exits."
    )
    parser.add_argument(
        "-b", "--binary-path", required=True, metavar="PATH",
        help="Path of the binary to execute."
    )
    parser.add_argument(
        "-a", "--arguments-file-path", metavar="PATH",
        help="Whitespace-delimited arguments to pass to the binary "
             "(defaults to the binary path with its extension replaced by .args)."
    )
    parser.add_argument(
        "-w", "--watch-interval", type=float, metavar="SECONDS",
        help="Interval between two checks of the binary (default: 1 second)."
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Log at DEBUG level.")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def main(argv: Optional[List[str]] = None) -> None:
    """The main entry point for the hotswap command."""
    args = build_parser().parse_args(argv)
    setup_logging(logging.DEBUG if args.verbose else logging.INFO)

    try:
        spec = build_target_spec(args.binary_path, args.arguments_file_path, args.watch_interval)
        setproctitle.setproctitle(f"hotswap - {spec.binary_path.name}")
        exit_code = Supervisor(spec).run()
    except HotswapError as e:
        log.critical(f"{type(e).__name__}: {e}")
        sys.exit(e.exit_code)

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
