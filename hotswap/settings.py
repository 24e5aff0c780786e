"""
This module contains the default configuration settings for hotswap.
Values can be overridden through environment variables (or a .env file in the
working directory); command-line flags take precedence over both.
"""

import os
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ('true', '1', 't', 'yes', 'y')


#* --- Target Settings ---
ARGS_EXTENSION = "args"  # Sidecar file: <binary path with extension replaced>.args
DEFAULT_WATCH_INTERVAL = float(os.getenv("HOTSWAP_WATCH_INTERVAL", "1.0"))  # seconds

#* --- Launcher Settings ---
# Attempts made while the kernel reports the binary as busy (ETXTBSY).
MAX_SPAWN_ATTEMPTS = int(os.getenv("HOTSWAP_MAX_SPAWN_ATTEMPTS", "1000"))
# Relay the child's stdout/stderr through the logging system instead of inheriting them.
CAPTURE_CHILD_OUTPUT = _env_flag("HOTSWAP_CAPTURE_OUTPUT", "False")

#* --- Supervisor Settings ---
DETECTOR_JOIN_TIMEOUT = 5  # seconds to wait for the detector thread on exit

#* --- Logging ---
LOG_BUFFER_SIZE = 100
LOG_BUFFER_FLUSH_INTERVAL = 10  # seconds

# Grafana Loki (optional log shipping)
LOKI_ENABLED = _env_flag("LOKI_ENABLED", "False")
LOKI_URL = os.getenv("LOKI_URL", "http://localhost:3100")
LOKI_ORG_ID = os.getenv("LOKI_ORG_ID", "fake")
