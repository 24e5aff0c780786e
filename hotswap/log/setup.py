import logging
import sys

from hotswap import settings
from hotswap.log.handler import LokiHandler

CHILD_LOGGER_PREFIX = 'proc.'


class MainFormatter(logging.Formatter):
    """A custom formatter to handle regular logs and raw child process output."""

    def format(self, record):
        # Relayed child output is printed as the child wrote it.
        if record.name.startswith(CHILD_LOGGER_PREFIX):
            return record.getMessage()

        original_format = self._style._fmt
        self._style._fmt = '%(asctime)s - %(levelname)-8s - [%(name)s] - %(message)s'
        formatted_message = super().format(record)
        self._style._fmt = original_format
        return formatted_message


def setup_logging(console_level: int = logging.INFO) -> None:
    """
    Configures the root logger for the supervisor.
    This sets up the console handler and, when enabled, the Loki handler,
    clearing any previously configured handlers to prevent duplication.

    :param console_level: The logging level for the console output (e.g., logging.INFO).
    """
    root_logger = logging.getLogger()
    # Set root level to lowest to capture all messages for handler filtering
    root_logger.setLevel(logging.DEBUG)

    if root_logger.hasHandlers():
        for handler in list(root_logger.handlers):
            root_logger.removeHandler(handler)
            handler.close()

    # --- Console Handler ---
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(console_level)
    console_handler.setFormatter(MainFormatter())
    root_logger.addHandler(console_handler)

    # --- Loki Handler (conditional) ---
    if settings.LOKI_ENABLED:
        try:
            loki_handler = LokiHandler(url=settings.LOKI_URL, org_id=settings.LOKI_ORG_ID)
            loki_handler.setLevel(logging.INFO)
            root_logger.addHandler(loki_handler)
            root_logger.info(f"Grafana Loki logging handler initialized for {settings.LOKI_URL}.")
        except Exception as e:
            root_logger.error(f"Failed to initialize Grafana Loki logging handler: {e}")
