import logging
import socket
import sys
import threading
from collections import deque
from typing import Any, Deque, Dict, List, Optional

import requests

from hotswap import settings


class LokiHandler(logging.Handler):
    """
    A logging handler that pushes records to a Grafana Loki instance
    in batches from a background thread.
    """

    def __init__(self, url: str, org_id: Optional[str] = None, flush_interval: Optional[float] = None):
        """
        Initializes the Loki handler and starts its flush thread.

        :param url: The base URL of the Loki instance.
        :param org_id: The tenant ID sent as 'X-Scope-OrgID'.
        :param flush_interval: Seconds between periodic pushes.
        """
        super().__init__()
        self.url = f"{url.rstrip('/')}/loki/api/v1/push"
        self.org_id = org_id
        self.hostname = socket.gethostname()
        self.batch_size = settings.LOG_BUFFER_SIZE
        self.flush_interval = flush_interval or settings.LOG_BUFFER_FLUSH_INTERVAL
        self.log_buffer: Deque[Dict[str, Any]] = deque()
        self.buffer_lock = threading.Lock()
        self.session = requests.Session()

        self.stop_event = threading.Event()
        self.flush_thread = threading.Thread(target=self._periodic_flush, daemon=True, name="LokiFlushThread")
        self.flush_thread.start()

    def _periodic_flush(self) -> None:
        while not self.stop_event.wait(self.flush_interval):
            self.flush()
        self.flush()

    def build_entry(self, record: logging.LogRecord) -> Dict[str, Any]:
        """
        Converts a record into a Loki stream entry.

        Relayed child output keeps its raw line and is labelled with the child's name.

        :param record: The log record to convert.
        :return dict: One element of the push payload's "streams" list.
        """
        if record.name.startswith('proc.'):
            msg = record.getMessage()
            logger_name = record.name.split('.', 1)[-1]
        else:
            msg = self.format(record)
            logger_name = record.name

        return {
            "stream": {
                "job": "hotswap",
                "level": record.levelname.lower(),
                "hostname": self.hostname,
                "logger": logger_name,
            },
            "values": [[str(int(record.created * 1e9)), msg]],
        }

    def emit(self, record: logging.LogRecord) -> None:
        try:
            entry = self.build_entry(record)
        except Exception:
            self.handleError(record)
            return

        with self.buffer_lock:
            self.log_buffer.append(entry)
            full = len(self.log_buffer) >= self.batch_size
        if full:
            self.flush()

    def _take_batch(self) -> List[Dict[str, Any]]:
        with self.buffer_lock:
            batch = list(self.log_buffer)
            self.log_buffer.clear()
        return batch

    def flush(self) -> None:
        """Sends everything buffered so far. Network errors are reported on stderr, never raised."""
        batch = self._take_batch()
        if not batch:
            return

        headers = {'Content-Type': 'application/json'}
        if self.org_id:
            headers['X-Scope-OrgID'] = self.org_id

        try:
            response = self.session.post(self.url, json={"streams": batch}, headers=headers, timeout=5)
            # 204 No Content is the success status for Loki push
            if response.status_code != 204:
                print(
                    f"ERROR: Loki returned non-204 status: {response.status_code} - {response.text}",
                    file=sys.stderr
                )
        except requests.RequestException as e:
            print(f"CRITICAL: Failed to send {len(batch)} logs to Loki: {e}", file=sys.stderr)

    def close(self) -> None:
        """Stops the flush thread after a final push."""
        self.stop_event.set()
        if self.flush_thread.is_alive():
            self.flush_thread.join(timeout=self.flush_interval + 2)
        self.session.close()
        super().close()
