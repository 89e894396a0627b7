"""
Logging setup for the loyalty ledger.

LOG_LEVEL picks the level (default INFO). LOG_FORMAT=json switches to one
JSON object per line for log shippers; anything else gives plain text.
"""
import json
import logging
import os
import sys
from datetime import datetime, timezone

TEXT_FORMAT = '%(asctime)s %(levelname)s [%(name)s] %(message)s'

_RESERVED_ATTRS = {
    'name', 'msg', 'args', 'levelname', 'levelno', 'pathname', 'filename',
    'module', 'exc_info', 'exc_text', 'stack_info', 'lineno', 'funcName',
    'created', 'msecs', 'relativeCreated', 'thread', 'threadName',
    'processName', 'process', 'taskName', 'message', 'asctime',
}


class JsonFormatter(logging.Formatter):
    """Render records as single-line JSON, carrying ``extra`` fields along."""

    def __init__(self, service_name: str = 'loyalty-ledger'):
        super().__init__()
        self.service_name = service_name

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            'timestamp': datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            'level': record.levelname.lower(),
            'logger': record.name,
            'message': record.getMessage(),
            'service': self.service_name,
        }
        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS and not key.startswith('_'):
                payload[key] = value
        if record.exc_info:
            payload['exception'] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def setup_logging(level: str = None, fmt: str = None) -> None:
    """Configure the root logger once per process."""
    level = (level or os.getenv('LOG_LEVEL', 'INFO')).upper()
    fmt = fmt or os.getenv('LOG_FORMAT', 'text')

    handler = logging.StreamHandler(sys.stdout)
    if fmt == 'json':
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter(TEXT_FORMAT))

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(level)

    # Quiet chatty libraries
    logging.getLogger('apscheduler').setLevel(logging.WARNING)
    logging.getLogger('urllib3').setLevel(logging.WARNING)
