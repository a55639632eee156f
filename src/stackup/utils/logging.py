"""Console and JSON-lines logging for stackup runs."""

import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

import click

# Record attributes set by LogContext that are worth keeping in structured output
CONTEXT_FIELDS = ('stack_name', 'change_set_name', 'operation')

LEVEL_COLORS = {
    'DEBUG': 'cyan',
    'INFO': 'green',
    'WARNING': 'yellow',
    'ERROR': 'red',
    'CRITICAL': 'magenta',
}


class JSONFormatter(logging.Formatter):
    """One JSON object per record, for --log-file."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            'timestamp': datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
        }
        entry.update(
            (name, getattr(record, name)) for name in CONTEXT_FIELDS if hasattr(record, name)
        )
        if record.exc_info:
            entry['exception'] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class ConsoleFormatter(logging.Formatter):
    """Short human-readable lines, prefixed with the stack being worked on."""

    def __init__(self, use_color: bool = True):
        super().__init__()
        self.use_color = use_color

    def _level(self, levelname: str) -> str:
        label = f"{levelname:8}"
        if not self.use_color:
            return label
        return click.style(label, fg=LEVEL_COLORS.get(levelname))

    def format(self, record: logging.LogRecord) -> str:
        """Format log record for console.

        Args:
            record: The log record to format

        Returns:
            ``HH:MM:SS LEVEL [stack] message``
        """
        timestamp = datetime.fromtimestamp(record.created).strftime('%H:%M:%S')
        message = record.getMessage()

        stack_name = getattr(record, 'stack_name', None)
        if stack_name:
            message = f"[{stack_name}] {message}"

        return f"{timestamp} {self._level(record.levelname)} {message}"


def setup_logging(log_level: str = 'info', log_file: Optional[str] = None) -> None:
    """Configure the root logger for a CLI run.

    Console output goes to stderr so that stdout only carries command data.

    Args:
        log_level: Console logging level (debug, info, warning, error)
        log_file: Optional path of a JSON-lines log file that receives everything
    """
    level = getattr(logging, log_level.upper())

    root_logger = logging.getLogger()
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(level)
    console_handler.setFormatter(ConsoleFormatter(use_color=sys.stderr.isatty()))
    root_logger.addHandler(console_handler)

    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(path)
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(JSONFormatter())
        root_logger.addHandler(file_handler)

    root_logger.setLevel(logging.DEBUG if log_file else level)

    # Request-level chatter from the SDK is only interesting with --debug
    sdk_level = logging.DEBUG if level <= logging.DEBUG else logging.WARNING
    for name in ('boto3', 'botocore', 's3transfer'):
        logging.getLogger(name).setLevel(sdk_level)
    logging.getLogger('urllib3').setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


class LogContext:
    """Attach fields (e.g. ``stack_name``) to every record created inside the block."""

    def __init__(self, logger: logging.Logger, **fields: Any):
        self.logger = logger
        self.fields = fields
        self._previous_factory = None

    def __enter__(self):
        previous = logging.getLogRecordFactory()
        fields = self.fields

        def factory(*args, **kwargs):
            record = previous(*args, **kwargs)
            for name, value in fields.items():
                setattr(record, name, value)
            return record

        self._previous_factory = previous
        logging.setLogRecordFactory(factory)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self._previous_factory is not None:
            logging.setLogRecordFactory(self._previous_factory)
            self._previous_factory = None
