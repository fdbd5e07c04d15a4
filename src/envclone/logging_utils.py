"""
Logging configuration and the structured progress stream.
"""

import logging
import logging.handlers
import sys
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from envclone.models import CloneLog, LogLevel


_PYTHON_LEVELS = {
    LogLevel.INFO: logging.INFO,
    LogLevel.SUCCESS: logging.INFO,
    LogLevel.WARNING: logging.WARNING,
    LogLevel.ERROR: logging.ERROR,
}


def setup_logging(log_file=None, verbose=False, console=True):
    """
    Configure logging for envclone.

    Args:
        log_file: Path to log file (None = stdout only)
        verbose: Enable DEBUG level logging
        console: Log to stdout (the CLI prints progress itself)
    """
    level = logging.DEBUG if verbose else logging.INFO

    format_str = '[%(asctime)s] %(levelname)s [%(name)s] %(message)s'
    formatter = logging.Formatter(format_str, datefmt='%Y-%m-%d %H:%M:%S')

    handlers = []

    if console:
        stream = logging.StreamHandler(sys.stdout)
        stream.setFormatter(formatter)
        handlers.append(stream)

    if log_file:
        try:
            file_handler = logging.handlers.RotatingFileHandler(
                log_file,
                maxBytes=10*1024*1024,  # 10MB
                backupCount=5
            )
            file_handler.setFormatter(formatter)
            handlers.append(file_handler)
        except OSError as e:
            print(f"Warning: Could not create log file {log_file}: {e}", file=sys.stderr)

    logging.basicConfig(level=level, handlers=handlers, force=True)

    # Suppress noisy libraries
    logging.getLogger('sqlalchemy.engine').setLevel(logging.WARNING)
    logging.getLogger('sqlalchemy.pool').setLevel(logging.WARNING)


def format_bytes(size: int) -> str:
    units = ['B', 'KB', 'MB', 'GB', 'TB']
    value = float(size)
    for unit in units:
        if value < 1024 or unit == units[-1]:
            return f"{value:.0f} {unit}" if unit == 'B' else f"{value:.2f} {unit}"
        value /= 1024
    return f"{size} B"


def format_duration(seconds: float) -> str:
    if seconds < 60:
        return f"{seconds:.1f}s"
    minutes, secs = divmod(int(seconds), 60)
    if minutes < 60:
        return f"{minutes}m {secs}s"
    hours, minutes = divmod(minutes, 60)
    return f"{hours}h {minutes}m {secs}s"


class OperationLog:
    """
    Ordered stream of CloneLog entries for one operation.

    Each entry is kept in order, forwarded to the Python logger and handed
    to the optional subscriber (e.g. a CLI progress printer).
    """

    def __init__(self, subscriber: Optional[Callable[[CloneLog], None]] = None,
                 logger: Optional[logging.Logger] = None,
                 entries: Optional[List[CloneLog]] = None):
        self.subscriber = subscriber
        self.logger = logger or logging.getLogger('envclone.operation')
        self.entries: List[CloneLog] = entries if entries is not None else []

    def emit(self, level: LogLevel, phase: str, message: str,
             metadata: Optional[Dict[str, Any]] = None) -> CloneLog:
        entry = CloneLog(
            timestamp=datetime.now(),
            level=level,
            phase=phase,
            message=message,
            metadata=metadata,
        )
        self.entries.append(entry)
        self.logger.log(_PYTHON_LEVELS[level], "[%s] %s", phase, message)
        if self.subscriber:
            self.subscriber(entry)
        return entry

    def info(self, phase, message, **metadata):
        return self.emit(LogLevel.INFO, phase, message, metadata or None)

    def success(self, phase, message, **metadata):
        return self.emit(LogLevel.SUCCESS, phase, message, metadata or None)

    def warning(self, phase, message, **metadata):
        return self.emit(LogLevel.WARNING, phase, message, metadata or None)

    def error(self, phase, message, **metadata):
        return self.emit(LogLevel.ERROR, phase, message, metadata or None)

    def messages(self, level: Optional[LogLevel] = None) -> List[str]:
        return [e.message for e in self.entries if level is None or e.level is level]
