"""Leveled log lines with a timestamp and source-location header."""

from __future__ import annotations

import enum
import inspect
import re
import sys
from datetime import datetime


class LogLevel(enum.IntEnum):
    """Severity of a log line; higher is more severe."""

    ALL = 0
    TRACE = 100
    DEBUG = 200
    INFO = 300
    WARN = 400
    ERROR = 500
    OFF = 1000


LOG_LEVEL = LogLevel.DEBUG
LOG_TIME_FORMAT = "%Y-%m-%d %H:%M:%S"

_LABELS = {
    LogLevel.ERROR: "ERROR",
    LogLevel.WARN: "WARN ",
    LogLevel.INFO: "INFO ",
    LogLevel.DEBUG: "DEBUG",
    LogLevel.TRACE: "TRACE",
}


def _short_file(path: str) -> str:
    return re.split(r"[\\/]", path)[-1]


def format_log_header(file: str, line: int, func: str, level, when: datetime | None = None) -> str:
    """Build the ``time [file:line:func] LEVEL - `` prefix of a log line."""
    when = when if when is not None else datetime.now()
    label = _LABELS.get(level, "UNKWN")
    return f"{when.strftime(LOG_TIME_FORMAT)} [{_short_file(file)}:{line}:{func}] {label} - "


def emit(level, message: str, file: str | None = None, line: int | None = None,
         func: str | None = None, stream=None) -> bool:
    """Write one log line if ``level`` passes the threshold; return whether it was written."""
    if level < LOG_LEVEL:
        return False
    if file is None or line is None or func is None:
        caller = inspect.currentframe().f_back
        file = caller.f_code.co_filename if file is None else file
        line = caller.f_lineno if line is None else line
        func = caller.f_code.co_name if func is None else func
    stream = stream if stream is not None else sys.stdout
    stream.write(format_log_header(file, line, func, level) + message + "\n")
    stream.flush()
    return True