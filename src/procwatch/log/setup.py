import logging
import sys
from typing import Optional, Union

from procwatch import settings


class SubprocessLogFilter(logging.Filter):
    """
    This filter identifies logs coming from the supervised process
    and keeps them out of handlers meant for the supervisor's own records.
    """
    def filter(self, record):
        # The 'proc.' prefix is used by log_process_output in process_utils.py
        return not record.name.startswith('proc.')


class MainFormatter(logging.Formatter):
    """A custom formatter to handle regular logs and raw subprocess output."""

    def __init__(self, fmt: Optional[str] = None) -> None:
        super().__init__(fmt or settings.LOG_FORMAT)

    def format(self, record):
        # If the log is from the supervised process, just return the raw line.
        if record.name.startswith('proc.'):
            return f"[{record.name[len('proc.'):]}] {record.getMessage()}"
        return super().format(record)


def _coerce_level(level: Union[int, str]) -> int:
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(str(level).upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def setup_logging(console_level: Union[int, str] = settings.LOG_LEVEL, hide_process_output: bool = False) -> None:
    """
    Configures the root logger for the application.
    Clears any previously configured handlers to prevent duplication.

    :param console_level: The logging level for the console output (e.g., logging.INFO or "DEBUG").
    :param hide_process_output: If True, the child's relayed stdout/stderr is not printed.
    """
    root_logger = logging.getLogger()
    # Set root level to lowest to capture all messages for handler filtering
    root_logger.setLevel(logging.DEBUG)

    # Clear any existing handlers to prevent re-adding them on re-runs
    if root_logger.hasHandlers():
        root_logger.handlers.clear()

    # --- Console Handler ---
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(_coerce_level(console_level))
    console_handler.setFormatter(MainFormatter())
    if hide_process_output:
        console_handler.addFilter(SubprocessLogFilter())
    root_logger.addHandler(console_handler)
