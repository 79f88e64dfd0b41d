"""
AetherDEX Logging System
========================

A unified, thread-safe logging utility for the exchange core. This module
integrates with the standard Python `logging` library and the `rich` library
to provide structured, safe, and visually distinct logging outputs.

Usage:
    >>> from aether.logger import get_logger
    >>> logger = get_logger(__name__)
    >>> logger.info("Pool created")
"""

import logging
import logging.handlers
import re
import sys
import threading
import time
from pathlib import Path
from typing import List, Optional

from rich.console import Console
from rich.highlighter import RegexHighlighter
from rich.logging import RichHandler
from rich.theme import Theme

from .constants import (
    LOG_LEVEL,
    LOG_FORMAT,
    LOG_DATE_FORMAT,
    LOG_MAX_FILE_SIZE,
    LOG_BACKUP_COUNT,
    LOG_CONSOLE_HIGHLIGHTING,
    LOG_FILE_OUTPUT,
)


# Define log file location relative to the project root
PROJECT_ROOT = Path(__file__).parent.parent
LOG_FILE_PATH = PROJECT_ROOT / "logs" / "aether.log"

AETHER_THEME = Theme(
    {
        "aether.address":        "cyan",
        "aether.arrow":          "bold yellow",
        "aether.level_critical": "bold red reverse",
        "aether.level_debug":    "bold dim",
        "aether.level_error":    "bold red",
        "aether.level_info":     "bold green",
        "aether.level_warning":  "bold yellow",
        "aether.pool":           "bold magenta",
        "aether.proposal":       "bold cyan",
        "aether.route":          "bold blue",
        "aether.timestamp":      "bold cyan",
    }
)


def parse_level(log_level: Optional[str]) -> int:
    """Numeric level for a level name; ``ValueError`` for unknown names."""
    numeric = logging.getLevelName(str(log_level or LOG_LEVEL).upper())
    if not isinstance(numeric, int):
        raise ValueError(f"Unknown log level: {log_level}")
    return numeric


class LogManager:
    """
    Manages logging configuration via the Singleton pattern.

    The root logger is configured once with a Rich console handler and an
    optional rotating file handler. Only the handlers installed here are
    touched by later level changes.
    """

    _instance: Optional["LogManager"] = None
    _lock: threading.Lock = threading.Lock()


    def __new__(cls) -> "LogManager":
        """Creates or returns the existing singleton instance."""
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = super().__new__(cls)
                    cls._instance._initialized = False
        return cls._instance


    def __init__(self) -> None:
        if self._initialized:
            return
        self._configured = False
        self._handlers: List[logging.Handler] = []
        self._initialized = True


    @staticmethod
    def checked_formats(log_format: str, date_format: str) -> tuple:
        """
        Format a dummy record with the configured formats and fall back to
        the defaults when either one is unusable.
        """
        try:
            record = logging.LogRecord("aether", logging.INFO, "", 0, "check", (), None)
            logging.Formatter(fmt=str(log_format), datefmt=str(date_format)).format(record)
            time.strftime(str(date_format))
            return str(log_format), str(date_format)
        except (ValueError, TypeError, KeyError) as e:
            print(f"aether.logger - invalid LOG_FORMAT/LOG_DATE_FORMAT ({e}); using defaults",
                  file=sys.stderr)
            return str(LOG_FORMAT.default()), str(LOG_DATE_FORMAT.default())


    def configure(
        self,
        log_level: Optional[str] = None,
        log_file: Optional[Path] = None,
        file_output: Optional[bool] = None,
    ) -> None:
        """
        Configures the root logger with console and file handlers.

        Args:
            log_level (Optional[str]): Logging level (DEBUG, INFO, etc.). Defaults to env var.
            log_file (Optional[Path]): Absolute path to log file. Defaults to `logs/aether.log`.
            file_output (Optional[bool]): Enable rotating file logging. Defaults to `LOG_FILE_OUTPUT`.
        """
        with self._lock:
            if self._configured:
                return

            numeric_level = parse_level(log_level)
            root_logger = logging.getLogger()
            root_logger.setLevel(numeric_level)

            log_format, date_format = self.checked_formats(LOG_FORMAT, LOG_DATE_FORMAT)

            # Uses UTC for consistency across different host timezones
            formatter = TerminalSafeFormatter(fmt=log_format, datefmt=date_format + " UTC")
            formatter.converter = time.gmtime

            if LOG_CONSOLE_HIGHLIGHTING:
                console_handler: logging.Handler = RichHandler(
                    console=Console(theme=AETHER_THEME, highlight=False, stderr=True),
                    highlighter=AetherLogHighlighter(),
                    keywords=[],
                    rich_tracebacks=True,
                    show_path=False,
                    show_time=False,
                    show_level=False,
                    markup=False,
                )
            else:
                console_handler = logging.StreamHandler(sys.stderr)
            self._handlers.append(console_handler)

            if file_output is None:
                file_output = bool(LOG_FILE_OUTPUT)
            if file_output:
                log_file_path = log_file or LOG_FILE_PATH
                log_file_path.parent.mkdir(parents=True, exist_ok=True)
                self._handlers.append(logging.handlers.RotatingFileHandler(
                    filename=str(log_file_path),
                    maxBytes=LOG_MAX_FILE_SIZE,
                    backupCount=LOG_BACKUP_COUNT,
                    encoding="utf-8",
                ))

            for handler in self._handlers:
                handler.setLevel(numeric_level)
                handler.setFormatter(formatter)
                root_logger.addHandler(handler)

            self._configured = True


    def set_level(self, log_level: str) -> int:
        """Apply ``log_level`` to the root logger and the handlers installed here."""
        numeric_level = parse_level(log_level)
        with self._lock:
            logging.getLogger().setLevel(numeric_level)
            for handler in self._handlers:
                handler.setLevel(numeric_level)
        return numeric_level


    def get_logger(self, name: str) -> logging.Logger:
        if not self._configured:
            self.configure()
        return logging.getLogger(name)


class TerminalSafeFormatter(logging.Formatter):
    """
    A formatter that strips ANSI escape sequences and non-printable control
    characters from log output (CWE-117). Token symbols and addresses are
    caller-supplied, so they are never trusted verbatim.
    """

    _ansi_escape_re = re.compile(
        r"\x1b\[[0-?]*[ -/]*[@-~]"
        r"|\x1b[@-Z\\-_]"
    )
    # Control chars (0x00-0x1F and DEL) except Tab and Newline
    _control_chars_re = re.compile(r"[\x00-\x08\x0B-\x1F\x7F]")


    @classmethod
    def sanitize(cls, text: str) -> str:
        if not text:
            return text
        return cls._control_chars_re.sub("", cls._ansi_escape_re.sub("", text))


    def format(self, record: logging.LogRecord) -> str:
        return self.sanitize(super().format(record))


class AetherLogHighlighter(RegexHighlighter):
    """Regex-based coloring for exchange log lines."""

    base_style = "aether."
    highlights = [
        r"(?P<arrow>→)",
        r"(?P<address>\b0x[0-9a-fA-F]{8,}\b)",
        r"(?P<level_critical>\bCRITICAL\b)",
        r"(?P<level_debug>\bDEBUG\b)",
        r"(?P<level_error>\bERROR\b)",
        r"(?P<level_info>\bINFO\b)",
        r"(?P<level_warning>\bWARNING\b)",
        r"(?P<pool>\bPool [0-9a-f]{16}\b)",
        r"(?P<proposal>Proposal #\d+)",
        r"(?P<route>\bRoute 0x[0-9a-f]{16}\b)",
        r"(?P<timestamp>^(.*?)UTC)",
    ]


_manager = LogManager()

def get_logger(name: str) -> logging.Logger:
    """
    Public accessor of the logging system.
    Delegates to the Singleton LogManager, ensuring configuration is applied.
    """
    return _manager.get_logger(name)


def set_log_level(log_level: str) -> int:
    """Change the level of the configured logging system (``[engine] log_level``)."""
    return _manager.set_level(log_level)

# Auto-configure on import to ensure immediate availability
_manager.configure()
