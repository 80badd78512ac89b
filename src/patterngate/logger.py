"""
Logging infrastructure for PatternGate.
"""

import logging
import logging.handlers
import sys
from pathlib import Path
from typing import Optional

# The gate module logs under its own __name__
GATE_LOGGER_NAME = "patterngate.engine.gate"


class ColoredFormatter(logging.Formatter):
    """Colored formatter for console output."""

    COLORS = {
        'DEBUG': '\033[36m',    # Cyan
        'INFO': '\033[32m',     # Green
        'WARNING': '\033[33m',  # Yellow
        'ERROR': '\033[31m',    # Red
        'CRITICAL': '\033[35m', # Magenta
    }
    RESET = '\033[0m'

    def format(self, record: logging.LogRecord) -> str:
        levelname = record.levelname
        if levelname in self.COLORS:
            record.levelname = f"{self.COLORS[levelname]}{levelname}{self.RESET}"
        try:
            return super().format(record)
        finally:
            # File handlers share the record; keep their output uncolored
            record.levelname = levelname


class StructuredFormatter(logging.Formatter):
    """Structured formatter for file output."""

    def format(self, record: logging.LogRecord) -> str:
        # Prefix instrument context so grep by scrip code works on the file
        prefix = ""
        if hasattr(record, 'instrument_id'):
            prefix += f"[{record.instrument_id}] "
        if hasattr(record, 'pattern_id'):
            prefix += f"[PATTERN:{record.pattern_id}] "

        formatted = super().format(record)
        if not prefix:
            return formatted
        head, sep, message = formatted.rpartition("| ")
        return f"{head}{sep}{prefix}{message}" if sep else f"{prefix}{formatted}"


def setup_logger(
    name: str,
    level: str = "INFO",
    log_file: Optional[str] = None,
    max_size: str = "10MB",
    backup_count: int = 5,
    console_output: bool = True
) -> logging.Logger:
    """
    Set up a logger with file rotation and optional console output.

    Args:
        name: Logger name
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Path to log file (optional)
        max_size: Maximum log file size before rotation
        backup_count: Number of backup files to keep
        console_output: Whether to output to console

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)

    # Clear existing handlers
    logger.handlers.clear()

    log_level = getattr(logging, level.upper(), logging.INFO)
    logger.setLevel(log_level)

    if console_output:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(log_level)

        console_format = ColoredFormatter(
            "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S"
        )
        console_handler.setFormatter(console_format)
        logger.addHandler(console_handler)

    # File handler with rotation
    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=_parse_size(max_size),
            backupCount=backup_count,
            encoding='utf-8'
        )
        file_handler.setLevel(log_level)

        file_format = StructuredFormatter(
            "%(asctime)s | %(levelname)-8s | %(name)s | %(funcName)s:%(lineno)d | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S"
        )
        file_handler.setFormatter(file_format)
        logger.addHandler(file_handler)

    # Prevent propagation to root logger
    logger.propagate = False

    return logger


def get_logger(name: str, level: str = "INFO", log_file: Optional[str] = "./logs/patterngate.log") -> logging.Logger:
    """
    Get a logger instance with default configuration.

    Args:
        name: Logger name
        level: Logging level
        log_file: Rotating log file, or None for console only

    Returns:
        Logger instance
    """
    return setup_logger(
        name=name,
        level=level,
        log_file=log_file,
        console_output=True
    )


def get_gate_logger(
    level: str = "INFO",
    log_file: Optional[str] = "./logs/gate.log",
    console_output: bool = True,
    max_size: str = "10MB",
    backup_count: int = 5
) -> logging.Logger:
    """
    Configure the logger trade gate decisions are written to.

    The gate module logs under this name, so every proposal and rejection
    lands in the rotating file with its instrument and pattern prefix.
    """
    return setup_logger(
        name=GATE_LOGGER_NAME,
        level=level,
        log_file=log_file,
        max_size=max_size,
        backup_count=backup_count,
        console_output=console_output
    )


def _parse_size(size_str: str) -> int:
    """
    Parse size string (e.g., '10MB', '1GB') to bytes.

    Args:
        size_str: Size string with unit

    Returns:
        Size in bytes
    """
    size_str = size_str.upper().strip()

    # Longest suffix first so '10MB' is not read as '10M' + 'B'
    size_map = [
        ('GB', 1024 * 1024 * 1024),
        ('MB', 1024 * 1024),
        ('KB', 1024),
        ('B', 1),
    ]

    for unit, multiplier in size_map:
        if size_str.endswith(unit):
            number = size_str[:-len(unit)].strip()
            try:
                return int(float(number) * multiplier)
            except ValueError:
                pass

    # Default to bytes if no unit or invalid format
    try:
        return int(size_str)
    except ValueError:
        return 10 * 1024 * 1024  # Default 10MB


class InstrumentLoggerAdapter(logging.LoggerAdapter):
    """Logger adapter carrying instrument/pattern context."""

    def __init__(self, logger: logging.Logger, extra: dict):
        super().__init__(logger, extra)

    def process(self, msg: str, kwargs: dict) -> tuple:
        extra = dict(self.extra)
        extra.update(kwargs.get('extra', {}))
        kwargs['extra'] = extra
        return msg, kwargs


def get_instrument_adapter(
    instrument_id: Optional[str] = None,
    pattern_id: Optional[str] = None,
    logger: Optional[logging.Logger] = None
) -> InstrumentLoggerAdapter:
    """
    Get a logger adapter with instrument context.

    Args:
        instrument_id: Instrument code (e.g., 'N:2885')
        pattern_id: Pattern signal identifier
        logger: Underlying logger (defaults to the gate decision logger)

    Returns:
        Logger adapter with instrument context
    """
    extra = {}

    if instrument_id:
        extra['instrument_id'] = instrument_id
    if pattern_id:
        extra['pattern_id'] = pattern_id

    return InstrumentLoggerAdapter(logger or logging.getLogger(GATE_LOGGER_NAME), extra)
