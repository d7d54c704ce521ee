"""Logging setup and configuration."""

import io
import logging
import secrets
import sys
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from core.logging.constants import (
    DEFAULT_BACKUP_COUNT,
    DEFAULT_CONSOLE_LEVEL,
    DEFAULT_FILE_LEVEL,
    DEFAULT_LOG_DIR,
    DEFAULT_MAX_BYTES,
    NOISY_LOGGERS,
    PLAIN_FILE_FORMAT,
)
from core.logging.context import set_log_context
from core.logging.formatters import ConsoleFormatter, JSONFormatter


def get_log_file_path(
    log_dir: Path,
    domain: Optional[str] = None,
    stage: Optional[str] = None,
) -> Path:
    """
    Build log file path with domain/date subfolder structure.

    Structure: {log_dir}/{domain}/{YYYY-MM-DD}/{domain}_{stage}_{YYYYMMDD}.log

    Args:
        log_dir: Base log directory
        domain: Log domain (e.g. "klines")
        stage: Stage name (e.g. "fetch")

    Returns:
        Full path to log file
    """
    date_folder = datetime.now().strftime("%Y-%m-%d")
    date_str = datetime.now().strftime("%Y%m%d")

    if domain and stage:
        filename = f"{domain}_{stage}_{date_str}.log"
    elif domain:
        filename = f"{domain}_{date_str}.log"
    elif stage:
        filename = f"{stage}_{date_str}.log"
    else:
        filename = f"kline_fetcher_{date_str}.log"

    if domain:
        log_path = log_dir / domain / date_folder / filename
    else:
        log_path = log_dir / date_folder / filename

    return log_path


def _file_handler(
    log_file: Path,
    json_format: bool,
    level: int,
    max_bytes: int,
    backup_count: int,
) -> RotatingFileHandler:
    log_file.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        log_file,
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding="utf-8",
    )
    handler.setLevel(level)
    if json_format:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(PLAIN_FILE_FORMAT))
    return handler


def _console_handler(level: int) -> logging.StreamHandler:
    stream = sys.stderr
    if sys.platform == "win32":
        stream = io.TextIOWrapper(sys.stderr.buffer, encoding="utf-8", errors="replace")
    handler = logging.StreamHandler(stream)
    handler.setLevel(level)
    handler.setFormatter(ConsoleFormatter())
    return handler


def setup_logging(
    name: str = "kline_fetcher",
    stage: Optional[str] = None,
    domain: Optional[str] = None,
    log_dir: Optional[Path] = None,
    json_format: bool = True,
    console_level: int = DEFAULT_CONSOLE_LEVEL,
    file_level: int = DEFAULT_FILE_LEVEL,
    max_bytes: int = DEFAULT_MAX_BYTES,
    backup_count: int = DEFAULT_BACKUP_COUNT,
    suppress_noisy: bool = True,
    log_to_file: bool = True,
) -> logging.Logger:
    """
    Configure logging with console and rotating file handlers.

    Log files are organized by domain and date:
        logs/klines/2025-01-15/klines_fetch_20250115.log

    Console output goes to stderr so it does not mix with the run summary
    printed on stdout.

    Args:
        name: Logger name to return
        stage: Stage name for per-stage log files
        domain: Log domain
        log_dir: Directory for log files (default: ./logs)
        json_format: Use JSON format for file logs (default: True)
        console_level: Console handler level (default: WARNING)
        file_level: File handler level (default: DEBUG)
        max_bytes: Max size per log file before rotation
        backup_count: Number of backup files to keep
        suppress_noisy: Quiet down HTTP client loggers
        log_to_file: Install the rotating file handler (default: True)

    Returns:
        Configured logger instance
    """
    log_dir = log_dir or DEFAULT_LOG_DIR

    if stage:
        set_log_context(stage=stage)
    if domain:
        set_log_context(domain=domain)

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)
    root_logger.handlers.clear()

    log_file = None
    if log_to_file:
        log_file = get_log_file_path(log_dir, domain=domain, stage=stage)
        root_logger.addHandler(
            _file_handler(log_file, json_format, file_level, max_bytes, backup_count)
        )
    root_logger.addHandler(_console_handler(console_level))

    if suppress_noisy:
        for logger_name in NOISY_LOGGERS:
            logging.getLogger(logger_name).setLevel(logging.WARNING)

    logger = logging.getLogger(name)
    logger.debug(f"Logging initialized: file={log_file}, json={json_format}")
    return logger


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance.

    Use this instead of logging.getLogger() to ensure consistent naming.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Logger instance
    """
    return logging.getLogger(name)


def generate_batch_id(batch_number: int) -> str:
    """
    Generate unique batch identifier.

    Format: b{N}-HHMMSS-XXXX where XXXX is random hex.
    """
    ts = datetime.now().strftime("%H%M%S")
    suffix = secrets.token_hex(2)
    return f"b{batch_number}-{ts}-{suffix}"
