"""
Logging setup for the Perplexity tool server.

One rotating file (logs/perplexity/system.log by default) plus a console
stream on stderr. Stdout stays clean for protocol traffic when the server is
driven over stdio.

    from libs.core.logging_config import setup_logging, get_logger

    setup_logging(level="DEBUG")       # once, at process start
    logger = get_logger(__name__)

Watch a running server with:
    tail -f logs/perplexity/system.log
"""

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

LOG_DIR = Path("logs/perplexity")
LOG_FILE_NAME = "system.log"
MAX_LOG_SIZE = 10 * 1024 * 1024  # 10 MB per file
BACKUP_COUNT = 5

FILE_FORMAT = "%(asctime)s | %(levelname)-5s | %(name)-45s | %(message)s"
FILE_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
STDERR_FORMAT = "%(asctime)s | %(levelname)-5s | %(name)-25s | %(message)s"
STDERR_DATE_FORMAT = "%H:%M:%S"

# Libraries that log every request or event loop detail at INFO/DEBUG
NOISY_LOGGERS = ("asyncio", "httpx", "httpcore", "uvicorn.access")

_configured_log_file: Optional[Path] = None
_configured = False


def _resolve_level(level: Optional[str]) -> tuple[str, int]:
    name = (level or os.getenv("LOG_LEVEL") or "INFO").upper()
    return name, getattr(logging, name, logging.INFO)


def _file_handler(log_dir: Path, level: int) -> RotatingFileHandler:
    log_dir.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        log_dir / LOG_FILE_NAME,
        maxBytes=MAX_LOG_SIZE,
        backupCount=BACKUP_COUNT,
        encoding="utf-8",
    )
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(FILE_FORMAT, FILE_DATE_FORMAT))
    return handler


def _stderr_handler(level: int) -> logging.StreamHandler:
    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(STDERR_FORMAT, STDERR_DATE_FORMAT))
    return handler


def setup_logging(
    level: Optional[str] = None,
    log_to_console: bool = True,
    log_to_file: bool = True,
    service_name: str = "perplexity",
    log_dir: Optional[Path] = None,
) -> None:
    """
    Install root handlers. Only the first call has any effect.

    Args:
        level: DEBUG/INFO/WARNING/ERROR; falls back to $LOG_LEVEL, then INFO
        log_to_console: add the stderr handler
        log_to_file: add the rotating file handler
        service_name: logger used for the startup banner
        log_dir: directory for system.log (default logs/perplexity)
    """
    global _configured, _configured_log_file

    if _configured:
        return

    level_name, level_value = _resolve_level(level)

    root = logging.getLogger()
    root.setLevel(level_value)
    for handler in list(root.handlers):
        root.removeHandler(handler)

    if log_to_file:
        directory = Path(log_dir) if log_dir is not None else LOG_DIR
        root.addHandler(_file_handler(directory, level_value))
        _configured_log_file = directory / LOG_FILE_NAME
    if log_to_console:
        root.addHandler(_stderr_handler(level_value))

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    _configured = True

    banner = logging.getLogger(service_name)
    banner.info("=" * 60)
    banner.info(f"{service_name.upper()} logging at {level_name}")
    if _configured_log_file is not None:
        banner.info(f"Log file: {_configured_log_file.absolute()}")
    banner.info("=" * 60)


def get_logger(name: str) -> logging.Logger:
    """Logger for a module; pass __name__."""
    return logging.getLogger(name)


def log_request_start(logger: logging.Logger, trace_id: str, query: str, tool: str = "search"):
    """Standard line for the start of a tool call."""
    logger.info(f"[{trace_id}] TOOL START | {tool} | args={query[:100]}")


def log_request_end(logger: logging.Logger, trace_id: str, success: bool, elapsed_ms: float):
    """Standard line for the end of a tool call."""
    status = "OK" if success else "FAILED"
    logger.info(f"[{trace_id}] TOOL END | {status} | elapsed={elapsed_ms:.0f}ms")
