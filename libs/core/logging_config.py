"""
Centralized Logging Configuration for feedsieve

All Python logging from every component goes to one rotating file plus the
console:

    logs/feedsieve/system.log

Usage in any module:
    from libs.core.logging_config import setup_logging

    # Call once at process startup (CLI entry points do this)
    setup_logging()

    logger = logging.getLogger(__name__)
    logger.info("[Controller] pass complete")

Debugging:
    tail -f logs/feedsieve/system.log
"""

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

# =============================================================================
# Configuration
# =============================================================================

LOG_DIR = Path("logs/feedsieve")
SYSTEM_LOG_NAME = "system.log"
MAX_LOG_SIZE = 5 * 1024 * 1024  # 5 MB per file
BACKUP_COUNT = 3

# Default log level (can be overridden by SIEVE_LOG_LEVEL env var)
DEFAULT_LOG_LEVEL = "INFO"

LOG_FORMAT = "%(asctime)s | %(levelname)-5s | %(name)-30s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

CONSOLE_FORMAT = "%(asctime)s | %(levelname)-5s | %(name)-20s | %(message)s"
CONSOLE_DATE_FORMAT = "%H:%M:%S"

# =============================================================================
# Global State
# =============================================================================

_logging_configured = False
_file_handler: Optional[RotatingFileHandler] = None
_log_dir: Path = LOG_DIR


# =============================================================================
# Setup Functions
# =============================================================================


def setup_logging(
    level: Optional[str] = None,
    log_to_console: bool = True,
    log_to_file: bool = True,
    log_dir: Optional[Path] = None,
    service_name: str = "feedsieve",
) -> None:
    """
    Configure unified logging for feedsieve processes.

    This should be called ONCE at the start of each process (CLI, service).

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR). Defaults to SIEVE_LOG_LEVEL env var or INFO.
        log_to_console: Whether to also log to stderr (default True)
        log_to_file: Whether to log to system.log file (default True)
        log_dir: Directory for system.log (default logs/feedsieve)
        service_name: Identifier for the startup marker
    """
    global _logging_configured, _file_handler, _log_dir

    # Don't reconfigure if already set up
    if _logging_configured:
        return

    if level is None:
        level = os.getenv("SIEVE_LOG_LEVEL", DEFAULT_LOG_LEVEL)
    log_level = getattr(logging, level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    # Remove any existing handlers (prevents duplicates)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    # === File Handler (system.log) ===
    if log_to_file:
        _log_dir = Path(log_dir) if log_dir else LOG_DIR
        _log_dir.mkdir(parents=True, exist_ok=True)
        _file_handler = RotatingFileHandler(
            _log_dir / SYSTEM_LOG_NAME,
            maxBytes=MAX_LOG_SIZE,
            backupCount=BACKUP_COUNT,
            encoding="utf-8",
        )
        _file_handler.setLevel(log_level)
        _file_handler.setFormatter(logging.Formatter(LOG_FORMAT, DATE_FORMAT))
        root_logger.addHandler(_file_handler)

    # === Console Handler ===
    # stderr, so CLI output on stdout stays machine-readable
    if log_to_console:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(log_level)
        console_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT, CONSOLE_DATE_FORMAT))
        root_logger.addHandler(console_handler)

    # === Reduce noise from chatty libraries ===
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)
    logging.getLogger("playwright").setLevel(logging.WARNING)

    _logging_configured = True

    logger = logging.getLogger(service_name)
    logger.info("=" * 60)
    logger.info(f"LOGGING INITIALIZED - {service_name.upper()}")
    if log_to_file:
        logger.info(f"Log file: {get_system_log_path().absolute()}")
    logger.info(f"Log level: {level.upper()}")
    logger.info("=" * 60)


def get_system_log_path() -> Path:
    """Get the path to the system log file."""
    return _log_dir / SYSTEM_LOG_NAME


# =============================================================================
# Convenience Functions
# =============================================================================


def log_pass_start(logger: logging.Logger, context_id: str, generation: int, item_count: int):
    """Log the start of a processing pass with standard format."""
    logger.info(f"[{context_id}] PASS {generation} START | items={item_count}")


def log_decision(logger: logging.Logger, context_id: str, item_id: str, hidden: bool, rule: Optional[str]):
    """Log a filter decision with standard format."""
    verdict = f"HIDE ({rule})" if hidden else "SHOW"
    logger.debug(f"[{context_id}] DECISION | {item_id} | {verdict}")


def tail_logs(n: int = 50) -> str:
    """
    Get the last N lines from the system log.
    """
    path = get_system_log_path()
    if not path.exists():
        return "No log file found"

    try:
        with open(path, "r", encoding="utf-8") as f:
            lines = f.readlines()
            return "".join(lines[-n:])
    except OSError as e:
        return f"Error reading log: {e}"
