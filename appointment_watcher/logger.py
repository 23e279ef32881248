"""
Logging configuration for the Appointment Watcher application.

Every module logs through `get_logger(__name__)`; records propagate to the
package logger, which writes to stderr through Rich and to a timestamped
file under `LOG_DIR`.
"""
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional, Union

from rich.console import Console
from rich.logging import RichHandler

from .config import config

PACKAGE_LOGGER = "appointment_watcher"

CONSOLE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
FILE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(filename)s:%(lineno)d - %(message)s"

def _open_log_file(logger: logging.Logger, log_file: Path) -> Optional[logging.FileHandler]:
    # the watcher keeps polling when the log directory is unwritable
    try:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(log_file, encoding='utf-8')
    except OSError as e:
        logger.warning(f"File logging disabled, cannot open {log_file}: {e}")
        return None
    handler.setFormatter(logging.Formatter(FILE_FORMAT))
    return handler

def setup_logger(
    name: str = PACKAGE_LOGGER,
    level: Union[int, str] = logging.INFO,
    logs_dir: Optional[Path] = None,
    log_file: Optional[Path] = None,
) -> logging.Logger:
    """
    Configure a logger writing to the console and to a log file.

    Args:
        name: Logger name
        level: Logging level, as a number or a name such as "DEBUG"
        logs_dir: Directory for a timestamped log file, ignored if `log_file` is given
        log_file: Explicit log file path

    Returns:
        Configured logger instance
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    logger = logging.getLogger(name)
    logger.setLevel(level)
    logger.handlers.clear()

    console_handler = RichHandler(
        console=Console(stderr=True),
        show_time=False,
        show_path=False,
        rich_tracebacks=True
    )
    console_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT))
    logger.addHandler(console_handler)

    if log_file is None and logs_dir:
        log_file = logs_dir / f"{name}_{datetime.now().strftime('%Y%m%d_%H%M%S')}.log"

    if log_file:
        file_handler = _open_log_file(logger, log_file)
        if file_handler is not None:
            logger.addHandler(file_handler)

    return logger

def get_logger(name: str) -> logging.Logger:
    """Return the logger for a module, usually called with __name__."""
    return logging.getLogger(name)

logger = setup_logger(level=config.log_level, logs_dir=config.logs_dir)

def handle_exception(exc_type, exc_value, exc_traceback):
    """Log uncaught exceptions before the process dies."""
    if issubclass(exc_type, KeyboardInterrupt):
        sys.__excepthook__(exc_type, exc_value, exc_traceback)
        return

    logger.critical(
        "Uncaught exception, watcher stopping",
        exc_info=(exc_type, exc_value, exc_traceback)
    )

sys.excepthook = handle_exception
