"""Logging configuration for mosaic runs.

The console gets the requested level. The log file, when enabled, always
records DEBUG so per-frame match rates from the worker threads are kept
even on a quiet console.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional, Tuple, Union

LOGGER_NAME = "video_mosaic"
DEFAULT_LOG_FILE = Path("logs") / "video_mosaic.log"
CONSOLE_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"
FILE_FORMAT = "%(asctime)s - %(levelname)s - %(threadName)s - %(message)s"


def _open_log_file(log_file: Union[str, Path]) -> Tuple[Optional[logging.Handler], Optional[str]]:
    """Create the file handler, or return the reason file logging is off."""
    log_path = Path(log_file).expanduser()
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        return logging.FileHandler(log_path, encoding="utf-8"), None
    except OSError as exc:
        return None, f"File logging disabled, cannot open '{log_path}': {exc}"


def configure_logging(
    *,
    level: int = logging.INFO,
    log_file: Union[str, Path, None] = DEFAULT_LOG_FILE,
) -> logging.Logger:
    """Install console and file handlers on the root logger.

    Pass ``log_file=None`` to log to the console only.
    """
    console = logging.StreamHandler()
    console.setLevel(level)
    console.setFormatter(logging.Formatter(CONSOLE_FORMAT))
    handlers: List[logging.Handler] = [console]

    pending_warning: Optional[str] = None
    if log_file:
        file_handler, pending_warning = _open_log_file(log_file)
        if file_handler is not None:
            file_handler.setLevel(logging.DEBUG)
            file_handler.setFormatter(logging.Formatter(FILE_FORMAT))
            handlers.append(file_handler)

    root_level = min(handler.level for handler in handlers)
    logging.basicConfig(level=root_level, handlers=handlers, force=True)

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(root_level)
    if pending_warning:
        logger.warning(pending_warning)
    return logger


__all__ = ["DEFAULT_LOG_FILE", "LOGGER_NAME", "configure_logging"]
