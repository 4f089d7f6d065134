"""Console + optional file logging shared by every module.

Library modules log through ``logging.getLogger(__name__)``; the helpers here
are for user-facing progress messages from the entry point and utilities.
"""

import logging
import os
from typing import Optional

APP_LOGGER_NAME = "liked_playlist"

_FILE_FMT = logging.Formatter(
    "%(asctime)s [%(name)s] %(levelname)-5s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
_CONSOLE_FMT = logging.Formatter("%(message)s")

logger = logging.getLogger(APP_LOGGER_NAME)


def setup_logging(level: str = "INFO", log_file: Optional[str] = None) -> logging.Logger:
    """Attach a console handler (and a file handler if log_file is set) to the root logger.

    Calling it again replaces the handlers installed by the previous call.
    """
    root = logging.getLogger()
    for handler in list(root.handlers):
        if getattr(handler, "_liked_playlist", False):
            root.removeHandler(handler)
            handler.close()

    root.setLevel(logging.DEBUG)

    console = logging.StreamHandler()
    console.setLevel(getattr(logging, str(level).upper(), logging.INFO))
    console.setFormatter(_CONSOLE_FMT)
    console._liked_playlist = True
    root.addHandler(console)

    if log_file:
        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        file_handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(_FILE_FMT)
        file_handler._liked_playlist = True
        root.addHandler(file_handler)

    # httpx logs every request at INFO; keep that out of the console.
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    return logger


def log_info(message: str) -> None:
    logger.info(message)


def log_success(message: str) -> None:
    logger.info(f"✅ {message}")


def log_warning(message: str) -> None:
    logger.warning(f"⚠️  {message}")


def log_error(message: str) -> None:
    logger.error(f"❌ {message}")
