"""TeamBoard - a company-internal community board.

Members post, comment and react under pseudonymous anon-ids derived from
their verified work email; the raw sign-in identity never reaches content.
"""

import logging
import os
from logging.handlers import RotatingFileHandler
from pathlib import Path

__version__ = "0.1.0"


def _setup_logging(
    log_dir: Path | None = None,
    *,
    console_level: int | str = logging.INFO,
) -> Path:
    """Configure logging to both console and rotating file.

    Returns:
        Path of the log file.
    """
    log_dir = log_dir or Path("logs")
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / f"teamboard.{os.getpid()}.log"

    # Root logger config
    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)

    # File handler - detailed logging with rotation (10MB, keep 5 backups)
    file_handler = RotatingFileHandler(
        log_file,
        maxBytes=10 * 1024 * 1024,
        backupCount=5,
        encoding="utf-8",
    )
    file_handler.setLevel(logging.DEBUG)
    file_formatter = logging.Formatter(
        "%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    file_handler.setFormatter(file_formatter)

    # Console handler - less verbose
    console_handler = logging.StreamHandler()
    console_handler.setLevel(console_level)
    console_formatter = logging.Formatter("%(levelname)s: %(message)s")
    console_handler.setFormatter(console_formatter)

    root_logger.addHandler(file_handler)
    root_logger.addHandler(console_handler)

    # Pool checkout chatter only when asked for
    logging.getLogger("teamboard.db.engine.pool").setLevel(logging.INFO)

    logging.debug("Logging configured. Log file: %s", log_file.absolute())
    return log_file
