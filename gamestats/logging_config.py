"""Logging setup for hosts embedding the gameplay statistics cache."""

import logging
import os
from logging.handlers import RotatingFileHandler
from pathlib import Path

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def default_log_dir() -> Path:
    xdg_state_home = os.environ.get("XDG_STATE_HOME", str(Path.home() / ".local" / "state"))
    return Path(xdg_state_home) / "gameplay-stats"


def setup_logging(log_dir: Path | None = None, level: int = logging.INFO) -> logging.Logger:
    """Attach file and console handlers to the gamestats logger.

    Calling it again only updates the level.

    Args:
        log_dir: Directory for gameplay-stats.log (XDG state dir if omitted)
        level: Logging level for the gamestats logger

    Returns:
        The configured gamestats logger
    """
    logger = logging.getLogger("gamestats")
    logger.setLevel(level)
    if logger.handlers:
        return logger

    log_dir = log_dir or default_log_dir()
    log_dir.mkdir(parents=True, exist_ok=True)

    # 5MB max, keep 5 backups
    file_handler = RotatingFileHandler(
        log_dir / "gameplay-stats.log", maxBytes=5 * 1024 * 1024, backupCount=5
    )
    formatter = logging.Formatter(LOG_FORMAT)
    for handler in (file_handler, logging.StreamHandler()):
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    return logger
