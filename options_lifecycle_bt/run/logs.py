"""
Logging setup: console config for tools and a per-run log file.
"""

import logging
from pathlib import Path
from typing import Union

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
PACKAGE_LOGGER = "options_lifecycle_bt"


def setup_logging(level: str = "INFO"):
    """Setup logging configuration"""
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format=LOG_FORMAT,
        datefmt=DATE_FORMAT,
    )


def attach_run_log(run_dir: Union[str, Path], run_id: str, level: str = "INFO") -> logging.FileHandler:
    """Mirror the package's log records into <run_dir>/<run_id>/run.log."""
    path = Path(run_dir) / run_id
    path.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(path / "run.log", encoding="utf-8")
    handler.setLevel(getattr(logging, level.upper()))
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    pkg_logger = logging.getLogger(PACKAGE_LOGGER)
    # records below the logger's effective level never reach the handler
    if pkg_logger.getEffectiveLevel() > handler.level:
        pkg_logger.setLevel(handler.level)
    pkg_logger.addHandler(handler)
    return handler


def detach_run_log(handler: logging.FileHandler) -> None:
    logging.getLogger(PACKAGE_LOGGER).removeHandler(handler)
    handler.close()
