"""Lazily configured loggers shared by the driver, sampler and service."""
from __future__ import annotations

import logging
import os
import sys
from pathlib import Path
from typing import Dict

_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"
_LOGGERS: Dict[str, logging.Logger] = {}


def _log_dir() -> Path:
    return Path(os.getenv("HXSCALE_LOG_DIR", "/var/log/hxscale"))


def get_logger(name: str = "hxscale.scale") -> logging.Logger:
    """Return a logger writing to the hxscale log file, configuring it on first use."""

    cached = _LOGGERS.get(name)
    if cached is not None:
        return cached

    logger = logging.getLogger(name)
    if not logger.handlers:
        logger.setLevel(logging.INFO)
        formatter = logging.Formatter(_FORMAT)

        try:
            log_dir = _log_dir()
            log_dir.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(log_dir / "hxscale.log")
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)
        except Exception:
            try:
                home_dir = Path.home() / ".hxscale" / "logs"
                home_dir.mkdir(parents=True, exist_ok=True)
                file_handler = logging.FileHandler(home_dir / "hxscale.log")
                file_handler.setFormatter(formatter)
                logger.addHandler(file_handler)
            except Exception:
                stream_handler = logging.StreamHandler(sys.stderr)
                stream_handler.setFormatter(formatter)
                logger.addHandler(stream_handler)

    _LOGGERS[name] = logger
    return logger


__all__ = ["get_logger"]
