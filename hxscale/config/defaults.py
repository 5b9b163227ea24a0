"""Default driver and sampler parameters, overridable through HXSCALE_* env vars."""
from __future__ import annotations

import os
from typing import Optional


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_str(name: str, default: Optional[str]) -> Optional[str]:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip()


# BCM numbering; SCK drives the chip, DT is read back.
DEFAULT_CLOCK_PIN = _env_str("HXSCALE_CLOCK_PIN", "GPIO6") or "GPIO6"
DEFAULT_DATA_PIN = _env_str("HXSCALE_DATA_PIN", "GPIO5") or "GPIO5"
DEFAULT_BACKEND = _env_str("HXSCALE_BACKEND", None)

DEFAULT_GAIN = _env_int("HXSCALE_GAIN", 128)
DEFAULT_ZERO_OFFSET = _env_int("HXSCALE_ZERO_OFFSET", 0)
DEFAULT_SCALE_FACTOR = _env_float("HXSCALE_SCALE_FACTOR", 1.0)

DEFAULT_NUM_READINGS = max(1, _env_int("HXSCALE_NUM_READINGS", 11))
DEFAULT_NUM_AVGS = max(1, _env_int("HXSCALE_NUM_AVGS", 5))

DEFAULT_RESET_BACKOFF = max(0.0, _env_float("HXSCALE_RESET_BACKOFF", 1.0))
DEFAULT_ERROR_BACKOFF = max(0.0, _env_float("HXSCALE_ERROR_BACKOFF", 0.1))

__all__ = [
    "DEFAULT_CLOCK_PIN",
    "DEFAULT_DATA_PIN",
    "DEFAULT_BACKEND",
    "DEFAULT_GAIN",
    "DEFAULT_ZERO_OFFSET",
    "DEFAULT_SCALE_FACTOR",
    "DEFAULT_NUM_READINGS",
    "DEFAULT_NUM_AVGS",
    "DEFAULT_RESET_BACKOFF",
    "DEFAULT_ERROR_BACKOFF",
]
