"""Configuration helpers for driver defaults."""

from .defaults import (  # noqa: F401
    DEFAULT_BACKEND,
    DEFAULT_CLOCK_PIN,
    DEFAULT_DATA_PIN,
    DEFAULT_ERROR_BACKOFF,
    DEFAULT_GAIN,
    DEFAULT_NUM_AVGS,
    DEFAULT_NUM_READINGS,
    DEFAULT_RESET_BACKOFF,
    DEFAULT_SCALE_FACTOR,
    DEFAULT_ZERO_OFFSET,
)

__all__ = [
    "DEFAULT_BACKEND",
    "DEFAULT_CLOCK_PIN",
    "DEFAULT_DATA_PIN",
    "DEFAULT_ERROR_BACKOFF",
    "DEFAULT_GAIN",
    "DEFAULT_NUM_AVGS",
    "DEFAULT_NUM_READINGS",
    "DEFAULT_RESET_BACKOFF",
    "DEFAULT_SCALE_FACTOR",
    "DEFAULT_ZERO_OFFSET",
]
