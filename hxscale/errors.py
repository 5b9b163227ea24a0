"""Exception hierarchy for the HX711 driver."""
from __future__ import annotations

from typing import Optional


class HX711Error(Exception):
    """Base exception for HX711 errors."""


class HostInitError(HX711Error):
    """Raised when no GPIO backend could be brought up."""


class PinNotFound(HX711Error):
    """Raised when a pin identifier does not resolve to a GPIO line."""


class PinConfigFailed(HX711Error):
    """Raised when direction, pull or edge configuration of a pin fails."""


class PinIOError(HX711Error):
    """Raised when a backend fails to drive or sample a pin."""


class TimingViolation(HX711Error):
    """Raised when the clock stayed high longer than the chip tolerates."""


class ReadyTimeout(HX711Error):
    """Raised when waiting for HX711 data ready times out."""


class GainApplyFailed(HX711Error):
    """Raised when the dummy reads that commit a gain change keep failing."""


class NoValidData(HX711Error):
    """Raised when a whole median batch produced no usable reading."""

    def __init__(self, message: str, last_error: Optional[BaseException] = None) -> None:
        super().__init__(message)
        self.last_error = last_error


class Cancelled(HX711Error):
    """Raised when the stop signal is observed in the middle of a batch."""


class InvalidArgument(HX711Error, ValueError):
    """Raised for missing or out of range arguments."""


__all__ = [
    "HX711Error",
    "HostInitError",
    "PinNotFound",
    "PinConfigFailed",
    "PinIOError",
    "TimingViolation",
    "ReadyTimeout",
    "GainApplyFailed",
    "NoValidData",
    "Cancelled",
    "InvalidArgument",
]
