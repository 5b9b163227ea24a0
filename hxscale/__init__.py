"""HX711 load cell ADC driver with median/moving-average filtering."""

from hxscale.errors import (  # noqa: F401
    Cancelled,
    GainApplyFailed,
    HostInitError,
    HX711Error,
    InvalidArgument,
    NoValidData,
    PinConfigFailed,
    PinIOError,
    PinNotFound,
    ReadyTimeout,
    TimingViolation,
)
from hxscale.hx711 import HX711, decode_raw, push_moving_average  # noqa: F401
from hxscale.pins import host_init, open_pins  # noqa: F401
from hxscale.sampler import BackgroundSampler, LatestValue  # noqa: F401

__version__ = "0.1.0"

__all__ = [
    "BackgroundSampler",
    "Cancelled",
    "GainApplyFailed",
    "HX711",
    "HX711Error",
    "HostInitError",
    "InvalidArgument",
    "LatestValue",
    "NoValidData",
    "PinConfigFailed",
    "PinIOError",
    "PinNotFound",
    "ReadyTimeout",
    "TimingViolation",
    "decode_raw",
    "host_init",
    "open_pins",
    "push_moving_average",
]
