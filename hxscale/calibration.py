"""Interactive two-weight calibration helper."""
from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable

from hxscale.errors import InvalidArgument
from hxscale.hx711 import HX711

EMPTY_DELAY_SECONDS = 5.0
WEIGHT_DELAY_SECONDS = 15.0
CALIBRATION_READINGS = 11


@dataclass(frozen=True)
class AdjustValues:
    zero_offset: int
    scale_low: float
    scale_high: float
    raw_weight1: int
    raw_weight2: int


def adjust_for_weight(raw_at_weight: int, zero_offset: int, weight: float) -> float:
    """Scale factor that maps ``raw_at_weight`` to ``weight`` given ``zero_offset``."""
    if weight == 0:
        raise InvalidArgument("calibration weight must be nonzero")
    return (raw_at_weight - zero_offset) / weight


def get_adjust_values(
    chip: HX711,
    weight1: float,
    weight2: float,
    *,
    num_readings: int = CALIBRATION_READINGS,
    sleep: Callable[[float], None] = time.sleep,
    out: Callable[[str], None] = print,
) -> AdjustValues:
    """Walk through an empty reading and two known weights and suggest values for
    ``zero_offset`` and ``scale_factor``.

    Median read errors propagate; nothing is changed on ``chip``.
    """
    if weight1 == 0 or weight2 == 0:
        raise InvalidArgument("calibration weights must be nonzero")

    out(f"Make sure scale is working and empty, getting weight in {EMPTY_DELAY_SECONDS:.0f} seconds...")
    sleep(EMPTY_DELAY_SECONDS)
    out("Getting weight...")
    zero_offset = chip.read_median_raw(num_readings)
    out(f"Raw weight is: {zero_offset}")
    out("")

    out(f"Put first weight of {weight1:.2f} on scale, getting weight in {WEIGHT_DELAY_SECONDS:.0f} seconds...")
    sleep(WEIGHT_DELAY_SECONDS)
    out("Getting weight...")
    raw1 = chip.read_median_raw(num_readings)
    out(f"Raw weight is: {raw1}")
    out("")

    out(f"Put second weight of {weight2:.2f} on scale, getting weight in {WEIGHT_DELAY_SECONDS:.0f} seconds...")
    sleep(WEIGHT_DELAY_SECONDS)
    out("Getting weight...")
    raw2 = chip.read_median_raw(num_readings)
    out(f"Raw weight is: {raw2}")
    out("")

    adjust1 = adjust_for_weight(raw1, zero_offset, weight1)
    adjust2 = adjust_for_weight(raw2, zero_offset, weight2)

    out(f"zero_offset should be set to: {zero_offset}")
    out(f"scale_factor should be set to a value between {adjust1:f} and {adjust2:f}")
    out("")

    return AdjustValues(
        zero_offset=zero_offset,
        scale_low=min(adjust1, adjust2),
        scale_high=max(adjust1, adjust2),
        raw_weight1=raw1,
        raw_weight2=raw2,
    )


__all__ = ["AdjustValues", "adjust_for_weight", "get_adjust_values"]
