from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

from hxscale.config import defaults
from hxscale.errors import InvalidArgument
from hxscale.hx711 import GAIN_PULSES


def _normalize_float(value: Any) -> Optional[float]:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    if isinstance(value, str):
        trimmed = value.strip()
        if not trimmed:
            return None
        trimmed = trimmed.replace(",", ".")
        try:
            return float(trimmed)
        except ValueError:
            return None
    return None


def _normalize_int(value: Any) -> Optional[int]:
    float_candidate = _normalize_float(value)
    if float_candidate is None:
        return None
    try:
        return int(round(float_candidate))
    except (TypeError, ValueError, OverflowError):
        return None


def _normalize_pin(value: Any) -> Optional[str]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return f"GPIO{value}"
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


@dataclass
class ScaleSettings:
    clock_pin: str = defaults.DEFAULT_CLOCK_PIN
    data_pin: str = defaults.DEFAULT_DATA_PIN
    backend: Optional[str] = defaults.DEFAULT_BACKEND
    gain: int = defaults.DEFAULT_GAIN
    zero_offset: int = defaults.DEFAULT_ZERO_OFFSET
    scale_factor: float = defaults.DEFAULT_SCALE_FACTOR
    num_readings: int = defaults.DEFAULT_NUM_READINGS
    num_avgs: int = defaults.DEFAULT_NUM_AVGS
    reset_backoff: float = defaults.DEFAULT_RESET_BACKOFF
    error_backoff: float = defaults.DEFAULT_ERROR_BACKOFF

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def load_settings(raw: Mapping[str, Any]) -> ScaleSettings:
    """Build settings from a mapping, accepting either a flat mapping or one with a
    ``scale`` section. Unusable values fall back to the defaults."""
    scale_cfg = raw.get("scale")
    if not isinstance(scale_cfg, Mapping):
        scale_cfg = raw

    base = ScaleSettings()

    clock_pin = _normalize_pin(scale_cfg.get("clock_pin", scale_cfg.get("sck")))
    data_pin = _normalize_pin(scale_cfg.get("data_pin", scale_cfg.get("dt")))

    backend = scale_cfg.get("backend")
    if not isinstance(backend, str) or not backend.strip():
        backend = base.backend
    else:
        backend = backend.strip()

    gain = _normalize_int(scale_cfg.get("gain"))
    if gain not in GAIN_PULSES:
        gain = base.gain

    zero_offset = _normalize_int(scale_cfg.get("zero_offset"))
    if zero_offset is None:
        zero_offset = base.zero_offset

    scale_factor = _normalize_float(scale_cfg.get("scale_factor"))
    if scale_factor is None:
        scale_factor = base.scale_factor
    if scale_factor == 0.0:
        raise InvalidArgument("scale_factor must be nonzero")

    num_readings = _normalize_int(scale_cfg.get("num_readings"))
    if num_readings is None or num_readings < 1:
        num_readings = base.num_readings

    num_avgs = _normalize_int(scale_cfg.get("num_avgs"))
    if num_avgs is None or num_avgs < 1:
        num_avgs = base.num_avgs

    reset_backoff = _normalize_float(scale_cfg.get("reset_backoff"))
    if reset_backoff is None or reset_backoff < 0:
        reset_backoff = base.reset_backoff

    error_backoff = _normalize_float(scale_cfg.get("error_backoff"))
    if error_backoff is None or error_backoff < 0:
        error_backoff = base.error_backoff

    return ScaleSettings(
        clock_pin=clock_pin or base.clock_pin,
        data_pin=data_pin or base.data_pin,
        backend=backend,
        gain=int(gain),
        zero_offset=int(zero_offset),
        scale_factor=float(scale_factor),
        num_readings=int(num_readings),
        num_avgs=int(num_avgs),
        reset_backoff=float(reset_backoff),
        error_backoff=float(error_backoff),
    )


def load_settings_file(path: Union[str, Path]) -> ScaleSettings:
    """Load settings from a JSON file; a missing or unreadable file gives defaults."""
    config_path = Path(path)
    if not config_path.exists():
        return ScaleSettings()
    try:
        with open(config_path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (json.JSONDecodeError, OSError):
        return ScaleSettings()
    if not isinstance(data, Mapping):
        return ScaleSettings()
    return load_settings(data)


__all__ = ["ScaleSettings", "load_settings", "load_settings_file"]
