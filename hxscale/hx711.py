"""HX711 protocol engine, lifecycle sequences and sampling pipeline.

Datasheet: https://cdn.sparkfun.com/datasheets/Sensors/ForceFlex/hx711_english.pdf

One conversion is read by pulsing PD_SCK 24 times and sampling DOUT after each
pulse, most significant bit first. The 1 to 3 pulses that follow select the
channel and gain of the *next* conversion:

    ======  =======  ====
    pulses  channel  gain
    ======  =======  ====
    1       A        128
    2       B        32
    3       A        64
    ======  =======  ====

PD_SCK held high for more than 60 us powers the chip down, so every pulse is
timed and a pulse that ran long is reported as :class:`TimingViolation`.
"""
from __future__ import annotations

import time
from typing import Callable, Dict, List, MutableSequence, Optional, Protocol, Tuple

from hxscale.errors import (
    Cancelled,
    GainApplyFailed,
    HX711Error,
    InvalidArgument,
    NoValidData,
    ReadyTimeout,
    TimingViolation,
)
from hxscale.logging_setup import get_logger
from hxscale.pins import InputPin, OutputPin, PinId, open_pins

LOGGER = get_logger("hxscale.scale")

DATA_BITS = 24
SIGN_BIT = 0x800000
RAW_MIN = -0x800000
RAW_MAX = 0x7FFFFF
ERROR_SENTINEL = -1

MAX_CLOCK_HIGH_SECONDS = 60e-6
RESET_PULSE_SECONDS = 70e-6
READY_POLL_TIMEOUT = 0.1
READY_POLL_ATTEMPTS = 11
GAIN_APPLY_ATTEMPTS = 5

DEFAULT_GAIN = 128
GAIN_PULSES: Dict[int, int] = {128: 1, 64: 3, 32: 2}
PULSES_GAIN: Dict[int, int] = {pulses: gain for gain, pulses in GAIN_PULSES.items()}


class StopSignal(Protocol):
    def is_set(self) -> bool:
        ...


class _NeverStop:
    def is_set(self) -> bool:
        return False


_NEVER = _NeverStop()


def _checked_scale(value: float) -> float:
    value = float(value)
    if value == 0.0:
        raise InvalidArgument("scale_factor must be nonzero")
    return value


def gain_to_pulses(gain: int) -> int:
    """Trailing pulse count for ``gain``; unknown gains fall back to 128."""
    return GAIN_PULSES.get(gain, GAIN_PULSES[DEFAULT_GAIN])


def decode_raw(value: int) -> int:
    """Sign-extend a 24-bit two's complement word."""
    value &= 0xFFFFFF
    if value & SIGN_BIT:
        value -= 1 << DATA_BITS
    return value


def encode_raw(value: int) -> int:
    """Inverse of :func:`decode_raw`: the 24-bit word the chip shifts out for ``value``."""
    if not RAW_MIN <= value <= RAW_MAX:
        raise InvalidArgument(f"raw value {value} outside 24-bit range")
    return value & 0xFFFFFF


def push_moving_average(window: Optional[MutableSequence[float]], value: float, capacity: int) -> float:
    """Append ``value`` to ``window``, evict the oldest entries beyond ``capacity`` and
    return the mean of what is left.

    ``window`` belongs to the caller; a list or a deque both work.
    """
    if window is None:
        raise InvalidArgument("moving average window is required")
    if capacity < 1:
        raise InvalidArgument(f"moving average capacity must be >= 1, got {capacity}")
    window.append(value)
    while len(window) > capacity:
        del window[0]
    return sum(window) / len(window)


class HX711:
    """Driver for one HX711 chip on its own clock/data pin pair.

    The pins are used without locking; only one thread may talk to a chip at a
    time. ``timer`` and ``sleep`` exist so tests can run without real hardware.
    """

    def __init__(
        self,
        clock_pin: OutputPin,
        data_pin: InputPin,
        *,
        gain: int = DEFAULT_GAIN,
        zero_offset: int = 0,
        scale_factor: float = 1.0,
        timer: Callable[[], float] = time.perf_counter,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._clock = clock_pin
        self._data = data_pin
        self._timer = timer
        self._sleep = sleep
        self._num_end_pulses = gain_to_pulses(gain)
        # (zero_offset, scale_factor), replaced as a whole so readers never see a mixed pair
        self._calibration = (int(zero_offset), _checked_scale(scale_factor))
        self._recovering = False

    @classmethod
    def open(
        cls,
        clock_pin: PinId,
        data_pin: PinId,
        *,
        backend=None,
        pull_up: bool = True,
        **kwargs,
    ) -> "HX711":
        """Configure the pins on the host GPIO backend and flush the chip into the
        requested gain mode."""
        clock, data = open_pins(clock_pin, data_pin, backend=backend, pull_up=pull_up)
        chip = cls(clock, data, **kwargs)
        chip.apply_gain()
        return chip

    # ------------------------------------------------------------------
    # Calibration parameters
    @property
    def calibration(self) -> Tuple[int, float]:
        return self._calibration

    def set_calibration(self, *, zero_offset: Optional[int] = None, scale_factor: Optional[float] = None) -> None:
        """Replace zero offset and/or scale factor in one step; ``None`` keeps the current value."""
        current_zero, current_scale = self._calibration
        new_zero = current_zero if zero_offset is None else int(zero_offset)
        new_scale = current_scale if scale_factor is None else _checked_scale(scale_factor)
        self._calibration = (new_zero, new_scale)

    @property
    def zero_offset(self) -> int:
        return self._calibration[0]

    @zero_offset.setter
    def zero_offset(self, value: int) -> None:
        self.set_calibration(zero_offset=value)

    @property
    def scale_factor(self) -> float:
        return self._calibration[1]

    @scale_factor.setter
    def scale_factor(self, value: float) -> None:
        self.set_calibration(scale_factor=value)

    @property
    def num_end_pulses(self) -> int:
        return self._num_end_pulses

    @property
    def gain(self) -> int:
        return PULSES_GAIN[self._num_end_pulses]

    def calibrate(self, raw: int) -> float:
        zero_offset, scale_factor = self._calibration
        return (raw - zero_offset) / scale_factor

    # ------------------------------------------------------------------
    # Protocol engine
    def _pulse_clock(self) -> None:
        start = self._timer()
        self._clock.out(True)
        self._clock.out(False)
        elapsed = self._timer() - start
        if elapsed >= MAX_CLOCK_HIGH_SECONDS:
            # The chip may have latched a wrong mode; put it back before reporting.
            self._recover_gain()
            raise TimingViolation(f"clock was high for too long: {elapsed * 1e6:.1f}us")

    def _recover_gain(self) -> None:
        if self._recovering:
            return
        self._recovering = True
        try:
            self.apply_gain()
        except HX711Error as exc:
            LOGGER.warning("HX711 gain re-application after timing violation failed: %s", exc)
        finally:
            self._recovering = False

    def _wait_for_data_ready(self) -> None:
        # DOUT only signals ready while PD_SCK is low.
        self._clock.out(False)
        # Usually 80-100ms, occasionally around 500ms; edge waits may also return early.
        for _ in range(READY_POLL_ATTEMPTS):
            if not self._data.read():
                return
            self._data.wait_for_edge(READY_POLL_TIMEOUT)
        raise ReadyTimeout("HX711 ready timeout")

    def read_raw(self) -> int:
        """Read one conversion. Usually preceded by :meth:`reset` and followed by
        :meth:`shutdown`."""
        self._wait_for_data_ready()

        value = 0
        for _ in range(DATA_BITS):
            self._pulse_clock()
            value = (value << 1) | (1 if self._data.read() else 0)

        for _ in range(self._num_end_pulses):
            self._pulse_clock()

        return decode_raw(value)

    # ------------------------------------------------------------------
    # Lifecycle
    def apply_gain(self) -> None:
        """Flush the chip into the selected gain with dummy reads.

        The 400ms settling time after a channel change is covered by the ready
        wait of the dummy reads.
        """
        last_error: Optional[HX711Error] = None
        for _ in range(GAIN_APPLY_ATTEMPTS):
            try:
                self.read_raw()
            except HX711Error as exc:
                last_error = exc
                continue
            return
        raise GainApplyFailed(
            f"reading data failed {GAIN_APPLY_ATTEMPTS} times while applying gain: {last_error}"
        ) from last_error

    def set_gain(self, gain: int) -> None:
        """Select gain 128 or 64 (channel A) or 32 (channel B); anything else means 128.

        The change only takes effect from the second conversion after the call,
        which :meth:`apply_gain` takes care of.
        """
        self._num_end_pulses = gain_to_pulses(gain)
        if gain not in GAIN_PULSES:
            LOGGER.warning("HX711 gain %s not supported, using %d", gain, DEFAULT_GAIN)
        self.apply_gain()

    def reset(self) -> None:
        """Power the chip up (or reset it) and apply the current gain."""
        self._clock.out(False)
        self._clock.out(True)
        self._sleep(RESET_PULSE_SECONDS)
        self._clock.out(False)
        self.apply_gain()

    def shutdown(self) -> None:
        """Leave PD_SCK high so the chip powers down."""
        self._clock.out(True)

    # ------------------------------------------------------------------
    # Sampling pipeline
    def median_raw(self, num_readings: int, stop: Optional[StopSignal] = None) -> int:
        """Median of up to ``num_readings`` raw reads, checking ``stop`` before each.

        Failed reads and the -1 sentinel are dropped from the batch, not retried.
        For an even count the upper of the two middle values is returned.
        """
        if stop is None:
            stop = _NEVER
        values: List[int] = []
        last_error: Optional[HX711Error] = None

        for _ in range(num_readings):
            if stop.is_set():
                raise Cancelled("stopped")
            try:
                value = self.read_raw()
            except HX711Error as exc:
                last_error = exc
                continue
            if value == ERROR_SENTINEL:
                continue
            values.append(value)

        if not values:
            raise NoValidData(f"no data, last err: {last_error}", last_error)

        values.sort()
        return values[len(values) // 2]

    def read_median_raw(self, num_readings: int) -> int:
        return self.median_raw(num_readings)

    def read_median(self, num_readings: int) -> float:
        return self.calibrate(self.read_median_raw(num_readings))

    def read_median_then_avg(self, num_readings: int, num_avgs: int) -> float:
        """Average ``num_avgs`` medians of ``num_readings`` raw reads each."""
        if num_avgs < 1:
            raise InvalidArgument(f"num_avgs must be >= 1, got {num_avgs}")
        total = 0
        for _ in range(num_avgs):
            total += self.read_median_raw(num_readings)
        zero_offset, scale_factor = self._calibration
        return (total / num_avgs - zero_offset) / scale_factor

    def read_median_then_moving_avg(
        self,
        num_readings: int,
        num_avgs: int,
        window: MutableSequence[float],
    ) -> float:
        """Push one calibrated median into ``window`` (at most ``num_avgs`` long) and
        return the window mean."""
        if window is None:
            raise InvalidArgument("moving average window is required")
        if num_avgs < 1:
            raise InvalidArgument(f"num_avgs must be >= 1, got {num_avgs}")
        value = self.read_median(num_readings)
        return push_moving_average(window, value, num_avgs)

    def tare(self, num_readings: int = 11) -> int:
        """Use the current median raw reading as the zero offset."""
        zero_offset = self.read_median_raw(num_readings)
        self.set_calibration(zero_offset=zero_offset)
        LOGGER.info("HX711 tare set (zero offset %d)", zero_offset)
        return zero_offset


__all__ = [
    "DATA_BITS",
    "ERROR_SENTINEL",
    "GAIN_PULSES",
    "HX711",
    "RAW_MAX",
    "RAW_MIN",
    "decode_raw",
    "encode_raw",
    "gain_to_pulses",
    "push_moving_average",
]
