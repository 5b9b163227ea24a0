"""Background sampler publishing an HX711 moving average."""
from __future__ import annotations

import threading
import time
from collections import deque
from datetime import datetime, timezone
from typing import Deque, Dict, Optional, Tuple

from hxscale.config.defaults import DEFAULT_ERROR_BACKOFF, DEFAULT_RESET_BACKOFF
from hxscale.core.events import (
    MovingAverageEvent,
    SampleErrorEvent,
    SamplerStoppedEvent,
    ScaleEventBus,
)
from hxscale.errors import Cancelled, HX711Error, InvalidArgument
from hxscale.hx711 import HX711, push_moving_average
from hxscale.logging_setup import get_logger

LOGGER = get_logger("hxscale.sampler")


class LatestValue:
    """Lock-guarded cell holding the most recent published value."""

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._value: Optional[float] = None
        self._timestamp: Optional[float] = None
        self._version = 0

    def set(self, value: float) -> None:
        with self._cond:
            self._value = value
            self._timestamp = time.time()
            self._version += 1
            self._cond.notify_all()

    def get(self) -> Optional[float]:
        with self._cond:
            return self._value

    def snapshot(self) -> Tuple[Optional[float], Optional[float], int]:
        """Return ``(value, timestamp, version)``; version counts updates."""
        with self._cond:
            return self._value, self._timestamp, self._version

    def wait_for_update(self, after_version: int = 0, timeout: Optional[float] = None) -> bool:
        """Block until the version moves past ``after_version``."""
        with self._cond:
            return self._cond.wait_for(lambda: self._version > after_version, timeout)


class BackgroundSampler:
    """Keeps a moving average of calibrated median readings up to date.

    :meth:`run` resets the chip (retrying every ``reset_backoff`` seconds), then
    takes cancellable median batches until :meth:`stop` is called. Failed batches
    are logged and retried; the published average only ever holds successful
    readings. On the way out the chip is shut down and :attr:`done` is set.
    """

    def __init__(
        self,
        chip: HX711,
        num_readings: int,
        num_avgs: int,
        *,
        bus: Optional[ScaleEventBus] = None,
        reset_backoff: float = DEFAULT_RESET_BACKOFF,
        error_backoff: float = DEFAULT_ERROR_BACKOFF,
    ) -> None:
        if num_avgs < 1:
            raise InvalidArgument(f"num_avgs must be >= 1, got {num_avgs}")
        self._chip = chip
        self._num_readings = int(num_readings)
        self._num_avgs = int(num_avgs)
        self._bus = bus
        self._reset_backoff = max(0.0, float(reset_backoff))
        self._error_backoff = max(0.0, float(error_backoff))

        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()
        self._stop_event = threading.Event()
        self._done = threading.Event()
        self._started = False

        self._average = LatestValue()
        self._last_error: Optional[str] = None
        self._status_reason = "Sampler not started"

    # ------------------------------------------------------------------
    # Lifecycle
    def start(self) -> None:
        with self._lock:
            if self._started:
                return
            self._started = True
            self._status_reason = "Initializing"
            self._thread = threading.Thread(target=self.run, name="hx711-sampler", daemon=True)
            self._thread.start()
        LOGGER.info(
            "HX711 sampler starting (num_readings=%d, num_avgs=%d)",
            self._num_readings,
            self._num_avgs,
        )

    def stop(self) -> None:
        self._stop_event.set()

    def join(self, timeout: Optional[float] = None) -> bool:
        """Wait for the completion signal; ``True`` once the sampler has finished."""
        return self._done.wait(timeout)

    @property
    def done(self) -> threading.Event:
        return self._done

    @property
    def stop_event(self) -> threading.Event:
        return self._stop_event

    @property
    def average(self) -> LatestValue:
        return self._average

    @property
    def moving_average(self) -> Optional[float]:
        return self._average.get()

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    # ------------------------------------------------------------------
    # Loop
    def run(self) -> None:
        """Sampling loop; blocks until stopped. :meth:`start` runs it on a thread."""
        try:
            if self._reset_until_ready():
                self._sample_until_stopped()
        finally:
            self._finish()

    def _reset_until_ready(self) -> bool:
        while not self._stop_event.is_set():
            try:
                self._chip.reset()
            except HX711Error as exc:
                LOGGER.error("HX711 sampler reset error: %s", exc)
                self._last_error = str(exc)
                self._status_reason = "reset_failed"
                self._stop_event.wait(self._reset_backoff)
                continue
            self._status_reason = ""
            return True
        return False

    def _sample_until_stopped(self) -> None:
        window: Deque[float] = deque(maxlen=self._num_avgs)
        while not self._stop_event.is_set():
            try:
                raw = self._chip.median_raw(self._num_readings, self._stop_event)
            except Cancelled:
                break
            except HX711Error as exc:
                LOGGER.error("HX711 sampler median read error: %s", exc)
                self._last_error = str(exc)
                self._publish(SampleErrorEvent(reason=str(exc)))
                self._stop_event.wait(self._error_backoff)
                continue

            value = self._chip.calibrate(raw)
            average = push_moving_average(window, value, self._num_avgs)
            self._average.set(average)
            self._last_error = None
            self._publish(MovingAverageEvent(value=average, raw=raw, window_size=len(window)))

    def _finish(self) -> None:
        try:
            self._chip.shutdown()
        except HX711Error as exc:
            LOGGER.error("HX711 sampler shutdown error: %s", exc)
        self._status_reason = "stopped"
        self._publish(SamplerStoppedEvent())
        self._done.set()
        LOGGER.info("HX711 sampler stopped")

    def _publish(self, event) -> None:
        if self._bus is not None:
            self._bus.publish(event)

    # ------------------------------------------------------------------
    # Public API
    def set_calibration(
        self,
        *,
        zero_offset: Optional[int] = None,
        scale_factor: Optional[float] = None,
    ) -> Dict[str, object]:
        """Update the chip calibration; takes effect from the next batch."""
        try:
            self._chip.set_calibration(zero_offset=zero_offset, scale_factor=scale_factor)
        except InvalidArgument:
            return {"ok": False, "reason": "scale_factor_zero"}
        zero_offset, scale_factor = self._chip.calibration
        LOGGER.info(
            "HX711 calibration updated (zero_offset=%d, scale_factor=%.6f)",
            zero_offset,
            scale_factor,
        )
        return {"ok": True, "zero_offset": zero_offset, "scale_factor": scale_factor}

    def get_status(self) -> Dict[str, object]:
        _, _, version = self._average.snapshot()
        zero_offset, scale_factor = self._chip.calibration
        status: Dict[str, object] = {
            "ok": self.running and not self._status_reason,
            "running": self.running,
            "done": self._done.is_set(),
            "gain": self._chip.gain,
            "zero_offset": zero_offset,
            "scale_factor": scale_factor,
            "num_readings": self._num_readings,
            "num_avgs": self._num_avgs,
            "updates": version,
        }
        if self._status_reason:
            status["reason"] = self._status_reason
        if self._last_error:
            status["last_error"] = self._last_error
        return status

    def get_reading(self) -> Dict[str, object]:
        value, timestamp, version = self._average.snapshot()
        if value is None or timestamp is None:
            return {"ok": False, "reason": "no_data"}
        ts_iso = datetime.fromtimestamp(timestamp, tz=timezone.utc).isoformat()
        return {"ok": True, "weight": value, "updates": version, "ts": ts_iso}


__all__ = ["BackgroundSampler", "LatestValue"]
