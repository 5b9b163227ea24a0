"""GPIO pin facade with lgpio/pigpio/RPi.GPIO backends.

The driver only needs two capabilities: an output pin it can drive high or low
(the HX711 clock, PD_SCK) and an input pin it can sample and wait on for a
falling edge (the HX711 data line, DOUT). Everything timing sensitive above that
lives in :mod:`hxscale.hx711`, so tests can swap in a fake pin pair.
"""
from __future__ import annotations

import re
import threading
from typing import Optional, Protocol, Tuple, Union

from hxscale.errors import HostInitError, PinConfigFailed, PinIOError, PinNotFound
from hxscale.logging_setup import get_logger

try:  # pragma: no cover - optional dependency
    import lgpio  # type: ignore
except ImportError:  # pragma: no cover - handled dynamically
    lgpio = None  # type: ignore

LOGGER = get_logger("hxscale.gpio")

BACKEND_ORDER: Tuple[str, ...] = ("lgpio", "pigpio", "RPi.GPIO")
MAX_GPIO_LINE = 53
_PIN_NAME_RE = re.compile(r"^(?:GPIO|BCM)?\s*(\d+)$", re.IGNORECASE)

PinId = Union[int, str]


class OutputPin(Protocol):
    def out(self, level: bool) -> None:
        ...


class InputPin(Protocol):
    def read(self) -> bool:
        ...

    def wait_for_edge(self, timeout: float) -> bool:
        ...


def resolve_pin(identifier: PinId) -> int:
    """Map ``5``, ``"5"``, ``"GPIO5"`` or ``"BCM5"`` to a BCM line number."""

    if isinstance(identifier, bool):
        raise PinNotFound(f"invalid pin identifier: {identifier!r}")
    if isinstance(identifier, int):
        line = identifier
    elif isinstance(identifier, str):
        match = _PIN_NAME_RE.match(identifier.strip())
        if match is None:
            raise PinNotFound(f"unknown pin name: {identifier!r}")
        line = int(match.group(1))
    else:
        raise PinNotFound(f"invalid pin identifier: {identifier!r}")
    if not 0 <= line <= MAX_GPIO_LINE:
        raise PinNotFound(f"pin {identifier!r} out of range 0..{MAX_GPIO_LINE}")
    return line


# ----------------------------------------------------------------------
# lgpio
class _LGPIOOutput:
    def __init__(self, chip: int, line: int) -> None:
        self._chip = chip
        self._line = line

    def out(self, level: bool) -> None:
        try:
            lgpio.gpio_write(self._chip, self._line, 1 if level else 0)
        except Exception as exc:
            raise PinIOError(f"lgpio write GPIO{self._line} failed: {exc}") from exc


class _LGPIOInput:
    def __init__(self, chip: int, line: int) -> None:
        self._chip = chip
        self._line = line
        self._edge = threading.Event()
        self._callback = lgpio.callback(chip, line, lgpio.FALLING_EDGE, self._on_edge)

    def _on_edge(self, _chip, _gpio, _level, _tick) -> None:
        self._edge.set()

    def read(self) -> bool:
        try:
            return bool(lgpio.gpio_read(self._chip, self._line))
        except Exception as exc:
            raise PinIOError(f"lgpio read GPIO{self._line} failed: {exc}") from exc

    def wait_for_edge(self, timeout: float) -> bool:
        seen = self._edge.wait(timeout)
        self._edge.clear()
        return seen

    def cancel(self) -> None:
        try:
            self._callback.cancel()
        except Exception:  # pragma: no cover - best effort
            pass


class _LGPIOBackend:
    """GPIO access through lgpio (gpiochip character device)."""

    name = "lgpio"

    def __init__(self) -> None:
        if lgpio is None:  # pragma: no cover - hardware specific
            raise ImportError("lgpio module not available")
        self._chip = lgpio.gpiochip_open(0)
        self._lines: list = []
        self._inputs: list = []

    def output_pin(self, line: int) -> OutputPin:
        lgpio.gpio_claim_output(self._chip, line, 0)
        self._lines.append(line)
        return _LGPIOOutput(self._chip, line)

    def input_pin(self, line: int, *, pull_up: bool = True) -> InputPin:
        flags = getattr(lgpio, "SET_PULL_UP", 0) if pull_up else 0
        lgpio.gpio_claim_alert(self._chip, line, lgpio.FALLING_EDGE, flags)
        self._lines.append(line)
        pin = _LGPIOInput(self._chip, line)
        self._inputs.append(pin)
        return pin

    def close(self) -> None:
        for pin in self._inputs:
            pin.cancel()
        for line in self._lines:
            try:
                lgpio.gpio_free(self._chip, line)
            except Exception:  # pragma: no cover - best effort
                pass
        try:
            lgpio.gpiochip_close(self._chip)
        except Exception:  # pragma: no cover - best effort
            pass
        self._inputs = []
        self._lines = []


# ----------------------------------------------------------------------
# pigpio
class _PigpioOutput:
    def __init__(self, pi, line: int) -> None:
        self._pi = pi
        self._line = line

    def out(self, level: bool) -> None:
        try:
            self._pi.write(self._line, 1 if level else 0)
        except Exception as exc:
            raise PinIOError(f"pigpio write GPIO{self._line} failed: {exc}") from exc


class _PigpioInput:
    def __init__(self, pigpio, pi, line: int) -> None:
        self._pigpio = pigpio
        self._pi = pi
        self._line = line

    def read(self) -> bool:
        try:
            return bool(self._pi.read(self._line))
        except Exception as exc:
            raise PinIOError(f"pigpio read GPIO{self._line} failed: {exc}") from exc

    def wait_for_edge(self, timeout: float) -> bool:
        try:
            return bool(self._pi.wait_for_edge(self._line, self._pigpio.FALLING_EDGE, timeout))
        except Exception as exc:
            raise PinIOError(f"pigpio edge wait GPIO{self._line} failed: {exc}") from exc


class _PigpioBackend:
    """GPIO access through the pigpiod daemon."""

    name = "pigpio"

    def __init__(self) -> None:
        try:
            import pigpio  # type: ignore
        except ImportError as exc:  # pragma: no cover - hardware specific
            raise ImportError("pigpio module not available") from exc

        self._pigpio = pigpio
        self._pi = pigpio.pi()
        if not self._pi.connected:
            self._pi.stop()
            raise RuntimeError("pigpiod daemon not reachable")

    def output_pin(self, line: int) -> OutputPin:
        self._pi.set_mode(line, self._pigpio.OUTPUT)
        self._pi.write(line, 0)
        return _PigpioOutput(self._pi, line)

    def input_pin(self, line: int, *, pull_up: bool = True) -> InputPin:
        self._pi.set_mode(line, self._pigpio.INPUT)
        if pull_up:
            self._pi.set_pull_up_down(line, self._pigpio.PUD_UP)
        return _PigpioInput(self._pigpio, self._pi, line)

    def close(self) -> None:
        try:
            self._pi.stop()
        except Exception:  # pragma: no cover - best effort
            pass


# ----------------------------------------------------------------------
# RPi.GPIO
class _RPiGPIOOutput:
    def __init__(self, gpio, line: int) -> None:
        self._GPIO = gpio
        self._line = line

    def out(self, level: bool) -> None:
        try:
            self._GPIO.output(self._line, bool(level))
        except Exception as exc:
            raise PinIOError(f"RPi.GPIO write GPIO{self._line} failed: {exc}") from exc


class _RPiGPIOInput:
    def __init__(self, gpio, line: int) -> None:
        self._GPIO = gpio
        self._line = line

    def read(self) -> bool:
        try:
            return bool(self._GPIO.input(self._line))
        except Exception as exc:
            raise PinIOError(f"RPi.GPIO read GPIO{self._line} failed: {exc}") from exc

    def wait_for_edge(self, timeout: float) -> bool:
        timeout_ms = max(1, int(timeout * 1000))
        try:
            channel = self._GPIO.wait_for_edge(self._line, self._GPIO.FALLING, timeout=timeout_ms)
        except Exception as exc:
            raise PinIOError(f"RPi.GPIO edge wait GPIO{self._line} failed: {exc}") from exc
        return channel is not None


class _RPiGPIOBackend:
    """GPIO access through RPi.GPIO."""

    name = "RPi.GPIO"

    def __init__(self) -> None:
        try:
            import RPi.GPIO as GPIO  # type: ignore
        except ImportError as exc:  # pragma: no cover - hardware specific
            raise ImportError("RPi.GPIO module not available") from exc

        self._GPIO = GPIO
        self._GPIO.setwarnings(False)
        self._GPIO.setmode(GPIO.BCM)
        self._lines: list = []

    def output_pin(self, line: int) -> OutputPin:
        self._GPIO.setup(line, self._GPIO.OUT, initial=self._GPIO.LOW)
        self._lines.append(line)
        return _RPiGPIOOutput(self._GPIO, line)

    def input_pin(self, line: int, *, pull_up: bool = True) -> InputPin:
        if pull_up:
            self._GPIO.setup(line, self._GPIO.IN, pull_up_down=self._GPIO.PUD_UP)
        else:
            self._GPIO.setup(line, self._GPIO.IN)
        self._lines.append(line)
        return _RPiGPIOInput(self._GPIO, line)

    def close(self) -> None:
        if not self._lines:
            return
        try:
            self._GPIO.cleanup(tuple(self._lines))
        except Exception:  # pragma: no cover - best effort
            pass
        self._lines = []


# ----------------------------------------------------------------------
# Process-wide host initialisation
_HOST_LOCK = threading.Lock()
_HOST = None


def _create_backend(kind: str):
    if kind == "lgpio":
        return _LGPIOBackend()
    if kind == "pigpio":
        return _PigpioBackend()
    if kind == "RPi.GPIO":
        return _RPiGPIOBackend()
    raise ValueError(f"Unknown GPIO backend: {kind}")


def host_init(preferred: Optional[str] = None):
    """Bring up a GPIO backend once per process and return it.

    Later calls return the same backend. With ``preferred`` only that backend is
    tried; otherwise lgpio, pigpio and RPi.GPIO are tried in that order.
    """

    global _HOST
    with _HOST_LOCK:
        if _HOST is not None:
            if preferred and preferred != _HOST.name:
                raise HostInitError(f"GPIO host already initialised with {_HOST.name}")
            return _HOST

        kinds = (preferred,) if preferred else BACKEND_ORDER
        reasons = []
        for kind in kinds:
            try:
                backend = _create_backend(kind)
            except ImportError as exc:
                message = f"{kind} unavailable: {exc}"
                LOGGER.error(message)
                reasons.append(message)
                continue
            except Exception as exc:
                message = f"{kind} init failed: {exc}"
                LOGGER.error(message)
                reasons.append(message)
                continue
            _HOST = backend
            LOGGER.info("GPIO host initialized using %s", kind)
            return backend

        raise HostInitError("; ".join(reasons) or "no GPIO backend available")


def host_close() -> None:
    """Release the process-wide backend so a later :func:`host_init` starts fresh."""

    global _HOST
    with _HOST_LOCK:
        if _HOST is None:
            return
        try:
            _HOST.close()
        finally:
            _HOST = None


def open_pins(
    clock_pin: PinId,
    data_pin: PinId,
    *,
    backend=None,
    pull_up: bool = True,
) -> Tuple[OutputPin, InputPin]:
    """Resolve and configure the clock (output) and data (input) pins."""

    clock_line = resolve_pin(clock_pin)
    data_line = resolve_pin(data_pin)
    if backend is None:
        backend = host_init()

    try:
        clock = backend.output_pin(clock_line)
    except Exception as exc:
        raise PinConfigFailed(f"clock pin GPIO{clock_line}: {exc}") from exc
    try:
        data = backend.input_pin(data_line, pull_up=pull_up)
    except Exception as exc:
        raise PinConfigFailed(f"data pin GPIO{data_line}: {exc}") from exc

    LOGGER.info("HX711 pins ready (SCK=GPIO%d, DT=GPIO%d, backend=%s)", clock_line, data_line, backend.name)
    return clock, data


__all__ = [
    "BACKEND_ORDER",
    "InputPin",
    "OutputPin",
    "host_close",
    "host_init",
    "open_pins",
    "resolve_pin",
]
