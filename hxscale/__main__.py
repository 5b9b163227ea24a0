#!/usr/bin/env python3
"""Command line entry point: one-shot reads, calibration and the HTTP service."""
from __future__ import annotations

import argparse
import sys
from dataclasses import replace
from typing import List, Optional

from hxscale.calibration import CALIBRATION_READINGS, get_adjust_values
from hxscale.errors import HX711Error
from hxscale.hx711 import HX711
from hxscale.main import CONFIG_PATH, create_app
from hxscale.models.settings import ScaleSettings, load_settings_file
from hxscale.pins import host_close, host_init


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="hxscale", description="HX711 load cell ADC tools")
    parser.add_argument("--config", default=str(CONFIG_PATH), help="JSON settings file")
    parser.add_argument("--clock", help="clock (PD_SCK) pin, e.g. GPIO6")
    parser.add_argument("--data", help="data (DOUT) pin, e.g. GPIO5")
    parser.add_argument("--backend", choices=["lgpio", "pigpio", "RPi.GPIO"])
    parser.add_argument("--gain", type=int, choices=[128, 64, 32])

    sub = parser.add_subparsers(dest="command", required=True)

    read = sub.add_parser("read", help="reset the chip, take a median reading and power it down")
    read.add_argument("--readings", type=int, help="raw readings per median")
    read.add_argument("--avgs", type=int, default=1, help="medians to average")
    read.add_argument("--raw", action="store_true", help="print the raw median instead of the weight")

    calibrate = sub.add_parser("calibrate", help="suggest zero_offset and scale_factor from two weights")
    calibrate.add_argument("weight1", type=float)
    calibrate.add_argument("weight2", type=float)
    calibrate.add_argument("--readings", type=int, default=CALIBRATION_READINGS)

    serve = sub.add_parser("serve", help="run the HTTP/WebSocket service")
    serve.add_argument("--host", default="0.0.0.0")
    serve.add_argument("--port", type=int, default=8080)

    return parser


def _settings_from_args(args: argparse.Namespace) -> ScaleSettings:
    settings = load_settings_file(args.config)
    overrides = {}
    if args.clock:
        overrides["clock_pin"] = args.clock
    if args.data:
        overrides["data_pin"] = args.data
    if args.backend:
        overrides["backend"] = args.backend
    if args.gain:
        overrides["gain"] = args.gain
    return replace(settings, **overrides)


def _open_chip(settings: ScaleSettings) -> HX711:
    backend = host_init(settings.backend)
    return HX711.open(
        settings.clock_pin,
        settings.data_pin,
        backend=backend,
        gain=settings.gain,
        zero_offset=settings.zero_offset,
        scale_factor=settings.scale_factor,
    )


def _cmd_read(args: argparse.Namespace, settings: ScaleSettings) -> int:
    num_readings = args.readings or settings.num_readings
    chip = _open_chip(settings)
    try:
        chip.reset()
        if args.raw:
            print(chip.read_median_raw(num_readings))
        elif args.avgs > 1:
            print(f"{chip.read_median_then_avg(num_readings, args.avgs):.3f}")
        else:
            print(f"{chip.read_median(num_readings):.3f}")
    finally:
        chip.shutdown()
    return 0


def _cmd_calibrate(args: argparse.Namespace, settings: ScaleSettings) -> int:
    chip = _open_chip(settings)
    try:
        chip.reset()
        get_adjust_values(chip, args.weight1, args.weight2, num_readings=args.readings)
    finally:
        chip.shutdown()
    return 0


def _cmd_serve(args: argparse.Namespace, settings: ScaleSettings) -> int:
    import uvicorn

    uvicorn.run(create_app(settings=settings), host=args.host, port=args.port)
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = _build_parser().parse_args(argv)
    try:
        settings = _settings_from_args(args)
    except HX711Error as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    if args.command == "serve":
        return _cmd_serve(args, settings)

    try:
        if args.command == "read":
            return _cmd_read(args, settings)
        return _cmd_calibrate(args, settings)
    except HX711Error as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    finally:
        host_close()


if __name__ == "__main__":
    sys.exit(main())
