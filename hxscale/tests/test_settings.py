import json

import pytest

from hxscale.config import defaults
from hxscale.errors import InvalidArgument
from hxscale.models.settings import ScaleSettings, load_settings, load_settings_file


def test_defaults_match_config_module():
    settings = ScaleSettings()

    assert settings.clock_pin == defaults.DEFAULT_CLOCK_PIN
    assert settings.data_pin == defaults.DEFAULT_DATA_PIN
    assert settings.gain == 128
    assert settings.num_readings == defaults.DEFAULT_NUM_READINGS
    assert settings.num_avgs == defaults.DEFAULT_NUM_AVGS


def test_scale_section_is_preferred():
    settings = load_settings(
        {
            "scale": {
                "clock_pin": 23,
                "data_pin": "GPIO24",
                "backend": " pigpio ",
                "gain": "64",
                "zero_offset": "-1200",
                "scale_factor": "21,5",
                "num_readings": 7,
                "num_avgs": 3,
            },
            "gain": 32,
        }
    )

    assert settings.clock_pin == "GPIO23"
    assert settings.data_pin == "GPIO24"
    assert settings.backend == "pigpio"
    assert settings.gain == 64
    assert settings.zero_offset == -1200
    assert settings.scale_factor == 21.5
    assert settings.num_readings == 7
    assert settings.num_avgs == 3


def test_flat_mapping_and_pin_aliases():
    settings = load_settings({"sck": "GPIO17", "dt": 27, "gain": 32})

    assert settings.clock_pin == "GPIO17"
    assert settings.data_pin == "GPIO27"
    assert settings.gain == 32


@pytest.mark.parametrize(
    "raw",
    [
        {"gain": 100},
        {"gain": "high"},
        {"num_readings": 0},
        {"num_avgs": -2},
        {"reset_backoff": -1},
        {"clock_pin": True},
        {"backend": ""},
    ],
)
def test_unusable_values_fall_back_to_defaults(raw):
    assert load_settings(raw) == ScaleSettings()


def test_zero_scale_factor_is_rejected():
    with pytest.raises(InvalidArgument):
        load_settings({"scale_factor": 0})


def test_settings_file_round_trip(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"scale": {"zero_offset": 42, "scale_factor": 3.5}}), encoding="utf-8")

    settings = load_settings_file(path)

    assert settings.zero_offset == 42
    assert settings.scale_factor == 3.5
    assert settings.to_dict()["zero_offset"] == 42


@pytest.mark.parametrize("content", [None, "{not json", "[1, 2, 3]"])
def test_missing_or_broken_file_gives_defaults(tmp_path, content):
    path = tmp_path / "config.json"
    if content is not None:
        path.write_text(content, encoding="utf-8")

    assert load_settings_file(path) == ScaleSettings()
