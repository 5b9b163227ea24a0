import pytest

from hxscale import pins
from hxscale.hx711 import HX711
from hxscale.tests.fakes import FakeHX711Chip, FakeSleep, FakeTimer


@pytest.fixture()
def timer() -> FakeTimer:
    return FakeTimer()


@pytest.fixture()
def make_chip(timer):
    def _make(values=(), **kwargs):
        sim = FakeHX711Chip(values)
        kwargs.setdefault("sleep", FakeSleep())
        chip = HX711(sim.clock, sim.data, timer=timer, **kwargs)
        return chip, sim

    return _make


@pytest.fixture()
def clean_host(monkeypatch):
    monkeypatch.setattr(pins, "_HOST", None)
    yield
    monkeypatch.setattr(pins, "_HOST", None)
