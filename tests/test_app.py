from __future__ import annotations

import asyncio

import pytest

pytest.importorskip("fastapi")

from fastapi.testclient import TestClient

from hxscale.core.events import MovingAverageEvent, SamplerStoppedEvent
from hxscale.errors import PinNotFound
from hxscale.hx711 import HX711
from hxscale.main import create_app
from hxscale.models.settings import ScaleSettings
from hxscale.sampler import BackgroundSampler
from hxscale.tests.fakes import FakeHX711Chip, FakeSleep, FakeTimer


def _fake_sampler_factory(settings, bus):
    sim = FakeHX711Chip([1000] * 10)
    chip = HX711(
        sim.clock,
        sim.data,
        zero_offset=settings.zero_offset,
        scale_factor=settings.scale_factor,
        timer=FakeTimer(),
        sleep=FakeSleep(),
    )
    return BackgroundSampler(
        chip,
        settings.num_readings,
        settings.num_avgs,
        bus=bus,
        reset_backoff=0.01,
        error_backoff=0.05,
    )


def _broken_sampler_factory(settings, bus):
    raise PinNotFound("unknown pin name: 'nowhere'")


@pytest.fixture()
def settings():
    return ScaleSettings(zero_offset=200, scale_factor=4.0, num_readings=3, num_avgs=2)


@pytest.fixture()
def client(settings):
    app = create_app(settings=settings, sampler_factory=_fake_sampler_factory)
    with TestClient(app) as test_client:
        yield test_client


def test_health_endpoint_returns_ok_status(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_read_returns_latest_moving_average(client):
    sampler = client.app.state.sampler
    assert sampler.average.wait_for_update(0, timeout=5.0)

    payload = client.get("/api/scale/read").json()

    assert payload["ok"] is True
    assert payload["weight"] == pytest.approx(200.0)
    assert payload["updates"] >= 1
    assert isinstance(payload["ts"], str)


def test_status_reports_calibration(client):
    payload = client.get("/api/scale/status").json()

    assert payload["gain"] == 128
    assert payload["zero_offset"] == 200
    assert payload["scale_factor"] == 4.0
    assert payload["num_readings"] == 3
    assert payload["num_avgs"] == 2


def test_calibration_update(client):
    rejected = client.post("/api/scale/calibration", json={"scale_factor": 0}).json()
    assert rejected == {"ok": False, "reason": "scale_factor_zero"}

    accepted = client.post("/api/scale/calibration", json={"zero_offset": 0, "scale_factor": 2.0}).json()
    assert accepted == {"ok": True, "zero_offset": 0, "scale_factor": 2.0}
    assert client.get("/api/scale/status").json()["scale_factor"] == 2.0


def test_stop_finishes_the_sampler(client):
    sampler = client.app.state.sampler

    assert client.post("/api/scale/stop").json() == {"ok": True}
    assert sampler.join(timeout=5.0)

    status = client.get("/api/scale/status").json()
    assert status["done"] is True
    assert status["reason"] == "stopped"


def test_endpoints_report_sampler_start_failure(settings):
    app = create_app(settings=settings, sampler_factory=_broken_sampler_factory)
    with TestClient(app) as test_client:
        for path in ("/api/scale/status", "/api/scale/read"):
            payload = test_client.get(path).json()
            assert payload["ok"] is False
            assert payload["reason"] == "sampler_not_initialized"
            assert "nowhere" in payload["error"]
        assert test_client.post("/api/scale/stop").json()["reason"] == "sampler_not_initialized"
        assert test_client.get("/health").json() == {"status": "ok"}


def test_websocket_streams_events_until_sampler_stops(settings):
    app = create_app(settings=settings, sampler_factory=_broken_sampler_factory)
    with TestClient(app) as test_client:
        with test_client.websocket_connect("/ws/scale") as websocket:
            bus = app.state.bus
            bus.publish(MovingAverageEvent(value=12.5, raw=250, window_size=1))
            bus.publish(SamplerStoppedEvent())

            first = websocket.receive_json()
            second = websocket.receive_json()

        assert first["type"] == "moving-average"
        assert first["value"] == 12.5
        assert second["type"] == "sampler-stopped"


def test_websocket_handler_returns_when_client_leaves_without_events(settings):
    app = create_app(settings=settings, sampler_factory=_broken_sampler_factory)
    sent = []

    async def _session():
        incoming = asyncio.Queue()
        await incoming.put({"type": "websocket.connect"})

        async def receive():
            return await incoming.get()

        async def send(message):
            sent.append(message)
            if message["type"] == "websocket.accept":
                await incoming.put({"type": "websocket.disconnect", "code": 1000})

        scope = {
            "type": "websocket",
            "asgi": {"version": "3.0", "spec_version": "2.3"},
            "http_version": "1.1",
            "scheme": "ws",
            "path": "/ws/scale",
            "raw_path": b"/ws/scale",
            "root_path": "",
            "query_string": b"",
            "headers": [],
            "server": ("testserver", 80),
            "client": ("testclient", 50000),
            "subprotocols": [],
        }
        # no bus events are published, so only the disconnect can end the handler
        await asyncio.wait_for(app(scope, receive, send), 3.0)

    asyncio.run(_session())

    assert [message["type"] for message in sent] == ["websocket.accept"]
    assert app.state.bus.subscriber_count == 0


def test_asgi_module_exposes_app():
    from hxscale.asgi import app

    # no lifespan here, so no GPIO access
    response = TestClient(app).get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}
