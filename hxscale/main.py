"""
hxscale service - FastAPI server around the HX711 background sampler
Includes: status, latest moving average, calibration update, stop, live WebSocket feed
"""
from __future__ import annotations

import asyncio
import os
import queue
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Callable, Optional

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from pydantic import BaseModel

from hxscale.core.events import SamplerStoppedEvent, ScaleEventBus
from hxscale.errors import HX711Error
from hxscale.hx711 import HX711
from hxscale.logging_setup import get_logger
from hxscale.models.settings import ScaleSettings, load_settings_file
from hxscale.pins import host_init
from hxscale.sampler import BackgroundSampler

LOG_API = get_logger("hxscale.api")

CONFIG_PATH = Path(os.getenv("HXSCALE_CONFIG", "/etc/hxscale/config.json"))
SAMPLER_JOIN_TIMEOUT = 5.0
WS_POLL_SECONDS = 0.5

SamplerFactory = Callable[[ScaleSettings, ScaleEventBus], BackgroundSampler]


class CalibrationUpdate(BaseModel):
    zero_offset: Optional[int] = None
    scale_factor: Optional[float] = None


def create_sampler(settings: ScaleSettings, bus: ScaleEventBus) -> BackgroundSampler:
    """Open the chip described by ``settings`` and wrap it in a sampler."""
    backend = host_init(settings.backend)
    chip = HX711.open(
        settings.clock_pin,
        settings.data_pin,
        backend=backend,
        gain=settings.gain,
        zero_offset=settings.zero_offset,
        scale_factor=settings.scale_factor,
    )
    return BackgroundSampler(
        chip,
        settings.num_readings,
        settings.num_avgs,
        bus=bus,
        reset_backoff=settings.reset_backoff,
        error_backoff=settings.error_backoff,
    )


def create_app(
    settings: Optional[ScaleSettings] = None,
    sampler_factory: Optional[SamplerFactory] = None,
) -> FastAPI:
    if settings is None:
        settings = load_settings_file(CONFIG_PATH)
    factory = sampler_factory or create_sampler
    bus = ScaleEventBus()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await _init_sampler(app)
        yield
        await _close_sampler(app)

    app = FastAPI(title="hxscale", lifespan=lifespan)
    app.state.settings = settings
    app.state.bus = bus
    app.state.sampler = None
    app.state.sampler_error = None

    async def _init_sampler(app: FastAPI) -> None:
        if app.state.sampler is not None:
            return
        try:
            sampler = await asyncio.to_thread(factory, settings, bus)
            sampler.start()
        except HX711Error as exc:
            LOG_API.error("Failed to start scale sampler: %s", exc)
            app.state.sampler_error = str(exc)
            return
        app.state.sampler = sampler
        app.state.sampler_error = None

    async def _close_sampler(app: FastAPI) -> None:
        sampler = app.state.sampler
        if sampler is None:
            return
        sampler.stop()
        finished = await asyncio.to_thread(sampler.join, SAMPLER_JOIN_TIMEOUT)
        if not finished:
            LOG_API.warning("Scale sampler did not finish within %.1fs", SAMPLER_JOIN_TIMEOUT)
        app.state.sampler = None

    def _not_initialized() -> dict:
        payload = {"ok": False, "reason": "sampler_not_initialized"}
        if app.state.sampler_error:
            payload["error"] = app.state.sampler_error
        return payload

    async def _pump_events(websocket: WebSocket, events: queue.Queue) -> None:
        while True:
            try:
                event = await asyncio.to_thread(events.get, True, WS_POLL_SECONDS)
            except queue.Empty:
                continue
            await websocket.send_json(ScaleEventBus.serialize(event))
            if isinstance(event, SamplerStoppedEvent):
                return

    async def _wait_for_disconnect(websocket: WebSocket) -> None:
        # Clients only listen; anything they send is ignored.
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                return

    # ============= ENDPOINTS =============

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    @app.get("/api/scale/status")
    async def scale_status():
        sampler = app.state.sampler
        if sampler is None:
            return _not_initialized()
        return dict(sampler.get_status())

    @app.get("/api/scale/read")
    async def scale_read():
        sampler = app.state.sampler
        if sampler is None:
            return _not_initialized()
        return dict(sampler.get_reading())

    @app.post("/api/scale/calibration")
    async def scale_calibration(data: CalibrationUpdate):
        sampler = app.state.sampler
        if sampler is None:
            return _not_initialized()
        return dict(sampler.set_calibration(zero_offset=data.zero_offset, scale_factor=data.scale_factor))

    @app.post("/api/scale/stop")
    async def scale_stop():
        sampler = app.state.sampler
        if sampler is None:
            return _not_initialized()
        sampler.stop()
        return {"ok": True}

    @app.websocket("/ws/scale")
    async def websocket_scale(websocket: WebSocket):
        """Streams sampler events until the sampler stops or the client leaves."""
        token, events = bus.subscribe()
        await websocket.accept()
        pump = asyncio.create_task(_pump_events(websocket, events))
        watcher = asyncio.create_task(_wait_for_disconnect(websocket))
        try:
            done, pending = await asyncio.wait({pump, watcher}, return_when=asyncio.FIRST_COMPLETED)
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)
            if pump in done:
                pump.result()
                await websocket.close()
            else:
                watcher.result()
        except WebSocketDisconnect:
            pass
        except Exception as exc:
            LOG_API.error("WebSocket error: %s", exc)
        finally:
            pump.cancel()
            watcher.cancel()
            bus.unsubscribe(token)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8080)
