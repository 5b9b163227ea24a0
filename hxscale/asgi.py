"""ASGI application entrypoint for the hxscale service."""
from __future__ import annotations

from hxscale.main import app as _app

# Re-export the FastAPI application created in hxscale.main so uvicorn can
# locate it via the dotted path ``hxscale.asgi:app``.
app = _app

__all__ = ["app"]
