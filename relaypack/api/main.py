from __future__ import annotations

from fastapi import FastAPI

from relaypack import __version__
from relaypack.api.endpoints import health
from relaypack.api.endpoints.manifest import router as manifest_router
from relaypack.api.endpoints.metrics_export import router as metrics_router
from relaypack.api.endpoints.profiles import router as profiles_router
from relaypack.api.endpoints.runs import router as runs_router
from relaypack.api.middleware.error_shaping import SafeErrorMiddleware
from relaypack.api.middleware.request_id import RequestIdMiddleware

app = FastAPI(
    title="relaypack",
    version=__version__,
)

# Starlette reverses add_middleware order: the last call is the outermost wrapper.
app.add_middleware(SafeErrorMiddleware)
app.add_middleware(RequestIdMiddleware)

app.include_router(health.router)
app.include_router(metrics_router)
app.include_router(profiles_router)
app.include_router(manifest_router)
app.include_router(runs_router)
