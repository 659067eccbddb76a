from __future__ import annotations

import os
import tempfile

from fastapi import APIRouter
from starlette.responses import JSONResponse

from relaypack.core.config.loader import load_config, resolve_state_dir
from relaypack.core.errors import ConfigurationError
from relaypack.core.image.engine import ContainerEngine
from relaypack.core.observability.metrics import inc_named

router = APIRouter()


@router.get("/health/live")
def live():
    inc_named("health_live")
    return {"status": "ok"}


@router.get("/health/ready")
def ready():
    """
    Ready when the state directory is writable. A missing container engine
    is reported but does not block: rendering and run history still work.
    """
    inc_named("health_ready")
    problems: list[str] = []

    executable = os.getenv("RELAYPACK_ENGINE") or "docker"
    try:
        cfg = load_config()
        executable = cfg.engine.executable
        state_dir = resolve_state_dir(cfg)
    except ConfigurationError as e:
        problems.append(f"config_error:{e}")
    else:
        try:
            state_dir.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(dir=state_dir, prefix=".ready-", delete=True):
                pass
        except OSError as e:
            problems.append(f"state_dir_not_writable:{state_dir} err={type(e).__name__}")

    engine = ContainerEngine(executable)
    body = {"engine": engine.name, "engine_available": engine.available()}

    if problems:
        return JSONResponse(status_code=503, content={"status": "not_ready", "problems": problems, **body})
    return {"status": "ready", **body}
