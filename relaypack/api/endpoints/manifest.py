from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict

from fastapi import APIRouter
from pydantic import BaseModel, Field, ValidationError

from relaypack.core.errors import ConfigurationError
from relaypack.core.image.dockerfile import describe, render_dockerfile
from relaypack.core.image.manifest import default_manifest, port_mismatch
from relaypack.core.profiles.registry import ChainProfileRegistry

router = APIRouter(prefix="/api/v1/manifest", tags=["manifest"])


class RenderRequest(BaseModel):
    profile: str = "kusama-local"
    binary_name: str = "polkadot"
    manifest: Dict[str, Any] = Field(default_factory=dict)


class RenderResponse(BaseModel):
    profile: str
    dockerfile: str
    sha256: str
    runtime: Dict[str, Any]


@router.post("/render", response_model=RenderResponse)
def render(req: RenderRequest):
    """Render the Dockerfile a run would build, without touching the engine."""
    reg = ChainProfileRegistry(Path(os.getenv("RELAYPACK_PROJECT_ROOT") or "."))
    profile = reg.resolve(req.profile)
    try:
        manifest = default_manifest(profile, **req.manifest)
    except ValidationError as e:
        raise ConfigurationError(f"invalid image manifest: {e}") from e

    mismatch = port_mismatch(manifest, profile)
    if mismatch:
        raise ConfigurationError(mismatch)

    bm = render_dockerfile(manifest, binary_name=req.binary_name, spec_name=profile.spec_file())
    return {
        "profile": profile.name,
        "dockerfile": bm.text,
        "sha256": bm.sha256,
        "runtime": describe(manifest),
    }
