from __future__ import annotations

import os
from pathlib import Path

from fastapi import APIRouter, HTTPException

from relaypack.core.profiles.registry import ChainProfileRegistry

router = APIRouter(prefix="/api/v1/profiles", tags=["profiles"])


def _registry() -> ChainProfileRegistry:
    return ChainProfileRegistry(Path(os.getenv("RELAYPACK_PROJECT_ROOT") or "."))


@router.get("")
def list_profiles():
    return {"profiles": _registry().list_names()}


@router.get("/{name}")
def get_profile(name: str):
    cp = _registry().get(name)
    if cp is None:
        raise HTTPException(status_code=404, detail="Chain profile not found")
    return cp.model_dump()
