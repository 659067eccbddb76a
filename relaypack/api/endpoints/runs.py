from __future__ import annotations

from fastapi import APIRouter, HTTPException, Query

from relaypack.core.config.loader import load_config, resolve_state_dir
from relaypack.core.pipeline.store import RunStore, valid_run_id

router = APIRouter(prefix="/api/v1/runs", tags=["runs"])


def _store() -> RunStore:
    # same state directory the pipeline writes to; ConfigurationError surfaces as 422
    return RunStore(resolve_state_dir(load_config()))


@router.get("")
def list_runs(limit: int = Query(default=50, ge=1, le=500)):
    return {"runs": _store().list_runs(limit=limit)}


@router.get("/events")
def tail_events(limit: int = Query(default=200, ge=1, le=2000)):
    return {"events": _store().tail_events(limit=limit)}


@router.get("/{run_id}")
def get_run(run_id: str):
    if not valid_run_id(run_id):
        raise HTTPException(status_code=400, detail="Invalid run id")
    run = _store().load(run_id)
    if run is None:
        raise HTTPException(status_code=404, detail="Run not found")
    return run.to_dict()
