from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Literal, Optional


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class PipelineState(str, Enum):
    SOURCE_READY = "SOURCE_READY"
    BUILT = "BUILT"
    SPEC_GENERATED = "SPEC_GENERATED"
    STAGED = "STAGED"
    IMAGE_ASSEMBLED = "IMAGE_ASSEMBLED"


class PipelineStep(str, Enum):
    BUILD = "build"
    SPEC = "spec"
    STAGE = "stage"
    IMAGE = "image"


STEP_ORDER: List[PipelineStep] = [
    PipelineStep.BUILD,
    PipelineStep.SPEC,
    PipelineStep.STAGE,
    PipelineStep.IMAGE,
]

# state a step starts from -> state it leaves behind on success
STEP_TRANSITIONS: Dict[PipelineStep, tuple[PipelineState, PipelineState]] = {
    PipelineStep.BUILD: (PipelineState.SOURCE_READY, PipelineState.BUILT),
    PipelineStep.SPEC: (PipelineState.BUILT, PipelineState.SPEC_GENERATED),
    PipelineStep.STAGE: (PipelineState.SPEC_GENERATED, PipelineState.STAGED),
    PipelineStep.IMAGE: (PipelineState.STAGED, PipelineState.IMAGE_ASSEMBLED),
}

RunStatus = Literal["running", "succeeded", "failed", "cancelled"]


@dataclass
class PipelineEvent:
    ts: str
    event_type: str
    run_id: str
    step: Optional[str] = None
    state: Optional[str] = None
    payload: Dict[str, Any] = field(default_factory=dict)

    @staticmethod
    def mk(
        event_type: str,
        run_id: str,
        *,
        step: Optional[str] = None,
        state: Optional[PipelineState] = None,
        payload: Optional[Dict[str, Any]] = None,
    ) -> "PipelineEvent":
        return PipelineEvent(
            ts=_utc_now_iso(),
            event_type=event_type,
            run_id=run_id,
            step=step,
            state=state.value if state is not None else None,
            payload=payload or {},
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ts": self.ts,
            "event_type": self.event_type,
            "run_id": self.run_id,
            "step": self.step,
            "state": self.state,
            "payload": self.payload,
        }


@dataclass
class PipelineRun:
    run_id: str
    profile: str
    config_fingerprint: str
    state: PipelineState
    status: RunStatus
    created_ts: str
    updated_ts: str

    resumed_from: Optional[str] = None
    image_tag: Optional[str] = None
    staging_dir: Optional[str] = None

    # step name -> step output (as dict)
    outputs: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    error: Optional[Dict[str, Any]] = None
    handoff: Optional[str] = None
    events: List[PipelineEvent] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "run_id": self.run_id,
            "profile": self.profile,
            "config_fingerprint": self.config_fingerprint,
            "state": self.state.value,
            "status": self.status,
            "created_ts": self.created_ts,
            "updated_ts": self.updated_ts,
            "resumed_from": self.resumed_from,
            "image_tag": self.image_tag,
            "staging_dir": self.staging_dir,
            "outputs": self.outputs,
            "error": self.error,
            "handoff": self.handoff,
            "events": [e.to_dict() for e in self.events],
        }

    @staticmethod
    def from_dict(d: Dict[str, Any]) -> "PipelineRun":
        evs = [
            PipelineEvent(
                ts=e["ts"],
                event_type=e["event_type"],
                run_id=e.get("run_id") or d["run_id"],
                step=e.get("step"),
                state=e.get("state"),
                payload=e.get("payload") or {},
            )
            for e in d.get("events", []) or []
        ]
        return PipelineRun(
            run_id=d["run_id"],
            profile=d["profile"],
            config_fingerprint=d.get("config_fingerprint", ""),
            state=PipelineState(d["state"]),
            status=d.get("status", "failed"),
            created_ts=d.get("created_ts") or _utc_now_iso(),
            updated_ts=d.get("updated_ts") or _utc_now_iso(),
            resumed_from=d.get("resumed_from"),
            image_tag=d.get("image_tag"),
            staging_dir=d.get("staging_dir"),
            outputs=d.get("outputs") or {},
            error=d.get("error"),
            handoff=d.get("handoff"),
            events=evs,
        )
