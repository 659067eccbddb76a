# relaypack/core/pipeline/state_machine.py
from __future__ import annotations

from typing import Optional, Set, Tuple

from .models import STEP_ORDER, STEP_TRANSITIONS, PipelineState, PipelineStep


_ALLOWED: Set[Tuple[PipelineState, PipelineState]] = {
    (PipelineState.SOURCE_READY, PipelineState.BUILT),
    (PipelineState.BUILT, PipelineState.SPEC_GENERATED),
    (PipelineState.SPEC_GENERATED, PipelineState.STAGED),
    (PipelineState.STAGED, PipelineState.IMAGE_ASSEMBLED),
}

_TERMINAL: Set[PipelineState] = {PipelineState.IMAGE_ASSEMBLED}


def is_terminal(state: PipelineState) -> bool:
    return state in _TERMINAL


def can_transition(src: PipelineState, dst: PipelineState) -> bool:
    return (src, dst) in _ALLOWED


def ensure_transition(src: PipelineState, dst: PipelineState) -> None:
    if not can_transition(src, dst):
        raise ValueError(f"Illegal transition: {src.value} -> {dst.value}")


def next_step(state: PipelineState) -> Optional[PipelineStep]:
    for step in STEP_ORDER:
        if STEP_TRANSITIONS[step][0] == state:
            return step
    return None


def start_state(step: PipelineStep) -> PipelineState:
    """State a run must be in for ``step`` to execute."""
    return STEP_TRANSITIONS[step][0]
