from .models import PipelineRun, PipelineState, PipelineStep
from .orchestrator import resolve, run_pipeline
from .store import RunStore

__all__ = [
    "PipelineRun",
    "PipelineState",
    "PipelineStep",
    "RunStore",
    "resolve",
    "run_pipeline",
]
