from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence


class ConfigurationError(ValueError):
    """Invalid pipeline configuration, raised before any step runs."""


class PipelineError(RuntimeError):
    """Terminal failure of one pipeline step.

    Carries the failing step, the external command (if any), its exit status
    and its stderr verbatim. Never retried by the pipeline.
    """

    step: str = "pipeline"

    def __init__(
        self,
        message: str,
        *,
        command: Optional[Sequence[str]] = None,
        returncode: Optional[int] = None,
        stderr: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.command: Optional[List[str]] = list(command) if command is not None else None
        self.returncode = returncode
        self.stderr = stderr
        self.run_id: Optional[str] = None

    def __str__(self) -> str:
        parts = [f"[{self.step}] {self.message}"]
        if self.command:
            parts.append(f"command: {' '.join(self.command)}")
        if self.returncode is not None:
            parts.append(f"exit status: {self.returncode}")
        if self.stderr:
            parts.append(f"stderr:\n{self.stderr.rstrip()}")
        return "\n".join(parts)

    @property
    def kind(self) -> str:
        return type(self).__name__

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "step": self.step,
            "message": self.message,
            "command": self.command,
            "returncode": self.returncode,
            "stderr": self.stderr,
            "run_id": self.run_id,
        }


class BuildFailure(PipelineError):
    step = "build"


class SpecGenerationFailure(PipelineError):
    step = "spec"


class StagingFailure(PipelineError):
    step = "stage"


class ImageAssemblyFailure(PipelineError):
    step = "image"
