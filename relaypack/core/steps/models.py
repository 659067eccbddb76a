from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def _jsonable(d: Dict[str, Any]) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for k, v in d.items():
        if isinstance(v, Path):
            out[k] = str(v)
        elif isinstance(v, dict):
            out[k] = _jsonable(v)
        else:
            out[k] = v
    return out


@dataclass(frozen=True)
class BuildOutput:
    binary_path: Path
    built_at: str
    sha256: str
    version: Optional[str] = None
    commit: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return _jsonable(asdict(self))


@dataclass(frozen=True)
class SpecOutput:
    spec_path: Path
    profile: str
    sha256: str
    name: Optional[str] = None
    chain_id: Optional[str] = None
    disable_default_bootnode: bool = True
    raw: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return _jsonable(asdict(self))


@dataclass(frozen=True)
class StagingOutput:
    staging_dir: Path
    # artifact role ("binary" / "spec") -> staged file
    artifacts: Dict[str, Path] = field(default_factory=dict)
    removed: List[str] = field(default_factory=list)

    @property
    def binary(self) -> Path:
        return self.artifacts["binary"]

    @property
    def spec(self) -> Path:
        return self.artifacts["spec"]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "staging_dir": str(self.staging_dir),
            "artifacts": {k: str(v) for k, v in self.artifacts.items()},
            "removed": list(self.removed),
        }


@dataclass(frozen=True)
class ImageOutput:
    tag: str
    dockerfile_path: Path
    dockerfile_sha256: str
    image_id: Optional[str] = None
    built: bool = True
    verification: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return _jsonable(asdict(self))
