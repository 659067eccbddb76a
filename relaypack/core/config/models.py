from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field


class BuildSettings(BaseModel):
    toolchain: str = "cargo"
    profile: Literal["release"] = "release"
    binary_name: str = "polkadot"
    target_dir: Optional[Path] = None
    features: List[str] = Field(default_factory=list)
    locked: bool = False
    extra_args: List[str] = Field(default_factory=list)
    timeout_seconds: Optional[float] = None


class SpecSettings(BaseModel):
    # None means: take it from the chain profile
    disable_default_bootnode: Optional[bool] = None
    raw: Optional[bool] = None
    output_dir: Optional[Path] = None
    verify_determinism: bool = False
    check_name: bool = True
    timeout_seconds: Optional[float] = None


class StagingSettings(BaseModel):
    dir: Optional[Path] = None
    per_run: bool = False
    lock: bool = True


class EngineSettings(BaseModel):
    executable: str = "docker"
    buildkit: bool = True
    extra_build_args: List[str] = Field(default_factory=list)


class ImageSettings(BaseModel):
    tag: Optional[str] = None
    manifest: Dict[str, Any] = Field(default_factory=dict)
    pull: bool = False
    verify: bool = True
    dry_run: bool = False
    timeout_seconds: Optional[float] = None


class PipelineConfig(BaseModel):
    project_root: Optional[Path] = None
    source_dir: Optional[Path] = None
    state_dir: Path = Path(".relaypack")
    profile: str = "kusama-local"
    compose_file: str = "docker-compose-validator.yml"

    build: BuildSettings = Field(default_factory=BuildSettings)
    spec: SpecSettings = Field(default_factory=SpecSettings)
    staging: StagingSettings = Field(default_factory=StagingSettings)
    engine: EngineSettings = Field(default_factory=EngineSettings)
    image: ImageSettings = Field(default_factory=ImageSettings)

    def image_tag(self) -> str:
        return self.image.tag or f"relaypack/{self.profile}:latest"
