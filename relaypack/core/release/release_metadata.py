from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict

from relaypack.core.steps.models import BuildOutput, ImageOutput, SpecOutput, StagingOutput


def build_release_metadata(
    *,
    run_id: str,
    build: BuildOutput,
    spec: SpecOutput,
    staging: StagingOutput,
    image: ImageOutput,
) -> Dict[str, Any]:
    return {
        "run_id": run_id,
        "image_tag": image.tag,
        "image_id": image.image_id,
        "image_built": image.built,
        "dockerfile_sha256": image.dockerfile_sha256,
        "commit": build.commit,
        "node_version": build.version,
        "binary_built_at_utc": build.built_at,
        "binary_sha256": build.sha256,
        "chain_profile": spec.profile,
        "chain_spec_sha256": spec.sha256,
        "staged_files": sorted(p.name for p in staging.artifacts.values()),
        "generated_at_utc": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
    }


def write_release_metadata(run_dir: Path, metadata: Dict[str, Any]) -> Path:
    out = run_dir / "release_metadata.json"
    out.write_text(json.dumps(metadata, indent=2, sort_keys=True), encoding="utf-8")
    return out
