from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from relaypack.core.errors import ImageAssemblyFailure
from relaypack.core.fsutil import atomic_write_bytes
from relaypack.core.image.dockerfile import BuildManifest, render_dockerfile
from relaypack.core.image.engine import ContainerEngine
from relaypack.core.image.manifest import ImageManifest
from relaypack.core.image.verify import verify_image_config

from .models import ImageOutput, StagingOutput

log = logging.getLogger("relaypack.steps.image")

_BASE_IMAGE_HINTS = ("pull access denied", "manifest unknown", "not found: manifest", "failed to resolve source metadata")
_ACCOUNT_HINTS = ("useradd", "groupadd")


def _diagnose(stderr: str) -> str:
    low = (stderr or "").lower()
    if any(h in low for h in _BASE_IMAGE_HINTS):
        return "base image unavailable"
    if any(h in low for h in _ACCOUNT_HINTS):
        return "service account could not be created"
    return "container build failed"


def render_for_staging(staging: StagingOutput, manifest: ImageManifest) -> BuildManifest:
    for role in ("binary", "spec"):
        p = staging.artifacts.get(role)
        if p is None or not p.is_file():
            raise ImageAssemblyFailure(f"staged {role} missing from {staging.staging_dir}")
    return render_dockerfile(manifest, binary_name=staging.binary.name, spec_name=staging.spec.name)


def assemble_image(
    staging: StagingOutput,
    manifest: ImageManifest,
    *,
    tag: str,
    engine: ContainerEngine,
    work_dir: Path,
    pull: bool = False,
    verify: bool = True,
    dry_run: bool = False,
    timeout: Optional[float] = None,
) -> ImageOutput:
    """Build the node image from the staging directory.

    The rendered Dockerfile lives in ``work_dir`` (outside the build context)
    so the context carries only the staged artifacts. No container is run.
    """
    build_manifest = render_for_staging(staging, manifest)
    dockerfile = work_dir / "Dockerfile"
    try:
        atomic_write_bytes(dockerfile, build_manifest.text.encode("utf-8"))
    except OSError as e:
        raise ImageAssemblyFailure(f"cannot write Dockerfile to {work_dir}: {e}") from e

    if dry_run:
        log.info("dry run: rendered %s, not invoking %s", dockerfile, engine.name)
        return ImageOutput(
            tag=tag,
            dockerfile_path=dockerfile,
            dockerfile_sha256=build_manifest.sha256,
            built=False,
        )

    if not engine.available():
        raise ImageAssemblyFailure(f"container engine not found: {engine.executable}")

    r = engine.build(tag=tag, dockerfile=dockerfile, context=staging.staging_dir, pull=pull, timeout=timeout)
    if not r.ok:
        raise ImageAssemblyFailure(
            f"{_diagnose(r.stderr)} ({r.describe()})",
            command=r.args,
            returncode=r.returncode,
            stderr=r.stderr,
        )

    image_id = engine.image_id(tag)
    verification = None
    if verify:
        info = engine.inspect(tag)
        if info is None:
            raise ImageAssemblyFailure(f"image {tag} not found after build")
        verification = verify_image_config(info, manifest)
        if not verification["ok"]:
            raise ImageAssemblyFailure(
                "assembled image does not match manifest: " + "; ".join(verification["problems"])
            )

    log.info("assembled image %s (%s)", tag, image_id or "id unknown")
    return ImageOutput(
        tag=tag,
        dockerfile_path=dockerfile,
        dockerfile_sha256=build_manifest.sha256,
        image_id=image_id,
        built=True,
        verification=verification,
    )
