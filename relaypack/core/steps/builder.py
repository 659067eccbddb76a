from __future__ import annotations

import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from relaypack.core.config.models import BuildSettings
from relaypack.core.errors import BuildFailure
from relaypack.core.hashing import sha256_file
from relaypack.core.process import run_command

from .models import BuildOutput

log = logging.getLogger("relaypack.steps.build")


def build_command(settings: BuildSettings) -> List[str]:
    cmd = [settings.toolchain, "build", f"--{settings.profile}"]
    if settings.locked:
        cmd.append("--locked")
    if settings.features:
        cmd += ["--features", ",".join(settings.features)]
    if settings.target_dir is not None:
        cmd += ["--target-dir", str(settings.target_dir)]
    cmd += settings.extra_args
    return cmd


def target_dir_for(source_dir: Path, settings: BuildSettings) -> Path:
    if settings.target_dir is not None:
        t = settings.target_dir
        return t if t.is_absolute() else source_dir / t
    env_dir = (os.getenv("CARGO_TARGET_DIR") or "").strip()
    if env_dir:
        t = Path(env_dir)
        return t if t.is_absolute() else source_dir / t
    return source_dir / "target"


def binary_path_for(source_dir: Path, settings: BuildSettings) -> Path:
    return target_dir_for(source_dir, settings) / settings.profile / settings.binary_name


def _probe_version(binary: Path) -> Optional[str]:
    r = run_command([str(binary), "--version"], timeout=30)
    if not r.ok:
        log.warning("could not read version of %s (%s): %s", binary, r.describe(), r.stderr.strip())
        return None
    return str(r.stdout).strip() or None


def _source_commit(source_dir: Path) -> Optional[str]:
    r = run_command(["git", "-C", str(source_dir), "rev-parse", "HEAD"])
    if not r.ok:
        log.debug("source tree %s is not a git checkout", source_dir)
        return None
    return str(r.stdout).strip() or None


def describe_binary(binary: Path, source_dir: Path) -> BuildOutput:
    """Identity of an existing release binary: path, mtime, version, digest."""
    mtime = datetime.fromtimestamp(binary.stat().st_mtime, tz=timezone.utc)
    return BuildOutput(
        binary_path=binary,
        built_at=mtime.replace(microsecond=0).isoformat().replace("+00:00", "Z"),
        sha256=sha256_file(binary),
        version=_probe_version(binary),
        commit=_source_commit(source_dir),
    )


def build_release(source_dir: Path, settings: BuildSettings) -> BuildOutput:
    """Compile the node in release mode and return the resulting binary.

    Raises BuildFailure on a non-zero toolchain exit or when the expected
    binary is absent afterwards.
    """
    if not source_dir.is_dir():
        raise BuildFailure(f"source tree not found: {source_dir}")

    cmd = build_command(settings)
    log.info("build release version in %s", source_dir)
    r = run_command(cmd, cwd=source_dir, timeout=settings.timeout_seconds)
    if not r.ok:
        raise BuildFailure(
            f"toolchain {r.describe()}",
            command=r.args,
            returncode=r.returncode,
            stderr=r.stderr,
        )

    binary = binary_path_for(source_dir, settings)
    if not binary.is_file():
        raise BuildFailure(
            f"toolchain succeeded but no binary at {binary}",
            command=r.args,
            returncode=r.returncode,
            stderr=r.stderr,
        )

    try:
        out = describe_binary(binary, source_dir)
    except OSError as e:
        raise BuildFailure(f"cannot read built binary {binary}: {e}", command=r.args, returncode=r.returncode) from e
    log.info("built %s (sha256=%s, version=%s) in %.1fs", binary, out.sha256[:12], out.version, r.duration_s)
    return out
