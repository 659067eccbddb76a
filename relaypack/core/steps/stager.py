from __future__ import annotations

import logging
import os
import shutil
import stat
import tempfile
import uuid
from contextlib import nullcontext
from pathlib import Path
from typing import Dict, List, Optional

from relaypack.core.errors import StagingFailure
from relaypack.core.fsutil import atomic_copy
from relaypack.core.locking import LockBusyError, exclusive_lock, lock_path_for

from .models import StagingOutput

log = logging.getLogger("relaypack.steps.stage")

_EXEC_BITS = stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH


def _stale_entries(staging_dir: Path, keep: set[str]) -> List[str]:
    if not staging_dir.is_dir():
        return []
    return sorted(e.name for e in staging_dir.iterdir() if e.name not in keep)


def _swap_in(fresh: Path, staging_dir: Path) -> None:
    """Replace ``staging_dir`` with ``fresh``; the previous directory is restored if the swap fails."""
    if not staging_dir.exists():
        os.rename(fresh, staging_dir)
        return
    old = staging_dir.parent / f".{staging_dir.name}.old-{uuid.uuid4().hex[:8]}"
    os.rename(staging_dir, old)
    try:
        os.rename(fresh, staging_dir)
    except OSError:
        os.rename(old, staging_dir)
        raise
    try:
        shutil.rmtree(old)
    except OSError as e:
        log.warning("could not remove previous staging directory %s: %s", old, e)


def stage_artifacts(binary: Path, spec: Path, staging_dir: Path, *, lock: bool = True) -> StagingOutput:
    """Copy the release binary and chain spec into ``staging_dir``.

    Last run wins: both artifacts are copied into a fresh sibling directory
    which then replaces ``staging_dir`` whole, so it holds exactly the two
    artifacts and a failed copy leaves the previous pair untouched.
    """
    for label, src in (("release binary", binary), ("chain spec", spec)):
        if not src.is_file():
            raise StagingFailure(f"{label} not found: {src}")
    if binary.name == spec.name:
        raise StagingFailure(f"binary and spec share a file name: {binary.name}")

    parent = staging_dir.parent
    try:
        parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise StagingFailure(f"cannot create staging directory {staging_dir}: {e}") from e
    for d in (staging_dir, parent):
        if d.exists() and not os.access(d, os.W_OK | os.X_OK):
            raise StagingFailure(f"staging directory is not writable: {d}")

    artifacts: Dict[str, Path] = {
        "binary": staging_dir / binary.name,
        "spec": staging_dir / spec.name,
    }
    fresh: Optional[Path] = None
    guard = exclusive_lock(lock_path_for(staging_dir)) if lock else nullcontext()
    try:
        with guard:
            fresh = Path(tempfile.mkdtemp(prefix=f".{staging_dir.name}.stage-", dir=str(parent)))
            os.chmod(fresh, 0o755)
            src_mode = stat.S_IMODE(binary.stat().st_mode)
            atomic_copy(binary, fresh / binary.name, mode=src_mode | _EXEC_BITS)
            atomic_copy(spec, fresh / spec.name)
            removed = _stale_entries(staging_dir, {p.name for p in artifacts.values()})
            _swap_in(fresh, staging_dir)
            fresh = None
    except LockBusyError as e:
        raise StagingFailure(f"staging directory {staging_dir} is in use by another run") from e
    except OSError as e:
        raise StagingFailure(f"copy into {staging_dir} failed: {e}") from e
    finally:
        if fresh is not None:
            shutil.rmtree(fresh, ignore_errors=True)

    if removed:
        log.info("removed stale staging entries: %s", ", ".join(removed))
    log.info("staged %s", ", ".join(str(p) for p in artifacts.values()))
    return StagingOutput(staging_dir=staging_dir, artifacts=artifacts, removed=removed)
