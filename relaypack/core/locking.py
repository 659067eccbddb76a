from __future__ import annotations

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Generator

try:
    import fcntl as _fcntl
    _HAS_FCNTL = True
except ImportError:
    _HAS_FCNTL = False
    logging.getLogger("relaypack.locking").warning(
        "fcntl not available (non-POSIX). Staging locks are disabled. "
        "Use per-run staging directories for concurrent pipeline runs on this platform."
    )


class LockBusyError(RuntimeError):
    pass


def lock_path_for(directory: Path) -> Path:
    return directory.parent / f"{directory.name}.lock"


@contextmanager
def exclusive_lock(path: Path) -> Generator[Path, None, None]:
    """Hold a non-blocking exclusive flock on ``path`` (POSIX only; no-op elsewhere).

    Raises LockBusyError when another process holds it.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "a", encoding="utf-8") as fh:
        if _HAS_FCNTL:
            try:
                _fcntl.flock(fh, _fcntl.LOCK_EX | _fcntl.LOCK_NB)
            except BlockingIOError as e:
                raise LockBusyError(f"lock held by another process: {path}") from e
        try:
            yield path
        finally:
            if _HAS_FCNTL:
                _fcntl.flock(fh, _fcntl.LOCK_UN)
