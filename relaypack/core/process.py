# relaypack/core/process.py

from __future__ import annotations

import logging
import os
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Union

log = logging.getLogger("relaypack.process")

# Exit status reported when the executable cannot be launched at all.
LAUNCH_FAILED = 127


@dataclass
class CommandResult:
    args: List[str]
    returncode: Optional[int]
    stdout: Union[str, bytes] = ""
    stderr: str = ""
    timed_out: bool = False
    duration_s: float = 0.0

    @property
    def ok(self) -> bool:
        return self.returncode == 0 and not self.timed_out

    def describe(self) -> str:
        if self.timed_out:
            return "timed out"
        return f"exit status {self.returncode}"


def run_command(
    args: Sequence[str],
    *,
    cwd: Optional[Path] = None,
    env: Optional[Dict[str, str]] = None,
    timeout: Optional[float] = None,
    binary_stdout: bool = False,
) -> CommandResult:
    """Run an external command to completion and capture its output.

    Blocking, no retry. Output is kept verbatim; callers strip for display.
    stderr is always decoded as text; stdout is returned as raw bytes when
    ``binary_stdout`` is set so callers can persist it byte for byte.
    A missing executable or a timeout is reported through the result instead
    of raising, so every step builds its failure the same way.
    """
    argv = [str(a) for a in args]
    merged_env = {**os.environ, **(env or {})}
    log.debug("exec: %s (cwd=%s)", " ".join(argv), cwd)

    started = time.monotonic()
    try:
        p = subprocess.run(
            argv,
            cwd=str(cwd) if cwd is not None else None,
            env=merged_env,
            capture_output=True,
            timeout=timeout,
        )
    except subprocess.TimeoutExpired as e:
        stderr = e.stderr.decode("utf-8", errors="replace") if isinstance(e.stderr, bytes) else (e.stderr or "")
        return CommandResult(
            args=argv,
            returncode=None,
            stdout=b"" if binary_stdout else "",
            stderr=stderr,
            timed_out=True,
            duration_s=time.monotonic() - started,
        )
    except OSError as e:
        return CommandResult(
            args=argv,
            returncode=LAUNCH_FAILED,
            stdout=b"" if binary_stdout else "",
            stderr=f"{type(e).__name__}: {e}",
            duration_s=time.monotonic() - started,
        )

    out: Union[str, bytes] = p.stdout or b""
    if not binary_stdout:
        out = out.decode("utf-8", errors="replace")  # type: ignore[union-attr]

    return CommandResult(
        args=argv,
        returncode=p.returncode,
        stdout=out,
        stderr=(p.stderr or b"").decode("utf-8", errors="replace"),
        duration_s=time.monotonic() - started,
    )
