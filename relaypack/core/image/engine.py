from __future__ import annotations

import json
import logging
import shutil
from pathlib import Path
from typing import Any, Dict, List, Optional

from relaypack.core.process import CommandResult, run_command

log = logging.getLogger("relaypack.engine")


class ContainerEngine:
    """Thin wrapper over the docker (or podman) CLI."""

    def __init__(self, executable: str = "docker", *, buildkit: bool = True, extra_build_args: Optional[List[str]] = None):
        self.executable = executable
        self.buildkit = buildkit
        self.extra_build_args = list(extra_build_args or [])

    @property
    def name(self) -> str:
        return Path(self.executable).name

    def available(self) -> bool:
        return shutil.which(self.executable) is not None

    def build_command(self, *, tag: str, dockerfile: Path, context: Path, pull: bool = False) -> List[str]:
        cmd = [self.executable, "build", "-t", tag, "-f", str(dockerfile)]
        if pull:
            cmd.append("--pull")
        cmd += self.extra_build_args
        cmd.append(str(context))
        return cmd

    def build(
        self,
        *,
        tag: str,
        dockerfile: Path,
        context: Path,
        pull: bool = False,
        timeout: Optional[float] = None,
    ) -> CommandResult:
        env = {"DOCKER_BUILDKIT": "1"} if self.buildkit else {}
        cmd = self.build_command(tag=tag, dockerfile=dockerfile, context=context, pull=pull)
        log.info("building image %s with %s", tag, self.name)
        return run_command(cmd, env=env, timeout=timeout)

    def image_id(self, ref: str) -> Optional[str]:
        r = run_command([self.executable, "image", "inspect", "--format", "{{.Id}}", ref])
        if not r.ok:
            return None
        return str(r.stdout).strip() or None

    def inspect(self, ref: str) -> Optional[Dict[str, Any]]:
        r = run_command([self.executable, "image", "inspect", ref])
        if not r.ok:
            return None
        try:
            data = json.loads(r.stdout)
        except json.JSONDecodeError:
            log.warning("unparseable inspect output for %s", ref)
            return None
        if isinstance(data, list):
            return data[0] if data else None
        return data
