from __future__ import annotations

import json
import re
from pathlib import Path
from typing import Any, Dict, List, Optional

from .models import PipelineEvent, PipelineRun

_RUN_ID_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.-]{0,127}$")


def valid_run_id(run_id: str) -> bool:
    return bool(_RUN_ID_RE.match(run_id or "")) and ".." not in run_id


class RunStore:
    """File-backed pipeline run records.

    Layout:
      <state_dir>/runs/<run_id>/run.json
      <state_dir>/events.log   (JSONL, all runs)
    """

    def __init__(self, state_dir: Path):
        self.state_dir = state_dir

    @property
    def runs_dir(self) -> Path:
        d = self.state_dir / "runs"
        d.mkdir(parents=True, exist_ok=True)
        return d

    @property
    def events_log(self) -> Path:
        return self.state_dir / "events.log"

    def run_dir(self, run_id: str) -> Path:
        if not valid_run_id(run_id):
            raise ValueError(f"invalid run id: {run_id!r}")
        d = self.runs_dir / run_id
        d.mkdir(parents=True, exist_ok=True)
        return d

    def save(self, run: PipelineRun) -> Path:
        p = self.run_dir(run.run_id) / "run.json"
        p.write_text(json.dumps(run.to_dict(), indent=2, sort_keys=True), encoding="utf-8")
        return p

    def load(self, run_id: str) -> Optional[PipelineRun]:
        if not valid_run_id(run_id):
            return None
        p = self.runs_dir / run_id / "run.json"
        if not p.exists():
            return None
        return PipelineRun.from_dict(json.loads(p.read_text(encoding="utf-8")))

    def list_runs(self, limit: int = 50) -> List[Dict[str, Any]]:
        files = sorted(self.runs_dir.glob("*/run.json"), key=lambda p: p.stat().st_mtime, reverse=True)
        out: List[Dict[str, Any]] = []
        for p in files[: max(1, min(limit, 500))]:
            data = json.loads(p.read_text(encoding="utf-8"))
            out.append(
                {
                    "run_id": data.get("run_id"),
                    "profile": data.get("profile"),
                    "state": data.get("state"),
                    "status": data.get("status"),
                    "created_ts": data.get("created_ts"),
                    "image_tag": data.get("image_tag"),
                }
            )
        return out

    def append_events(self, events: List[PipelineEvent]) -> None:
        """
        Append JSONL events to <state_dir>/events.log.
        If the existing file doesn't end with a newline, add one first.
        """
        if not events:
            return

        log = self.events_log
        log.parent.mkdir(parents=True, exist_ok=True)

        with log.open("ab+") as f:
            f.seek(0, 2)
            if f.tell() > 0:
                f.seek(-1, 2)
                if f.read(1) != b"\n":
                    f.write(b"\n")
            for e in events:
                f.write((json.dumps(e.to_dict()) + "\n").encode("utf-8"))

    def tail_events(self, limit: int = 200) -> List[Dict[str, Any]]:
        log = self.events_log
        if not log.exists():
            return []
        lines = log.read_text(encoding="utf-8", errors="replace").splitlines()
        lines = lines[-max(1, min(limit, 2000)) :]
        out: List[Dict[str, Any]] = []
        for ln in lines:
            try:
                out.append(json.loads(ln))
            except json.JSONDecodeError:
                continue
        return out
