from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Dict, Optional

from pydantic import ValidationError

from .builtins import builtin_profiles
from .models import ChainProfile

log = logging.getLogger("relaypack.profiles")


class ChainProfileRegistry:
    """Loads chain profiles.

    Resolution order:
      1) Built-in profiles (always present)
      2) Optional templates/chain_profiles/*.json (override by name)
    """

    def __init__(self, project_root: Path):
        self.project_root = project_root
        self._profiles: Dict[str, ChainProfile] = {}
        self._load_all()

    def _load_all(self) -> None:
        self._profiles = {p.name: p for p in builtin_profiles()}

        templates_dir = self.project_root / "templates" / "chain_profiles"
        if not templates_dir.exists():
            return

        for p in sorted(templates_dir.glob("*.json")):
            try:
                data = json.loads(p.read_text(encoding="utf-8"))
                cp = ChainProfile(**data)
            except (json.JSONDecodeError, ValidationError, TypeError) as e:
                log.warning("ignoring invalid chain profile %s: %s", p, e)
                continue
            self._profiles[cp.name] = cp

    def list_names(self) -> list[str]:
        return sorted(self._profiles.keys())

    def get(self, name: str) -> Optional[ChainProfile]:
        return self._profiles.get(name)

    def resolve(self, name: str) -> ChainProfile:
        """Known profile, or an ad-hoc one for chains the binary knows but we do not."""
        cp = self.get(name)
        if cp is not None:
            return cp
        log.info("chain profile %r not registered; using defaults", name)
        return ChainProfile(name=name)
