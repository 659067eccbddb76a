from __future__ import annotations

import hashlib
import json
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import ValidationError

from relaypack.core.errors import ConfigurationError
from relaypack.core.process import run_command

from .models import PipelineConfig


DEFAULT_CONFIG_NAME = "relaypack.yaml"


def _env_overrides() -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    v = (os.getenv("RELAYPACK_SOURCE_DIR") or "").strip()
    if v:
        out["source_dir"] = v
    v = (os.getenv("RELAYPACK_STATE_DIR") or "").strip()
    if v:
        out["state_dir"] = v
    v = (os.getenv("RELAYPACK_PROFILE") or "").strip()
    if v:
        out["profile"] = v
    v = (os.getenv("RELAYPACK_ENGINE") or "").strip()
    if v:
        out.setdefault("engine", {})["executable"] = v
    v = (os.getenv("RELAYPACK_IMAGE_TAG") or "").strip()
    if v:
        out.setdefault("image", {})["tag"] = v
    return out


def _deep_merge(base: Dict[str, Any], extra: Dict[str, Any]) -> Dict[str, Any]:
    out = dict(base)
    for k, v in extra.items():
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            out[k] = _deep_merge(out[k], v)
        else:
            out[k] = v
    return out


def load_config(
    path: Optional[Path] = None,
    *,
    overrides: Optional[Dict[str, Any]] = None,
    use_env: bool = True,
) -> PipelineConfig:
    """Load pipeline config.

    Precedence (lowest to highest): YAML file, RELAYPACK_* environment, explicit overrides.
    The file is ``path``, else $RELAYPACK_CONFIG, else ./relaypack.yaml when present.
    """
    if path is None:
        env_path = (os.getenv("RELAYPACK_CONFIG") or "").strip() if use_env else ""
        if env_path:
            path = Path(env_path)
        elif Path(DEFAULT_CONFIG_NAME).exists():
            path = Path(DEFAULT_CONFIG_NAME)

    data: Dict[str, Any] = {}
    if path is not None:
        if not path.exists():
            raise ConfigurationError(f"config file not found: {path}")
        try:
            data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"invalid YAML in {path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigurationError(f"config root must be a mapping: {path}")

    if use_env:
        data = _deep_merge(data, _env_overrides())
    if overrides:
        data = _deep_merge(data, overrides)

    try:
        return PipelineConfig(**data)
    except ValidationError as e:
        raise ConfigurationError(f"invalid pipeline config: {e}") from e


def resolve_source_dir(config: PipelineConfig) -> Path:
    """Configured source tree, or the enclosing git checkout of the cwd."""
    if config.source_dir is not None:
        return config.source_dir.resolve()
    r = run_command(["git", "rev-parse", "--show-toplevel"])
    top = str(r.stdout).strip()
    if not r.ok or not top:
        raise ConfigurationError(
            f"source_dir not configured and no git checkout found ({r.describe()}): {r.stderr.strip()}"
        )
    return Path(top).resolve()


def config_fingerprint(config: PipelineConfig) -> str:
    payload = config.model_dump(mode="json")
    return hashlib.sha256(json.dumps(payload, sort_keys=True).encode("utf-8")).hexdigest()


def resolve_state_dir(config: PipelineConfig) -> Path:
    """Run-state directory; a relative ``state_dir`` lives under the source tree."""
    if config.state_dir.is_absolute():
        return config.state_dir
    return resolve_source_dir(config) / config.state_dir
