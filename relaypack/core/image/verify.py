from __future__ import annotations

from typing import Any, Dict, List

from .manifest import ImageManifest


def _ports(config: Dict[str, Any]) -> List[int]:
    out: List[int] = []
    for key in (config.get("ExposedPorts") or {}).keys():
        port, _, _proto = str(key).partition("/")
        out.append(int(port))
    return sorted(out)


def verify_image_config(inspect: Dict[str, Any], manifest: ImageManifest) -> Dict[str, Any]:
    """Compare ``image inspect`` output against the manifest.

    Returns ``{"ok": bool, "problems": [...]}``; problems are human-readable.
    """
    config = inspect.get("Config") or {}
    problems: List[str] = []

    ports = _ports(config)
    if ports != sorted(manifest.ports):
        problems.append(f"exposed ports {ports} != {sorted(manifest.ports)}")

    volumes = sorted((config.get("Volumes") or {}).keys())
    if volumes != [manifest.volume]:
        problems.append(f"volumes {volumes} != {[manifest.volume]}")

    user = (config.get("User") or "").split(":")[0]
    if user in ("", "root", "0"):
        problems.append(f"image runs as privileged user {user or '<unset>'}")
    elif user not in (manifest.account.name, str(manifest.account.uid)):
        problems.append(f"user {user} != {manifest.account.name}")

    cmd = config.get("Cmd") or []
    if list(cmd) != manifest.default_command:
        problems.append(f"cmd {cmd} != {manifest.default_command}")

    entrypoint = config.get("Entrypoint")
    if entrypoint:
        problems.append(f"unexpected entrypoint {entrypoint}")

    return {"ok": not problems, "problems": problems}
