from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from relaypack.core.errors import SpecGenerationFailure
from relaypack.core.fsutil import atomic_write_bytes
from relaypack.core.hashing import sha256_bytes
from relaypack.core.process import CommandResult, run_command
from relaypack.core.profiles.models import ChainProfile

from .models import SpecOutput

log = logging.getLogger("relaypack.steps.spec")


def build_spec_command(binary: Path, chain: str, *, disable_default_bootnode: bool, raw: bool = False) -> List[str]:
    cmd = [str(binary), "build-spec", "--chain", chain]
    if disable_default_bootnode:
        cmd.append("--disable-default-bootnode")
    if raw:
        cmd.append("--raw")
    return cmd


def _export(cmd: List[str], timeout: Optional[float]) -> bytes:
    r: CommandResult = run_command(cmd, timeout=timeout, binary_stdout=True)
    if not r.ok:
        raise SpecGenerationFailure(
            f"spec export {r.describe()}",
            command=r.args,
            returncode=r.returncode,
            stderr=r.stderr,
        )
    return r.stdout  # type: ignore[return-value]


def parse_chain_spec(data: bytes, *, command: Optional[List[str]] = None) -> Dict[str, Any]:
    try:
        doc = json.loads(data.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise SpecGenerationFailure(
            f"spec export produced malformed JSON: {e}",
            command=command,
            returncode=0,
        ) from e
    if not isinstance(doc, dict):
        raise SpecGenerationFailure(
            f"spec export produced {type(doc).__name__}, expected a JSON object",
            command=command,
            returncode=0,
        )
    return doc


def generate_spec(
    binary: Path,
    profile: ChainProfile,
    output_path: Path,
    *,
    disable_default_bootnode: Optional[bool] = None,
    raw: Optional[bool] = None,
    verify_determinism: bool = False,
    check_name: bool = True,
    timeout: Optional[float] = None,
) -> SpecOutput:
    """Export the chain specification for ``profile`` and freeze it at ``output_path``.

    stdout is persisted byte-for-byte. Nothing is written unless the export
    succeeded and parsed; with ``verify_determinism`` the export runs twice
    and must match exactly.
    """
    if not binary.is_file():
        raise SpecGenerationFailure(f"release binary not found: {binary}")

    no_boot = profile.disable_default_bootnode if disable_default_bootnode is None else disable_default_bootnode
    use_raw = profile.raw if raw is None else raw
    cmd = build_spec_command(binary, profile.name, disable_default_bootnode=no_boot, raw=use_raw)

    log.info("build spec %s", profile.name)
    data = _export(cmd, timeout)
    doc = parse_chain_spec(data, command=cmd)

    if verify_determinism:
        again = _export(cmd, timeout)
        if again != data:
            raise SpecGenerationFailure(
                f"spec export is not deterministic ({sha256_bytes(data)[:12]} != {sha256_bytes(again)[:12]})",
                command=cmd,
                returncode=0,
            )

    name = doc.get("name")
    # profiles without a display name (unregistered chains) are not checked
    if check_name and profile.display_name and name not in profile.accepted_names():
        raise SpecGenerationFailure(
            f"spec name {name!r} does not match chain profile (expected one of {profile.accepted_names()})",
            command=cmd,
            returncode=0,
        )

    try:
        atomic_write_bytes(output_path, data)
    except OSError as e:
        raise SpecGenerationFailure(f"cannot write chain spec to {output_path}: {e}", command=cmd, returncode=0) from e
    digest = sha256_bytes(data)
    log.info("wrote %s (sha256=%s)", output_path, digest[:12])

    return SpecOutput(
        spec_path=output_path,
        profile=profile.name,
        sha256=digest,
        name=name if isinstance(name, str) else None,
        chain_id=doc.get("id") if isinstance(doc.get("id"), str) else None,
        disable_default_bootnode=no_boot,
        raw=use_raw,
    )


def describe_spec(spec_path: Path, profile: ChainProfile) -> SpecOutput:
    """SpecOutput for an already exported document (used when resuming)."""
    if not spec_path.is_file():
        raise SpecGenerationFailure(f"chain spec not found: {spec_path}")
    try:
        data = spec_path.read_bytes()
    except OSError as e:
        raise SpecGenerationFailure(f"cannot read chain spec {spec_path}: {e}") from e
    doc = parse_chain_spec(data)
    return SpecOutput(
        spec_path=spec_path,
        profile=profile.name,
        sha256=sha256_bytes(data),
        name=doc.get("name") if isinstance(doc.get("name"), str) else None,
        chain_id=doc.get("id") if isinstance(doc.get("id"), str) else None,
        disable_default_bootnode=profile.disable_default_bootnode,
        raw=profile.raw,
    )
