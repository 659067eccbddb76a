from __future__ import annotations

import hashlib
import json
import posixpath
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Tuple

from jinja2 import Environment, FileSystemLoader, StrictUndefined, select_autoescape

from .manifest import ImageManifest

TEMPLATES_DIR = Path(__file__).resolve().parent / "templates"

Directive = Tuple[str, str]


def parse_directives(text: str) -> List[Directive]:
    """Split Dockerfile text into (instruction, argument) pairs.

    Continuation lines stay part of their instruction's argument; blank
    lines and comments are skipped.
    """
    out: List[Directive] = []
    pending = None
    for line in text.splitlines():
        if pending is not None:
            pending += "\n" + line
        elif not line.strip() or line.lstrip().startswith("#"):
            continue
        else:
            pending = line
        if pending.endswith("\\"):
            continue
        op, _, arg = pending.partition(" ")
        out.append((op.upper(), arg))
        pending = None
    return out


@dataclass(frozen=True)
class BuildManifest:
    """Rendered container build manifest (a Dockerfile) plus its parsed directives."""

    text: str
    directives: List[Directive] = field(default_factory=list)

    @classmethod
    def from_text(cls, text: str) -> "BuildManifest":
        return cls(text=text, directives=parse_directives(text))

    @property
    def sha256(self) -> str:
        return hashlib.sha256(self.text.encode("utf-8")).hexdigest()

    def ops(self) -> List[str]:
        return [op for op, _ in self.directives]

    def find(self, op: str) -> List[str]:
        return [arg for o, arg in self.directives if o == op]


def _account_setup(m: ImageManifest) -> str:
    acct = m.account
    link_parent = posixpath.dirname(m.link_path)
    steps = [
        f"groupadd -g {acct.gid} {acct.name}",
        f"useradd -m -u {acct.uid} -g {acct.name} -s {acct.shell} -d {acct.home} {acct.name}",
        f"mkdir -p {link_parent}",
        f"mkdir -p {m.data_dir}",
        f"chown -R {acct.owner} {m.data_dir} {posixpath.join(acct.home, '.local')}",
        f"ln -s {m.data_dir} {m.link_path}",
    ]
    # Attack-surface reduction last in this layer: the account tools above live there.
    if m.remove_paths:
        steps.append("rm -rf " + " ".join(m.remove_paths))
    return " && \\\n    ".join(steps)


def _env() -> Environment:
    return Environment(
        loader=FileSystemLoader(str(TEMPLATES_DIR)),
        autoescape=select_autoescape(enabled_extensions=()),
        undefined=StrictUndefined,
        trim_blocks=True,
        lstrip_blocks=True,
        keep_trailing_newline=True,
    )


def render_dockerfile(
    manifest: ImageManifest,
    *,
    binary_name: str,
    spec_name: str,
) -> BuildManifest:
    """Render the hardened node image.

    Layer order: account and directories, then attack-surface removal, then
    artifact copies with ownership, permissions applied at copy time (no shell
    is left to chmod with), then runtime metadata.
    """
    m = manifest
    template = _env().get_template("Dockerfile.j2")
    text = template.render(
        base_image=m.base_image,
        labels=[(key, json.dumps(m.labels[key])) for key in sorted(m.labels)],
        setup=_account_setup(m),
        owner=m.account.owner,
        binary_mode=m.binary_mode,
        binary_name=binary_name,
        binary_path=m.binary_path,
        spec_name=spec_name,
        spec_path=m.spec_destination(spec_name),
        user=m.account.name,
        ports=" ".join(str(p) for p in m.ports),
        volume=json.dumps([m.volume]),
        command=json.dumps(m.default_command),
    )
    return BuildManifest.from_text(text)


def describe(manifest: ImageManifest) -> Dict[str, object]:
    """Runtime metadata the assembled image is expected to carry."""
    return {
        "user": manifest.account.name,
        "ports": sorted(manifest.ports),
        "volumes": [manifest.volume],
        "cmd": manifest.default_command,
    }
