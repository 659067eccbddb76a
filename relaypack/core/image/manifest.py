from __future__ import annotations

import posixpath
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from relaypack.core.profiles.models import ChainProfile


DEFAULT_BASE_IMAGE = "debian:buster-slim"
DEFAULT_REMOVE_PATHS: List[str] = ["/usr/bin", "/usr/sbin"]
DEFAULT_BINARY_NAME = "polkadot"


def _is_within(path: str, root: str) -> bool:
    path = posixpath.normpath(path)
    root = posixpath.normpath(root)
    return path == root or path.startswith(root.rstrip("/") + "/")


class ServiceAccount(BaseModel):
    name: str = "polkadot"
    uid: int = 1000
    gid: int = 1000
    shell: str = "/bin/sh"
    home: str = "/polkadot"

    @property
    def owner(self) -> str:
        return f"{self.name}:{self.name}"

    @model_validator(mode="after")
    def _non_root(self) -> "ServiceAccount":
        if self.name == "root":
            raise ValueError("service account must not be root")
        if self.uid == 0 or self.gid == 0:
            raise ValueError("service account uid/gid must be non-zero")
        if not self.home.startswith("/"):
            raise ValueError(f"home must be absolute: {self.home}")
        return self


class ImageManifest(BaseModel):
    """Everything the container build needs besides the staged files."""

    base_image: str = DEFAULT_BASE_IMAGE
    account: ServiceAccount = Field(default_factory=ServiceAccount)

    data_dir: str = "/data"
    # relative to the account home; symlinked to data_dir
    local_data_link: str = ".local/share/polkadot"

    remove_paths: List[str] = Field(default_factory=lambda: list(DEFAULT_REMOVE_PATHS))

    # defaults to <account home>/polkadot
    binary_path: Optional[str] = None
    binary_mode: str = "0755"
    spec_path: Optional[str] = None

    ports: List[int] = Field(default_factory=lambda: [30333, 9933, 9944])
    volume: str = "/data"
    command: Optional[List[str]] = None

    labels: Dict[str, str] = Field(default_factory=dict)

    @field_validator("ports")
    @classmethod
    def _ports_valid(cls, v: List[int]) -> List[int]:
        if not v:
            raise ValueError("at least one port must be exposed")
        if len(set(v)) != len(v):
            raise ValueError(f"duplicate ports: {v}")
        for p in v:
            if not 0 < p < 65536:
                raise ValueError(f"port out of range: {p}")
        return v

    @field_validator("binary_mode")
    @classmethod
    def _mode_octal(cls, v: str) -> str:
        try:
            mode = int(v, 8)
        except ValueError:
            raise ValueError(f"binary_mode must be octal: {v!r}") from None
        if not mode & 0o100:
            raise ValueError(f"binary_mode must be owner-executable: {v}")
        return v

    @model_validator(mode="after")
    def _consistent(self) -> "ImageManifest":
        if self.binary_path is None:
            self.binary_path = posixpath.join(self.account.home, DEFAULT_BINARY_NAME)
        for p in [self.data_dir, self.volume, self.binary_path] + list(self.remove_paths):
            if not p.startswith("/"):
                raise ValueError(f"path must be absolute: {p}")
        if self.spec_path is not None and not self.spec_path.startswith("/"):
            raise ValueError(f"path must be absolute: {self.spec_path}")

        if posixpath.normpath(self.volume) != posixpath.normpath(self.data_dir):
            raise ValueError(f"volume {self.volume} must be the data dir {self.data_dir}")

        protected = [self.account.home, self.data_dir, self.binary_path]
        if self.spec_path:
            protected.append(self.spec_path)
        for rm in self.remove_paths:
            for keep in protected:
                if _is_within(keep, rm):
                    raise ValueError(f"remove path {rm} would delete {keep}")

        if self.command is not None:
            if not self.command or self.command[0] != self.binary_path:
                raise ValueError(f"command must start with the node binary {self.binary_path}")
        return self

    @property
    def default_command(self) -> List[str]:
        return list(self.command) if self.command else [self.binary_path]

    @property
    def link_path(self) -> str:
        return posixpath.join(self.account.home, self.local_data_link)

    def spec_destination(self, spec_filename: str) -> str:
        return self.spec_path or posixpath.join(self.account.home, spec_filename)


def default_manifest(profile: ChainProfile, **overrides) -> ImageManifest:
    """Manifest for the stock relay-chain image, exposing the profile's node ports."""
    ports = [profile.node_ports.p2p, profile.node_ports.rpc, profile.node_ports.ws]
    data = {"ports": ports}
    data.update(overrides)
    return ImageManifest(**data)


def port_mismatch(manifest: ImageManifest, profile: ChainProfile) -> Optional[str]:
    """Describe a disagreement between exposed ports and what the node binds, if any."""
    exposed = set(manifest.ports)
    bound = profile.node_ports.as_set()
    if exposed == bound:
        return None
    missing = sorted(bound - exposed)
    extra = sorted(exposed - bound)
    return (
        f"exposed ports {sorted(exposed)} do not match node ports {sorted(bound)} "
        f"for chain {profile.name!r} (missing={missing}, extra={extra})"
    )
