from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field


class NodePorts(BaseModel):
    # What the node binds by default for this chain; the image must expose exactly these.
    p2p: int = 30333
    rpc: int = 9933
    ws: int = 9944

    def as_set(self) -> set[int]:
        return {self.p2p, self.rpc, self.ws}


class ChainProfile(BaseModel):
    name: str
    display_name: Optional[str] = None
    chain_id: Optional[str] = None

    # build-spec flags
    disable_default_bootnode: bool = True
    raw: bool = False

    spec_filename: Optional[str] = None
    node_ports: NodePorts = Field(default_factory=NodePorts)

    description: Optional[str] = None

    def spec_file(self) -> str:
        return self.spec_filename or f"{self.name}.json"

    def accepted_names(self) -> List[str]:
        """Values the exported document's ``name`` field may carry."""
        out = [self.name]
        if self.display_name:
            out.append(self.display_name)
        return out
