from __future__ import annotations

from .models import ChainProfile, NodePorts


def builtin_profiles() -> list[ChainProfile]:
    # Local testnet presets shipped inside the relay-chain node binary.
    return [
        ChainProfile(
            name="kusama-local",
            display_name="Kusama Local Testnet",
            chain_id="kusama_local_testnet",
            description="Kusama local testnet (Alice/Bob validators)",
            node_ports=NodePorts(p2p=30333, rpc=9933, ws=9944),
        ),
        ChainProfile(
            name="polkadot-local",
            display_name="Polkadot Local Testnet",
            chain_id="polkadot_local_testnet",
            description="Polkadot local testnet (Alice/Bob validators)",
            node_ports=NodePorts(p2p=30333, rpc=9933, ws=9944),
        ),
        ChainProfile(
            name="westend-local",
            display_name="Westend Local Testnet",
            chain_id="westend_local_testnet",
            description="Westend local testnet (Alice/Bob validators)",
            node_ports=NodePorts(p2p=30333, rpc=9933, ws=9944),
        ),
        ChainProfile(
            name="rococo-local",
            display_name="Rococo Local Testnet",
            chain_id="rococo_local_testnet",
            description="Rococo local testnet (Alice/Bob validators)",
            node_ports=NodePorts(p2p=30333, rpc=9933, ws=9944),
        ),
    ]
