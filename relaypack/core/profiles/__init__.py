from .models import ChainProfile, NodePorts
from .registry import ChainProfileRegistry

__all__ = [
    "ChainProfile",
    "ChainProfileRegistry",
    "NodePorts",
]
