from .dockerfile import BuildManifest, render_dockerfile
from .engine import ContainerEngine
from .manifest import ImageManifest, ServiceAccount, default_manifest, port_mismatch

__all__ = [
    "BuildManifest",
    "ContainerEngine",
    "ImageManifest",
    "ServiceAccount",
    "default_manifest",
    "port_mismatch",
    "render_dockerfile",
]
