from .builder import build_release
from .image_assembler import assemble_image
from .spec_generator import generate_spec
from .stager import stage_artifacts

__all__ = [
    "assemble_image",
    "build_release",
    "generate_spec",
    "stage_artifacts",
]
