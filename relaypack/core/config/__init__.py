from .loader import config_fingerprint, load_config, resolve_source_dir
from .models import (
    BuildSettings,
    EngineSettings,
    ImageSettings,
    PipelineConfig,
    SpecSettings,
    StagingSettings,
)

__all__ = [
    "BuildSettings",
    "EngineSettings",
    "ImageSettings",
    "PipelineConfig",
    "SpecSettings",
    "StagingSettings",
    "config_fingerprint",
    "load_config",
    "resolve_source_dir",
]
