"""Build a WebAssembly client and stage it for static hosting."""

from .config import PipelineConfig, load_config
from .pipeline import DeployPipeline, PipelineOutcome, PipelineState, Stage

__all__ = [
    "DeployPipeline",
    "PipelineConfig",
    "PipelineOutcome",
    "PipelineState",
    "Stage",
    "load_config",
]
