"""topoprint - printable terrain solids from Earth and planetary elevation data."""

__version__ = "0.1.0"
__author__ = "topoprint Development Team"
__description__ = "Turn a geographic bounding box into a watertight binary STL terrain model"

# Export commonly used types and functions
from topoprint.types import (
    Body,
    GenerationResult,
    Region,
    RenderRequest,
    Resolution,
    Shape,
)
from topoprint.config import get_config
from topoprint.core.pipeline import TerrainPipeline, generate_terrain
from topoprint.utils.logging import get_logger, configure_logging

__all__ = [
    "Body",
    "GenerationResult",
    "Region",
    "RenderRequest",
    "Resolution",
    "Shape",
    "TerrainPipeline",
    "generate_terrain",
    "get_config",
    "get_logger",
    "configure_logging",
]
