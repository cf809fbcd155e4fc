"""Terrain model generation endpoint."""

import base64

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from topoprint.core.pipeline import TerrainPipeline
from topoprint.exceptions import SourceError, TopoPrintError
from topoprint.types import RenderRequest
from topoprint.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/api/v1/terrain", tags=["terrain"])


class TerrainResponse(BaseModel):
    """Generated model plus diagnostics."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    stl: str = Field(..., description="Binary STL, base64 encoded")
    fallback_triggered: bool
    elevation_source: str
    used_high_fidelity_source: bool
    triangle_count: int
    zoom: int
    max_segments: int


def get_pipeline() -> TerrainPipeline:
    return TerrainPipeline()


@router.post("/generate", response_model=TerrainResponse)
def generate_terrain_model(
    request: RenderRequest,
    pipeline: TerrainPipeline = Depends(get_pipeline),
):
    """Generate a watertight STL terrain model for a bounding box.

    Source failures map to 502, any other generation failure to 500.
    """
    try:
        result = pipeline.generate(request)
    except SourceError as e:
        logger.error("Terrain generation failed: no elevation data", error=str(e))
        raise HTTPException(
            status_code=502,
            detail={"error": "elevation_source_failed", "detail": str(e)},
        )
    except TopoPrintError as e:
        logger.error("Terrain generation failed", error=str(e))
        raise HTTPException(
            status_code=500,
            detail={"error": "generation_failed", "detail": str(e)},
        )

    return TerrainResponse(
        stl=base64.b64encode(result.stl).decode("ascii"),
        fallback_triggered=result.fallback_triggered,
        elevation_source=result.elevation_source,
        used_high_fidelity_source=result.used_high_fidelity_source,
        triangle_count=result.triangle_count,
        zoom=result.zoom,
        max_segments=result.max_segments,
    )
