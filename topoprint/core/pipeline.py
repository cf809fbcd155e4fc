"""Terrain-to-solid pipeline: acquire, grid, mesh and serialize under the ladder."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Optional, Union

from topoprint.config import Config, get_config
from topoprint.core.ladder import Attempt, AttemptOutcome, build_ladder, requested_attempt, run_ladder
from topoprint.core.sources import RasterRequest, SourceChain, SourceSelector
from topoprint.core.tile_math import capped_dims, fit_zoom, tile_range
from topoprint.exceptions import GeometryError, SourceError
from topoprint.processing.grid import build_grid, grid_dimensions
from topoprint.processing.mesh import build_model_mesh
from topoprint.processing.stl import write_binary_stl
from topoprint.types import ElevationRaster, GenerationResult, Mesh, RenderRequest
from topoprint.utils.logging import generation_context, get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class AttemptPlan:
    """Concrete sizes for one attempt after fitting zoom to the canvas limit."""

    attempt: Attempt
    segments_x: int
    segments_y: int
    raster_request: RasterRequest


@dataclass
class AttemptProduct:
    raster: ElevationRaster
    mesh: Mesh
    stl: bytes


class TerrainPipeline:
    """Generates binary STL terrain models from render requests."""

    def __init__(
        self,
        config: Optional[Config] = None,
        selector: Optional[SourceSelector] = None,
    ):
        self.config = config or get_config()
        self.selector = selector or SourceSelector(self.config)

    def plan(self, request: RenderRequest, attempt: Attempt) -> AttemptPlan:
        """Fit the attempt's zoom to the canvas limit and size the mesh grid."""
        raster_cfg = self.config.raster
        region = request.bounds
        zoom = fit_zoom(
            region,
            attempt.zoom,
            raster_cfg.max_canvas_px,
            self.config.ladder.zoom_floor,
            raster_cfg.tile_size,
        )
        if zoom != attempt.zoom:
            logger.info("Zoom reduced to fit canvas limit", requested=attempt.zoom, zoom=zoom)

        tiles = tile_range(region, zoom, raster_cfg.tile_size)
        segments_x, segments_y = grid_dimensions(
            tiles.canvas_width, attempt.max_segments, region.aspect_ratio
        )
        width, height = capped_dims(segments_x, segments_y, raster_cfg.max_raster_px)
        return AttemptPlan(
            attempt=Attempt(zoom=zoom, max_segments=attempt.max_segments),
            segments_x=segments_x,
            segments_y=segments_y,
            raster_request=RasterRequest(zoom=zoom, width=width, height=height),
        )

    def run_attempt(
        self,
        request: RenderRequest,
        chain: SourceChain,
        attempt: Attempt,
    ) -> AttemptOutcome[AttemptProduct]:
        """Run the whole pipeline once; source and geometry failures become outcomes."""
        plan = self.plan(request, attempt)
        mesh_cfg = self.config.mesh
        try:
            raster = chain.fetch(request.bounds, plan.raster_request)
            passes = mesh_cfg.proxy_median_passes if raster.proxy else mesh_cfg.median_passes
            grid = build_grid(
                raster,
                plan.segments_x,
                plan.segments_y,
                shape=request.shape,
                median_passes=passes,
                flat_range_m=mesh_cfg.flat_range_m,
            )
            mesh = build_model_mesh(grid, request, self.config)
            stl = write_binary_stl(mesh, mesh_cfg.stl_header)
        except (SourceError, GeometryError) as e:
            return AttemptOutcome.failure(plan.attempt, e)
        return AttemptOutcome.success(plan.attempt, AttemptProduct(raster=raster, mesh=mesh, stl=stl))

    def generate(self, request: Union[RenderRequest, Mapping[str, Any]]) -> GenerationResult:
        """Generate a model, falling back to coarser settings on failure.

        Raises:
            InvalidRequestError: If a raw payload fails validation
            SourceError: If elevation could not be acquired on any attempt
            GeometryError: If no attempt produced a non-empty solid
        """
        if not isinstance(request, RenderRequest):
            request = RenderRequest.parse(request)

        ladder_cfg = self.config.ladder
        requested = requested_attempt(request.resolution, ladder_cfg)
        attempts = build_ladder(request.resolution, ladder_cfg)
        chain = self.selector.chain_for(request.body)

        with generation_context(body=request.body.value, resolution=request.resolution.value):
            logger.info(
                "Starting terrain generation",
                bounds=request.bounds.model_dump(),
                shape=request.shape.value,
                lithophane=request.lithophane,
                attempts=len(attempts),
            )
            outcome = run_ladder(attempts, lambda a: self.run_attempt(request, chain, a))
            product = outcome.value
            fallback = outcome.attempt.is_below(requested)
            logger.info(
                "Terrain generation complete",
                source=product.raster.source,
                zoom=outcome.attempt.zoom,
                max_segments=outcome.attempt.max_segments,
                fallback_triggered=fallback,
                triangles=product.mesh.triangle_count,
                bytes=len(product.stl),
            )

        return GenerationResult(
            stl=product.stl,
            fallback_triggered=fallback,
            elevation_source=product.raster.source,
            used_high_fidelity_source=product.raster.high_fidelity,
            triangle_count=product.mesh.triangle_count,
            zoom=outcome.attempt.zoom,
            max_segments=outcome.attempt.max_segments,
        )


def generate_terrain(
    request: Union[RenderRequest, Mapping[str, Any]],
    config: Optional[Config] = None,
) -> GenerationResult:
    """Convenience wrapper around `TerrainPipeline.generate`."""
    return TerrainPipeline(config).generate(request)
