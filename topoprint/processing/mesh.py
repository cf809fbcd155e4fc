"""Turn an elevation grid into a closed triangulated solid.

The solid has three parts: a relief surface over the present cells, a flat
bottom at z = 0 under the same cells, and vertical walls wherever a valid
quad borders the grid edge or a quad that is not fully valid. Walls are
decided per quad from its four neighbours, so irregular footprints (oval
masks, data holes, disconnected islands) close up the same way a plain
rectangle does.
"""

from __future__ import annotations

from typing import Optional

import numpy as np

from topoprint.config import Config, MeshConfig, get_config
from topoprint.core.tile_math import meters_per_degree_lon
from topoprint.exceptions import GeometryError
from topoprint.types import Body, ElevationGrid, Mesh, RenderRequest
from topoprint.utils.logging import get_logger

logger = get_logger(__name__)

# Direction (row offset, col offset) -> wall edge as a pair of quad corners.
# Corner order keeps every wall facing away from the quad it closes.
WALL_EDGES: dict[tuple[int, int], tuple[str, str]] = {
    (-1, 0): ("tl", "tr"),
    (1, 0): ("br", "bl"),
    (0, -1): ("bl", "tl"),
    (0, 1): ("tr", "br"),
}


def relief_scale(request: RenderRequest, grid: ElevationGrid, config: Config) -> float:
    """Model units per meter of elevation.

    Earth models are printed to true scale. Other bodies are scaled so their
    full elevation range spans a fixed fraction of the model width, because
    their absolute relief is not comparable to Earth's.
    """
    if request.body == Body.EARTH:
        radius = config.body(Body.EARTH.value).radius_m
        region = request.bounds
        real_width_m = region.lon_span * meters_per_degree_lon(radius, region.center_lat)
        return request.model_width / real_width_m

    elevation_range = grid.elevation_range
    if elevation_range == 0:
        return 1.0
    return request.model_width * config.mesh.relief_fraction / elevation_range


def surface_heights(
    grid: ElevationGrid,
    request: RenderRequest,
    scale: float,
    mesh_config: MeshConfig,
) -> np.ndarray:
    """Top-surface z for every grid cell (meaningful only where present)."""
    lo, hi = grid.min_elevation, grid.max_elevation
    elevation = grid.elevation
    invert = request.invert and not grid.synthetic_range

    if request.lithophane:
        norm = (elevation - lo) / ((hi - lo) or 1.0)
        if invert:
            norm = 1.0 - norm
        band = mesh_config.max_thickness - mesh_config.min_thickness
        return mesh_config.min_thickness + norm * band

    if invert:
        # Mirror within the valid range so the lowest point of the model stays on the base
        elevation = hi - (elevation - lo)
    return (elevation - lo) * request.exaggeration * scale + request.base_height


def quad_validity(present: np.ndarray) -> np.ndarray:
    """Quads (rows-1, cols-1) whose four corners are all present."""
    return present[:-1, :-1] & present[:-1, 1:] & present[1:, 1:] & present[1:, :-1]


def resolve_pinches(quads: np.ndarray) -> np.ndarray:
    """Drop quads until no two valid quads touch only at a corner.

    Two quads meeting diagonally with both other quads around the shared
    vertex invalid would make that vertex's wall edges non-manifold.
    """
    quads = quads.copy()
    dropped = 0
    while True:
        a, b = quads[:-1, :-1], quads[:-1, 1:]
        c, d = quads[1:, :-1], quads[1:, 1:]
        diagonal = a & d & ~b & ~c
        anti = b & c & ~a & ~d
        hits = int(diagonal.sum() + anti.sum())
        if hits == 0:
            break
        d[diagonal] = False
        c[anti] = False
        dropped += hits
    if dropped:
        logger.debug("Resolved diagonal pinches", dropped_quads=dropped)
    return quads


def neighbour_valid(quads: np.ndarray, dy: int, dx: int) -> np.ndarray:
    """For every quad, whether its neighbour at (dy, dx) exists and is valid."""
    rows, cols = quads.shape
    padded = np.pad(quads, 1, constant_values=False)
    return padded[1 + dy:1 + dy + rows, 1 + dx:1 + dx + cols]


def build_mesh(
    grid: ElevationGrid,
    heights: np.ndarray,
    model_width: float,
    model_height: float,
) -> Mesh:
    """Triangulate top, bottom and walls for the present cells of a grid.

    Raises:
        GeometryError: If no cell is present or no triangle results
    """
    present = grid.present
    vertex_count = int(present.sum())
    if vertex_count == 0:
        raise GeometryError(
            "No vertices generated; check selection bounds and shape",
            details={"segments": f"{grid.segments_x}x{grid.segments_y}"},
        )

    sy, sx = present.shape
    xs = np.arange(sx) / (sx - 1) * model_width - model_width / 2.0
    ys = -(np.arange(sy) / (sy - 1) * model_height - model_height / 2.0)
    grid_x, grid_y = np.meshgrid(xs, ys)

    index = np.zeros(present.shape, dtype=np.int64)
    index[present] = np.arange(vertex_count)

    top = np.column_stack([grid_x[present], grid_y[present], heights[present]])
    bottom = top.copy()
    bottom[:, 2] = 0.0
    vertices = np.vstack([top, bottom]).astype(np.float64)

    quads = resolve_pinches(quad_validity(present))
    qy, qx = np.nonzero(quads)
    corners = {
        "tl": index[qy, qx],
        "tr": index[qy, qx + 1],
        "br": index[qy + 1, qx + 1],
        "bl": index[qy + 1, qx],
    }
    tl, tr, br, bl = corners["tl"], corners["tr"], corners["br"], corners["bl"]
    o = vertex_count

    parts = [
        np.column_stack([tl, bl, tr]),
        np.column_stack([tr, bl, br]),
        np.column_stack([o + tl, o + tr, o + bl]),
        np.column_stack([o + tr, o + br, o + bl]),
    ]

    wall_pairs = 0
    for (dy, dx), (first, second) in WALL_EDGES.items():
        needs_wall = ~neighbour_valid(quads, dy, dx)[qy, qx]
        a = corners[first][needs_wall]
        b = corners[second][needs_wall]
        parts.append(np.column_stack([a, b, o + b]))
        parts.append(np.column_stack([a, o + b, o + a]))
        wall_pairs += int(needs_wall.sum())

    faces = np.concatenate(parts).astype(np.int64)
    if faces.shape[0] == 0:
        raise GeometryError(
            "Mesh has no triangles; no fully valid cell quads",
            details={"vertices": vertex_count},
        )

    logger.info(
        "Mesh built",
        vertices=int(vertices.shape[0]),
        triangles=int(faces.shape[0]),
        quads=int(qy.size),
        wall_pairs=wall_pairs,
    )
    return Mesh(vertices=vertices, faces=faces, top_vertex_count=vertex_count)


def build_model_mesh(
    grid: ElevationGrid,
    request: RenderRequest,
    config: Optional[Config] = None,
) -> Mesh:
    """Map elevations to model heights and triangulate the solid."""
    config = config or get_config()
    scale = relief_scale(request, grid, config)
    heights = surface_heights(grid, request, scale, config.mesh)
    model_height = request.model_width / request.bounds.aspect_ratio
    return build_mesh(grid, heights, request.model_width, model_height)
