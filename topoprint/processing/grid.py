"""Sample an elevation raster onto the mesh grid, mask it and denoise it."""

from __future__ import annotations

import numpy as np
from numpy.lib.stride_tricks import sliding_window_view

from topoprint.types import ElevationGrid, ElevationRaster, Shape
from topoprint.utils.logging import get_logger

logger = get_logger(__name__)


def grid_dimensions(raster_width: int, max_segments: int, aspect_ratio: float) -> tuple[int, int]:
    """Mesh grid size for a raster width, segment budget and footprint aspect.

    Returns:
        (segments_x, segments_y)
    """
    segments_x = max(2, min(max_segments, raster_width))
    segments_y = max(2, int(round(segments_x / aspect_ratio)))
    return segments_x, segments_y


def oval_mask(segments_y: int, segments_x: int) -> np.ndarray:
    """Cells inside the ellipse inscribed in the grid."""
    cx = (segments_x - 1) / 2.0
    cy = (segments_y - 1) / 2.0
    rows, cols = np.mgrid[0:segments_y, 0:segments_x]
    dx = (cols - cx) / cx
    dy = (rows - cy) / cy
    return dx * dx + dy * dy <= 1.0


def sample_nearest(values: np.ndarray, segments_x: int, segments_y: int) -> np.ndarray:
    """Nearest-neighbour resample by linear index mapping (no interpolation)."""
    height, width = values.shape
    # Integer form of floor(i / (n - 1) * (size - 1))
    cols = (np.arange(segments_x, dtype=np.int64) * (width - 1)) // (segments_x - 1)
    rows = (np.arange(segments_y, dtype=np.int64) * (height - 1)) // (segments_y - 1)
    return values[np.ix_(rows, cols)]


def median_filter_valid(elevation: np.ndarray, present: np.ndarray, passes: int = 1) -> np.ndarray:
    """3x3 median over present cells, ignoring absent neighbours.

    Removes single-cell spikes without touching absent cells.
    """
    if passes <= 0 or not present.any():
        return elevation
    out = elevation.astype(np.float64, copy=True)
    for _ in range(passes):
        padded = np.pad(np.where(present, out, np.nan), 1, constant_values=np.nan)
        windows = sliding_window_view(padded, (3, 3))[present].reshape(-1, 9)
        # Every window holds at least its own (present) centre, so no all-NaN rows
        out[present] = np.nanmedian(windows, axis=1)
    return out


def build_grid(
    raster: ElevationRaster,
    segments_x: int,
    segments_y: int,
    shape: Shape = Shape.RECTANGLE,
    median_passes: int = 1,
    flat_range_m: float = 100.0,
) -> ElevationGrid:
    """Build the denoised mesh-resolution grid from a source raster.

    A grid with no valid sample at all becomes a flat block: every in-shape
    cell is present at 0 m with a synthetic `[0, flat_range_m]` range.
    """
    sampled = sample_nearest(raster.values, segments_x, segments_y)
    if shape == Shape.OVAL:
        inside = oval_mask(segments_y, segments_x)
    else:
        inside = np.ones((segments_y, segments_x), dtype=bool)

    present = inside & np.isfinite(sampled)
    if not present.any():
        logger.warning(
            "No valid elevation samples, using flat default block",
            source=raster.source,
            segments=(segments_x, segments_y),
        )
        return ElevationGrid(
            elevation=np.zeros((segments_y, segments_x)),
            present=inside,
            min_elevation=0.0,
            max_elevation=flat_range_m,
            synthetic_range=True,
        )

    elevation = np.where(present, sampled, 0.0)
    elevation = median_filter_valid(elevation, present, median_passes)
    valid = elevation[present]
    grid = ElevationGrid(
        elevation=elevation,
        present=present,
        min_elevation=float(valid.min()),
        max_elevation=float(valid.max()),
    )
    logger.info(
        "Elevation grid built",
        segments=(segments_x, segments_y),
        present=int(present.sum()),
        min_m=grid.min_elevation,
        max_m=grid.max_elevation,
        median_passes=median_passes,
    )
    return grid
