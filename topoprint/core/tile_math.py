"""Web-Mercator tile math and simple-cylindrical projection helpers.

Tile indices follow the standard slippy-map scheme: `2^z` columns and rows,
x growing east from -180 degrees, y growing south from +85.0511 degrees.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Final

from topoprint.types import Region

MERCATOR_MAX_LAT_DEG: Final[float] = 85.0511287798066


def _validate_zoom(zoom: int) -> None:
    if zoom < 0:
        raise ValueError("Zoom must be non-negative")


def clamp_lat(lat: float) -> float:
    """Clamp latitude into the Web-Mercator domain."""
    return max(-MERCATOR_MAX_LAT_DEG, min(MERCATOR_MAX_LAT_DEG, lat))


def lon_to_tile_x(lon: float, zoom: int) -> float:
    """Fractional tile x for a longitude (not wrapped)."""
    _validate_zoom(zoom)
    return (lon + 180.0) / 360.0 * (2 ** zoom)


def lat_to_tile_y(lat: float, zoom: int) -> float:
    """Fractional tile y for a latitude."""
    _validate_zoom(zoom)
    lat_rad = math.radians(clamp_lat(lat))
    return (1.0 - math.log(math.tan(lat_rad) + 1.0 / math.cos(lat_rad)) / math.pi) / 2.0 * (2 ** zoom)


def long2tile(lon: float, zoom: int) -> int:
    return int(math.floor(lon_to_tile_x(lon, zoom)))


def lat2tile(lat: float, zoom: int) -> int:
    n = 2 ** zoom
    return min(n - 1, max(0, int(math.floor(lat_to_tile_y(lat, zoom)))))


def normalize_region_lon(region: Region) -> Region:
    """Shift a region by whole turns so that west lies in [-180, 180).

    East may still exceed 180 for antimeridian-crossing regions; tile x
    indices are wrapped when fetching.
    """
    shift = 0.0
    while region.west + shift >= 180.0:
        shift -= 360.0
    while region.west + shift < -180.0:
        shift += 360.0
    if shift == 0.0:
        return region
    # Shifted east may pass 360, which field validation would reject
    return Region.model_construct(
        north=region.north,
        south=region.south,
        east=region.east + shift,
        west=region.west + shift,
    )


@dataclass(frozen=True)
class TileRange:
    """Inclusive tile index range covering a region at one zoom."""

    zoom: int
    x_min: int
    x_max: int
    y_min: int
    y_max: int
    tile_size: int = 256

    @property
    def tiles_x(self) -> int:
        return self.x_max - self.x_min + 1

    @property
    def tiles_y(self) -> int:
        return self.y_max - self.y_min + 1

    @property
    def canvas_width(self) -> int:
        return self.tiles_x * self.tile_size

    @property
    def canvas_height(self) -> int:
        return self.tiles_y * self.tile_size

    def fits(self, max_px: int) -> bool:
        return self.canvas_width <= max_px and self.canvas_height <= max_px

    def tiles(self) -> list[tuple[int, int]]:
        """All (x, y) indices, x not yet wrapped."""
        return [
            (x, y)
            for x in range(self.x_min, self.x_max + 1)
            for y in range(self.y_min, self.y_max + 1)
        ]

    def wrap_x(self, x: int) -> int:
        return x % (2 ** self.zoom)

    def pixel_window(self, region: Region) -> tuple[int, int, int, int]:
        """Canvas pixel window (x0, y0, x1, y1), end-exclusive, covering the region."""
        size = self.tile_size
        gx0 = lon_to_tile_x(region.west, self.zoom) * size - self.x_min * size
        gx1 = lon_to_tile_x(region.east, self.zoom) * size - self.x_min * size
        gy0 = lat_to_tile_y(region.north, self.zoom) * size - self.y_min * size
        gy1 = lat_to_tile_y(region.south, self.zoom) * size - self.y_min * size

        x0 = max(0, min(self.canvas_width - 1, int(math.floor(gx0))))
        y0 = max(0, min(self.canvas_height - 1, int(math.floor(gy0))))
        x1 = max(x0 + 1, min(self.canvas_width, int(math.ceil(gx1))))
        y1 = max(y0 + 1, min(self.canvas_height, int(math.ceil(gy1))))
        return x0, y0, x1, y1


def tile_range(region: Region, zoom: int, tile_size: int = 256) -> TileRange:
    """Compute the tile index range covering a region."""
    region = normalize_region_lon(region)
    x_min = long2tile(region.west, zoom)
    x_max = long2tile(region.east, zoom)
    # A region ending exactly on a tile edge does not need the next tile
    if x_max > x_min and lon_to_tile_x(region.east, zoom) == float(x_max):
        x_max -= 1
    return TileRange(
        zoom=zoom,
        x_min=x_min,
        x_max=x_max,
        y_min=lat2tile(region.north, zoom),
        y_max=lat2tile(region.south, zoom),
        tile_size=tile_size,
    )


def fit_zoom(region: Region, zoom: int, max_px: int, zoom_floor: int, tile_size: int = 256) -> int:
    """Decrement zoom until the tile canvas fits `max_px` per side or the floor is hit."""
    while zoom > zoom_floor and not tile_range(region, zoom, tile_size).fits(max_px):
        zoom -= 1
    return zoom


def project_simple_cylindrical(region: Region, radius_m: float) -> tuple[float, float, float, float]:
    """Project a region into a body's equirectangular meters frame.

    Returns:
        (left, bottom, right, top) in meters
    """
    meters_per_degree = radius_m * math.pi / 180.0
    return (
        region.west * meters_per_degree,
        region.south * meters_per_degree,
        region.east * meters_per_degree,
        region.north * meters_per_degree,
    )


def meters_per_degree_lon(radius_m: float, lat: float) -> float:
    """Ground distance of one degree of longitude at a latitude."""
    return radius_m * math.pi / 180.0 * math.cos(math.radians(lat))


def capped_dims(width: int, height: int, max_px: int) -> tuple[int, int]:
    """Scale (width, height) down, preserving aspect, so neither side exceeds max_px."""
    largest = max(width, height)
    if largest <= max_px:
        return max(1, width), max(1, height)
    factor = max_px / largest
    return max(1, int(round(width * factor))), max(1, int(round(height * factor)))
