"""Type definitions and data models for topoprint."""

import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping

import numpy as np
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from topoprint.exceptions import InvalidRequestError


class Resolution(str, Enum):
    """Requested output resolution tier."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    ULTRA = "ultra"


class Shape(str, Enum):
    """Model footprint."""

    RECTANGLE = "rectangle"
    OVAL = "oval"


class Body(str, Enum):
    """Celestial body the region lies on."""

    EARTH = "earth"
    MARS = "mars"
    MOON = "moon"
    VENUS = "venus"


class Region(BaseModel):
    """Geographic bounding box in degrees.

    Longitudes may run past 180 (lunar and planetary catalogs commonly use
    0..360 east longitudes) but a region never spans more than one turn.
    """

    model_config = ConfigDict(frozen=True)

    north: float = Field(..., ge=-90, le=90, description="Northern latitude (degrees)")
    south: float = Field(..., ge=-90, le=90, description="Southern latitude (degrees)")
    east: float = Field(..., ge=-360, le=360, description="Eastern longitude (degrees)")
    west: float = Field(..., ge=-360, le=360, description="Western longitude (degrees)")

    @field_validator("south")
    @classmethod
    def south_less_than_north(cls, v: float, info) -> float:
        """Ensure north > south."""
        if "north" in info.data and v >= info.data["north"]:
            raise ValueError("north must be greater than south")
        return v

    @field_validator("west")
    @classmethod
    def west_less_than_east(cls, v: float, info) -> float:
        """Ensure east > west and the span stays within one turn."""
        if "east" in info.data:
            east = info.data["east"]
            if v >= east:
                raise ValueError("east must be greater than west")
            if east - v > 360.0:
                raise ValueError("longitude span cannot exceed 360 degrees")
        return v

    @property
    def lat_span(self) -> float:
        return self.north - self.south

    @property
    def lon_span(self) -> float:
        return self.east - self.west

    @property
    def center_lat(self) -> float:
        return (self.north + self.south) / 2.0

    @property
    def aspect_ratio(self) -> float:
        """Width/height of the footprint once longitude is compressed by latitude."""
        lon_extent = self.lon_span * math.cos(math.radians(self.center_lat))
        return max(lon_extent, 1e-9) / self.lat_span

    def within(self, north: float, south: float, east: float, west: float) -> bool:
        """Return True if the region lies entirely inside the given envelope."""
        return (
            self.north <= north
            and self.south >= south
            and self.east <= east
            and self.west >= west
        )


class RenderRequest(BaseModel):
    """One terrain model generation request."""

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )

    bounds: Region
    exaggeration: float = Field(1.5, ge=0.5, le=5, description="Vertical exaggeration")
    base_height: float = Field(2.0, ge=1, le=20, description="Base slab height (model units)")
    model_width: float = Field(100.0, gt=0, description="Model width (model units)")
    resolution: Resolution = Resolution.MEDIUM
    shape: Shape = Shape.RECTANGLE
    body: Body = Field(Body.EARTH, validation_alias=AliasChoices("body", "planet"))
    lithophane: bool = False
    invert: bool = False

    @classmethod
    def parse(cls, payload: Mapping[str, Any]) -> "RenderRequest":
        """Validate a raw request payload.

        Raises:
            InvalidRequestError: If any field is missing or out of range
        """
        try:
            return cls.model_validate(payload)
        except ValidationError as e:
            problems = "; ".join(
                f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
            )
            raise InvalidRequestError(
                "Invalid render request", details={"errors": problems}
            ) from e


@dataclass
class ElevationRaster:
    """Elevation samples in meters covering exactly the requested region.

    Row 0 is the northern edge; NaN marks cells with no sample.
    """

    values: np.ndarray
    source: str
    high_fidelity: bool = False
    proxy: bool = False

    @property
    def width(self) -> int:
        return int(self.values.shape[1])

    @property
    def height(self) -> int:
        return int(self.values.shape[0])

    def valid_count(self) -> int:
        return int(np.count_nonzero(np.isfinite(self.values)))


@dataclass
class ElevationGrid:
    """Elevation sampled at mesh resolution.

    `present` is the validity bitset: a cell only gets vertices where it is
    True, and `elevation` is only meaningful there.
    """

    elevation: np.ndarray
    present: np.ndarray
    min_elevation: float
    max_elevation: float
    synthetic_range: bool = False

    @property
    def segments_x(self) -> int:
        return int(self.elevation.shape[1])

    @property
    def segments_y(self) -> int:
        return int(self.elevation.shape[0])

    @property
    def elevation_range(self) -> float:
        return self.max_elevation - self.min_elevation

    def in_bounds(self, row: int, col: int) -> bool:
        return 0 <= row < self.segments_y and 0 <= col < self.segments_x

    def is_present(self, row: int, col: int) -> bool:
        """Bounds-checked validity test; cells outside the grid are absent."""
        return self.in_bounds(row, col) and bool(self.present[row, col])

    def elevation_at(self, row: int, col: int) -> float | None:
        if not self.is_present(row, col):
            return None
        return float(self.elevation[row, col])


@dataclass
class Mesh:
    """Closed triangle mesh: top relief, flat bottom and side walls."""

    vertices: np.ndarray  # (N, 3) float64 model units
    faces: np.ndarray  # (M, 3) int64 indices into vertices
    top_vertex_count: int

    @property
    def triangle_count(self) -> int:
        return int(self.faces.shape[0])


@dataclass
class GenerationResult:
    """Serialized model plus diagnostics for the caller."""

    stl: bytes
    fallback_triggered: bool
    elevation_source: str
    used_high_fidelity_source: bool
    triangle_count: int
    zoom: int
    max_segments: int
