"""Per-body elevation source strategies and the fallback chains that combine them.

Each strategy turns a region plus a `RasterRequest` into an `ElevationRaster`
or raises `SourceError`. A `SourceChain` tries a body's strategies in order;
when the last one fails the chain raises `FatalSourceError` if every candidate
was a fixed global raster whose failure no coarser attempt can fix, plain
`SourceError` otherwise.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional

import numpy as np

from topoprint.config import Config, get_config
from topoprint.core.decoders import decode_grayscale, decode_stretched_gray, decode_terrarium
from topoprint.core.fetchers import (
    fetch_export_image,
    fetch_tile_canvas,
    lookup_points,
    read_raster_window,
    search_catalog,
)
from topoprint.core.tile_math import normalize_region_lon, project_simple_cylindrical, tile_range
from topoprint.exceptions import FatalSourceError, SourceError
from topoprint.types import Body, ElevationRaster, Region
from topoprint.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class RasterRequest:
    """What one pipeline attempt asks of a source.

    Tile sources use `zoom`; export and windowed sources use `width` x `height`
    (already capped to the maximum raster size).
    """

    zoom: int
    width: int
    height: int


class ElevationSource:
    """Base class for one acquisition strategy."""

    name = "unknown"
    body = Body.EARTH
    high_fidelity = False
    proxy = False
    # Failure does not depend on zoom or raster size
    fatal_on_failure = False

    def __init__(self, config: Optional[Config] = None):
        self.config = config or get_config()

    def covers(self, region: Region) -> bool:
        """Whether this strategy should be tried for the region at all."""
        return True

    def fetch(self, region: Region, request: RasterRequest) -> ElevationRaster:
        raise NotImplementedError

    def _raster(self, values: np.ndarray) -> ElevationRaster:
        return ElevationRaster(
            values=values,
            source=self.name,
            high_fidelity=self.high_fidelity,
            proxy=self.proxy,
        )


class TileSource(ElevationSource):
    """Slippy-map PNG tiles composited into one canvas and cropped to the region."""

    def url_template(self) -> str:
        raise NotImplementedError

    def decode(self, rgba: np.ndarray) -> np.ndarray:
        raise NotImplementedError

    def fetch(self, region: Region, request: RasterRequest) -> ElevationRaster:
        region = normalize_region_lon(region)
        tiles = tile_range(region, request.zoom, self.config.raster.tile_size)
        canvas, loaded = fetch_tile_canvas(self.url_template(), tiles, self.config.sources)
        if loaded == 0:
            raise SourceError(
                "No tiles could be loaded",
                details={"source": self.name, "zoom": request.zoom, "tiles": len(tiles.tiles())},
            )
        x0, y0, x1, y1 = tiles.pixel_window(region)
        return self._raster(self.decode(canvas[y0:y1, x0:x1]))


class TerrariumSource(TileSource):
    """Global Earth elevation tiles in Terrarium RGB encoding."""

    name = "terrarium"

    def url_template(self) -> str:
        return self.config.sources.terrarium_url

    def decode(self, rgba: np.ndarray) -> np.ndarray:
        return decode_terrarium(rgba)


class GrayscaleBasemapSource(TileSource):
    """Hillshaded albedo basemap read as a brightness-height proxy."""

    proxy = True

    def decode(self, rgba: np.ndarray) -> np.ndarray:
        return decode_grayscale(rgba, self.config.mesh.grayscale_scale)


class MoonBasemapSource(GrayscaleBasemapSource):
    name = "moon"
    body = Body.MOON

    def url_template(self) -> str:
        return self.config.sources.moon_basemap_url


class MarsBasemapSource(GrayscaleBasemapSource):
    # No true-elevation source is wired up for Mars yet
    name = "mars"
    body = Body.MARS

    def url_template(self) -> str:
        return self.config.sources.mars_basemap_url


class RegionalExportSource(ElevationSource):
    """USGS 3DEP export image, only inside its coverage envelope."""

    name = "usgs3dep"
    high_fidelity = True

    def covers(self, region: Region) -> bool:
        settings = self.config.sources
        if not settings.regional_enabled:
            return False
        env = settings.regional_envelope
        return region.within(env.north, env.south, env.east, env.west)

    def fetch(self, region: Region, request: RasterRequest) -> ElevationRaster:
        settings = self.config.sources
        gray = fetch_export_image(region, request.width, request.height, settings)
        values = decode_stretched_gray(
            gray, settings.regional_min_elevation_m, settings.regional_max_elevation_m
        )
        return self._raster(values)


class OpenElevationSource(ElevationSource):
    """Point lookups on a coarse lattice; the Earth source of last resort."""

    name = "open-elevation"

    def covers(self, region: Region) -> bool:
        return self.config.sources.open_elevation_enabled

    def lattice_dims(self, region: Region, request: RasterRequest) -> tuple[int, int]:
        max_points = self.config.sources.open_elevation_max_points
        nx = int(math.floor(math.sqrt(max_points * region.aspect_ratio)))
        nx = max(2, min(request.width, nx))
        ny = max(2, min(request.height, max_points // nx))
        return nx, ny

    def fetch(self, region: Region, request: RasterRequest) -> ElevationRaster:
        nx, ny = self.lattice_dims(region, request)
        lats = np.linspace(region.north, region.south, ny)
        lons = np.linspace(region.west, region.east, nx)
        lon_grid, lat_grid = np.meshgrid(lons, lats)
        logger.info("Looking up point elevations", points=nx * ny)
        return self._raster(lookup_points(lat_grid, lon_grid, self.config.sources))


class ProjectedRasterSource(ElevationSource):
    """Windowed reads of rasters in the body's simple-cylindrical meters frame."""

    nodata: float | None = None

    def projected_bounds(self, region: Region) -> tuple[float, float, float, float]:
        radius = self.config.body(self.body.value).radius_m
        return project_simple_cylindrical(region, radius)

    def accumulate(self, hrefs: list[str], region: Region, request: RasterRequest) -> np.ndarray:
        """Average every asset's samples per output pixel.

        Assets are read one at a time; an unreadable asset is skipped.
        """
        bounds = self.projected_bounds(region)
        total = np.zeros((request.height, request.width), dtype=np.float64)
        count = np.zeros((request.height, request.width), dtype=np.int32)

        for href in hrefs:
            try:
                window = read_raster_window(
                    href, bounds, request.width, request.height, self.nodata
                )
            except SourceError as e:
                logger.warning("Skipping unreadable asset", source=self.name, error=str(e))
                continue
            if window is None:
                continue
            valid = np.isfinite(window)
            total[valid] += window[valid]
            count[valid] += 1

        values = np.full(total.shape, np.nan)
        sampled = count > 0
        values[sampled] = total[sampled] / count[sampled]
        logger.info(
            "Accumulated raster assets",
            source=self.name,
            assets=len(hrefs),
            sampled_pixels=int(sampled.sum()),
        )
        return values


class KaguyaCatalogSource(ProjectedRasterSource):
    """Kaguya Terrain Camera DTMs discovered through a STAC catalog."""

    name = "moon"
    body = Body.MOON
    high_fidelity = True

    def __init__(self, config: Optional[Config] = None):
        super().__init__(config)
        self.nodata = self.config.sources.kaguya_nodata

    def fetch(self, region: Region, request: RasterRequest) -> ElevationRaster:
        hrefs = search_catalog(region, self.config.sources)
        if not hrefs:
            raise SourceError("Catalog returned no assets", details={"source": self.name})
        values = self.accumulate(hrefs, region, request)
        if not np.isfinite(values).any():
            raise SourceError(
                "Catalog assets held no elevation samples",
                details={"source": self.name, "assets": len(hrefs)},
            )
        return self._raster(values)


class VenusGlobalSource(ProjectedRasterSource):
    """Single global Magellan topography raster."""

    name = "venus"
    body = Body.VENUS
    high_fidelity = True
    fatal_on_failure = True

    def fetch(self, region: Region, request: RasterRequest) -> ElevationRaster:
        href = self.config.sources.venus_global_url
        window = read_raster_window(
            href, self.projected_bounds(region), request.width, request.height, self.nodata
        )
        if window is None:
            raise SourceError("Region lies outside the global raster", details={"href": href})
        return self._raster(window)


class SourceChain:
    """Ordered strategies for one body, tried until one succeeds."""

    def __init__(self, body: Body, sources: list[ElevationSource]):
        self.body = body
        self.sources = sources

    def candidates(self, region: Region) -> list[ElevationSource]:
        return [source for source in self.sources if source.covers(region)]

    def fetch(self, region: Region, request: RasterRequest) -> ElevationRaster:
        """Return the first successful raster.

        Raises:
            SourceError: Every candidate failed; a coarser attempt may still succeed
            FatalSourceError: There was no candidate, or every candidate is
                `fatal_on_failure`
        """
        candidates = self.candidates(region)
        last_error: SourceError | None = None

        for source in candidates:
            try:
                raster = source.fetch(region, request)
            except SourceError as e:
                logger.warning(
                    "Elevation source failed",
                    body=self.body.value,
                    source=source.name,
                    error=str(e),
                )
                last_error = e
                continue
            logger.info(
                "Elevation source selected",
                body=self.body.value,
                source=source.name,
                valid_samples=raster.valid_count(),
            )
            return raster

        fatal = all(source.fatal_on_failure for source in candidates)
        error_cls = FatalSourceError if fatal else SourceError
        raise error_cls(
            f"No elevation source succeeded for {self.body.value}",
            details={
                "tried": ",".join(s.name for s in candidates) or "none",
                "last_error": str(last_error) if last_error else "no candidate source",
            },
        )


class SourceSelector:
    """Maps each body to its source chain."""

    def __init__(
        self,
        config: Optional[Config] = None,
        chains: Optional[dict[Body, list[ElevationSource]]] = None,
    ):
        self.config = config or get_config()
        self.chains = chains if chains is not None else self.default_chains(self.config)

    @staticmethod
    def default_chains(config: Config) -> dict[Body, list[ElevationSource]]:
        return {
            Body.EARTH: [
                RegionalExportSource(config),
                TerrariumSource(config),
                OpenElevationSource(config),
            ],
            Body.MOON: [KaguyaCatalogSource(config), MoonBasemapSource(config)],
            Body.MARS: [MarsBasemapSource(config)],
            Body.VENUS: [VenusGlobalSource(config)],
        }

    def chain_for(self, body: Body) -> SourceChain:
        return SourceChain(body, self.chains.get(body, []))
