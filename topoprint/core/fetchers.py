"""Raw data acquisition: tile canvases, catalog search, windowed raster reads.

Fetchers return undecoded pixels or raw sample arrays; turning them into
meters is the job of `topoprint.core.decoders`.
"""

from __future__ import annotations

import io
from concurrent.futures import ThreadPoolExecutor
from typing import Optional

import numpy as np
import rasterio
from PIL import Image
from rasterio.coords import disjoint_bounds
from rasterio.enums import Resampling
from rasterio.errors import RasterioError
from rasterio.windows import from_bounds

from topoprint.config import SourcesConfig
from topoprint.core.decoders import mask_nodata
from topoprint.core.http import build_url, fetch_bytes, fetch_json
from topoprint.core.tile_math import TileRange
from topoprint.exceptions import SourceError
from topoprint.types import Region
from topoprint.utils.logging import get_logger

logger = get_logger(__name__)


def _decode_tile_image(data: bytes, tile_size: int) -> np.ndarray:
    img = Image.open(io.BytesIO(data)).convert("RGBA")
    if img.size != (tile_size, tile_size):
        img = img.resize((tile_size, tile_size), Image.Resampling.NEAREST)
    return np.asarray(img, dtype=np.uint8)


def fetch_tile_canvas(
    url_template: str,
    tiles: TileRange,
    settings: SourcesConfig,
) -> tuple[np.ndarray, int]:
    """Fetch every tile in range concurrently and composite them.

    Missing or failed tiles stay fully transparent, which downstream decoders
    read as "no sample".

    Returns:
        (RGBA canvas of shape (H, W, 4), number of tiles that loaded)
    """
    size = tiles.tile_size
    canvas = np.zeros((tiles.canvas_height, tiles.canvas_width, 4), dtype=np.uint8)

    def load(xy: tuple[int, int]) -> Optional[np.ndarray]:
        x, y = xy
        url = url_template.format(z=tiles.zoom, x=tiles.wrap_x(x), y=y)
        try:
            data = fetch_bytes(
                url,
                settings.request_timeout_s,
                user_agent=settings.user_agent,
                not_found_ok=True,
            )
            if not data:
                logger.debug("Tile not found", z=tiles.zoom, x=x, y=y)
                return None
            return _decode_tile_image(data, size)
        except (SourceError, OSError) as e:
            logger.warning("Tile fetch failed", z=tiles.zoom, x=x, y=y, error=str(e))
            return None

    indices = tiles.tiles()
    with ThreadPoolExecutor(max_workers=settings.max_tile_workers) as pool:
        images = list(pool.map(load, indices))

    loaded = 0
    for (x, y), image in zip(indices, images):
        if image is None:
            continue
        ox = (x - tiles.x_min) * size
        oy = (y - tiles.y_min) * size
        canvas[oy:oy + size, ox:ox + size] = image
        loaded += 1

    logger.info(
        "Tile canvas composited",
        zoom=tiles.zoom,
        tiles=len(indices),
        loaded=loaded,
        width=tiles.canvas_width,
        height=tiles.canvas_height,
    )
    return canvas, loaded


def search_catalog(region: Region, settings: SourcesConfig) -> list[str]:
    """Return DTM asset hrefs from the STAC catalog that intersect the region."""
    url = build_url(
        settings.kaguya_stac_url,
        {
            "bbox": f"{region.west},{region.south},{region.east},{region.north}",
            "limit": settings.catalog_limit,
        },
    )
    document = fetch_json(url, settings.request_timeout_s, user_agent=settings.user_agent)
    features = document.get("features") if isinstance(document, dict) else None
    if not isinstance(features, list):
        raise SourceError("Catalog response has no features list", details={"url": url})

    hrefs = []
    for feature in features:
        asset = (feature.get("assets") or {}).get(settings.kaguya_asset_key) or {}
        href = asset.get("href")
        if href:
            hrefs.append(href)
    logger.info("Catalog search complete", items=len(features), assets=len(hrefs))
    return hrefs


def read_raster_window(
    href: str,
    bounds: tuple[float, float, float, float],
    width: int,
    height: int,
    default_nodata: float | None = None,
) -> Optional[np.ndarray]:
    """Read a projected window of a georeferenced raster at the given pixel dims.

    Args:
        href: Path or URL of the raster (URLs are read through GDAL's HTTP driver)
        bounds: (left, bottom, right, top) in the raster's own CRS units
        width: Output columns
        height: Output rows
        default_nodata: Sentinel to use when the dataset declares none

    Returns:
        Float array (height, width) with NaN for no data, or None when the
        window does not intersect the raster at all

    Raises:
        SourceError: If the raster cannot be opened or read
    """
    try:
        with rasterio.open(href) as src:
            if disjoint_bounds(bounds, tuple(src.bounds)):
                logger.debug("Raster window outside asset", href=href)
                return None
            window = from_bounds(*bounds, transform=src.transform)
            nodata = src.nodata if src.nodata is not None else default_nodata
            data = src.read(
                1,
                window=window,
                out_shape=(height, width),
                boundless=True,
                masked=True,
                resampling=Resampling.nearest,
            )
    except (RasterioError, OSError) as e:
        raise SourceError("Raster read failed", details={"href": href, "error": str(e)}) from e

    values = np.ma.filled(data.astype(np.float64), np.nan)
    return mask_nodata(values, nodata)


def fetch_export_image(region: Region, width: int, height: int, settings: SourcesConfig) -> np.ndarray:
    """Request one grayscale export image of the region from the regional service."""
    url = build_url(
        settings.regional_export_url,
        {
            "bbox": f"{region.west},{region.south},{region.east},{region.north}",
            "bboxSR": 4326,
            "imageSR": 4326,
            "size": f"{width},{height}",
            "format": "png",
            "pixelType": "U8",
            "f": "image",
        },
    )
    data = fetch_bytes(url, settings.request_timeout_s, user_agent=settings.user_agent)
    try:
        img = Image.open(io.BytesIO(data)).convert("L")
    except OSError as e:
        raise SourceError("Export image could not be decoded", details={"url": url}) from e
    if img.size != (width, height):
        img = img.resize((width, height), Image.Resampling.NEAREST)
    return np.asarray(img, dtype=np.uint8)


def lookup_points(lats: np.ndarray, lons: np.ndarray, settings: SourcesConfig) -> np.ndarray:
    """Look up point elevations in batches; returns meters shaped like `lats`."""
    flat_lats = np.asarray(lats, dtype=np.float64).ravel()
    flat_lons = np.asarray(lons, dtype=np.float64).ravel()
    out = np.full(flat_lats.shape, np.nan)
    batch = settings.open_elevation_batch_size

    for start in range(0, flat_lats.size, batch):
        stop = min(start + batch, flat_lats.size)
        payload = {
            "locations": [
                {"latitude": float(lat), "longitude": float(lon)}
                for lat, lon in zip(flat_lats[start:stop], flat_lons[start:stop])
            ]
        }
        document = fetch_json(
            settings.open_elevation_url,
            settings.request_timeout_s,
            user_agent=settings.user_agent,
            payload=payload,
        )
        results = document.get("results") if isinstance(document, dict) else None
        if not isinstance(results, list) or len(results) != stop - start:
            raise SourceError(
                "Point lookup returned an unexpected result count",
                details={"expected": stop - start},
            )
        for offset, item in enumerate(results):
            value = item.get("elevation") if isinstance(item, dict) else None
            if value is not None:
                out[start + offset] = float(value)

    return mask_nodata(out.reshape(np.shape(lats)), None)
