"""Pytest configuration and shared fixtures."""

import re
import urllib.error
from pathlib import Path

import numpy as np
import pytest

from topoprint.config import Config, SourcesConfig
from topoprint.exceptions import SourceError
from topoprint.testing.synthetic_dem import create_terrain, terrarium_png, write_projected_geotiff
from topoprint.core.tile_math import project_simple_cylindrical
from topoprint.types import Region

TILE_URL = re.compile(r"/(\d+)/(\d+)/(\d+)\.png")

MOON_RADIUS_M = 1737400.0


def rolling_terrain(lat: np.ndarray, lon: np.ndarray) -> np.ndarray:
    """Smooth global elevation field between 1250 m and 1750 m."""
    return 1500.0 + 250.0 * np.sin(np.radians(lon) * 400.0) * np.cos(np.radians(lat) * 400.0)


class FakeTileServer:
    """Stands in for `fetch_bytes`, rendering Terrarium tiles from a global field.

    Tiles above `max_zoom` answer 404. Every request is recorded as (z, x, y).
    """

    def __init__(self, elevation_fn=rolling_terrain, max_zoom=None):
        self.elevation_fn = elevation_fn
        self.max_zoom = max_zoom
        self.requests = []

    def tile_png(self, z: int, x: int, y: int) -> bytes:
        n = 2 ** z
        offsets = (np.arange(256) + 0.5) / 256.0
        lon = (x + offsets) / n * 360.0 - 180.0
        lat = np.degrees(np.arctan(np.sinh(np.pi * (1.0 - 2.0 * (y + offsets) / n))))
        lon_grid, lat_grid = np.meshgrid(lon, lat)
        return terrarium_png(self.elevation_fn(lat_grid, lon_grid))

    def __call__(self, url, timeout, user_agent="test", data=None, headers=None, not_found_ok=False):
        match = TILE_URL.search(url)
        if match is None:
            raise SourceError("Unexpected URL in test", details={"url": url})
        z, x, y = (int(g) for g in match.groups())
        self.requests.append((z, x, y))
        if self.max_zoom is not None and z > self.max_zoom:
            if not_found_ok:
                return None
            raise SourceError("HTTP 404", details={"url": url})
        return self.tile_png(z, x, y)

    @property
    def zooms(self) -> set:
        return {z for z, _, _ in self.requests}


@pytest.fixture
def test_config() -> Config:
    """Configuration whose Earth chain is Terrarium only."""
    return Config(
        sources=SourcesConfig(
            regional_enabled=False,
            open_elevation_enabled=False,
            max_tile_workers=4,
        )
    )


@pytest.fixture
def utah_region() -> Region:
    """Small region in the Wasatch range."""
    return Region(north=40.5, south=40.3, east=-111.5, west=-111.7)


@pytest.fixture
def moon_region() -> Region:
    """Small lunar region inside the synthetic DTM."""
    return Region(north=10.5, south=10.0, east=20.5, west=20.0)


@pytest.fixture
def tile_server(monkeypatch) -> FakeTileServer:
    """Route every tile download through a FakeTileServer."""
    server = FakeTileServer()
    monkeypatch.setattr("topoprint.core.fetchers.fetch_bytes", server)
    return server


@pytest.fixture
def synthetic_moon_dtm(tmp_path: Path) -> Path:
    """Lunar DTM GeoTIFF in the Moon's simple-cylindrical frame.

    Covers lat 9.5..11, lon 19.5..21 at 150x150 pixels. The first row holds
    the -32767 sentinel without declaring it as the dataset nodata.

    Returns:
        Path to the GeoTIFF file
    """
    elevation = create_terrain((150, 150), base_elevation=-1200.0, relief=800.0)
    elevation[0, :] = -32767.0
    bounds = project_simple_cylindrical(
        Region(north=11.0, south=9.5, east=21.0, west=19.5), MOON_RADIUS_M
    )
    return write_projected_geotiff(
        tmp_path / "synthetic_moon_dtm.tif", elevation, bounds, MOON_RADIUS_M
    )


@pytest.fixture
def sample_terrain_data() -> np.ndarray:
    """40x60 array of synthetic elevation data."""
    return create_terrain((40, 60), base_elevation=1000.0, relief=300.0)


@pytest.fixture(autouse=True)
def no_network(monkeypatch):
    """Fail any real HTTP request made during tests."""

    def refuse(*args, **kwargs):
        raise urllib.error.URLError("network access disabled in tests")

    monkeypatch.setattr("topoprint.core.http.urllib.request.urlopen", refuse)


@pytest.fixture(autouse=True)
def reset_config():
    """Reset config singleton after each test."""
    from topoprint.config import reset_config
    yield
    reset_config()
