"""Unit tests for elevation sources and per-body fallback chains."""

import math
from pathlib import Path

import numpy as np
import pytest

from topoprint.config import Config, SourcesConfig
from topoprint.core.fetchers import read_raster_window
from topoprint.core.sources import (
    ElevationSource,
    KaguyaCatalogSource,
    MarsBasemapSource,
    MoonBasemapSource,
    OpenElevationSource,
    RasterRequest,
    RegionalExportSource,
    SourceChain,
    SourceSelector,
    TerrariumSource,
    VenusGlobalSource,
)
from topoprint.core.tile_math import project_simple_cylindrical, tile_range
from topoprint.exceptions import FatalSourceError, SourceError
from topoprint.testing.synthetic_dem import create_terrain, grayscale_png, write_projected_geotiff
from topoprint.types import Body, ElevationRaster, Region

VENUS_RADIUS_M = 6051800.0


class StaticSource(ElevationSource):
    """Returns a constant raster, or fails when `error` is set."""

    def __init__(
        self, name, value=100.0, error=None, covered=True, high_fidelity=False, fatal=False
    ):
        super().__init__(Config())
        self.name = name
        self.value = value
        self.error = error
        self.covered = covered
        self.high_fidelity = high_fidelity
        self.fatal_on_failure = fatal
        self.calls = 0

    def covers(self, region):
        return self.covered

    def fetch(self, region, request):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self._raster(np.full((request.height, request.width), self.value))


REQUEST = RasterRequest(zoom=11, width=16, height=12)


class TestTerrariumSource:
    """Global Earth tiles."""

    def test_decodes_cropped_canvas(self, test_config, utah_region, tile_server):
        raster = TerrariumSource(test_config).fetch(utah_region, REQUEST)
        assert raster.source == "terrarium"
        assert not raster.high_fidelity
        assert not raster.proxy
        assert tile_server.zooms == {11}
        assert raster.valid_count() == raster.values.size
        assert -500.0 <= np.nanmin(raster.values)
        assert np.nanmax(raster.values) <= 9000.0
        # About 291 x 382 pixels for 0.2 degrees square at z11
        assert raster.width == pytest.approx(291, abs=2)

    def test_no_tiles_loaded_is_source_error(self, test_config, utah_region, tile_server):
        tile_server.max_zoom = 3
        with pytest.raises(SourceError, match="No tiles"):
            TerrariumSource(test_config).fetch(utah_region, REQUEST)

    def test_partial_tiles_leave_gaps(self, test_config, utah_region, tile_server):
        first_column = tile_range(utah_region, 11).x_min
        render = tile_server.tile_png
        tile_server.tile_png = lambda z, x, y: render(z, x, y) if x == first_column else None

        raster = TerrariumSource(test_config).fetch(utah_region, REQUEST)
        assert 0 < raster.valid_count() < raster.values.size


def test_basemaps_are_proxies(test_config, moon_region, tile_server):
    moon = MoonBasemapSource(test_config).fetch(moon_region, RasterRequest(8, 16, 16))
    assert moon.proxy
    assert moon.source == "moon"
    assert MarsBasemapSource(test_config).proxy


class TestRegionalExportSource:
    """Regional high-fidelity Earth export."""

    def test_covers_conus_only(self, utah_region):
        source = RegionalExportSource(Config())
        assert source.covers(utah_region)
        assert not source.covers(Region(north=20.0, south=19.0, east=-155.0, west=-156.0))

    def test_disabled_by_config(self, utah_region):
        source = RegionalExportSource(Config(sources=SourcesConfig(regional_enabled=False)))
        assert not source.covers(utah_region)

    def test_decodes_export(self, utah_region, monkeypatch):
        gray = np.zeros((REQUEST.height, REQUEST.width))
        gray[:, REQUEST.width // 2:] = 255
        monkeypatch.setattr(
            "topoprint.core.fetchers.fetch_bytes", lambda *args, **kwargs: grayscale_png(gray)
        )
        raster = RegionalExportSource(Config()).fetch(utah_region, REQUEST)
        assert raster.high_fidelity
        assert raster.values.shape == (REQUEST.height, REQUEST.width)
        assert raster.values[0, 0] == pytest.approx(6500.0)
        assert raster.values[0, -1] == pytest.approx(-500.0)


class TestOpenElevationSource:
    """Point lookups on a lattice."""

    def test_batched_lookup(self, utah_region, monkeypatch):
        calls = []

        def fake_fetch_json(url, timeout, user_agent="test", payload=None):
            calls.append(len(payload["locations"]))
            return {"results": [{"elevation": loc["latitude"] * 10} for loc in payload["locations"]]}

        monkeypatch.setattr("topoprint.core.fetchers.fetch_json", fake_fetch_json)
        config = Config(
            sources=SourcesConfig(open_elevation_max_points=64, open_elevation_batch_size=16)
        )
        source = OpenElevationSource(config)
        nx, ny = source.lattice_dims(utah_region, RasterRequest(11, 100, 100))
        assert nx * ny <= 64

        raster = source.fetch(utah_region, RasterRequest(11, 100, 100))
        assert raster.values.shape == (ny, nx)
        assert sum(calls) == nx * ny
        assert len(calls) == math.ceil(nx * ny / 16)
        assert raster.values[0, 0] == pytest.approx(405.0)
        assert raster.values[-1, 0] == pytest.approx(403.0)

    def test_short_result_is_source_error(self, utah_region, monkeypatch):
        monkeypatch.setattr(
            "topoprint.core.fetchers.fetch_json", lambda *args, **kwargs: {"results": []}
        )
        with pytest.raises(SourceError):
            OpenElevationSource(Config()).fetch(utah_region, REQUEST)


class TestKaguyaCatalogSource:
    """Lunar DTMs from the catalog."""

    def test_reads_catalog_assets(self, moon_region, synthetic_moon_dtm, monkeypatch):
        monkeypatch.setattr(
            "topoprint.core.sources.search_catalog", lambda region, settings: [str(synthetic_moon_dtm)]
        )
        raster = KaguyaCatalogSource(Config()).fetch(moon_region, RasterRequest(11, 40, 30))
        assert raster.source == "moon"
        assert raster.high_fidelity
        assert raster.values.shape == (30, 40)
        assert raster.valid_count() == 30 * 40
        assert -5000.0 < np.nanmin(raster.values) < np.nanmax(raster.values) < 0.0

    def test_duplicate_assets_average_to_same_values(self, moon_region, synthetic_moon_dtm):
        source = KaguyaCatalogSource(Config())
        single = source.accumulate([str(synthetic_moon_dtm)], moon_region, RasterRequest(11, 20, 20))
        double = source.accumulate([str(synthetic_moon_dtm)] * 2, moon_region, RasterRequest(11, 20, 20))
        np.testing.assert_allclose(single, double)

    def test_unreadable_asset_is_skipped(self, moon_region, synthetic_moon_dtm, tmp_path):
        source = KaguyaCatalogSource(Config())
        values = source.accumulate(
            [str(tmp_path / "missing.tif"), str(synthetic_moon_dtm)],
            moon_region,
            RasterRequest(11, 20, 20),
        )
        assert np.isfinite(values).all()

    def test_no_assets_is_source_error(self, moon_region, monkeypatch):
        monkeypatch.setattr("topoprint.core.sources.search_catalog", lambda region, settings: [])
        with pytest.raises(SourceError, match="no assets"):
            KaguyaCatalogSource(Config()).fetch(moon_region, REQUEST)

    def test_assets_without_samples_is_source_error(self, synthetic_moon_dtm, monkeypatch):
        monkeypatch.setattr(
            "topoprint.core.sources.search_catalog", lambda region, settings: [str(synthetic_moon_dtm)]
        )
        far_away = Region(north=-40.0, south=-41.0, east=101.0, west=100.0)
        with pytest.raises(SourceError, match="no elevation samples"):
            KaguyaCatalogSource(Config()).fetch(far_away, REQUEST)

    def test_nodata_sentinel_is_masked(self, synthetic_moon_dtm):
        bounds = project_simple_cylindrical(
            Region(north=11.0, south=9.5, east=21.0, west=19.5), 1737400.0
        )
        values = read_raster_window(str(synthetic_moon_dtm), bounds, 150, 150, -32767.0)
        assert np.isnan(values[0]).all()
        assert np.isfinite(values[1:]).all()

    def test_disjoint_window_returns_none(self, synthetic_moon_dtm):
        bounds = project_simple_cylindrical(
            Region(north=-40.0, south=-41.0, east=101.0, west=100.0), 1737400.0
        )
        assert read_raster_window(str(synthetic_moon_dtm), bounds, 10, 10) is None


class TestVenusGlobalSource:
    """Single global raster."""

    def test_reads_window(self, tmp_path: Path):
        region = Region(north=5.0, south=-5.0, east=5.0, west=-5.0)
        path = write_projected_geotiff(
            tmp_path / "venus.tif",
            create_terrain((64, 64), base_elevation=500.0),
            project_simple_cylindrical(Region(north=10.0, south=-10.0, east=10.0, west=-10.0), VENUS_RADIUS_M),
            VENUS_RADIUS_M,
        )
        config = Config(sources=SourcesConfig(venus_global_url=str(path)))
        raster = VenusGlobalSource(config).fetch(region, RasterRequest(8, 24, 24))
        assert raster.high_fidelity
        assert raster.valid_count() == 24 * 24

    def test_missing_raster_is_fatal_in_chain(self, tmp_path: Path):
        config = Config(sources=SourcesConfig(venus_global_url=str(tmp_path / "missing.tif")))
        chain = SourceSelector(config).chain_for(Body.VENUS)
        with pytest.raises(FatalSourceError):
            chain.fetch(Region(north=1.0, south=0.0, east=1.0, west=0.0), REQUEST)


class TestSourceChain:
    """Ordered fallback across strategies."""

    def test_first_success_wins(self, utah_region):
        first = StaticSource("first", value=1.0)
        second = StaticSource("second", value=2.0)
        raster = SourceChain(Body.EARTH, [first, second]).fetch(utah_region, REQUEST)
        assert raster.source == "first"
        assert second.calls == 0

    def test_falls_back_on_failure(self, utah_region):
        first = StaticSource("first", error=SourceError("down"), high_fidelity=True)
        second = StaticSource("second", value=2.0)
        raster = SourceChain(Body.EARTH, [first, second]).fetch(utah_region, REQUEST)
        assert raster.source == "second"
        assert not raster.high_fidelity
        assert first.calls == 1

    def test_uncovered_sources_are_skipped(self, utah_region):
        first = StaticSource("first", covered=False)
        second = StaticSource("second")
        raster = SourceChain(Body.EARTH, [first, second]).fetch(utah_region, REQUEST)
        assert raster.source == "second"
        assert first.calls == 0

    def test_all_failing_with_fallback_is_recoverable(self, utah_region):
        chain = SourceChain(
            Body.MOON,
            [StaticSource("a", error=SourceError("x")), StaticSource("b", error=SourceError("y"))],
        )
        with pytest.raises(SourceError) as exc_info:
            chain.fetch(utah_region, REQUEST)
        assert not isinstance(exc_info.value, FatalSourceError)
        assert exc_info.value.details["tried"] == "a,b"

    def test_single_tile_candidate_failure_is_retryable(self, utah_region):
        chain = SourceChain(Body.MARS, [StaticSource("only", error=SourceError("x"))])
        with pytest.raises(SourceError) as exc_info:
            chain.fetch(utah_region, REQUEST)
        assert not isinstance(exc_info.value, FatalSourceError)

    def test_fixed_raster_failure_is_fatal(self, utah_region):
        chain = SourceChain(
            Body.VENUS, [StaticSource("only", error=SourceError("x"), fatal=True)]
        )
        with pytest.raises(FatalSourceError):
            chain.fetch(utah_region, REQUEST)

    def test_no_candidate_is_fatal(self, utah_region):
        chain = SourceChain(Body.EARTH, [StaticSource("off", covered=False)])
        with pytest.raises(FatalSourceError) as exc_info:
            chain.fetch(utah_region, REQUEST)
        assert exc_info.value.details["tried"] == "none"

    def test_raster_without_samples_is_returned(self, utah_region):
        chain = SourceChain(
            Body.EARTH,
            [StaticSource("nan", value=np.nan), StaticSource("ok", value=3.0)],
        )
        raster = chain.fetch(utah_region, REQUEST)
        assert raster.source == "nan"
        assert raster.valid_count() == 0


def test_default_chains():
    selector = SourceSelector(Config())
    names = {body: [s.name for s in selector.chain_for(body).sources] for body in Body}
    assert names[Body.EARTH] == ["usgs3dep", "terrarium", "open-elevation"]
    assert names[Body.MOON] == ["moon", "moon"]
    assert names[Body.MARS] == ["mars"]
    assert names[Body.VENUS] == ["venus"]


def test_raster_request_is_passed_through(utah_region):
    source = StaticSource("s")
    raster = SourceChain(Body.EARTH, [source]).fetch(utah_region, RasterRequest(5, 7, 3))
    assert isinstance(raster, ElevationRaster)
    assert raster.values.shape == (3, 7)
