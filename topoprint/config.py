"""Configuration management with YAML support."""

import os
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from topoprint.exceptions import ConfigurationError


class BodyParameters(BaseModel):
    """Planetary body parameters used for scaling and projection."""

    radius_m: float = Field(..., gt=0, description="Mean body radius (meters)")


def _default_bodies() -> dict[str, BodyParameters]:
    return {
        "earth": BodyParameters(radius_m=6371008.8),
        "mars": BodyParameters(radius_m=3396190.0),
        "moon": BodyParameters(radius_m=1737400.0),
        "venus": BodyParameters(radius_m=6051800.0),
    }


class CoverageEnvelope(BaseModel):
    """Geographic envelope a regional source is known to cover."""

    north: float = 49.5
    south: float = 24.0
    east: float = -66.5
    west: float = -125.0


class SourcesConfig(BaseModel):
    """Remote elevation source configuration."""

    terrarium_url: str = Field(
        "https://s3.amazonaws.com/elevation-tiles-prod/terrarium/{z}/{x}/{y}.png",
        description="Global Terrarium-encoded Earth tiles",
    )
    moon_basemap_url: str = Field(
        "https://cartocdn-gusc.global.ssl.fastly.net/opmbuilder/api/v1/map/named/"
        "opm-moon-basemap-v0-1/all/{z}/{x}/{y}.png",
        description="Grayscale hillshaded Moon basemap tiles",
    )
    mars_basemap_url: str = Field(
        "https://cartocdn-gusc.global.ssl.fastly.net/opmbuilder/api/v1/map/named/"
        "opm-mars-basemap-v0-1/all/{z}/{x}/{y}.png",
        description="Grayscale hillshaded Mars basemap tiles",
    )
    kaguya_stac_url: str = Field(
        "https://stac.astrogeology.usgs.gov/api/collections/"
        "kaguya_terrain_camera_usgs_dtms/items",
        description="STAC item search for Kaguya TC DTMs",
    )
    kaguya_asset_key: str = Field("dtm", description="STAC asset key holding the DTM")
    kaguya_nodata: float = Field(-32767.0, description="Kaguya DTM nodata sentinel")
    catalog_limit: int = Field(10, ge=1, description="Maximum STAC items per search")
    venus_global_url: str = Field(
        "https://planetarymaps.usgs.gov/mosaic/Venus_Magellan_Topography_Global_4641m_v02.tif",
        description="Global Magellan topography GeoTIFF",
    )
    regional_enabled: bool = Field(True, description="Use the regional Earth source when covered")
    regional_export_url: str = Field(
        "https://elevation.nationalmap.gov/arcgis/rest/services/3DEPElevation/"
        "ImageServer/exportImage",
        description="USGS 3DEP exportImage endpoint",
    )
    regional_envelope: CoverageEnvelope = Field(default_factory=CoverageEnvelope)
    regional_min_elevation_m: float = -500.0
    regional_max_elevation_m: float = 6500.0
    open_elevation_enabled: bool = Field(True, description="Use Open-Elevation as last resort")
    open_elevation_url: str = "https://api.open-elevation.com/api/v1/lookup"
    open_elevation_max_points: int = Field(4096, ge=4)
    open_elevation_batch_size: int = Field(512, ge=1)
    request_timeout_s: float = Field(30.0, gt=0, description="Timeout for every remote call")
    max_tile_workers: int = Field(8, ge=1, description="Concurrent tile downloads")
    user_agent: str = "topoprint/0.1"


class RasterConfig(BaseModel):
    """Raster size limits."""

    tile_size: int = 256
    max_canvas_px: int = Field(4096, ge=256, description="Max tile canvas side before zooming out")
    max_raster_px: int = Field(2048, ge=2, description="Max windowed raster side")


class TierConfig(BaseModel):
    """Zoom and mesh density of one resolution tier."""

    zoom: int = Field(..., ge=0, le=22)
    max_segments: int = Field(..., ge=2)


def _default_tiers() -> dict[str, TierConfig]:
    return {
        "low": TierConfig(zoom=11, max_segments=128),
        "medium": TierConfig(zoom=12, max_segments=256),
        "high": TierConfig(zoom=13, max_segments=384),
        "ultra": TierConfig(zoom=14, max_segments=1024),
    }


class LadderConfig(BaseModel):
    """Resolution fallback ladder."""

    tiers: dict[str, TierConfig] = Field(default_factory=_default_tiers)
    zoom_floor: int = Field(5, ge=0, description="Lowest zoom any attempt may use")


class MeshConfig(BaseModel):
    """Mesh construction constants.

    The grayscale scale, relief fraction and median pass counts were tuned
    by eye against printed models and have no derivation beyond that.
    """

    min_thickness: float = Field(0.8, gt=0, description="Lithophane thinnest point")
    max_thickness: float = Field(4.0, gt=0, description="Lithophane thickest point")
    relief_fraction: float = Field(0.15, gt=0, description="Non-Earth relief as fraction of width")
    grayscale_scale: float = Field(100.0, description="Meters per grayscale level")
    median_passes: int = Field(1, ge=0)
    proxy_median_passes: int = Field(2, ge=0)
    flat_range_m: float = Field(100.0, gt=0, description="Synthetic range for empty grids")
    stl_header: str = "Binary STL from topoprint"


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field("INFO", description="Log level (DEBUG/INFO/WARNING/ERROR)")
    format: str = Field("console", description="Log format (console/json)")
    file: Optional[Path] = Field(None, description="Optional log file path")


class Config(BaseSettings):
    """Main application configuration."""

    model_config = SettingsConfigDict(
        env_prefix="TOPOPRINT_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    bodies: dict[str, BodyParameters] = Field(default_factory=_default_bodies)
    sources: SourcesConfig = Field(default_factory=SourcesConfig)
    raster: RasterConfig = Field(default_factory=RasterConfig)
    ladder: LadderConfig = Field(default_factory=LadderConfig)
    mesh: MeshConfig = Field(default_factory=MeshConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    def body(self, name: str) -> BodyParameters:
        """Return parameters for a body by name."""
        try:
            return self.bodies[name]
        except KeyError:
            raise ConfigurationError(f"No parameters configured for body: {name}")

    @classmethod
    def from_yaml(cls, path: Path) -> "Config":
        """Load configuration from YAML file.

        Args:
            path: Path to YAML config file

        Returns:
            Config instance

        Raises:
            FileNotFoundError: If config file doesn't exist
            ConfigurationError: If the YAML is invalid or fails validation
        """
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")

        with open(path) as f:
            try:
                data = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ConfigurationError(f"Invalid YAML in {path}", details={"error": str(e)})

        try:
            return cls(**data)
        except ValidationError as e:
            raise ConfigurationError(
                f"Invalid configuration in {path}", details={"errors": e.error_count()}
            )

    @classmethod
    def load(cls) -> "Config":
        """Load configuration from file or environment.

        Priority:
        1. TOPOPRINT_CONFIG_PATH environment variable
        2. ./topoprint_config.yaml in current directory
        3. ~/.config/topoprint/config.yaml in home directory
        4. Default configuration with environment overrides
        """
        config_path = os.getenv("TOPOPRINT_CONFIG_PATH")

        if config_path and Path(config_path).exists():
            return cls.from_yaml(Path(config_path))

        default_paths = [
            Path("topoprint_config.yaml"),
            Path.home() / ".config" / "topoprint" / "config.yaml",
        ]

        for path in default_paths:
            if path.exists():
                return cls.from_yaml(path)

        return cls()


_config: Optional[Config] = None


def get_config() -> Config:
    """Get global configuration instance (lazy-loaded singleton)."""
    global _config
    if _config is None:
        _config = Config.load()
    return _config


def reset_config() -> None:
    """Reset global config instance (for testing)."""
    global _config
    _config = None
