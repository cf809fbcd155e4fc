"""Pixel-to-elevation decoders for each source encoding.

All decoders return float64 meters with NaN wherever the source carries no
sample (transparent pixel or nodata sentinel).
"""

from __future__ import annotations

import numpy as np

# Raster samples beyond this magnitude are treated as garbage, not terrain.
MAX_PLAUSIBLE_ELEVATION_M = 1e6


def _alpha_mask(rgba: np.ndarray) -> np.ndarray:
    if rgba.ndim == 3 and rgba.shape[2] == 4:
        return rgba[..., 3] == 0
    return np.zeros(rgba.shape[:2], dtype=bool)


def decode_terrarium(rgba: np.ndarray) -> np.ndarray:
    """Decode Terrarium-encoded pixels: `R*256 + G + B/256 - 32768`."""
    rgb = rgba[..., :3].astype(np.float64)
    elevation = rgb[..., 0] * 256.0 + rgb[..., 1] + rgb[..., 2] / 256.0 - 32768.0
    elevation[_alpha_mask(rgba)] = np.nan
    return elevation


def encode_terrarium(elevation: np.ndarray) -> np.ndarray:
    """Encode meters into Terrarium RGB bytes (inverse of `decode_terrarium`)."""
    shifted = np.clip(np.asarray(elevation, dtype=np.float64) + 32768.0, 0.0, 65535.996)
    r = np.floor(shifted / 256.0)
    g = np.floor(shifted - r * 256.0)
    b = np.floor((shifted - r * 256.0 - g) * 256.0)
    return np.stack([r, g, b], axis=-1).astype(np.uint8)


def decode_grayscale(rgba: np.ndarray, scale: float = 100.0) -> np.ndarray:
    """Decode a hillshaded albedo basemap as a brightness-height proxy."""
    rgb = rgba[..., :3].astype(np.float64)
    elevation = rgb.mean(axis=-1) * scale
    elevation[_alpha_mask(rgba)] = np.nan
    return elevation


def decode_stretched_gray(gray: np.ndarray, min_m: float, max_m: float) -> np.ndarray:
    """Invert a display-stretched export where dark pixels are high ground."""
    values = np.asarray(gray, dtype=np.float64)
    return max_m - (values / 255.0) * (max_m - min_m)


def mask_nodata(values: np.ndarray, nodata: float | None) -> np.ndarray:
    """Replace nodata, non-finite and implausible samples with NaN."""
    out = np.asarray(values, dtype=np.float64).copy()
    invalid = ~np.isfinite(out)
    if nodata is not None and np.isfinite(nodata):
        invalid |= out == nodata
    invalid |= np.abs(np.nan_to_num(out, nan=0.0)) > MAX_PLAUSIBLE_ELEVATION_M
    out[invalid] = np.nan
    return out
