"""
Elevation lookup from 1-degree SRTM GeoTIFF tiles.

Tiles follow the USGS SRTM 1 arc-second naming scheme, one file per integer
degree of latitude and longitude::

    n45_w123_1arc_v3.tif    covers 45N..46N, 123W..122W
    s34_e151_1arc_v3.tif    covers 34S..33S, 151E..152E

A coordinate maps to a pixel by its fractional-degree offset scaled to the
tile's size, with rows counted down from the tile's north edge. Elevation is
an optional enrichment: missing tiles, unreadable rasters and no-data pixels
all resolve to an empty string.

Batch lookups group coordinates by tile first so every tile is opened at
most once, and report progress once per tile.
"""

from __future__ import annotations

import logging
import math
from collections import defaultdict
from collections.abc import Callable, Iterable
from pathlib import Path  # noqa: TC003

import numpy as np
import rasterio
from rasterio.errors import RasterioError

logger = logging.getLogger(__name__)

# SRTM voids and ocean fill sit far below any land elevation
MIN_VALID_ELEVATION = -10

ProgressCallback = Callable[[float], None]


def tile_name(latitude: float, longitude: float) -> str:
    """File name of the tile covering a coordinate (truncated degrees)."""
    lat_deg = int(latitude)
    lon_deg = int(longitude)
    lat_part = f"s{-lat_deg + 1}" if lat_deg < 0 else f"n{lat_deg}"
    lon_part = f"w{-lon_deg + 1:03d}" if lon_deg < 0 else f"e{lon_deg:03d}"
    return f"{lat_part}_{lon_part}_1arc_v3.tif"


def pixel_for(latitude: float, longitude: float, height: int, width: int) -> tuple[int, int]:
    """(row, column) of a coordinate within its tile."""
    lat_fraction = latitude - math.floor(latitude)
    lon_fraction = longitude - math.floor(longitude)
    row = height - math.floor(lat_fraction * height) - 1
    col = math.floor(lon_fraction * width)
    return row, col


def coordinate_key(latitude: float, longitude: float) -> str:
    return f"{latitude:.4f},{longitude:.4f}"


def parse_coordinate(coordinate: str) -> tuple[float, float] | None:
    """Parse a ``"lat,lon"`` string. Blank or non-numeric parts give None."""
    lat_text, _, lon_text = coordinate.partition(",")
    try:
        latitude, longitude = float(lat_text), float(lon_text)
    except ValueError:
        return None
    if math.isnan(latitude) or math.isnan(longitude):
        return None
    return latitude, longitude


def _format_elevation(value: float) -> str:
    if value < MIN_VALID_ELEVATION:
        return ""
    return str(int(value)) if value.is_integer() else str(value)


class ElevationLookup:
    """Reads elevations from a directory of SRTM tiles."""

    def __init__(self, tile_dir: Path) -> None:
        self.tile_dir = tile_dir

    def tile_path(self, latitude: float, longitude: float) -> Path:
        return self.tile_dir / tile_name(latitude, longitude)

    def elevation(self, latitude: float | str, longitude: float | str) -> str:
        """Elevation in meters as a string, or "" when unknown."""
        parsed = parse_coordinate(f"{latitude},{longitude}")
        if parsed is None:
            return ""
        lat, lon = parsed
        result = self._read_tile(self.tile_path(lat, lon), [(lat, lon)])
        return result.get(coordinate_key(lat, lon), "")

    def elevations(
        self,
        coordinates: Iterable[str],
        on_progress: ProgressCallback | None = None,
    ) -> dict[str, str]:
        """Look up many ``"lat,lon"`` coordinates, one tile open per tile.

        Returns a map keyed by ``"lat.4f,lon.4f"``. Coordinates whose tile is
        missing are left out, so callers should use ``.get(key, "")``.
        """
        batches: dict[Path, list[tuple[float, float]]] = defaultdict(list)
        for coordinate in coordinates:
            parsed = parse_coordinate(coordinate)
            if parsed is None:
                continue
            batches[self.tile_path(*parsed)].append(parsed)

        if on_progress:
            on_progress(0)

        results: dict[str, str] = {}
        total = len(batches)
        for i, (path, batch) in enumerate(batches.items(), start=1):
            results.update(self._read_tile(path, batch))
            if on_progress:
                on_progress(100 * i / total)

        return results

    def _read_tile(self, path: Path, batch: list[tuple[float, float]]) -> dict[str, str]:
        if not path.exists():
            logger.debug("No elevation tile at %s", path)
            return {}

        results: dict[str, str] = {}
        try:
            with rasterio.open(path) as src:
                band: np.ndarray = src.read(1)
                nodata = src.nodata
                for lat, lon in batch:
                    row, col = pixel_for(lat, lon, src.height, src.width)
                    if not (0 <= row < src.height and 0 <= col < src.width):
                        results[coordinate_key(lat, lon)] = ""
                        continue
                    value = float(band[row, col])
                    if math.isnan(value) or (nodata is not None and value == nodata):
                        results[coordinate_key(lat, lon)] = ""
                        continue
                    results[coordinate_key(lat, lon)] = _format_elevation(value)
        except RasterioError:
            logger.warning("Could not read elevation tile %s", path, exc_info=True)
            return {}

        return results
