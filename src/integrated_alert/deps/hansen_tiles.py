from __future__ import annotations

import math
import re
from pathlib import Path

from integrated_alert.geo.aoi import AreaOfInterest


# Hansen loss-year codes count years since this base year.
HANSEN_BASE_YEAR = 2000

# GFC granules are 10x10 degree tiles named after their top-left corner, e.g. 10N_110E.
HANSEN_TILE_ID_RE = re.compile(r"(\d{2}[NS]_\d{3}[EW])", flags=re.IGNORECASE)


def _band_start(value: float, band_size: int = 10) -> int:
    return int(math.floor(value / band_size) * band_size)


def _lat_band_start(value: float, band_size: int = 10) -> int:
    return int(math.ceil(value / band_size) * band_size)


def _band_range(min_value: float, max_value: float, band_size: int = 10) -> list[int]:
    min_band = _band_start(min_value, band_size)
    max_band = _band_start(max_value - 1e-9, band_size)
    return list(range(min_band, max_band + band_size, band_size))


def _lat_band_range(min_value: float, max_value: float, band_size: int = 10) -> list[int]:
    min_band = _lat_band_start(min_value + 1e-9, band_size)
    max_band = _lat_band_start(max_value - 1e-9, band_size)
    return list(range(min_band, max_band + band_size, band_size))


def _format_lat_band(lat: int) -> str:
    suffix = "N" if lat >= 0 else "S"
    return f"{abs(lat):02d}{suffix}"


def _format_lon_band(lon: int) -> str:
    suffix = "E" if lon >= 0 else "W"
    return f"{abs(lon):03d}{suffix}"


def hansen_tile_ids_for_bbox(bbox: tuple[float, float, float, float]) -> list[str]:
    minx, miny, maxx, maxy = bbox
    lat_bands = _lat_band_range(miny, maxy)
    lon_bands = _band_range(minx, maxx)

    tile_ids = [
        f"{_format_lat_band(lat)}_{_format_lon_band(lon)}" for lat in lat_bands for lon in lon_bands
    ]
    return sorted(tile_ids)


def hansen_tile_ids_for_aoi(aoi: AreaOfInterest) -> list[str]:
    return hansen_tile_ids_for_bbox(aoi.bbox)


def tile_id_from_path(path: Path) -> str | None:
    for candidate in (path.stem, path.parent.name):
        match = HANSEN_TILE_ID_RE.search(candidate.upper())
        if match is not None:
            return match.group(1)
    return None
