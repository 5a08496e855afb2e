from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Iterable, Mapping

import rasterio
from rasterio.errors import RasterioIOError
from shapely.geometry import box

from integrated_alert.deps.provenance import InputEntry, entry_for_file
from integrated_alert.errors import AssetNotFoundError, EmptyCollectionError
from integrated_alert.geo.aoi import AreaOfInterest
from integrated_alert.geo.raster import RasterLayer, clip, rename
from integrated_alert.geo.raster_io import footprint_wgs84, read_aoi_mosaic


LOGGER = logging.getLogger(__name__)

ALERT_BAND = "Alert"
OUTPUT_BAND = "deforestation"

_DATE_RE = re.compile(r"(?<!\d)(\d{4})-?(\d{2})-?(\d{2})(?!\d)")
_DATE_TAGS = ("DATE", "ACQUISITION_DATE", "TIFFTAG_DATETIME", "system:time_start")


@dataclass(frozen=True)
class CollectionImage:
    path: Path
    acquired: date
    footprint: tuple[float, float, float, float]  # EPSG:4326


def _parse_date_text(text: str) -> date | None:
    match = _DATE_RE.search(text)
    if match is None:
        return None
    try:
        return date(int(match.group(1)), int(match.group(2)), int(match.group(3)))
    except ValueError:
        return None


def image_date(path: Path, tags: Mapping[str, str]) -> date | None:
    """Acquisition date from the file name, falling back to GeoTIFF tags."""

    parsed = _parse_date_text(path.stem)
    if parsed is not None:
        return parsed
    for key in _DATE_TAGS:
        value = tags.get(key)
        if not value:
            continue
        if key == "system:time_start":
            try:
                millis = int(float(value))
            except ValueError:
                continue
            return datetime.fromtimestamp(millis / 1000.0, tz=timezone.utc).date()
        parsed = _parse_date_text(value)
        if parsed is not None:
            return parsed
    return None


class LocalImageCollection:
    """Dated alert rasters in a directory, filtered the way an image collection is.

    Filters return new collections; the original is never narrowed in place.
    """

    def __init__(self, images: Iterable[CollectionImage], *, root: Path | None = None) -> None:
        self._images = tuple(sorted(images, key=lambda im: (im.acquired, im.path.as_posix())))
        self._root = root

    @classmethod
    def from_directory(cls, root: Path) -> "LocalImageCollection":
        if not root.is_dir():
            raise AssetNotFoundError(f"RADD collection directory not found: {root}")

        images: list[CollectionImage] = []
        for path in sorted(root.rglob("*.tif")):
            try:
                with rasterio.open(path) as ds:
                    acquired = image_date(path, ds.tags())
                    footprint = footprint_wgs84(ds)
            except RasterioIOError as exc:
                raise RuntimeError(f"Failed to read RADD image {path}: {exc}") from exc
            if acquired is None:
                LOGGER.warning("Skipping RADD image without a parseable date: %s", path)
                continue
            images.append(CollectionImage(path=path, acquired=acquired, footprint=footprint))

        if not images:
            raise AssetNotFoundError(f"No dated RADD images found under {root}")
        return cls(images, root=root)

    def __len__(self) -> int:
        return len(self._images)

    def __iter__(self):
        return iter(self._images)

    @property
    def paths(self) -> list[Path]:
        return [im.path for im in self._images]

    def filter_bounds(self, aoi: AreaOfInterest) -> "LocalImageCollection":
        geom = aoi.shape
        return LocalImageCollection(
            (im for im in self._images if box(*im.footprint).intersects(geom)), root=self._root
        )

    def filter_date(self, start: date, end: date) -> "LocalImageCollection":
        """Keep images acquired in ``[start, end]`` (both ends inclusive)."""
        return LocalImageCollection(
            (im for im in self._images if start <= im.acquired <= end), root=self._root
        )


@dataclass(frozen=True)
class RaddExtraction:
    layer: RasterLayer
    image_paths: list[Path]

    def inputs(self) -> list[InputEntry]:
        return [
            entry_for_file(path, dataset="radd", item_id=path.stem, layer=ALERT_BAND)
            for path in self.image_paths
        ]


def extract_radd_alerts(
    aoi: AreaOfInterest,
    *,
    collection: LocalImageCollection,
    start_year: int,
    end_year: int,
) -> RaddExtraction:
    """Per-pixel max of the RADD ``Alert`` band over the window, clipped to the AOI."""

    filtered = collection.filter_bounds(aoi).filter_date(date(start_year, 1, 1), date(end_year, 12, 31))
    if len(filtered) == 0:
        raise EmptyCollectionError(
            f"No RADD images intersect AOI {aoi.aoi_id} between {start_year}-01-01 and {end_year}-12-31"
        )
    LOGGER.info("RADD images for AOI %s: %s of %s", aoi.aoi_id, len(filtered), len(collection))

    alerts = read_aoi_mosaic(filtered.paths, aoi, band=ALERT_BAND, name=ALERT_BAND, method="max")
    return RaddExtraction(layer=rename(clip(alerts, aoi), OUTPUT_BAND), image_paths=filtered.paths)
