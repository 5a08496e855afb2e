from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from pyproj import Geod
from shapely.geometry import mapping, shape
from shapely.geometry.base import BaseGeometry
from shapely.ops import unary_union

from integrated_alert.errors import AssetNotFoundError


@dataclass(frozen=True)
class AreaOfInterest:
    """Boundary used both as spatial filter and as reducer region.

    ``geometry`` is a GeoJSON geometry mapping in EPSG:4326; a feature
    collection is dissolved into the union of its features on load.
    """

    aoi_id: str
    geometry: dict[str, Any]
    source: str = ""

    @property
    def shape(self) -> BaseGeometry:
        return shape(self.geometry)

    @property
    def bbox(self) -> tuple[float, float, float, float]:
        return tuple(float(v) for v in self.shape.bounds)  # type: ignore[return-value]

    @property
    def centroid(self) -> tuple[float, float]:
        """(lon, lat) of the geometry centroid."""
        c = self.shape.centroid
        return float(c.x), float(c.y)

    def geodesic_area_ha(self) -> float:
        geod = Geod(ellps="WGS84")
        area_m2, _ = geod.geometry_area_perimeter(self.shape)
        return abs(area_m2) / 10000.0


def geometry_from_geojson(data: dict[str, Any]) -> dict[str, Any]:
    if data.get("type") == "FeatureCollection":
        geometries = [
            shape(feat["geometry"])
            for feat in data.get("features", [])
            if isinstance(feat, dict) and feat.get("geometry")
        ]
        if not geometries:
            raise ValueError("AOI GeoJSON FeatureCollection has no features")
        return mapping(unary_union(geometries))
    if data.get("type") == "Feature":
        if not data.get("geometry"):
            raise ValueError("AOI GeoJSON Feature has no geometry")
        return dict(data["geometry"])
    if "type" in data and "coordinates" in data:
        return dict(data)
    if data.get("type") == "GeometryCollection":
        return mapping(shape(data))
    raise ValueError("Unsupported AOI GeoJSON")


def resolve_asset_path(asset: str | Path, *, assets_root: Path | None = None, suffix: str = ".geojson") -> Path:
    """Map an asset identifier to a local file.

    An existing file is returned as-is. Otherwise ``asset`` is treated as a
    platform-style identifier (``projects/<owner>/assets/<name>``) and looked up
    under ``assets_root``, ``<name>.geojson`` first. Directories never match.
    """

    candidate = Path(asset)
    if candidate.is_file():
        return candidate

    if assets_root is not None:
        rel = str(asset).strip().strip("/")
        for path in (assets_root / f"{rel}{suffix}", assets_root / rel):
            if path.is_file():
                return path

    raise AssetNotFoundError(f"Asset not found: {asset}")


def load_aoi(asset: str | Path, *, assets_root: Path | None = None, aoi_id: str | None = None) -> AreaOfInterest:
    path = resolve_asset_path(asset, assets_root=assets_root)
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ValueError(f"AOI is not valid GeoJSON: {path}") from exc
    except OSError as exc:
        raise AssetNotFoundError(f"AOI asset {asset} could not be read: {exc}") from exc

    geometry = geometry_from_geojson(data)
    if shape(geometry).is_empty:
        raise ValueError(f"AOI geometry is empty: {path}")

    if aoi_id is None:
        aoi_id = Path(str(asset).rstrip("/")).stem
    return AreaOfInterest(aoi_id=aoi_id, geometry=geometry, source=str(path))
