"""Earth Engine rendition of the integrated alert graph.

Every layer is an ``ee`` object evaluated lazily on the platform; only the
three reductions and the map tiles block on a server round trip.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping

import ee

from integrated_alert.config import AlertConfig
from integrated_alert.deps.hansen_tiles import HANSEN_BASE_YEAR
from integrated_alert.errors import AssetNotFoundError, ReductionTooLargeError
from integrated_alert.geo.area import AreaEstimate
from integrated_alert.reports.map_layers import MapLayerRegistry, TileLayer
from integrated_alert.reports.reporter import BOUNDARY_STYLE, register_alert_layers


LOGGER = logging.getLogger(__name__)

HANSEN_ASSET = "UMD/hansen/global_forest_change_2023_v1_11"
RADD_ASSET = "projects/radar-wur/raddalert/v1"
LOSSYEAR_BAND = "lossyear"
ALERT_BAND = "Alert"
OUTPUT_BAND = "deforestation"


@dataclass(frozen=True)
class EarthEngineLayers:
    aoi: Any
    hansen_loss: Any
    hansen_binary: Any
    radd_alerts: Any
    radd_binary: Any
    integrated: Any


def _platform_error(exc: Exception) -> RuntimeError:
    message = str(exc)
    lowered = message.lower()
    if "not found" in lowered or "does not exist" in lowered:
        return AssetNotFoundError(message)
    if "too many pixels" in lowered:
        return ReductionTooLargeError(message)
    return RuntimeError(f"Earth Engine request failed: {message}")


def initialize(project: str | None = None) -> None:
    try:
        ee.Initialize(project=project)
    except ee.EEException as exc:
        raise RuntimeError(f"Earth Engine initialization failed: {exc}") from exc


def load_aoi(asset_id: str) -> Any:
    return ee.FeatureCollection(asset_id)


def hansen_loss_image(aoi: Any, *, start_year: int) -> Any:
    lossyear = ee.Image(HANSEN_ASSET).select(LOSSYEAR_BAND)
    return (
        lossyear.updateMask(lossyear.gte(start_year - HANSEN_BASE_YEAR))
        .clip(aoi)
        .rename(OUTPUT_BAND)
    )


def radd_alert_image(aoi: Any, *, start_year: int, end_year: int) -> Any:
    # filterDate's end is exclusive; advance one day so Dec 31 is part of the window.
    start = ee.Date.fromYMD(start_year, 1, 1)
    end = ee.Date.fromYMD(end_year, 12, 31).advance(1, "day")
    return (
        ee.ImageCollection(RADD_ASSET)
        .filterBounds(aoi)
        .filterDate(start, end)
        .select(ALERT_BAND)
        .max()
        .clip(aoi)
        .rename(OUTPUT_BAND)
    )


def binarize(image: Any) -> Any:
    return image.gt(0).selfMask()


def build_layers(aoi: Any, *, start_year: int, end_year: int) -> EarthEngineLayers:
    hansen_loss = hansen_loss_image(aoi, start_year=start_year)
    radd_alerts = radd_alert_image(aoi, start_year=start_year, end_year=end_year)
    hansen_binary = binarize(hansen_loss)
    radd_binary = binarize(radd_alerts)
    integrated = ee.ImageCollection([hansen_binary, radd_binary]).max().clip(aoi)
    return EarthEngineLayers(
        aoi=aoi,
        hansen_loss=hansen_loss,
        hansen_binary=hansen_binary,
        radd_alerts=radd_alerts,
        radd_binary=radd_binary,
        integrated=integrated,
    )


def reduce_area_ha(
    mask: Any,
    aoi: Any,
    *,
    scale_m: float,
    max_pixels: int = int(1e13),
    label: str = OUTPUT_BAND,
) -> AreaEstimate:
    pixel_area = ee.Image.pixelArea().divide(10000)
    stat = mask.multiply(pixel_area).reduceRegion(
        reducer=ee.Reducer.sum(),
        geometry=aoi.geometry(),
        scale=scale_m,
        maxPixels=max_pixels,
    ).get(OUTPUT_BAND)
    try:
        value = stat.getInfo()
    except ee.EEException as exc:
        raise _platform_error(exc) from exc
    LOGGER.debug("Earth Engine reduction %s at %sm: %s", label, scale_m, value)
    return AreaEstimate(label=label, hectares=float(value or 0.0), scale_m=float(scale_m))


class EarthEngineMap:
    """Adapts ``ee`` objects to a :class:`MapLayerRegistry` via map tile URLs."""

    def __init__(self, registry: MapLayerRegistry) -> None:
        self.registry = registry

    def center_object(self, aoi: Any, zoom: float) -> None:
        try:
            lon, lat = aoi.geometry().centroid(1).coordinates().getInfo()
        except ee.EEException as exc:
            raise _platform_error(exc) from exc
        self.registry.set_center(lon, lat, zoom)

    def add_layer(self, image: Any, vis_params: Mapping[str, Any] | None, name: str) -> None:
        vis = dict(vis_params or {})
        try:
            map_id = image.getMapId(vis)
        except ee.EEException as exc:
            raise _platform_error(exc) from exc
        url = map_id["tile_fetcher"].url_format
        self.registry.add_layer(TileLayer(url, attribution="Google Earth Engine"), vis, name)


def aoi_outline(aoi: Any) -> Any:
    return ee.FeatureCollection(aoi).style(**BOUNDARY_STYLE)


@dataclass(frozen=True)
class EarthEngineRun:
    aoi_id: str
    asset_id: str
    start_year: int
    end_year: int
    layers: EarthEngineLayers
    hansen: AreaEstimate
    radd: AreaEstimate
    integrated: AreaEstimate


def run_earth_engine(config: AlertConfig) -> EarthEngineRun:
    """Build the alert graph on Earth Engine and evaluate the three area reductions."""

    initialize(config.ee_project)
    aoi = load_aoi(config.aoi)
    layers = build_layers(aoi, start_year=config.start_year, end_year=config.end_year)

    hansen = reduce_area_ha(
        layers.hansen_binary, aoi, scale_m=config.hansen_scale_m, max_pixels=config.max_pixels, label="hansen"
    )
    radd = reduce_area_ha(
        layers.radd_binary, aoi, scale_m=config.radd_scale_m, max_pixels=config.max_pixels, label="radd"
    )
    integrated = reduce_area_ha(
        layers.integrated, aoi, scale_m=config.merged_scale_m, max_pixels=config.max_pixels, label="integrated"
    )
    LOGGER.info(
        "AOI %s: hansen=%.4f ha radd=%.4f ha integrated=%.4f ha",
        config.aoi,
        hansen.hectares,
        radd.hectares,
        integrated.hectares,
    )
    return EarthEngineRun(
        aoi_id=config.aoi.rstrip("/").rsplit("/", 1)[-1],
        asset_id=config.aoi,
        start_year=config.start_year,
        end_year=config.end_year,
        layers=layers,
        hansen=hansen,
        radd=radd,
        integrated=integrated,
    )


def register_earth_engine_layers(run: EarthEngineRun, registry: MapLayerRegistry, *, zoom: float) -> None:
    register_alert_layers(
        EarthEngineMap(registry),
        aoi=run.layers.aoi,
        aoi_outline=aoi_outline(run.layers.aoi),
        hansen_loss=run.layers.hansen_loss,
        radd_binary=run.layers.radd_binary,
        integrated=run.layers.integrated,
        start_year=run.start_year,
        end_year=run.end_year,
        zoom=zoom,
    )
