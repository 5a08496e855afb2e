from __future__ import annotations

import logging
from dataclasses import dataclass

from integrated_alert.config import AlertConfig
from integrated_alert.deps.hansen_acquire import ensure_hansen_tiles_present
from integrated_alert.deps.hansen_tiles import hansen_tile_ids_for_aoi
from integrated_alert.deps.provenance import InputEntry
from integrated_alert.geo.aoi import AreaOfInterest, load_aoi
from integrated_alert.geo.area import AreaEstimate, reduce_area_ha
from integrated_alert.geo.raster import RasterLayer, binarize, merge_max
from integrated_alert.tasks.hansen_loss import extract_hansen_loss
from integrated_alert.tasks.radd_alerts import LocalImageCollection, extract_radd_alerts


LOGGER = logging.getLogger(__name__)

INTEGRATED_BAND = "deforestation"


@dataclass(frozen=True)
class AlertLayers:
    hansen_loss: RasterLayer
    hansen_binary: RasterLayer
    radd_alerts: RasterLayer
    radd_binary: RasterLayer
    integrated: RasterLayer


@dataclass(frozen=True)
class AlertAreas:
    hansen: AreaEstimate
    radd: AreaEstimate
    integrated: AreaEstimate


@dataclass(frozen=True)
class IntegratedAlertResult:
    aoi: AreaOfInterest
    start_year: int
    end_year: int
    layers: AlertLayers
    areas: AlertAreas
    inputs: list[InputEntry]


def combine_alerts(hansen_loss: RasterLayer, radd_alerts: RasterLayer, aoi: AreaOfInterest) -> AlertLayers:
    """Binarize both sources and union them into the integrated alert layer."""

    hansen_binary = binarize(hansen_loss)
    radd_binary = binarize(radd_alerts)
    integrated = merge_max([hansen_binary, radd_binary], aoi=aoi, name=INTEGRATED_BAND)
    return AlertLayers(
        hansen_loss=hansen_loss,
        hansen_binary=hansen_binary,
        radd_alerts=radd_alerts,
        radd_binary=radd_binary,
        integrated=integrated,
    )


def compute_alert_areas(
    layers: AlertLayers,
    aoi: AreaOfInterest,
    *,
    hansen_scale_m: float = 30,
    radd_scale_m: float = 10,
    merged_scale_m: float = 10,
    max_pixels: int = int(1e13),
) -> AlertAreas:
    """Each mask is reduced at its own native scale; the merged layer at the finer one."""

    return AlertAreas(
        hansen=reduce_area_ha(
            layers.hansen_binary, aoi, scale_m=hansen_scale_m, max_pixels=max_pixels, label="hansen"
        ),
        radd=reduce_area_ha(
            layers.radd_binary, aoi, scale_m=radd_scale_m, max_pixels=max_pixels, label="radd"
        ),
        integrated=reduce_area_ha(
            layers.integrated, aoi, scale_m=merged_scale_m, max_pixels=max_pixels, label="integrated"
        ),
    )


def run_integrated_alert(config: AlertConfig) -> IntegratedAlertResult:
    if config.hansen_tile_dir is None or config.radd_dir is None:
        raise RuntimeError("The local backend needs both a Hansen tile directory and a RADD directory")

    aoi = load_aoi(config.aoi, assets_root=config.assets_root)

    inputs: list[InputEntry] = []
    if config.download_hansen:
        inputs.extend(
            ensure_hansen_tiles_present(
                hansen_tile_ids_for_aoi(aoi),
                tile_dir=config.hansen_tile_dir,
                download=True,
            )
        )

    hansen = extract_hansen_loss(aoi, tile_dir=config.hansen_tile_dir, start_year=config.start_year)
    radd = extract_radd_alerts(
        aoi,
        collection=LocalImageCollection.from_directory(config.radd_dir),
        start_year=config.start_year,
        end_year=config.end_year,
    )

    layers = combine_alerts(hansen.layer, radd.layer, aoi)
    areas = compute_alert_areas(
        layers,
        aoi,
        hansen_scale_m=config.hansen_scale_m,
        radd_scale_m=config.radd_scale_m,
        merged_scale_m=config.merged_scale_m,
        max_pixels=config.max_pixels,
    )
    LOGGER.info(
        "AOI %s: hansen=%.4f ha radd=%.4f ha integrated=%.4f ha",
        aoi.aoi_id,
        areas.hansen.hectares,
        areas.radd.hectares,
        areas.integrated.hectares,
    )

    if not config.download_hansen:
        inputs.extend(hansen.inputs())
    inputs.extend(radd.inputs())

    return IntegratedAlertResult(
        aoi=aoi,
        start_year=config.start_year,
        end_year=config.end_year,
        layers=layers,
        areas=areas,
        inputs=inputs,
    )
