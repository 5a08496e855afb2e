from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np
from pyproj import Geod
from rasterio import Affine
from rasterio.crs import CRS

from integrated_alert.errors import ReductionTooLargeError
from integrated_alert.geo.aoi import AreaOfInterest
from integrated_alert.geo.raster import RasterLayer, aoi_pixel_mask, grid_at_scale, pixel_size_for_scale, resample_to


LOGGER = logging.getLogger(__name__)

DEFAULT_MAX_PIXELS = int(1e13)
M2_PER_HA = 10000.0


@dataclass(frozen=True)
class AreaEstimate:
    label: str
    hectares: float
    scale_m: float
    pixel_count: int | None = None


def _pixel_area_ha_projected(transform: Affine) -> float:
    return abs(transform.a * transform.e) / M2_PER_HA


def _pixel_area_ha_geographic(transform: Affine, shape: tuple[int, int]) -> np.ndarray:
    height, width = shape
    if transform.b != 0 or transform.d != 0:
        raise ValueError("Rotated geographic grids are not supported for pixel area")

    geod = Geod(ellps="WGS84")
    row_area = np.empty(height, dtype=np.float64)
    for row in range(height):
        # North-up: every pixel in a row spans the same latitudes.
        x0, y0 = transform * (0, row)
        x1, y1 = transform * (1, row + 1)
        area, _ = geod.polygon_area_perimeter([x0, x1, x1, x0], [y0, y0, y1, y1])
        row_area[row] = abs(area) / M2_PER_HA
    return np.repeat(row_area[:, np.newaxis], width, axis=1)


def pixel_area_ha(*, transform: Affine, crs: CRS, shape: tuple[int, int]) -> np.ndarray:
    """Ground area of every pixel of a grid, in hectares."""

    crs = CRS.from_user_input(crs)
    if crs.is_projected:
        return np.full(shape, _pixel_area_ha_projected(transform), dtype=np.float64)
    return _pixel_area_ha_geographic(transform, shape)


def _matches_scale(layer: RasterLayer, step: float) -> bool:
    xres, yres = layer.resolution
    return abs(xres - step) <= step * 1e-3 and abs(yres - step) <= step * 1e-3


def reduce_area_ha(
    mask: RasterLayer,
    aoi: AreaOfInterest,
    *,
    scale_m: float,
    max_pixels: int = DEFAULT_MAX_PIXELS,
    label: str | None = None,
) -> AreaEstimate:
    """Sum ``mask * pixel_area_ha`` over the AOI at ``scale_m``.

    The mask is resampled (nearest) when its native pixel size differs from
    the requested scale. Only pixels whose centre falls inside the AOI count
    toward both the sum and the ``max_pixels`` bound.
    """

    step = pixel_size_for_scale(mask.crs, scale_m)
    if not _matches_scale(mask, step):
        transform, shape = grid_at_scale(mask.bounds, crs=mask.crs, scale_m=scale_m)
        mask = resample_to(mask, transform=transform, crs=mask.crs, shape=shape)

    inside = aoi_pixel_mask(aoi, transform=mask.transform, crs=mask.crs, shape=mask.shape)
    region_pixels = int(np.count_nonzero(inside))
    if region_pixels > max_pixels:
        raise ReductionTooLargeError(
            f"Too many pixels in the region: {region_pixels} > maxPixels={max_pixels}"
        )

    contributing = inside & mask.present
    values = np.ma.filled(mask.values, 0).astype(np.float64)
    areas = pixel_area_ha(transform=mask.transform, crs=mask.crs, shape=mask.shape)
    hectares = float(np.sum(values[contributing] * areas[contributing], dtype=np.float64))

    LOGGER.debug(
        "reduce %s at %sm: region_pixels=%s contributing=%s ha=%.6f",
        label or mask.name,
        scale_m,
        region_pixels,
        int(np.count_nonzero(contributing)),
        hectares,
    )
    return AreaEstimate(
        label=label or mask.name,
        hectares=hectares,
        scale_m=float(scale_m),
        pixel_count=int(np.count_nonzero(contributing)),
    )
