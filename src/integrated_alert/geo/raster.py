from __future__ import annotations

import math
from dataclasses import dataclass, replace
from typing import Any, Sequence

import numpy as np
from rasterio import Affine
from rasterio.crs import CRS
from rasterio.enums import Resampling
from rasterio.errors import CRSError
from rasterio.features import geometry_mask
from rasterio.transform import array_bounds
from rasterio.warp import calculate_default_transform, reproject, transform_bounds, transform_geom

from integrated_alert.geo.aoi import AreaOfInterest


# Nominal metres per degree at the equator, used for scales on geographic grids.
METERS_PER_DEGREE = 111319.49079327357


@dataclass(frozen=True)
class RasterLayer:
    """Single-band grid; masked pixels are absent.

    Layers are values: every operation in this module returns a new layer and
    leaves its inputs untouched.
    """

    name: str
    values: np.ma.MaskedArray
    transform: Affine
    crs: CRS

    def __post_init__(self) -> None:
        values = self.values
        if values.ndim != 2:
            raise ValueError(f"RasterLayer expects a 2-D array, got shape {values.shape}")
        data = np.array(np.ma.getdata(values), copy=True)
        mask = np.array(np.ma.getmaskarray(values), copy=True)
        data.flags.writeable = False
        mask.flags.writeable = False
        object.__setattr__(self, "values", np.ma.MaskedArray(data, mask=mask))
        object.__setattr__(self, "crs", CRS.from_user_input(self.crs))

    @property
    def shape(self) -> tuple[int, int]:
        return int(self.values.shape[0]), int(self.values.shape[1])

    @property
    def resolution(self) -> tuple[float, float]:
        return abs(self.transform.a), abs(self.transform.e)

    @property
    def bounds(self) -> tuple[float, float, float, float]:
        """(west, south, east, north) in the layer CRS."""
        height, width = self.shape
        return array_bounds(height, width, self.transform)

    @property
    def present(self) -> np.ndarray:
        return ~np.ma.getmaskarray(self.values)

    def count_present(self) -> int:
        return int(np.count_nonzero(self.present))


def rename(layer: RasterLayer, name: str) -> RasterLayer:
    return replace(layer, name=name)


def update_mask(layer: RasterLayer, keep: np.ndarray) -> RasterLayer:
    """Mask out every pixel where ``keep`` is false; already-masked pixels stay masked."""

    keep = np.asarray(keep, dtype=bool)
    if keep.shape != layer.shape:
        raise ValueError(f"Mask shape {keep.shape} does not match layer shape {layer.shape}")
    mask = np.ma.getmaskarray(layer.values) | ~keep
    return replace(layer, values=np.ma.MaskedArray(np.ma.getdata(layer.values), mask=mask))


def aoi_pixel_mask(aoi: AreaOfInterest, *, transform: Affine, crs: CRS, shape: tuple[int, int]) -> np.ndarray:
    """Boolean grid, true where the pixel centre falls inside the AOI."""

    geom = transform_geom("EPSG:4326", crs, aoi.geometry)
    return geometry_mask([geom], out_shape=shape, transform=transform, invert=True)


def clip(layer: RasterLayer, aoi: AreaOfInterest) -> RasterLayer:
    inside = aoi_pixel_mask(aoi, transform=layer.transform, crs=layer.crs, shape=layer.shape)
    return update_mask(layer, inside)


def binarize(layer: RasterLayer) -> RasterLayer:
    """Threshold at ``> 0`` and self-mask: failing pixels become absent, not 0."""

    filled = np.ma.filled(layer.values, 0)
    hit = layer.present & (filled > 0)
    data = hit.astype(np.uint8)
    return replace(layer, values=np.ma.MaskedArray(data, mask=~hit))


def resample_to(
    layer: RasterLayer,
    *,
    transform: Affine,
    crs: CRS,
    shape: tuple[int, int],
) -> RasterLayer:
    """Nearest-neighbour resample onto another grid; pixels with no source are masked."""

    if transform == layer.transform and CRS.from_user_input(crs) == layer.crs and shape == layer.shape:
        return layer

    src_values = np.ma.filled(layer.values, 0)
    dst_values = np.zeros(shape, dtype=src_values.dtype)
    dst_valid = np.zeros(shape, dtype=np.uint8)

    reproject(
        source=src_values,
        destination=dst_values,
        src_transform=layer.transform,
        src_crs=layer.crs,
        dst_transform=transform,
        dst_crs=crs,
        resampling=Resampling.nearest,
    )
    reproject(
        source=layer.present.astype(np.uint8),
        destination=dst_valid,
        src_transform=layer.transform,
        src_crs=layer.crs,
        dst_transform=transform,
        dst_crs=crs,
        resampling=Resampling.nearest,
    )

    return RasterLayer(
        name=layer.name,
        values=np.ma.MaskedArray(dst_values, mask=dst_valid == 0),
        transform=transform,
        crs=crs,
    )


def reproject_layer(layer: RasterLayer, dst_crs: Any) -> RasterLayer:
    dst_crs = CRS.from_user_input(dst_crs)
    if dst_crs == layer.crs:
        return layer
    height, width = layer.shape
    dst_transform, dst_width, dst_height = calculate_default_transform(
        layer.crs, dst_crs, width, height, *layer.bounds
    )
    return resample_to(layer, transform=dst_transform, crs=dst_crs, shape=(dst_height, dst_width))


def grid_at_scale(
    bounds: tuple[float, float, float, float],
    *,
    crs: CRS,
    scale_m: float,
) -> tuple[Affine, tuple[int, int]]:
    """North-up grid covering ``bounds`` with ``scale_m`` sized pixels."""

    step = pixel_size_for_scale(crs, scale_m)
    west, south, east, north = bounds
    width = max(int(math.ceil((east - west) / step - 1e-9)), 1)
    height = max(int(math.ceil((north - south) / step - 1e-9)), 1)
    return Affine(step, 0.0, west, 0.0, -step, north), (height, width)


def pixel_size_for_scale(crs: CRS, scale_m: float) -> float:
    """Convert a nominal scale in metres into CRS units."""

    crs = CRS.from_user_input(crs)
    if crs.is_geographic:
        return float(scale_m) / METERS_PER_DEGREE
    try:
        factor = float(crs.linear_units_factor[1])
    except CRSError:
        factor = 1.0
    return float(scale_m) / factor


def _finest(layers: Sequence[RasterLayer]) -> RasterLayer:
    def _area_m(layer: RasterLayer) -> float:
        xres, yres = layer.resolution
        unit = pixel_size_for_scale(layer.crs, 1.0)
        return (xres / unit) * (yres / unit)

    return min(layers, key=_area_m)


def _union_grid(layers: Sequence[RasterLayer], reference: RasterLayer) -> tuple[Affine, tuple[int, int]]:
    xres, yres = reference.resolution
    ref_west, _, _, ref_north = reference.bounds

    boxes = [transform_bounds(layer.crs, reference.crs, *layer.bounds) for layer in layers]
    west = min(b[0] for b in boxes)
    south = min(b[1] for b in boxes)
    east = max(b[2] for b in boxes)
    north = max(b[3] for b in boxes)

    # Snap outward onto the reference grid so its pixels are reused unchanged.
    west = ref_west - math.ceil((ref_west - west) / xres - 1e-9) * xres
    north = ref_north + math.ceil((north - ref_north) / yres - 1e-9) * yres
    width = max(int(math.ceil((east - west) / xres - 1e-9)), 1)
    height = max(int(math.ceil((north - south) / yres - 1e-9)), 1)
    return Affine(xres, 0.0, west, 0.0, -yres, north), (height, width)


def merge_max(
    layers: Sequence[RasterLayer],
    *,
    aoi: AreaOfInterest | None = None,
    name: str | None = None,
) -> RasterLayer:
    """Pixel-wise maximum over several layers.

    Inputs are resampled onto the finest input grid. Absent pixels contribute
    nothing; an output pixel is absent only when every input is absent there.
    """

    if not layers:
        raise ValueError("merge_max needs at least one layer")

    reference = _finest(layers)
    transform, shape = _union_grid(layers, reference)

    stacked = [
        resample_to(layer, transform=transform, crs=reference.crs, shape=shape) for layer in layers
    ]
    dtype = np.result_type(*[layer.values.dtype for layer in stacked])
    present = np.zeros(shape, dtype=bool)
    out = np.zeros(shape, dtype=dtype)
    for layer in stacked:
        values = np.ma.filled(layer.values, 0).astype(dtype, copy=False)
        out = np.where(layer.present & (~present | (values > out)), values, out)
        present |= layer.present

    merged = RasterLayer(
        name=name or reference.name,
        values=np.ma.MaskedArray(out, mask=~present),
        transform=transform,
        crs=reference.crs,
    )
    if aoi is not None:
        merged = clip(merged, aoi)
    return merged
