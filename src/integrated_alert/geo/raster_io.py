from __future__ import annotations

import math
from contextlib import ExitStack
from pathlib import Path
from typing import Sequence

import numpy as np
import rasterio
from rasterio import Affine
from rasterio.enums import Resampling
from rasterio.errors import RasterioIOError
from rasterio.merge import merge
from rasterio.vrt import WarpedVRT
from rasterio.warp import transform_bounds
from shapely.geometry import box

from integrated_alert.geo.aoi import AreaOfInterest
from integrated_alert.geo.raster import RasterLayer


def select_band_index(dataset: rasterio.io.DatasetReader, band: str | int | None) -> int:
    """1-based index of ``band``, matched against band descriptions; falls back to band 1."""

    if isinstance(band, int):
        if not 1 <= band <= dataset.count:
            raise ValueError(f"Band {band} out of range for {dataset.name} ({dataset.count} bands)")
        return band
    if band:
        descriptions = list(dataset.descriptions or [])
        for idx, desc in enumerate(descriptions, start=1):
            if desc and str(desc).strip().lower() == band.lower():
                return idx
    return 1


def footprint_wgs84(dataset: rasterio.io.DatasetReader) -> tuple[float, float, float, float]:
    if dataset.crs is None:
        raise RuntimeError(f"Raster dataset has no CRS: {dataset.name}")
    return transform_bounds(dataset.crs, "EPSG:4326", *dataset.bounds)


def intersects_aoi(path: Path, aoi: AreaOfInterest) -> bool:
    try:
        with rasterio.open(path) as ds:
            return box(*footprint_wgs84(ds)).intersects(aoi.shape)
    except RasterioIOError as exc:
        raise RuntimeError(f"Failed to read raster {path}: {exc}") from exc


def _nodata_sentinel(dtype: np.dtype) -> float | int:
    dtype = np.dtype(dtype)
    if np.issubdtype(dtype, np.floating):
        return float("nan")
    return int(np.iinfo(dtype).max)


def _snapped_bounds(
    reference: rasterio.io.DatasetReader,
    aoi: AreaOfInterest,
) -> tuple[float, float, float, float]:
    west, south, east, north = transform_bounds("EPSG:4326", reference.crs, *aoi.bbox)
    xres, yres = reference.res
    left, top = reference.bounds.left, reference.bounds.top

    # Expand outward onto the reference pixel grid so no resampling shift occurs.
    west = left + math.floor((west - left) / xres + 1e-9) * xres
    east = left + math.ceil((east - left) / xres - 1e-9) * xres
    north = top - math.floor((top - north) / yres + 1e-9) * yres
    south = top - math.ceil((top - south) / yres - 1e-9) * yres
    if east <= west:
        east = west + xres
    if north <= south:
        south = north - yres
    return west, south, east, north


def read_aoi_mosaic(
    paths: Sequence[Path],
    aoi: AreaOfInterest,
    *,
    band: str | int | None,
    name: str,
    method: str = "first",
) -> RasterLayer:
    """Mosaic ``band`` of several rasters over the AOI bounding box.

    The output lives on the grid of the first raster; rasters in another CRS
    are warped on the fly (nearest). ``method`` is passed to
    :func:`rasterio.merge.merge`, so ``"max"`` gives a per-pixel maximum.
    """

    if not paths:
        raise ValueError("read_aoi_mosaic needs at least one raster")

    try:
        with ExitStack() as stack:
            datasets = [stack.enter_context(rasterio.open(p)) for p in paths]
            reference = datasets[0]
            if reference.crs is None:
                raise RuntimeError(f"Raster dataset has no CRS: {reference.name}")

            band_index = select_band_index(reference, band)
            sources = []
            for ds in datasets:
                if ds.crs is None:
                    raise RuntimeError(f"Raster dataset has no CRS: {ds.name}")
                if select_band_index(ds, band) != band_index:
                    raise RuntimeError(f"Band {band!r} is not at the same index in {ds.name}")
                if ds.crs != reference.crs:
                    ds = stack.enter_context(
                        WarpedVRT(ds, crs=reference.crs, resampling=Resampling.nearest)
                    )
                sources.append(ds)

            dtype = np.dtype(reference.dtypes[band_index - 1])
            nodata = _nodata_sentinel(dtype)
            data, transform = merge(
                sources,
                bounds=_snapped_bounds(reference, aoi),
                res=reference.res,
                indexes=[band_index],
                nodata=nodata,
                method=method,
            )
            crs = reference.crs
    except RasterioIOError as exc:
        raise RuntimeError(f"Failed to read raster: {exc}") from exc

    values = data[0]
    if np.issubdtype(values.dtype, np.floating):
        masked = np.ma.masked_invalid(values)
    else:
        masked = np.ma.MaskedArray(values, mask=values == nodata)
    return RasterLayer(name=name, values=masked, transform=Affine(*transform[:6]), crs=crs)
