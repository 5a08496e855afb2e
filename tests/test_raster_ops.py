from __future__ import annotations

import numpy as np
import pytest
from pyproj import Transformer
from rasterio import Affine

from integrated_alert.geo.aoi import AreaOfInterest
from integrated_alert.geo.raster import (
    RasterLayer,
    binarize,
    clip,
    grid_at_scale,
    merge_max,
    pixel_size_for_scale,
    resample_to,
    update_mask,
)


UTM = "EPSG:32633"


def _utm_aoi(west: float, south: float, east: float, north: float) -> AreaOfInterest:
    to_wgs84 = Transformer.from_crs(UTM, "EPSG:4326", always_xy=True)
    ring = [to_wgs84.transform(x, y) for x, y in [(west, south), (east, south), (east, north), (west, north)]]
    ring.append(ring[0])
    return AreaOfInterest(
        aoi_id="utm-box",
        geometry={"type": "Polygon", "coordinates": [[list(p) for p in ring]]},
    )


def _layer(data: np.ndarray, *, res: float, west: float = 500000.0, north: float = 5000000.0, mask=None) -> RasterLayer:
    values = np.ma.MaskedArray(data, mask=np.zeros(data.shape, dtype=bool) if mask is None else mask)
    return RasterLayer(name="test", values=values, transform=Affine(res, 0.0, west, 0.0, -res, north), crs=UTM)


def test_binarize_thresholds_and_self_masks() -> None:
    layer = _layer(np.array([[0, 3], [1, 0]], dtype=np.uint8), res=10.0)
    binary = binarize(layer)

    assert binary.values.dtype == np.uint8
    assert np.ma.getmaskarray(binary.values).tolist() == [[True, False], [False, True]]
    assert np.ma.filled(binary.values, 0).tolist() == [[0, 1], [1, 0]]


def test_binarize_is_idempotent() -> None:
    data = np.array([[0, 5, 2], [7, 0, 1]], dtype=np.uint16)
    mask = np.array([[False, False, True], [False, False, False]])
    once = binarize(_layer(data, res=10.0, mask=mask))
    twice = binarize(once)

    assert np.array_equal(np.ma.getmaskarray(once.values), np.ma.getmaskarray(twice.values))
    assert np.array_equal(np.ma.filled(once.values, 0), np.ma.filled(twice.values, 0))


def test_update_mask_does_not_touch_input() -> None:
    layer = _layer(np.ones((2, 2), dtype=np.uint8), res=10.0)
    updated = update_mask(layer, np.array([[True, False], [True, True]]))

    assert layer.count_present() == 4
    assert updated.count_present() == 3


def test_layer_arrays_are_read_only() -> None:
    source = np.array([[0, 3], [1, 0]], dtype=np.uint8)
    layer = binarize(_layer(source, res=10.0))

    with pytest.raises(ValueError):
        layer.values[0, 1] = 0
    with pytest.raises(ValueError):
        np.ma.getdata(layer.values)[0, 1] = 0
    assert layer.count_present() == 2

    source[0, 1] = 0
    assert _layer(source, res=10.0).values.flags.writeable is False


def test_clip_uses_pixel_centres() -> None:
    layer = _layer(np.ones((10, 10), dtype=np.uint8), res=10.0)
    # Covers columns 2..5 and rows 3..6 exactly.
    aoi = _utm_aoi(500020.0, 4999930.0, 500060.0, 4999970.0)

    clipped = clip(layer, aoi)

    assert clipped.count_present() == 16
    present_rows, present_cols = np.nonzero(clipped.present)
    assert set(present_rows.tolist()) == {3, 4, 5, 6}
    assert set(present_cols.tolist()) == {2, 3, 4, 5}


def test_resample_to_finer_grid_replicates_pixels() -> None:
    coarse = _layer(np.array([[1, 0], [0, 1]], dtype=np.uint8), res=30.0)
    transform, shape = grid_at_scale(coarse.bounds, crs=coarse.crs, scale_m=10)
    fine = resample_to(coarse, transform=transform, crs=coarse.crs, shape=shape)

    assert fine.shape == (6, 6)
    assert int(np.ma.filled(fine.values, 0).sum()) == 18


def test_merge_max_counts_absent_as_zero() -> None:
    a = binarize(_layer(np.array([[1, 0], [0, 0]], dtype=np.uint8), res=10.0))
    b = binarize(_layer(np.array([[1, 1], [0, 0]], dtype=np.uint8), res=10.0))

    merged = merge_max([a, b], name="deforestation")

    assert merged.name == "deforestation"
    assert np.ma.getmaskarray(merged.values).tolist() == [[False, False], [True, True]]
    assert np.ma.filled(merged.values, 0).tolist() == [[1, 1], [0, 0]]


def test_merge_max_uses_finest_grid() -> None:
    coarse = binarize(_layer(np.ones((1, 1), dtype=np.uint8), res=30.0))
    fine = binarize(_layer(np.zeros((3, 3), dtype=np.uint8), res=10.0))

    merged = merge_max([coarse, fine])

    assert merged.resolution == pytest.approx((10.0, 10.0))
    assert merged.shape == (3, 3)
    assert merged.count_present() == 9


def test_merge_max_requires_layers() -> None:
    with pytest.raises(ValueError):
        merge_max([])


def test_pixel_size_for_geographic_scale() -> None:
    assert pixel_size_for_scale(UTM, 30) == pytest.approx(30.0)
    assert pixel_size_for_scale("EPSG:4326", 111319.49079327357) == pytest.approx(1.0)
