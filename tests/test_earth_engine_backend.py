from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

pytest.importorskip("ee")

from integrated_alert.backends import earth_engine  # noqa: E402
from integrated_alert.config import AlertConfig  # noqa: E402
from integrated_alert.errors import AssetNotFoundError, ReductionTooLargeError  # noqa: E402
from integrated_alert.reports.map_layers import MapLayerRegistry, TileLayer  # noqa: E402


class FakeEEException(Exception):
    pass


@pytest.fixture
def fake_ee(monkeypatch: pytest.MonkeyPatch) -> MagicMock:
    fake = MagicMock(name="ee")
    fake.EEException = FakeEEException
    monkeypatch.setattr(earth_engine, "ee", fake)
    return fake


def test_hansen_loss_masks_from_start_year(fake_ee: MagicMock) -> None:
    aoi = MagicMock(name="aoi")
    earth_engine.hansen_loss_image(aoi, start_year=2021)

    fake_ee.Image.assert_called_once_with("UMD/hansen/global_forest_change_2023_v1_11")
    lossyear = fake_ee.Image.return_value.select.return_value
    fake_ee.Image.return_value.select.assert_called_once_with("lossyear")
    lossyear.gte.assert_called_once_with(21)
    lossyear.updateMask.return_value.clip.assert_called_once_with(aoi)
    lossyear.updateMask.return_value.clip.return_value.rename.assert_called_once_with("deforestation")


def test_radd_window_includes_last_day(fake_ee: MagicMock) -> None:
    aoi = MagicMock(name="aoi")
    earth_engine.radd_alert_image(aoi, start_year=2020, end_year=2024)

    fake_ee.ImageCollection.assert_called_once_with("projects/radar-wur/raddalert/v1")
    fake_ee.Date.fromYMD.assert_any_call(2020, 1, 1)
    fake_ee.Date.fromYMD.assert_any_call(2024, 12, 31)
    fake_ee.Date.fromYMD.return_value.advance.assert_called_once_with(1, "day")
    collection = fake_ee.ImageCollection.return_value
    collection.filterBounds.assert_called_once_with(aoi)
    collection.filterBounds.return_value.filterDate.return_value.select.assert_called_once_with("Alert")


def test_binarize_is_gt_zero_self_mask() -> None:
    image = MagicMock(name="image")
    result = earth_engine.binarize(image)
    image.gt.assert_called_once_with(0)
    assert result is image.gt.return_value.selfMask.return_value


def test_reduce_area_ha(fake_ee: MagicMock) -> None:
    mask = MagicMock(name="mask")
    aoi = MagicMock(name="aoi")
    region = mask.multiply.return_value.reduceRegion
    region.return_value.get.return_value.getInfo.return_value = 12.5

    estimate = earth_engine.reduce_area_ha(mask, aoi, scale_m=30, max_pixels=int(1e13), label="hansen")

    assert estimate.hectares == 12.5
    assert estimate.scale_m == 30.0
    assert estimate.pixel_count is None
    fake_ee.Image.pixelArea.return_value.divide.assert_called_once_with(10000)
    kwargs = region.call_args.kwargs
    assert kwargs["scale"] == 30
    assert kwargs["maxPixels"] == int(1e13)
    assert kwargs["geometry"] is aoi.geometry.return_value
    region.return_value.get.assert_called_once_with("deforestation")


def test_reduce_area_none_is_zero(fake_ee: MagicMock) -> None:
    mask = MagicMock(name="mask")
    mask.multiply.return_value.reduceRegion.return_value.get.return_value.getInfo.return_value = None
    assert earth_engine.reduce_area_ha(mask, MagicMock(), scale_m=10).hectares == 0.0


@pytest.mark.parametrize(
    ("message", "error"),
    [
        ("Too many pixels in the region. Found 2e13, but maxPixels allows only 1e13.", ReductionTooLargeError),
        ("Collection asset 'projects/x/assets/aoi' not found.", AssetNotFoundError),
    ],
)
def test_platform_errors_are_mapped(fake_ee: MagicMock, message: str, error: type) -> None:
    mask = MagicMock(name="mask")
    mask.multiply.return_value.reduceRegion.return_value.get.return_value.getInfo.side_effect = FakeEEException(message)
    with pytest.raises(error):
        earth_engine.reduce_area_ha(mask, MagicMock(), scale_m=10)


def test_map_adapter_registers_tile_layers(fake_ee: MagicMock) -> None:
    registry = MapLayerRegistry()
    adapter = earth_engine.EarthEngineMap(registry)
    aoi = MagicMock(name="aoi")
    aoi.geometry.return_value.centroid.return_value.coordinates.return_value.getInfo.return_value = [101.5, 1.25]
    image = MagicMock(name="image")
    image.getMapId.return_value = {"tile_fetcher": SimpleNamespace(url_format="https://ee.example/{z}/{x}/{y}")}

    adapter.center_object(aoi, 11.5)
    adapter.add_layer(image, {"palette": "purple"}, "RADD Alerts")

    assert registry.center == (101.5, 1.25)
    assert registry.zoom == 11.5
    layer = registry.get("RADD Alerts")
    assert isinstance(layer.source, TileLayer)
    assert layer.source.url_template == "https://ee.example/{z}/{x}/{y}"
    image.getMapId.assert_called_once_with({"palette": "purple"})


def test_run_earth_engine_reduces_each_layer_at_its_scale(fake_ee: MagicMock) -> None:
    config = AlertConfig(aoi="projects/demo/assets/test_aoi", backend="earthengine", ee_project="demo-project")

    run = earth_engine.run_earth_engine(config)

    fake_ee.Initialize.assert_called_once_with(project="demo-project")
    fake_ee.FeatureCollection.assert_any_call("projects/demo/assets/test_aoi")
    assert run.aoi_id == "test_aoi"
    assert (run.hansen.scale_m, run.radd.scale_m, run.integrated.scale_m) == (30.0, 10.0, 10.0)
    assert [run.hansen.label, run.radd.label, run.integrated.label] == ["hansen", "radd", "integrated"]
