from __future__ import annotations

from pathlib import Path

import pytest

from integrated_alert.config import (
    ENV_AOI,
    ENV_ASSETS_ROOT,
    ENV_HANSEN_DATASET_VERSION,
    ENV_HANSEN_TILE_DIR,
    ENV_RADD_DIR,
    load_alert_config,
)


def test_env_fallbacks(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv(ENV_AOI, "projects/example/assets/aoi")
    monkeypatch.setenv(ENV_HANSEN_TILE_DIR, str(tmp_path / "hansen"))
    monkeypatch.setenv(ENV_RADD_DIR, str(tmp_path / "radd"))
    monkeypatch.setenv(ENV_ASSETS_ROOT, str(tmp_path / "assets"))
    monkeypatch.setenv(ENV_HANSEN_DATASET_VERSION, "2024-v1.12")

    config = load_alert_config()

    assert config.aoi == "projects/example/assets/aoi"
    assert config.hansen_tile_dir == tmp_path / "hansen"
    assert config.radd_dir == tmp_path / "radd"
    assert config.assets_root == tmp_path / "assets"
    assert config.dataset_version == "2024-v1.12"
    assert (config.start_year, config.end_year) == (2020, 2024)
    assert (config.hansen_scale_m, config.radd_scale_m, config.merged_scale_m) == (30, 10, 10)
    assert config.max_pixels == int(1e13)
    assert config.map_zoom == 11.5


def test_explicit_values_win(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv(ENV_HANSEN_TILE_DIR, str(tmp_path / "env"))
    config = load_alert_config(aoi="aoi.geojson", hansen_tile_dir=tmp_path / "cli", radd_dir=tmp_path / "radd")
    assert config.hansen_tile_dir == tmp_path / "cli"
    assert config.dataset_version == "2023-v1.11"


def test_missing_aoi_names_env_var() -> None:
    with pytest.raises(RuntimeError, match=ENV_AOI):
        load_alert_config()


def test_missing_tile_dir_names_env_var() -> None:
    with pytest.raises(RuntimeError, match=ENV_HANSEN_TILE_DIR):
        load_alert_config(aoi="aoi.geojson")


def test_earthengine_backend_needs_no_local_dirs() -> None:
    config = load_alert_config(aoi="projects/example/assets/aoi", backend="earthengine")
    assert config.hansen_tile_dir is None
    assert config.radd_dir is None


@pytest.mark.parametrize(("start_year", "end_year"), [(2025, 2024), (1999, 2024)])
def test_invalid_years(start_year: int, end_year: int) -> None:
    with pytest.raises(ValueError):
        load_alert_config(aoi="aoi.geojson", start_year=start_year, end_year=end_year)


def test_unknown_backend() -> None:
    with pytest.raises(ValueError):
        load_alert_config(aoi="aoi.geojson", backend="gdal")
