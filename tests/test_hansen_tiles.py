from __future__ import annotations

import json
from pathlib import Path

import pytest

from integrated_alert.deps.hansen_acquire import (
    HANSEN_URL_TEMPLATE_ENV,
    ensure_hansen_tiles_present,
    resolve_hansen_url_template,
)
from integrated_alert.deps.hansen_tiles import hansen_tile_ids_for_bbox, tile_id_from_path
from integrated_alert.deps.provenance import InputEntry, write_inputs_manifest


def test_hansen_tile_ids_use_top_left_corner() -> None:
    assert hansen_tile_ids_for_bbox((24.1, 58.1, 24.5, 58.3)) == ["60N_020E"]
    assert hansen_tile_ids_for_bbox((-55.5, -3.5, -55.1, -3.1)) == ["00N_060W"]


def test_hansen_tile_ids_span_several_tiles() -> None:
    tile_ids = hansen_tile_ids_for_bbox((28.0, 58.0, 31.0, 61.0))
    assert tile_ids == ["60N_020E", "60N_030E", "70N_020E", "70N_030E"]


def test_tile_id_from_path() -> None:
    assert tile_id_from_path(Path("Hansen_GFC-2023-v1.11_lossyear_10N_110E.tif")) == "10N_110E"
    assert tile_id_from_path(Path("tiles/00N_060W/lossyear.tif")) == "00N_060W"
    assert tile_id_from_path(Path("lossyear.tif")) is None


def test_missing_tiles_are_reported_without_download(tmp_path: Path) -> None:
    present = tmp_path / "10N_110E" / "lossyear.tif"
    present.parent.mkdir(parents=True)
    present.write_bytes(b"tile")

    entries = ensure_hansen_tiles_present(["20N_110E", "10N_110E"], tile_dir=tmp_path, download=False)

    assert [(e.item_id, e.status) for e in entries] == [("10N_110E", "present"), ("20N_110E", "missing")]
    assert entries[0].size_bytes == 4
    assert entries[0].sha256
    assert entries[1].sha256 == ""
    assert entries[1].source_url.endswith("Hansen_GFC-2023-v1.11_lossyear_20N_110E.tif")


def test_url_template_env_override(monkeypatch) -> None:
    monkeypatch.setenv(HANSEN_URL_TEMPLATE_ENV, "https://mirror.example/{layer}/{tile_id}.tif")
    assert resolve_hansen_url_template() == "https://mirror.example/{layer}/{tile_id}.tif"
    assert resolve_hansen_url_template("https://other/{tile_id}") == "https://other/{tile_id}"


def test_inputs_manifest_ordering(tmp_path: Path) -> None:
    entries = [
        InputEntry("radd", "radd_2021-03-01", "Alert", "/tmp/radd/b.tif", "b", 2, "", "present"),
        InputEntry("hansen", "20N_110E", "lossyear", "/tmp/h/20N_110E/lossyear.tif", "c", 3, "", "present"),
        InputEntry("hansen", "10N_110E", "lossyear", "/tmp/h/10N_110E/lossyear.tif", "a", 1, "", "present"),
    ]
    manifest_path = tmp_path / "inputs_manifest.json"
    write_inputs_manifest(
        manifest_path,
        entries=entries,
        aoi_id="aoi-123",
        run_id="run-123",
        parameters={"start_year": 2020, "end_year": 2024},
    )

    data = json.loads(manifest_path.read_text(encoding="utf-8"))
    ordered = [(e["dataset"], e["item_id"]) for e in data["entries"]]
    assert ordered == [("hansen", "10N_110E"), ("hansen", "20N_110E"), ("radd", "radd_2021-03-01")]
    assert list(data["parameters"]) == ["end_year", "start_year"]
    assert data["aoi_id"] == "aoi-123"


def test_missing_tiles_are_downloaded(tmp_path: Path) -> None:
    source_dir = tmp_path / "mirror"
    source_dir.mkdir()
    (source_dir / "src_lossyear_10N_110E.tif").write_bytes(b"lossyear-tile")
    tile_dir = tmp_path / "tiles"
    template = source_dir.as_uri() + "/src_{layer}_{tile_id}.tif"

    entries = ensure_hansen_tiles_present(["10N_110E"], tile_dir=tile_dir, download=True, url_template=template)

    dest = tile_dir / "10N_110E" / "lossyear.tif"
    assert [(e.item_id, e.status) for e in entries] == [("10N_110E", "downloaded")]
    assert entries[0].sha256
    assert entries[0].size_bytes == len(b"lossyear-tile")
    assert entries[0].source_url == template.format(layer="lossyear", tile_id="10N_110E")
    assert dest.read_bytes() == b"lossyear-tile"
    assert sorted(p.name for p in dest.parent.iterdir()) == ["lossyear.tif"]

    again = ensure_hansen_tiles_present(["10N_110E"], tile_dir=tile_dir, download=True, url_template=template)
    assert again[0].status == "present"
    assert again[0].sha256 == entries[0].sha256


def test_failed_download_raises(tmp_path: Path) -> None:
    template = (tmp_path / "mirror").as_uri() + "/src_{layer}_{tile_id}.tif"
    with pytest.raises(RuntimeError, match="10N_110E/lossyear"):
        ensure_hansen_tiles_present(["10N_110E"], tile_dir=tmp_path / "tiles", download=True, url_template=template)
