from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

import numpy as np

from integrated_alert.deps.hansen_tiles import HANSEN_BASE_YEAR, tile_id_from_path
from integrated_alert.deps.provenance import InputEntry, entry_for_file
from integrated_alert.errors import AssetNotFoundError
from integrated_alert.geo.aoi import AreaOfInterest
from integrated_alert.geo.raster import RasterLayer, clip, rename, update_mask
from integrated_alert.geo.raster_io import intersects_aoi, read_aoi_mosaic


LOGGER = logging.getLogger(__name__)

LOSSYEAR_LAYER = "lossyear"
OUTPUT_BAND = "deforestation"


@dataclass(frozen=True)
class HansenExtraction:
    layer: RasterLayer
    tile_paths: list[Path]

    def inputs(self) -> list[InputEntry]:
        return [
            entry_for_file(
                path,
                dataset="hansen",
                item_id=tile_id_from_path(path) or path.stem,
                layer=LOSSYEAR_LAYER,
            )
            for path in self.tile_paths
        ]


class TileSource:
    def list_layer_files(self, layer: str) -> list[Path]:
        raise NotImplementedError

    def tile_relpath(self, path: Path) -> str:
        raise NotImplementedError


class LocalTileSource(TileSource):
    """Hansen tiles on disk.

    Accepted layouts under ``tile_dir``: ``<layer>/*.tif``, ``<layer>.tif``,
    ``<layer>_*.tif`` / ``<layer>-*.tif``, ``*_<layer>_*.tif`` (the GFC
    download names) and ``<tile_id>/<layer>.tif``.
    """

    def __init__(self, tile_dir: Path) -> None:
        self._tile_dir = tile_dir

    def list_layer_files(self, layer: str) -> list[Path]:
        if not self._tile_dir.exists():
            return []

        layer_dir = self._tile_dir / layer
        candidates: list[Path] = []
        if layer_dir.is_dir():
            candidates.extend(sorted(layer_dir.glob("*.tif")))
        else:
            direct = self._tile_dir / f"{layer}.tif"
            if direct.is_file():
                candidates.append(direct)
            candidates.extend(sorted(self._tile_dir.glob(f"{layer}_*.tif")))
            candidates.extend(sorted(self._tile_dir.glob(f"{layer}-*.tif")))
            candidates.extend(sorted(self._tile_dir.glob(f"*_{layer}_*.tif")))
            candidates.extend(sorted(self._tile_dir.glob(f"*/{layer}.tif")))
        return sorted(set(candidates))

    def tile_relpath(self, path: Path) -> str:
        try:
            return path.relative_to(self._tile_dir).as_posix()
        except ValueError:
            return path.as_posix()


def mask_loss_since(lossyear: RasterLayer, start_year: int) -> RasterLayer:
    """Keep pixels whose loss year code is ``>= start_year - 2000``.

    No upper bound: loss up to the latest year in the dataset is kept.
    """

    threshold = start_year - HANSEN_BASE_YEAR
    values = np.ma.filled(lossyear.values, 0)
    return update_mask(lossyear, values >= threshold)


def extract_hansen_loss(
    aoi: AreaOfInterest,
    *,
    tile_dir: Path,
    start_year: int,
    tile_source: TileSource | None = None,
) -> HansenExtraction:
    """Hansen loss-year values for loss in ``start_year`` or later, clipped to the AOI."""

    source = tile_source or LocalTileSource(tile_dir)
    candidates = source.list_layer_files(LOSSYEAR_LAYER)
    if not candidates:
        raise AssetNotFoundError(f"No Hansen {LOSSYEAR_LAYER} tiles found under {tile_dir}")

    tiles = [path for path in candidates if intersects_aoi(path, aoi)]
    if not tiles:
        raise AssetNotFoundError(
            f"No Hansen {LOSSYEAR_LAYER} tile under {tile_dir} intersects AOI {aoi.aoi_id}"
        )
    LOGGER.info(
        "Hansen tiles for AOI %s: %s",
        aoi.aoi_id,
        ", ".join(source.tile_relpath(p) for p in tiles),
    )

    lossyear = read_aoi_mosaic(tiles, aoi, band=LOSSYEAR_LAYER, name=LOSSYEAR_LAYER)
    loss = clip(mask_loss_since(lossyear, start_year), aoi)
    return HansenExtraction(layer=rename(loss, OUTPUT_BAND), tile_paths=tiles)
