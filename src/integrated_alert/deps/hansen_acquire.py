from __future__ import annotations

import logging
import os
import urllib.request
from pathlib import Path
from typing import Iterable

from integrated_alert.deps.provenance import InputEntry, entry_for_file

LOGGER = logging.getLogger(__name__)

DATASET_VERSION_DEFAULT = "2023-v1.11"
HANSEN_URL_TEMPLATE_ENV = "INTEGRATED_ALERT_HANSEN_URL_TEMPLATE"
HANSEN_URL_TEMPLATE_DEFAULT = (
    "https://storage.googleapis.com/earthenginepartners-hansen/GFC-2023-v1.11/"
    "Hansen_GFC-2023-v1.11_{layer}_{tile_id}.tif"
)


def resolve_hansen_url_template(explicit: str | None = None) -> str:
    if explicit:
        return explicit.strip()
    return os.environ.get(HANSEN_URL_TEMPLATE_ENV, "").strip() or HANSEN_URL_TEMPLATE_DEFAULT


def resolve_tile_path(tile_dir: Path, tile_id: str, layer: str) -> Path:
    return tile_dir / tile_id / f"{layer}.tif"


def _format_url(template: str, *, tile_id: str, layer: str) -> str:
    return template.format(layer=layer, tile_id=tile_id)


def _download_to_path(url: str, dest_path: Path) -> None:
    dest_path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = dest_path.with_suffix(dest_path.suffix + ".part")
    with urllib.request.urlopen(url) as response, tmp_path.open("wb") as fh:  # noqa: S310
        while True:
            chunk = response.read(1024 * 1024)
            if not chunk:
                break
            fh.write(chunk)
    tmp_path.replace(dest_path)


def ensure_hansen_tiles_present(
    tile_ids: Iterable[str],
    *,
    tile_dir: Path,
    layers: Iterable[str] = ("lossyear",),
    download: bool,
    url_template: str | None = None,
) -> list[InputEntry]:
    """Report (and optionally fetch) the GFC granules covering an AOI.

    Tiles already on disk are never re-downloaded. With ``download`` off,
    absent tiles are reported with status ``missing``.
    """

    template = resolve_hansen_url_template(url_template)
    entries: list[InputEntry] = []
    for tile_id in sorted(set(tile_ids)):
        for layer in layers:
            local_path = resolve_tile_path(tile_dir, tile_id, layer)
            source_url = _format_url(template, tile_id=tile_id, layer=layer)

            if local_path.is_file():
                entries.append(
                    entry_for_file(
                        local_path,
                        dataset="hansen",
                        item_id=tile_id,
                        layer=layer,
                        source_url=source_url,
                    )
                )
                continue

            if not download:
                entries.append(
                    entry_for_file(
                        local_path,
                        dataset="hansen",
                        item_id=tile_id,
                        layer=layer,
                        source_url=source_url,
                    )
                )
                continue

            LOGGER.info("Downloading Hansen %s tile %s from %s", layer, tile_id, source_url)
            try:
                _download_to_path(source_url, local_path)
            except OSError as exc:
                raise RuntimeError(f"Failed to download Hansen tile {tile_id}/{layer}: {exc}") from exc
            entries.append(
                entry_for_file(
                    local_path,
                    dataset="hansen",
                    item_id=tile_id,
                    layer=layer,
                    source_url=source_url,
                    status="downloaded",
                )
            )

    return entries
