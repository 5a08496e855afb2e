from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable

from integrated_alert.reports.determinism import sha256_file, write_json


@dataclass(frozen=True)
class InputEntry:
    dataset: str
    item_id: str
    layer: str
    local_path: str
    sha256: str
    size_bytes: int
    source_url: str
    status: str


def entry_for_file(
    path: Path,
    *,
    dataset: str,
    item_id: str,
    layer: str,
    source_url: str = "",
    status: str = "present",
) -> InputEntry:
    if not path.is_file():
        return InputEntry(
            dataset=dataset,
            item_id=item_id,
            layer=layer,
            local_path=str(path.resolve()),
            sha256="",
            size_bytes=0,
            source_url=source_url,
            status="missing",
        )
    return InputEntry(
        dataset=dataset,
        item_id=item_id,
        layer=layer,
        local_path=str(path.resolve()),
        sha256=sha256_file(path),
        size_bytes=path.stat().st_size,
        source_url=source_url,
        status=status,
    )


def write_inputs_manifest(
    manifest_path: Path,
    *,
    entries: Iterable[InputEntry],
    aoi_id: str,
    run_id: str,
    parameters: dict[str, object],
) -> None:
    manifest_path.parent.mkdir(parents=True, exist_ok=True)
    created_utc = datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")
    ordered_entries = sorted(entries, key=lambda e: (e.dataset, e.item_id, e.layer, e.local_path))
    payload = {
        "aoi_id": aoi_id,
        "run_id": run_id,
        "created_utc": created_utc,
        "parameters": dict(sorted(parameters.items())),
        "entries": [
            {
                "dataset": e.dataset,
                "item_id": e.item_id,
                "layer": e.layer,
                "local_path": e.local_path,
                "sha256": e.sha256,
                "size_bytes": e.size_bytes,
                "source_url": e.source_url,
                "status": e.status,
            }
            for e in ordered_entries
        ],
    }
    write_json(manifest_path, payload)
