from __future__ import annotations

from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Iterable

from .determinism import canonical_json_bytes, sha256_file, write_bytes


MANIFEST_NAME = "manifest.json"
MANIFEST_VERSION = "integrated_alert_manifest_v1"


@dataclass(frozen=True)
class ArtifactRecord:
    relpath: str
    sha256: str
    size_bytes: int


def artifact_record(output_dir: Path, artifact: Path) -> ArtifactRecord:
    try:
        relpath = artifact.resolve().relative_to(output_dir.resolve()).as_posix()
    except ValueError as exc:
        raise ValueError(f"Artifact {artifact} is outside the output directory {output_dir}") from exc
    return ArtifactRecord(relpath=relpath, sha256=sha256_file(artifact), size_bytes=artifact.stat().st_size)


def write_manifest(output_dir: str | Path, artifacts: Iterable[str | Path]) -> bytes:
    """Write ``manifest.json`` into ``output_dir`` and return its bytes.

    The manifest lists every run artifact with its digest, ordered by relpath,
    so identical outputs always give an identical manifest.
    """

    odir = Path(output_dir)
    records = sorted(
        {artifact_record(odir, Path(a)) for a in artifacts if Path(a).name != MANIFEST_NAME},
        key=lambda r: r.relpath,
    )
    manifest_bytes = canonical_json_bytes(
        {"manifest_version": MANIFEST_VERSION, "artifacts": [asdict(r) for r in records]}
    ) + b"\n"
    write_bytes(odir / MANIFEST_NAME, manifest_bytes)
    return manifest_bytes
