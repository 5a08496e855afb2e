from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from integrated_alert.deps.hansen_acquire import DATASET_VERSION_DEFAULT
from integrated_alert.deps.hansen_tiles import HANSEN_BASE_YEAR


ENV_AOI = "INTEGRATED_ALERT_AOI"
ENV_HANSEN_TILE_DIR = "INTEGRATED_ALERT_HANSEN_TILE_DIR"
ENV_RADD_DIR = "INTEGRATED_ALERT_RADD_DIR"
ENV_ASSETS_ROOT = "INTEGRATED_ALERT_ASSETS_ROOT"
ENV_HANSEN_DATASET_VERSION = "INTEGRATED_ALERT_HANSEN_DATASET_VERSION"

BACKENDS = ("local", "earthengine")


@dataclass(frozen=True)
class AlertConfig:
    """Run parameters for one integrated-alert computation.

    ``aoi`` is either a GeoJSON path or an asset identifier resolved under
    ``assets_root`` (local backend) / on the platform (earthengine backend).
    """

    aoi: str
    hansen_tile_dir: Path | None = None
    radd_dir: Path | None = None
    start_year: int = 2020
    end_year: int = 2024
    hansen_scale_m: float = 30
    radd_scale_m: float = 10
    merged_scale_m: float = 10
    max_pixels: int = int(1e13)
    map_zoom: float = 11.5
    assets_root: Path | None = None
    output_dir: Path | None = None
    backend: str = "local"
    dataset_version: str = DATASET_VERSION_DEFAULT
    download_hansen: bool = False
    ee_project: str | None = None


def _env_path(name: str) -> Path | None:
    value = os.environ.get(name, "").strip()
    return Path(value) if value else None


def validate_years(start_year: int, end_year: int) -> None:
    if start_year < HANSEN_BASE_YEAR:
        raise ValueError(f"start_year must be >= {HANSEN_BASE_YEAR}, got {start_year}")
    if end_year < start_year:
        raise ValueError(f"end_year ({end_year}) must not be before start_year ({start_year})")


def load_alert_config(
    *,
    aoi: str | None = None,
    hansen_tile_dir: Path | None = None,
    radd_dir: Path | None = None,
    start_year: int = 2020,
    end_year: int = 2024,
    assets_root: Path | None = None,
    output_dir: Path | None = None,
    backend: str = "local",
    download_hansen: bool = False,
    ee_project: str | None = None,
) -> AlertConfig:
    validate_years(start_year, end_year)
    if backend not in BACKENDS:
        raise ValueError(f"Unknown backend {backend!r}; expected one of {', '.join(BACKENDS)}")

    if aoi is None:
        aoi = os.environ.get(ENV_AOI, "").strip() or None
    if not aoi:
        raise RuntimeError(f"An AOI must be given (--aoi) or {ENV_AOI} must be set")

    if backend == "local":
        hansen_tile_dir = hansen_tile_dir or _env_path(ENV_HANSEN_TILE_DIR)
        if hansen_tile_dir is None:
            raise RuntimeError(f"{ENV_HANSEN_TILE_DIR} must be set for Hansen processing")
        radd_dir = radd_dir or _env_path(ENV_RADD_DIR)
        if radd_dir is None:
            raise RuntimeError(f"{ENV_RADD_DIR} must be set for RADD processing")

    dataset_version = os.environ.get(ENV_HANSEN_DATASET_VERSION, "").strip() or DATASET_VERSION_DEFAULT
    return AlertConfig(
        aoi=aoi,
        hansen_tile_dir=hansen_tile_dir,
        radd_dir=radd_dir,
        start_year=start_year,
        end_year=end_year,
        assets_root=assets_root or _env_path(ENV_ASSETS_ROOT),
        output_dir=output_dir,
        backend=backend,
        dataset_version=dataset_version,
        download_hansen=download_hansen,
        ee_project=ee_project,
    )
