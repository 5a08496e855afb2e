from __future__ import annotations

import argparse
import logging
import sys
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from jsonschema.exceptions import ValidationError

from integrated_alert.analysis.integrated_alert import IntegratedAlertResult, run_integrated_alert
from integrated_alert.config import BACKENDS, AlertConfig, load_alert_config
from integrated_alert.deps.provenance import write_inputs_manifest
from integrated_alert.geo.area import AreaEstimate
from integrated_alert.reports.bundle import write_manifest
from integrated_alert.reports.determinism import round_area, utc_now_iso, write_bytes, write_json
from integrated_alert.reports.map_layers import AoiOutline, MapLayerRegistry, render_map_html
from integrated_alert.reports.reporter import BOUNDARY_STYLE, print_area_report, register_alert_layers
from integrated_alert.reports.summary import build_summary
from integrated_alert.reports.validate import validate_summary


LOGGER = logging.getLogger("integrated_alert")

SUMMARY_NAME = "integrated_alert_summary.json"
INPUTS_MANIFEST_NAME = "inputs_manifest.json"
MAP_NAME = "map.html"
DISTRIBUTION = "integrated-deforestation-alert"


@contextmanager
def _timed(label: str) -> Any:
    start = time.perf_counter()
    print(f"[profile] START {label}", file=sys.stderr, flush=True)
    try:
        yield
    finally:
        elapsed = time.perf_counter() - start
        print(f"[profile] DONE  {label} ({elapsed:.2f}s)", file=sys.stderr, flush=True)


def _path_or_none(value: str | None) -> Path | None:
    return Path(value) if value else None


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="python -m integrated_alert.cli",
        description=(
            "Combine Hansen forest loss and RADD radar alerts over an AOI and report "
            "deforestation area in hectares."
        ),
    )

    p.add_argument(
        "--aoi",
        help="AOI GeoJSON path or asset id (defaults to INTEGRATED_ALERT_AOI).",
    )
    p.add_argument(
        "--hansen-tile-dir",
        help="Hansen tile directory (defaults to INTEGRATED_ALERT_HANSEN_TILE_DIR).",
    )
    p.add_argument(
        "--radd-dir",
        help="Directory of RADD alert GeoTIFFs (defaults to INTEGRATED_ALERT_RADD_DIR).",
    )
    p.add_argument(
        "--assets-root",
        help="Root directory that AOI asset ids are resolved under.",
    )
    p.add_argument("--start-year", type=int, default=2020, help="First year of the window (default: 2020).")
    p.add_argument("--end-year", type=int, default=2024, help="Last year of the window (default: 2024).")
    p.add_argument(
        "--output-dir",
        help="Optional directory for the summary JSON, inputs manifest, map and manifest.",
    )
    p.add_argument(
        "--backend",
        choices=list(BACKENDS),
        default="local",
        help="Where the alert graph is evaluated (default: local).",
    )
    p.add_argument("--ee-project", help="Cloud project for the earthengine backend.")
    p.add_argument(
        "--download-hansen",
        action="store_true",
        help="Download missing Hansen lossyear tiles into the tile directory.",
    )
    p.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: WARNING).",
    )
    return p


def _parameters(config: AlertConfig) -> dict[str, Any]:
    return {
        "start_year": config.start_year,
        "end_year": config.end_year,
        "backend": config.backend,
        "hansen_scale_m": float(config.hansen_scale_m),
        "radd_scale_m": float(config.radd_scale_m),
        "merged_scale_m": float(config.merged_scale_m),
        "max_pixels": config.max_pixels,
        "dataset_version": config.dataset_version,
    }


def _areas(hansen: AreaEstimate, radd: AreaEstimate, integrated: AreaEstimate) -> dict[str, AreaEstimate]:
    return {"hansen": hansen, "radd": radd, "integrated": integrated}


def _write_summary(output_dir: Path, summary: dict[str, Any]) -> Path:
    with _timed("validate_summary"):
        validate_summary(summary)
    return write_json(output_dir / SUMMARY_NAME, summary)


def _write_map(output_dir: Path, registry: MapLayerRegistry, *, title: str) -> Path:
    with _timed("write_map"):
        return write_bytes(output_dir / MAP_NAME, render_map_html(registry, title=title).encode("utf-8"))


def _write_local_outputs(output_dir: Path, config: AlertConfig, result: IntegratedAlertResult) -> None:
    generated_utc = utc_now_iso()
    aoi = result.aoi
    datasets = [
        {
            "dataset_id": "hansen",
            "asset": str(config.hansen_tile_dir),
            "band": "lossyear",
            "item_count": sum(1 for e in result.inputs if e.dataset == "hansen"),
        },
        {
            "dataset_id": "radd",
            "asset": str(config.radd_dir),
            "band": "Alert",
            "item_count": sum(1 for e in result.inputs if e.dataset == "radd"),
        },
    ]
    summary = build_summary(
        aoi={
            "aoi_id": aoi.aoi_id,
            "source": aoi.source,
            "area_ha": round_area(aoi.geodesic_area_ha()),
            "bbox": list(aoi.bbox),
        },
        parameters=_parameters(config),
        datasets=datasets,
        areas=_areas(result.areas.hansen, result.areas.radd, result.areas.integrated),
        generated_utc=generated_utc,
    )
    artifacts = [_write_summary(output_dir, summary)]

    inputs_path = output_dir / INPUTS_MANIFEST_NAME
    write_inputs_manifest(
        inputs_path,
        entries=result.inputs,
        aoi_id=aoi.aoi_id,
        run_id=f"{aoi.aoi_id}-{generated_utc}",
        parameters=_parameters(config),
    )
    artifacts.append(inputs_path)

    registry = MapLayerRegistry()
    register_alert_layers(
        registry,
        aoi=aoi,
        aoi_outline=AoiOutline(aoi, BOUNDARY_STYLE),
        hansen_loss=result.layers.hansen_loss,
        radd_binary=result.layers.radd_binary,
        integrated=result.layers.integrated,
        start_year=result.start_year,
        end_year=result.end_year,
        zoom=config.map_zoom,
    )
    artifacts.append(_write_map(output_dir, registry, title=f"Integrated deforestation alerts: {aoi.aoi_id}"))

    with _timed("write_manifest"):
        write_manifest(output_dir, sorted(artifacts, key=lambda p: p.as_posix()))


def _run_local(config: AlertConfig) -> int:
    with _timed("integrated_alert_local"):
        result = run_integrated_alert(config)

    print_area_report(
        hansen_ha=result.areas.hansen.hectares,
        radd_ha=result.areas.radd.hectares,
        integrated_ha=result.areas.integrated.hectares,
        sink=sys.stdout,
    )

    if config.output_dir is not None:
        _write_local_outputs(config.output_dir, config, result)
        print(str(config.output_dir))
    return 0


def _run_earth_engine(config: AlertConfig) -> int:
    try:
        from integrated_alert.backends import earth_engine
    except ImportError as exc:
        raise RuntimeError(
            f"The earthengine backend needs earthengine-api (pip install '{DISTRIBUTION}[ee]')"
        ) from exc

    with _timed("integrated_alert_earthengine"):
        run = earth_engine.run_earth_engine(config)

    print_area_report(
        hansen_ha=run.hansen.hectares,
        radd_ha=run.radd.hectares,
        integrated_ha=run.integrated.hectares,
        sink=sys.stdout,
    )

    if config.output_dir is None:
        return 0

    output_dir = config.output_dir
    summary = build_summary(
        aoi={"aoi_id": run.aoi_id, "source": run.asset_id, "area_ha": None, "bbox": None},
        parameters=_parameters(config),
        datasets=[
            {"dataset_id": "hansen", "asset": earth_engine.HANSEN_ASSET, "band": earth_engine.LOSSYEAR_BAND},
            {"dataset_id": "radd", "asset": earth_engine.RADD_ASSET, "band": earth_engine.ALERT_BAND},
        ],
        areas=_areas(run.hansen, run.radd, run.integrated),
    )
    artifacts = [_write_summary(output_dir, summary)]

    registry = MapLayerRegistry()
    earth_engine.register_earth_engine_layers(run, registry, zoom=config.map_zoom)
    artifacts.append(_write_map(output_dir, registry, title=f"Integrated deforestation alerts: {run.aoi_id}"))

    with _timed("write_manifest"):
        write_manifest(output_dir, sorted(artifacts, key=lambda p: p.as_posix()))
    print(str(output_dir))
    return 0


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        config = load_alert_config(
            aoi=args.aoi,
            hansen_tile_dir=_path_or_none(args.hansen_tile_dir),
            radd_dir=_path_or_none(args.radd_dir),
            start_year=args.start_year,
            end_year=args.end_year,
            assets_root=_path_or_none(args.assets_root),
            output_dir=_path_or_none(args.output_dir),
            backend=args.backend,
            download_hansen=args.download_hansen,
            ee_project=args.ee_project,
        )
        if config.backend == "earthengine":
            return _run_earth_engine(config)
        return _run_local(config)
    except (RuntimeError, ValueError, ValidationError) as exc:
        LOGGER.debug("run failed", exc_info=True)
        print(f"ERROR: {exc}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
