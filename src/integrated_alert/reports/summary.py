from __future__ import annotations

from typing import Any, Mapping

from integrated_alert.geo.area import AreaEstimate
from integrated_alert.reports.determinism import round_area, utc_now_iso


SUMMARY_VERSION = "integrated_alert_summary_v1"


def area_entry(estimate: AreaEstimate) -> dict[str, Any]:
    return {
        "hectares": round_area(estimate.hectares),
        "scale_m": float(estimate.scale_m),
        "pixel_count": None if estimate.pixel_count is None else int(estimate.pixel_count),
    }


def build_summary(
    *,
    aoi: Mapping[str, Any],
    parameters: Mapping[str, Any],
    datasets: list[Mapping[str, Any]],
    areas: Mapping[str, AreaEstimate],
    generated_utc: str | None = None,
) -> dict[str, Any]:
    return {
        "summary_version": SUMMARY_VERSION,
        "generated_utc": generated_utc or utc_now_iso(),
        "aoi": dict(aoi),
        "parameters": dict(parameters),
        "datasets": sorted((dict(d) for d in datasets), key=lambda d: d["dataset_id"]),
        "areas": {name: area_entry(estimate) for name, estimate in areas.items()},
    }
