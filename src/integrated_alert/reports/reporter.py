from __future__ import annotations

from typing import Any, TextIO

from integrated_alert.deps.hansen_tiles import HANSEN_BASE_YEAR


HANSEN_LINE = "Hansen Deforestation Area (Hectares):"
RADD_LINE = "RADD Deforestation Area (Hectares):"
INTEGRATED_LINE = "Integrated Deforestation Area (Hectares):"

AOI_LAYER = "AOI Boundary"
HANSEN_LAYER = "Hansen Forest Loss"
RADD_LAYER = "RADD Alerts"
INTEGRATED_LAYER = "Integrated Deforestation Alerts"

DEFAULT_ZOOM = 11.5

BOUNDARY_STYLE = {"color": "black", "width": 2, "fillColor": "00000000"}
RADD_VIS = {"palette": "purple"}
INTEGRATED_VIS = {"min": 0, "max": 1, "palette": ["white", "red"]}


def hansen_vis(start_year: int, end_year: int) -> dict[str, Any]:
    """Loss-year ramp over the requested window (codes are years since 2000)."""
    return {
        "min": start_year - HANSEN_BASE_YEAR,
        "max": end_year - HANSEN_BASE_YEAR,
        "palette": ["yellow", "orange", "red"],
    }


def print_area_report(
    *,
    hansen_ha: float,
    radd_ha: float,
    integrated_ha: float,
    sink: TextIO,
) -> None:
    print(HANSEN_LINE, hansen_ha, file=sink, flush=True)
    print(RADD_LINE, radd_ha, file=sink, flush=True)
    print(INTEGRATED_LINE, integrated_ha, file=sink, flush=True)


def register_alert_layers(
    map_: Any,
    *,
    aoi: Any,
    aoi_outline: Any,
    hansen_loss: Any,
    radd_binary: Any,
    integrated: Any,
    start_year: int,
    end_year: int,
    zoom: float = DEFAULT_ZOOM,
) -> None:
    """Center the map on the AOI and add the four display layers in draw order.

    ``map_`` only needs ``center_object`` and ``add_layer``; layer arguments are
    whatever that map accepts (local rasters, or remote images for the Earth
    Engine map).
    """

    map_.center_object(aoi, zoom)
    map_.add_layer(aoi_outline, {}, AOI_LAYER)
    map_.add_layer(hansen_loss, hansen_vis(start_year, end_year), HANSEN_LAYER)
    map_.add_layer(radd_binary, RADD_VIS, RADD_LAYER)
    map_.add_layer(integrated, INTEGRATED_VIS, INTEGRATED_LAYER)
