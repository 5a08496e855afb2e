"""Reporting for integrated alert runs.

Printed hectare figures, map-layer registration and the deterministic files
written to an output directory (summary JSON, inputs manifest, Leaflet map,
artifact manifest).
"""

from .bundle import write_manifest
from .map_layers import AoiOutline, MapLayerRegistry, TileLayer, render_map_html
from .reporter import print_area_report, register_alert_layers
from .validate import validate_summary, validate_summary_file

__all__ = [
    "AoiOutline",
    "MapLayerRegistry",
    "TileLayer",
    "print_area_report",
    "register_alert_layers",
    "render_map_html",
    "validate_summary",
    "validate_summary_file",
    "write_manifest",
]
