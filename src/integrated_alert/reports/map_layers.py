from __future__ import annotations

import base64
import html
import json
import warnings
from dataclasses import dataclass, field
from typing import Any, Mapping

from rasterio.errors import NotGeoreferencedWarning
from rasterio.io import MemoryFile

from integrated_alert.geo.aoi import AreaOfInterest
from integrated_alert.geo.raster import RasterLayer, reproject_layer
from integrated_alert.reports.palette import colorize, css_color, legend_gradient


@dataclass(frozen=True)
class TileLayer:
    """XYZ tile source served by a remote renderer."""

    url_template: str
    attribution: str = ""


@dataclass(frozen=True)
class AoiOutline:
    aoi: AreaOfInterest
    style: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class MapLayer:
    name: str
    source: RasterLayer | TileLayer | AoiOutline
    vis_params: Mapping[str, Any]
    shown: bool = True


class MapLayerRegistry:
    """Explicit stand-in for an interactive console map.

    Layers are kept in registration order, which is also their draw order.
    """

    def __init__(self) -> None:
        self._layers: list[MapLayer] = []
        self.center: tuple[float, float] | None = None  # (lon, lat)
        self.zoom: float | None = None

    @property
    def layers(self) -> tuple[MapLayer, ...]:
        return tuple(self._layers)

    def set_center(self, lon: float, lat: float, zoom: float) -> None:
        self.center = (float(lon), float(lat))
        self.zoom = float(zoom)

    def center_object(self, aoi: AreaOfInterest, zoom: float) -> None:
        lon, lat = aoi.centroid
        self.set_center(lon, lat, zoom)

    def add_layer(
        self,
        source: RasterLayer | TileLayer | AoiOutline,
        vis_params: Mapping[str, Any] | None = None,
        name: str | None = None,
        shown: bool = True,
    ) -> MapLayer:
        if not isinstance(source, (RasterLayer, TileLayer, AoiOutline)):
            raise TypeError(f"Unsupported map layer source: {type(source).__name__}")
        layer = MapLayer(
            name=name or f"Layer {len(self._layers) + 1}",
            source=source,
            vis_params=dict(vis_params or {}),
            shown=shown,
        )
        self._layers.append(layer)
        return layer

    def get(self, name: str) -> MapLayer:
        for layer in self._layers:
            if layer.name == name:
                return layer
        raise KeyError(name)


def encode_png(rgba) -> bytes:
    _, height, width = rgba.shape
    with warnings.catch_warnings():
        warnings.simplefilter("ignore", NotGeoreferencedWarning)
        with MemoryFile() as memfile:
            with memfile.open(driver="PNG", width=width, height=height, count=4, dtype="uint8") as dst:
                dst.write(rgba)
            return memfile.read()


def _raster_overlay(layer: RasterLayer, vis_params: Mapping[str, Any]) -> dict[str, Any]:
    wgs84 = reproject_layer(layer, "EPSG:4326")
    png = encode_png(colorize(wgs84.values, vis_params))
    west, south, east, north = wgs84.bounds
    return {
        "kind": "image",
        "url": "data:image/png;base64," + base64.b64encode(png).decode("ascii"),
        "bounds": [[south, west], [north, east]],
    }


def _outline_style(style: Mapping[str, Any]) -> dict[str, Any]:
    fill = str(style.get("fillColor", "00000000"))
    return {
        "color": css_color(str(style.get("color", "black"))),
        "weight": float(style.get("width", 2)),
        "opacity": 1,
        "fillColor": css_color(fill),
        "fillOpacity": 0 if len(fill.lstrip("#")) == 8 and fill.lstrip("#")[-2:] == "00" else 0.2,
    }


def layer_to_config(layer: MapLayer) -> dict[str, Any]:
    source = layer.source
    if isinstance(source, RasterLayer):
        payload = _raster_overlay(source, layer.vis_params)
    elif isinstance(source, TileLayer):
        payload = {"kind": "tiles", "url": source.url_template, "attribution": source.attribution}
    else:
        payload = {
            "kind": "geojson",
            "data": {"type": "Feature", "properties": {"aoi_id": source.aoi.aoi_id}, "geometry": source.aoi.geometry},
            "style": _outline_style(source.style),
        }
    legend = legend_gradient(layer.vis_params) if layer.vis_params.get("palette") else ""
    return {"name": layer.name, "shown": layer.shown, "legend": legend, **payload}


def render_map_html(registry: MapLayerRegistry, *, title: str) -> str:
    if registry.center is None or registry.zoom is None:
        raise RuntimeError("Map has no center; call center_object() before rendering")

    config = {
        "center": {"lon": registry.center[0], "lat": registry.center[1]},
        "zoom": registry.zoom,
        "layers": [layer_to_config(layer) for layer in registry.layers],
    }
    config_json = json.dumps(config, sort_keys=True, ensure_ascii=False).replace("</", "<\\/")

    return f"""<!doctype html>
<html lang=\"en\">
<head>
  <meta charset=\"utf-8\" />
  <meta name=\"viewport\" content=\"width=device-width, initial-scale=1\" />
  <title>{html.escape(title)}</title>
  <link
      rel=\"stylesheet\"
      href=\"https://unpkg.com/leaflet@1.9.4/dist/leaflet.css\"
      integrity=\"sha256-p4NxAoJBhIIN+hmNHrzRCf9tD/miZyoHS5obTRR9BMY=\"
      crossorigin=\"\"
  />
  <script
      src=\"https://unpkg.com/leaflet@1.9.4/dist/leaflet.js\"
      integrity=\"sha256-20nQCchB9co0qIjJZRGuk2/Z9VM+kNiyxNV1lvTlZBo=\"
      crossorigin=\"\"
  ></script>
  <style>
    body {{ font-family: ui-sans-serif, system-ui, -apple-system, Segoe UI, Roboto, Helvetica, Arial; margin: 0; }}
    #map {{ position: absolute; top: 0; bottom: 0; width: 100%; }}
    .legend {{ background: #fff; padding: 8px 10px; border-radius: 6px; line-height: 1.4; }}
    .legend .swatch {{ display: inline-block; width: 80px; height: 10px; margin-right: 6px; border: 1px solid #ccc; }}
  </style>
</head>
<body>
  <div id=\"map\"></div>
  <script id=\"map-config\" type=\"application/json\">{config_json}</script>
  <script>
    (function () {{
      const config = JSON.parse(document.getElementById('map-config').textContent);
      const map = L.map('map', {{ zoomControl: true, zoomSnap: 0.5 }})
        .setView([config.center.lat, config.center.lon], config.zoom);
      const satellite = L.tileLayer(
        'https://server.arcgisonline.com/ArcGIS/rest/services/World_Imagery/MapServer/tile/{{z}}/{{y}}/{{x}}',
        {{ attribution: 'Tiles © Esri — Source: Esri, Maxar, Earthstar Geographics, and the GIS User Community' }},
      ).addTo(map);

      const overlays = {{}};
      const legend = L.control({{ position: 'bottomright' }});
      legend.onAdd = function () {{
        const div = L.DomUtil.create('div', 'legend');
        config.layers.forEach((item) => {{
          if (!item.legend) return;
          div.innerHTML += `<div><span class=\"swatch\" style=\"background: ${{item.legend}}\"></span>${{item.name}}</div>`;
        }});
        return div;
      }};

      config.layers.forEach((item) => {{
        let layer = null;
        if (item.kind === 'image') {{
          layer = L.imageOverlay(item.url, item.bounds, {{ opacity: 1 }});
        }} else if (item.kind === 'tiles') {{
          layer = L.tileLayer(item.url, {{ attribution: item.attribution }});
        }} else if (item.kind === 'geojson') {{
          layer = L.geoJSON(item.data, {{ style: item.style }});
        }}
        if (!layer) return;
        if (item.shown) layer.addTo(map);
        overlays[item.name] = layer;
      }});

      L.control.layers({{ 'Satellite': satellite }}, overlays, {{ collapsed: false }}).addTo(map);
      legend.addTo(map);
    }})();
  </script>
</body>
</html>
"""
