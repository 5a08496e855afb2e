from __future__ import annotations

from typing import Any, Mapping, Sequence

import numpy as np


# Named colours accepted in visualisation palettes (CSS names).
NAMED_COLORS: dict[str, str] = {
    "black": "000000",
    "white": "ffffff",
    "red": "ff0000",
    "green": "008000",
    "blue": "0000ff",
    "yellow": "ffff00",
    "orange": "ffa500",
    "purple": "800080",
    "gray": "808080",
    "grey": "808080",
    "cyan": "00ffff",
    "magenta": "ff00ff",
    "brown": "a52a2a",
    "darkgreen": "006400",
}


def parse_color(value: str) -> tuple[int, int, int, int]:
    """RGBA from a colour name or a ``RRGGBB`` / ``RRGGBBAA`` hex string (``#`` optional)."""

    text = str(value).strip().lower()
    text = NAMED_COLORS.get(text, text).lstrip("#")
    if len(text) == 6:
        text += "ff"
    if len(text) != 8:
        raise ValueError(f"Unsupported colour: {value!r}")
    try:
        return tuple(int(text[i : i + 2], 16) for i in range(0, 8, 2))  # type: ignore[return-value]
    except ValueError as exc:
        raise ValueError(f"Unsupported colour: {value!r}") from exc


def css_color(value: str) -> str:
    r, g, b, a = parse_color(value)
    if a == 255:
        return f"#{r:02x}{g:02x}{b:02x}"
    return f"rgba({r},{g},{b},{a / 255:.3f})"


def palette_colors(vis_params: Mapping[str, Any]) -> list[tuple[int, int, int, int]]:
    palette = vis_params.get("palette") or ["black", "white"]
    if isinstance(palette, str):
        palette = [p for p in palette.split(",") if p.strip()]
    return [parse_color(p) for p in palette]


def colorize(values: np.ma.MaskedArray, vis_params: Mapping[str, Any]) -> np.ndarray:
    """Stretch ``values`` linearly between ``min``/``max`` onto the palette.

    Returns a ``(4, rows, cols)`` uint8 RGBA array; masked pixels are fully
    transparent.
    """

    colors = np.array(palette_colors(vis_params), dtype=np.float64)
    vmin = float(vis_params.get("min", 0))
    vmax = float(vis_params.get("max", 1))

    data = np.ma.filled(values, vmin).astype(np.float64)
    if vmax > vmin:
        t = np.clip((data - vmin) / (vmax - vmin), 0.0, 1.0)
    else:
        t = np.zeros_like(data)

    if len(colors) == 1:
        rgba = np.broadcast_to(colors[0][:, None, None], (4, *data.shape)).copy()
    else:
        pos = t * (len(colors) - 1)
        lo = np.floor(pos).astype(int)
        hi = np.minimum(lo + 1, len(colors) - 1)
        frac = pos - lo
        rgba = (colors[lo] * (1.0 - frac)[..., None] + colors[hi] * frac[..., None]).transpose(2, 0, 1)

    out = np.rint(rgba).astype(np.uint8)
    out[3][np.ma.getmaskarray(values)] = 0
    return out


def legend_gradient(vis_params: Mapping[str, Any]) -> str:
    stops: Sequence[str] = [css_color("#%02x%02x%02x%02x" % c) for c in palette_colors(vis_params)]
    if len(stops) == 1:
        return stops[0]
    return f"linear-gradient(to right, {', '.join(stops)})"
