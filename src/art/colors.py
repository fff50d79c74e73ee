"""Colour parsing for background fills.

Colors are (R, G, B) tuples in [0, 1] float range.
"""

from __future__ import annotations

import colorsys


def hex_to_rgb(h: str) -> tuple:
    """Convert '#RRGGBB' or '#RGB' to (r, g, b) floats in [0, 1]."""
    h = h.strip().lstrip("#")
    if len(h) == 3:
        h = "".join(c * 2 for c in h)
    if len(h) != 6:
        raise ValueError(f"Not a hex colour: '#{h}'")
    return tuple(int(h[i : i + 2], 16) / 255.0 for i in (0, 2, 4))


def hsl_to_rgb(hue: float, saturation: float, lightness: float) -> tuple:
    """CSS-style hsl(): hue in degrees, saturation/lightness in [0, 1]."""
    # colorsys orders the arguments h, l, s
    return colorsys.hls_to_rgb((hue % 360) / 360.0, lightness, saturation)


def parse_brightness(value) -> float:
    """Accept 80, 80.0 or '80%' and return the percentage as a float."""
    if isinstance(value, str):
        value = value.strip().rstrip("%").strip()
    return float(value)
