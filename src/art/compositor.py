"""Layer compositing onto a fixed-size RGBA buffer.

Layers are painted bottom to top with a blend mode and a global opacity,
following the separable blend modes of W3C Compositing and Blending Level 1, then
source-over alpha compositing.  Every layer image is scaled to the buffer
with nearest-neighbour sampling so pixel art stays crisp and the output is
deterministic.

The compositor knows nothing about DNA or traits: it paints whatever
ordered ``(image, blend, opacity)`` triples it is handed.
"""

from __future__ import annotations

import io
import random
from typing import Callable, Iterable

import numpy as np
from PIL import Image

from src.art.colors import hex_to_rgb, hsl_to_rgb
from src.traits.catalog import BlendMode

Paint = tuple[Image.Image, BlendMode, float]


# ------------------------------------------------------------------
# Blend functions B(Cb, Cs): backdrop and source colour in [0, 1]
# ------------------------------------------------------------------

def _normal(cb: np.ndarray, cs: np.ndarray) -> np.ndarray:
    return cs


def _multiply(cb: np.ndarray, cs: np.ndarray) -> np.ndarray:
    return cb * cs


def _screen(cb: np.ndarray, cs: np.ndarray) -> np.ndarray:
    return cb + cs - cb * cs


def _hard_light(cb: np.ndarray, cs: np.ndarray) -> np.ndarray:
    return np.where(cs <= 0.5, _multiply(cb, 2.0 * cs), _screen(cb, 2.0 * cs - 1.0))


def _overlay(cb: np.ndarray, cs: np.ndarray) -> np.ndarray:
    # Overlay is hard-light with the operands swapped
    return _hard_light(cs, cb)


def _darken(cb: np.ndarray, cs: np.ndarray) -> np.ndarray:
    return np.minimum(cb, cs)


def _lighten(cb: np.ndarray, cs: np.ndarray) -> np.ndarray:
    return np.maximum(cb, cs)


def _color_dodge(cb: np.ndarray, cs: np.ndarray) -> np.ndarray:
    with np.errstate(divide="ignore", invalid="ignore"):
        out = np.minimum(1.0, cb / (1.0 - cs))
    out = np.where(cs >= 1.0, 1.0, out)
    return np.where(cb <= 0.0, 0.0, out)


def _color_burn(cb: np.ndarray, cs: np.ndarray) -> np.ndarray:
    with np.errstate(divide="ignore", invalid="ignore"):
        out = 1.0 - np.minimum(1.0, (1.0 - cb) / cs)
    out = np.where(cs <= 0.0, 0.0, out)
    return np.where(cb >= 1.0, 1.0, out)


def _soft_light(cb: np.ndarray, cs: np.ndarray) -> np.ndarray:
    d = np.where(cb <= 0.25, ((16.0 * cb - 12.0) * cb + 4.0) * cb, np.sqrt(cb))
    return np.where(
        cs <= 0.5,
        cb - (1.0 - 2.0 * cs) * cb * (1.0 - cb),
        cb + (2.0 * cs - 1.0) * (d - cb),
    )


def _difference(cb: np.ndarray, cs: np.ndarray) -> np.ndarray:
    return np.abs(cb - cs)


def _exclusion(cb: np.ndarray, cs: np.ndarray) -> np.ndarray:
    return cb + cs - 2.0 * cb * cs


BLEND_FUNCTIONS: dict[BlendMode, Callable[[np.ndarray, np.ndarray], np.ndarray]] = {
    BlendMode.NORMAL: _normal,
    BlendMode.MULTIPLY: _multiply,
    BlendMode.SCREEN: _screen,
    BlendMode.OVERLAY: _overlay,
    BlendMode.DARKEN: _darken,
    BlendMode.LIGHTEN: _lighten,
    BlendMode.COLOR_DODGE: _color_dodge,
    BlendMode.COLOR_BURN: _color_burn,
    BlendMode.HARD_LIGHT: _hard_light,
    BlendMode.SOFT_LIGHT: _soft_light,
    BlendMode.DIFFERENCE: _difference,
    BlendMode.EXCLUSION: _exclusion,
}


# ------------------------------------------------------------------
# Compositor
# ------------------------------------------------------------------

class Compositor:
    """Reusable paint buffer.  One instance serves every edition of a run."""

    def __init__(self, width: int, height: int):
        if width < 1 or height < 1:
            raise ValueError(f"Invalid canvas size {width}x{height}")
        self.width = width
        self.height = height
        self.canvas = np.zeros((height, width, 4), dtype=np.float64)

    def clear(self) -> None:
        self.canvas.fill(0.0)

    def fill(self, rgb: tuple[float, float, float]) -> None:
        self.canvas[..., :3] = rgb
        self.canvas[..., 3] = 1.0

    def draw_background(self, background, rng=None) -> None:
        """Fill with the static colour, or a random hue at the configured brightness.

        ``background`` is a BackgroundConfig; nothing happens unless its
        ``generate`` flag is set.
        """
        if background is None or not background.generate:
            return
        if background.static and background.color:
            self.fill(hex_to_rgb(background.color))
        else:
            hue = (rng or random).randrange(360)
            self.fill(hsl_to_rgb(hue, 1.0, background.brightness / 100.0))

    def _prepare(self, image: Image.Image) -> np.ndarray:
        if image.mode != "RGBA":
            image = image.convert("RGBA")
        if image.size != (self.width, self.height):
            image = image.resize((self.width, self.height), Image.NEAREST)
        return np.asarray(image, dtype=np.float64) / 255.0

    def draw_layer(self, image: Image.Image, blend: BlendMode = BlendMode.NORMAL,
                   opacity: float = 1.0) -> None:
        src = self._prepare(image)
        cs = src[..., :3]
        a_s = src[..., 3:4] * opacity
        cb = self.canvas[..., :3]
        a_b = self.canvas[..., 3:4]

        blended = BLEND_FUNCTIONS[BlendMode.parse(blend)](cb, cs)
        # Where the backdrop is transparent the source colour shows unblended
        mixed = (1.0 - a_b) * cs + a_b * blended

        a_o = a_s + a_b * (1.0 - a_s)
        premul = a_s * mixed + a_b * cb * (1.0 - a_s)
        color = np.divide(premul, a_o, out=np.zeros_like(premul), where=a_o > 0.0)

        self.canvas = np.clip(np.concatenate([color, a_o], axis=2), 0.0, 1.0)

    def render(self, paints: Iterable[Paint], background=None, rng=None) -> None:
        """Clear, fill the background if enabled, then paint layers in order."""
        self.clear()
        self.draw_background(background, rng)
        for image, blend, opacity in paints:
            self.draw_layer(image, blend, opacity)

    def to_array(self) -> np.ndarray:
        """(H, W, 4) uint8 RGBA."""
        return np.round(self.canvas * 255.0).astype(np.uint8)

    def to_image(self) -> Image.Image:
        return Image.fromarray(self.to_array(), "RGBA")

    def finalize(self, fmt: str = "PNG") -> bytes:
        buf = io.BytesIO()
        self.to_image().save(buf, format=fmt)
        return buf.getvalue()
