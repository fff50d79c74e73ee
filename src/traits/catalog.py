"""Trait catalog: ordered layers of weighted trait elements.

A layer is a folder of images.  Each image file is one trait element whose
display name and rarity weight come from its filename::

    Red Eyes#20.png   ->  name "Red Eyes", weight 20
    Plain.png         ->  name "Plain",    weight 1

Layer order is paint order (later layers paint over earlier ones) and the
field order of the DNA string.
"""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Union

from PIL import Image

from src.engine.errors import AssetLoadError, ConfigurationError

if TYPE_CHECKING:
    from src.engine.config import LayerOptions

logger = logging.getLogger(__name__)

RARITY_DELIMITER = "#"
IMAGE_EXTENSIONS = (".png", ".jpg", ".jpeg", ".gif", ".webp", ".bmp")
BACKGROUND_KEYWORD = "background"

# Characters reserved by the DNA string format.
RESERVED_FILENAME_CHARS = ("|", "?")

ImageSource = Union[Path, bytes, Image.Image]


class BlendMode(str, Enum):
    NORMAL = "normal"
    MULTIPLY = "multiply"
    SCREEN = "screen"
    OVERLAY = "overlay"
    DARKEN = "darken"
    LIGHTEN = "lighten"
    COLOR_DODGE = "color-dodge"
    COLOR_BURN = "color-burn"
    HARD_LIGHT = "hard-light"
    SOFT_LIGHT = "soft-light"
    DIFFERENCE = "difference"
    EXCLUSION = "exclusion"

    @classmethod
    def parse(cls, value: str | BlendMode) -> BlendMode:
        """Accept enum members, their values, or the canvas alias ``source-over``."""
        if isinstance(value, cls):
            return value
        key = str(value).strip().lower().replace("_", "-")
        if key == "source-over":
            return cls.NORMAL
        try:
            return cls(key)
        except ValueError:
            valid = ", ".join(m.value for m in cls)
            raise ConfigurationError(
                f"Unknown blend mode '{value}' (expected one of: {valid})"
            ) from None


def parse_trait_filename(filename: str) -> tuple[str, int]:
    """Split a trait filename into ``(name, weight)``.

    The weight is the integer after the last ``#`` of the stem.  A missing,
    unparsable or negative weight falls back to 1; ``#0`` is kept so the
    element is never drawn.
    """
    stem = filename.rsplit(".", 1)[0] if "." in filename else filename

    weight = 1
    if RARITY_DELIMITER in stem:
        try:
            parsed = int(stem.rsplit(RARITY_DELIMITER, 1)[1])
        except ValueError:
            parsed = 1
        weight = parsed if parsed >= 0 else 1

    name = stem.split(RARITY_DELIMITER, 1)[0] or stem
    return name, weight


@dataclass(frozen=True)
class TraitElement:
    id: int
    name: str
    filename: str
    source: ImageSource = field(repr=False, compare=False)
    weight: int = 1

    @classmethod
    def from_file(cls, element_id: int, path: str | Path) -> TraitElement:
        path = Path(path)
        name, weight = parse_trait_filename(path.name)
        return cls(id=element_id, name=name, filename=path.name, source=path, weight=weight)

    def load_image(self, layer_name: str = "") -> Image.Image:
        """Decode the source into an RGBA image."""
        try:
            if isinstance(self.source, Image.Image):
                return self.source.convert("RGBA")
            if isinstance(self.source, (bytes, bytearray)):
                img = Image.open(io.BytesIO(self.source))
            else:
                img = Image.open(self.source)
            img.load()
            return img.convert("RGBA")
        except (OSError, ValueError, Image.DecompressionBombError) as exc:
            raise AssetLoadError(layer_name, self.filename, str(exc)) from exc


@dataclass(frozen=True)
class Layer:
    name: str
    elements: tuple[TraitElement, ...]
    display_name: str = ""
    blend: BlendMode = BlendMode.NORMAL
    opacity: float = 1.0
    bypass_dna: bool = False

    def __post_init__(self):
        # Normalise so callers may pass lists and raw blend strings.
        object.__setattr__(self, "elements", tuple(self.elements))
        object.__setattr__(self, "blend", BlendMode.parse(self.blend))
        if not self.display_name:
            object.__setattr__(self, "display_name", self.name)

    @property
    def total_weight(self) -> int:
        return sum(e.weight for e in self.elements)

    def rarity(self, element: TraitElement) -> float:
        """Percentage chance of ``element`` being drawn, to two decimals."""
        total = self.total_weight
        return round(element.weight / total * 100, 2) if total else 0.0

    def find(self, element_id: int) -> TraitElement | None:
        for element in self.elements:
            if element.id == element_id:
                return element
        return None


# ------------------------------------------------------------------
# Loading from disk
# ------------------------------------------------------------------

def _image_files(folder: Path) -> list[Path]:
    return sorted(
        (p for p in folder.iterdir()
         if p.is_file() and p.suffix.lower() in IMAGE_EXTENSIONS),
        key=lambda p: p.name,
    )


def _apply_weights(folder: Path, elements: tuple[TraitElement, ...],
                   weights: dict[str, int]) -> tuple[TraitElement, ...]:
    known = {e.filename for e in elements}
    unknown = sorted(set(weights) - known)
    if unknown:
        raise ConfigurationError(
            f"Weight override for unknown file(s) in {folder.name}: {', '.join(unknown)}"
        )
    return tuple(
        replace(e, weight=weights[e.filename]) if e.filename in weights else e
        for e in elements
    )


def load_layer(folder: str | Path, options: LayerOptions | None = None) -> Layer:
    """Build a layer from the image files of one folder, sorted by name.

    ``options.weights`` maps filenames to rarity weights that replace the
    ones parsed from the filenames.
    """
    folder = Path(folder)
    if not folder.is_dir():
        raise ConfigurationError(f"Layer folder not found: {folder}")

    elements = tuple(
        TraitElement.from_file(i, path)
        for i, path in enumerate(_image_files(folder))
    )

    if options is not None and options.weights:
        elements = _apply_weights(folder, elements, options.weights)

    if options is None:
        return Layer(name=folder.name, elements=elements)
    return Layer(
        name=options.name,
        elements=elements,
        display_name=options.display_name or options.name,
        blend=options.blend,
        opacity=options.opacity,
        bypass_dna=options.bypass_dna,
    )


def scan_layers_folder(
    root: str | Path,
    layers_order: list[LayerOptions] | None = None,
) -> list[Layer]:
    """Load every layer under ``root``.

    Without an explicit order each sub-folder holding at least one image
    becomes a layer, sorted by folder name.  With ``layers_order`` exactly
    the named folders are loaded, in that order.
    """
    root = Path(root)
    if not root.is_dir():
        raise ConfigurationError(f"Layers folder not found: {root}")

    if layers_order:
        layers = [load_layer(root / opts.name, opts) for opts in layers_order]
    else:
        layers = []
        for folder in sorted((p for p in root.iterdir() if p.is_dir()), key=lambda p: p.name):
            layer = load_layer(folder)
            if layer.elements:
                layers.append(layer)
            else:
                logger.debug("Skipping folder without images: %s", folder)

    logger.info("Loaded %d layers from %s", len(layers), root)
    return layers


# ------------------------------------------------------------------
# Validation
# ------------------------------------------------------------------

def validate_layers(layers: list[Layer]) -> None:
    """Raise ConfigurationError if the layers cannot drive a generation run."""
    if not layers:
        raise ConfigurationError("No layers to generate from")

    for layer in layers:
        if not layer.elements:
            raise ConfigurationError(f"Layer '{layer.name}' has no trait elements")
        if layer.total_weight <= 0:
            raise ConfigurationError(
                f"Layer '{layer.name}' has zero total weight; "
                "at least one element needs a positive rarity weight"
            )
        if not 0.0 <= layer.opacity <= 1.0:
            raise ConfigurationError(
                f"Layer '{layer.name}' opacity {layer.opacity} is outside [0, 1]"
            )
        for element in layer.elements:
            bad = [c for c in RESERVED_FILENAME_CHARS if c in element.filename]
            if bad:
                raise ConfigurationError(
                    f"Filename '{element.filename}' in layer '{layer.name}' "
                    f"contains reserved character(s): {' '.join(bad)}"
                )


def has_background_layer(layers: list[Layer]) -> bool:
    return any(BACKGROUND_KEYWORD in layer.name.lower() for layer in layers)
