"""Shared fixtures: tiny PNG layer folders and in-memory layers."""
from __future__ import annotations

import random
from pathlib import Path

import pytest
from PIL import Image

from src.engine.config import GenerationConfig
from src.traits.catalog import Layer, TraitElement

SIZE = 4


def solid(color, size=SIZE) -> Image.Image:
    """Opaque RGBA square of one colour."""
    return Image.new("RGBA", (size, size), color)


def make_element(element_id, filename, color=(255, 0, 0, 255), weight=1, name=None) -> TraitElement:
    return TraitElement(
        id=element_id,
        name=name or filename.rsplit(".", 1)[0].split("#")[0],
        filename=filename,
        source=solid(color),
        weight=weight,
    )


def write_png(path: Path, color, size=SIZE) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    solid(color, size).save(path)
    return path


@pytest.fixture
def rng():
    return random.Random(1234)


@pytest.fixture
def two_layers():
    """Layer A: Red.  Layer B: Circle (weight 3), Square (weight 1)."""
    a = Layer(name="A", elements=[make_element(0, "Red.png", (255, 0, 0, 255))])
    b = Layer(name="B", elements=[
        make_element(0, "Circle#3.png", (0, 0, 255, 255), weight=3),
        make_element(1, "Square#1.png", (0, 255, 0, 255), weight=1),
    ])
    return [a, b]


@pytest.fixture
def small_config():
    return GenerationConfig(
        name_prefix="Test", description="A test collection",
        edition_size=1, width=SIZE, height=SIZE,
    )


@pytest.fixture
def layers_dir(tmp_path):
    """On-disk layers folder with three layers and nine combinations."""
    root = tmp_path / "layers"
    write_png(root / "1-Body" / "Plain#2.png", (200, 200, 200, 255))
    write_png(root / "1-Body" / "Spotted#1.png", (120, 90, 60, 255))
    write_png(root / "1-Body" / "Gold#1.png", (220, 180, 0, 255))
    write_png(root / "2-Eyes" / "Round.png", (0, 0, 0, 255))
    write_png(root / "2-Eyes" / "Sleepy#2.png", (40, 40, 40, 255))
    write_png(root / "2-Eyes" / "Laser#1.png", (255, 0, 0, 255))
    write_png(root / "3-Hat" / "Cap.png", (0, 0, 200, 255))
    (root / "3-Hat" / "notes.txt").write_text("not an image")
    (root / "empty").mkdir()
    return root
