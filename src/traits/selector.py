"""Weighted random trait selection.

Each layer is drawn independently: an integer in ``[0, total_weight)`` is
walked down the element list, subtracting weights until it goes negative.
Weights therefore partition a contiguous range and no tie-break is needed.
"""

from __future__ import annotations

import random

from src.engine.errors import ConfigurationError
from src.traits.catalog import Layer, TraitElement
from src.traits.dna import encode


def select_element(layer: Layer, rng=None) -> TraitElement:
    rng = rng or random
    total = layer.total_weight
    if total <= 0:
        raise ConfigurationError(f"Layer '{layer.name}' has zero total weight")

    remaining = rng.randrange(total)
    for element in layer.elements:
        remaining -= element.weight
        if remaining < 0:
            return element
    # Unreachable while weights are non-negative.
    raise ConfigurationError(f"Layer '{layer.name}' has inconsistent weights")


def select_dna(layers: list[Layer], rng=None) -> str:
    return encode((layer, select_element(layer, rng)) for layer in layers)
