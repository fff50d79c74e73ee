"""DNA codec: the string encoding of one trait selection per layer.

A DNA is one token per layer, in layer order, joined by ``|``::

    0:Red#1.png|3:Hat.png?bypassDNA=true|1:Square#1.png

Each token is ``{element id}:{filename}`` plus an option query string.  The
only option today is ``bypassDNA=true``, inherited from layers that are
excluded from duplicate detection.
"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from typing import Iterable

from src.traits.catalog import BlendMode, Layer, TraitElement

logger = logging.getLogger(__name__)

DNA_DELIMITER = "|"
ID_SEPARATOR = ":"
OPTION_PREFIX = "?"
BYPASS_OPTION = "bypassDNA"
BYPASS_MARKER = f"{OPTION_PREFIX}{BYPASS_OPTION}=true"


@dataclass(frozen=True)
class DNA:
    raw: str
    hash: str

    @classmethod
    def from_raw(cls, raw: str) -> DNA:
        return cls(raw=raw, hash=hash_dna(raw))

    @property
    def filtered(self) -> str:
        return filter_for_uniqueness(self.raw)


@dataclass(frozen=True)
class ResolvedLayer:
    """A layer paired with the element a DNA selects from it."""
    layer: Layer
    element: TraitElement

    @property
    def blend(self) -> BlendMode:
        return self.layer.blend

    @property
    def opacity(self) -> float:
        return self.layer.opacity

    def attribute(self) -> dict:
        return {"trait_type": self.layer.display_name, "value": self.element.name}


# ------------------------------------------------------------------
# Token helpers
# ------------------------------------------------------------------

def encode_token(layer: Layer, element: TraitElement) -> str:
    token = f"{element.id}{ID_SEPARATOR}{element.filename}"
    if layer.bypass_dna:
        token += BYPASS_MARKER
    return token


def strip_options(token: str) -> str:
    return token.split(OPTION_PREFIX, 1)[0]


def token_options(token: str) -> dict[str, str]:
    if OPTION_PREFIX not in token:
        return {}
    query = token.split(OPTION_PREFIX, 1)[1]
    options = {}
    for setting in query.split("&"):
        key, _, value = setting.partition("=")
        if key:
            options[key] = value
    return options


def is_bypassed(token: str) -> bool:
    return token_options(token).get(BYPASS_OPTION) == "true"


def element_id(token: str) -> int:
    """Element id of a token; anything unparsable reads as 0."""
    head = strip_options(token).split(ID_SEPARATOR, 1)[0]
    try:
        return int(head)
    except ValueError:
        return 0


# ------------------------------------------------------------------
# Codec
# ------------------------------------------------------------------

def encode(selections: Iterable[tuple[Layer, TraitElement]]) -> str:
    return DNA_DELIMITER.join(encode_token(layer, element) for layer, element in selections)


def decode(dna: str, layers: list[Layer]) -> list[ResolvedLayer]:
    """Resolve each layer's selected element from a DNA string.

    A missing token or an id the layer does not contain resolves to the
    layer's first element.
    """
    tokens = dna.split(DNA_DELIMITER) if dna else []
    resolved = []
    for index, layer in enumerate(layers):
        token = tokens[index] if index < len(tokens) else ""
        element = layer.find(element_id(token)) if token else None
        if element is None:
            logger.warning(
                "DNA token %r does not resolve in layer '%s'; using '%s'",
                token, layer.name, layer.elements[0].filename,
            )
            element = layer.elements[0]
        resolved.append(ResolvedLayer(layer, element))
    return resolved


def filter_for_uniqueness(dna: str) -> str:
    """Drop bypass-marked tokens.  Used for comparison only, never for rendering."""
    return DNA_DELIMITER.join(
        token for token in dna.split(DNA_DELIMITER) if not is_bypassed(token)
    )


def hash_dna(dna: str) -> str:
    return hashlib.sha1(dna.encode("utf-8")).hexdigest()
