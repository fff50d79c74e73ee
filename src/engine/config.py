"""Per-run generation parameters.

Models accept both snake_case and the camelCase keys written by the
original web front-end, e.g. ``{"namePrefix": "Punks", "editionSize": 100}``.
"""

from __future__ import annotations

import json
from pathlib import Path

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from src.art.colors import hex_to_rgb, parse_brightness
from src.engine.errors import ConfigurationError
from src.traits.catalog import BlendMode

_MODEL_CONFIG = ConfigDict(frozen=True, populate_by_name=True, alias_generator=to_camel)


class BackgroundConfig(BaseModel):
    model_config = _MODEL_CONFIG

    generate: bool = True
    static: bool = False
    color: str = Field("#000000", validation_alias=AliasChoices("color", "default"))
    brightness: float = Field(80.0, ge=0.0, le=100.0)

    @field_validator("color")
    @classmethod
    def _check_color(cls, v: str) -> str:
        hex_to_rgb(v)
        return v

    @field_validator("brightness", mode="before")
    @classmethod
    def _parse_brightness(cls, v):
        return parse_brightness(v)


class LayerOptions(BaseModel):
    model_config = _MODEL_CONFIG

    name: str
    display_name: str | None = None
    blend: BlendMode = BlendMode.NORMAL
    opacity: float = Field(1.0, ge=0.0, le=1.0)
    bypass_dna: bool = False
    # filename -> rarity weight, replacing the "#weight" suffix
    weights: dict[str, int] = Field(default_factory=dict)

    @field_validator("weights")
    @classmethod
    def _check_weights(cls, v: dict[str, int]) -> dict[str, int]:
        low = sorted(name for name, weight in v.items() if weight < 1)
        if low:
            raise ValueError(f"Rarity weight must be at least 1: {', '.join(low)}")
        return v

    @field_validator("blend", mode="before")
    @classmethod
    def _parse_blend(cls, v):
        try:
            return BlendMode.parse(v)
        except ConfigurationError as exc:
            raise ValueError(str(exc)) from exc


class GenerationConfig(BaseModel):
    model_config = _MODEL_CONFIG

    name_prefix: str = "My Collection"
    description: str = ""
    edition_size: int = Field(5, ge=1)
    width: int = Field(512, ge=1)
    height: int = Field(512, ge=1)
    layers_order: list[LayerOptions] = Field(default_factory=list)
    background: BackgroundConfig = Field(default_factory=BackgroundConfig)

    @classmethod
    def from_dict(cls, data: dict) -> GenerationConfig:
        try:
            return cls.model_validate(data)
        except ValidationError as exc:
            raise ConfigurationError(f"Invalid generation config: {exc}") from exc

    def to_dict(self) -> dict:
        return self.model_dump(mode="json")


def load_config(path: str | Path) -> GenerationConfig:
    path = Path(path)
    try:
        data = json.loads(path.read_text())
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigurationError(f"Could not read config {path}: {exc}") from exc
    return GenerationConfig.from_dict(data)
