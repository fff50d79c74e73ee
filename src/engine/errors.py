"""Error taxonomy for collection generation.

Cancellation is not an error: a stopped run ends in the ``stopped`` state
without raising.
"""

from __future__ import annotations


class GenerationError(Exception):
    """Base class for every failure surfaced by the generation engine."""


class ConfigurationError(GenerationError):
    """Layers or config that can never produce a valid run."""


class SearchSpaceExhausted(GenerationError):
    def __init__(self, attempts: int):
        self.attempts = attempts
        super().__init__(
            f"Failed to generate unique DNA after {attempts} attempts. "
            "You need more layers or elements."
        )


class AssetLoadError(GenerationError):
    def __init__(self, layer: str, filename: str, reason: str = ""):
        self.layer = layer
        self.filename = filename
        msg = f"Could not load trait image '{filename}' in layer '{layer}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)
