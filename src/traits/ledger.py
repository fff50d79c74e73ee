"""Run-scoped record of DNA already produced, with the bounded retry search."""

from __future__ import annotations

import logging
import threading

from src.engine.errors import SearchSpaceExhausted
from src.traits.catalog import Layer
from src.traits.dna import filter_for_uniqueness
from src.traits.selector import select_dna

logger = logging.getLogger(__name__)

MAX_DNA_ATTEMPTS = 10_000


class UniquenessLedger:
    """Set of filtered DNA strings.  Check-and-insert is serialised by a lock."""

    def __init__(self):
        self._seen: set[str] = set()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._seen)

    def __contains__(self, dna: str) -> bool:
        return filter_for_uniqueness(dna) in self._seen

    def is_unique(self, dna: str) -> bool:
        return dna not in self

    def add(self, dna: str) -> None:
        with self._lock:
            self._seen.add(filter_for_uniqueness(dna))

    def claim(self, dna: str) -> bool:
        """Insert ``dna`` if unseen.  Returns False if it was already taken."""
        key = filter_for_uniqueness(dna)
        with self._lock:
            if key in self._seen:
                return False
            self._seen.add(key)
            return True

    def reset(self) -> None:
        with self._lock:
            self._seen.clear()


def find_unique_dna(
    layers: list[Layer],
    ledger: UniquenessLedger,
    rng=None,
    max_attempts: int = MAX_DNA_ATTEMPTS,
) -> str:
    """Draw DNA until one is absent from the ledger.

    Raises SearchSpaceExhausted after ``max_attempts`` redraws all collide.
    """
    dna = select_dna(layers, rng)
    attempts = 0
    while not ledger.is_unique(dna):
        if attempts >= max_attempts:
            raise SearchSpaceExhausted(attempts)
        dna = select_dna(layers, rng)
        attempts += 1
    if attempts:
        logger.debug("Unique DNA found after %d redraws", attempts)
    return dna
