"""Artwork assembler: drives one generation run edition by edition.

For each edition the assembler draws a unique DNA, decodes it into one
resolved element per layer, renders those elements and builds the metadata
attributes from the very same resolved list, so image and metadata can
never describe different traits.

    assembler = ArtworkAssembler()
    for record in assembler.generate(config, layers, on_progress=print):
        save(record)

``generate`` is a plain generator: records stream out one at a time and a
stop request is honoured at the next edition boundary.
"""

from __future__ import annotations

import copy
import logging
import random
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Iterator

from PIL import Image

from src.art.compositor import Compositor
from src.engine.config import BackgroundConfig, GenerationConfig
from src.engine.errors import GenerationError
from src.traits.catalog import Layer, TraitElement, has_background_layer, validate_layers
from src.traits.dna import DNA, ResolvedLayer, decode
from src.traits.ledger import MAX_DNA_ATTEMPTS, UniquenessLedger, find_unique_dna
from src.traits.selector import select_dna

logger = logging.getLogger(__name__)

ENGINE_ID = "trait-forge 0.1.0"
IMAGE_EXTENSION = "png"


class RunState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    STOPPED = "stopped"
    FAILED = "failed"


@dataclass(frozen=True)
class Progress:
    current: int
    total: int
    dna_hash: str | None = None
    failed: bool = False

    @property
    def percentage(self) -> int:
        return round(self.current / self.total * 100) if self.total else 0

    def to_dict(self) -> dict:
        return {
            "current": self.current,
            "total": self.total,
            "percentage": self.percentage,
            "dna_hash": self.dna_hash,
            "failed": self.failed,
        }


@dataclass(frozen=True)
class ArtworkRecord:
    """One finished edition.

    ``metadata`` and ``attributes`` hand out fresh copies, so a caller
    editing what it was given cannot change the record.
    """
    edition: int
    dna: DNA
    image: bytes = field(repr=False)
    _metadata: dict = field(compare=False, repr=False)

    @property
    def metadata(self) -> dict:
        return copy.deepcopy(self._metadata)

    @property
    def attributes(self) -> list[dict]:
        return self.metadata["attributes"]


class RunContext:
    """Everything scoped to one run: the ledger, the stop signal and the outcome."""

    def __init__(self):
        self.ledger = UniquenessLedger()
        self.stop_event = threading.Event()
        self.state = RunState.IDLE
        self.error: Exception | None = None
        self.progress: Progress | None = None

    def reset(self) -> None:
        self.ledger.reset()
        self.stop_event.clear()
        self.state = RunState.IDLE
        self.error = None
        self.progress = None

    @property
    def stop_requested(self) -> bool:
        return self.stop_event.is_set()


ProgressCallback = Callable[[Progress], None]


class ArtworkAssembler:
    def __init__(self, context: RunContext | None = None, rng=None,
                 max_attempts: int = MAX_DNA_ATTEMPTS,
                 clock: Callable[[], float] = time.time):
        self.context = context or RunContext()
        self.rng = rng or random.Random()
        self.max_attempts = max_attempts
        self.clock = clock
        self._images: dict[tuple[int, int], Image.Image] = {}

    # ------------------------------------------------------------------
    # Control surface
    # ------------------------------------------------------------------

    @property
    def state(self) -> RunState:
        return self.context.state

    @property
    def error(self) -> Exception | None:
        return self.context.error

    def stop(self) -> None:
        """Request a stop; honoured before the next edition starts."""
        self.context.stop_event.set()

    def reset(self) -> None:
        self.context.reset()
        self._images.clear()

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------

    def generate(
        self,
        config: GenerationConfig,
        layers: list[Layer],
        on_progress: ProgressCallback | None = None,
        reset: bool = True,
    ) -> Iterator[ArtworkRecord]:
        """Yield one ArtworkRecord per edition, 1..edition_size.

        Raises GenerationError on a configuration problem, search space
        exhaustion or an unreadable trait image.  Any other exception while
        building an edition also leaves the run ``failed`` before it
        propagates.  Records already yielded stay valid.

        Pass ``reset=False`` when the caller has already reset the context
        and a stop requested since then must still be honoured.
        """
        if reset:
            self.reset()
        ctx = self.context
        try:
            validate_layers(layers)
        except GenerationError as exc:
            self._fail(exc)
            raise

        background = self._effective_background(config, layers)
        compositor = Compositor(config.width, config.height)
        total = config.edition_size

        ctx.state = RunState.RUNNING
        logger.info("Generating %d editions from %d layers", total, len(layers))

        for edition in range(1, total + 1):
            if ctx.stop_requested:
                ctx.state = RunState.STOPPED
                logger.info("Run stopped after %d of %d editions", edition - 1, total)
                return

            try:
                record = self._build_edition(edition, config, layers, compositor, background)
            except Exception as exc:
                self._fail(exc, edition, total, on_progress)
                raise

            ctx.progress = Progress(edition, total, dna_hash=record.dna.hash)
            if on_progress:
                on_progress(ctx.progress)
            try:
                yield record
            except GeneratorExit:
                # Consumer closed the stream mid-run
                ctx.state = RunState.STOPPED
                raise

        ctx.state = RunState.COMPLETED
        logger.info("Run completed: %d editions", total)

    def _build_edition(
        self,
        edition: int,
        config: GenerationConfig,
        layers: list[Layer],
        compositor: Compositor,
        background: BackgroundConfig | None,
    ) -> ArtworkRecord:
        raw = find_unique_dna(layers, self.context.ledger, self.rng, self.max_attempts)
        resolved = decode(raw, layers)

        compositor.render(self._paints(resolved), background, self.rng)
        image = compositor.finalize()

        dna = DNA.from_raw(raw)
        self.context.ledger.add(raw)
        logger.debug("Edition %d: %s", edition, dna.hash)
        return ArtworkRecord(
            edition=edition,
            dna=dna,
            image=image,
            _metadata=self._metadata(edition, config, dna, resolved),
        )

    def _paints(self, resolved: list[ResolvedLayer]):
        for position, item in enumerate(resolved):
            yield self._load(position, item.layer, item.element), item.blend, item.opacity

    def _load(self, position: int, layer: Layer, element: TraitElement) -> Image.Image:
        # Keyed by layer position: layer names need not be unique
        key = (position, element.id)
        if key not in self._images:
            self._images[key] = element.load_image(layer.name)
        return self._images[key]

    def _metadata(self, edition: int, config: GenerationConfig, dna: DNA,
                  resolved: list[ResolvedLayer]) -> dict:
        return {
            "name": f"{config.name_prefix} #{edition}",
            "description": config.description,
            "image": f"{edition}.{IMAGE_EXTENSION}",
            "dna": dna.hash,
            "edition": edition,
            "date": int(self.clock() * 1000),
            "attributes": [item.attribute() for item in resolved],
            "compiler": ENGINE_ID,
        }

    def _effective_background(self, config: GenerationConfig,
                              layers: list[Layer]) -> BackgroundConfig | None:
        if not config.background.generate:
            return None
        if has_background_layer(layers):
            logger.info("Background layer present; skipping generated background")
            return None
        return config.background

    def _fail(self, exc: Exception, edition: int = 0, total: int = 0,
              on_progress: ProgressCallback | None = None) -> None:
        ctx = self.context
        ctx.state = RunState.FAILED
        ctx.error = exc
        if edition:
            logger.error("Edition %d of %d failed: %s", edition, total, exc)
            ctx.progress = Progress(edition, total, failed=True)
            if on_progress:
                on_progress(ctx.progress)
        else:
            logger.error("Run rejected: %s", exc)

    # ------------------------------------------------------------------
    # Preview
    # ------------------------------------------------------------------

    def preview(self, config: GenerationConfig, layers: list[Layer]) -> Image.Image:
        """Render one random composition without touching the ledger."""
        validate_layers(layers)
        self._images.clear()
        resolved = decode(select_dna(layers, self.rng), layers)
        compositor = Compositor(config.width, config.height)
        compositor.render(
            self._paints(resolved), self._effective_background(config, layers), self.rng,
        )
        return compositor.to_image()
