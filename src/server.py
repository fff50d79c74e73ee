"""Trait Forge -- HTTP control surface.

Load a layers folder, start a run on a background thread, watch progress,
stop or reset, and fetch finished editions.

Launch:
    python -m src.server
    # or: uvicorn src.server:app --reload
"""

from __future__ import annotations

import base64
import io
import logging
import random
import threading

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel

from src.engine.assembler import ArtworkAssembler, ArtworkRecord
from src.engine.config import GenerationConfig, LayerOptions
from src.engine.errors import ConfigurationError, GenerationError
from src.traits.catalog import Layer, has_background_layer, scan_layers_folder

logger = logging.getLogger(__name__)

app = FastAPI(title="Trait Forge")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------------------------------------------------------------------
# Application state
# ---------------------------------------------------------------------------

class AppState:
    def __init__(self):
        self.layers: list[Layer] = []
        self.assembler = ArtworkAssembler()
        self.records: list[ArtworkRecord] = []
        self._thread: threading.Thread | None = None
        self._lock = threading.Lock()

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    # ---- Layers ----

    def load_layers(self, path: str, layers_order: list[LayerOptions] | None = None) -> None:
        self.layers = scan_layers_folder(path, layers_order or None)

    def layers_payload(self) -> dict:
        return {
            "layers": [
                {
                    "name": layer.name,
                    "display_name": layer.display_name,
                    "blend": layer.blend.value,
                    "opacity": layer.opacity,
                    "bypass_dna": layer.bypass_dna,
                    "elements": [
                        {"id": e.id, "name": e.name, "filename": e.filename,
                         "weight": e.weight, "rarity": layer.rarity(e)}
                        for e in layer.elements
                    ],
                }
                for layer in self.layers
            ],
            "has_background_layer": has_background_layer(self.layers),
        }

    # ---- Run ----

    def start(self, config: GenerationConfig) -> bool:
        """Start a run unless one is active.  Returns False if one is."""
        with self._lock:
            if self.running:
                return False
            # Reset here so a stop sent before the worker begins still counts
            self.assembler.reset()
            self.records = []
            self._thread = threading.Thread(
                target=self._run, args=(config, list(self.layers)), daemon=True,
            )
            self._thread.start()
        return True

    def _run(self, config: GenerationConfig, layers: list[Layer]) -> None:
        # Outcome of a failed run is recorded on the run context
        try:
            for record in self.assembler.generate(config, layers, reset=False):
                with self._lock:
                    self.records.append(record)
        except GenerationError as exc:
            logger.warning("Run ended with error: %s", exc)
        except Exception:
            logger.exception("Run crashed")

    def wait(self, timeout: float | None = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout)

    def stop(self) -> None:
        self.assembler.stop()

    def reset(self) -> None:
        self.stop()
        self.wait()
        self.assembler.reset()
        self.records = []

    def get_record(self, edition: int) -> ArtworkRecord | None:
        with self._lock:
            for record in self.records:
                if record.edition == edition:
                    return record
        return None

    def get_state_payload(self) -> dict:
        ctx = self.assembler.context
        error = ctx.error
        return {
            "state": ctx.state.value,
            "running": self.running,
            "progress": ctx.progress.to_dict() if ctx.progress else None,
            "error": str(error) if error else None,
            "error_type": type(error).__name__ if error else None,
            "editions": len(self.records),
            "layers": len(self.layers),
        }


state = AppState()


def _image_to_base64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------

class LayersRequest(BaseModel):
    path: str
    layers_order: list[LayerOptions] = []

class GenerateRequest(BaseModel):
    config: GenerationConfig = GenerationConfig()

class PreviewRequest(BaseModel):
    config: GenerationConfig = GenerationConfig()
    seed: int | None = None


# ---------------------------------------------------------------------------
# API routes
# ---------------------------------------------------------------------------

@app.get("/api/state")
def api_state():
    return JSONResponse(state.get_state_payload())


@app.post("/api/layers")
def api_layers(req: LayersRequest):
    if state.running:
        return JSONResponse({"error": "Generation in progress"}, status_code=409)
    try:
        state.load_layers(req.path, req.layers_order)
    except ConfigurationError as exc:
        return JSONResponse({"error": str(exc)}, status_code=400)
    return JSONResponse(state.layers_payload())


@app.get("/api/layers")
def api_get_layers():
    return JSONResponse(state.layers_payload())


@app.post("/api/generate")
def api_generate(req: GenerateRequest):
    if not state.layers:
        return JSONResponse({"error": "No layers loaded"}, status_code=400)
    if not state.start(req.config):
        return JSONResponse({"error": "Generation in progress"}, status_code=409)
    return JSONResponse(state.get_state_payload())


@app.post("/api/stop")
def api_stop():
    state.stop()
    return JSONResponse(state.get_state_payload())


@app.post("/api/reset")
def api_reset():
    state.reset()
    return JSONResponse(state.get_state_payload())


@app.get("/api/artworks")
def api_artworks():
    return JSONResponse([r.metadata for r in list(state.records)])


@app.get("/api/artworks/{edition}")
def api_artwork(edition: int):
    record = state.get_record(edition)
    if record is None:
        return JSONResponse({"error": "Unknown edition"}, status_code=404)
    return JSONResponse({
        "edition": record.edition,
        "dna": record.dna.raw,
        "metadata": record.metadata,
        "image": _image_to_base64(record.image),
    })


@app.get("/api/artworks/{edition}/image")
def api_artwork_image(edition: int):
    record = state.get_record(edition)
    if record is None:
        return JSONResponse({"error": "Unknown edition"}, status_code=404)
    return Response(content=record.image, media_type="image/png")


@app.post("/api/preview")
def api_preview(req: PreviewRequest):
    if not state.layers:
        return JSONResponse({"error": "No layers loaded"}, status_code=400)
    assembler = ArtworkAssembler(rng=random.Random(req.seed))
    try:
        img = assembler.preview(req.config, state.layers)
    except GenerationError as exc:
        return JSONResponse({"error": str(exc)}, status_code=400)
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return JSONResponse({"image": _image_to_base64(buf.getvalue())})


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    import uvicorn
    logging.basicConfig(level=logging.INFO)
    print("Starting server at http://localhost:8000")
    uvicorn.run(app, host="0.0.0.0", port=8000)
