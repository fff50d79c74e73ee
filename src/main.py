#!/usr/bin/env python3
"""Trait Forge -- CLI Interface.

Generates a collection from a folder of layer folders:

    layers/
      Background/   Blue#10.png  Red#1.png
      Body/         Plain.png    Spotted#3.png
      Eyes/         ...

Each edition is written as it is produced:

    output/images/<edition>.png
    output/json/<edition>.json

Usage:
    python -m src.main LAYERS_DIR [--editions N] [--config config.json] [--seed N]
"""

from __future__ import annotations

import argparse
import json
import logging
import random
import signal
import sys
from pathlib import Path

from src.engine.assembler import ArtworkAssembler, ArtworkRecord, Progress, RunState
from src.engine.config import GenerationConfig, load_config
from src.engine.errors import GenerationError
from src.traits.catalog import scan_layers_folder

OUTPUT_DIR = Path("output")


def parse_args(argv=None):
    p = argparse.ArgumentParser(description="Generate a layered trait collection")
    p.add_argument("layers_dir", type=Path, help="Folder holding one sub-folder per layer")
    p.add_argument("--config", type=Path, default=None, help="JSON generation config")
    p.add_argument("--editions", type=int, default=None, help="Collection size")
    p.add_argument("--width", type=int, default=None, help="Output width in pixels")
    p.add_argument("--height", type=int, default=None, help="Output height in pixels")
    p.add_argument("--name-prefix", type=str, default=None, help="Metadata name prefix")
    p.add_argument("--description", type=str, default=None, help="Metadata description")
    p.add_argument("--no-background", action="store_true", help="Disable generated backgrounds")
    p.add_argument("--seed", type=int, default=None, help="Random seed for a reproducible run")
    p.add_argument("--output", type=Path, default=OUTPUT_DIR, help="Output folder (default: output)")
    p.add_argument("--preview", action="store_true", help="Render a single preview.png and exit")
    p.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return p.parse_args(argv)


def build_config(args) -> GenerationConfig:
    config = load_config(args.config) if args.config else GenerationConfig()
    overrides = {
        "edition_size": args.editions,
        "width": args.width,
        "height": args.height,
        "name_prefix": args.name_prefix,
        "description": args.description,
    }
    data = config.model_dump()
    data.update({k: v for k, v in overrides.items() if v is not None})
    if args.no_background:
        data["background"]["generate"] = False
    return GenerationConfig.from_dict(data)


def write_record(record: ArtworkRecord, output: Path) -> None:
    (output / "images" / record.metadata["image"]).write_bytes(record.image)
    (output / "json" / f"{record.edition}.json").write_text(
        json.dumps(record.metadata, indent=2)
    )


def _print_progress(progress: Progress) -> None:
    status = "FAILED" if progress.failed else (progress.dna_hash or "")[:12]
    print(f"[{progress.current}/{progress.total}] {progress.percentage:3d}%  {status}")


def run(args) -> int:
    config = build_config(args)
    layers = scan_layers_folder(args.layers_dir, config.layers_order or None)
    rng = random.Random(args.seed)
    assembler = ArtworkAssembler(rng=rng)

    if args.preview:
        args.output.mkdir(parents=True, exist_ok=True)
        path = args.output / "preview.png"
        assembler.preview(config, layers).save(path)
        print(f"Preview saved to {path}")
        return 0

    (args.output / "images").mkdir(parents=True, exist_ok=True)
    (args.output / "json").mkdir(parents=True, exist_ok=True)

    # Ctrl-C finishes the current edition, then stops
    previous = signal.signal(signal.SIGINT, lambda *_: assembler.stop())
    try:
        print(f"=== {config.name_prefix} ===")
        print(f"Layers: {', '.join(l.display_name for l in layers)}")
        print(f"Editions: {config.edition_size} | Size: {config.width}x{config.height}")
        print()
        for record in assembler.generate(config, layers, on_progress=_print_progress):
            write_record(record, args.output)
    finally:
        signal.signal(signal.SIGINT, previous)

    done = len(assembler.context.ledger)
    if assembler.state is RunState.STOPPED:
        print(f"\nStopped -- {done} editions kept in {args.output}/")
    else:
        print(f"\nDone -- {done} editions in {args.output}/")
    return 0


def main(argv=None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )
    try:
        return run(args)
    except GenerationError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
