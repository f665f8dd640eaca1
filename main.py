#!/usr/bin/env python
"""
EcoMeasure - land-cover statistics from field photographs.

Main entry point for command line analyses.

Usage
-----
    uv run python main.py ground-cover quadrat.jpg --grid-size 4

or:
    python main.py canopy sky.jpg --method glama --zenith 60
    python main.py obstruction pole_25.jpg@25 pole_50.jpg@50
"""

from __future__ import annotations

import argparse
import json
import sys
from typing import Sequence

from loguru import logger


LOG_FORMAT = (
    "<green>{time:HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)


def configure_logging(verbosity: int = 0) -> str:
    """Route loguru output to stderr at a level chosen by ``-v`` flags."""
    level = {0: "INFO", 1: "DEBUG"}.get(verbosity, "TRACE")
    logger.remove()
    logger.add(sys.stderr, format=LOG_FORMAT, level=level)
    return level


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ecomeasure",
        description="Coverage statistics from ground, canopy and pole photographs.",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="-v for debug logs, -vv for sampled per-pixel traces",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    ground = subparsers.add_parser("ground-cover", help="Nadir quadrat photograph")
    ground.add_argument("image", help="Photograph file")
    table_group = ground.add_mutually_exclusive_group()
    table_group.add_argument("--method", default=None, help="Built-in rule-set identifier")
    table_group.add_argument("--table", default=None, help="Threshold table TOML file")
    ground.add_argument("--grid-size", type=int, default=None, help="Cells per axis")
    ground.add_argument(
        "--species", nargs="+", default=None, help="Allowed vegetation labels"
    )
    ground.add_argument("--min-proportion", type=float, default=0.0)
    ground.add_argument("--area", type=float, default=1.0, help="Sampling area in m^2")
    ground.add_argument("--preview", default=None, help="Write a classification figure")
    ground.add_argument("--json", action="store_true", help="Print the full result as JSON")

    canopy = subparsers.add_parser("canopy", help="Upward canopy photograph")
    canopy.add_argument("image", help="Photograph file")
    canopy.add_argument(
        "--method", choices=("glama", "canopeo", "threshold"), default="canopeo"
    )
    canopy.add_argument("--zenith", type=float, default=90.0, help="Zenith angle in degrees")
    canopy.add_argument("--brightness-threshold", type=float, default=128.0)
    canopy.add_argument("--json", action="store_true")

    obstruction = subparsers.add_parser(
        "obstruction", help="Horizontal cover pole photographs"
    )
    obstruction.add_argument(
        "images", nargs="+", metavar="IMAGE@HEIGHT", help="Photograph and height in cm"
    )
    obstruction.add_argument(
        "--method", choices=("classifier", "color_threshold"), default="classifier"
    )
    obstruction.add_argument("--json", action="store_true")
    return parser


def _print_progress(percent: float, stage: str) -> None:
    logger.debug(f"{percent:5.1f}% {stage}")


def _split_height(token: str) -> tuple[str, float]:
    from ecomeasure.core.errors import InvalidOptions

    path, sep, height = token.rpartition("@")
    if not sep or not path:
        raise InvalidOptions(f"Expected IMAGE@HEIGHT, got {token!r}")
    try:
        return path, float(height)
    except ValueError as exc:
        raise InvalidOptions(f"Invalid height in {token!r}") from exc


def run_ground_cover(args: argparse.Namespace) -> dict:
    from ecomeasure.core.coverage_engine import analyze_ground_cover
    from ecomeasure.core.models import DEFAULT_METHOD, AnalysisOptions
    from ecomeasure.utils.class_preview import export_classification_preview
    from ecomeasure.utils.ground_cover.thresholds import load_threshold_table
    from ecomeasure.utils.ground_cover.tracing import LoguruPixelTracer
    from ecomeasure.utils.image_io import load_image

    image = load_image(args.image)
    table = load_threshold_table(args.table) if args.table else None
    options = AnalysisOptions(
        method=args.method or DEFAULT_METHOD,
        grid_size=args.grid_size,
        species_library=args.species,
        on_progress=_print_progress,
        min_proportion=args.min_proportion,
        sampling_area_m2=args.area,
        threshold_table=table,
        tracer=LoguruPixelTracer() if args.verbose >= 2 else None,
    )
    result = analyze_ground_cover(image, options)
    if args.preview:
        export_classification_preview(image, args.preview, result.method, table)
        logger.info(f"Preview written to {args.preview}")
    return result.to_dict()


def run_canopy(args: argparse.Namespace) -> dict:
    from ecomeasure.core.canopy import CanopyOptions, analyze_canopy
    from ecomeasure.utils.image_io import load_image

    options = CanopyOptions(
        method=args.method,
        zenith_angle=args.zenith,
        brightness_threshold=args.brightness_threshold,
        on_progress=_print_progress,
    )
    return analyze_canopy(load_image(args.image), options).to_dict()


def run_obstruction(args: argparse.Namespace) -> dict:
    from ecomeasure.core.obstruction import ObstructionOptions, analyze_obstruction
    from ecomeasure.utils.image_io import load_image

    pairs = [_split_height(token) for token in args.images]
    images = [load_image(path) for path, _ in pairs]
    heights = [height for _, height in pairs]
    options = ObstructionOptions(method=args.method, on_progress=_print_progress)
    return analyze_obstruction(images, heights, options).to_dict()


def _print_summary(command: str, payload: dict) -> None:
    if command == "ground-cover":
        print(f"Method: {payload['method']}")
        for name, value in payload["percentages"].items():
            print(f"  {name:<12} {value:6.1f}%")
        print(f"Shannon index: {payload['shannon_index']:.3f}")
        print(f"Evenness:      {payload['evenness_index']:.3f}")
        if payload["dominant_species"]:
            labels = ", ".join(payload["dominant_species"])
            print(f"Vegetation color groups (heuristic): {labels}")
    elif command == "canopy":
        print(f"Canopy cover:       {payload['canopy_cover']:6.1f}%")
        print(f"Light transmission: {payload['light_transmission']:6.1f}%")
        lai = payload["leaf_area_index"]
        print(f"Leaf area index:    {'n/a' if lai is None else f'{lai:.2f}'}")
    else:
        for item in payload["measurements"]:
            print(f"  {item['height_cm']:6.1f} cm  {item['vegetation_cover']:6.1f}%")
        print(
            f"Average cover: {payload['average_cover']:.1f}% "
            f"({payload['vegetation_profile']})"
        )


def main(argv: Sequence[str] | None = None) -> int:
    """
    Main entry point for EcoMeasure analyses.

    Returns
    -------
    int
        Exit code (0 for success, 2 for analysis errors).
    """
    from ecomeasure.core.errors import EcoMeasureError

    args = build_parser().parse_args(argv)
    configure_logging(args.verbose)
    handlers = {
        "ground-cover": run_ground_cover,
        "canopy": run_canopy,
        "obstruction": run_obstruction,
    }
    try:
        payload = handlers[args.command](args)
    except EcoMeasureError as exc:
        logger.error(f"{exc.kind}: {exc}")
        return 2
    if args.json:
        print(json.dumps(payload, indent=2))
    else:
        _print_summary(args.command, payload)
    return 0


if __name__ == "__main__":
    sys.exit(main())
