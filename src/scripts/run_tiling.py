#!/usr/bin/env python3
"""
Aztec Diamond Tiling Runner

Grows a random domino tiling with the shuffling algorithm and renders it to
a PNG. Runs can be resumed from, and saved to, engine snapshots.
"""

import argparse
import sys
import time
from pathlib import Path

# Add package source to path
SRC = Path(__file__).resolve().parents[1]
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

import numpy as np

from aztec_sim import (
    BiasImageError,
    ConfigError,
    Palette,
    ShuffleConfig,
    ShuffleEngine,
    SnapshotError,
    draw_image,
    utils,
)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Generate and render a random Aztec diamond domino tiling",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("-n", "--steps", type=int, default=256, help="Number of shuffling steps (default: 256)")
    parser.add_argument("-f", "--filename", default="test.png", help="Output PNG path (default: test.png)")
    parser.add_argument("-s", "--tile-size", type=int, default=8, help="Pixels per lattice cell (default: 8)")
    parser.add_argument("-t", "--top-color", default="ff0000ff", help="Top colour, RRGGBBAA hex")
    parser.add_argument("-b", "--bottom-color", default="0000ffff", help="Bottom colour, RRGGBBAA hex")
    parser.add_argument("-l", "--left-color", default="ffff00ff", help="Left colour, RRGGBBAA hex")
    parser.add_argument("-r", "--right-color", default="00ff00ff", help="Right colour, RRGGBBAA hex")
    parser.add_argument("-g", "--grid-color", default="000000ff", help="Grid colour, RRGGBBAA hex")
    parser.add_argument("-c", "--random-colors", action="store_true", help="Pick random colours")
    parser.add_argument(
        "-a",
        "--save-all-steps",
        action="store_true",
        help="Render every step to <filename stem>_<k>.png",
    )
    parser.add_argument("-i", "--input", default=None, help="Snapshot (.json/.npz) to resume from")
    parser.add_argument(
        "-o",
        "--output",
        default=None,
        help="Save a snapshot after the run ('-' prints JSON to stdout)",
    )
    parser.add_argument(
        "-p",
        "--probability",
        type=float,
        default=0.5,
        help="Probability of a horizontal pair per block (default: 0.5)",
    )
    parser.add_argument("-e", "--embed", default=None, help="Grayscale bias image for the final step")
    parser.add_argument(
        "--allow-unbiased",
        action="store_true",
        help="Continue unbiased if the bias image cannot be read",
    )
    parser.add_argument("--seed", type=int, default=None, help="Random seed for reproducibility")
    parser.add_argument("--check", action="store_true", help="Verify tiling invariants after the run")
    parser.add_argument("--quiet", action="store_true", help="Suppress progress output")
    parser.add_argument("--config", default=None, help="JSON/TOML file with default values for these options")
    return parser


def parse_args(argv=None) -> argparse.Namespace:
    """Parses the command line; values from ``--config`` act as defaults."""
    pre = argparse.ArgumentParser(add_help=False)
    pre.add_argument("--config", default=None)
    known, _ = pre.parse_known_args(argv)

    parser = build_parser()
    if known.config:
        params = {key.replace("-", "_"): value for key, value in utils.load_params(known.config).items()}
        valid = set(vars(parser.parse_args([])))
        unknown = sorted(set(params) - valid)
        if unknown:
            parser.error(f"unknown keys in {known.config}: {', '.join(unknown)}")
        parser.set_defaults(**params)
    return parser.parse_args(argv)


def build_palette(args: argparse.Namespace, rng: np.random.Generator) -> Palette:
    if args.random_colors:
        return Palette.random(rng)
    return Palette.from_hex(
        top=args.top_color,
        bottom=args.bottom_color,
        left=args.left_color,
        right=args.right_color,
        grid=args.grid_color,
    )


def step_image_path(filename: str, k: int) -> str:
    path = Path(filename)
    return str(path.with_name(f"{path.stem}_{k}.png"))


def run(args: argparse.Namespace) -> ShuffleEngine:
    config = ShuffleConfig(
        probability=args.probability,
        seed=args.seed,
        max_order=args.steps if args.steps > 0 else None,
        verbose=not args.quiet,
        allow_unbiased_fallback=args.allow_unbiased,
    )
    palette = build_palette(args, np.random.default_rng(args.seed))

    if args.input:
        engine = utils.load_snapshot(args.input, config)
        if not args.quiet:
            print(f"Resumed order-{engine.order} tiling from {args.input}")
    else:
        engine = ShuffleEngine(config)

    if args.save_all_steps:
        if args.steps <= 0:
            raise ConfigError(f"number of steps must be a positive integer, got {args.steps}")
        bias = engine.resolve_bias(args.embed, args.steps)
        for k in range(args.steps):
            engine.step(bias if k == args.steps - 1 else None)
            draw_image(engine, args.tile_size, palette, output=step_image_path(args.filename, k + 1))
            if not args.quiet:
                print(f"[shuffle] step {k + 1}/{args.steps} rendered")
    else:
        if not args.quiet:
            print("Generating...")
        engine.generate(args.steps, args.embed)
        if not args.quiet:
            print("Rendering...")
        draw_image(engine, args.tile_size, palette, output=args.filename)

    if args.check:
        engine.check_invariants()
        if not args.quiet:
            print("Invariants hold.")

    if args.output:
        if args.output in ("-", "--"):
            print(utils.state_to_json(engine.to_state()))
        else:
            utils.save_snapshot(args.output, engine)
            if not args.quiet:
                print(f"Snapshot saved to {args.output}")
    return engine


def main(argv=None) -> int:
    args = parse_args(argv)
    start_time = time.time()
    try:
        engine = run(args)
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2
    except (BiasImageError, SnapshotError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    elapsed_time = time.time() - start_time

    if not args.quiet:
        print("Done.")
        print(f"   Order: {engine.order} ({engine.tile_count} dominoes)")
        print(f"   Time elapsed: {elapsed_time:.2f} seconds")
        if not args.save_all_steps:
            print(f"   Image saved to: {args.filename}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
