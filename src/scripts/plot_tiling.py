# src/scripts/plot_tiling.py
import argparse
import os
import sys
from pathlib import Path

SRC = Path(__file__).resolve().parents[1]
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from aztec_sim import Palette, draw_image, utils  # type: ignore[import]
from aztec_sim.render import UPSCALE_ABOVE  # type: ignore[import]


def format_title(engine):
    """Short summary line for a loaded tiling."""
    counts = engine.counts()
    parts = [f"order={engine.order}", f"p={engine.probability:g}", f"tiles={engine.tile_count}"]
    parts.extend(f"{o.symbol}={n}" for o, n in counts.items())
    return " | ".join(parts)


def main():
    parser = argparse.ArgumentParser(
        description="Render a saved tiling snapshot (.npz or .json) to PNG"
    )
    parser.add_argument(
        "file",
        nargs="?",
        default="results/tiling.npz",
        help="Path to snapshot file"
    )
    parser.add_argument(
        "--out",
        default=None,
        help="Output image path (PNG, auto-generated if not provided)"
    )
    parser.add_argument(
        "--tile-size",
        type=int,
        default=8,
        help="Pixels per lattice cell (default: 8)"
    )
    parser.add_argument(
        "--random-colors",
        action="store_true",
        help="Use random colours instead of the default palette"
    )
    args = parser.parse_args()

    if not os.path.exists(args.file):
        print(f"Error: file not found: {args.file}")
        return

    if args.out is None:
        input_path = Path(args.file)
        args.out = str(input_path.parent / f"{input_path.stem}_tiling.png")

    engine = utils.load_snapshot(args.file)
    print(format_title(engine))

    palette = Palette.random() if args.random_colors else Palette()
    draw_image(engine, args.tile_size, palette, output=args.out)
    cell = 2 * (args.tile_size // 2) if args.tile_size > UPSCALE_ABOVE else args.tile_size
    side = engine.size * cell
    print(f"Saved figure to {args.out} ({side}x{side})")


if __name__ == "__main__":
    main()
