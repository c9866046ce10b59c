# src/aztec_sim/render.py
from __future__ import annotations

import io
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple

import matplotlib.pyplot as plt
import numpy as np
from numba import njit, prange

from .errors import ConfigError
from .tiles import BOTTOM, TOP

Color = Tuple[int, int, int, int]

# Row layout of Palette.as_array(); rows 1..4 are the orientation codes.
BACKGROUND_INDEX = 0
GRID_INDEX = 5
UPSCALE_ABOVE = 16


def parse_hex_color(text: str) -> Color:
    """Parses ``RRGGBBAA`` (or ``RRGGBB``, opaque) with an optional ``#``/``0x`` prefix."""
    raw = str(text).strip().lower()
    if raw.startswith("#"):
        raw = raw[1:]
    elif raw.startswith("0x"):
        raw = raw[2:]
    if len(raw) == 6:
        raw += "ff"
    if len(raw) != 8:
        raise ConfigError(f"colour must be RRGGBBAA hex, got {text!r}")
    try:
        value = int(raw, 16)
    except ValueError as exc:
        raise ConfigError(f"colour must be RRGGBBAA hex, got {text!r}") from exc
    return int_to_color(value)


def int_to_color(value: int) -> Color:
    return (
        (value >> 24) & 0xFF,
        (value >> 16) & 0xFF,
        (value >> 8) & 0xFF,
        value & 0xFF,
    )


@dataclass(frozen=True)
class Palette:
    top: Color = (255, 0, 0, 255)
    bottom: Color = (0, 0, 255, 255)
    left: Color = (255, 255, 0, 255)
    right: Color = (0, 255, 0, 255)
    grid: Color = (0, 0, 0, 255)
    background: Color = (128, 128, 128, 255)

    @classmethod
    def from_hex(
        cls,
        top: str = "ff0000ff",
        bottom: str = "0000ffff",
        left: str = "ffff00ff",
        right: str = "00ff00ff",
        grid: str = "000000ff",
    ) -> "Palette":
        return cls(
            top=parse_hex_color(top),
            bottom=parse_hex_color(bottom),
            left=parse_hex_color(left),
            right=parse_hex_color(right),
            grid=parse_hex_color(grid),
        )

    @classmethod
    def random(cls, rng: Optional[np.random.Generator] = None) -> "Palette":
        """Opaque random colours for every orientation and the grid."""
        rng = rng if rng is not None else np.random.default_rng()
        rgb = rng.integers(0, 256, size=(5, 3))
        top, bottom, left, right, grid = (
            (int(r), int(g), int(b), 255) for r, g, b in rgb
        )
        return cls(top=top, bottom=bottom, left=left, right=right, grid=grid)

    def as_array(self) -> np.ndarray:
        return np.array(
            [self.background, self.top, self.bottom, self.left, self.right, self.grid],
            dtype=np.uint8,
        )


@njit(parallel=True, cache=True)
def _rasterize_kernel(canvas, tiles, colors, tile_size):
    """
    Paints every tile as a rectangle with a one-pixel grid outline.

    Tiles never overlap, so each prange iteration writes its own pixels.
    Outlines are skipped when tiles are two pixels or smaller.
    """
    outline = tile_size > 2
    for k in prange(tiles.shape[0]):
        row = tiles[k, 1]
        col = tiles[k, 2]
        d = tiles[k, 3]
        if d == TOP or d == BOTTOM:
            w = 2 * tile_size
            h = tile_size
        else:
            w = tile_size
            h = 2 * tile_size
        y0 = row * tile_size
        x0 = col * tile_size
        for y in range(y0, y0 + h):
            for x in range(x0, x0 + w):
                edge = y == y0 or y == y0 + h - 1 or x == x0 or x == x0 + w - 1
                if outline and edge:
                    src = GRID_INDEX
                else:
                    src = d
                for ch in range(4):
                    canvas[y, x, ch] = colors[src, ch]


def rasterize(engine, tile_size: int = 8, palette: Palette | None = None) -> np.ndarray:
    """
    Renders the engine's tiling to an ``(H, W, 4)`` uint8 RGBA canvas.

    Args:
        engine: ShuffleEngine (anything with ``size`` and ``arena``)
        tile_size: Pixels per lattice cell
        palette: Colours; defaults to red/blue/yellow/green on grey

    Tile sizes above ``UPSCALE_ABOVE`` are drawn at half size and doubled
    with nearest-neighbour sampling, so grid lines come out two pixels wide.
    """
    if isinstance(tile_size, bool) or not isinstance(tile_size, (int, np.integer)) or tile_size < 1:
        raise ConfigError(f"tile size must be a positive integer, got {tile_size!r}")
    palette = palette or Palette()
    colors = palette.as_array()
    upscale = tile_size > UPSCALE_ABOVE
    draw_size = int(tile_size) // 2 if upscale else int(tile_size)
    side = engine.size * draw_size
    canvas = np.empty((side, side, 4), dtype=np.uint8)
    canvas[:, :] = colors[BACKGROUND_INDEX]
    tiles = engine.arena.to_array()
    if tiles.shape[0]:
        _rasterize_kernel(canvas, tiles, colors, draw_size)
    if upscale:
        canvas = canvas.repeat(2, axis=0).repeat(2, axis=1)
    return canvas


def save_image(canvas: np.ndarray, path: str | os.PathLike[str]) -> None:
    out_dir = Path(path).parent
    out_dir.mkdir(parents=True, exist_ok=True)
    plt.imsave(path, canvas)


def encode_png(canvas: np.ndarray) -> bytes:
    buf = io.BytesIO()
    plt.imsave(buf, canvas, format="png")
    return buf.getvalue()


def draw_image(
    engine,
    tile_size: int = 8,
    palette: Palette | None = None,
    output: str | os.PathLike[str] | None = None,
) -> Optional[bytes]:
    """Saves the rendering to ``output``, or returns it as PNG bytes when no path is given."""
    canvas = rasterize(engine, tile_size, palette)
    if output is not None:
        save_image(canvas, output)
        return None
    return encode_png(canvas)


__all__ = [
    "Palette",
    "parse_hex_color",
    "int_to_color",
    "rasterize",
    "save_image",
    "encode_png",
    "draw_image",
]
