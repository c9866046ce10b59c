"""
Aztec Diamond Tiling Library

Grows uniformly random (or image-biased) domino tilings of the Aztec
diamond with the domino shuffling algorithm:
- ShuffleEngine: eliminate / extend / move / fill steps on a packed lattice
- DiamondLattice: packed diamond-shaped cell storage
- render: PNG output of a tiling, one coloured rectangle per domino half
"""

from .errors import (
    BiasImageError,
    ConfigError,
    InvariantError,
    OutsideFootprintError,
    SnapshotError,
    TilingError,
)
from .lattice import DiamondLattice
from .tiles import Orientation, Tile, TileArena
from .shuffle_sim import ShuffleConfig, ShuffleEngine, run_model
from .render import Palette, draw_image, rasterize
from . import bias, utils

__all__ = [
    # Engine
    "ShuffleEngine",
    "ShuffleConfig",
    "run_model",
    "DiamondLattice",
    "TileArena",
    "Tile",
    "Orientation",
    # Rendering
    "Palette",
    "rasterize",
    "draw_image",
    # Errors
    "TilingError",
    "ConfigError",
    "BiasImageError",
    "SnapshotError",
    "InvariantError",
    "OutsideFootprintError",
    # Utilities
    "bias",
    "utils",
]
