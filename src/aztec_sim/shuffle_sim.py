"""
Domino shuffling on a growing Aztec diamond.

Each step takes a tiling of the order-n diamond to a tiling of order n+1:

1.  **Elimination:** a Bottom half directly above a Top half, or a Right half
    directly left of a Left half, would slide into each other. Both are
    removed and their ids go back to the free-list.
2.  **Extension:** the diamond grows by one row/column on every side and all
    tiles shift by (+1, +1) so they stay centred.
3.  **Move:** every tile slides one cell in its orientation's direction.
    New anchors are computed first (parallel, read-only), then the lattice
    is rewritten in a single sequential pass.
4.  **Fill:** the holes left behind decompose into aligned 2x2 blocks. Each
    one receives either a horizontal pair (Top over Bottom) or a vertical
    pair (Left beside Right), chosen at random or from a bias image.

The lattice scans and rewrites run in ``@numba.njit`` kernels over the
packed cell array and the tile arena arrays.
"""

from __future__ import annotations

import math
import time
from dataclasses import dataclass, replace
from typing import Any, Dict, Iterator, Optional, Tuple

import numpy as np
from numba import njit, prange

from .bias import as_bias_array, bias_decision, load_bias
from .errors import BiasImageError, ConfigError, InvariantError, SnapshotError
from .lattice import (
    DiamondLattice,
    cell_offset,
    in_footprint,
    packed_length,
    row_start,
)
from .tiles import BOTTOM, LEFT, NONE, RIGHT, TOP, Orientation, Tile, TileArena

SNAPSHOT_VERSION = 1

###############################################################################
# Kernels
###############################################################################


@njit(cache=True)
def _partner(row, col, d):
    """Second cell of a tile anchored at ``(row, col)``."""
    if d == TOP or d == BOTTOM:
        return row, col + 1
    return row + 1, col


@njit(cache=True)
def _clear_if_owned(data, capacity, origin, size, tid, row, col):
    if in_footprint(row, col, size):
        k = cell_offset(row, col, capacity, origin)
        if data[k] == tid:
            data[k] = 0


@njit(cache=True)
def _remove_pair(data, capacity, origin, size, rows, cols, dirs, a, b):
    for tid in (a, b):
        r = rows[tid]
        c = cols[tid]
        r2, c2 = _partner(r, c, dirs[tid])
        _clear_if_owned(data, capacity, origin, size, tid, r, c)
        _clear_if_owned(data, capacity, origin, size, tid, r2, c2)


@njit(cache=True)
def eliminate_kernel(data, capacity, origin, size, rows, cols, dirs, freed):
    """
    Clears every pair of tiles about to slide into each other.

    Scans rows ``0 .. size-2`` and each row's span minus its last column.
    A Bottom/Top collision is only taken when ``j`` lies strictly inside the
    row span; Right/Left collisions have no such guard.

    Freed ids are written to ``freed`` in removal order. Returns the number
    written, or -1 when a cell holds an id that is not a live tile.
    """
    n_ids = dirs.shape[0]
    n = 0
    for i in range(size - 1):
        b = row_start(i, size)
        e = size - b
        for j in range(b, e - 1):
            tid = int(data[cell_offset(i, j, capacity, origin)])
            if tid == 0:
                continue
            if tid >= n_ids or dirs[tid] == NONE:
                return -1
            d = dirs[tid]
            if d == BOTTOM and j > b:
                other = int(data[cell_offset(i + 1, j, capacity, origin)])
                if other > 0:
                    if other >= n_ids or dirs[other] == NONE:
                        return -1
                    if dirs[other] == TOP:
                        _remove_pair(data, capacity, origin, size, rows, cols, dirs, tid, other)
                        freed[n] = tid
                        freed[n + 1] = other
                        n += 2
            elif d == RIGHT:
                other = int(data[cell_offset(i, j + 1, capacity, origin)])
                if other > 0:
                    if other >= n_ids or dirs[other] == NONE:
                        return -1
                    if dirs[other] == LEFT:
                        _remove_pair(data, capacity, origin, size, rows, cols, dirs, tid, other)
                        freed[n] = tid
                        freed[n + 1] = other
                        n += 2
    return n


@njit(cache=True, parallel=True)
def slide_kernel(ids, rows, cols, dirs, new_rows, new_cols):
    """Computes the anchor of every tile after one slide. Read-only on the arena."""
    for k in prange(ids.shape[0]):
        tid = ids[k]
        d = dirs[tid]
        r = rows[tid]
        c = cols[tid]
        if d == TOP:
            r -= 1
        elif d == BOTTOM:
            r += 1
        elif d == LEFT:
            c -= 1
        else:
            c += 1
        new_rows[k] = r
        new_cols[k] = c


@njit(cache=True)
def write_moves_kernel(data, capacity, origin, size, ids, rows, cols, dirs, new_rows, new_cols):
    """
    Moves every tile's id from its old cells to its new cells.

    An old cell is only cleared while it still holds the tile's own id: a
    tile processed earlier may already have written its new position there.
    Returns 0, or the id of the first tile whose new cells leave the diamond.
    """
    for k in range(ids.shape[0]):
        tid = ids[k]
        d = dirs[tid]
        nr = new_rows[k]
        nc = new_cols[k]
        nr2, nc2 = _partner(nr, nc, d)
        if not (in_footprint(nr, nc, size) and in_footprint(nr2, nc2, size)):
            return tid
        r = rows[tid]
        c = cols[tid]
        r2, c2 = _partner(r, c, d)
        _clear_if_owned(data, capacity, origin, size, tid, r, c)
        _clear_if_owned(data, capacity, origin, size, tid, r2, c2)
        data[cell_offset(nr, nc, capacity, origin)] = tid
        data[cell_offset(nr2, nc2, capacity, origin)] = tid
    return 0


###############################################################################
# Configuration
###############################################################################


@dataclass
class ShuffleConfig:
    """Run parameters for the shuffling engine."""

    probability: float = 0.5  # chance that an unbiased block gets a horizontal pair
    seed: Optional[int] = None
    max_order: Optional[int] = None  # preallocates the lattice for this order
    verbose: bool = True
    allow_unbiased_fallback: bool = False

    def validate(self) -> None:
        p = self.probability
        if isinstance(p, bool) or not isinstance(p, (int, float, np.floating, np.integer)):
            raise ConfigError(f"probability must be a number, got {p!r}")
        if not math.isfinite(p) or not 0.0 <= p <= 1.0:
            raise ConfigError(f"probability must lie in [0, 1], got {p}")
        if self.max_order is not None and (
            not isinstance(self.max_order, (int, np.integer)) or self.max_order < 0
        ):
            raise ConfigError(f"max_order must be a non-negative integer, got {self.max_order!r}")


def _check_steps(n: Any) -> int:
    if isinstance(n, bool) or not isinstance(n, (int, np.integer)) or n <= 0:
        raise ConfigError(f"number of steps must be a positive integer, got {n!r}")
    return int(n)


###############################################################################
# Engine
###############################################################################


class ShuffleEngine:
    """
    Owns the lattice, the tile arena and the fill cursor.

    Steps are applied one at a time; a step that raises leaves the engine in
    an undefined state and it should be discarded.
    """

    def __init__(
        self,
        config: ShuffleConfig | None = None,
        *,
        rng: np.random.Generator | None = None,
    ) -> None:
        self.config = config or ShuffleConfig()
        self.config.validate()
        self.rng = rng if rng is not None else np.random.default_rng(self.config.seed)

        capacity = 2 * int(self.config.max_order or 0)
        self.lattice = DiamondLattice(capacity)
        self.arena = TileArena(capacity=packed_length(capacity) // 2 + 2)
        self.cursor: Tuple[int, int] = (0, 0)

    # ------------------------------------------------------------------ state
    @property
    def size(self) -> int:
        return self.lattice.size

    @property
    def order(self) -> int:
        return self.lattice.size // 2

    @property
    def probability(self) -> float:
        return float(self.config.probability)

    @property
    def tile_count(self) -> int:
        return len(self.arena)

    def at(self, row: int, col: int) -> int:
        """Tile id covering ``(row, col)``, 0 when empty."""
        return self.lattice.read(row, col)

    def tile(self, tid: int) -> Tile:
        return self.arena.get(tid)

    def iter_tiles(self) -> Iterator[Tile]:
        for _, tile in self.arena.items():
            yield tile

    def tiles(self) -> Dict[int, Tile]:
        return dict(self.arena.items())

    def counts(self) -> Dict[Orientation, int]:
        codes = np.bincount(self.arena.dirs.astype(np.int64), minlength=5)
        return {o: int(codes[int(o)]) for o in Orientation}

    def orientation_grid(self) -> np.ndarray:
        """``(size, size)`` int8 grid of orientation codes; 0 empty, -1 outside."""
        dense = self.lattice.dense()
        out = np.full(dense.shape, -1, dtype=np.int8)
        inside = dense >= 0
        out[inside] = 0
        covered = dense > 0
        out[covered] = self.arena.dirs[dense[covered]]
        return out

    # ------------------------------------------------------------------ phases
    def eliminate_stuck_tiles(self) -> int:
        """Removes colliding pairs. Returns the number of pairs removed."""
        lat = self.lattice
        if lat.size == 0:
            return 0
        freed = np.empty(self.arena.dirs.shape[0], dtype=np.int64)
        n = eliminate_kernel(
            lat.data,
            lat.capacity,
            lat.origin,
            lat.size,
            self.arena.rows,
            self.arena.cols,
            self.arena.dirs,
            freed,
        )
        if n < 0:
            raise InvariantError("lattice references a tile id that is not live")
        for tid in freed[:n]:
            self.arena.release(int(tid))
        return n // 2

    def extend(self) -> None:
        self.lattice.extend()
        self.arena.translate(1, 1)

    def move_tiles(self) -> None:
        ids = self.arena.live_ids()
        if ids.size == 0:
            return
        new_rows = np.empty_like(ids)
        new_cols = np.empty_like(ids)
        slide_kernel(ids, self.arena.rows, self.arena.cols, self.arena.dirs, new_rows, new_cols)
        lat = self.lattice
        bad = write_moves_kernel(
            lat.data,
            lat.capacity,
            lat.origin,
            lat.size,
            ids,
            self.arena.rows,
            self.arena.cols,
            self.arena.dirs,
            new_rows,
            new_cols,
        )
        if bad:
            raise InvariantError(f"tile {bad} slid outside the diamond of size {lat.size}")
        self.arena.rows[ids] = new_rows
        self.arena.cols[ids] = new_cols

    def find_square(self) -> Optional[Tuple[int, int]]:
        """
        Next empty 2x2 block at or after the cursor.

        The cursor moves to the block found. When the scan comes up empty the
        cursor returns to the start of row 0 and ``None`` is returned.
        """
        row, col = self.cursor
        found = self.lattice.find_square(row, col)
        if found is None:
            self.cursor = (0, self.lattice.row_span(0).start)
            return None
        self.cursor = found
        return found

    def _draw_horizontal(self, row: int, col: int, bias: Optional[np.ndarray]) -> bool:
        if bias is not None:
            decision = bias_decision(int(bias[row, col]))
            if decision is not None:
                return decision
            return bool(self.rng.random() < 0.5)
        return bool(self.rng.random() < self.config.probability)

    def tile_square(
        self, row: int, col: int, bias: Optional[np.ndarray] = None
    ) -> Tuple[int, int]:
        """Stamps a domino pair into the empty block at ``(row, col)``. Returns both ids."""
        horizontal = self._draw_horizontal(row, col, bias)
        lat = self.lattice
        first = self.arena.allocate()
        if horizontal:
            self.arena.place(first, row, col, Orientation.TOP)
            lat.write(row, col, first)
            lat.write(row, col + 1, first)
            second = self.arena.allocate()
            self.arena.place(second, row + 1, col, Orientation.BOTTOM)
            lat.write(row + 1, col, second)
            lat.write(row + 1, col + 1, second)
        else:
            self.arena.place(first, row, col, Orientation.LEFT)
            lat.write(row, col, first)
            lat.write(row + 1, col, first)
            second = self.arena.allocate()
            self.arena.place(second, row, col + 1, Orientation.RIGHT)
            lat.write(row, col + 1, second)
            lat.write(row + 1, col + 1, second)
        return first, second

    def fill(self, bias: Any = None) -> int:
        """Fills every empty block. Returns the number of blocks filled."""
        if bias is not None:
            bias = as_bias_array(bias, self.size)
        # A cursor past the start of row 0 leaves holes above it; rescan once from the top.
        row, col = self.cursor
        rescan = row > 0 or col > self.lattice.row_span(0).start
        filled = 0
        while True:
            square = self.find_square()
            if square is None:
                if rescan:
                    rescan = False
                    continue
                break
            self.tile_square(square[0], square[1], bias)
            filled += 1
        return filled

    # ------------------------------------------------------------------ driver
    def step(self, bias: Any = None) -> None:
        """Advances the diamond by one order. ``bias`` must match the new size."""
        if bias is not None:
            bias = as_bias_array(bias, self.size + 2)
        self.eliminate_stuck_tiles()
        self.extend()
        self.move_tiles()
        self.fill(bias)

    def resolve_bias(self, bias: Any, steps: int) -> Optional[np.ndarray]:
        """
        Loads ``bias`` at the size reached after ``steps`` more steps.

        An unreadable image yields ``None`` when the config allows an
        unbiased fallback, otherwise ``BiasImageError`` propagates.
        """
        if bias is None:
            return None
        try:
            return load_bias(bias, self.size + 2 * steps)
        except BiasImageError as exc:
            if not self.config.allow_unbiased_fallback:
                raise
            if self.config.verbose:
                print(f"[shuffle] bias image unavailable ({exc}); filling unbiased")
            return None

    def generate(self, n: int, bias: Any = None) -> "ShuffleEngine":
        """
        Runs ``n`` steps. Only the last one is biased.

        ``bias`` may be an array, an image path, encoded image bytes or a PIL
        image; images are resized to the final size before any step runs.
        """
        steps = _check_steps(n)
        final_bias = self.resolve_bias(bias, steps)

        verbose = self.config.verbose
        if verbose:
            print(
                f"Running domino shuffling: order {self.order} -> {self.order + steps}, "
                f"p={self.probability}, biased={final_bias is not None}"
            )
        t_start = time.perf_counter()
        report_every = max(1, steps // 10)
        for k in range(steps):
            self.step(final_bias if k == steps - 1 else None)
            if verbose and ((k + 1) % report_every == 0 or k == steps - 1):
                elapsed = time.perf_counter() - t_start
                print(
                    f"[shuffle] {k + 1}/{steps} steps, size={self.size}, "
                    f"tiles={self.tile_count}, {elapsed:.2f}s"
                )
        if verbose:
            elapsed = time.perf_counter() - t_start
            print(f"Generated order-{self.order} tiling: {self.tile_count} dominoes in {elapsed:.2f}s")
        return self

    # ------------------------------------------------------------------ checks
    def check_invariants(self, complete: bool = True) -> None:
        """
        Verifies that lattice and arena describe the same valid tiling.

        With ``complete`` the diamond must also contain no empty 2x2 block,
        which holds after every finished step.
        """
        dense = self.lattice.dense()
        dirs = self.arena.dirs
        ids = dense[dense > 0]
        if ids.size and ids.max() >= dirs.shape[0]:
            raise InvariantError(f"cell holds unknown tile id {int(ids.max())}")
        counts = np.bincount(ids, minlength=dirs.shape[0])
        dangling = np.flatnonzero((counts > 0) & (dirs == NONE))
        if dangling.size:
            raise InvariantError(f"cells reference dead tile ids {dangling[:5].tolist()}")
        live = self.arena.live_ids()
        wrong = live[counts[live] != 2]
        if wrong.size:
            raise InvariantError(f"tiles {wrong[:5].tolist()} do not cover exactly two cells")
        for tile in self.iter_tiles():
            for r, c in tile.cells():
                if not self.lattice.in_footprint(r, c) or dense[r, c] != tile.id:
                    raise InvariantError(f"tile {tile.id} does not own cell ({r}, {c})")
        free = list(self.arena.free_ids)
        if len(set(free)) != len(free):
            raise InvariantError("free-list holds duplicate ids")
        if any(tid in self.arena for tid in free):
            raise InvariantError("free-list holds a live tile id")
        if complete and self.size > 0:
            if self.lattice.find_square(0, self.lattice.row_span(0).start) is not None:
                raise InvariantError("an empty 2x2 block is left in the diamond")

    # ------------------------------------------------------------------ snapshot
    def to_state(self) -> Dict[str, Any]:
        """Complete engine state as plain values and numpy arrays."""
        lat = self.lattice
        return {
            "version": SNAPSHOT_VERSION,
            "size": lat.size,
            "capacity": lat.capacity,
            "origin": lat.origin,
            "cells": lat.data.copy(),
            "tiles": self.arena.to_array(),
            "next_id": self.arena.next_id,
            "free_ids": np.array(list(self.arena.free_ids), dtype=np.int64),
            "cursor": [int(self.cursor[0]), int(self.cursor[1])],
            "probability": self.probability,
            "rng_state": self.rng.bit_generator.state,
        }

    @classmethod
    def from_state(
        cls, state: Dict[str, Any], config: ShuffleConfig | None = None
    ) -> "ShuffleEngine":
        """Rebuilds an engine from :meth:`to_state` output or raises ``SnapshotError``."""
        try:
            return cls._from_state(state, config)
        except SnapshotError:
            raise
        except (KeyError, TypeError, ValueError, IndexError, InvariantError) as exc:
            raise SnapshotError(f"invalid engine state: {exc}") from exc

    @classmethod
    def _from_state(cls, state: Dict[str, Any], config: ShuffleConfig | None) -> "ShuffleEngine":
        if state.get("version") != SNAPSHOT_VERSION:
            raise SnapshotError(f"unsupported snapshot version {state.get('version')!r}")
        size = int(state["size"])
        capacity = int(state["capacity"])
        origin = int(state["origin"])
        if size < 0 or size % 2 or capacity % 2 or capacity < size:
            raise SnapshotError(f"inconsistent sizes: size={size}, capacity={capacity}")
        if origin != (capacity - size) // 2:
            raise SnapshotError(f"origin {origin} does not centre size {size} in capacity {capacity}")

        cells = np.asarray(state["cells"])
        if cells.ndim != 1 or cells.shape[0] != packed_length(capacity):
            raise SnapshotError(f"cell array has shape {cells.shape}, expected ({packed_length(capacity)},)")
        if cells.size and (not np.issubdtype(cells.dtype, np.integer) or cells.min() < 0):
            raise SnapshotError("cell values must be non-negative integers")
        if cells.size and cells.max() > np.iinfo(np.uint32).max:
            raise SnapshotError(f"cell value {int(cells.max())} does not fit a tile id")

        next_id = int(state["next_id"])
        tiles = np.asarray(state["tiles"], dtype=np.int64).reshape(-1, 4)
        ids = tiles[:, 0]
        if next_id < 1 or (ids.size and (ids.min() < 1 or ids.max() >= next_id)):
            raise SnapshotError("tile ids out of range")
        if np.unique(ids).size != ids.size:
            raise SnapshotError("duplicate tile ids")
        if tiles.size and (tiles[:, 3].min() < TOP or tiles[:, 3].max() > RIGHT):
            raise SnapshotError("unknown tile orientation")
        free_ids = [int(t) for t in np.asarray(state["free_ids"], dtype=np.int64).ravel()]
        if any(t < 1 or t >= next_id for t in free_ids):
            raise SnapshotError("free-list ids out of range")

        cursor = tuple(int(v) for v in state["cursor"])
        if len(cursor) != 2 or min(cursor) < 0:
            raise SnapshotError(f"cursor must be a non-negative pair, got {state['cursor']!r}")

        base = config or ShuffleConfig()
        config = replace(base, probability=float(state["probability"]))
        try:
            config.validate()
        except ConfigError as exc:
            raise SnapshotError(str(exc)) from exc

        rng = _restore_rng(state.get("rng_state"))
        engine = cls(config, rng=rng)
        engine.lattice = DiamondLattice.from_packed(cells, size, capacity, origin)
        engine.arena = TileArena.from_array(tiles, next_id, free_ids)
        engine.cursor = (cursor[0], cursor[1])
        engine.check_invariants(complete=False)
        return engine


def _restore_rng(rng_state: Any) -> np.random.Generator:
    if rng_state is None:
        return np.random.default_rng()
    name = rng_state.get("bit_generator") if isinstance(rng_state, dict) else None
    bit_generator_cls = getattr(np.random, str(name), None)
    if bit_generator_cls is None or not isinstance(bit_generator_cls, type):
        raise SnapshotError(f"unknown bit generator {name!r}")
    bit_generator = bit_generator_cls()
    bit_generator.state = rng_state
    return np.random.Generator(bit_generator)


def run_model(
    config: ShuffleConfig | dict | None = None, steps: int = 64, bias: Any = None
) -> ShuffleEngine:
    """Builds an engine and runs ``steps`` shuffling steps."""
    if config is None:
        config = ShuffleConfig()
    elif isinstance(config, dict):
        config = ShuffleConfig(**config)
    engine = ShuffleEngine(config)
    return engine.generate(steps, bias)


__all__ = [
    "ShuffleConfig",
    "ShuffleEngine",
    "run_model",
    "eliminate_kernel",
    "slide_kernel",
    "write_moves_kernel",
]
