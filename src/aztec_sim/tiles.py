"""
Tile records and the id allocator.

Tiles live in an arena: parallel numpy arrays indexed by tile id, so the
numba kernels can look a tile up from the id stored in a lattice cell.
``dirs[id] == 0`` marks an id that is not in use.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from enum import IntEnum
from typing import Iterator, Tuple

import numpy as np

from .errors import InvariantError

# Orientation codes shared with the kernels.
NONE = 0
TOP = 1
BOTTOM = 2
LEFT = 3
RIGHT = 4


class Orientation(IntEnum):
    """Half of a domino, named after the direction it slides in."""

    TOP = 1
    BOTTOM = 2
    LEFT = 3
    RIGHT = 4

    @property
    def delta(self) -> Tuple[int, int]:
        return _DELTAS[self]

    @property
    def is_horizontal(self) -> bool:
        """Top/Bottom halves span two columns of a single row."""
        return self in (Orientation.TOP, Orientation.BOTTOM)

    @property
    def symbol(self) -> str:
        return self.name[0]


_DELTAS = {
    Orientation.TOP: (-1, 0),
    Orientation.BOTTOM: (1, 0),
    Orientation.LEFT: (0, -1),
    Orientation.RIGHT: (0, 1),
}


@dataclass(frozen=True)
class Tile:
    id: int
    row: int
    col: int
    orientation: Orientation

    @property
    def position(self) -> Tuple[int, int]:
        return self.row, self.col

    def cells(self) -> Tuple[Tuple[int, int], Tuple[int, int]]:
        """Anchor cell and its partner."""
        if self.orientation.is_horizontal:
            return (self.row, self.col), (self.row, self.col + 1)
        return (self.row, self.col), (self.row + 1, self.col)


def _grown(values: np.ndarray, capacity: int) -> np.ndarray:
    out = np.zeros(capacity, dtype=values.dtype)
    out[: values.shape[0]] = values
    return out


class TileArena:
    """
    Id-indexed tile storage with a FIFO free-list.

    Ids start at 1 (0 is the empty cell). Released ids are handed out again
    before the counter advances.
    """

    def __init__(self, capacity: int = 64) -> None:
        capacity = max(2, int(capacity))
        self.rows = np.zeros(capacity, dtype=np.int64)
        self.cols = np.zeros(capacity, dtype=np.int64)
        self.dirs = np.zeros(capacity, dtype=np.int8)
        self.next_id = 1
        self.free_ids: deque[int] = deque()

    # ------------------------------------------------------------------ ids
    def allocate(self) -> int:
        if self.free_ids:
            return self.free_ids.popleft()
        tid = self.next_id
        self.next_id += 1
        self._reserve(tid + 1)
        return tid

    def _reserve(self, n: int) -> None:
        if n <= self.dirs.shape[0]:
            return
        capacity = max(n, 2 * self.dirs.shape[0])
        self.rows = _grown(self.rows, capacity)
        self.cols = _grown(self.cols, capacity)
        self.dirs = _grown(self.dirs, capacity)

    def place(self, tid: int, row: int, col: int, orientation: Orientation) -> None:
        self.rows[tid] = row
        self.cols[tid] = col
        self.dirs[tid] = int(orientation)

    def release(self, tid: int) -> None:
        if tid <= 0 or tid >= self.next_id or self.dirs[tid] == NONE:
            raise InvariantError(f"tile {tid} released twice or never allocated")
        self.dirs[tid] = NONE
        self.free_ids.append(tid)

    # ------------------------------------------------------------------ queries
    def __contains__(self, tid: object) -> bool:
        if not isinstance(tid, (int, np.integer)):
            return False
        return 0 < tid < self.dirs.shape[0] and self.dirs[tid] != NONE

    def __len__(self) -> int:
        return int(np.count_nonzero(self.dirs))

    def live_ids(self) -> np.ndarray:
        return np.flatnonzero(self.dirs).astype(np.int64)

    def get(self, tid: int) -> Tile:
        if tid not in self:
            raise KeyError(tid)
        return Tile(
            id=int(tid),
            row=int(self.rows[tid]),
            col=int(self.cols[tid]),
            orientation=Orientation(int(self.dirs[tid])),
        )

    def items(self) -> Iterator[Tuple[int, Tile]]:
        for tid in self.live_ids():
            yield int(tid), self.get(int(tid))

    def translate(self, drow: int, dcol: int) -> None:
        """Shifts every live tile; translations are independent of each other."""
        live = self.dirs != NONE
        self.rows[live] += drow
        self.cols[live] += dcol

    # ------------------------------------------------------------------ export
    def to_array(self) -> np.ndarray:
        """Live tiles as ``(K, 4)`` rows of ``id, row, col, orientation``."""
        ids = self.live_ids()
        return np.column_stack(
            (ids, self.rows[ids], self.cols[ids], self.dirs[ids].astype(np.int64))
        ).astype(np.int64).reshape(-1, 4)

    @classmethod
    def from_array(
        cls, tiles: np.ndarray, next_id: int, free_ids: Iterator[int]
    ) -> "TileArena":
        tiles = np.asarray(tiles, dtype=np.int64).reshape(-1, 4)
        arena = cls(capacity=next_id + 1)
        arena.next_id = int(next_id)
        for tid, row, col, orientation in tiles:
            arena.place(int(tid), int(row), int(col), Orientation(int(orientation)))
        arena.free_ids = deque(int(t) for t in free_ids)
        return arena


__all__ = [
    "Orientation",
    "Tile",
    "TileArena",
    "NONE",
    "TOP",
    "BOTTOM",
    "LEFT",
    "RIGHT",
]
