"""
Packed storage for the cells of a growing Aztec diamond.

A diamond of even ``size`` has ``size`` rows; row ``i`` holds the half-open
column range ``[row_start(i, size), size - row_start(i, size))``. Only those
cells are stored: the four triangular corners of the bounding square are
cut away, so a diamond of size ``2s`` needs ``2*s*(s+1)`` slots instead of
``4*s*s``.

The array is allocated for a ``capacity`` diamond. The current diamond sits
centred inside it at offset ``origin`` on both axes, so growing by one
order only moves ``origin`` and never touches the stored cells until the
capacity runs out.
"""

from __future__ import annotations

import numpy as np
from numba import njit

from .errors import OutsideFootprintError

CELL_DTYPE = np.uint32
OUTSIDE = -1

###############################################################################
# Addressing (Numba-friendly)
###############################################################################


@njit(cache=True)
def row_start(i: int, size: int) -> int:
    """First valid column of row ``i``; the row is symmetric about the midline."""
    s = size // 2
    if i < s:
        return s - 1 - i
    return i - s


def row_span(i: int, size: int) -> range:
    """Half-open column range of row ``i``."""
    b = row_start(i, size)
    return range(b, size - b)


@njit(cache=True)
def packed_length(size: int) -> int:
    """Number of cells in a diamond of the given size."""
    s = size // 2
    return 2 * s * (s + 1)


@njit(cache=True)
def packed_offset(i: int, j: int, capacity: int) -> int:
    """
    Maps a cell of the capacity diamond to its slot in the packed array.

    Rows above the midline have width ``2*(i+1)`` so ``i*(i+1)`` cells precede
    row ``i``. Below the midline the count is taken from the far end.
    """
    s = capacity // 2
    jj = j - row_start(i, capacity)
    if i < s:
        return i * (i + 1) + jj
    s2 = capacity - i
    return 2 * s * (s + 1) - s2 * (s2 + 1) + jj


@njit(cache=True)
def in_footprint(i: int, j: int, size: int) -> bool:
    if i < 0 or i >= size:
        return False
    b = row_start(i, size)
    return j >= b and j < size - b


@njit(cache=True)
def cell_offset(i: int, j: int, capacity: int, origin: int) -> int:
    """Slot of size-relative cell ``(i, j)``."""
    return packed_offset(i + origin, j + origin, capacity)


@njit(cache=True)
def _is_free(data, capacity, origin, size, i, j) -> bool:
    # Cells outside the current diamond are permanently blocked.
    if not in_footprint(i, j, size):
        return False
    return data[cell_offset(i, j, capacity, origin)] == 0


###############################################################################
# Kernels
###############################################################################


@njit(cache=True)
def find_square_kernel(data, capacity, origin, size, start_row, start_col):
    """
    Returns the first empty aligned 2x2 block at or after the cursor.

    Rows are scanned from ``start_row``; the cursor row starts at
    ``start_col`` (never before the row span), later rows at their span
    start. Returns ``(-1, -1)`` when nothing is left.
    """
    for i in range(start_row, size - 1):
        b = row_start(i, size)
        e = size - b
        j0 = b
        if i == start_row and start_col > b:
            j0 = start_col
        for j in range(j0, e - 1):
            if (
                _is_free(data, capacity, origin, size, i, j)
                and _is_free(data, capacity, origin, size, i + 1, j)
                and _is_free(data, capacity, origin, size, i, j + 1)
                and _is_free(data, capacity, origin, size, i + 1, j + 1)
            ):
                return i, j
    return -1, -1


@njit(cache=True)
def _recenter_kernel(old, old_capacity, new, new_capacity):
    """Copies every cell of the old capacity diamond into the centre of the new one."""
    delta = (new_capacity - old_capacity) // 2
    for i in range(old_capacity):
        b = row_start(i, old_capacity)
        for j in range(b, old_capacity - b):
            new[packed_offset(i + delta, j + delta, new_capacity)] = old[
                packed_offset(i, j, old_capacity)
            ]


@njit(cache=True)
def _dense_kernel(data, capacity, origin, size, out):
    for i in range(size):
        b = row_start(i, size)
        for j in range(b, size - b):
            out[i, j] = data[cell_offset(i, j, capacity, origin)]


###############################################################################
# Lattice
###############################################################################


class DiamondLattice:
    """
    Occupancy of the current diamond.

    A cell holds ``0`` when empty, otherwise the id of the tile covering it.
    Coordinates are size-relative: row 0 is the top row of the current
    diamond.
    """

    def __init__(self, capacity: int = 0) -> None:
        if capacity < 0 or capacity % 2:
            raise ValueError(f"capacity must be a non-negative even integer, got {capacity}")
        self.capacity = int(capacity)
        self.size = 0
        self.origin = self.capacity // 2
        self.data = np.zeros(packed_length(self.capacity), dtype=CELL_DTYPE)

    @classmethod
    def from_packed(
        cls, data: np.ndarray, size: int, capacity: int, origin: int
    ) -> "DiamondLattice":
        """Rebuilds a lattice from stored fields; the caller validates them."""
        lattice = cls.__new__(cls)
        lattice.capacity = int(capacity)
        lattice.size = int(size)
        lattice.origin = int(origin)
        lattice.data = np.ascontiguousarray(data, dtype=CELL_DTYPE)
        return lattice

    # ------------------------------------------------------------------ geometry
    def row_span(self, row: int) -> range:
        return row_span(row, self.size)

    def in_footprint(self, row: int, col: int) -> bool:
        return bool(in_footprint(row, col, self.size))

    def _slot(self, row: int, col: int) -> int:
        if not in_footprint(row, col, self.size):
            raise OutsideFootprintError(
                f"cell ({row}, {col}) is outside the diamond of size {self.size}"
            )
        return cell_offset(row, col, self.capacity, self.origin)

    # ------------------------------------------------------------------ access
    def read(self, row: int, col: int) -> int:
        return int(self.data[self._slot(row, col)])

    def write(self, row: int, col: int, value: int) -> None:
        self.data[self._slot(row, col)] = value

    def dense(self) -> np.ndarray:
        """Returns a ``(size, size)`` copy with ``-1`` outside the diamond."""
        out = np.full((self.size, self.size), OUTSIDE, dtype=np.int64)
        _dense_kernel(self.data, self.capacity, self.origin, self.size, out)
        return out

    # ------------------------------------------------------------------ growth
    def extend(self) -> None:
        """Grows the diamond by one order (two rows and two columns)."""
        new_size = self.size + 2
        if new_size > self.capacity:
            self._reallocate(max(new_size, 2 * self.capacity))
        self.size = new_size
        self.origin -= 1

    def _reallocate(self, new_capacity: int) -> None:
        new = np.zeros(packed_length(new_capacity), dtype=CELL_DTYPE)
        _recenter_kernel(self.data, self.capacity, new, new_capacity)
        self.origin += (new_capacity - self.capacity) // 2
        self.capacity = new_capacity
        self.data = new

    # ------------------------------------------------------------------ search
    def find_square(self, row: int, col: int) -> tuple[int, int] | None:
        i, j = find_square_kernel(
            self.data, self.capacity, self.origin, self.size, row, col
        )
        if i < 0:
            return None
        return int(i), int(j)


__all__ = [
    "DiamondLattice",
    "row_start",
    "row_span",
    "packed_length",
    "packed_offset",
    "in_footprint",
    "cell_offset",
    "find_square_kernel",
]
