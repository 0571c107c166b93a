"""
Shared grid indexing helpers.

All grids in py_sludge are flat, row-major arrays of ``width * height``
cells where ``index = y * width + x``. Neighbor lookups never wrap: a
position outside the grid is simply absent.
"""

from typing import List, Tuple

import numpy as np

# Canonical 4-neighbor order: up, down, left, right
NEIGHBOR_OFFSETS_4: Tuple[Tuple[int, int], ...] = ((0, -1), (0, 1), (-1, 0), (1, 0))

NEIGHBOR_OFFSETS_8: Tuple[Tuple[int, int], ...] = (
    (-1, -1), (0, -1), (1, -1),
    (-1, 0), (1, 0),
    (-1, 1), (0, 1), (1, 1),
)


def validate_dimensions(width, height) -> Tuple[int, int]:
    """
    Check grid dimensions before anything gets allocated.

    Args:
        width: Grid width in cells
        height: Grid height in cells

    Returns:
        Tuple of (width, height) as plain ints

    Raises:
        ValueError: If either dimension is not a positive integer
    """
    for name, value in (("width", width), ("height", height)):
        if isinstance(value, bool) or not isinstance(value, (int, np.integer)):
            raise ValueError(f"Grid {name} must be an integer, got {value!r}")
        if value <= 0:
            raise ValueError(f"Grid {name} must be positive, got {value}")
    return int(width), int(height)


def to_index(x: int, y: int, width: int) -> int:
    return y * width + x


def to_coords(index: int, width: int) -> Tuple[int, int]:
    return index % width, index // width


def in_bounds(x: int, y: int, width: int, height: int) -> bool:
    return 0 <= x < width and 0 <= y < height


def neighbors4(index: int, width: int, height: int) -> List[int]:
    """Return in-grid 4-neighbors of a cell in canonical order."""
    x, y = to_coords(index, width)
    result = []
    for dx, dy in NEIGHBOR_OFFSETS_4:
        nx, ny = x + dx, y + dy
        if in_bounds(nx, ny, width, height):
            result.append(to_index(nx, ny, width))
    return result


def shifted(array: np.ndarray, dx: int, dy: int, fill) -> np.ndarray:
    """
    Sample a 2D array at a fixed offset.

    ``out[y, x] = array[y + dy, x + dx]`` wherever that position is inside
    the grid, ``fill`` everywhere else.

    Args:
        array: 2D array of shape (height, width)
        dx: Column offset
        dy: Row offset
        fill: Value for positions whose source falls outside the grid

    Returns:
        New array with the same shape and dtype as ``array``
    """
    height, width = array.shape
    out = np.full_like(array, fill)
    if abs(dx) >= width or abs(dy) >= height:
        return out

    dst_y = slice(max(0, -dy), height - max(0, dy))
    dst_x = slice(max(0, -dx), width - max(0, dx))
    src_y = slice(max(0, dy), height - max(0, -dy))
    src_x = slice(max(0, dx), width - max(0, -dx))
    out[dst_y, dst_x] = array[src_y, src_x]
    return out


class DoubleBuffer:
    """
    Two equally sized buffers with an O(1) swap.

    ``current`` is the only authoritative side. Writers get the scratch side
    from ``begin()``, which starts it as a copy of ``current``; ``swap()``
    then publishes it by exchanging references, never by copying cells.
    """

    def __init__(self, size: int, dtype=np.float32):
        if size <= 0:
            raise ValueError(f"Buffer size must be positive, got {size}")
        self._front = np.zeros(size, dtype=dtype)
        self._back = np.zeros(size, dtype=dtype)

    @property
    def size(self) -> int:
        return self._front.size

    @property
    def current(self) -> np.ndarray:
        return self._front

    def begin(self) -> np.ndarray:
        """Reset the scratch side to ``current`` and hand it out for writing."""
        np.copyto(self._back, self._front)
        return self._back

    def swap(self) -> None:
        self._front, self._back = self._back, self._front

    def clear(self) -> None:
        self._front.fill(0)
        self._back.fill(0)
