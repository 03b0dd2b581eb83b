"""
Fixed-size tiling of a render target.
"""

from dataclasses import dataclass
from typing import List, Tuple

from ..errors import InvalidArgument


@dataclass(frozen=True)
class Tile:
    """Half-open pixel rectangle [x0, x1) x [y0, y1)."""
    x0: int
    y0: int
    x1: int
    y1: int

    @property
    def width(self) -> int:
        return self.x1 - self.x0

    @property
    def height(self) -> int:
        return self.y1 - self.y0

    @property
    def center(self) -> Tuple[float, float]:
        """Center in pixel coordinates (x, y)."""
        return ((self.x0 + self.x1 - 1) / 2.0, (self.y0 + self.y1 - 1) / 2.0)

    @property
    def slices(self) -> Tuple[slice, slice]:
        """(row, column) slices for indexing an image."""
        return (slice(self.y0, self.y1), slice(self.x0, self.x1))


def partition(width: int, height: int, tile_size: int) -> List[Tile]:
    """
    Cover a width x height target with tiles of tile_size pixels.

    Edge tiles are cropped to the target. Tiles are returned row by row.
    """
    if tile_size < 1:
        raise InvalidArgument(f"tile_size must be positive, got {tile_size}")
    return [
        Tile(x, y, min(x + tile_size, width), min(y + tile_size, height))
        for y in range(0, height, tile_size)
        for x in range(0, width, tile_size)
    ]
