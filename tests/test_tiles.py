"""Tests for render target tiling."""

import numpy as np
import pytest

from pal_simulator.errors import InvalidArgument
from pal_simulator.render.tiles import Tile, partition


def test_partition_covers_target_exactly_once():
    coverage = np.zeros((40, 70), dtype=int)
    tiles = partition(70, 40, 32)
    for tile in tiles:
        coverage[tile.slices] += 1
    assert np.all(coverage == 1)
    assert len(tiles) == 6


def test_edge_tiles_are_cropped():
    tiles = partition(70, 40, 32)
    assert tiles[2] == Tile(64, 0, 70, 32)
    assert tiles[2].width == 6
    assert tiles[-1].height == 8


def test_tile_center():
    assert Tile(0, 0, 32, 32).center == (15.5, 15.5)
    assert Tile(8, 4, 9, 5).center == (8.0, 4.0)


def test_tile_larger_than_target():
    assert partition(5, 3, 32) == [Tile(0, 0, 5, 3)]


def test_non_positive_tile_size_is_rejected():
    with pytest.raises(InvalidArgument):
        partition(10, 10, 0)
