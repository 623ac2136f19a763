"""Flat terrain generators and tree placement."""

from __future__ import annotations

import random
from typing import Any, Protocol

from voxelcraft.chunk import CHUNK_HEIGHT, CHUNK_SIZE, Block, Chunk

_RAND_LIMIT = 2**31
_FLAT_TOP = 16


class _RandRange(Protocol):
    def randrange(self, stop: int) -> int: ...


def random_number(min_num: int, max_num: int, rng: _RandRange) -> int:
    """A random integer between the bounds, both included when ``min_num < max_num``."""
    if min_num < max_num:
        low, high = min_num, max_num + 1
    else:
        low, high = max_num + 1, min_num
    span = high - low
    if span == 0:
        raise ValueError(f"empty range for bounds {min_num} and {max_num}")
    return rng.randrange(_RAND_LIMIT) % abs(span) + low


def _place(chunk: Chunk, x: int, y: int, z: int, block: Block) -> None:
    if 0 <= x < CHUNK_SIZE and 0 <= y < CHUNK_HEIGHT and 0 <= z < CHUNK_SIZE:
        chunk.set_block(x, y, z, block)


def make_tree(chunk: Chunk, x: int, y: int, z: int, rng: _RandRange) -> None:
    """Grow a tree on top of ``(x, y, z)``; parts outside the chunk are left out."""
    base = y
    if random_number(0, 1, rng) == 1:
        base -= 1
    else:
        _place(chunk, x, base + 1, z, Block.LOG)
    _place(chunk, x, base + 2, z, Block.LOG)

    for layer in (base + 3, base + 4):
        for dz in range(-2, 3):
            for dx in (1, 2, 0, -1, -2):
                block = Block.LOG if dx == 0 and dz == 0 else Block.LEAVES
                _place(chunk, x + dx, layer, z + dz, block)

    for layer in (base + 5, base + 6):
        for dx, dz in ((0, -1), (1, 0), (0, 0), (-1, 0), (0, 1)):
            _place(chunk, x + dx, layer, z + dz, Block.LEAVES)


def _flat_layer(y: int) -> Block:
    if y == 0:
        return Block.BEDROCK
    if 1 <= y <= 10:
        return Block.STONE
    if 11 <= y <= 15:
        return Block.DIRT
    if y == _FLAT_TOP:
        return Block.GRASS
    return Block.AIR


class SuperFlatGen:
    """Bedrock, stone, dirt and a grass top at height 16."""

    def __init__(self, world: Any = None) -> None:
        self.world = world

    def generate(self, queue: Any, item: Any) -> None:
        """Fill the chunk of ``item`` with the flat layers."""
        chunk = item.chunk
        for y in range(_FLAT_TOP + 1):
            block = _flat_layer(y)
            for x in range(CHUNK_SIZE):
                for z in range(CHUNK_SIZE):
                    chunk.set_block(x, y, z, block)


class TestGen:
    """A grass floor at height 16 with randomly placed trees."""

    __test__ = False

    def __init__(self, world: Any = None, rng: _RandRange | None = None) -> None:
        self.world = world
        self.rng = rng if rng is not None else random.Random()

    def generate(self, queue: Any, item: Any) -> None:
        """Lay the grass floor of ``item``'s chunk and plant trees on it."""
        chunk = item.chunk
        for x in range(CHUNK_SIZE):
            for z in range(CHUNK_SIZE):
                chunk.set_block(x, _FLAT_TOP, z, _flat_layer(_FLAT_TOP))
                if x == random_number(3, CHUNK_SIZE - 3, self.rng):
                    if z == random_number(3, CHUNK_SIZE - 3, self.rng):
                        make_tree(chunk, x, _FLAT_TOP, z, self.rng)