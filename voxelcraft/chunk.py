"""Chunks of blocks, split into vertical clusters."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any

from voxelcraft.direction import Direction

CHUNK_SIZE = 16
CLUSTER_PER_CHUNK = 16
CHUNK_HEIGHT = CHUNK_SIZE * CLUSTER_PER_CHUNK

_CLUSTER_VOLUME = CHUNK_SIZE**3
_MASK32 = 0xFFFFFFFF


class Block(IntEnum):
    """Block kinds; ``AIR`` is zero."""

    AIR = 0
    STONE = 1
    DIRT = 2
    GRASS = 3
    COBBLESTONE = 4
    SAND = 5
    LOG = 6
    GRAVEL = 7
    LEAVES = 8
    GLASS = 9
    STONEBRICK = 10
    BRICK = 11
    PLANKS = 12
    WOOL = 13
    BEDROCK = 14


class GenProgress(IntEnum):
    """How far generation of a chunk has come."""

    EMPTY = 0
    TERRAIN = 1
    FINISHED = 2


class Xorshift32:
    """A 32-bit xorshift generator, iterated for successive values."""

    def __init__(self, seed: int) -> None:
        self.state = (seed & _MASK32) or 1

    def __iter__(self) -> Xorshift32:
        return self

    def __next__(self) -> int:
        x = self.state
        x ^= (x << 13) & _MASK32
        x ^= x >> 17
        x ^= (x << 5) & _MASK32
        self.state = x
        return x


_uuid_generator = Xorshift32(314159265)
_uuid_lock = threading.Lock()


def _next_uuid() -> int:
    with _uuid_lock:
        return next(_uuid_generator)


_SEE_THROUGH_TABLE = (
    # W    E    B    T    N    S
    (255, 0, 1, 3, 6, 10),
    (0, 255, 2, 4, 7, 11),
    (1, 2, 255, 5, 8, 12),
    (3, 4, 5, 255, 9, 13),
    (6, 7, 8, 9, 255, 14),
    (10, 11, 12, 13, 14, 255),
)


def see_through_bit(a: Direction, b: Direction) -> int:
    """The visibility bit for passing between faces ``a`` and ``b``."""
    if Direction.INVALID in (a, b) or a == b:
        raise ValueError(f"no see-through bit for {Direction(a).name} and {Direction(b).name}")
    return 1 << _SEE_THROUGH_TABLE[a][b]


def can_see_through(visibility: int, entry: Direction, exit: Direction) -> bool:
    """Whether a cluster with ``visibility`` can be passed from ``entry`` to ``exit``.

    Entering from no direction always passes.
    """
    if entry == Direction.INVALID:
        return True
    return bool(visibility & see_through_bit(entry, exit))


def _index(x: int, y: int, z: int) -> int:
    return (x * CHUNK_SIZE + y) * CHUNK_SIZE + z


@dataclass(eq=False)
class Cluster:
    """A 16x16x16 cube of blocks with metadata (low nibble) and light (high nibble)."""

    y: int
    blocks: bytearray = field(default_factory=lambda: bytearray(_CLUSTER_VOLUME))
    metadata_light: bytearray = field(default_factory=lambda: bytearray(_CLUSTER_VOLUME))
    revision: int = 0
    empty: bool = True
    empty_revision: int = 0
    vbo_revision: int = 0
    force_vbo_update: bool = False
    vbo: Any = None
    transparent_vbo: Any = None
    vertices: int = 0
    transparent_vertices: int = 0
    see_through: int = 0xFFFF

    def is_empty(self) -> bool:
        """True if every block is air; cached per revision."""
        if self.empty_revision == self.revision:
            return self.empty
        self.empty_revision = self.revision
        self.empty = not any(self.blocks)
        return self.empty


class Chunk:
    """A column of clusters at chunk coordinates ``(x, z)``."""

    def __init__(self, x: int, z: int) -> None:
        self.x = x
        self.z = z
        self.uuid = _next_uuid()
        self.clusters = [Cluster(i) for i in range(CLUSTER_PER_CHUNK)]
        self.heightmap = bytearray(CHUNK_SIZE * CHUNK_SIZE)
        self.heightmap_revision = 0
        self.revision = 0
        self.display_revision = 0
        self.force_vbo_update = False
        self.gen_progress = GenProgress.EMPTY
        self.tasks_running = 0
        self.graphical_tasks_running = 0
        self.references = 0

    def __repr__(self) -> str:
        return f"Chunk(x={self.x}, z={self.z})"

    def _locate(self, x: int, y: int, z: int) -> tuple[Cluster, int]:
        if not (0 <= x < CHUNK_SIZE and 0 <= y < CHUNK_HEIGHT and 0 <= z < CHUNK_SIZE):
            raise IndexError(f"block position ({x}, {y}, {z}) outside chunk")
        return self.clusters[y // CHUNK_SIZE], _index(x, y % CHUNK_SIZE, z)

    def _touch(self, cluster: Cluster) -> None:
        cluster.revision += 1
        self.revision += 1

    def get_block(self, x: int, y: int, z: int) -> Block:
        """The block at local position ``(x, y, z)``."""
        cluster, i = self._locate(x, y, z)
        return Block(cluster.blocks[i])

    def set_block(self, x: int, y: int, z: int, block: Block) -> None:
        """Place ``block`` at local position ``(x, y, z)``."""
        cluster, i = self._locate(x, y, z)
        cluster.blocks[i] = int(block)
        self._touch(cluster)

    def get_metadata(self, x: int, y: int, z: int) -> int:
        """The 4-bit metadata at local position ``(x, y, z)``."""
        cluster, i = self._locate(x, y, z)
        return cluster.metadata_light[i] & 0xF

    def set_metadata(self, x: int, y: int, z: int, metadata: int) -> None:
        """Set the 4-bit metadata, keeping the light nibble."""
        cluster, i = self._locate(x, y, z)
        cluster.metadata_light[i] = (cluster.metadata_light[i] & 0xF0) | (metadata & 0xF)
        self._touch(cluster)

    def set_block_and_meta(self, x: int, y: int, z: int, block: Block, metadata: int) -> None:
        """Place ``block`` with ``metadata`` in one step."""
        cluster, i = self._locate(x, y, z)
        cluster.blocks[i] = int(block)
        cluster.metadata_light[i] = (cluster.metadata_light[i] & 0xF0) | (metadata & 0xF)
        self._touch(cluster)

    def request_graphics_update(self, cluster: int) -> None:
        """Mark cluster number ``cluster`` for a mesh rebuild."""
        self.clusters[cluster].force_vbo_update = True
        self.force_vbo_update = True

    def _column_top(self, x: int, z: int) -> int | None:
        for cluster in reversed(self.clusters):
            if cluster.is_empty():
                continue
            for j in reversed(range(CHUNK_SIZE)):
                if cluster.blocks[_index(x, j, z)] != Block.AIR:
                    return cluster.y * CHUNK_SIZE + j + 1
        return None

    def generate_heightmap(self) -> None:
        """Recompute the heightmap if blocks changed since the last time."""
        if self.heightmap_revision != self.revision:
            for x in range(CHUNK_SIZE):
                for z in range(CHUNK_SIZE):
                    top = self._column_top(x, z)
                    if top is not None:
                        self.heightmap[x * CHUNK_SIZE + z] = top & 0xFF
        self.heightmap_revision = self.revision

    def get_height(self, x: int, z: int) -> int:
        """One above the highest non-air block of column ``(x, z)``."""
        if not (0 <= x < CHUNK_SIZE and 0 <= z < CHUNK_SIZE):
            raise IndexError(f"column ({x}, {z}) outside chunk")
        self.generate_heightmap()
        return self.heightmap[x * CHUNK_SIZE + z]