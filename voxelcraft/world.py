"""The loaded world: a cache of chunks around an origin and the chunk pool behind it."""

from __future__ import annotations

import random
from dataclasses import dataclass
from enum import IntEnum
from typing import Callable, Optional

from voxelcraft.chunk import (
    CHUNK_HEIGHT,
    CHUNK_SIZE,
    CLUSTER_PER_CHUNK,
    Block,
    Chunk,
    GenProgress,
    Xorshift32,
)
from voxelcraft.workqueue import WorkerItem, WorkerItemType, WorkQueue

CHUNKCACHE_SIZE = 9
RANDOMTICKS_PER_CHUNK = 32
_UNPLACED = 2**31 - 1

RandomTick = Callable[["World", Chunk, list, list, list], None]


def to_chunk_coord(x: int) -> int:
    """The chunk coordinate containing world coordinate ``x``."""
    return x // CHUNK_SIZE


def to_local_coord(x: int) -> int:
    """The position of world coordinate ``x`` inside its chunk."""
    return x % CHUNK_SIZE


class WorldGenType(IntEnum):
    """Terrain generators a world can use."""

    SUPER_FLAT = 0
    SMEA = 1


@dataclass
class GenSettings:
    """Terrain generation settings."""

    seed: int = 28112000
    type: WorldGenType = WorldGenType.SUPER_FLAT


class World:
    """A square cache of chunks centred on a chunk origin."""

    def __init__(
        self,
        workqueue: WorkQueue,
        *,
        cache_size: int = CHUNKCACHE_SIZE,
        pool_size: int | None = None,
        random_tick: Optional[RandomTick] = None,
        random_ticks_per_chunk: int = RANDOMTICKS_PER_CHUNK,
    ) -> None:
        if cache_size < 3 or cache_size % 2 == 0:
            raise ValueError("cache size must be an odd number of at least 3")
        if pool_size is None:
            pool_size = cache_size * cache_size + cache_size * 6
        if pool_size < cache_size * cache_size:
            raise ValueError("chunk pool is smaller than the cache")
        self.name = "TestWelt"
        self.workqueue = workqueue
        self.gen_settings = GenSettings()
        self.cache_size = cache_size
        self.pool_size = pool_size
        self.random_tick = random_tick
        self.random_ticks_per_chunk = random_ticks_per_chunk
        self.reset()

    def reset(self) -> None:
        """Empty the pool and fill the cache around chunk ``(0, 0)``."""
        self.cache_translation_x = 0
        self.cache_translation_z = 0
        self.free_chunks: list[Chunk] = [Chunk(_UNPLACED, _UNPLACED) for _ in range(self.pool_size)]
        self.random_tick_gen = Xorshift32(random.getrandbits(32))
        half = self.cache_size // 2
        self.chunk_cache: list[list[Chunk | None]] = [
            [self.load_chunk(i - half, j - half) for j in range(self.cache_size)]
            for i in range(self.cache_size)
        ]

    def load_chunk(self, x: int, z: int) -> Chunk | None:
        """Take chunk ``(x, z)`` from the pool, queueing a load if it is reused for new ground."""
        for i, chunk in enumerate(self.free_chunks):
            if chunk.x == x and chunk.z == z:
                del self.free_chunks[i]
                chunk.references += 1
                return chunk
        for i, old in enumerate(self.free_chunks):
            if not old.tasks_running:
                del self.free_chunks[i]
                chunk = Chunk(x, z)
                self.workqueue.add_item(WorkerItem(WorkerItemType.LOAD, chunk))
                chunk.references += 1
                return chunk
        return None

    def unload_chunk(self, chunk: Chunk) -> None:
        """Queue ``chunk`` for saving and return it to the pool."""
        self.workqueue.add_item(WorkerItem(WorkerItemType.SAVE, chunk))
        self.free_chunks.append(chunk)
        chunk.references -= 1

    def get_chunk(self, x: int, z: int) -> Chunk | None:
        """The cached chunk at chunk coordinates ``(x, z)``, or None."""
        half = self.cache_size // 2
        low_x = self.cache_translation_x - half
        low_z = self.cache_translation_z - half
        if low_x <= x <= self.cache_translation_x + half and low_z <= z <= self.cache_translation_z + half:
            return self.chunk_cache[x - low_x][z - low_z]
        return None

    def _locate(self, x: int, y: int, z: int) -> Chunk | None:
        if not 0 <= y < CHUNK_HEIGHT:
            return None
        return self.get_chunk(to_chunk_coord(x), to_chunk_coord(z))

    def get_block(self, x: int, y: int, z: int) -> Block:
        """The block at world position ``(x, y, z)``; air outside the cache."""
        chunk = self._locate(x, y, z)
        if chunk is None:
            return Block.AIR
        return chunk.get_block(to_local_coord(x), y, to_local_coord(z))

    def get_metadata(self, x: int, y: int, z: int) -> int:
        """The metadata at world position ``(x, y, z)``; 0 outside the cache."""
        chunk = self._locate(x, y, z)
        if chunk is None:
            return 0
        return chunk.get_metadata(to_local_coord(x), y, to_local_coord(z))

    def _notify_neighbours(self, chunk: Chunk, x: int, y: int, z: int) -> None:
        cx, cz = to_chunk_coord(x), to_chunk_coord(z)
        lx, lz = to_local_coord(x), to_local_coord(z)
        cluster = y // CHUNK_SIZE
        for touches, dx, dz in (
            (lx == 0, -1, 0),
            (lx == CHUNK_SIZE - 1, 1, 0),
            (lz == 0, 0, -1),
            (lz == CHUNK_SIZE - 1, 0, 1),
        ):
            if touches:
                neighbour = self.get_chunk(cx + dx, cz + dz)
                if neighbour is not None:
                    neighbour.request_graphics_update(cluster)
        ly = y % CHUNK_SIZE
        if ly == 0 and cluster - 1 >= 0:
            chunk.request_graphics_update(cluster - 1)
        if ly == CHUNK_SIZE - 1 and cluster + 1 < CLUSTER_PER_CHUNK:
            chunk.request_graphics_update(cluster + 1)

    def set_block(self, x: int, y: int, z: int, block: Block) -> None:
        """Place ``block``; ignored outside the cache or height range."""
        chunk = self._locate(x, y, z)
        if chunk is not None:
            chunk.set_block(to_local_coord(x), y, to_local_coord(z), block)
            self._notify_neighbours(chunk, x, y, z)

    def set_block_and_meta(self, x: int, y: int, z: int, block: Block, metadata: int) -> None:
        """Place ``block`` with ``metadata``; ignored outside the cache or height range."""
        chunk = self._locate(x, y, z)
        if chunk is not None:
            chunk.set_block_and_meta(to_local_coord(x), y, to_local_coord(z), block, metadata)
            self._notify_neighbours(chunk, x, y, z)

    def set_metadata(self, x: int, y: int, z: int, metadata: int) -> None:
        """Set the metadata; ignored outside the cache or height range."""
        chunk = self._locate(x, y, z)
        if chunk is not None:
            chunk.set_metadata(to_local_coord(x), y, to_local_coord(z), metadata)
            self._notify_neighbours(chunk, x, y, z)

    def get_height(self, x: int, z: int) -> int:
        """The heightmap value of column ``(x, z)``; 0 outside the cache."""
        chunk = self.get_chunk(to_chunk_coord(x), to_chunk_coord(z))
        if chunk is None:
            return 0
        return chunk.get_height(to_local_coord(x), to_local_coord(z))

    def update_chunk_cache(self, origin_x: int, origin_z: int) -> None:
        """Recentre the cache on chunk ``(origin_x, origin_z)``, keeping chunks still in range."""
        if origin_x == self.cache_translation_x and origin_z == self.cache_translation_z:
            return
        size = self.cache_size
        half = size // 2
        old = [list(column) for column in self.chunk_cache]
        old_start_x = self.cache_translation_x - half
        old_start_z = self.cache_translation_z - half
        diff_x = origin_x - self.cache_translation_x
        diff_z = origin_z - self.cache_translation_z

        for i in range(size):
            for j in range(size):
                wx = origin_x + i - half
                wz = origin_z + j - half
                if old_start_x <= wx < old_start_x + size and old_start_z <= wz < old_start_z + size:
                    self.chunk_cache[i][j] = old[i + diff_x][j + diff_z]
                    old[i + diff_x][j + diff_z] = None
                else:
                    self.chunk_cache[i][j] = self.load_chunk(wx, wz)

        for column in old:
            for chunk in column:
                if chunk is not None:
                    self.unload_chunk(chunk)

        self.cache_translation_x = origin_x
        self.cache_translation_z = origin_z

    def tick(self) -> None:
        """Queue generation work and run random block ticks."""
        size = self.cache_size
        count = self.random_ticks_per_chunk
        for x, column in enumerate(self.chunk_cache):
            for z, chunk in enumerate(column):
                if chunk is None:
                    continue
                if chunk.gen_progress == GenProgress.EMPTY and not chunk.tasks_running:
                    self.workqueue.add_item(WorkerItem(WorkerItemType.BASE_GEN, chunk))

                if (
                    0 < x < size - 1
                    and 0 < z < size - 1
                    and chunk.gen_progress == GenProgress.TERRAIN
                    and not chunk.tasks_running
                ):
                    border = (
                        self.chunk_cache[x + dx][z + dz] for dx in (-1, 0, 1) for dz in (-1, 0, 1)
                    )
                    if all(
                        b is not None and b.gen_progress != GenProgress.EMPTY and b.tasks_running
                        for b in border
                    ):
                        self.workqueue.add_item(WorkerItem(WorkerItemType.DECORATE, chunk))

                    draws = [to_local_coord(next(self.random_tick_gen)) for _ in range(3 * count)]
                    if self.random_tick is not None:
                        self.random_tick(self, chunk, draws[0::3], draws[1::3], draws[2::3])