"""Region files holding 8x8 chunks: a msgpack index and a sector-based data file."""

from __future__ import annotations

import logging
import os
import threading
import zlib
from dataclasses import dataclass
from pathlib import Path

import msgpack

from voxelcraft.chunk import CHUNK_SIZE, CLUSTER_PER_CHUNK, Chunk, GenProgress

SUPERCHUNK_SIZE = 8
SECTOR_SIZE = 2048

_MASK32 = 0xFFFFFFFF
_CLUSTER_VOLUME = CHUNK_SIZE**3
_HEIGHTMAP_SIZE = CHUNK_SIZE * CHUNK_SIZE
_INDEX_KEYS = (
    ("position", "position"),
    ("compressedSize", "compressed_size"),
    ("actualSize", "actual_size"),
    ("blockSize", "block_size"),
    ("revision", "revision"),
)
_PARSE_ERRORS = (ValueError, KeyError, IndexError, TypeError, AttributeError)

log = logging.getLogger(__name__)


def chunk_to_superchunk_coord(c: int) -> int:
    """The superchunk coordinate holding chunk coordinate ``c``."""
    return c // SUPERCHUNK_SIZE


def chunk_to_local_superchunk_coord(c: int) -> int:
    """The position of chunk coordinate ``c`` inside its superchunk."""
    return c % SUPERCHUNK_SIZE


@dataclass(frozen=True)
class ChunkInfo:
    """Where a chunk's compressed data lives in the data file."""

    position: int = 0
    compressed_size: int = 0
    actual_size: int = 0
    block_size: int = 0
    revision: int = 0


class SuperChunk:
    """The saved data of an 8x8 square of chunks, kept under ``directory/superchunks``."""

    def __init__(self, x: int, z: int, directory: str | os.PathLike = ".") -> None:
        self.x = x
        self.z = z
        folder = Path(directory) / "superchunks"
        folder.mkdir(parents=True, exist_ok=True)
        self.index_path = folder / f"s.{x}.{z}.mp"
        self.data_path = folder / f"s.{x}.{z}.dat"
        self.grid: list[list[ChunkInfo]] = [
            [ChunkInfo() for _ in range(SUPERCHUNK_SIZE)] for _ in range(SUPERCHUNK_SIZE)
        ]
        self.sectors: list[bool] = []
        self._lock = threading.Lock()
        if self.index_path.exists():
            self._read_index()
        try:
            self._data = open(self.data_path, "r+b")
        except FileNotFoundError:
            self._data = open(self.data_path, "w+b")

    def __enter__(self) -> SuperChunk:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _read_index(self) -> None:
        try:
            root = msgpack.unpackb(self.index_path.read_bytes(), raw=False)
            entries = root["chunkIndices"]
            if len(entries) < SUPERCHUNK_SIZE * SUPERCHUNK_SIZE:
                raise ValueError("too few chunk entries")
            for i, entry in enumerate(entries[: SUPERCHUNK_SIZE * SUPERCHUNK_SIZE]):
                info = ChunkInfo(*(int(entry[key]) for key, _ in _INDEX_KEYS))
                self.grid[i % SUPERCHUNK_SIZE][i // SUPERCHUNK_SIZE] = info
                if info.actual_size > 0:
                    end = info.position + info.block_size
                    if end > len(self.sectors):
                        self.sectors.extend([False] * (end - len(self.sectors)))
                    self.sectors[info.position:end] = [True] * info.block_size
        except _PARSE_ERRORS as exc:
            raise ValueError(f"corrupt superchunk index {self.x} {self.z}") from exc

    def reserve_sectors(self, amount: int) -> int:
        """Mark the first run of ``amount`` free sectors as used and return its start."""
        if amount < 1:
            raise ValueError("must reserve at least one sector")
        run_start: int | None = None
        run = 0
        for i, used in enumerate(self.sectors):
            if used:
                run_start = None
                run = 0
            else:
                if run_start is None:
                    run_start = i
                run += 1
            if run == amount and run_start is not None:
                self.sectors[run_start:run_start + amount] = [True] * amount
                return run_start
        self.sectors.extend([True] * amount)
        return len(self.sectors) - amount

    def free_sectors(self, address: int, size: int) -> None:
        """Mark ``size`` sectors from ``address`` as free."""
        if address < 0 or address + size > len(self.sectors):
            raise IndexError(f"sectors {address}..{address + size} out of range")
        self.sectors[address:address + size] = [False] * size

    def save_index(self) -> None:
        """Write the chunk index file."""
        entries = [
            {key: getattr(self.grid[i][j], attr) for key, attr in _INDEX_KEYS}
            for j in range(SUPERCHUNK_SIZE)
            for i in range(SUPERCHUNK_SIZE)
        ]
        self.index_path.write_bytes(msgpack.packb({"chunkIndices": entries}, use_bin_type=True))

    @staticmethod
    def _serialize(chunk: Chunk) -> bytes:
        clusters = []
        for cluster in chunk.clusters:
            empty = cluster.is_empty()
            entry: dict[str, object] = {}
            if not empty:
                entry["blocks"] = bytes(cluster.blocks)
                entry["metadataLight"] = bytes(cluster.metadata_light)
            entry["revision"] = cluster.revision & _MASK32
            entry["empty"] = empty
            clusters.append(entry)
        document = {
            "clusters": clusters,
            "genProgress": int(chunk.gen_progress),
            "heightmap": bytes(chunk.heightmap),
        }
        return msgpack.packb(document, use_bin_type=True)

    def save_chunk(self, chunk: Chunk) -> None:
        """Write ``chunk`` if it changed since it was last saved here."""
        lx = chunk_to_local_superchunk_coord(chunk.x)
        lz = chunk_to_local_superchunk_coord(chunk.z)
        revision = chunk.revision & _MASK32
        with self._lock:
            info = self.grid[lx][lz]
            if info.revision == revision:
                return
            payload = self._serialize(chunk)
            compressed = zlib.compress(payload)
            block_size = len(compressed) // SECTOR_SIZE + 1
            if info.actual_size > 0:
                self.free_sectors(info.position, info.block_size)
            address = self.reserve_sectors(block_size)
            self._data.seek(address * SECTOR_SIZE)
            self._data.write(compressed)
            self._data.flush()
            self.grid[lx][lz] = ChunkInfo(address, len(compressed), len(payload), block_size, revision)

    @staticmethod
    def _bin(node: object, size: int, what: str) -> bytes:
        if not isinstance(node, (bytes, bytearray)) or len(node) != size:
            raise ValueError(f"bad {what} data")
        return bytes(node)

    def load_chunk(self, chunk: Chunk) -> bool:
        """Fill ``chunk`` from saved data; False if nothing usable is saved for it."""
        lx = chunk_to_local_superchunk_coord(chunk.x)
        lz = chunk_to_local_superchunk_coord(chunk.z)
        with self._lock:
            info = self.grid[lx][lz]
            if info.actual_size <= 0:
                return False
            self._data.seek(info.position * SECTOR_SIZE)
            compressed = self._data.read(info.compressed_size)
        if len(compressed) != info.compressed_size:
            raise EOFError("Read chunk data size isn't equal to the expected size")
        try:
            payload = zlib.decompress(compressed)
        except zlib.error as exc:
            log.warning("Couldn't decompress chunk (%d, %d): %s", chunk.x, chunk.z, exc)
            return False

        try:
            root = msgpack.unpackb(payload, raw=False)
            nodes = root["clusters"]
            if len(nodes) < CLUSTER_PER_CHUNK:
                raise ValueError("too few clusters")
            for cluster, node in zip(chunk.clusters, nodes):
                cluster.revision = int(node["revision"])
                empty = node.get("empty")
                if empty is not None:
                    cluster.empty_revision = cluster.revision
                    cluster.empty = bool(empty)
                else:
                    cluster.empty_revision = 0
                    cluster.empty = False
                blocks = node.get("blocks")
                if isinstance(blocks, (bytes, bytearray)):
                    cluster.blocks[:] = self._bin(blocks, _CLUSTER_VOLUME, "block")
                metadata = node.get("metadataLight")
                if isinstance(metadata, (bytes, bytearray)):
                    cluster.metadata_light[:] = self._bin(metadata, _CLUSTER_VOLUME, "metadata")
            chunk.gen_progress = GenProgress(int(root["genProgress"]))
            heightmap = root["heightmap"]
            if heightmap is not None:
                chunk.heightmap[:] = self._bin(heightmap, _HEIGHTMAP_SIZE, "heightmap")
                chunk.heightmap_revision = info.revision
            else:
                chunk.heightmap_revision = 0
        except _PARSE_ERRORS as exc:
            raise ValueError(f"corrupt data for chunk ({chunk.x}, {chunk.z})") from exc

        chunk.revision = info.revision
        return True

    def close(self) -> None:
        """Write the index and close the data file."""
        with self._lock:
            self.save_index()
            self._data.close()