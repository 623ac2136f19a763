"""Mesh generation for chunk clusters, with flood-fill visibility between cluster faces."""

from __future__ import annotations

import math
import struct
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Optional

from voxelcraft.chunk import CHUNK_SIZE, Block, Chunk, Cluster, see_through_bit
from voxelcraft.direction import Direction
from voxelcraft.vbocache import VBOBlock, VBOCache
from voxelcraft.world import to_chunk_coord, to_local_coord

VERTEX_FORMAT = struct.Struct("<3h2h3B3B")
VERTEX_SIZE = VERTEX_FORMAT.size

_VOLUME = CHUNK_SIZE**3
_ICON_SPAN = 32768 // 8
_FACE_DIRECTIONS = tuple(d for d in Direction if d != Direction.INVALID)
_NON_OPAQUE = frozenset({Block.AIR, Block.LEAVES, Block.GLASS})

TextureLookup = Callable[[Block, Direction, int], "tuple[int, int]"]
ColorLookup = Callable[[Block, int, Direction], "tuple[int, int, int]"]


def is_opaque(block: int, metadata: int) -> bool:
    """Whether ``block`` hides whatever lies behind it."""
    return block not in _NON_OPAQUE


@dataclass(frozen=True)
class WorldVertex:
    """One vertex of a block mesh: position, texture coordinate, colour and effects."""

    xyz: tuple[int, int, int]
    uv: tuple[int, int]
    rgb: tuple[int, int, int] = (255, 255, 255)
    fx: tuple[int, int, int] = (0, 0, 0)


def _quad(corners: Iterable[tuple[tuple[int, int, int], tuple[int, int]]]) -> list[WorldVertex]:
    return [WorldVertex(xyz, uv) for xyz, uv in corners]


CUBE_SIDES: tuple[WorldVertex, ...] = tuple(
    # West
    _quad([((0, 0, 0), (0, 0)), ((0, 0, 1), (1, 0)), ((0, 1, 1), (1, 1)),
           ((0, 1, 1), (1, 1)), ((0, 1, 0), (0, 1)), ((0, 0, 0), (0, 0))])
    # East
    + _quad([((1, 0, 0), (1, 0)), ((1, 1, 0), (1, 1)), ((1, 1, 1), (0, 1)),
             ((1, 1, 1), (0, 1)), ((1, 0, 1), (0, 0)), ((1, 0, 0), (1, 0))])
    # Bottom
    + _quad([((0, 0, 0), (0, 1)), ((1, 0, 0), (1, 1)), ((1, 0, 1), (1, 0)),
             ((1, 0, 1), (1, 0)), ((0, 0, 1), (0, 0)), ((0, 0, 0), (0, 1))])
    # Top
    + _quad([((0, 1, 0), (0, 1)), ((0, 1, 1), (0, 0)), ((1, 1, 1), (1, 0)),
             ((1, 1, 1), (1, 0)), ((1, 1, 0), (1, 1)), ((0, 1, 0), (0, 1))])
    # North
    + _quad([((0, 0, 0), (1, 0)), ((0, 1, 0), (1, 1)), ((1, 1, 0), (0, 1)),
             ((1, 1, 0), (0, 1)), ((1, 0, 0), (0, 0)), ((0, 0, 0), (1, 0))])
    # South
    + _quad([((0, 0, 1), (0, 0)), ((1, 0, 1), (1, 0)), ((1, 1, 1), (1, 1)),
             ((1, 1, 1), (1, 1)), ((0, 1, 1), (0, 1)), ((0, 0, 1), (0, 0))])
)


@dataclass(frozen=True)
class Face:
    """A visible block face at a position local to its cluster."""

    x: int
    y: int
    z: int
    direction: Direction
    block: Block
    ao: int
    metadata: int
    transparent: bool


@dataclass(eq=False)
class VBOUpdate:
    """A freshly built mesh waiting to replace the one of cluster ``y`` of chunk ``(x, z)``."""

    x: int
    y: int
    z: int
    vertices: int
    transparent_vertices: int
    visibility: int
    vbo: VBOBlock = field(default_factory=VBOBlock)
    transparent_vbo: VBOBlock = field(default_factory=VBOBlock)
    delay: int = 0


def _default_texture(block: Block, direction: Direction, metadata: int) -> tuple[int, int]:
    return (0, 0)


def _default_color(block: Block, metadata: int, direction: Direction) -> tuple[int, int, int]:
    return (255, 255, 255)


def _i16(value: int) -> int:
    return ((value + 0x8000) & 0xFFFF) - 0x8000


def _index(x: int, y: int, z: int) -> int:
    return (x * CHUNK_SIZE + y) * CHUNK_SIZE + z


def _inside(x: int, y: int, z: int) -> bool:
    return 0 <= x < CHUNK_SIZE and 0 <= y < CHUNK_SIZE and 0 <= z < CHUNK_SIZE


def _edge(c: int, low: Direction, high: Direction) -> Direction:
    if c == 0:
        return low
    if c == CHUNK_SIZE - 1:
        return high
    return Direction.INVALID


class _Mesher:
    """Collects the visible faces of one cluster."""

    def __init__(self, world: Any, chunk: Chunk, cluster: Cluster) -> None:
        self.world = world
        self.chunk = chunk
        self.cluster = cluster
        self.faces: list[Face] = []
        self.transparent_faces = 0
        self.visited = bytearray(_VOLUME)

    def own(self, x: int, y: int, z: int) -> tuple[int, int]:
        i = _index(x, y, z)
        return self.cluster.blocks[i], self.cluster.metadata_light[i] & 0xF

    def fetch(self, x: int, y: int, z: int) -> tuple[int, int]:
        if _inside(x, y, z):
            return self.own(x, y, z)
        wx = self.chunk.x * CHUNK_SIZE + x
        wy = self.cluster.y * CHUNK_SIZE + y
        wz = self.chunk.z * CHUNK_SIZE + z
        return self.world.get_block(wx, wy, wz), self.world.get_metadata(wx, wy, wz)

    def add_face(self, x: int, y: int, z: int, direction: Direction, block: int, metadata: int,
                 transparent: bool) -> None:
        if _inside(x, y, z):
            self.faces.append(Face(x, y, z, Direction(direction), Block(block), 0, metadata, transparent))
            self.transparent_faces += transparent

    def border_face(self, x: int, y: int, z: int, direction: Direction) -> None:
        block, meta = self.own(x, y, z)
        if block != Block.AIR:
            self.add_face(x, y, z, direction, block, meta, not is_opaque(block, meta))

    def flood_fill(self, x: int, y: int, z: int, entries: Iterable[Direction]) -> int:
        if self.visited[_index(x, y, z)] & 1:
            return 0
        exits = [False] * len(_FACE_DIRECTIONS)
        for entry in entries:
            if entry != Direction.INVALID:
                exits[entry] = True
        blocks = self.cluster.blocks
        metadata = self.cluster.metadata_light
        visited = self.visited
        stack = [(x, y, z)]
        while stack:
            ix, iy, iz = stack.pop()
            from_air = blocks[_index(ix, iy, iz)] == Block.AIR
            for direction in _FACE_DIRECTIONS:
                dx, dy, dz = direction.offset()
                nx, ny, nz = ix + dx, iy + dy, iz + dz
                if not _inside(nx, ny, nz):
                    exits[direction] = True
                    continue
                n = _index(nx, ny, nz)
                block = blocks[n]
                meta = metadata[n] & 0xF
                opaque = is_opaque(block, meta)
                if not opaque and not visited[n] & 1:
                    visited[n] |= 1
                    stack.append((nx, ny, nz))
                if (from_air or opaque) and block != Block.AIR:
                    self.add_face(nx, ny, nz, direction.opposite(), block, meta, not opaque)
        visibility = 0
        for a in _FACE_DIRECTIONS:
            if exits[a]:
                for b in _FACE_DIRECTIONS:
                    if a != b and exits[b]:
                        visibility |= see_through_bit(a, b)
        return visibility

    def scan_borders(self) -> int:
        visibility = 0
        last = CHUNK_SIZE - 1
        for x in (0, last):
            x_dir = Direction.WEST if x == 0 else Direction.EAST
            for z in range(CHUNK_SIZE):
                z_dir = _edge(z, Direction.NORTH, Direction.SOUTH)
                for y in range(CHUNK_SIZE):
                    y_dir = _edge(y, Direction.BOTTOM, Direction.TOP)
                    if not is_opaque(*self.own(x, y, z)):
                        visibility |= self.flood_fill(x, y, z, (x_dir, y_dir, z_dir))
                    if not is_opaque(*self.fetch(x + (-1 if x == 0 else 1), y, z)):
                        self.border_face(x, y, z, x_dir)
        for y in (0, last):
            y_dir = Direction.BOTTOM if y == 0 else Direction.TOP
            for x in range(CHUNK_SIZE):
                x_dir = _edge(x, Direction.WEST, Direction.EAST)
                for z in range(CHUNK_SIZE):
                    z_dir = _edge(z, Direction.SOUTH, Direction.NORTH)
                    if not is_opaque(*self.own(x, y, z)):
                        visibility |= self.flood_fill(x, y, z, (x_dir, y_dir, z_dir))
                    if not is_opaque(*self.fetch(x, y + (-1 if y == 0 else 1), z)):
                        self.border_face(x, y, z, y_dir)
        for z in (0, last):
            z_dir = Direction.NORTH if z == 0 else Direction.SOUTH
            for x in range(CHUNK_SIZE):
                x_dir = _edge(x, Direction.WEST, Direction.EAST)
                for y in range(CHUNK_SIZE):
                    y_dir = _edge(y, Direction.BOTTOM, Direction.TOP)
                    own_block, own_meta = self.own(x, y, z)
                    if not is_opaque(own_block, own_meta):
                        visibility |= self.flood_fill(x, y, z, (x_dir, y_dir, z_dir))
                    block, _ = self.fetch(x, y, z + (-1 if z == 0 else 1))
                    if not is_opaque(block, own_meta):
                        self.border_face(x, y, z, z_dir)
        return visibility


class PolyGen:
    """Builds cluster meshes on the worker and hands them to the renderer via ``harvest``."""

    def __init__(
        self,
        world: Any,
        player_position: Optional[Callable[[], "tuple[float, float, float]"]] = None,
        vbo_cache: VBOCache | None = None,
        texture_uv: Optional[TextureLookup] = None,
        color: Optional[ColorLookup] = None,
    ) -> None:
        self.world = world
        self.player_position = player_position
        self.vbo_cache = vbo_cache if vbo_cache is not None else VBOCache()
        self.texture_uv = texture_uv or _default_texture
        self.color = color or _default_color
        self.updates: list[VBOUpdate] = []
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self.updates)

    def _player_cell(self) -> tuple[int, int, int] | None:
        if self.player_position is None:
            return None
        px, py, pz = self.player_position()
        return math.floor(px), math.floor(py), math.floor(pz)

    def _write(self, faces: list[Face], block: VBOBlock, chunk: Chunk, index: int) -> None:
        pos = 0
        for face in faces:
            ox = face.x + chunk.x * CHUNK_SIZE
            oy = face.y + index * CHUNK_SIZE
            oz = face.z + chunk.z * CHUNK_SIZE
            icon_u, icon_v = self.texture_uv(face.block, face.direction, face.metadata)
            r, g, b = self.color(face.block, face.metadata, face.direction)
            for corner in CUBE_SIDES[face.direction * 6:face.direction * 6 + 6]:
                cx, cy, cz = corner.xyz
                u, v = corner.uv
                VERTEX_FORMAT.pack_into(
                    block.memory, pos,
                    _i16(cx + ox), _i16(cy + oy), _i16(cz + oz),
                    _i16((_ICON_SPAN - 1 if u == 1 else 1) + icon_u),
                    _i16((_ICON_SPAN - 1 if v == 1 else 1) + icon_v),
                    r & 0xFF, g & 0xFF, b & 0xFF,
                    *corner.fx,
                )
                pos += VERTEX_SIZE

    def _build(self, chunk: Chunk, index: int, cluster: Cluster) -> VBOUpdate:
        mesher = _Mesher(self.world, chunk, cluster)
        visibility = mesher.scan_borders()

        cell = self._player_cell()
        if cell is not None:
            px, py, pz = cell
            if to_chunk_coord(px) == chunk.x and to_chunk_coord(pz) == chunk.z and to_chunk_coord(py) == index:
                mesher.flood_fill(to_local_coord(px), to_local_coord(py), to_local_coord(pz), ())

        transparent_vertices = mesher.transparent_faces * 6
        opaque_vertices = len(mesher.faces) * 6 - transparent_vertices
        update = VBOUpdate(chunk.x, index, chunk.z, opaque_vertices, transparent_vertices, visibility)
        if mesher.faces:
            if opaque_vertices > 0:
                update.vbo = self.vbo_cache.alloc(opaque_vertices * VERTEX_SIZE)
                self._write([f for f in mesher.faces if not f.transparent], update.vbo, chunk, index)
            if transparent_vertices > 0:
                update.transparent_vbo = self.vbo_cache.alloc(transparent_vertices * VERTEX_SIZE)
                self._write([f for f in mesher.faces if f.transparent], update.transparent_vbo, chunk, index)
        return update

    def generate_polygons(self, queue: Any, item: Any) -> None:
        """Worker handler: rebuild the meshes of every changed cluster of ``item.chunk``."""
        chunk = item.chunk
        for index, cluster in enumerate(chunk.clusters):
            if cluster.revision == cluster.vbo_revision and not cluster.force_vbo_update:
                continue
            cluster.vbo_revision = cluster.revision
            cluster.force_vbo_update = False
            update = self._build(chunk, index, cluster)
            with self._lock:
                self.updates.append(update)
        chunk.display_revision = chunk.revision
        chunk.force_vbo_update = False

    def harvest(self) -> int:
        """Install pending meshes once they have waited a few calls; returns how many were installed."""
        if not self._lock.acquire(blocking=False):
            return 0
        try:
            if not self.updates:
                return 0
            first = self.updates[0]
            waited = first.delay
            first.delay = (first.delay + 1) & 0xFF
            if waited <= 2:
                return 0
            applied = 0
            while self.updates:
                update = self.updates.pop()
                chunk = self.world.get_chunk(update.x, update.z)
                if chunk is None:
                    continue
                cluster = chunk.clusters[update.y]
                if cluster.vertices > 0:
                    self.vbo_cache.free(cluster.vbo)
                if cluster.transparent_vertices > 0:
                    self.vbo_cache.free(cluster.transparent_vbo)
                cluster.vbo = update.vbo
                cluster.vertices = update.vertices
                cluster.transparent_vbo = update.transparent_vbo
                cluster.transparent_vertices = update.transparent_vertices
                cluster.see_through = update.visibility
                applied += 1
            return applied
        finally:
            self._lock.release()