import itertools

import pytest

from voxelcraft.chunk import CHUNK_SIZE, Block, can_see_through
from voxelcraft.direction import Direction
from voxelcraft.polygen import VERTEX_FORMAT, VERTEX_SIZE, PolyGen, is_opaque
from voxelcraft.workqueue import WorkerItem, WorkerItemType, WorkQueue
from voxelcraft.world import World

FACES = [d for d in Direction if d != Direction.INVALID]


def make_world():
    return World(WorkQueue(), cache_size=3)


def run(polygen, chunk):
    polygen.generate_polygons(polygen.world.workqueue, WorkerItem(WorkerItemType.POLY_GEN, chunk))


def decode(block, count):
    return list(VERTEX_FORMAT.iter_unpack(bytes(block.memory[: count * VERTEX_SIZE])))


def fill_cluster(chunk, index, block):
    cluster = chunk.clusters[index]
    cluster.blocks[:] = bytes([block]) * CHUNK_SIZE**3
    cluster.revision += 1
    chunk.revision += 1
    return cluster


@pytest.mark.parametrize(
    "block, expected",
    [(Block.AIR, False), (Block.STONE, True), (Block.LEAVES, False), (Block.GLASS, False), (Block.DIRT, True)],
)
def test_is_opaque(block, expected):
    assert is_opaque(block, 0) is expected


def test_single_block_gives_six_opaque_faces():
    world = make_world()
    chunk = world.get_chunk(0, 0)
    chunk.set_block(5, 5, 5, Block.STONE)
    polygen = PolyGen(world)
    run(polygen, chunk)
    assert len(polygen) == 1
    update = polygen.updates[0]
    assert (update.x, update.y, update.z) == (0, 0, 0)
    assert update.vertices == 36
    assert update.transparent_vertices == 0
    assert all(can_see_through(update.visibility, a, b) for a, b in itertools.permutations(FACES, 2))


def test_vertices_cover_the_block():
    world = make_world()
    chunk = world.get_chunk(0, 0)
    chunk.set_block(5, 5, 5, Block.STONE)
    polygen = PolyGen(world)
    run(polygen, chunk)
    update = polygen.updates[0]
    vertices = decode(update.vbo, update.vertices)
    for axis in range(3):
        assert {v[axis] for v in vertices} == {5, 6}
    assert {v[3] for v in vertices} | {v[4] for v in vertices} <= {1, 32768 // 8 - 1}
    assert all(v[5:8] == (255, 255, 255) for v in vertices)


def test_texture_and_colour_lookups_are_used():
    world = make_world()
    chunk = world.get_chunk(0, 0)
    chunk.set_block(5, 5, 5, Block.STONE)
    calls = []

    def texture(block, direction, metadata):
        calls.append((block, direction))
        return (4096, 0)

    polygen = PolyGen(world, texture_uv=texture, color=lambda b, m, d: (10, 20, 30))
    run(polygen, chunk)
    update = polygen.updates[0]
    vertices = decode(update.vbo, update.vertices)
    assert {block for block, _ in calls} == {Block.STONE}
    assert {direction for _, direction in calls} == set(FACES)
    assert all(v[5:8] == (10, 20, 30) for v in vertices)
    assert all(v[3] >= 4096 for v in vertices)


def test_leaves_are_transparent():
    world = make_world()
    chunk = world.get_chunk(0, 0)
    chunk.set_block(3, 4, 5, Block.LEAVES)
    polygen = PolyGen(world)
    run(polygen, chunk)
    update = polygen.updates[0]
    assert update.vertices == 0
    assert update.transparent_vertices == 36
    assert update.vbo.size == 0


def test_solid_cluster_is_closed_and_only_shows_its_shell():
    world = make_world()
    chunk = world.get_chunk(0, 0)
    fill_cluster(chunk, 1, Block.STONE)
    polygen = PolyGen(world)
    run(polygen, chunk)
    update = polygen.updates[0]
    assert update.y == 1
    assert update.visibility == 0
    assert update.vertices == 6 * CHUNK_SIZE * CHUNK_SIZE * 6
    ys = {v[1] for v in decode(update.vbo, update.vertices)}
    assert min(ys) == CHUNK_SIZE and max(ys) == 2 * CHUNK_SIZE


def test_player_inside_a_pocket_sees_its_walls():
    world = make_world()
    chunk = world.get_chunk(0, 0)
    cluster = fill_cluster(chunk, 0, Block.STONE)
    chunk.set_block(8, 8, 8, Block.AIR)

    outside = PolyGen(world)
    run(outside, chunk)
    cluster.force_vbo_update = True
    inside = PolyGen(world, player_position=lambda: (8.5, 8.5, 8.5))
    run(inside, chunk)
    assert inside.updates[0].vertices == outside.updates[0].vertices + 6 * 6


def test_neighbour_chunk_hides_border_face():
    world = make_world()
    chunk = world.get_chunk(0, 0)
    chunk.set_block(0, 5, 5, Block.STONE)
    alone = PolyGen(world)
    run(alone, chunk)

    world.set_block(-1, 5, 5, Block.STONE)
    chunk.clusters[0].force_vbo_update = True
    covered = PolyGen(world)
    run(covered, chunk)
    assert covered.updates[0].vertices == alone.updates[0].vertices - 6


def test_unchanged_clusters_are_skipped_and_revisions_recorded():
    world = make_world()
    chunk = world.get_chunk(0, 0)
    chunk.set_block(1, 1, 1, Block.DIRT)
    chunk.force_vbo_update = True
    polygen = PolyGen(world)
    run(polygen, chunk)
    assert len(polygen) == 1
    assert chunk.display_revision == chunk.revision
    assert chunk.force_vbo_update is False
    run(polygen, chunk)
    assert len(polygen) == 1


def test_harvest_waits_before_installing():
    world = make_world()
    chunk = world.get_chunk(0, 0)
    chunk.set_block(5, 5, 5, Block.STONE)
    polygen = PolyGen(world)
    run(polygen, chunk)
    update = polygen.updates[0]
    assert [polygen.harvest() for _ in range(3)] == [0, 0, 0]
    assert chunk.clusters[0].vertices == 0
    assert polygen.harvest() == 1
    cluster = chunk.clusters[0]
    assert cluster.vertices == 36
    assert cluster.vbo is update.vbo
    assert cluster.see_through == update.visibility
    assert len(polygen) == 0
    assert polygen.harvest() == 0


def test_harvest_recycles_replaced_buffers():
    world = make_world()
    chunk = world.get_chunk(0, 0)
    chunk.set_block(5, 5, 5, Block.STONE)
    polygen = PolyGen(world)
    run(polygen, chunk)
    for _ in range(4):
        polygen.harvest()
    old = chunk.clusters[0].vbo
    assert len(polygen.vbo_cache) == 0

    chunk.set_block(10, 10, 10, Block.STONE)
    run(polygen, chunk)
    for _ in range(4):
        polygen.harvest()
    assert chunk.clusters[0].vertices == 72
    assert len(polygen.vbo_cache) == 1
    assert polygen.vbo_cache.alloc(old.size) is old