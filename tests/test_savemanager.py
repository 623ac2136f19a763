import msgpack
import pytest

from voxelcraft.chunk import Block, Chunk
from voxelcraft.savemanager import PlayerState, SaveManager, init_file_system
from voxelcraft.superchunk import chunk_to_superchunk_coord
from voxelcraft.workqueue import WorkerItem, WorkerItemType, WorkQueue
from voxelcraft.world import World, WorldGenType


def _world():
    return World(WorkQueue(), cache_size=3)


def test_init_file_system_creates_saves(tmp_path):
    saves = init_file_system(tmp_path)
    assert saves == tmp_path / "saves"
    assert saves.is_dir()


def test_unload_before_load_raises(tmp_path):
    mgr = SaveManager(_world(), PlayerState(), tmp_path)
    with pytest.raises(RuntimeError):
        mgr.unload()


def test_manifest_round_trip(tmp_path):
    world = _world()
    world.name = "Insel"
    world.gen_settings.type = WorldGenType.SMEA
    player = PlayerState(x=1.5, y=17.0, z=-3.25, pitch=0.5, yaw=1.25, flying=True)
    mgr = SaveManager(world, player, tmp_path)
    mgr.load("w")
    mgr.unload()

    world2 = _world()
    player2 = PlayerState()
    SaveManager(world2, player2, tmp_path).load("w")
    assert world2.name == "Insel"
    assert world2.gen_settings.type == WorldGenType.SMEA
    assert player2.x == 1.5
    assert player2.y == pytest.approx(17.0 + 0.1)
    assert player2.z == -3.25
    assert player2.pitch == 0.5
    assert player2.yaw == 1.25
    assert player2.flying is True
    assert player2.crouching is False


def test_manifest_layout(tmp_path):
    mgr = SaveManager(_world(), PlayerState(x=1.5), tmp_path)
    mgr.load("w")
    mgr.unload()
    doc = msgpack.unpackb((tmp_path / "saves" / "w" / "level.mp").read_bytes(), raw=False)
    assert list(doc) == ["name", "players", "worldType"]
    assert list(doc["players"][0]) == ["x", "y", "z", "pitch", "yaw", "flying", "crouching"]
    assert doc["players"][0]["x"] == 1.5
    assert doc["name"] == "TestWelt"


def test_load_without_manifest_keeps_defaults(tmp_path):
    world = _world()
    player = PlayerState(y=5.0)
    SaveManager(world, player, tmp_path).load("fresh")
    assert world.name == "TestWelt"
    assert player.y == 5.0
    assert (tmp_path / "saves" / "fresh" / "superchunks").is_dir()


def test_optional_fields_default(tmp_path):
    folder = tmp_path / "saves" / "old"
    folder.mkdir(parents=True)
    doc = {"name": "Alt", "players": [{"x": 1.0, "y": 2.0, "z": 3.0, "pitch": 0.0, "yaw": 0.0}]}
    (folder / "level.mp").write_bytes(msgpack.packb(doc))
    world = _world()
    world.gen_settings.type = WorldGenType.SMEA
    player = PlayerState(flying=True, crouching=True)
    SaveManager(world, player, tmp_path).load("old")
    assert world.name == "Alt"
    assert world.gen_settings.type == WorldGenType.SUPER_FLAT
    assert player.flying is False
    assert player.crouching is False
    assert player.y == pytest.approx(2.0 + 0.1)


def test_manifest_without_name_raises(tmp_path):
    folder = tmp_path / "saves" / "broken"
    folder.mkdir(parents=True)
    doc = {"players": [{"x": 1.0, "y": 2.0, "z": 3.0, "pitch": 0.0, "yaw": 0.0}]}
    (folder / "level.mp").write_bytes(msgpack.packb(doc))
    with pytest.raises(ValueError):
        SaveManager(_world(), PlayerState(), tmp_path).load("broken")


def test_chunk_round_trip_through_handlers(tmp_path):
    queue = WorkQueue()
    mgr = SaveManager(_world(), PlayerState(), tmp_path)
    mgr.load("w")
    chunk = Chunk(3, -5)
    chunk.set_block(2, 40, 9, Block.BRICK)
    mgr.save_chunk(queue, WorkerItem(WorkerItemType.SAVE, chunk))
    mgr.unload()

    sx, sz = chunk_to_superchunk_coord(3), chunk_to_superchunk_coord(-5)
    assert (tmp_path / "saves" / "w" / "superchunks" / f"s.{sx}.{sz}.mp").is_file()

    mgr2 = SaveManager(_world(), PlayerState(), tmp_path)
    mgr2.load("w")
    loaded = Chunk(3, -5)
    mgr2.load_chunk(queue, WorkerItem(WorkerItemType.LOAD, loaded))
    assert loaded.get_block(2, 40, 9) == Block.BRICK
    assert loaded.get_block(2, 41, 9) == Block.AIR
    assert loaded.revision == chunk.revision
    mgr2.unload()