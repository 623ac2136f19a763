"""Saving and loading a world: its manifest and its chunks."""

from __future__ import annotations

import os
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import msgpack

from voxelcraft.superchunk import SuperChunk, chunk_to_superchunk_coord
from voxelcraft.world import WorldGenType

_LEVEL_FILE = "level.mp"
_PARSE_ERRORS = (ValueError, KeyError, IndexError, TypeError, AttributeError)


def init_file_system(root: str | os.PathLike) -> Path:
    """Create the saves folder under ``root`` and return it."""
    saves = Path(root) / "saves"
    saves.mkdir(parents=True, exist_ok=True)
    return saves


@dataclass
class PlayerState:
    """The part of a player that is saved with the world."""

    x: float = 0.0
    y: float = 0.0
    z: float = 0.0
    pitch: float = 0.0
    yaw: float = 0.0
    flying: bool = False
    crouching: bool = False


class SaveManager:
    """Loads and stores a world's manifest and chunk data under ``root/saves``."""

    def __init__(self, world: Any, player: PlayerState | None = None, root: str | os.PathLike = ".") -> None:
        self.world = world
        self.player = player if player is not None else PlayerState()
        self.root = Path(root)
        self.directory: Path | None = None
        self._superchunks: dict[tuple[int, int], SuperChunk] = {}
        self._lock = threading.Lock()

    def _require_directory(self) -> Path:
        if self.directory is None:
            raise RuntimeError("no world has been loaded")
        return self.directory

    def load(self, name: str) -> None:
        """Open save ``name``, creating it if needed, and read its manifest if there is one."""
        directory = init_file_system(self.root) / name
        directory.mkdir(parents=True, exist_ok=True)
        (directory / "superchunks").mkdir(exist_ok=True)
        self.directory = directory

        level = directory / _LEVEL_FILE
        if not level.exists():
            return
        try:
            doc = msgpack.unpackb(level.read_bytes(), raw=False)
            world_name = doc["name"]
            if not isinstance(world_name, str):
                raise TypeError("world name is not a string")
            world_type = doc.get("worldType")
            gen_type = WorldGenType(world_type) if world_type is not None else WorldGenType.SUPER_FLAT
            player = doc["players"][0]
            state = PlayerState(
                x=float(player["x"]),
                y=float(player["y"]) + 0.1,
                z=float(player["z"]),
                pitch=float(player["pitch"]),
                yaw=float(player["yaw"]),
                flying=bool(player.get("flying") or False),
                crouching=bool(player.get("crouching") or False),
            )
        except _PARSE_ERRORS as exc:
            raise ValueError(f"Couldn't load world manifest {name}") from exc

        self.world.name = world_name
        self.world.gen_settings.type = gen_type
        for attr, value in vars(state).items():
            setattr(self.player, attr, value)

    def unload(self) -> None:
        """Write the manifest and close every open superchunk."""
        directory = self._require_directory()
        player = self.player
        doc = {
            "name": self.world.name,
            "players": [
                {
                    "x": float(player.x),
                    "y": float(player.y),
                    "z": float(player.z),
                    "pitch": float(player.pitch),
                    "yaw": float(player.yaw),
                    "flying": bool(player.flying),
                    "crouching": bool(player.crouching),
                }
            ],
            "worldType": int(self.world.gen_settings.type),
        }
        (directory / _LEVEL_FILE).write_bytes(msgpack.packb(doc, use_bin_type=True, use_single_float=True))

        with self._lock:
            superchunks = list(self._superchunks.values())
            self._superchunks.clear()
        for superchunk in superchunks:
            superchunk.close()

    def _fetch(self, x: int, z: int) -> SuperChunk:
        directory = self._require_directory()
        with self._lock:
            superchunk = self._superchunks.get((x, z))
            if superchunk is None:
                superchunk = SuperChunk(x, z, directory)
                self._superchunks[(x, z)] = superchunk
            return superchunk

    def load_chunk(self, queue: Any, item: Any) -> None:
        """Worker handler: fill ``item.chunk`` from the save."""
        chunk = item.chunk
        superchunk = self._fetch(chunk_to_superchunk_coord(chunk.x), chunk_to_superchunk_coord(chunk.z))
        superchunk.load_chunk(chunk)

    def save_chunk(self, queue: Any, item: Any) -> None:
        """Worker handler: write ``item.chunk`` to the save."""
        chunk = item.chunk
        superchunk = self._fetch(chunk_to_superchunk_coord(chunk.x), chunk_to_superchunk_coord(chunk.z))
        superchunk.save_chunk(chunk)