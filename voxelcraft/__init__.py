"""Voxel world core: chunks, world cache, chunk worker, terrain, savegames, meshing and texture atlas helpers."""

__version__ = "0.1.0"