# voxelcraft

The core of a block-based voxel world: world data, terrain, background work, savegames and mesh building. It has no renderer of its own.

## What is in it

- `voxelcraft.direction`: `Direction` (the six faces plus `INVALID`), with `offset()`, `opposite()` and `axis()`. `Axis` names the three axes.
- `voxelcraft.chunk`: the `Block` and `GenProgress` enums, `Cluster` (a 16×16×16 cube of blocks with metadata and light nibbles, and a revision-cached `is_empty()`), and `Chunk` (16 clusters stacked to a height of 256). A chunk has block and metadata access, `request_graphics_update()`, and a heightmap through `generate_heightmap()` and `get_height()`. `see_through_bit()` and `can_see_through()` read the visibility bitmask between cluster faces.
- `voxelcraft.world`: `World`, a square cache of chunks (9×9 by default) centred on an origin and backed by a chunk pool. It reads and writes blocks and metadata in world coordinates. Writes on a chunk or cluster edge ask the neighbouring chunks or clusters for a mesh rebuild. `update_chunk_cache()` moves the cache to a new centre. Chunks that leave the cache are queued for saving, and chunks that enter it are queued for loading. `tick()` queues terrain generation and decoration work and draws random tick positions. You can pass a `random_tick` callback to receive them. The module also has `to_chunk_coord()`, `to_local_coord()`, `GenSettings` and `WorldGenType`.
- `voxelcraft.workqueue`: `WorkQueue`, a thread-safe list of `WorkerItem`s, and `ChunkWorker`, which calls the handlers registered for each `WorkerItemType`.
  - `process()` runs the handlers in the calling thread.
  - `start()` runs them on a background thread. `finish()` waits until the queue is empty, and `stop()` drains the queue and ends the thread. The worker can also be used as a context manager.
  - Items whose chunk has since been reused are skipped.
- `voxelcraft.worldgen`: `SuperFlatGen` lays down bedrock, stone, dirt and grass up to height 16. `TestGen` lays a grass floor and plants trees with `make_tree()`. `random_number()` draws from a given random source.
- `voxelcraft.superchunk`: `SuperChunk` stores an 8×8 square of chunks. The chunks are zlib-compressed msgpack, kept in a data file in 2048-byte sectors. A msgpack index file records where each chunk lives. A chunk is written only when its revision has changed.
- `voxelcraft.savemanager`: `SaveManager` keeps a world under `root/saves/<name>`. Its `level.mp` manifest holds the world name, the world type and a `PlayerState`. The manager opens superchunks as they are needed. `load_chunk()` and `save_chunk()` can be registered as worker handlers.
- `voxelcraft.polygen`: `PolyGen.generate_polygons()` is a worker handler that rebuilds the mesh of every changed cluster.
  - A flood fill finds the visible faces and a see-through mask for each cluster.
  - Vertices are packed into buffers from a `VBOCache`, with opaque and transparent faces kept in separate buffers.
  - `harvest()` installs the finished meshes on their clusters after a short delay.
  - Texture and colour lookups can be passed in as callables. `is_opaque()` treats air, leaves and glass as see-through.
- `voxelcraft.vbocache`: `VBOCache` reuses freed buffers that are at most 2048 bytes larger than the size asked for.
- `voxelcraft.texturemap`: `load_texture()` reads a PNG into tiled ABGR bytes. `TextureMap.from_files()` stitches 16×16 tiles into a 128×128 atlas with two mipmap levels, and `get_icon()` finds a tile by the djb2 hash of its file name. `morton_offset()`, `tile_image32()`, `tile_image8()` and `downscale_image()` are the helpers behind them.

## Install

```
pip install .
```

To run the tests:

```
pip install .[test]
pytest
```

## Example

```python
from voxelcraft.chunk import Block
from voxelcraft.workqueue import ChunkWorker, WorkerItemType, WorkQueue
from voxelcraft.world import World
from voxelcraft.worldgen import SuperFlatGen

queue = WorkQueue()
world = World(queue)            # fills the cache and queues a load for each chunk
worker = ChunkWorker(queue)
gen = SuperFlatGen(world)
worker.add_handler(WorkerItemType.BASE_GEN, gen.generate, gen)

worker.process(queue.take_all())  # run the queued loads
world.tick()                      # queue terrain generation
worker.process(queue.take_all())  # generate the terrain

print(world.get_block(3, 16, 5))  # Block.GRASS
world.set_block(3, 17, 5, Block.STONE)
print(world.get_height(3, 5))     # 18
```

Saving works the same way. Create a `SaveManager(world, player, root)`, call `load(name)`, and register its `load_chunk` and `save_chunk` handlers for `WorkerItemType.LOAD` and `WorkerItemType.SAVE`. Call `unload()` to write the manifest and close the superchunk files.

## What it does not do

- It does not draw anything. There is no camera, no frustum culling, no sky or clouds and no user interface. Meshes are built as packed vertex bytes for some other renderer to use.
- There is no player movement or physics. `PlayerState` only holds what is saved.
- `WorldGenType.SMEA` can be stored in a save, but there is no noise-based terrain generator for it. Only `SuperFlatGen` and `TestGen` are provided.
- Block textures and colours are not built in. `PolyGen` uses zero texture coordinates and white unless you pass it lookups.