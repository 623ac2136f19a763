import pytest

from voxelcraft.chunk import Chunk, GenProgress
from voxelcraft.workqueue import ChunkWorker, WorkerItem, WorkerItemType, WorkQueue


def test_add_item_counts_tasks_and_sets_uuid():
    queue = WorkQueue()
    chunk = Chunk(0, 0)
    item = WorkerItem(WorkerItemType.POLY_GEN, chunk)
    queue.add_item(item)
    assert item.uuid == chunk.uuid
    assert chunk.tasks_running == 1
    assert chunk.graphical_tasks_running == 1
    assert len(queue) == 1
    assert queue.item_added.is_set()


def test_take_all_empties_queue_in_order():
    queue = WorkQueue()
    chunks = [Chunk(i, 0) for i in range(3)]
    for chunk in chunks:
        queue.add_item(WorkerItem(WorkerItemType.LOAD, chunk))
    items = queue.take_all()
    assert [item.chunk for item in items] == chunks
    assert len(queue) == 0
    assert queue.take_all() == []


def test_process_runs_handlers_and_updates_progress():
    queue = WorkQueue()
    worker = ChunkWorker(queue)
    calls = []
    worker.add_handler(WorkerItemType.BASE_GEN, lambda q, item: calls.append((q, item.chunk)), "gen")
    chunk = Chunk(1, 2)
    queue.add_item(WorkerItem(WorkerItemType.BASE_GEN, chunk))
    worker.process(queue.take_all())
    assert calls == [(queue, chunk)]
    assert chunk.gen_progress == GenProgress.TERRAIN
    assert chunk.tasks_running == 0


def test_decorate_finishes_chunk():
    queue = WorkQueue()
    worker = ChunkWorker(queue)
    chunk = Chunk(0, 0)
    queue.add_item(WorkerItem(WorkerItemType.DECORATE, chunk))
    worker.process(queue.take_all())
    assert chunk.gen_progress == GenProgress.FINISHED


def test_inactive_handler_is_skipped():
    queue = WorkQueue()
    worker = ChunkWorker(queue)
    owner = object()
    calls = []
    worker.add_handler(WorkerItemType.SAVE, lambda q, item: calls.append(item), owner)
    worker.set_handler_active(WorkerItemType.SAVE, owner, False)
    queue.add_item(WorkerItem(WorkerItemType.SAVE, Chunk(0, 0)))
    worker.process(queue.take_all())
    assert calls == []
    worker.set_handler_active(WorkerItemType.SAVE, owner, True)
    queue.add_item(WorkerItem(WorkerItemType.SAVE, Chunk(0, 0)))
    worker.process(queue.take_all())
    assert len(calls) == 1


def test_stale_item_is_ignored():
    queue = WorkQueue()
    worker = ChunkWorker(queue)
    chunk = Chunk(0, 0)
    calls = []
    worker.add_handler(WorkerItemType.LOAD, lambda q, item: calls.append(item))
    queue.add_item(WorkerItem(WorkerItemType.LOAD, chunk, uuid=chunk.uuid ^ 1))
    worker.process(queue.take_all())
    assert calls == []
    assert chunk.tasks_running == 1


def test_polygen_decrements_graphical_tasks():
    queue = WorkQueue()
    worker = ChunkWorker(queue)
    chunk = Chunk(0, 0)
    queue.add_item(WorkerItem(WorkerItemType.POLY_GEN, chunk))
    worker.finish()
    assert chunk.graphical_tasks_running == 0
    assert chunk.tasks_running == 0


@pytest.mark.timeout(10)
def test_background_thread_handles_items():
    queue = WorkQueue()
    worker = ChunkWorker(queue)
    seen = []
    worker.add_handler(WorkerItemType.BASE_GEN, lambda q, item: seen.append(item.chunk))
    chunks = [Chunk(i, i) for i in range(5)]
    with worker:
        for chunk in chunks:
            queue.add_item(WorkerItem(WorkerItemType.BASE_GEN, chunk))
        worker.finish()
        assert sorted(seen, key=lambda c: c.x) == chunks
    assert all(chunk.tasks_running == 0 for chunk in chunks)
    assert worker.working is False


def test_start_twice_raises():
    worker = ChunkWorker()
    worker.start()
    try:
        with pytest.raises(RuntimeError):
            worker.start()
    finally:
        worker.stop()