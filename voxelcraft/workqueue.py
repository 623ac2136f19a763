"""Work items for chunks and the background worker that runs them."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Callable, Iterable

from voxelcraft.chunk import Chunk, GenProgress


class WorkerItemType(IntEnum):
    """The kinds of work done on a chunk."""

    LOAD = 0
    SAVE = 1
    BASE_GEN = 2
    DECORATE = 3
    POLY_GEN = 4


@dataclass
class WorkerItem:
    """A piece of work for ``chunk``; stale once the chunk's uuid changes."""

    type: WorkerItemType
    chunk: Chunk
    uuid: int | None = None

    def __post_init__(self) -> None:
        if self.uuid is None:
            self.uuid = self.chunk.uuid


Handler = Callable[["WorkQueue", WorkerItem], Any]


class WorkQueue:
    """A thread-safe list of pending work items."""

    def __init__(self) -> None:
        self._items: list[WorkerItem] = []
        self._lock = threading.Lock()
        self.item_added = threading.Event()

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def add_item(self, item: WorkerItem) -> None:
        """Queue ``item`` and count it as a running task of its chunk."""
        with self._lock:
            item.chunk.tasks_running += 1
            if item.type == WorkerItemType.POLY_GEN:
                item.chunk.graphical_tasks_running += 1
            self._items.append(item)
        self.item_added.set()

    def take_all(self) -> list[WorkerItem]:
        """Remove and return every queued item, oldest first."""
        with self._lock:
            items, self._items = self._items, []
        return items

    def _task_done(self, item: WorkerItem) -> None:
        with self._lock:
            item.chunk.tasks_running -= 1
            if item.type == WorkerItemType.POLY_GEN:
                item.chunk.graphical_tasks_running -= 1


@dataclass(eq=False)
class _HandlerEntry:
    func: Handler
    owner: Any
    active: bool = True


class ChunkWorker:
    """Runs the handlers registered for each item type on queued work."""

    def __init__(self, queue: WorkQueue | None = None) -> None:
        self.queue = queue if queue is not None else WorkQueue()
        self._handlers: dict[WorkerItemType, list[_HandlerEntry]] = {t: [] for t in WorkerItemType}
        self.working = False
        self._stopping = False
        self._thread: threading.Thread | None = None

    def __enter__(self) -> ChunkWorker:
        self.start()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.stop()

    def add_handler(self, item_type: WorkerItemType, func: Handler, owner: Any = None) -> None:
        """Register ``func(queue, item)`` for items of ``item_type``."""
        self._handlers[WorkerItemType(item_type)].append(_HandlerEntry(func, owner))

    def set_handler_active(self, item_type: WorkerItemType, owner: Any, active: bool) -> None:
        """Switch the first handler of ``owner`` for ``item_type`` on or off."""
        for entry in self._handlers[WorkerItemType(item_type)]:
            if entry.owner is owner:
                entry.active = active
                return

    def process(self, items: Iterable[WorkerItem]) -> None:
        """Run the handlers for each item in the given order, skipping stale ones."""
        for item in items:
            if item.uuid != item.chunk.uuid:
                continue
            for entry in list(self._handlers[item.type]):
                if entry.active:
                    entry.func(self.queue, item)
            if item.type == WorkerItemType.BASE_GEN:
                item.chunk.gen_progress = GenProgress.TERRAIN
            elif item.type == WorkerItemType.DECORATE:
                item.chunk.gen_progress = GenProgress.FINISHED
            self.queue._task_done(item)

    def _mainloop(self) -> None:
        try:
            while not self._stopping or len(self.queue):
                self.working = False
                self.queue.item_added.wait()
                self.queue.item_added.clear()
                self.working = True
                # The most recently queued work is done first.
                self.process(reversed(self.queue.take_all()))
        finally:
            self.working = False

    def _running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the background thread."""
        if self._running():
            raise RuntimeError("worker already running")
        self._stopping = False
        self._thread = threading.Thread(target=self._mainloop, name="chunk-worker", daemon=True)
        self._thread.start()

    def finish(self) -> None:
        """Block until every queued item has been handled."""
        self.queue.item_added.set()
        while self._running() and (self.working or len(self.queue)):
            time.sleep(0.001)
        if not self._running():
            while len(self.queue):
                self.process(reversed(self.queue.take_all()))

    def stop(self) -> None:
        """Handle what is left in the queue, then end the background thread."""
        self._stopping = True
        self.queue.item_added.set()
        if self._thread is not None:
            self._thread.join()
            self._thread = None