"""Keyed background tasks for generation and audio, with snapshot fan-out.

At most one task runs per key. Each task publishes the snapshots its
service yields to a ``SnapshotBroadcast`` that any number of callers can
subscribe to. Tasks remove their own registry entry when they finish.
"""

import asyncio
import logging
import threading
from collections.abc import Hashable
from contextlib import aclosing
from typing import AsyncIterator, Callable

from echoforge.models.project import Project
from echoforge.models.schemas import PodcastGenerationRequest

logger = logging.getLogger(__name__)

AUDIO_BROADCAST_BUFFER = 50

_CLOSED = object()


class Subscription:
    """Async iterator over the snapshots published after subscribing."""

    def __init__(self, broadcast: "SnapshotBroadcast", queue: asyncio.Queue):
        self._broadcast = broadcast
        self._queue = queue

    def __aiter__(self) -> "Subscription":
        return self

    async def __anext__(self) -> Project:
        item = await self._queue.get()
        if item is _CLOSED:
            # Keep the marker so repeated iteration also ends
            self._queue.put_nowait(_CLOSED)
            raise StopAsyncIteration
        return item

    def close(self) -> None:
        self._broadcast._detach(self._queue)
        self._queue.put_nowait(_CLOSED)


class SnapshotBroadcast:
    """Single-producer, multi-consumer channel of project snapshots.

    With ``buffer_size`` set, a slow subscriber loses its oldest snapshots
    rather than blocking the producer.
    """

    def __init__(self, buffer_size: int | None = None):
        self.buffer_size = buffer_size
        self._queues: list[asyncio.Queue] = []
        self._closed = False
        self.latest: Project | None = None

    @property
    def closed(self) -> bool:
        return self._closed

    def subscribe(self) -> Subscription:
        queue: asyncio.Queue = asyncio.Queue()
        subscription = Subscription(self, queue)
        if self._closed:
            queue.put_nowait(_CLOSED)
        else:
            self._queues.append(queue)
        return subscription

    def publish(self, snapshot: Project) -> None:
        if self._closed:
            return
        self.latest = snapshot
        for queue in list(self._queues):
            if self.buffer_size and queue.qsize() >= self.buffer_size:
                queue.get_nowait()
            queue.put_nowait(snapshot)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        for queue in self._queues:
            queue.put_nowait(_CLOSED)
        self._queues.clear()

    def _detach(self, queue: asyncio.Queue) -> None:
        if queue in self._queues:
            self._queues.remove(queue)


def _stop(task: asyncio.Task, broadcast: SnapshotBroadcast | None) -> None:
    task.cancel()
    # A task cancelled before its first step never reaches its finally
    if broadcast is not None:
        broadcast.close()


class _TaskSupervisor:

    broadcast_buffer: int | None = None

    def __init__(self):
        self._tasks: dict[Hashable, asyncio.Task] = {}
        self._broadcasts: dict[Hashable, SnapshotBroadcast] = {}
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def is_running(self, key: Hashable) -> bool:
        with self._lock:
            task = self._tasks.get(key)
            return task is not None and not task.done()

    @property
    def running_keys(self) -> list:
        with self._lock:
            return [key for key, task in self._tasks.items() if not task.done()]

    def subscribe(self, key: Hashable) -> Subscription | None:
        """Subscribe to a running task's snapshots, or None if nothing runs."""
        with self._lock:
            broadcast = self._broadcasts.get(key)
        return broadcast.subscribe() if broadcast is not None else None

    async def wait(self) -> None:
        """Wait until every task started so far has finished."""
        with self._lock:
            tasks = list(self._tasks.values())
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _start(
        self, key: Hashable, snapshots: Callable[[], AsyncIterator[Project]]
    ) -> bool:
        loop = asyncio.get_running_loop()
        with self._lock:
            existing = self._tasks.get(key)
            if existing is not None and not existing.done():
                logger.info("Task already running for %s", key)
                return False
            broadcast = SnapshotBroadcast(self.broadcast_buffer)
            task = loop.create_task(self._run(key, snapshots, broadcast))
            self._tasks[key] = task
            self._broadcasts[key] = broadcast
        logger.info("Task started for %s", key)
        return True

    def _cancel(self, key: Hashable) -> bool:
        with self._lock:
            task = self._tasks.pop(key, None)
            broadcast = self._broadcasts.pop(key, None)
        if task is None:
            return False

        loop = task.get_loop()
        try:
            on_loop = asyncio.get_running_loop() is loop
        except RuntimeError:
            on_loop = False
        if on_loop:
            _stop(task, broadcast)
        else:
            # Task and queue methods are only safe on their own loop
            loop.call_soon_threadsafe(_stop, task, broadcast)
        logger.info("Task cancelled for %s", key)
        return True

    async def _run(
        self,
        key: Hashable,
        snapshots: Callable[[], AsyncIterator[Project]],
        broadcast: SnapshotBroadcast,
    ) -> None:
        try:
            async with aclosing(snapshots()) as stream:
                async for snapshot in stream:
                    broadcast.publish(snapshot)
            logger.info("Task finished for %s", key)
        except asyncio.CancelledError:
            logger.info("Task for %s stopped by cancellation", key)
            raise
        except Exception as e:
            # Services persist their own failure state before raising
            logger.error("Task for %s failed: %s", key, e)
        finally:
            broadcast.close()
            current = asyncio.current_task()
            with self._lock:
                if self._tasks.get(key) is current:
                    del self._tasks[key]
                    self._broadcasts.pop(key, None)


class GenerationSupervisor(_TaskSupervisor):
    """One generation task per project id."""

    def __init__(self, service):
        super().__init__()
        self._service = service

    def start(self, initial_project: Project, request: PodcastGenerationRequest) -> bool:
        return self._start(
            initial_project.id,
            lambda: self._service.stream_project(initial_project, request),
        )

    def cancel(self, project_id: str) -> bool:
        return self._cancel(project_id)


class AudioSupervisor(_TaskSupervisor):
    """One audio task per ``(project_id, episode_id)``."""

    broadcast_buffer = AUDIO_BROADCAST_BUFFER

    def __init__(self, service):
        super().__init__()
        self._service = service

    def start(self, project_id: str, episode_id: str) -> bool:
        return self._start(
            (project_id, episode_id),
            lambda: self._service.stream_episode_audio(project_id, episode_id),
        )

    def cancel(self, project_id: str, episode_id: str) -> bool:
        return self._cancel((project_id, episode_id))

    def cancel_all(self, project_id: str) -> int:
        """Cancel every audio task for a project; returns how many."""
        with self._lock:
            keys = [key for key in self._tasks if key[0] == project_id]
        return sum(1 for key in keys if self._cancel(key))
