"""Debounced persistence of project snapshots."""

import asyncio
import logging
from typing import Awaitable, Callable

from echoforge.models.project import Project

logger = logging.getLogger(__name__)

DEFAULT_AUTOSAVE_DELAY = 1.0


class ProjectAutosaver:
    """Coalesce rapid snapshots into one save of the latest.

    ``schedule_save`` replaces the pending snapshot and restarts the timer;
    ``flush`` saves whatever is pending right away. Saves never overlap, and
    an intermediate snapshot is never written once a newer one is pending.
    Save errors are logged, not raised: the owning task writes its final
    state explicitly.
    """

    def __init__(
        self,
        save: Callable[[Project], Awaitable[None]],
        delay: float = DEFAULT_AUTOSAVE_DELAY,
    ):
        self._save = save
        self.delay = delay
        self._pending: Project | None = None
        self._timer: asyncio.Task | None = None
        self._save_lock = asyncio.Lock()

    @property
    def has_pending(self) -> bool:
        return self._pending is not None

    def schedule_save(self, project: Project, delay: float | None = None) -> None:
        self._pending = project
        self._cancel_timer()
        self._timer = asyncio.create_task(
            self._save_after(self.delay if delay is None else delay)
        )

    async def flush(self) -> None:
        self._cancel_timer()
        async with self._save_lock:
            pending, self._pending = self._pending, None
            if pending is not None:
                await self._persist(pending)

    def _cancel_timer(self) -> None:
        if self._timer is not None and not self._timer.done():
            self._timer.cancel()
        self._timer = None

    async def _save_after(self, delay: float) -> None:
        await asyncio.sleep(delay)
        # Past this point a reschedule must not cancel an in-flight save
        self._timer = None
        async with self._save_lock:
            pending, self._pending = self._pending, None
            if pending is not None:
                await self._persist(pending)

    async def _persist(self, project: Project) -> None:
        try:
            await self._save(project)
        except Exception:
            logger.exception("Autosave failed for project %s", project.id)
