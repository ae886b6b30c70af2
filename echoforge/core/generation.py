"""Project generation: stream events into a working project and persist it."""

import asyncio
import logging
from contextlib import aclosing
from typing import AsyncIterator, Protocol

from echoforge.core.autosave import DEFAULT_AUTOSAVE_DELAY, ProjectAutosaver
from echoforge.core.updater import apply_event
from echoforge.models.events import StreamEvent
from echoforge.models.project import Host, Project, ProjectStatus, Speaker
from echoforge.models.schemas import PodcastGenerationRequest

logger = logging.getLogger(__name__)


class PodcastEventSource(Protocol):
    def stream_podcast_events(
        self, request: PodcastGenerationRequest
    ) -> AsyncIterator[StreamEvent]: ...


class ProjectStoring(Protocol):
    async def load(self, project_id: str) -> Project: ...

    async def save(self, project: Project) -> None: ...


class PodcastGenerationService:
    """Owns a private working copy per generation and yields snapshots."""

    def __init__(
        self,
        client: PodcastEventSource,
        store: ProjectStoring,
        autosave_delay: float = DEFAULT_AUTOSAVE_DELAY,
    ):
        self._client = client
        self._store = store
        self.autosave_delay = autosave_delay

    async def stream_project(
        self,
        initial_project: Project,
        request: PodcastGenerationRequest,
    ) -> AsyncIterator[Project]:
        """Yield a snapshot after every state change, in order.

        On failure the project is marked failed with the error message,
        persisted and yielded before the error is re-raised. Cancellation
        flushes pending autosave state and propagates.
        """
        working = initial_project
        autosaver = ProjectAutosaver(self._store.save, delay=self.autosave_delay)
        event_count = 0

        try:
            await self._store.save(working)
            yield working

            events = self._client.stream_podcast_events(request)
            async with aclosing(events) as stream:
                async for event in stream:
                    working = apply_event(event, working)
                    event_count += 1
                    autosaver.schedule_save(working)
                    yield working

                    if working.status == ProjectStatus.COMPLETE:
                        break

            await autosaver.flush()
            await self._store.save(working)
            logger.info(
                "Generation complete: %s (%d episodes, %d events)",
                working.id, len(working.episodes), event_count,
            )

        except asyncio.CancelledError:
            logger.info("Generation cancelled: %s", working.id)
            await autosaver.flush()
            raise

        except Exception as e:
            logger.error("Generation failed for %s: %s", working.id, e)
            working = working.model_copy(update={
                "status": ProjectStatus.FAILED,
                "error_message": str(e) or type(e).__name__,
            })
            await autosaver.flush()
            try:
                await self._store.save(working)
            except Exception:
                logger.exception("Could not persist failure for %s", working.id)
            yield working
            raise


def new_project(request: PodcastGenerationRequest) -> Project:
    """A fresh project in the generating state for ``request``."""
    title = (request.project_title or "").strip() or None
    return Project(
        topic=request.topic,
        episode_count_requested=max(1, request.episode_count),
        title=title,
        hosts=[
            Host(id=Speaker.HOST_A, name=request.host_a_name),
            Host(id=Speaker.HOST_B, name=request.host_b_name),
        ],
        status=ProjectStatus.GENERATING,
    )
