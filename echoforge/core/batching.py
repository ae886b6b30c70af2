"""Split a series request into bounded batches with cross-batch continuity.

Each batch asks the model for a small contiguous range of episodes. Events
outside the active range are dropped, only one project header is accepted per
session, per-batch ``done`` markers are swallowed, and a short recap of prior
episodes seeds each later prompt.
"""

import logging
from contextlib import aclosing
from dataclasses import dataclass, field
from functools import partial
from typing import AsyncIterator, Callable

from echoforge.core.decoder import iter_stream_events
from echoforge.core.framer import DEFAULT_MAX_BUFFER_BYTES
from echoforge.core.retry import RetryPolicy
from echoforge.models.events import (
    DialogueLineEvent,
    Done,
    EpisodeEnd,
    EpisodeHeader,
    ProjectHeader,
    StreamEvent,
)
from echoforge.models.schemas import PodcastGenerationRequest
from echoforge.prompts.podcast import build_batch_prompt

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 2
DEFAULT_RECAP_LIMIT = 6


class NoValidStreamData(RuntimeError):
    def __init__(self) -> None:
        super().__init__("Gemini stream returned no valid events.")


@dataclass(frozen=True)
class EpisodeRange:
    """Closed interval of 1-based episode numbers."""

    first: int
    last: int

    def __contains__(self, number: int) -> bool:
        return self.first <= number <= self.last

    def __str__(self) -> str:
        return f"{self.first}-{self.last}"


@dataclass
class Recap:
    number: int
    title: str
    summary: str


@dataclass(frozen=True)
class BatchContext:
    allow_project_header: bool
    episode_range: EpisodeRange


@dataclass
class StreamState:
    """Session-wide state threaded through every batch."""

    has_yielded_project_header: bool = False
    recaps: list[Recap] = field(default_factory=list)
    did_yield_any_event: bool = False

    def upsert_recap(self, number: int, title: str, summary: str) -> None:
        recap = Recap(number=number, title=title, summary=summary)
        for i, existing in enumerate(self.recaps):
            if existing.number == number:
                self.recaps[i] = recap
                return
        self.recaps.append(recap)


def make_episode_ranges(total_episodes: int, batch_size: int) -> list[EpisodeRange]:
    """Disjoint ascending ranges covering ``1..total_episodes`` with no gaps."""
    total = max(1, total_episodes)
    size = max(1, batch_size)

    ranges = []
    current = 1
    while current <= total:
        end = min(total, current + size - 1)
        ranges.append(EpisodeRange(current, end))
        current = end + 1
    return ranges


def ascii_sanitized(value: str) -> str:
    """Replace every non-ASCII character with ``?``."""
    return "".join(ch if ord(ch) < 0x80 else "?" for ch in value)


def make_prior_episodes_recap(
    recaps: list[Recap],
    before: int,
    limit: int = DEFAULT_RECAP_LIMIT,
) -> str | None:
    """Recap of the most recent ``limit`` episodes numbered below ``before``."""
    candidates = sorted((r for r in recaps if r.number < before), key=lambda r: r.number)
    candidates = candidates[-limit:] if limit > 0 else []
    if not candidates:
        return None

    return "\n".join(
        f"Episode {r.number}: {ascii_sanitized(r.title)} - {ascii_sanitized(r.summary)}"
        for r in candidates
    )


def accept_event(event: StreamEvent, context: BatchContext, state: StreamState) -> bool:
    """Decide whether an event from the active batch is passed on.

    Updates ``state`` for accepted events.
    """
    if isinstance(event, ProjectHeader):
        if not context.allow_project_header or state.has_yielded_project_header:
            logger.debug("Suppressing duplicate project header")
            return False
        state.has_yielded_project_header = True

    elif isinstance(event, Done):
        # A single done is emitted once every batch has finished
        return False

    elif isinstance(event, (EpisodeHeader, DialogueLineEvent, EpisodeEnd)):
        if event.episode_number not in context.episode_range:
            logger.debug(
                "Dropping %s for episode %d outside batch %s",
                event.type, event.episode_number, context.episode_range,
            )
            return False
        if isinstance(event, EpisodeHeader):
            state.upsert_recap(event.episode_number, event.title, event.summary)

    else:
        return False

    state.did_yield_any_event = True
    return True


LineStreamOpener = Callable[[str], AsyncIterator[str]]


class BatchOrchestrator:
    """Run a series request as sequential batches against a line stream."""

    def __init__(
        self,
        open_stream: LineStreamOpener,
        retry_policy: RetryPolicy | None = None,
        should_retry: Callable[[BaseException], bool] = lambda e: False,
        batch_size: int = DEFAULT_BATCH_SIZE,
        recap_limit: int = DEFAULT_RECAP_LIMIT,
        max_buffer_bytes: int = DEFAULT_MAX_BUFFER_BYTES,
        log_wire: bool = False,
    ):
        self._open_stream = open_stream
        self._retry = retry_policy or RetryPolicy()
        self._should_retry = should_retry
        self.batch_size = batch_size
        self.recap_limit = recap_limit
        self.max_buffer_bytes = max_buffer_bytes
        self.log_wire = log_wire

    def plan(self, request: PodcastGenerationRequest) -> list[EpisodeRange]:
        total = max(1, request.episode_count)
        return make_episode_ranges(total, min(self.batch_size, total))

    async def stream_events(
        self, request: PodcastGenerationRequest
    ) -> AsyncIterator[StreamEvent]:
        """Yield accepted events for every batch, then one final ``Done``.

        Raises:
            NoValidStreamData: If no batch produced a usable event.
        """
        total = max(1, request.episode_count)
        state = StreamState()
        ranges = self.plan(request)

        for index, episode_range in enumerate(ranges, start=1):
            context = BatchContext(
                allow_project_header=not state.has_yielded_project_header,
                episode_range=episode_range,
            )
            prompt = build_batch_prompt(
                topic=request.topic,
                total_episodes=total,
                first_episode=episode_range.first,
                last_episode=episode_range.last,
                host_a_name=request.host_a_name,
                host_b_name=request.host_b_name,
                include_project_header=context.allow_project_header,
                include_done_marker=False,
                prior_episodes_recap=make_prior_episodes_recap(
                    state.recaps, episode_range.first, self.recap_limit
                ),
                project_title=request.project_title,
            )
            logger.info(
                "Batch %d/%d: episodes %s (project header %s)",
                index, len(ranges), episode_range,
                "requested" if context.allow_project_header else "suppressed",
            )

            batch = self._retry.run_stream(
                partial(self._run_batch, prompt, context, state),
                self._should_retry,
                operation_name=f"Gemini batch {episode_range}",
            )
            async with aclosing(batch) as events:
                async for event in events:
                    yield event

        if not state.did_yield_any_event:
            raise NoValidStreamData()

        yield Done()

    async def _run_batch(
        self, prompt: str, context: BatchContext, state: StreamState
    ) -> AsyncIterator[StreamEvent]:
        async with aclosing(self._open_stream(prompt)) as lines:
            decoded = iter_stream_events(
                lines, max_buffer_bytes=self.max_buffer_bytes, log_wire=self.log_wire
            )
            async with aclosing(decoded) as events:
                async for event in events:
                    if accept_event(event, context, state):
                        yield event
