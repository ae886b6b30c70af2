"""Apply stream events to the project aggregate."""

from datetime import datetime, timezone

from echoforge.models.events import (
    DialogueLineEvent,
    Done,
    EpisodeEnd,
    EpisodeHeader,
    ProjectHeader,
    StreamEvent,
)
from echoforge.models.project import (
    DialogueLine,
    Episode,
    EpisodeStatus,
    Host,
    Project,
    ProjectStatus,
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def apply_event(event: StreamEvent, project: Project) -> Project:
    """Return a new project with ``event`` applied; ``project`` is untouched."""
    updated = project.model_copy(deep=True)
    updated.last_updated_at = _utcnow()

    if isinstance(event, ProjectHeader):
        updated.status = ProjectStatus.GENERATING
        if not (updated.title or "").strip():
            updated.title = event.title
        updated.description = event.description
        updated.hosts = [
            Host(id=host.id, name=host.name, persona=host.persona) for host in event.hosts
        ]

    elif isinstance(event, EpisodeHeader):
        episode = _upsert_episode(updated, event.episode_number)
        episode.title = event.title
        episode.summary = event.summary
        episode.status = EpisodeStatus.GENERATING

    elif isinstance(event, DialogueLineEvent):
        episode = _upsert_episode(updated, event.episode_number)
        episode.status = EpisodeStatus.GENERATING
        episode.lines.append(DialogueLine(speaker=event.speaker, text=event.text))

    elif isinstance(event, EpisodeEnd):
        episode = _upsert_episode(updated, event.episode_number)
        episode.status = EpisodeStatus.COMPLETE

    elif isinstance(event, Done):
        updated.status = ProjectStatus.COMPLETE
        # Safety net for a dropped episode_end
        for episode in updated.episodes:
            if episode.status == EpisodeStatus.GENERATING:
                episode.status = EpisodeStatus.COMPLETE

    else:
        raise TypeError(f"Unknown stream event: {type(event).__name__}")

    return updated


def _upsert_episode(project: Project, number: int) -> Episode:
    """First episode with ``number``, or a new generating one inserted in order."""
    existing = project.episode_by_number(number)
    if existing is not None:
        return existing

    episode = Episode(number=number, status=EpisodeStatus.GENERATING)
    project.episodes.append(episode)
    project.episodes.sort(key=lambda e: e.number)
    return episode
