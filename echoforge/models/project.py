"""Podcast project aggregate: the document every stream event converges into."""

import enum
import uuid
from datetime import datetime, timezone

from pydantic import BaseModel, Field


class Speaker(str, enum.Enum):
    HOST_A = "HOST_A"
    HOST_B = "HOST_B"


class ProjectStatus(str, enum.Enum):
    DRAFT = "draft"
    GENERATING = "generating"
    COMPLETE = "complete"
    FAILED = "failed"


class EpisodeStatus(str, enum.Enum):
    PENDING = "pending"
    GENERATING = "generating"
    COMPLETE = "complete"
    FAILED = "failed"


class AudioStatus(str, enum.Enum):
    NONE = "none"
    GENERATING = "generating"
    READY = "ready"
    FAILED = "failed"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


class Host(BaseModel):
    id: Speaker
    name: str
    persona: str | None = None


class DialogueLine(BaseModel):
    id: str = Field(default_factory=_new_id)
    speaker: Speaker
    text: str


class EpisodeAudio(BaseModel):
    status: AudioStatus
    file_name: str | None = None
    generated_at: datetime | None = None
    error_message: str | None = None


class Episode(BaseModel):
    id: str = Field(default_factory=_new_id)
    number: int
    title: str | None = None
    summary: str | None = None
    lines: list[DialogueLine] = Field(default_factory=list)
    status: EpisodeStatus = EpisodeStatus.PENDING
    audio: EpisodeAudio | None = None

    @property
    def audio_status(self) -> AudioStatus:
        return self.audio.status if self.audio else AudioStatus.NONE


def default_hosts() -> list[Host]:
    return [
        Host(id=Speaker.HOST_A, name="Host A"),
        Host(id=Speaker.HOST_B, name="Host B"),
    ]


class Project(BaseModel):
    """A multi-episode podcast.

    ``episodes`` holds at most one entry per episode number and is kept
    sorted by number.
    """

    id: str = Field(default_factory=_new_id)
    created_at: datetime = Field(default_factory=_utcnow)
    last_updated_at: datetime = Field(default_factory=_utcnow)
    topic: str
    episode_count_requested: int
    title: str | None = None
    description: str | None = None
    hosts: list[Host] = Field(default_factory=default_hosts)
    episodes: list[Episode] = Field(default_factory=list)
    status: ProjectStatus = ProjectStatus.DRAFT
    error_message: str | None = None

    def episode_by_id(self, episode_id: str) -> Episode | None:
        for episode in self.episodes:
            if episode.id == episode_id:
                return episode
        return None

    def episode_by_number(self, number: int) -> Episode | None:
        for episode in self.episodes:
            if episode.number == number:
                return episode
        return None

    def host_name(self, speaker: Speaker) -> str | None:
        for host in self.hosts:
            if host.id == speaker and host.name.strip():
                return host.name.strip()
        return None
