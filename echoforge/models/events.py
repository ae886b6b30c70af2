"""Typed stream events decoded from model output (one JSON object each).

Field names are the wire contract::

    {"type":"project","topic":..,"episode_count":..,"title":..,"description":..,"hosts":[..]}
    {"type":"episode","episode_number":..,"title":..,"summary":..}
    {"type":"line","episode_number":..,"speaker":"HOST_A"|"HOST_B","text":..}
    {"type":"episode_end","episode_number":..}
    {"type":"done"}
"""

from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from echoforge.models.project import Speaker


class _Event(BaseModel):
    model_config = ConfigDict(frozen=True)


class HostHeader(_Event):
    id: Speaker
    name: str
    persona: str


class ProjectHeader(_Event):
    type: Literal["project"] = "project"
    topic: str
    episode_count: int
    title: str
    description: str
    hosts: tuple[HostHeader, ...]


class EpisodeHeader(_Event):
    type: Literal["episode"] = "episode"
    episode_number: int
    title: str
    summary: str


class DialogueLineEvent(_Event):
    type: Literal["line"] = "line"
    episode_number: int
    speaker: Speaker
    text: str


class EpisodeEnd(_Event):
    type: Literal["episode_end"] = "episode_end"
    episode_number: int


class Done(_Event):
    type: Literal["done"] = "done"


StreamEvent = Annotated[
    Union[ProjectHeader, EpisodeHeader, DialogueLineEvent, EpisodeEnd, Done],
    Field(discriminator="type"),
]

_EVENT_ADAPTER: TypeAdapter[StreamEvent] = TypeAdapter(StreamEvent)


def parse_event(frame: bytes | str) -> StreamEvent:
    """Decode one JSON frame. Raises pydantic.ValidationError on bad input."""
    return _EVENT_ADAPTER.validate_json(frame)
