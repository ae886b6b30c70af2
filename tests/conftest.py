import json

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from echoforge.config import Settings
from echoforge.db import Base
from echoforge.models import project_record  # noqa: F401
from echoforge.models.project import (
    DialogueLine,
    Episode,
    EpisodeStatus,
    Host,
    Project,
    ProjectStatus,
    Speaker,
)
from echoforge.services.project_store import ProjectStore


@pytest.fixture
def test_settings(tmp_path):
    """Settings with temp directories and no .env loading."""
    return Settings(
        _env_file=None,
        gemini_api_key="test-key",
        database_url="sqlite:///:memory:",
        audio_dir=str(tmp_path / "audio"),
        retry_base_delay=0.0,
        retry_max_delay=0.0,
        autosave_delay=0.01,
    )


@pytest.fixture
def db_engine():
    """In-memory SQLite engine (shared across threads)."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return sessionmaker(bind=db_engine)


@pytest.fixture
def project_store(session_factory):
    return ProjectStore(session_factory)


@pytest.fixture
def complete_project():
    """Finished two-episode project with transcripts."""
    return Project(
        topic="The history of timekeeping",
        episode_count_requested=2,
        title="Ticking",
        description="Clocks through the ages.",
        hosts=[
            Host(id=Speaker.HOST_A, name="Alice", persona="curious"),
            Host(id=Speaker.HOST_B, name="Bob", persona="expert"),
        ],
        episodes=[
            Episode(
                number=1,
                title="Sundials",
                summary="Shadows as clocks.",
                status=EpisodeStatus.COMPLETE,
                lines=[
                    DialogueLine(speaker=Speaker.HOST_A, text="Hello and welcome."),
                    DialogueLine(speaker=Speaker.HOST_B, text="Today: sundials."),
                ],
            ),
            Episode(
                number=2,
                title="Pendulums",
                summary="Swinging precision.",
                status=EpisodeStatus.COMPLETE,
                lines=[
                    DialogueLine(speaker=Speaker.HOST_A, text="Back again."),
                ],
            ),
        ],
        status=ProjectStatus.COMPLETE,
    )


def _envelope(text: str) -> str:
    return json.dumps({"candidates": [{"content": {"parts": [{"text": text}]}}]})


@pytest.fixture
def sse_lines():
    """Build SSE lines carrying the given model-text fragments."""

    def build(*fragments: str, done: bool = True) -> list[str]:
        lines = []
        for fragment in fragments:
            lines.append(f"data: {_envelope(fragment)}")
            lines.append("")
        if done:
            lines.extend(["data: [DONE]", ""])
        return lines

    return build


@pytest.fixture
def ndjson():
    """Serialize event dicts as model NDJSON text."""

    def build(*events: dict) -> str:
        return "".join(json.dumps(event) + "\n" for event in events)

    return build
