import pytest

from echoforge.core.updater import apply_event
from echoforge.models.events import (
    DialogueLineEvent,
    Done,
    EpisodeEnd,
    EpisodeHeader,
    HostHeader,
    ProjectHeader,
)
from echoforge.models.project import Episode, EpisodeStatus, Project, ProjectStatus, Speaker


def _project(**kwargs) -> Project:
    defaults = {"topic": "Tides", "episode_count_requested": 3}
    defaults.update(kwargs)
    return Project(**defaults)


def _header(title="Moon Pull") -> ProjectHeader:
    return ProjectHeader(
        topic="Tides",
        episode_count=3,
        title=title,
        description="Why the sea moves.",
        hosts=(
            HostHeader(id=Speaker.HOST_A, name="Ana", persona="sailor"),
            HostHeader(id=Speaker.HOST_B, name="Ben", persona="physicist"),
        ),
    )


class TestProjectHeader:
    def test_sets_title_description_hosts(self):
        project = apply_event(_header(), _project())
        assert project.status == ProjectStatus.GENERATING
        assert project.title == "Moon Pull"
        assert project.description == "Why the sea moves."
        assert [(h.id, h.name, h.persona) for h in project.hosts] == [
            (Speaker.HOST_A, "Ana", "sailor"),
            (Speaker.HOST_B, "Ben", "physicist"),
        ]

    def test_keeps_existing_title(self):
        project = apply_event(_header(), _project(title="My Title"))
        assert project.title == "My Title"

    def test_blank_title_is_replaced(self):
        project = apply_event(_header(), _project(title="   "))
        assert project.title == "Moon Pull"


class TestEpisodeEvents:
    def test_header_creates_episode(self):
        project = apply_event(
            EpisodeHeader(episode_number=2, title="Spring", summary="High tides"),
            _project(),
        )
        assert len(project.episodes) == 1
        episode = project.episodes[0]
        assert (episode.number, episode.title, episode.summary) == (2, "Spring", "High tides")
        assert episode.status == EpisodeStatus.GENERATING

    def test_two_lines_create_one_episode_in_order(self):
        project = _project()
        project = apply_event(
            DialogueLineEvent(episode_number=3, speaker=Speaker.HOST_A, text="first"), project
        )
        project = apply_event(
            DialogueLineEvent(episode_number=3, speaker=Speaker.HOST_B, text="second"), project
        )
        assert [e.number for e in project.episodes] == [3]
        assert [line.text for line in project.episodes[0].lines] == ["first", "second"]
        assert [line.speaker for line in project.episodes[0].lines] == [
            Speaker.HOST_A, Speaker.HOST_B,
        ]

    def test_episodes_kept_sorted_by_number(self):
        project = _project()
        for number in (3, 1, 2):
            project = apply_event(EpisodeEnd(episode_number=number), project)
        assert [e.number for e in project.episodes] == [1, 2, 3]

    def test_header_updates_existing_episode(self):
        project = apply_event(
            DialogueLineEvent(episode_number=1, speaker=Speaker.HOST_A, text="x"), _project()
        )
        project = apply_event(EpisodeHeader(episode_number=1, title="T", summary="S"), project)
        assert len(project.episodes) == 1
        assert project.episodes[0].title == "T"
        assert len(project.episodes[0].lines) == 1

    def test_episode_end_completes(self):
        project = apply_event(EpisodeEnd(episode_number=1), _project())
        assert project.episodes[0].status == EpisodeStatus.COMPLETE


class TestDone:
    def test_sweeps_generating_episodes(self):
        project = _project(episodes=[
            Episode(number=1, status=EpisodeStatus.GENERATING),
            Episode(number=2, status=EpisodeStatus.COMPLETE),
        ])
        project = apply_event(Done(), project)
        assert project.status == ProjectStatus.COMPLETE
        assert [e.status for e in project.episodes] == [
            EpisodeStatus.COMPLETE, EpisodeStatus.COMPLETE,
        ]

    def test_pending_episode_untouched(self):
        project = apply_event(Done(), _project(episodes=[Episode(number=1)]))
        assert project.episodes[0].status == EpisodeStatus.PENDING


def test_input_project_not_mutated():
    original = _project()
    updated = apply_event(
        DialogueLineEvent(episode_number=1, speaker=Speaker.HOST_A, text="hi"), original
    )
    assert original.episodes == []
    assert len(updated.episodes) == 1
    assert updated.last_updated_at >= original.last_updated_at


def test_unknown_event_rejected():
    with pytest.raises(TypeError):
        apply_event(object(), _project())
