"""Tests for the echoforge command line."""

import asyncio
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from echoforge.cli import cli
from echoforge.config import Settings
from echoforge.db import get_session_factory
from echoforge.models.events import DialogueLineEvent, Done, EpisodeEnd, EpisodeHeader
from echoforge.models.project import Speaker
from echoforge.services.audio_store import EpisodeAudioStore
from echoforge.services.project_store import ProjectStore


@pytest.fixture
def cli_settings(tmp_path):
    return Settings(
        _env_file=None,
        gemini_api_key="test-key",
        database_url=f"sqlite:///{tmp_path / 'db' / 'echoforge.db'}",
        audio_dir=str(tmp_path / "audio"),
        autosave_delay=0.01,
    )


@pytest.fixture
def run_cli(cli_settings):
    runner = CliRunner()

    def invoke(*args):
        with patch("echoforge.cli.get_settings", return_value=cli_settings):
            return runner.invoke(cli, list(args))

    return invoke


def _store(settings) -> ProjectStore:
    return ProjectStore(get_session_factory(settings.database_url))


class FakeGeminiClient:
    def __init__(self, settings, *args, **kwargs):
        pass

    async def stream_podcast_events(self, request):
        yield EpisodeHeader(episode_number=1, title="Roots", summary="Underground")
        yield DialogueLineEvent(episode_number=1, speaker=Speaker.HOST_A, text="Dig in.")
        yield EpisodeEnd(episode_number=1)
        yield Done()


class TestCli:
    def test_init_db_creates_database(self, run_cli, cli_settings, tmp_path):
        result = run_cli("init-db")
        assert result.exit_code == 0
        assert (tmp_path / "db" / "echoforge.db").exists()

    def test_list_empty(self, run_cli):
        result = run_cli("list")
        assert result.exit_code == 0
        assert "No projects found." in result.output

    def test_show_missing_project(self, run_cli):
        result = run_cli("show", "--project-id", "nope")
        assert result.exit_code == 1

    def test_generate_then_list_and_show(self, run_cli, cli_settings):
        with patch("echoforge.services.gemini_client.GeminiClient", FakeGeminiClient):
            result = run_cli(
                "generate", "--topic", "Trees", "--episodes", "1",
                "--host-a", "Ana", "--host-b", "Ben", "--title", "Forest",
            )
        assert result.exit_code == 0, result.output
        assert "[OK]" in result.output
        assert "Episode 1 [complete] Roots" in result.output

        projects = asyncio.run(_store(cli_settings).load_all())
        assert len(projects) == 1
        assert projects[0].title == "Forest"

        listed = run_cli("list")
        assert projects[0].id in listed.output
        assert "complete" in listed.output

        shown = run_cli("show", "--project-id", projects[0].id)
        assert "Episode 1: Roots" in shown.output
        assert "Ana: Dig in." in shown.output

    def test_generate_requires_api_key(self, run_cli, cli_settings):
        cli_settings.gemini_api_key = ""
        result = run_cli("generate", "--topic", "Trees")
        assert result.exit_code == 1
        assert "GEMINI_API_KEY" in result.output

    def test_delete_removes_project_and_audio(self, run_cli, cli_settings, complete_project):
        run_cli("init-db")
        asyncio.run(_store(cli_settings).save(complete_project))
        audio_store = EpisodeAudioStore(cli_settings.audio_dir)
        audio_store.write_wav(b"\x00\x00" * 10, complete_project.id, "e1")

        result = run_cli("delete", "--project-id", complete_project.id)

        assert result.exit_code == 0
        assert asyncio.run(_store(cli_settings).load_all()) == []
        assert not audio_store.project_dir(complete_project.id).exists()

    def test_audio_unknown_episode(self, run_cli, cli_settings, complete_project):
        run_cli("init-db")
        asyncio.run(_store(cli_settings).save(complete_project))
        result = run_cli("audio", "--project-id", complete_project.id, "--episode", "9")
        assert result.exit_code == 1
        assert "Episode 9 not found" in result.output
