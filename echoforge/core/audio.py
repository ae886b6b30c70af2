"""Episode audio generation: transcript -> speech -> WAV, tracked on the project."""

import asyncio
import logging
from datetime import datetime, timezone
from typing import AsyncIterator, Protocol

from echoforge.core.generation import ProjectStoring
from echoforge.core.retry import RetryPolicy
from echoforge.models.project import (
    AudioStatus,
    DialogueLine,
    Episode,
    EpisodeAudio,
    EpisodeStatus,
    Project,
    ProjectStatus,
    Speaker,
)
from echoforge.models.schemas import SpeechRequest, SpeechResult, SpeechSpeaker
from echoforge.services.audio_store import WavFormat, default_file_name

logger = logging.getLogger(__name__)


class EpisodeAudioError(ValueError):
    """Audio was requested for an episode that cannot have it yet."""

    EPISODE_NOT_FOUND = "Episode not found."
    EPISODE_NOT_READY = "Episode audio can be generated after the transcript is complete."
    PROJECT_NOT_READY = "Episode audio can be generated after the podcast is complete."


class SpeechGenerating(Protocol):
    async def generate_speech(self, request: SpeechRequest) -> SpeechResult: ...


class AudioWriting(Protocol):
    def write_wav(self, pcm_data: bytes, project_id: str, episode_id: str,
                  file_name: str | None = None, audio_format: WavFormat = ...): ...


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def build_speech_script(host_a_name: str, host_b_name: str, lines: list[DialogueLine]) -> str:
    """Speaker-labelled script with reading instructions for the speech model."""
    prelude = "\n".join([
        "You are generating audio for a two-host podcast episode.",
        "Do not speak speaker labels out loud; they are only cues for which voice to use.",
        "Read naturally with conversational pacing.",
        "",
        "Speakers:",
        f"- {host_a_name}",
        f"- {host_b_name}",
        "",
        "Script:",
    ])
    body = "\n".join(
        f"{host_a_name if line.speaker == Speaker.HOST_A else host_b_name}: {line.text}"
        for line in lines
    )
    return f"{prelude}\n{body}"


def _with_episode(project: Project, episode: Episode) -> Project:
    """Copy of ``project`` with ``episode`` replaced by id (appended if new)."""
    episodes = list(project.episodes)
    for i, existing in enumerate(episodes):
        if existing.id == episode.id:
            episodes[i] = episode
            break
    else:
        episodes.append(episode)
    return project.model_copy(update={"episodes": episodes, "last_updated_at": _utcnow()})


class EpisodeAudioService:
    """Generates one episode's audio and yields project snapshots."""

    def __init__(
        self,
        speech_client: SpeechGenerating,
        store: ProjectStoring,
        audio_store: AudioWriting,
        should_retry=lambda e: False,
        retry_policy: RetryPolicy | None = None,
        host_a_voice: str = "Kore",
        host_b_voice: str = "Puck",
    ):
        self._speech = speech_client
        self._store = store
        self._audio_store = audio_store
        self._should_retry = should_retry
        self._retry = retry_policy or RetryPolicy()
        self.host_a_voice = host_a_voice
        self.host_b_voice = host_b_voice

    async def stream_episode_audio(
        self, project_id: str, episode_id: str
    ) -> AsyncIterator[Project]:
        try:
            async for project in self._generate(project_id, episode_id):
                yield project
        except asyncio.CancelledError:
            logger.info("Audio cancelled: %s/%s", project_id, episode_id)
            raise
        except Exception as e:
            logger.error("Audio failed for %s/%s: %s", project_id, episode_id, e)
            failed = await self._persist_failure(project_id, episode_id, e)
            if failed is not None:
                yield failed
            raise

    async def _generate(self, project_id: str, episode_id: str) -> AsyncIterator[Project]:
        project = await self._store.load(project_id)
        if project.status != ProjectStatus.COMPLETE:
            raise EpisodeAudioError(EpisodeAudioError.PROJECT_NOT_READY)

        episode = project.episode_by_id(episode_id)
        if episode is None:
            raise EpisodeAudioError(EpisodeAudioError.EPISODE_NOT_FOUND)
        if episode.status != EpisodeStatus.COMPLETE or not episode.lines:
            raise EpisodeAudioError(EpisodeAudioError.EPISODE_NOT_READY)

        file_name = default_file_name(episode_id)
        episode = episode.model_copy(update={
            "audio": EpisodeAudio(status=AudioStatus.GENERATING, file_name=file_name),
        })
        project = _with_episode(project, episode)
        await self._store.save(project)
        yield project

        speech_request = self._speech_request(project, episode)
        result = await self._retry.run(
            lambda: self._speech.generate_speech(speech_request),
            self._should_retry,
            operation_name="Gemini speech generation",
        )

        await asyncio.to_thread(
            self._audio_store.write_wav,
            result.pcm_data,
            project_id,
            episode_id,
            file_name,
            WavFormat(
                sample_rate_hz=result.sample_rate_hz,
                channels=result.channels,
                bits_per_sample=result.bits_per_sample,
            ),
        )

        episode = episode.model_copy(update={
            "audio": EpisodeAudio(
                status=AudioStatus.READY, file_name=file_name, generated_at=_utcnow()
            ),
        })
        project = _with_episode(project, episode)
        await self._store.save(project)
        logger.info("Audio ready: %s episode %d", project_id, episode.number)
        yield project

    def _speech_request(self, project: Project, episode: Episode) -> SpeechRequest:
        host_a = project.host_name(Speaker.HOST_A) or "Host A"
        host_b = project.host_name(Speaker.HOST_B) or "Host B"
        return SpeechRequest(
            script=build_speech_script(host_a, host_b, episode.lines),
            speakers=[
                SpeechSpeaker(name=host_a, voice_name=self.host_a_voice),
                SpeechSpeaker(name=host_b, voice_name=self.host_b_voice),
            ],
        )

    async def _persist_failure(
        self, project_id: str, episode_id: str, error: Exception
    ) -> Project | None:
        try:
            project = await self._store.load(project_id)
            episode = project.episode_by_id(episode_id)
            if episode is None:
                return None

            file_name = (episode.audio.file_name if episode.audio else None) or default_file_name(episode_id)
            episode = episode.model_copy(update={
                "audio": EpisodeAudio(
                    status=AudioStatus.FAILED,
                    file_name=file_name,
                    error_message=str(error) or type(error).__name__,
                ),
            })
            project = _with_episode(project, episode)
            await self._store.save(project)
            return project
        except Exception:
            logger.exception("Could not persist audio failure for %s/%s", project_id, episode_id)
            return None
