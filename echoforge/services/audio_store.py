"""Episode audio files: raw PCM from the speech model written as WAV."""

import logging
import shutil
from dataclasses import dataclass
from pathlib import Path

from pydub import AudioSegment

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WavFormat:
    sample_rate_hz: int = 24_000
    channels: int = 1
    bits_per_sample: int = 16

    def validate(self) -> None:
        if self.sample_rate_hz <= 0 or self.channels <= 0 or self.bits_per_sample <= 0:
            raise ValueError("Invalid audio format for WAV encoding.")
        if self.bits_per_sample % 8 != 0:
            raise ValueError("Invalid audio format for WAV encoding.")


GEMINI_TTS_FORMAT = WavFormat()


def default_file_name(episode_id: str) -> str:
    return f"{episode_id}.wav"


class EpisodeAudioStore:
    """Audio files live under ``<root>/<project_id>/<file_name>``."""

    def __init__(self, root_dir: str):
        self.root_dir = Path(root_dir)

    def project_dir(self, project_id: str) -> Path:
        return self.root_dir / project_id

    def file_path(self, project_id: str, episode_id: str, file_name: str | None = None) -> Path:
        name = (file_name or "").strip() or default_file_name(episode_id)
        return self.project_dir(project_id) / name

    def file_exists(self, project_id: str, episode_id: str, file_name: str | None = None) -> bool:
        return self.file_path(project_id, episode_id, file_name).exists()

    def write_wav(
        self,
        pcm_data: bytes,
        project_id: str,
        episode_id: str,
        file_name: str | None = None,
        audio_format: WavFormat = GEMINI_TTS_FORMAT,
    ) -> Path:
        """Encode PCM as WAV and write it atomically.

        Returns:
            Path to the written file.
        """
        audio_format.validate()
        path = self.file_path(project_id, episode_id, file_name)
        path.parent.mkdir(parents=True, exist_ok=True)

        segment = AudioSegment(
            data=pcm_data,
            sample_width=audio_format.bits_per_sample // 8,
            frame_rate=audio_format.sample_rate_hz,
            channels=audio_format.channels,
        )
        tmp_path = path.with_suffix(path.suffix + ".tmp")
        with open(tmp_path, "wb") as f:
            segment.export(f, format="wav")
        tmp_path.replace(path)

        logger.info("Audio written: %s (%.1fs)", path, segment.duration_seconds)
        return path

    def delete_audio(self, project_id: str, episode_id: str, file_name: str | None = None) -> None:
        path = self.file_path(project_id, episode_id, file_name)
        if path.exists():
            path.unlink()

    def delete_all_audio(self, project_id: str) -> None:
        directory = self.project_dir(project_id)
        if directory.exists():
            shutil.rmtree(directory)
