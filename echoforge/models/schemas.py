from pydantic import BaseModel, Field


class PodcastGenerationRequest(BaseModel):
    """What to generate: topic, size and host names."""

    topic: str
    episode_count: int
    host_a_name: str = "Host A"
    host_b_name: str = "Host B"
    project_title: str | None = None


class SpeechSpeaker(BaseModel):
    """A named speaker and the prebuilt voice that reads their lines."""

    name: str
    voice_name: str


class SpeechRequest(BaseModel):
    script: str
    speakers: list[SpeechSpeaker] = Field(default_factory=list)


class SpeechResult(BaseModel):
    """Raw PCM audio returned by the speech model."""

    pcm_data: bytes
    mime_type: str | None = None
    sample_rate_hz: int = 24_000
    channels: int = 1
    bits_per_sample: int = 16


class ModelDescriptor(BaseModel):
    """A model listed by the Gemini models endpoint."""

    id: str
    display_name: str | None = None
    description: str | None = None
    supported_generation_methods: list[str] = Field(default_factory=list)
