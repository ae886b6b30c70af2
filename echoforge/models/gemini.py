"""Gemini REST request/response bodies (camelCase on the wire)."""

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class _GeminiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


# ── Requests ──────────────────────────────────────────────────────


class PartRequest(_GeminiModel):
    text: str


class ContentRequest(_GeminiModel):
    role: str | None = None
    parts: list[PartRequest]


class PrebuiltVoiceConfig(_GeminiModel):
    voice_name: str


class VoiceConfig(_GeminiModel):
    prebuilt_voice_config: PrebuiltVoiceConfig


class SpeakerVoiceConfig(_GeminiModel):
    speaker: str
    voice_config: VoiceConfig


class MultiSpeakerVoiceConfig(_GeminiModel):
    speaker_voice_configs: list[SpeakerVoiceConfig]


class SpeechConfig(_GeminiModel):
    voice_config: VoiceConfig | None = None
    multi_speaker_voice_config: MultiSpeakerVoiceConfig | None = None


class GenerationConfig(_GeminiModel):
    temperature: float | None = None
    top_p: float | None = None
    max_output_tokens: int | None = None
    response_modalities: list[str] | None = None
    speech_config: SpeechConfig | None = None


class GenerateContentRequest(_GeminiModel):
    contents: list[ContentRequest]
    generation_config: GenerationConfig | None = None


def user_prompt_request(prompt: str, config: GenerationConfig) -> GenerateContentRequest:
    return GenerateContentRequest(
        contents=[ContentRequest(role="user", parts=[PartRequest(text=prompt)])],
        generation_config=config,
    )


# ── Responses ─────────────────────────────────────────────────────


class InlineData(_GeminiModel):
    mime_type: str | None = None
    data: str | None = None


class PartResponse(_GeminiModel):
    text: str | None = None
    inline_data: InlineData | None = None


class ContentResponse(_GeminiModel):
    parts: list[PartResponse] | None = None


class CandidateResponse(_GeminiModel):
    content: ContentResponse | None = None


class GenerateContentResponse(_GeminiModel):
    candidates: list[CandidateResponse] | None = None

    def first_parts(self) -> list[PartResponse]:
        if not self.candidates:
            return []
        content = self.candidates[0].content
        if content is None or not content.parts:
            return []
        return content.parts

    def model_text(self) -> str:
        """Concatenated text parts of the first candidate."""
        return "".join(part.text for part in self.first_parts() if part.text)


class ModelResource(_GeminiModel):
    name: str
    display_name: str | None = None
    description: str | None = None
    supported_generation_methods: list[str] | None = None


class ListModelsResponse(_GeminiModel):
    models: list[ModelResource] | None = None
    next_page_token: str | None = None
