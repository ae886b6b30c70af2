"""Gemini REST clients: streamed script generation, speech, model listing."""

import asyncio
import base64
import binascii
import codecs
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

import aiohttp

from echoforge.config import Settings
from echoforge.core.batching import BatchOrchestrator
from echoforge.core.decoder import clip
from echoforge.core.retry import RetryPolicy
from echoforge.models.events import StreamEvent
from echoforge.models.gemini import (
    GenerateContentResponse,
    GenerationConfig,
    ListModelsResponse,
    MultiSpeakerVoiceConfig,
    PrebuiltVoiceConfig,
    SpeakerVoiceConfig,
    SpeechConfig,
    VoiceConfig,
    user_prompt_request,
)
from echoforge.models.schemas import (
    ModelDescriptor,
    PodcastGenerationRequest,
    SpeechRequest,
    SpeechResult,
)

logger = logging.getLogger(__name__)

# Connect/read limits only; a full multi-episode stream can run for minutes
DEFAULT_TIMEOUT = aiohttp.ClientTimeout(total=None, sock_connect=30, sock_read=300)


class GeminiHTTPError(RuntimeError):
    """Non-2xx response from the Gemini API."""

    def __init__(self, status_code: int, body: str | None = None, what: str = "Gemini request"):
        self.status_code = status_code
        self.body = body
        if body:
            message = f"{what} failed (HTTP {status_code}): {body}"
        else:
            message = f"{what} failed (HTTP {status_code})."
        super().__init__(message)


class GeminiSpeechError(RuntimeError):
    """Speech response without an inline audio payload."""


def is_retryable_error(error: BaseException) -> bool:
    """Transport failures, HTTP 429 and 5xx are worth retrying."""
    if isinstance(error, GeminiHTTPError):
        return error.status_code == 429 or 500 <= error.status_code < 600
    return isinstance(error, (aiohttp.ClientError, asyncio.TimeoutError, ConnectionError))


class _GeminiHTTP:
    """Shared session handling for the REST clients."""

    def __init__(self, settings: Settings, session: aiohttp.ClientSession | None = None):
        self.settings = settings
        self._session = session

    @asynccontextmanager
    async def _client(self) -> AsyncIterator[aiohttp.ClientSession]:
        if self._session is not None:
            yield self._session
            return
        async with aiohttp.ClientSession(timeout=DEFAULT_TIMEOUT) as session:
            yield session

    @staticmethod
    async def _raise_for_status(response: aiohttp.ClientResponse, what: str) -> None:
        if 200 <= response.status < 300:
            return
        body = await response.text(errors="replace")
        logger.warning("%s HTTP %d. Body preview:\n%s", what, response.status, clip(body))
        raise GeminiHTTPError(response.status, body, what=what)


class GeminiClient(_GeminiHTTP):
    """Streams podcast events for a generation request."""

    def __init__(
        self,
        settings: Settings,
        session: aiohttp.ClientSession | None = None,
        retry_policy: RetryPolicy | None = None,
    ):
        super().__init__(settings, session)
        self.orchestrator = BatchOrchestrator(
            open_stream=self.open_stream,
            retry_policy=retry_policy or RetryPolicy.from_settings(settings),
            should_retry=is_retryable_error,
            batch_size=settings.batch_size,
            recap_limit=settings.recap_limit,
            max_buffer_bytes=settings.max_buffer_bytes,
            log_wire=settings.log_wire,
        )

    def stream_podcast_events(
        self, request: PodcastGenerationRequest
    ) -> AsyncIterator[StreamEvent]:
        return self.orchestrator.stream_events(request)

    async def open_stream(self, prompt: str) -> AsyncIterator[str]:
        """POST a prompt to ``streamGenerateContent`` and yield SSE text lines.

        Raises:
            GeminiHTTPError: On a non-2xx response.
        """
        settings = self.settings
        url = f"{settings.api_base}/models/{settings.gemini_model}:streamGenerateContent"
        body = user_prompt_request(
            prompt,
            GenerationConfig(
                temperature=settings.generation_temperature,
                top_p=settings.generation_top_p,
                max_output_tokens=settings.generation_max_output_tokens,
            ),
        ).to_wire()

        async with self._client() as session:
            async with session.post(
                url,
                params={"alt": "sse", "key": settings.require_api_key()},
                json=body,
                headers={"Accept": "text/event-stream"},
            ) as response:
                await self._raise_for_status(response, "Gemini request")
                decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
                pending = ""
                async for chunk in response.content.iter_any():
                    pending += decoder.decode(chunk)
                    *complete, pending = pending.split("\n")
                    for line in complete:
                        yield line
                pending += decoder.decode(b"", final=True)
                if pending:
                    yield pending


class GeminiSpeechClient(_GeminiHTTP):
    """Multi-speaker text-to-speech through ``generateContent``."""

    async def generate_speech(self, request: SpeechRequest) -> SpeechResult:
        settings = self.settings
        url = f"{settings.api_base}/models/{settings.gemini_speech_model}:generateContent"
        config = GenerationConfig(
            temperature=settings.speech_temperature,
            top_p=0.95,
            max_output_tokens=8192,
            response_modalities=["AUDIO"],
            speech_config=SpeechConfig(
                multi_speaker_voice_config=MultiSpeakerVoiceConfig(
                    speaker_voice_configs=[
                        SpeakerVoiceConfig(
                            speaker=speaker.name,
                            voice_config=VoiceConfig(
                                prebuilt_voice_config=PrebuiltVoiceConfig(
                                    voice_name=speaker.voice_name
                                )
                            ),
                        )
                        for speaker in request.speakers
                    ]
                )
            ),
        )
        body = user_prompt_request(request.script, config).to_wire()

        async with self._client() as session:
            async with session.post(
                url,
                json=body,
                headers={"x-goog-api-key": settings.require_api_key()},
            ) as response:
                await self._raise_for_status(response, "Gemini speech request")
                payload = await response.read()

        decoded = GenerateContentResponse.model_validate_json(payload)
        parts = decoded.first_parts()
        inline = parts[0].inline_data if parts else None
        if inline is None or not inline.data:
            logger.error("Gemini speech response missing inlineData payload")
            raise GeminiSpeechError("Gemini speech response did not contain an audio payload.")

        try:
            pcm_data = base64.b64decode(inline.data)
        except binascii.Error as e:
            logger.error("Gemini speech payload is not valid base64: %s", e)
            raise GeminiSpeechError("Gemini speech response contained malformed audio data.") from e

        return SpeechResult(pcm_data=pcm_data, mime_type=inline.mime_type)


class GeminiModelsClient(_GeminiHTTP):
    """Lists available models (all pages)."""

    async def list_models(self) -> list[ModelDescriptor]:
        settings = self.settings
        url = f"{settings.api_base}/models"
        headers = {"x-goog-api-key": settings.require_api_key()}
        models: list[ModelDescriptor] = []
        page_token: str | None = None

        async with self._client() as session:
            while True:
                params = {"pageToken": page_token} if page_token else {}
                async with session.get(url, params=params, headers=headers) as response:
                    await self._raise_for_status(response, "Gemini models request")
                    page = ListModelsResponse.model_validate_json(await response.read())

                for resource in page.models or []:
                    if not resource.name.startswith("models/"):
                        continue
                    models.append(ModelDescriptor(
                        id=resource.name.removeprefix("models/"),
                        display_name=resource.display_name,
                        description=resource.description,
                        supported_generation_methods=resource.supported_generation_methods or [],
                    ))

                page_token = page.next_page_token
                if not page_token:
                    break

        return sorted(models, key=lambda m: m.id)
