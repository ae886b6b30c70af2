import asyncio
import base64
import json

import aiohttp
import pytest

from echoforge.models.gemini import GenerateContentResponse, GenerationConfig, user_prompt_request
from echoforge.models.schemas import PodcastGenerationRequest, SpeechRequest, SpeechSpeaker
from echoforge.services.gemini_client import (
    GeminiClient,
    GeminiHTTPError,
    GeminiModelsClient,
    GeminiSpeechClient,
    GeminiSpeechError,
    is_retryable_error,
)


class FakeContent:
    def __init__(self, chunks):
        self._chunks = chunks

    async def iter_any(self):
        for chunk in self._chunks:
            yield chunk


class FakeResponse:
    def __init__(self, status=200, chunks=(), body=b""):
        self.status = status
        self.content = FakeContent(list(chunks))
        self._body = body or b"".join(chunks)

    async def text(self, errors="strict"):
        return self._body.decode("utf-8", errors=errors)

    async def read(self):
        return self._body

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False


class FakeSession:
    """Stands in for aiohttp.ClientSession: replays queued responses."""

    def __init__(self, responses):
        self._responses = list(responses)
        self.requests = []

    def _next(self, method, url, **kwargs):
        self.requests.append((method, url, kwargs))
        return self._responses.pop(0)

    def post(self, url, **kwargs):
        return self._next("POST", url, **kwargs)

    def get(self, url, **kwargs):
        return self._next("GET", url, **kwargs)


def _sse_bytes(*texts: str) -> bytes:
    out = []
    for text in texts:
        envelope = {"candidates": [{"content": {"parts": [{"text": text}]}}]}
        out.append(f"data: {json.dumps(envelope)}\n\n")
    out.append("data: [DONE]\n\n")
    return "".join(out).encode()


# ── Error classification ──────────────────────────────────────────


class TestIsRetryableError:
    @pytest.mark.parametrize("status", [429, 500, 503, 599])
    def test_retryable_statuses(self, status):
        assert is_retryable_error(GeminiHTTPError(status)) is True

    @pytest.mark.parametrize("status", [400, 401, 403, 404])
    def test_client_errors_not_retryable(self, status):
        assert is_retryable_error(GeminiHTTPError(status)) is False

    def test_transport_errors_retryable(self):
        assert is_retryable_error(aiohttp.ClientConnectionError("reset")) is True
        assert is_retryable_error(asyncio.TimeoutError()) is True
        assert is_retryable_error(ConnectionResetError()) is True

    def test_other_errors_not_retryable(self):
        assert is_retryable_error(ValueError("bad json")) is False
        assert is_retryable_error(GeminiSpeechError("no audio")) is False


def test_http_error_message():
    assert str(GeminiHTTPError(500, "oops")) == "Gemini request failed (HTTP 500): oops"
    assert str(GeminiHTTPError(502)) == "Gemini request failed (HTTP 502)."


# ── Wire models ───────────────────────────────────────────────────


class TestWireModels:
    def test_request_serialized_camel_case(self):
        body = user_prompt_request(
            "hi", GenerationConfig(temperature=0.7, top_p=0.95, max_output_tokens=10),
        ).to_wire()
        assert body == {
            "contents": [{"role": "user", "parts": [{"text": "hi"}]}],
            "generationConfig": {"temperature": 0.7, "topP": 0.95, "maxOutputTokens": 10},
        }

    def test_response_model_text(self):
        response = GenerateContentResponse.model_validate({
            "candidates": [{"content": {"parts": [{"text": "a"}, {"inlineData": {}}, {"text": "b"}]}}],
        })
        assert response.model_text() == "ab"
        assert GenerateContentResponse.model_validate({}).first_parts() == []


# ── Clients ───────────────────────────────────────────────────────


class TestGeminiClient:
    @pytest.mark.asyncio
    async def test_open_stream_splits_lines_across_chunks(self, test_settings):
        payload = _sse_bytes('{"type":"done"}')
        session = FakeSession([FakeResponse(chunks=[payload[:7], payload[7:30], payload[30:]])])
        client = GeminiClient(test_settings, session=session)

        lines = [line async for line in client.open_stream("prompt")]

        assert "".join(line + "\n" for line in lines) == payload.decode()
        method, url, kwargs = session.requests[0]
        assert url.endswith("/v1beta/models/gemini-1.5-flash:streamGenerateContent")
        assert kwargs["params"] == {"alt": "sse", "key": "test-key"}
        assert kwargs["json"]["contents"][0]["parts"][0]["text"] == "prompt"

    @pytest.mark.asyncio
    async def test_open_stream_raises_on_http_error(self, test_settings):
        session = FakeSession([FakeResponse(status=400, body=b'{"error":"bad"}')])
        client = GeminiClient(test_settings, session=session)
        with pytest.raises(GeminiHTTPError) as exc_info:
            async for _ in client.open_stream("prompt"):
                pass
        assert exc_info.value.status_code == 400

    @pytest.mark.asyncio
    async def test_stream_podcast_events_end_to_end(self, test_settings, ndjson):
        text = ndjson(
            {"type": "episode", "episode_number": 1, "title": "T", "summary": "S"},
            {"type": "line", "episode_number": 1, "speaker": "HOST_B", "text": "Hi"},
            {"type": "episode_end", "episode_number": 1},
        )
        session = FakeSession([FakeResponse(chunks=[_sse_bytes(text[:20], text[20:])])])
        client = GeminiClient(test_settings, session=session)
        request = PodcastGenerationRequest(topic="Ants", episode_count=1)

        events = [e async for e in client.stream_podcast_events(request)]
        assert [e.type for e in events] == ["episode", "line", "episode_end", "done"]

    @pytest.mark.asyncio
    async def test_missing_api_key(self, test_settings):
        settings = test_settings.model_copy(update={"gemini_api_key": ""})
        client = GeminiClient(settings, session=FakeSession([]))
        with pytest.raises(ValueError, match="GEMINI_API_KEY"):
            async for _ in client.open_stream("prompt"):
                pass


class TestGeminiSpeechClient:
    @pytest.mark.asyncio
    async def test_decodes_inline_pcm(self, test_settings):
        pcm = b"\x01\x02" * 8
        body = json.dumps({"candidates": [{"content": {"parts": [
            {"inlineData": {"mimeType": "audio/L16", "data": base64.b64encode(pcm).decode()}},
        ]}}]}).encode()
        session = FakeSession([FakeResponse(body=body)])
        client = GeminiSpeechClient(test_settings, session=session)

        result = await client.generate_speech(SpeechRequest(
            script="A: hi",
            speakers=[SpeechSpeaker(name="A", voice_name="Kore"),
                      SpeechSpeaker(name="B", voice_name="Puck")],
        ))

        assert result.pcm_data == pcm
        assert result.sample_rate_hz == 24000
        _, url, kwargs = session.requests[0]
        assert url.endswith("gemini-2.5-flash-preview-tts:generateContent")
        assert kwargs["headers"] == {"x-goog-api-key": "test-key"}
        config = kwargs["json"]["generationConfig"]
        assert config["responseModalities"] == ["AUDIO"]
        voices = config["speechConfig"]["multiSpeakerVoiceConfig"]["speakerVoiceConfigs"]
        assert [v["voiceConfig"]["prebuiltVoiceConfig"]["voiceName"] for v in voices] == [
            "Kore", "Puck",
        ]

    @pytest.mark.asyncio
    async def test_missing_audio_payload(self, test_settings):
        body = b'{"candidates":[{"content":{"parts":[{"text":"sorry"}]}}]}'
        client = GeminiSpeechClient(test_settings, session=FakeSession([FakeResponse(body=body)]))
        with pytest.raises(GeminiSpeechError):
            await client.generate_speech(SpeechRequest(script="x"))

    @pytest.mark.asyncio
    async def test_malformed_base64_payload(self, test_settings):
        body = b'{"candidates":[{"content":{"parts":[{"inlineData":{"mimeType":"audio/L16","data":"abc"}}]}}]}'
        client = GeminiSpeechClient(test_settings, session=FakeSession([FakeResponse(body=body)]))
        with pytest.raises(GeminiSpeechError, match="malformed audio data"):
            await client.generate_speech(SpeechRequest(script="x"))


class TestGeminiModelsClient:
    @pytest.mark.asyncio
    async def test_paginates_and_sorts(self, test_settings):
        pages = [
            {"models": [
                {"name": "models/zeta", "supportedGenerationMethods": ["generateContent"]},
                {"name": "tunedModels/mine"},
            ], "nextPageToken": "p2"},
            {"models": [{"name": "models/alpha", "displayName": "Alpha"}]},
        ]
        session = FakeSession([FakeResponse(body=json.dumps(p).encode()) for p in pages])
        client = GeminiModelsClient(test_settings, session=session)

        models = await client.list_models()

        assert [m.id for m in models] == ["alpha", "zeta"]
        assert models[0].display_name == "Alpha"
        assert models[1].supported_generation_methods == ["generateContent"]
        assert session.requests[1][2]["params"] == {"pageToken": "p2"}
