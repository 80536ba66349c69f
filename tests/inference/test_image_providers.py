from __future__ import annotations

import asyncio

import httpx

from canvas_inference.errors import ErrorKind, StorageError
from canvas_inference.generation.image_generators.generators.gemini_image_generator.generator import (
    GeminiImageAdapter,
)
from canvas_inference.generation.image_generators.generators.openai_image_generator.generator import (
    OpenAIImageAdapter,
    openai_size_for,
)
from canvas_inference.generation.image_generators.service import GeminiImageService, OpenAIImageService
from canvas_inference.generation.key_gate import ApiKeyGate
from canvas_inference.generation.types import (
    GenerationContext,
    GenerationPhase,
    GenerationRequest,
    SourceImageRef,
)
from canvas_inference.input_processing.media_codec import MediaBlob, MediaCodec
from provider_fakes import FakeKeyHost, json_body, mock_client, png_bytes


def _gemini_image_reply(data: bytes) -> dict:
    return {
        "candidates": [
            {
                "finishReason": "STOP",
                "content": {
                    "parts": [
                        {"text": "Here you go"},
                        {"inlineData": {"mimeType": "image/png", "data": MediaCodec.encode(data)}},
                    ]
                },
            }
        ]
    }


def _gemini_adapter(settings, handler, key_gate=None) -> GeminiImageAdapter:
    service = GeminiImageService(base_url=settings.gemini_base_url, http_client=mock_client(handler))
    return GeminiImageAdapter(settings, key_gate=key_gate, service=service)


def test_gemini_maps_unsupported_ratio_and_resolution(settings):
    seen = []
    image = png_bytes()

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=_gemini_image_reply(image))

    adapter = _gemini_adapter(settings, handler)
    request = GenerationRequest(prompt="a red fox", aspect_ratio="21:9", resolution="2048")

    outcome = asyncio.run(adapter.generate(request))

    assert outcome.succeeded
    assert outcome.items[0].blob.data == image
    assert outcome.items[0].metadata["aspectRatio"] == "16:9"
    body = json_body(seen[0])
    assert body["generationConfig"]["imageConfig"] == {"aspectRatio": "16:9", "imageSize": "2K"}
    assert seen[0].headers["x-goog-api-key"] == "gemini-test-key"
    assert seen[0].url.path.endswith(":generateContent")
    # Caller's request is never modified
    assert request.aspect_ratio == "21:9"


def test_gemini_ratio_outside_table_falls_back_to_square(settings):
    adapter = _gemini_adapter(settings, lambda r: httpx.Response(500))

    effective = adapter.effective_request(GenerationRequest(prompt="x", aspect_ratio="5:4"))

    assert effective.aspect_ratio == "1:1"
    assert effective.resolution == "1K"


def test_gemini_safety_finish_reason_is_content_policy(settings):
    def handler(request):
        return httpx.Response(200, json={"candidates": [{"finishReason": "SAFETY", "content": {"parts": []}}]})

    outcome = asyncio.run(_gemini_adapter(settings, handler).generate(GenerationRequest(prompt="x")))

    assert outcome.error.kind is ErrorKind.CONTENT_POLICY
    assert outcome.error.reason == "SAFETY"
    assert "SAFETY" in outcome.error.message


def test_gemini_prompt_block_reason_is_content_policy(settings):
    def handler(request):
        return httpx.Response(200, json={"promptFeedback": {"blockReason": "OTHER"}})

    outcome = asyncio.run(_gemini_adapter(settings, handler).generate(GenerationRequest(prompt="x")))

    assert outcome.error.kind is ErrorKind.CONTENT_POLICY


def test_gemini_empty_reply_is_provider_failure(settings):
    def handler(request):
        return httpx.Response(200, json={"candidates": [{"finishReason": "STOP", "content": {"parts": [{"text": "no"}]}}]})

    outcome = asyncio.run(_gemini_adapter(settings, handler).generate(GenerationRequest(prompt="x")))

    assert outcome.error.kind is ErrorKind.PROVIDER_FAILURE
    assert outcome.provider_id == GeminiImageAdapter.PROVIDER_ID


def test_gemini_invalid_key_reselects_once_and_retries(settings):
    keys_seen = []
    image = png_bytes()

    def handler(request):
        key = request.headers["x-goog-api-key"]
        keys_seen.append(key)
        if key == "stale-key":
            return httpx.Response(400, json={"error": {"message": "API key not valid. Please pass a valid API key."}})
        return httpx.Response(200, json=_gemini_image_reply(image))

    host = FakeKeyHost(keys=["fresh-key"], selected="stale-key")
    adapter = _gemini_adapter(settings, handler, key_gate=ApiKeyGate(host=host, label="Gemini"))

    outcome = asyncio.run(adapter.generate(GenerationRequest(prompt="x")))

    assert outcome.succeeded
    assert keys_seen == ["stale-key", "fresh-key"]
    assert host.open_calls == 1


def test_gemini_credential_retry_is_bounded(settings):
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(403, json={"error": {"message": "PERMISSION_DENIED"}})

    host = FakeKeyHost(keys=["second", "third"], selected="first")
    adapter = _gemini_adapter(settings, handler, key_gate=ApiKeyGate(host=host))

    outcome = asyncio.run(adapter.generate(GenerationRequest(prompt="x")))

    assert outcome.error.kind is ErrorKind.CREDENTIAL_INVALID
    assert len(calls) == 2
    assert host.open_calls == 1


def test_gemini_invalid_ambient_key_is_not_retried(settings):
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(401, json={"error": {"message": "unauthorized"}})

    outcome = asyncio.run(_gemini_adapter(settings, handler).generate(GenerationRequest(prompt="x")))

    assert outcome.error.kind is ErrorKind.CREDENTIAL_INVALID
    assert len(calls) == 1


def test_gemini_without_key_reports_credential_unavailable(settings):
    calls = []
    no_key = settings.with_overrides(gemini_api_key="")
    adapter = _gemini_adapter(no_key, lambda r: calls.append(r) or httpx.Response(200))

    outcome = asyncio.run(adapter.generate(GenerationRequest(prompt="x")))

    assert not adapter.is_configured()
    assert outcome.error.kind is ErrorKind.CREDENTIAL_UNAVAILABLE
    assert calls == []


def test_gemini_sends_source_image_inline(settings):
    seen = []
    seed = png_bytes(color="blue")

    def handler(request):
        seen.append(json_body(request))
        return httpx.Response(200, json=_gemini_image_reply(png_bytes()))

    async def loader(ref):
        assert ref.path == "user-1/seed.png"
        return MediaBlob(seed, "image/png")

    request = GenerationRequest(prompt="make it night", source_image=SourceImageRef(path="user-1/seed.png"))
    context = GenerationContext(load_source_image=loader)

    outcome = asyncio.run(_gemini_adapter(settings, handler).generate(request, context))

    assert outcome.succeeded
    parts = seen[0]["contents"][0]["parts"]
    assert parts[0]["inlineData"] == {"mimeType": "image/png", "data": MediaCodec.encode(seed)}
    assert parts[1] == {"text": "make it night"}


def test_gemini_missing_source_image_fails_without_calling_provider(settings):
    calls = []

    async def loader(ref):
        raise StorageError("gone")

    request = GenerationRequest(prompt="x", source_image=SourceImageRef(path="user-1/missing.png"))
    adapter = _gemini_adapter(settings, lambda r: calls.append(r) or httpx.Response(200))

    outcome = asyncio.run(adapter.generate(request, GenerationContext(load_source_image=loader)))

    assert outcome.error.kind is ErrorKind.PROVIDER_FAILURE
    assert outcome.error.message == "Initial image not found in storage."
    assert calls == []


def test_gemini_reports_phases_in_order(settings):
    phases = []
    adapter = _gemini_adapter(settings, lambda r: httpx.Response(200, json=_gemini_image_reply(png_bytes())))
    context = GenerationContext(on_status=lambda pid, phase, text: phases.append(phase))

    asyncio.run(adapter.generate(GenerationRequest(prompt="x"), context))

    assert phases == [
        GenerationPhase.SUBMITTING,
        GenerationPhase.RENDERING,
        GenerationPhase.DOWNLOADING,
        GenerationPhase.SUCCEEDED,
    ]


def test_failing_status_observer_does_not_break_generation(settings):
    def observer(pid, phase, text):
        raise RuntimeError("ui gone")

    adapter = _gemini_adapter(settings, lambda r: httpx.Response(200, json=_gemini_image_reply(png_bytes())))

    outcome = asyncio.run(adapter.generate(GenerationRequest(prompt="x"), GenerationContext(on_status=observer)))

    assert outcome.succeeded


def _openai_adapter(settings, handler) -> OpenAIImageAdapter:
    service = OpenAIImageService(base_url=settings.openai_base_url, http_client=mock_client(handler))
    return OpenAIImageAdapter(settings, service=service)


def test_openai_size_follows_aspect_ratio():
    assert openai_size_for("16:9") == "1536x1024"
    assert openai_size_for("5:4") == "1024x1536"
    assert openai_size_for("1:1") == "1024x1024"


def test_openai_generates_image_and_records_params(settings):
    seen = []
    image = png_bytes()

    def handler(request):
        seen.append(request)
        return httpx.Response(
            200,
            json={"created": 1, "data": [{"b64_json": MediaCodec.encode(image), "revised_prompt": "a fox, detailed"}]},
        )

    request = GenerationRequest(prompt="a fox", aspect_ratio="9:16", negative_prompt="blurry", seed=3)

    outcome = asyncio.run(_openai_adapter(settings, handler).generate(request))

    assert outcome.succeeded
    item = outcome.items[0]
    assert item.blob.data == image
    assert item.blob.mime_type == "image/png"
    assert item.metadata["openaiParams"] == {"model": "gpt-image-1", "size": "1024x1536"}
    assert item.metadata["revisedPrompt"] == "a fox, detailed"
    assert json_body(seen[0])["size"] == "1024x1536"
    assert seen[0].headers["authorization"] == "Bearer openai-test-key"
    # Unsupported knobs are stripped from the effective request only
    assert outcome.effective_request.negative_prompt is None
    assert outcome.effective_request.seed is None
    assert request.seed == 3


def test_openai_moderation_block_is_content_policy(settings):
    def handler(request):
        return httpx.Response(
            400,
            json={"error": {"message": "Your request was rejected", "type": "image_generation_user_error", "code": "moderation_blocked"}},
        )

    outcome = asyncio.run(_openai_adapter(settings, handler).generate(GenerationRequest(prompt="x")))

    assert outcome.error.kind is ErrorKind.CONTENT_POLICY


def test_openai_rejected_key_is_credential_invalid(settings):
    def handler(request):
        return httpx.Response(401, json={"error": {"message": "Incorrect API key provided", "code": "invalid_api_key"}})

    outcome = asyncio.run(_openai_adapter(settings, handler).generate(GenerationRequest(prompt="x")))

    assert outcome.error.kind is ErrorKind.CREDENTIAL_INVALID


def test_openai_server_error_is_provider_failure(settings):
    def handler(request):
        return httpx.Response(500, json={"error": {"message": "boom"}})

    outcome = asyncio.run(_openai_adapter(settings, handler).generate(GenerationRequest(prompt="x")))

    assert outcome.error.kind is ErrorKind.PROVIDER_FAILURE
