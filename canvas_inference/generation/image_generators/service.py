"""Image backend services used by the image adapters.

``GeminiImageService`` talks to the Gemini ``generateContent`` REST endpoint
through ``httpx``; ``OpenAIImageService`` wraps the OpenAI SDK. Both translate
transport / HTTP failures into the typed errors from ``canvas_inference.errors``
so adapters only deal with one error vocabulary.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx
import openai
from openai import AsyncOpenAI

from ...config.settings import DEFAULT_GEMINI_BASE_URL, DEFAULT_OPENAI_BASE_URL
from ...errors import (
    ContentPolicyRejectedError,
    CredentialInvalidError,
    ProviderFailureError,
    RetrievalFailedError,
)
from ...input_processing.media_codec import DEFAULT_IMAGE_MIME, MediaBlob, MediaCodec
from ..http_utils import is_openai_policy_code, raise_for_gemini_status

logger = logging.getLogger(__name__)

_BLOCKING_FINISH_REASONS = {"SAFETY", "OTHER", "PROHIBITED_CONTENT", "IMAGE_SAFETY", "BLOCKLIST"}

@dataclass
class GeminiImageResult:
    images: List[MediaBlob]
    finish_reason: Optional[str] = None
    block_reason: Optional[str] = None
    text: str = ""


class GeminiImageService:
    """Gemini image generation + editing over REST."""

    def __init__(
        self,
        model: str = "gemini-3-pro-image-preview",
        base_url: str = DEFAULT_GEMINI_BASE_URL,
        timeout: float = 120.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._http = http_client

    @property
    def http(self) -> httpx.AsyncClient:
        if self._http is None or self._http.is_closed:
            self._http = httpx.AsyncClient(timeout=self.timeout)
        return self._http

    async def close(self) -> None:
        if self._http and not self._http.is_closed:
            await self._http.aclose()

    async def generate_content(
        self,
        *,
        api_key: str,
        prompt: str,
        aspect_ratio: str,
        image_size: str,
        source: Optional[MediaBlob] = None,
    ) -> GeminiImageResult:
        parts: List[Dict[str, Any]] = []
        if source is not None:
            parts.append(
                {"inlineData": {"mimeType": source.mime_type, "data": MediaCodec.encode(source)}}
            )
        parts.append({"text": prompt})
        payload = {
            "contents": [{"role": "user", "parts": parts}],
            "generationConfig": {
                "responseModalities": ["TEXT", "IMAGE"],
                "imageConfig": {"aspectRatio": aspect_ratio, "imageSize": image_size},
            },
        }
        url = f"{self.base_url}/models/{self.model}:generateContent"
        logger.info(
            "[Gemini Image] Generating (ratio=%s, size=%s, init_image=%s): %.80s",
            aspect_ratio,
            image_size,
            source is not None,
            prompt,
        )
        try:
            resp = await self.http.post(url, headers={"x-goog-api-key": api_key}, json=payload)
        except httpx.HTTPError as exc:
            raise ProviderFailureError(f"Gemini request failed: {exc}") from exc

        raise_for_gemini_status(resp)
        try:
            data = resp.json()
        except ValueError as exc:
            raise ProviderFailureError("Non-JSON response from Gemini") from exc
        return self._parse(data)

    @staticmethod
    def _parse(data: Dict[str, Any]) -> GeminiImageResult:
        result = GeminiImageResult(images=[])
        feedback = data.get("promptFeedback") or {}
        result.block_reason = feedback.get("blockReason")

        candidates = data.get("candidates") or []
        if not candidates:
            return result
        first = candidates[0]
        result.finish_reason = first.get("finishReason")
        texts: List[str] = []
        for part in (first.get("content") or {}).get("parts") or []:
            inline = part.get("inlineData") or part.get("inline_data")
            if inline and inline.get("data"):
                mime = inline.get("mimeType") or inline.get("mime_type") or DEFAULT_IMAGE_MIME
                result.images.append(MediaCodec.decode(inline["data"], mime))
            elif part.get("text"):
                texts.append(part["text"])
        result.text = " ".join(texts)
        return result

    @staticmethod
    def raise_for_empty(result: GeminiImageResult) -> None:
        """Classify a reply that carried no image."""
        reason = result.block_reason or result.finish_reason
        if reason and (result.block_reason or reason in _BLOCKING_FINISH_REASONS):
            raise ContentPolicyRejectedError(
                f"Image generation was blocked due to: {reason}. "
                "Prompt may have violated safety policies.",
                reason=reason,
            )
        raise ProviderFailureError(
            "No image was generated. The model may not have returned an image."
        )


class OpenAIImageService:
    """GPT-Image generation through the OpenAI SDK."""

    def __init__(
        self,
        model: str = "gpt-image-1",
        base_url: str = DEFAULT_OPENAI_BASE_URL,
        timeout: float = 120.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._http_client = http_client
        self._clients: Dict[str, AsyncOpenAI] = {}

    def client_for(self, api_key: str) -> AsyncOpenAI:
        client = self._clients.get(api_key)
        if client is None:
            client = AsyncOpenAI(
                api_key=api_key,
                base_url=self.base_url,
                timeout=self.timeout,
                max_retries=0,
                http_client=self._http_client,
            )
            self._clients[api_key] = client
        return client

    async def generate(self, *, api_key: str, prompt: str, size: str) -> Dict[str, Any]:
        """Return ``{"image": MediaBlob, "revised_prompt": str | None}``."""
        logger.info("[GPT-Image] Generating image (size=%s): %.80s", size, prompt)
        client = self.client_for(api_key)
        try:
            response = await client.images.generate(
                model=self.model,
                prompt=prompt,
                n=1,
                size=size,
            )
        except (openai.AuthenticationError, openai.PermissionDeniedError) as exc:
            raise CredentialInvalidError(f"OpenAI rejected the API key: {exc.message}") from exc
        except openai.BadRequestError as exc:
            if is_openai_policy_code(exc.code):
                raise ContentPolicyRejectedError(
                    f"GPT-Image request was blocked: {exc.message}",
                    reason=exc.message,
                ) from exc
            raise ProviderFailureError(exc.message, status_code=exc.status_code) from exc
        except openai.APIStatusError as exc:
            raise ProviderFailureError(exc.message, status_code=exc.status_code) from exc
        except openai.APIError as exc:
            raise ProviderFailureError(f"OpenAI request failed: {exc}") from exc

        if not response.data:
            raise ProviderFailureError("No data received from GPT-Image service.")
        first = response.data[0]
        if first.b64_json:
            image = MediaCodec.decode(first.b64_json, None)
        elif first.url:
            image = await self._download(first.url)
        else:
            raise ProviderFailureError("Received unknown response format from GPT-Image service.")
        return {"image": image, "revised_prompt": getattr(first, "revised_prompt", None)}

    async def _download(self, url: str) -> MediaBlob:
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as http:
                resp = await http.get(url)
                resp.raise_for_status()
        except httpx.HTTPError as exc:
            raise RetrievalFailedError(f"Failed to fetch image from URL: {exc}") from exc
        mime = resp.headers.get("content-type", "").split(";")[0] or None
        return MediaBlob(data=resp.content, mime_type=mime or MediaCodec.sniff_mime_type(resp.content))
