"""Video backend services for long-running render jobs.

Both backends follow the same shape: submit a job, poll its status until it
finishes, then download the produced file. Polling honours the caller's
cancel flag (see ``http_utils.poll_until_done``).
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional

import httpx

from ...config.settings import DEFAULT_GEMINI_BASE_URL, DEFAULT_OPENAI_BASE_URL
from ...errors import (
    ContentPolicyRejectedError,
    ProviderFailureError,
    RetrievalFailedError,
)
from ...input_processing.media_codec import DEFAULT_VIDEO_MIME, MediaBlob, MediaCodec
from ..http_utils import (
    is_openai_policy_code,
    poll_until_done,
    raise_for_gemini_status,
    raise_for_openai_status,
)

logger = logging.getLogger(__name__)

SORA_ACTIVE_STATES = {"queued", "in_progress"}


class HttpVideoService:
    """Common lazy ``httpx`` client and polling settings."""

    label = "Video"

    def __init__(
        self,
        base_url: str,
        timeout: float = 120.0,
        poll_interval: float = 10.0,
        max_polls: int = 60,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.poll_interval = poll_interval
        self.max_polls = max_polls
        self._http = http_client

    @property
    def http(self) -> httpx.AsyncClient:
        if self._http is None or self._http.is_closed:
            self._http = httpx.AsyncClient(timeout=self.timeout)
        return self._http

    async def close(self) -> None:
        if self._http and not self._http.is_closed:
            await self._http.aclose()

    async def _send(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            return await self.http.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            raise ProviderFailureError(f"{self.label} request failed: {exc}") from exc

    async def wait_for(
        self,
        fetch: Callable,
        is_done: Callable[[Dict[str, Any]], bool],
        is_cancelled: Callable[[], bool],
    ) -> Dict[str, Any]:
        return await poll_until_done(
            fetch,
            is_done,
            interval=self.poll_interval,
            max_polls=self.max_polls,
            is_cancelled=is_cancelled,
            label=self.label,
        )

    async def _download(self, url: str, headers: Dict[str, str]) -> MediaBlob:
        """Fetch a finished render; any failure here means the render is lost."""
        try:
            resp = await self.http.get(url, headers=headers, follow_redirects=True)
            resp.raise_for_status()
        except httpx.HTTPError as exc:
            raise RetrievalFailedError(
                f"{self.label} finished but the file could not be downloaded: {exc}"
            ) from exc
        if not resp.content:
            raise RetrievalFailedError(f"{self.label} finished but the downloaded file was empty.")
        mime = resp.headers.get("content-type", "").split(";")[0]
        if not mime.startswith("video/"):
            mime = MediaCodec.sniff_mime_type(resp.content, default=DEFAULT_VIDEO_MIME)
        return MediaBlob(data=resp.content, mime_type=mime)


class VeoVideoService(HttpVideoService):
    """Veo through the Gemini ``predictLongRunning`` operation API."""

    label = "Veo"

    def __init__(
        self,
        model: str = "veo-3.1-generate-preview",
        base_url: str = DEFAULT_GEMINI_BASE_URL,
        **kwargs: Any,
    ) -> None:
        super().__init__(base_url, **kwargs)
        self.model = model

    async def start(
        self,
        *,
        api_key: str,
        prompt: str,
        aspect_ratio: str,
        resolution: str,
        duration_seconds: int,
        negative_prompt: Optional[str] = None,
        source: Optional[MediaBlob] = None,
    ) -> str:
        """Submit the render and return the operation name."""
        instance: Dict[str, Any] = {"prompt": prompt}
        if source is not None:
            instance["image"] = {
                "bytesBase64Encoded": MediaCodec.encode(source),
                "mimeType": source.mime_type,
            }
        parameters: Dict[str, Any] = {
            "aspectRatio": aspect_ratio,
            "durationSeconds": duration_seconds,
            "resolution": resolution,
        }
        if negative_prompt:
            parameters["negativePrompt"] = negative_prompt

        logger.info(
            "[Veo] Starting render (ratio=%s, %ss, %s, init_image=%s): %.80s",
            aspect_ratio,
            duration_seconds,
            resolution,
            source is not None,
            prompt,
        )
        resp = await self._send(
            "POST",
            f"{self.base_url}/models/{self.model}:predictLongRunning",
            headers={"x-goog-api-key": api_key},
            json={"instances": [instance], "parameters": parameters},
        )
        raise_for_gemini_status(resp)
        name = resp.json().get("name")
        if not name:
            raise ProviderFailureError("Veo did not return an operation name.")
        return name

    async def get_operation(self, *, api_key: str, name: str) -> Dict[str, Any]:
        resp = await self._send(
            "GET",
            f"{self.base_url}/{name}",
            headers={"x-goog-api-key": api_key},
        )
        raise_for_gemini_status(resp)
        return resp.json()

    async def wait(
        self,
        *,
        api_key: str,
        name: str,
        is_cancelled: Callable[[], bool],
    ) -> Dict[str, Any]:
        async def fetch() -> Dict[str, Any]:
            return await self.get_operation(api_key=api_key, name=name)

        return await self.wait_for(fetch, lambda op: bool(op.get("done")), is_cancelled)

    @staticmethod
    def video_uri(operation: Dict[str, Any]) -> str:
        """
        Extract the video URI from a finished operation.

        Raises:
            ProviderFailureError: the operation itself failed.
            ContentPolicyRejectedError: every sample was filtered.
        """
        error = operation.get("error")
        if error:
            raise ProviderFailureError(
                f"Veo generation failed: {error.get('message', error)}",
                status_code=error.get("code") if isinstance(error.get("code"), int) else None,
            )
        response = (operation.get("response") or {}).get("generateVideoResponse") or {}
        samples: List[Dict[str, Any]] = response.get("generatedSamples") or []
        uri = ((samples[0] if samples else {}).get("video") or {}).get("uri")
        if uri:
            return uri
        reasons = response.get("raiMediaFilteredReasons") or []
        if reasons:
            reason = "; ".join(str(r) for r in reasons)
            raise ContentPolicyRejectedError(
                f"Video generation was blocked: {reason}", reason=reason
            )
        raise ProviderFailureError("Video generation completed but no URI was found.")

    async def download(self, *, api_key: str, uri: str) -> MediaBlob:
        logger.info("[Veo] Downloading render")
        return await self._download(uri, {"x-goog-api-key": api_key})


class SoraVideoService(HttpVideoService):
    """Sora through the OpenAI ``/videos`` REST resource."""

    label = "Sora"

    def __init__(
        self,
        model: str = "sora-2",
        base_url: str = DEFAULT_OPENAI_BASE_URL,
        **kwargs: Any,
    ) -> None:
        super().__init__(base_url, **kwargs)
        self.model = model

    @staticmethod
    def _headers(api_key: str) -> Dict[str, str]:
        return {"Authorization": f"Bearer {api_key}"}

    async def create(self, *, api_key: str, prompt: str, seconds: str, size: str) -> Dict[str, Any]:
        logger.info("[Sora] Creating video (%ss, %s): %.80s", seconds, size, prompt)
        resp = await self._send(
            "POST",
            f"{self.base_url}/videos",
            headers=self._headers(api_key),
            json={"model": self.model, "prompt": prompt, "seconds": seconds, "size": size},
        )
        raise_for_openai_status(resp)
        return resp.json()

    async def remix(self, *, api_key: str, video_id: str, prompt: str) -> Dict[str, Any]:
        logger.info("[Sora] Remixing video %s: %.80s", video_id, prompt)
        resp = await self._send(
            "POST",
            f"{self.base_url}/videos/{video_id}/remix",
            headers=self._headers(api_key),
            json={"prompt": prompt},
        )
        raise_for_openai_status(resp)
        return resp.json()

    async def retrieve(self, *, api_key: str, video_id: str) -> Dict[str, Any]:
        resp = await self._send(
            "GET",
            f"{self.base_url}/videos/{video_id}",
            headers=self._headers(api_key),
        )
        raise_for_openai_status(resp)
        return resp.json()

    async def wait(
        self,
        *,
        api_key: str,
        video_id: str,
        is_cancelled: Callable[[], bool],
    ) -> Dict[str, Any]:
        async def fetch() -> Dict[str, Any]:
            return await self.retrieve(api_key=api_key, video_id=video_id)

        job = await self.wait_for(
            fetch, lambda j: j.get("status") not in SORA_ACTIVE_STATES, is_cancelled
        )
        self.raise_for_job(job)
        return job

    @staticmethod
    def raise_for_job(job: Dict[str, Any]) -> None:
        if job.get("status") == "completed":
            return
        error = job.get("error") or {}
        message = error.get("message") or f"Sora job ended with status '{job.get('status')}'"
        if is_openai_policy_code(error.get("code")):
            raise ContentPolicyRejectedError(f"Video generation was blocked: {message}", reason=message)
        raise ProviderFailureError(f"Sora generation failed: {message}")

    async def download(self, *, api_key: str, video_id: str) -> MediaBlob:
        logger.info("[Sora] Downloading video %s", video_id)
        return await self._download(
            f"{self.base_url}/videos/{video_id}/content", self._headers(api_key)
        )
