"""Helpers shared by the httpx-backed provider services."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

import httpx

from ..errors import (
    ContentPolicyRejectedError,
    CredentialInvalidError,
    GenerationCancelled,
    ProviderFailureError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

_KEY_ERROR_MARKERS = ("api key", "requested entity was not found", "permission_denied")
_OPENAI_POLICY_CODES = {"moderation_blocked", "content_policy_violation"}

INVALID_GEMINI_KEY_MESSAGE = (
    "API Key not valid. Please ensure you have selected a valid API key "
    "associated with a billing project."
)

# Upper bound of a single sleep while waiting between polls, so a cancel
# request is noticed well before a long poll interval elapses.
_CANCEL_CHECK_STEP = 0.5


def error_message(response: httpx.Response) -> str:
    """Pull the human readable message out of a provider error body."""
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict):
            return str(error.get("message") or error.get("status") or error)
        if error:
            return str(error)
        if body.get("message"):
            return str(body["message"])
    return response.text or response.reason_phrase


def error_code(response: httpx.Response) -> Optional[str]:
    try:
        body = response.json()
    except ValueError:
        return None
    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict) and error.get("code") is not None:
        return str(error["code"])
    return None


def is_gemini_key_error(status_code: int, message: str) -> bool:
    if status_code in (401, 403):
        return True
    lowered = message.lower()
    return any(marker in lowered for marker in _KEY_ERROR_MARKERS)


def raise_for_gemini_status(response: httpx.Response) -> None:
    if response.status_code < 400:
        return
    message = error_message(response)
    if is_gemini_key_error(response.status_code, message):
        raise CredentialInvalidError(INVALID_GEMINI_KEY_MESSAGE)
    raise ProviderFailureError(message, status_code=response.status_code)


def raise_for_openai_status(response: httpx.Response) -> None:
    if response.status_code < 400:
        return
    message = error_message(response)
    if response.status_code in (401, 403):
        raise CredentialInvalidError(f"OpenAI rejected the API key: {message}")
    if error_code(response) in _OPENAI_POLICY_CODES:
        raise ContentPolicyRejectedError(f"Request was blocked: {message}", reason=message)
    raise ProviderFailureError(message, status_code=response.status_code)


def is_openai_policy_code(code: Optional[str]) -> bool:
    return code in _OPENAI_POLICY_CODES


async def sleep_unless_cancelled(seconds: float, is_cancelled: Callable[[], bool]) -> None:
    remaining = seconds
    while remaining > 0:
        if is_cancelled():
            return
        step = min(_CANCEL_CHECK_STEP, remaining)
        await asyncio.sleep(step)
        remaining -= step


async def poll_until_done(
    fetch: Callable[[], Awaitable[T]],
    is_done: Callable[[T], bool],
    *,
    interval: float,
    max_polls: int,
    is_cancelled: Callable[[], bool],
    label: str,
) -> T:
    """
    Call ``fetch`` until ``is_done`` accepts its result.

    The cancel flag is checked before every request and while waiting.

    Raises:
        GenerationCancelled: the caller cancelled while polling.
        ProviderFailureError: the operation was not done after ``max_polls``.
    """
    for attempt in range(1, max_polls + 1):
        if is_cancelled():
            raise GenerationCancelled("Generation cancelled.")
        state = await fetch()
        if is_done(state):
            return state
        logger.debug("[%s] Poll %d/%d: not done yet", label, attempt, max_polls)
        await sleep_unless_cancelled(interval, is_cancelled)
    if is_cancelled():
        raise GenerationCancelled("Generation cancelled.")
    raise ProviderFailureError(
        f"{label} did not finish after {max_polls} status checks. Please try again."
    )
