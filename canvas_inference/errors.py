"""Error taxonomy shared by adapters, the orchestrator and the HTTP layer."""

from __future__ import annotations

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    NOT_CONFIGURED = "not_configured"
    CREDENTIAL_UNAVAILABLE = "credential_unavailable"
    CREDENTIAL_INVALID = "credential_invalid"
    CONTENT_POLICY = "content_policy"
    RETRIEVAL_FAILED = "retrieval_failed"
    PROVIDER_FAILURE = "provider_failure"
    CANCELLED = "cancelled"


# Higher wins when picking the single error to surface for a failed round.
_SPECIFICITY = {
    ErrorKind.CONTENT_POLICY: 60,
    ErrorKind.CREDENTIAL_INVALID: 50,
    ErrorKind.CREDENTIAL_UNAVAILABLE: 40,
    ErrorKind.RETRIEVAL_FAILED: 30,
    ErrorKind.NOT_CONFIGURED: 20,
    ErrorKind.PROVIDER_FAILURE: 10,
    ErrorKind.VALIDATION: 5,
    ErrorKind.CANCELLED: 0,
}


class GenerationError(RuntimeError):
    """Base class for every failure the generation stack reports."""

    kind: ErrorKind = ErrorKind.PROVIDER_FAILURE

    def __init__(self, message: str, *, provider_id: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.provider_id = provider_id

    @property
    def specificity(self) -> int:
        return _SPECIFICITY[self.kind]

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "message": self.message,
            "provider_id": self.provider_id,
        }


class ValidationError(GenerationError):
    """Caller misuse: empty prompt, no authenticated user, unknown provider."""

    kind = ErrorKind.VALIDATION


class NotConfiguredError(GenerationError):
    kind = ErrorKind.NOT_CONFIGURED


class CredentialUnavailableError(GenerationError):
    """No usable key and no way to ask the user for one."""

    kind = ErrorKind.CREDENTIAL_UNAVAILABLE


class CredentialInvalidError(GenerationError):
    """The provider rejected the key, after at most one re-selection."""

    kind = ErrorKind.CREDENTIAL_INVALID


class ContentPolicyRejectedError(GenerationError):
    """Provider-side safety block; ``reason`` is the provider's own wording."""

    kind = ErrorKind.CONTENT_POLICY

    def __init__(self, message: str, *, reason: str = "", provider_id: Optional[str] = None):
        super().__init__(message, provider_id=provider_id)
        self.reason = reason

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["reason"] = self.reason
        return data


class RetrievalFailedError(GenerationError):
    """The provider finished the render but the artifact was lost on the way back."""

    kind = ErrorKind.RETRIEVAL_FAILED


class ProviderFailureError(GenerationError):
    kind = ErrorKind.PROVIDER_FAILURE

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        provider_id: Optional[str] = None,
    ):
        super().__init__(message, provider_id=provider_id)
        self.status_code = status_code


class GenerationCancelled(GenerationError):
    """Normal terminal state; callers must not surface it as an error toast."""

    kind = ErrorKind.CANCELLED


class MediaDecodeError(ValueError):
    """Malformed base64 or data URL payload."""


class StorageError(RuntimeError):
    """Blob or record persistence failed."""


class NotFoundError(StorageError):
    """Object missing or not readable with the current authorization."""


def most_specific(errors) -> Optional[GenerationError]:
    """Pick the most actionable error; earlier entries win ties."""
    best: Optional[GenerationError] = None
    for error in errors:
        if error is None:
            continue
        if best is None or error.specificity > best.specificity:
            best = error
    return best
