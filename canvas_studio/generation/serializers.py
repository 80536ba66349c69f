"""Serialization and request parsing for generation HTTP endpoints."""

from __future__ import annotations

from typing import Any, Optional, Tuple

from canvas_inference.errors import GenerationError, ValidationError
from canvas_inference.generation.types import GenerationRequest, MediaKind
from pydantic import ValidationError as PydanticValidationError

from ..library.serializers import record_to_dict
from .orchestrator import AggregateResult, RunMode
from .state import GenerationState


def error_to_dict(error: Optional[GenerationError]) -> Optional[dict[str, Any]]:
    return error.to_dict() if error is not None else None


def aggregate_result_to_dict(result: AggregateResult, media_kind: Optional[MediaKind] = None) -> dict[str, Any]:
    return {
        "status": result.status.value,
        "message": result.summary(media_kind),
        "records": [record_to_dict(r) for r in result.records],
        "failed_count": result.failed_count,
        "error": error_to_dict(result.error),
        "failures": [f.to_dict() for f in result.failures],
    }


def state_to_dict(state: GenerationState) -> dict[str, Any]:
    return {
        "is_generating": state.is_generating,
        "progress": state.progress,
        "status_message": state.status_message,
        "error": state.error,
        "results": [record_to_dict(r) for r in state.results],
    }


def parse_generate_body(data: dict[str, Any]) -> Tuple[GenerationRequest, RunMode]:
    """
    Split a ``POST /api/generate`` body into the request and the run mode.

    ``mode`` is ``single`` (needs ``modelId``) or ``compare`` (needs
    ``mediaKind``); every other key is a request field.
    """
    fields = dict(data)
    mode_name = fields.pop("mode", "single")
    model_id = fields.pop("modelId", None)
    media_kind = fields.pop("mediaKind", None)

    if mode_name == "compare":
        try:
            mode = RunMode.compare_all(MediaKind(media_kind or "image"))
        except ValueError as e:
            raise ValidationError(f"Unknown media kind: {media_kind}") from e
    elif mode_name == "single":
        if not model_id:
            raise ValidationError("Missing required field: modelId")
        mode = RunMode.single(model_id)
    else:
        raise ValidationError(f"Unknown mode: {mode_name}")

    try:
        request = GenerationRequest.model_validate(fields)
    except PydanticValidationError as e:
        first = e.errors()[0]
        location = ".".join(str(part) for part in first.get("loc", ()))
        raise ValidationError(f"Invalid field {location}: {first.get('msg')}") from e
    return request, mode
