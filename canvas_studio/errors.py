# HTTP mapping for the typed errors raised by services

from flask import jsonify

from canvas_inference.errors import (
    GenerationError,
    MediaDecodeError,
    NotConfiguredError,
    NotFoundError,
    StorageError,
    ValidationError,
)


def status_for(error: Exception) -> int:
    if isinstance(error, (ValidationError, MediaDecodeError)):
        return 400
    if isinstance(error, NotFoundError):
        return 404
    if isinstance(error, NotConfiguredError):
        return 409
    if isinstance(error, (GenerationError, StorageError)):
        return 502
    return 500


def error_response(error: Exception):
    body = {'error': getattr(error, 'message', None) or str(error)}
    if isinstance(error, GenerationError):
        body['kind'] = error.kind.value
    return jsonify(body), status_for(error)
