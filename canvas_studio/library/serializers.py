"""Serialization helpers for library HTTP responses."""

from __future__ import annotations

from typing import Any

from .models import Folder, PersistedMediaRecord, Template
from .signed_url import UrlState


def record_to_dict(record: PersistedMediaRecord) -> dict[str, Any]:
    """Row columns plus the bucket and a camelCase timestamp for the UI."""
    row = record.to_row()
    row["bucket"] = record.storage.bucket
    row["createdAt"] = row["created_at"]
    return row


def folder_to_dict(folder: Folder) -> dict[str, Any]:
    return folder.to_row()


def template_to_dict(template: Template) -> dict[str, Any]:
    return template.to_row()


def url_state_to_dict(record_id: str, state: UrlState) -> dict[str, Any]:
    return {"id": record_id, **state.to_dict()}
