"""Shared pytest fixtures for studio (orchestrator, library, HTTP) tests.

Auto-loaded for everything under `tests/studio/`. Providers are replaced by
the scripted adapters in `studio_fakes.py` and persistence is the in-memory
store, so these tests need neither network nor Supabase.
"""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

# Make repository root and this folder's helpers importable.
_here = Path(__file__).resolve().parent
_repo_root = _here.parents[1]
for _path in (_repo_root, _here):
    if str(_path) not in sys.path:
        sys.path.insert(0, str(_path))

from canvas_inference.config.settings import GenerationSettings
from canvas_studio.app import build_studio, create_app
from canvas_studio.library.storage import InMemoryMediaStore
from studio_fakes import ScriptedAdapter, make_registry


@pytest.fixture
def store() -> InMemoryMediaStore:
    return InMemoryMediaStore()


@pytest.fixture
def studio_settings() -> GenerationSettings:
    return GenerationSettings(gemini_api_key="unused", openai_api_key="unused")


@pytest.fixture
def studio_env(studio_settings, store):
    """Flask app wired to two scripted image adapters and one video adapter."""
    registry = make_registry(
        ScriptedAdapter("fake-image-a"),
        ScriptedAdapter("fake-image-b"),
        ScriptedAdapter("fake-video", kind="video"),
    )
    studio = build_studio(studio_settings, registry=registry, persistence=store)
    app = create_app({"TESTING": True}, studio=studio)
    yield app, studio
    studio.runner.shutdown()
