"""Shared pytest setup for provider-side unit tests.

Auto-loaded for everything under `tests/inference/`. Provider HTTP is faked
with `httpx.MockTransport` (see `provider_fakes.py`), so no test touches the
network.
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


@pytest.fixture
def settings() -> GenerationSettings:
    return GenerationSettings(
        gemini_api_key="gemini-test-key",
        openai_api_key="openai-test-key",
        gemini_base_url="https://gemini.test/v1beta",
        openai_base_url="https://openai.test/v1",
        video_poll_interval=0.0,
        video_max_polls=5,
    )


@pytest.fixture(autouse=True)
def _isolated_provider_env(monkeypatch):
    for name in ("GEMINI_API_KEY", "API_KEY", "OPENAI_API_KEY", "VIBECANVAS_CONFIG"):
        monkeypatch.delenv(name, raising=False)
