"""
Runtime settings for providers, polling and storage.

Values are layered: built-in defaults, then an optional YAML/JSON file, then
environment variables (after a ``.env`` file has been loaded).
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, fields, replace
from typing import Any, Dict, Optional

from .config_loader import ConfigLoader

logger = logging.getLogger(__name__)

DEFAULT_GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
DEFAULT_OPENAI_BASE_URL = "https://api.openai.com/v1"
SIGNED_URL_TTL_SECONDS = 5 * 60


@dataclass(frozen=True)
class GenerationSettings:
    """Immutable settings snapshot shared by adapters and the studio app."""

    gemini_api_key: str = ""
    openai_api_key: str = ""
    gemini_base_url: str = DEFAULT_GEMINI_BASE_URL
    openai_base_url: str = DEFAULT_OPENAI_BASE_URL
    gemini_image_model: str = "gemini-3-pro-image-preview"
    openai_image_model: str = "gpt-image-1"
    veo_model: str = "veo-3.1-generate-preview"
    sora_model: str = "sora-2"
    http_timeout: float = 120.0
    video_poll_interval: float = 10.0
    video_max_polls: int = 60
    signed_url_ttl: int = SIGNED_URL_TTL_SECONDS
    supabase_url: str = ""
    supabase_service_key: str = ""
    log_level: str = "INFO"

    def with_overrides(self, **overrides: Any) -> "GenerationSettings":
        return replace(self, **overrides)


# settings field -> dotted key inside the config file
_FILE_KEYS = {
    "gemini_api_key": "providers.gemini.api_key",
    "gemini_base_url": "providers.gemini.base_url",
    "gemini_image_model": "providers.gemini.image_model",
    "veo_model": "providers.gemini.video_model",
    "openai_api_key": "providers.openai.api_key",
    "openai_base_url": "providers.openai.base_url",
    "openai_image_model": "providers.openai.image_model",
    "sora_model": "providers.openai.video_model",
    "http_timeout": "http.timeout",
    "video_poll_interval": "video.poll_interval",
    "video_max_polls": "video.max_polls",
    "signed_url_ttl": "storage.signed_url_ttl",
    "supabase_url": "storage.supabase_url",
    "supabase_service_key": "storage.supabase_service_key",
    "log_level": "log_level",
}

# settings field -> environment variables, first non-empty wins
_ENV_KEYS = {
    "gemini_api_key": ("GEMINI_API_KEY", "API_KEY"),
    "openai_api_key": ("OPENAI_API_KEY",),
    "gemini_base_url": ("GEMINI_BASE_URL",),
    "openai_base_url": ("OPENAI_BASE_URL",),
    "http_timeout": ("VIBECANVAS_HTTP_TIMEOUT",),
    "video_poll_interval": ("VIBECANVAS_POLL_INTERVAL",),
    "video_max_polls": ("VIBECANVAS_MAX_POLLS",),
    "signed_url_ttl": ("VIBECANVAS_SIGNED_URL_TTL",),
    "supabase_url": ("SUPABASE_URL",),
    "supabase_service_key": ("SUPABASE_SERVICE_ROLE_KEY", "SUPABASE_KEY"),
    "log_level": ("LOG_LEVEL",),
}


def _coerce(name: str, raw: Any) -> Any:
    field_type = {f.name: f.type for f in fields(GenerationSettings)}[name]
    if field_type == "float":
        return float(raw)
    if field_type == "int":
        return int(raw)
    return str(raw)


def load_settings(
    config_path: Optional[str] = None,
    *,
    env_file: Optional[str] = None,
) -> GenerationSettings:
    """
    Build a ``GenerationSettings`` from defaults, file and environment.

    Args:
        config_path: Explicit YAML/JSON file. Falls back to the
            ``VIBECANVAS_CONFIG`` environment variable when omitted.
        env_file: Explicit ``.env`` path; otherwise searched upwards from cwd.
    """
    ConfigLoader.load_env_file(env_file)

    values: Dict[str, Any] = {}
    path = config_path or os.getenv("VIBECANVAS_CONFIG")
    if path:
        file_config = ConfigLoader.load(path)
        for name, dotted in _FILE_KEYS.items():
            value = ConfigLoader.get_section(file_config, dotted)
            if value not in (None, ""):
                values[name] = _coerce(name, value)
        logger.info("Loaded settings file %s", path)

    for name, env_names in _ENV_KEYS.items():
        for env_name in env_names:
            raw = os.getenv(env_name)
            if raw:
                values[name] = _coerce(name, raw)
                break

    return GenerationSettings(**values)
