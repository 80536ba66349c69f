# Main Flask application for the VibeCanvas studio backend

import logging
from dataclasses import dataclass
from typing import Optional

from flask import Flask
from flask_cors import CORS

from canvas_inference.config import GenerationSettings, load_settings
from canvas_inference.generation.registry import ProviderRegistry

from .async_runner import AsyncRunner
from .generation.orchestrator import GenerationOrchestrator
from .generation.routes import create_generation_blueprint
from .generation.state import GenerationStores
from .library.routes import create_library_blueprint
from .library.service import LibraryService
from .library.signed_url import SignedUrlCache
from .library.storage import InMemoryMediaStore, MediaPersistence
from .library.supabase_store import SupabaseMediaStore
from .templates.routes import create_templates_blueprint
from .templates.service import TemplateService

logger = logging.getLogger(__name__)


@dataclass
class StudioContext:
    """Application state shared by the blueprints"""
    settings: GenerationSettings
    registry: ProviderRegistry
    persistence: MediaPersistence
    stores: GenerationStores
    orchestrator: GenerationOrchestrator
    library: LibraryService
    templates: TemplateService
    runner: AsyncRunner


def build_persistence(settings: GenerationSettings) -> MediaPersistence:
    if settings.supabase_url and settings.supabase_service_key:
        logger.info("Using Supabase persistence at %s", settings.supabase_url)
        return SupabaseMediaStore(settings.supabase_url, settings.supabase_service_key, timeout=settings.http_timeout)
    logger.warning("Supabase is not configured; library data is kept in memory only")
    return InMemoryMediaStore()


def build_studio(
    settings: Optional[GenerationSettings] = None,
    registry: Optional[ProviderRegistry] = None,
    persistence: Optional[MediaPersistence] = None,
) -> StudioContext:
    settings = settings or load_settings()
    registry = registry or ProviderRegistry(settings=settings)
    persistence = persistence or build_persistence(settings)
    return StudioContext(
        settings=settings,
        registry=registry,
        persistence=persistence,
        stores=GenerationStores(),
        orchestrator=GenerationOrchestrator(registry, persistence),
        library=LibraryService(
            persistence,
            SignedUrlCache(persistence, ttl_seconds=settings.signed_url_ttl),
            registry=registry,
        ),
        templates=TemplateService(persistence, registry=registry),
        runner=AsyncRunner(),
    )


def create_app(config=None, studio: Optional[StudioContext] = None):
    """Create and configure the Flask application"""
    app = Flask(__name__)

    # Enable CORS for frontend integration
    CORS(app)

    # Load configuration if provided
    if config:
        app.config.update(config)

    studio = studio or build_studio()
    app.extensions['canvas_studio'] = studio
    logger.info("Registered providers: %s", ", ".join(studio.registry.list_providers()) or "none")

    # Register blueprints
    app.register_blueprint(create_generation_blueprint(studio))
    app.register_blueprint(create_library_blueprint(studio))
    app.register_blueprint(create_templates_blueprint(studio))

    return app
