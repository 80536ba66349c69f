"""Provider registry: discovery and lookup of image/video adapters."""

from __future__ import annotations

import importlib
import inspect
import logging
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Type

from ..config.settings import GenerationSettings
from .base_generator import BaseProviderAdapter
from .key_gate import ApiKeyGate
from .types import MediaKind

logger = logging.getLogger(__name__)

_PACKAGE_ROOTS = (
    "canvas_inference.generation.image_generators.generators",
    "canvas_inference.generation.video_generators.generators",
)


class ProviderRegistry:
    """
    Keeps one adapter instance per provider id.

    Adapters are discovered from ``<package_root>/<name>/generator.py``; every
    concrete ``BaseProviderAdapter`` subclass defined in such a module is
    instantiated with the shared settings and, when given, the key gate
    registered for its ``PROVIDER_ID``.
    """

    def __init__(
        self,
        settings: Optional[GenerationSettings] = None,
        key_gates: Optional[Mapping[str, ApiKeyGate]] = None,
        package_roots: tuple = _PACKAGE_ROOTS,
        discover: bool = True,
    ):
        self.settings = settings or GenerationSettings()
        self.key_gates: Dict[str, ApiKeyGate] = dict(key_gates or {})
        self.package_roots = package_roots
        self._providers: Dict[str, BaseProviderAdapter] = {}
        self._provider_classes: Dict[str, Type[BaseProviderAdapter]] = {}
        if discover:
            self._discover_providers()

    def _discover_providers(self) -> None:
        for package_root in self.package_roots:
            try:
                package = importlib.import_module(package_root)
            except ImportError as e:
                logger.warning("Provider package %s could not be imported: %s", package_root, e)
                continue
            package_dir = Path(package.__file__).parent
            for item in sorted(package_dir.iterdir()):
                if not item.is_dir() or item.name.startswith(("_", ".")):
                    continue
                if not (item / "generator.py").exists():
                    continue
                try:
                    self._load_from_module(f"{package_root}.{item.name}.generator")
                except Exception as e:
                    logger.warning("Failed to load provider from %s: %s", item.name, e)

    def _load_from_module(self, module_name: str) -> None:
        module = importlib.import_module(module_name)
        for _, obj in inspect.getmembers(module, inspect.isclass):
            if (
                issubclass(obj, BaseProviderAdapter)
                and not inspect.isabstract(obj)
                and obj.__module__ == module.__name__
            ):
                adapter = obj(self.settings, key_gate=self.key_gates.get(obj.PROVIDER_ID))
                self.register_provider(adapter)
                logger.debug("Registered provider %s from %s", adapter.id, module_name)

    def register_provider(self, adapter: BaseProviderAdapter) -> None:
        if adapter.id in self._providers:
            logger.warning("Provider '%s' registered twice, replacing", adapter.id)
        self._providers[adapter.id] = adapter
        self._provider_classes[adapter.id] = type(adapter)

    def get_provider(self, provider_id: str) -> Optional[BaseProviderAdapter]:
        return self._providers.get(provider_id)

    def get_provider_class(self, provider_id: str) -> Optional[Type[BaseProviderAdapter]]:
        return self._provider_classes.get(provider_id)

    def list_providers(self) -> List[str]:
        return list(self._providers.keys())

    def providers_for_kind(self, media_kind: MediaKind) -> List[BaseProviderAdapter]:
        return [p for p in self._providers.values() if p.media_kind == media_kind]

    def get_all_providers_info(self) -> List[Dict[str, Any]]:
        return [provider.get_info() for provider in self._providers.values()]

    def reload(self) -> None:
        self._providers.clear()
        self._provider_classes.clear()
        self._discover_providers()


_registry: Optional[ProviderRegistry] = None


def get_provider_registry(
    settings: Optional[GenerationSettings] = None,
    key_gates: Optional[Mapping[str, ApiKeyGate]] = None,
) -> ProviderRegistry:
    """Get or create the process-wide registry (arguments only apply on first call)."""
    global _registry
    if _registry is None:
        _registry = ProviderRegistry(settings=settings, key_gates=key_gates)
    return _registry
