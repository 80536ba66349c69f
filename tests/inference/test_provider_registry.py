from __future__ import annotations

from canvas_inference.generation.key_gate import ApiKeyGate
from canvas_inference.generation.registry import ProviderRegistry
from canvas_inference.generation.types import MediaKind
from provider_fakes import FakeKeyHost

EXPECTED_PROVIDERS = {
    "gemini-3-pro-image-preview",
    "openai-latest-image",
    "veo-3.1-generate-preview",
    "sora-2-video",
}


def test_discovers_every_builtin_provider(settings):
    registry = ProviderRegistry(settings=settings)

    assert set(registry.list_providers()) == EXPECTED_PROVIDERS
    assert registry.get_provider_class("sora-2-video").__name__ == "SoraVideoAdapter"


def test_providers_are_grouped_by_media_kind(settings):
    registry = ProviderRegistry(settings=settings)

    images = {p.id for p in registry.providers_for_kind(MediaKind.IMAGE)}
    videos = {p.id for p in registry.providers_for_kind(MediaKind.VIDEO)}

    assert images == {"gemini-3-pro-image-preview", "openai-latest-image"}
    assert videos == {"veo-3.1-generate-preview", "sora-2-video"}


def test_provider_info_reflects_configuration(settings):
    registry = ProviderRegistry(settings=settings.with_overrides(openai_api_key=""))

    info = {entry["id"]: entry for entry in registry.get_all_providers_info()}

    assert info["gemini-3-pro-image-preview"]["configured"] is True
    assert info["openai-latest-image"]["configured"] is False
    assert info["sora-2-video"]["configured"] is False
    assert info["gemini-3-pro-image-preview"]["supports"]["img2img"] is True
    assert info["veo-3.1-generate-preview"]["type"] == "video"


def test_registered_key_gate_is_handed_to_its_adapter(settings):
    gate = ApiKeyGate(host=FakeKeyHost(), label="Gemini")
    registry = ProviderRegistry(
        settings=settings.with_overrides(gemini_api_key=""),
        key_gates={"veo-3.1-generate-preview": gate},
    )

    assert registry.get_provider("veo-3.1-generate-preview").key_gate is gate
    assert registry.get_provider("veo-3.1-generate-preview").is_configured()
    assert not registry.get_provider("gemini-3-pro-image-preview").is_configured()


def test_manual_registration_without_discovery(settings):
    registry = ProviderRegistry(settings=settings, discover=False)
    assert registry.list_providers() == []

    source = ProviderRegistry(settings=settings)
    registry.register_provider(source.get_provider("sora-2-video"))

    assert registry.list_providers() == ["sora-2-video"]
    assert registry.get_provider("unknown") is None


def test_reload_rediscovers(settings):
    registry = ProviderRegistry(settings=settings)
    registry.reload()

    assert set(registry.list_providers()) == EXPECTED_PROVIDERS
