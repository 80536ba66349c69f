from __future__ import annotations

import asyncio

import pytest

from canvas_inference.errors import CredentialUnavailableError
from canvas_inference.generation.key_gate import ApiKeyGate
from provider_fakes import FakeKeyHost


def test_ambient_key_is_returned_without_prompting():
    gate = ApiKeyGate(ambient_key="env-key")

    assert gate.is_configured()
    assert not gate.can_acquire
    assert asyncio.run(gate.ensure_available()) == "env-key"


def test_missing_key_without_host_fails_immediately():
    gate = ApiKeyGate(label="Gemini")

    assert not gate.is_configured()
    with pytest.raises(CredentialUnavailableError, match="Gemini"):
        asyncio.run(gate.ensure_available())


def test_host_is_prompted_once_when_nothing_selected():
    host = FakeKeyHost(keys=["picked-key"])
    gate = ApiKeyGate(host=host)

    assert asyncio.run(gate.ensure_available()) == "picked-key"
    assert asyncio.run(gate.ensure_available()) == "picked-key"
    assert host.open_calls == 1


def test_cancelled_picker_surfaces_credential_unavailable():
    gate = ApiKeyGate(host=FakeKeyHost(keys=[]))

    with pytest.raises(CredentialUnavailableError):
        asyncio.run(gate.ensure_available())


def test_acquire_forces_a_new_selection():
    host = FakeKeyHost(keys=["second"], selected="first")
    gate = ApiKeyGate(host=host)

    assert asyncio.run(gate.ensure_available()) == "first"
    assert asyncio.run(gate.acquire()) == "second"
    assert host.open_calls == 1


def test_acquire_without_host_is_not_possible():
    with pytest.raises(CredentialUnavailableError):
        asyncio.run(ApiKeyGate(ambient_key="env-key").acquire())
