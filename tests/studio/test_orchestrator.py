from __future__ import annotations

import asyncio

import pytest

from canvas_inference.errors import (
    ContentPolicyRejectedError,
    CredentialInvalidError,
    ErrorKind,
    NotConfiguredError,
    ProviderFailureError,
    ValidationError,
)
from canvas_inference.generation.types import (
    CancellationToken,
    GenerationRequest,
    MediaKind,
    ProviderCapabilities,
    SourceImageRef,
)
from canvas_studio.generation.orchestrator import AggregateStatus, GenerationOrchestrator, RunMode
from canvas_studio.generation.state import GenerationStore
from canvas_studio.library.models import SourceType
from studio_fakes import (
    FailingRecordStore,
    ScriptedAdapter,
    make_registry,
    png_blob,
    wait_for_cancel,
)


def _run(orchestrator, request, mode, **kwargs):
    kwargs.setdefault("user_id", "user-1")
    return asyncio.run(orchestrator.run(request, mode, **kwargs))


def test_single_mode_persists_one_record_per_item(store):
    adapter = ScriptedAdapter("fake-image-a", count=2)
    orchestrator = GenerationOrchestrator(make_registry(adapter), store)

    result = _run(orchestrator, GenerationRequest(prompt="a cat", seed=7), RunMode.single("fake-image-a"))

    assert result.status is AggregateStatus.SUCCESS
    assert result.failed_count == 0
    assert len(result.records) == 2
    record = result.records[0]
    assert record.model == "fake-image-a"
    assert record.source_type is SourceType.GENERATE
    assert record.prompt_text_at_gen == "a cat"
    assert record.storage.bucket == "images"
    assert record.storage.path.startswith("user-1/")
    # Params are what the provider actually received; seed is unsupported here
    assert "seed" not in record.params
    assert record.meta["fake"] == "fake-image-a"
    assert len(store.blobs) == 2


def test_compare_mode_keeps_successes_when_some_providers_fail(store):
    registry = make_registry(
        ScriptedAdapter("fake-image-a"),
        ScriptedAdapter("fake-image-b", error=ProviderFailureError("upstream 500")),
        ScriptedAdapter("fake-video", kind="video"),
    )
    orchestrator = GenerationOrchestrator(registry, store)

    result = _run(orchestrator, GenerationRequest(prompt="x"), RunMode.compare_all(MediaKind.IMAGE))

    assert result.status is AggregateStatus.SUCCESS
    assert [r.model for r in result.records] == ["fake-image-a"]
    assert result.failed_count == 1
    assert result.summary(MediaKind.IMAGE) == "Generated with some errors. (1 failed)"


def test_compare_mode_only_runs_the_requested_media_kind(store):
    video = ScriptedAdapter("fake-video", kind="video")
    orchestrator = GenerationOrchestrator(make_registry(ScriptedAdapter("fake-image-a"), video), store)

    _run(orchestrator, GenerationRequest(prompt="x"), RunMode.compare_all(MediaKind.IMAGE))

    assert video.calls == []


def test_each_adapter_gets_its_own_effective_request(store):
    with_seed = ScriptedAdapter("seeded", capabilities=ProviderCapabilities(seed=True))
    without_seed = ScriptedAdapter("plain")
    orchestrator = GenerationOrchestrator(make_registry(with_seed, without_seed), store)
    request = GenerationRequest(prompt="x", seed=42)

    _run(orchestrator, request, RunMode.compare_all(MediaKind.IMAGE))

    assert with_seed.calls[0].seed == 42
    assert without_seed.calls[0].seed is None
    assert request.seed == 42


def test_total_failure_surfaces_most_specific_error(store):
    registry = make_registry(
        ScriptedAdapter("fake-image-a", error=ProviderFailureError("timeout")),
        ScriptedAdapter("fake-image-b", error=ContentPolicyRejectedError("blocked", reason="SAFETY")),
        ScriptedAdapter("fake-image-c", error=CredentialInvalidError("bad key")),
    )
    store_state = GenerationStore()
    orchestrator = GenerationOrchestrator(registry, store, store=store_state)

    result = _run(orchestrator, GenerationRequest(prompt="x"), RunMode.compare_all(MediaKind.IMAGE))

    assert result.status is AggregateStatus.TOTAL_FAILURE
    assert result.error.kind is ErrorKind.CONTENT_POLICY
    assert result.failed_count == 3
    assert result.records == []
    assert store_state.state.error == "blocked"
    assert not store_state.state.is_generating


def test_blank_prompt_and_missing_user_are_rejected_before_any_call(store):
    adapter = ScriptedAdapter("fake-image-a")
    orchestrator = GenerationOrchestrator(make_registry(adapter), store)

    with pytest.raises(ValidationError):
        _run(orchestrator, GenerationRequest(prompt="   "), RunMode.single("fake-image-a"))
    with pytest.raises(ValidationError):
        _run(orchestrator, GenerationRequest(prompt="x"), RunMode.single("fake-image-a"), user_id=None)
    assert adapter.calls == []


def test_unknown_and_unconfigured_providers_are_rejected(store):
    state = GenerationStore()
    registry = make_registry(ScriptedAdapter("no-key", configured=False))
    orchestrator = GenerationOrchestrator(registry, store, store=state)

    with pytest.raises(ValidationError):
        _run(orchestrator, GenerationRequest(prompt="x"), RunMode.single("missing"))
    with pytest.raises(NotConfiguredError):
        _run(orchestrator, GenerationRequest(prompt="x"), RunMode.single("no-key"))
    assert state.state.error == 'Model "No Key" is not configured.'


def test_compare_mode_without_providers_of_that_kind(store):
    orchestrator = GenerationOrchestrator(make_registry(ScriptedAdapter("fake-image-a")), store)

    with pytest.raises(ValidationError):
        _run(orchestrator, GenerationRequest(prompt="x"), RunMode.compare_all(MediaKind.VIDEO))


def test_compare_mode_reports_unconfigured_providers_as_failures(store):
    registry = make_registry(ScriptedAdapter("fake-image-a"), ScriptedAdapter("no-key", configured=False))
    orchestrator = GenerationOrchestrator(registry, store)

    result = _run(orchestrator, GenerationRequest(prompt="x"), RunMode.compare_all(MediaKind.IMAGE))

    assert result.status is AggregateStatus.SUCCESS
    assert result.failures[0].kind is ErrorKind.CREDENTIAL_UNAVAILABLE


def test_cancel_mid_round_persists_nothing(store):
    token = CancellationToken()
    state = GenerationStore()

    async def cancel_soon(context):
        asyncio.get_running_loop().call_later(0.02, token.cancel)
        await wait_for_cancel(context)

    registry = make_registry(
        ScriptedAdapter("fake-image-a"),
        ScriptedAdapter("slow", before=cancel_soon),
    )
    orchestrator = GenerationOrchestrator(registry, store, store=state)

    result = _run(
        orchestrator,
        GenerationRequest(prompt="x"),
        RunMode.compare_all(MediaKind.IMAGE),
        cancel_token=token,
    )

    assert result.status is AggregateStatus.CANCELLED
    assert result.records == []
    assert store.records == {}
    assert store.blobs == {}
    assert state.state.was_cancelled
    assert not state.state.is_generating


def test_store_cancel_trips_the_round_token(store):
    state = GenerationStore()
    orchestrator = GenerationOrchestrator(make_registry(ScriptedAdapter("slow", before=wait_for_cancel)), store, store=state)

    async def scenario():
        task = asyncio.ensure_future(
            orchestrator.run(GenerationRequest(prompt="x"), RunMode.single("slow"), user_id="user-1")
        )
        while not state.state.is_generating:
            await asyncio.sleep(0.005)
        assert state.cancel()
        return await task

    result = asyncio.run(scenario())

    assert result.status is AggregateStatus.CANCELLED
    assert state.state.error == "Generation cancelled."
    assert not state.cancel()


def test_concurrent_rounds_of_two_users_keep_separate_tokens(store):
    registry = make_registry(ScriptedAdapter("slow", before=wait_for_cancel), ScriptedAdapter("fast"))
    orchestrator = GenerationOrchestrator(registry, store)
    alice, bob = GenerationStore(), GenerationStore()

    async def scenario():
        slow = asyncio.ensure_future(
            orchestrator.run(GenerationRequest(prompt="a"), RunMode.single("slow"), user_id="alice", store=alice)
        )
        while not alice.state.is_generating:
            await asyncio.sleep(0.005)
        fast = await orchestrator.run(GenerationRequest(prompt="b"), RunMode.single("fast"), user_id="bob", store=bob)
        assert alice.state.is_generating
        assert not bob.cancel()
        assert alice.cancel()
        return await slow, fast

    slow_result, fast_result = asyncio.run(scenario())

    assert slow_result.status is AggregateStatus.CANCELLED
    assert fast_result.succeeded
    assert [r.user_id for r in bob.state.results] == ["bob"]
    assert alice.state.results == ()
    assert [r.user_id for r in store.records.values()] == ["bob"]


def test_record_write_failure_becomes_retrieval_failed_and_cleans_blob():
    failing = FailingRecordStore()
    orchestrator = GenerationOrchestrator(make_registry(ScriptedAdapter("fake-image-a")), failing)

    result = _run(orchestrator, GenerationRequest(prompt="x"), RunMode.single("fake-image-a"))

    assert result.status is AggregateStatus.TOTAL_FAILURE
    assert result.error.kind is ErrorKind.RETRIEVAL_FAILED
    assert failing.blobs == {}


def test_status_updates_reach_observer_and_store(store):
    seen = []
    state = GenerationStore()
    messages = []
    state.subscribe(lambda s: messages.append(s.status_message))
    orchestrator = GenerationOrchestrator(make_registry(ScriptedAdapter("fake-image-a")), store, store=state)

    _run(
        orchestrator,
        GenerationRequest(prompt="x"),
        RunMode.single("fake-image-a"),
        on_status=lambda pid, phase, text: seen.append((pid, phase.value, text)),
    )

    assert ("fake-image-a", "submitting", "Working...") in seen
    assert "Working..." in messages
    assert state.state.status_message == "Image generated successfully!"
    assert len(state.state.results) == 1


def test_source_image_is_read_through_persistence(store):
    received = []

    class SeedReader(ScriptedAdapter):
        async def _generate_once(self, request, context, api_key):
            received.append(await self.load_source_image(request, context))
            return await super()._generate_once(request, context, api_key)

    adapter = SeedReader("reader", capabilities=ProviderCapabilities(source_image=True))
    seed = png_blob("blue")
    locator = asyncio.run(store.upload_blob(seed, "user-1", "images"))
    request = GenerationRequest(prompt="x", source_image=SourceImageRef(path=locator.path))

    result = _run(GenerationOrchestrator(make_registry(adapter), store), request, RunMode.single("reader"))

    assert result.succeeded
    assert received[0] == seed
    assert result.records[0].params["sourceImage"] == {"path": locator.path, "bucket": "images"}
