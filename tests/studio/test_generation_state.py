from __future__ import annotations

import pytest

from canvas_studio.generation.state import (
    CANCELLED_MESSAGE,
    Action,
    ActionType,
    GenerationState,
    GenerationStore,
    GenerationStores,
    reduce,
)


def test_start_resets_previous_round():
    finished = GenerationState(results=("old",), error="boom", progress=100)

    state = reduce(finished, Action.start())

    assert state.is_generating
    assert state.results == ()
    assert state.error is None
    assert state.status_message == "Initializing..."


def test_progress_is_clamped():
    running = reduce(GenerationState(), Action.start())

    assert reduce(running, Action.progress(150)).progress == 100
    assert reduce(running, Action.progress(-5)).progress == 0


def test_late_status_after_round_end_is_ignored():
    done = reduce(reduce(GenerationState(), Action.start()), Action.success(["r1"], "Done"))

    assert reduce(done, Action.status("Downloading...")) is done
    assert reduce(done, Action.progress(10)) is done


def test_success_and_error_end_the_round():
    running = reduce(GenerationState(), Action.start())

    ok = reduce(running, Action.success(["r1", "r2"]))
    failed = reduce(running, Action.error("All generation attempts failed."))

    assert not ok.is_generating and ok.results == ("r1", "r2") and ok.progress == 100
    assert ok.status_message == "Done!"
    assert not failed.is_generating and failed.error == "All generation attempts failed."


def test_cancel_and_clear():
    cancelled = reduce(reduce(GenerationState(), Action.start()), Action.cancel())

    assert cancelled.was_cancelled
    assert cancelled.error == CANCELLED_MESSAGE
    cleared = reduce(cancelled, Action.clear())
    assert cleared.error is None and cleared.results == ()


def test_unknown_action_type_raises():
    with pytest.raises(ValueError):
        reduce(GenerationState(), Action("bogus"))


def test_store_notifies_listeners_and_cancels_once():
    store = GenerationStore()
    seen = []
    store.subscribe(lambda s: seen.append(s.is_generating))

    assert store.cancel() is False
    token = store.begin_round()
    assert store.cancel() is True
    assert token.cancelled
    assert store.cancel() is False
    assert seen == [True, False]
    assert Action.start().type is ActionType.START


def test_stores_are_created_once_per_user():
    stores = GenerationStores()

    alice = stores.for_user("alice")
    alice.begin_round()

    assert stores.for_user("alice") is alice
    assert "bob" not in stores
    assert stores.for_user("bob").state.is_generating is False
    assert "bob" in stores
