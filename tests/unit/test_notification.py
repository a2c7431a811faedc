"""Unit tests for change events and per-turn batching."""

import pytest

from keystate import BatchData, ChangeRecord, State
from keystate.scheduling import pending_count, run_pending


@pytest.fixture
def state():
    state = State()
    state.add_to_state({"a": {"value": 0}, "b": {"value": 0}, "items": {"value_fn": list}})
    # Initialize everything so writes are reported
    state.get_state()
    return state


@pytest.mark.unit
@pytest.mark.state
def test_change_emits_key_and_generic_events(state, recorder):
    """A change emits '<name>_changed' then 'state_key_changed' with the same record"""
    recorder.listen(state, "a_changed", "state_key_changed")

    state.a = 1

    assert [name for name, _ in recorder.records] == ["a_changed", "state_key_changed"]
    [specific] = recorder.of("a_changed")
    [generic] = recorder.of("state_key_changed")
    assert specific is generic
    assert specific == ChangeRecord(key="a", new_val=1, prev_val=0)


@pytest.mark.unit
@pytest.mark.state
def test_unchanged_primitive_emits_nothing(state, recorder):
    """Writing the same primitive value again is not a change"""
    recorder.listen(state, "a_changed", "state_key_changed", "state_changed")

    state.a = 0
    run_pending()

    assert recorder.records == []
    assert pending_count() == 0


@pytest.mark.unit
@pytest.mark.state
@pytest.mark.edge_case
def test_primitive_type_change_is_a_change(state, recorder):
    """0 and False compare equal but are different values"""
    recorder.listen(state, "a_changed")

    state.a = False

    assert len(recorder.of("a_changed")) == 1


@pytest.mark.unit
@pytest.mark.state
def test_object_values_always_emit(state, recorder):
    """Replacing an object emits even when the new one is equal, or the same"""
    recorder.listen(state, "items_changed")
    items = state.items

    state.items = []
    state.items = state.items

    assert len(recorder.of("items_changed")) == 2
    assert recorder.of("items_changed")[0].prev_val is items


@pytest.mark.unit
@pytest.mark.state
def test_no_events_during_initialization(recorder):
    """Initial values and defaults never emit"""
    state = State()
    recorder.listen(state, "a_changed", "b_changed", "state_key_changed")
    state.add_to_state({"a": None, "b": {"value": 5}}, {"a": 1})

    assert state.get_state() == {"a": 1, "b": 5}
    run_pending()
    assert recorder.records == []


@pytest.mark.unit
@pytest.mark.state
def test_batch_is_deferred_to_next_turn(state, recorder):
    """state_changed waits for the end of the turn"""
    recorder.listen(state, "state_changed")

    state.a = 1

    assert recorder.of("state_changed") == []
    assert pending_count() == 1

    run_pending()

    [batch] = recorder.of("state_changed")
    assert isinstance(batch, BatchData)
    assert batch.changes == {"a": ChangeRecord("a", 1, 0)}


@pytest.mark.unit
@pytest.mark.state
def test_writes_in_one_turn_share_one_batch(state, recorder):
    """Several keys and several writes coalesce into a single event"""
    recorder.listen(state, "state_changed")

    state.a = 1
    state.b = 1
    state.a = 2
    state.a = 3

    assert pending_count() == 1
    run_pending()

    [batch] = recorder.of("state_changed")
    assert batch.changes == {
        "a": ChangeRecord("a", new_val=3, prev_val=0),
        "b": ChangeRecord("b", new_val=1, prev_val=0),
    }


@pytest.mark.unit
@pytest.mark.state
def test_writes_after_flush_start_a_new_batch(state, recorder):
    """Each turn gets its own state_changed event"""
    recorder.listen(state, "state_changed")

    state.a = 1
    run_pending()
    state.a = 2
    run_pending()

    first, second = recorder.of("state_changed")
    assert first.changes["a"] == ChangeRecord("a", 1, 0)
    assert second.changes["a"] == ChangeRecord("a", 2, 1)


@pytest.mark.unit
@pytest.mark.state
def test_batch_does_not_mutate_records_already_emitted(state, recorder):
    """Synchronous listeners keep the record they were given"""
    recorder.listen(state, "state_key_changed")

    state.a = 1
    state.a = 2
    run_pending()

    first, second = recorder.of("state_key_changed")
    assert first == ChangeRecord("a", 1, 0)
    assert second == ChangeRecord("a", 2, 1)


@pytest.mark.unit
@pytest.mark.state
def test_batches_are_per_instance(recorder):
    """Two instances changing in the same turn get one batch each"""
    first, second = State(), State()
    for state in (first, second):
        state.add_key_to_state("a", {"value": 0})
        state.a
    first_recorder = recorder.listen(first, "state_changed")

    first.a = 1
    second.a = 1

    assert pending_count() == 2
    run_pending()
    assert len(first_recorder.of("state_changed")) == 1


@pytest.mark.unit
@pytest.mark.state
def test_set_state_callback_runs_after_flush(state):
    """The set_state callback gets the batch once it's flushed"""
    received = []

    state.set_state({"a": 1, "b": 2}, received.append)
    assert received == []

    run_pending()
    state.set_state({"a": 5})
    run_pending()

    [batch] = received
    assert set(batch.changes) == {"a", "b"}


@pytest.mark.unit
@pytest.mark.state
def test_set_state_callback_ignored_without_changes(state):
    """Nothing changed, nothing scheduled, no callback registered"""
    received = []

    state.set_state({"a": 0}, received.append)

    assert state.listener_count("state_changed") == 0
    run_pending()
    assert received == []


@pytest.mark.unit
@pytest.mark.state
@pytest.mark.edge_case
def test_flush_after_dispose_is_a_no_op(state, recorder):
    """Disposing before the flush makes the scheduled flush harmless"""
    received = []
    state.on("state_changed", received.append)

    state.a = 1
    state.dispose()

    assert run_pending() == 1
    assert received == []
    assert state.is_disposed()


@pytest.mark.unit
@pytest.mark.state
@pytest.mark.edge_case
def test_disposed_state_rejects_key_access(state):
    """Keys are gone once the State is disposed"""
    from keystate import DisposedError

    state.dispose()

    with pytest.raises(DisposedError):
        state.a
    with pytest.raises(DisposedError):
        state.a = 1
    with pytest.raises(DisposedError):
        state.set_state({"a": 1})
    assert "disposed" in repr(state)


@pytest.mark.unit
@pytest.mark.state
def test_repr_shows_initialized_values_only():
    """Lazy keys aren't initialized by repr"""
    state = State()
    state.add_to_state({"a": {"value": 1}, "b": {"value": 2}})
    state.a

    assert repr(state) == "State(a=1, b=<lazy>)"
