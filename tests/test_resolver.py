"""Tests for reference resolution."""

import copy

from conftest import finished, make_call
from plangraph.agents import AgentDoc
from plangraph.graph import CallState, ResolutionContext, resolve_inputs, resolve_inputs_tracked


def test_output_ref_resolves_once_target_finished():
    calls = [
        finished("call_1", {"y": 5}),
        make_call("call_2", {"x": {"ref": "call_1.outputs.y"}}, agent_name="B"),
    ]

    assert resolve_inputs("r", calls, calls[1].inputs) == {"x": 5}


def test_output_ref_left_in_place_until_finished():
    calls = [
        make_call("call_1", state=CallState.RUNNING),
        make_call("call_2", {"x": {"ref": "call_1.outputs.y"}}),
    ]

    resolution = resolve_inputs_tracked("r", calls, calls[1].inputs)

    assert resolution.value == {"x": {"ref": "call_1.outputs.y"}}
    assert not resolution.complete
    assert resolution.unresolved[0].call_id == "call_1"


def test_empty_path_substitutes_whole_outputs():
    calls = [finished("call_1", {"a": 1, "b": [2, 3]})]

    assert resolve_inputs("r", calls, {"all": "call_1.outputs"}) == {"all": {"a": 1, "b": [2, 3]}}


def test_nested_structures_and_list_indexes():
    calls = [finished("call_1", {"rows": [{"id": 7}, {"id": 8}]})]
    inputs = {"items": ["call_1.outputs.rows.1.id", {"first": {"ref": "call_1.outputs.rows.0"}}], "n": 3}

    assert resolve_inputs("r", calls, inputs) == {"items": [8, {"first": {"id": 7}}], "n": 3}


def test_missing_path_segment_leaves_original():
    calls = [finished("call_1", {"y": 5})]

    assert resolve_inputs("r", calls, {"x": "call_1.outputs.z"}) == {"x": "call_1.outputs.z"}


def test_explicit_null_output_resolves_to_none():
    calls = [finished("call_1", {"y": None})]

    assert resolve_inputs("r", calls, {"x": "call_1.outputs.y"}) == {"x": None}


def test_run_prefixed_call_ids_are_found():
    calls = [
        finished("run-9-call_1", {"y": "hi"}),
        make_call("run-9-call_2", {"x": "call_1.outputs.y"}),
    ]

    assert resolve_inputs("run-9", calls, calls[1].inputs) == {"x": "hi"}
    # a call id from another run still matches on its call_N suffix
    assert resolve_inputs("run-other", calls, {"x": "call_1.outputs.y"}) == {"x": "hi"}


def test_inputs_ref_resolves_chains():
    calls = [
        finished("call_1", {"y": 5}),
        make_call("call_2", {"q": {"ref": "call_1.outputs.y"}, "label": "two"}, state=CallState.QUEUED),
        make_call("call_3", {"copied": "call_2.inputs.q", "all": "call_2.inputs"}),
    ]

    resolved = resolve_inputs("r", calls, calls[2].inputs)

    assert resolved == {"copied": 5, "all": {"q": 5, "label": "two"}}


def test_inputs_ref_left_unresolved_while_chain_is_waiting():
    calls = [
        make_call("call_1", state=CallState.READY),
        make_call("call_2", {"q": {"ref": "call_1.outputs.y"}}),
    ]

    resolution = resolve_inputs_tracked("r", calls, {"copied": "call_2.inputs.q"})

    assert resolution.value == {"copied": "call_2.inputs.q"}
    assert not resolution.complete


def test_inputs_ref_cycle_does_not_recurse_forever():
    calls = [
        make_call("call_1", {"a": "call_2.inputs.b"}),
        make_call("call_2", {"b": "call_1.inputs.a"}),
    ]

    assert resolve_inputs("r", calls, {"x": "call_1.inputs.a"}) == {"x": "call_1.inputs.a"}


def test_agent_definition_and_task_refs():
    doc = AgentDoc(name="B", purpose="Does B things")
    context = ResolutionContext(agent_docs={"B": doc}, initial_task="count the rows")
    calls = [make_call("call_1", agent_name="B", state=CallState.QUEUED)]

    resolved = resolve_inputs("r", calls, {"doc": "call_1.agent_definition", "task": "task"}, context)

    assert resolved["doc"] == {"name": "B", "purpose": "Does B things", "args": [], "output_schema": {}}
    assert resolved["task"] == "count the rows"


def test_missing_agent_doc_and_unknown_call_are_left_unresolved():
    calls = [make_call("call_1", agent_name="Nope")]
    inputs = {"doc": "call_1.agent_definition", "other": "call_9.outputs.x", "task": "task"}

    assert resolve_inputs("r", calls, inputs) == inputs


def test_resolution_is_idempotent_and_does_not_mutate():
    calls = [finished("call_1", {"y": {"deep": [1, 2]}}), make_call("call_2", state=CallState.QUEUED)]
    inputs = {"x": {"ref": "call_1.outputs.y"}, "w": "call_2.outputs.z", "lit": [1, {"k": "v"}]}
    snapshot = copy.deepcopy(inputs)
    calls_before = list(calls)

    once = resolve_inputs("r", calls, inputs)
    twice = resolve_inputs("r", calls, once)

    assert once == twice
    assert inputs == snapshot
    assert calls == calls_before
