"""Tests for orchestrator plan parsing and verification."""

import json

import pytest

from plangraph.agents import OrchestratorPlan, parse_plan, strip_code_fences, verify_plan
from plangraph.errors import PlanValidationError


VALID = {
    "calls": [
        {"id": "call_1", "agent_name": "Fetch", "inputs": {"q": "rows"}},
        {"id": "call_2", "agent_name": "Summarize", "inputs": {
            "rows": {"ref": "call_1.outputs.rows"},
            "task": "task",
            "__enable": {"op": "or", "operands": [{"ref": "call_1.outputs.ok"}]},
        }},
    ],
    "final_response": "call_2.outputs.summary",
}


def test_parse_plan_from_fenced_json():
    raw = "```json\n" + json.dumps(VALID) + "\n```"

    plan = parse_plan(raw, allowed_agent_names=["Fetch", "Summarize"])

    assert isinstance(plan, OrchestratorPlan)
    assert [call.id for call in plan.calls] == ["call_1", "call_2"]
    assert plan.final_response == "call_2.outputs.summary"


def test_parse_plan_accepts_dicts_and_plans():
    plan = parse_plan(VALID)

    assert parse_plan(plan) is plan


def test_strip_code_fences():
    assert strip_code_fences('```\n{"a": 1}\n```') == '{"a": 1}'
    assert strip_code_fences('  {"a": 1} ') == '{"a": 1}'


@pytest.mark.parametrize("raw, message", [
    ("not json", "Orchestrator returned invalid JSON"),
    ("[1, 2]", "Orchestrator plan must be a JSON object"),
    ('{"final_response": null}', "Orchestrator plan must have a 'calls' property"),
    ('{"calls": [{"id": "call_1"}]}', "Orchestrator plan is malformed"),
])
def test_parse_plan_rejects_bad_shapes(raw, message):
    with pytest.raises(PlanValidationError) as exc_info:
        parse_plan(raw)

    assert message in str(exc_info.value)


def _plan(calls, final_response=None):
    return OrchestratorPlan.model_validate({"calls": calls, "final_response": final_response})


def test_verify_rejects_disallowed_agent():
    with pytest.raises(PlanValidationError, match='agent_name "Other" is not in the allowed list: Fetch'):
        verify_plan(_plan([{"id": "call_1", "agent_name": "Other"}]), allowed_agent_names=["Fetch"])


def test_verify_rejects_empty_and_duplicate_ids():
    with pytest.raises(PlanValidationError, match='non-empty string "id"'):
        verify_plan(_plan([{"id": " ", "agent_name": "A"}]))
    with pytest.raises(PlanValidationError, match='duplicate call id "call_1"'):
        verify_plan(_plan([{"id": "call_1", "agent_name": "A"}, {"id": "call_1", "agent_name": "B"}]))


def test_verify_rejects_unknown_and_malformed_refs():
    with pytest.raises(PlanValidationError, match='references "call_9"'):
        verify_plan(_plan([{"id": "call_1", "agent_name": "A", "inputs": {"x": "call_9.outputs"}}]))
    with pytest.raises(PlanValidationError, match='ref "nonsense" must match'):
        verify_plan(_plan([{"id": "call_1", "agent_name": "A", "inputs": {"x": {"ref": "nonsense"}}}]))


def test_verify_rejects_invalid_enable_and_final_response():
    with pytest.raises(PlanValidationError, match="__enable"):
        verify_plan(_plan([
            {"id": "call_1", "agent_name": "A"},
            {"id": "call_2", "agent_name": "B", "inputs": {"__enable": {"op": "xor", "operands": []}}},
        ]))
    with pytest.raises(PlanValidationError, match="final_response"):
        verify_plan(_plan([{"id": "call_1", "agent_name": "A"}], final_response="call_2.outputs.x"))


def test_verify_allows_task_and_literal_strings():
    plan = _plan([{"id": "call_1", "agent_name": "A", "inputs": {"t": "task", "note": "see call_1 later"}}])

    assert verify_plan(plan) is plan
