"""Parsing and verification of orchestrator plans."""

import json
import re
from typing import Any, Iterable, Optional, Set, Union

from loguru import logger
from pydantic import ValidationError

from ..errors import PlanValidationError
from ..graph.models import ENABLE_KEY
from ..graph.readiness import parse_enable
from ..graph.references import RefNamespace, iter_references, parse
from .models import OrchestratorPlan

_FENCE_PATTERN = re.compile(r"^```\w*\n?|\n?```$")


def strip_code_fences(text: str) -> str:
    """Remove a surrounding Markdown code fence from model output."""
    return _FENCE_PATTERN.sub("", text.strip()).strip()


def verify_plan(plan: OrchestratorPlan, allowed_agent_names: Optional[Iterable[str]] = None) -> OrchestratorPlan:
    """Check a plan's ids, agent names and references.

    Args:
        plan: Plan to verify
        allowed_agent_names: Agent names the plan may use (None allows any)

    Returns:
        The same plan

    Raises:
        PlanValidationError: If the plan is malformed
    """
    allowed: Optional[Set[str]] = set(allowed_agent_names) if allowed_agent_names is not None else None
    call_ids: Set[str] = set()

    for i, call in enumerate(plan.calls):
        if not call.id.strip():
            raise PlanValidationError(f'Orchestrator plan calls[{i}] must have a non-empty string "id"')
        if not call.agent_name.strip():
            raise PlanValidationError(f'Orchestrator plan calls[{i}] must have a non-empty string "agent_name"')
        if allowed is not None and call.agent_name not in allowed:
            raise PlanValidationError(
                f'Orchestrator plan calls[{i}] agent_name "{call.agent_name}" is not in the allowed list: '
                f'{", ".join(sorted(allowed))}'
            )
        if call.id in call_ids:
            raise PlanValidationError(f'Orchestrator plan duplicate call id "{call.id}"')
        call_ids.add(call.id)

    for i, call in enumerate(plan.calls):
        for key, value in call.inputs.items():
            for ref in iter_references(value):
                if ref.namespace is RefNamespace.TASK:
                    continue
                if ref.namespace is RefNamespace.OPAQUE:
                    raise PlanValidationError(
                        f'Orchestrator plan calls[{i}] inputs.{key} ref "{ref.raw}" must match '
                        f'"call_id.outputs[.field]", "call_id.inputs[.field]" or "call_id.agent_definition"'
                    )
                if ref.call_id not in call_ids:
                    raise PlanValidationError(
                        f'Orchestrator plan calls[{i}] inputs.{key} references "{ref.call_id}" which is not '
                        f'a call id in this plan. Call ids: {", ".join(sorted(call_ids))}'
                    )
        try:
            parse_enable(call.inputs.get(ENABLE_KEY))
        except ValueError as e:
            raise PlanValidationError(f"Orchestrator plan calls[{i}] inputs.{ENABLE_KEY}: {e}") from e

    if plan.final_response is not None:
        ref = parse(plan.final_response)
        if ref is None or ref.call_id not in call_ids:
            raise PlanValidationError(
                f'Orchestrator plan final_response "{plan.final_response}" must reference a call in this plan'
            )

    return plan


def parse_plan(
    raw: Union[str, dict, OrchestratorPlan],
    allowed_agent_names: Optional[Iterable[str]] = None
) -> OrchestratorPlan:
    """Parse planner output into a verified OrchestratorPlan.

    Args:
        raw: JSON text (optionally fenced), a decoded object, or a plan
        allowed_agent_names: Agent names the plan may use (None allows any)

    Returns:
        Verified plan

    Raises:
        PlanValidationError: If the output is not a valid plan
    """
    data: Any = raw
    if isinstance(raw, str):
        try:
            data = json.loads(strip_code_fences(raw))
        except json.JSONDecodeError as e:
            raise PlanValidationError(f"Orchestrator returned invalid JSON: {e}") from e

    if isinstance(data, OrchestratorPlan):
        plan = data
    else:
        if not isinstance(data, dict):
            raise PlanValidationError("Orchestrator plan must be a JSON object")
        if "calls" not in data:
            raise PlanValidationError("Orchestrator plan must have a 'calls' property")
        try:
            plan = OrchestratorPlan.model_validate(data)
        except ValidationError as e:
            raise PlanValidationError(f"Orchestrator plan is malformed: {e}") from e

    verify_plan(plan, allowed_agent_names)
    logger.debug(f"[PLAN] Parsed plan with {len(plan.calls)} calls")
    return plan
