"""Readiness and enablement of agent calls.

A queued call becomes ready once every output reference in its inputs points
at a finished call and its ``__enable`` condition (if any) evaluates true.
All functions here are pure: they return new call lists and never raise for
graph content.
"""

from dataclasses import dataclass
from typing import Any, List, Optional, Sequence, Tuple, Union

from loguru import logger

from .models import AgentCall, CallState, find_call
from .references import Reference, iter_references, parse
from .resolver import UNRESOLVED, ResolutionContext, resolve_reference

COMBINATOR_OPS = ("and", "or")


@dataclass(frozen=True)
class EnableSingle:
    """Gate on the truthiness of one referenced value."""
    ref: Reference

    @property
    def negate(self) -> bool:
        return self.ref.negate


@dataclass(frozen=True)
class EnableCombinator:
    """AND/OR over single conditions; combinators do not nest."""
    op: str
    operands: Tuple[EnableSingle, ...]


EnableExpression = Union[EnableSingle, EnableCombinator]


def _parse_single(value: Any) -> EnableSingle:
    if isinstance(value, dict) and "op" in value:
        raise ValueError("Enable combinator operands must be single conditions")
    ref = parse(value)
    if ref is None:
        raise ValueError(f"Enable condition is not a reference: {value!r}")
    return EnableSingle(ref=ref)


def parse_enable(value: Any) -> Optional[EnableExpression]:
    """Parse an ``__enable`` value.

    Returns:
        None when there is no condition, otherwise the parsed expression

    Raises:
        ValueError: If the value is not a valid enable expression
    """
    if value is None:
        return None

    if isinstance(value, dict) and "op" in value:
        op = value.get("op")
        operands = value.get("operands")
        if op not in COMBINATOR_OPS:
            raise ValueError(f"Enable combinator op must be one of {COMBINATOR_OPS}, got {op!r}")
        if not isinstance(operands, list) or not operands:
            raise ValueError("Enable combinator needs a non-empty 'operands' list")
        return EnableCombinator(op=op, operands=tuple(_parse_single(item) for item in operands))

    return _parse_single(value)


def _evaluate_single(
    run_id: str,
    calls: Sequence[AgentCall],
    single: EnableSingle,
    context: Optional[ResolutionContext]
) -> Optional[bool]:
    """Evaluate one condition; None means it cannot be decided yet."""
    value = resolve_reference(run_id, calls, single.ref, context)
    if value is UNRESOLVED:
        return None
    result = bool(value)
    return not result if single.negate else result


def is_enabled(
    run_id: str,
    calls: Sequence[AgentCall],
    call: AgentCall,
    context: Optional[ResolutionContext] = None
) -> bool:
    """Evaluate a call's enable condition.

    A missing condition is true. An undecidable operand (its reference does not
    resolve yet) blocks the call, also inside an ``or``.
    """
    try:
        expression = parse_enable(call.enable_expression)
    except ValueError as e:
        logger.warning(f"[READINESS] Invalid enable expression on '{call.id}': {e}")
        return False

    if expression is None:
        return True

    if isinstance(expression, EnableSingle):
        return _evaluate_single(run_id, calls, expression, context) is True

    results = [_evaluate_single(run_id, calls, operand, context) for operand in expression.operands]
    if any(result is None for result in results):
        return False
    if expression.op == "and":
        return all(results)
    return any(results)


def all_data_refs_resolved(run_id: str, calls: Sequence[AgentCall], inputs: Any) -> bool:
    """True iff every output reference in ``inputs`` points at a finished call."""
    for ref in iter_references(inputs):
        if not ref.needs_finished_output:
            continue
        target = find_call(run_id, calls, ref.call_id)
        if target is None or target.state is not CallState.FINISHED:
            return False
    return True


def get_unresolved_ref_call_ids(run_id: str, calls: Sequence[AgentCall], inputs: Any) -> List[str]:
    """Call ids that output references in ``inputs`` wait on, without duplicates."""
    ids: List[str] = []
    for ref in iter_references(inputs):
        if not ref.needs_finished_output or ref.call_id in ids:
            continue
        target = find_call(run_id, calls, ref.call_id)
        if target is None or target.state is not CallState.FINISHED:
            ids.append(ref.call_id)
    return ids


def mark_ready_where_possible(
    run_id: str,
    calls: Sequence[AgentCall],
    context: Optional[ResolutionContext] = None
) -> List[AgentCall]:
    """Promote queued calls whose dependencies and condition are satisfied.

    Only queued calls change. Returns a new list.
    """
    updated: List[AgentCall] = []
    for call in calls:
        if (
            call.state is CallState.QUEUED
            and all_data_refs_resolved(run_id, calls, call.inputs)
            and is_enabled(run_id, calls, call, context)
        ):
            logger.debug(f"[READINESS] '{call.id}' is ready")
            updated.append(call.as_ready())
        else:
            updated.append(call)
    return updated


def reset_calls(
    run_id: str,
    calls: Sequence[AgentCall],
    context: Optional[ResolutionContext] = None
) -> List[AgentCall]:
    """Return every call to its initial state, then recompute readiness."""
    return mark_ready_where_possible(run_id, [call.as_initial() for call in calls], context)


def get_queued_reason(
    run_id: str,
    calls: Sequence[AgentCall],
    call: AgentCall,
    context: Optional[ResolutionContext] = None
) -> Optional[str]:
    """Short display text explaining why a queued call is not ready."""
    if call.state is not CallState.QUEUED:
        return None

    waiting = get_unresolved_ref_call_ids(run_id, calls, call.inputs)
    if waiting:
        failed = []
        missing = []
        for call_id in waiting:
            dep = find_call(run_id, calls, call_id)
            if dep is None:
                missing.append(call_id)
            elif dep.state is CallState.ERROR:
                failed.append(call_id)
        if failed:
            return f"Blocked: dependency {', '.join(failed)} failed"
        if missing:
            return f"Blocked: unknown call {', '.join(missing)}"
        return f"Waiting on {', '.join(waiting)}"

    try:
        parse_enable(call.enable_expression)
    except ValueError:
        return "Blocked: invalid condition"

    if not is_enabled(run_id, calls, call, context):
        return "Blocked by condition"

    return "Queued"
