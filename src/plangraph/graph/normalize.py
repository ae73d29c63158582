"""Canonical ordering of orchestrator plans and DAG edge extraction."""

from dataclasses import dataclass
from typing import Any, Dict, List, Sequence, Set

from loguru import logger

from ..agents.models import OrchestratorPlan, PlanCall
from .models import AgentCall, find_call
from .references import RefNamespace, Reference, iter_references, rewrite_reference, walk_references


def _output_dependencies(call: PlanCall) -> List[str]:
    deps: List[str] = []
    for ref in iter_references(call.inputs):
        if ref.needs_finished_output and ref.call_id not in deps:
            deps.append(ref.call_id)
    return deps


def _topological_order(calls: Sequence[PlanCall]) -> List[int]:
    """Positions of ``calls`` in dependency order."""
    known = {call.id for call in calls}
    placed: Set[str] = set()
    order: List[int] = []
    remaining = list(range(len(calls)))

    while remaining:
        index = next(
            (
                i for i, position in enumerate(remaining)
                if all(dep not in known or dep in placed for dep in _output_dependencies(calls[position]))
            ),
            None
        )
        if index is None:
            logger.warning(
                f"[NORMALIZE] Cycle among calls {[calls[i].id for i in remaining]}, keeping original order"
            )
            order.extend(remaining)
            break

        position = remaining.pop(index)
        order.append(position)
        placed.add(calls[position].id)

    return order


def topological_sort_calls(calls: Sequence[PlanCall]) -> List[PlanCall]:
    """Order calls so every call comes after the calls whose outputs it reads.

    Ties are broken by original list order. Dependencies on ids outside the
    plan are ignored. If no remaining call can be placed (a cycle), the rest
    are appended in original order.
    """
    return [calls[position] for position in _topological_order(calls)]


def _rewrite_refs(value: Any, id_map: Dict[str, str]) -> Any:
    def rewrite(ref: Reference, original: Any) -> Any:
        if ref.call_id is None or ref.call_id not in id_map:
            return original
        return rewrite_reference(original, ref, id_map[ref.call_id])

    return walk_references(value, rewrite)


def normalize_plan(plan: OrchestratorPlan) -> OrchestratorPlan:
    """Renumber a plan's calls ``call_1..call_N`` in dependency order.

    Every reference (in inputs at any depth and in ``final_response``) is
    rewritten to the new ids, keeping its namespace and path. Calls are
    renumbered by position, so duplicate ids still get distinct new ids;
    references to a duplicated id point at its first occurrence. The input
    plan is not modified.
    """
    order = _topological_order(plan.calls)
    new_ids = {position: f"call_{rank + 1}" for rank, position in enumerate(order)}

    id_map: Dict[str, str] = {}
    for position, call in enumerate(plan.calls):
        if call.id in id_map:
            logger.warning(f"[NORMALIZE] Duplicate call id '{call.id}', references use its first occurrence")
            continue
        id_map[call.id] = new_ids[position]

    calls = [
        PlanCall(
            id=new_ids[position],
            agent_name=plan.calls[position].agent_name,
            inputs=_rewrite_refs(plan.calls[position].inputs, id_map)
        )
        for position in order
    ]

    final_response = plan.final_response
    if final_response is not None:
        final_response = _rewrite_refs(final_response, id_map)

    logger.debug(f"[NORMALIZE] Renamed calls: {id_map}")
    return OrchestratorPlan(calls=calls, final_response=final_response)


@dataclass(frozen=True)
class DagEdge:
    """Edge from a referenced call to the input that references it."""
    source_id: str
    source_handle: str
    target_id: str
    target_handle: str


def _source_handle(ref: Reference) -> str:
    if ref.namespace is RefNamespace.OUTPUTS:
        return ref.path[0] if ref.path and ref.path[0] else "result"
    return ref.namespace.value


def get_dag_edges(run_id: str, calls: Sequence[AgentCall]) -> List[DagEdge]:
    """Collect one edge per reference between calls of the same list.

    References to unknown calls and to the call itself are skipped.
    """
    edges: List[DagEdge] = []
    for call in calls:
        for input_key, value in call.inputs.items():
            for ref in iter_references(value):
                if ref.call_id is None or ref.namespace is RefNamespace.OPAQUE:
                    continue
                source = find_call(run_id, calls, ref.call_id)
                if source is None or source.id == call.id:
                    continue
                edges.append(DagEdge(
                    source_id=source.id,
                    source_handle=_source_handle(ref),
                    target_id=call.id,
                    target_handle=input_key
                ))
    return edges
