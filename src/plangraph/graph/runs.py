"""Run lifecycle: creation, tabs, edits, reset, final output and stuck detection.

Every function returns a new Run; the input run is never modified. Operations
act on the call list of the selected tab (or the run's own call list when it
has no tabs).
"""

import time
import uuid
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from loguru import logger

from ..agents.models import OrchestratorPlan, PlanCall
from ..errors import CallNotFoundError
from ..settings import Settings
from .models import AgentCall, CallState, Run, RunTab, find_call, full_call_id, get_short_call_id
from .normalize import normalize_plan
from .readiness import mark_ready_where_possible, reset_calls
from .references import Reference, parse, rewrite_reference, walk_references
from .resolver import UNRESOLVED, ResolutionContext, resolve_reference


def _now_millis() -> int:
    return int(time.time() * 1000)


def make_context(run: Run, agent_docs: Optional[Mapping[str, Any]] = None) -> ResolutionContext:
    """Resolution context for a run: its task plus the given agent docs."""
    return ResolutionContext(agent_docs=agent_docs or {}, initial_task=run.initial_task)


def _calls_from_plan(run_id: str, plan: OrchestratorPlan) -> List[AgentCall]:
    return [
        AgentCall.create(full_call_id(run_id, call.id), call.agent_name, call.inputs)
        for call in plan.calls
    ]


def create_run(
    task: str,
    plan: OrchestratorPlan,
    run_id: Optional[str] = None,
    created_at: Optional[str] = None,
    normalize: bool = True,
    run_id_prefix: Optional[str] = None,
    settings: Optional[Settings] = None
) -> Run:
    """Create a run from a plan.

    Args:
        task: Natural-language task the plan answers
        plan: Orchestrator plan
        run_id: Run id (defaults to ``<prefix>-<epoch millis>``)
        created_at: ISO timestamp (defaults to now, UTC)
        normalize: Renumber the plan into dependency order first
        run_id_prefix: Prefix for generated run ids (defaults to
            ``settings.run_id_prefix``)
        settings: Settings to read defaults from (loaded from the
            environment if None)

    Returns:
        New run; call ids are stored as ``<run_id>-<plan call id>``
    """
    if normalize:
        plan = normalize_plan(plan)
    if run_id is None:
        if run_id_prefix is None:
            run_id_prefix = (settings or Settings()).run_id_prefix
        run_id = f"{run_id_prefix}-{_now_millis()}"
    run = Run(
        id=run_id,
        created_at=created_at or datetime.now(timezone.utc).isoformat(),
        initial_task=task,
        agent_calls=_calls_from_plan(run_id, plan),
        final_response_ref=plan.final_response
    )
    logger.info(f"[RUN] Created run '{run_id}' with {len(run.agent_calls)} calls")
    return run


# Tabs

def get_effective_tabs(run: Run) -> List[RunTab]:
    """The run's tabs, or a single implicit default tab when it has none."""
    if run.tabs:
        return list(run.tabs)
    return [
        RunTab(
            id=f"{run.id}-default",
            label="Original",
            agent_calls=run.agent_calls,
            final_response_ref=run.final_response_ref,
            final_output=run.final_output,
            final_error=run.final_error,
            dag_node_positions=run.dag_node_positions
        )
    ]


def get_selected_tab(run: Run) -> RunTab:
    tabs = get_effective_tabs(run)
    if run.selected_tab_id is not None:
        for tab in tabs:
            if tab.id == run.selected_tab_id:
                return tab
    return tabs[0]


def get_selected_calls(run: Run) -> List[AgentCall]:
    return list(get_selected_tab(run).agent_calls)


def get_final_response_ref(run: Run) -> Optional[str]:
    return get_selected_tab(run).final_response_ref


def _update_selected(run: Run, **changes: Any) -> Run:
    """Apply field changes to the selected tab, or to the run itself without tabs."""
    if run.tabs:
        selected_id = get_selected_tab(run).id
        return replace(run, tabs=[
            replace(tab, **changes) if tab.id == selected_id else tab
            for tab in run.tabs
        ])
    return replace(run, **changes)


def with_selected_calls(run: Run, calls: Sequence[AgentCall]) -> Run:
    """Replace the selected call list."""
    return _update_selected(run, agent_calls=list(calls))


def with_final_result(run: Run, final_output: Any = None, final_error: Optional[str] = None) -> Run:
    return _update_selected(run, final_output=final_output, final_error=final_error)


def select_tab(run: Run, tab_id: str) -> Run:
    """Select a tab by id.

    Raises:
        KeyError: If the run has no such tab
    """
    if not any(tab.id == tab_id for tab in get_effective_tabs(run)):
        raise KeyError(f"Tab '{tab_id}' not found in run '{run.id}'")
    return replace(run, selected_tab_id=tab_id)


def run_tab_from_plan(
    run_id: str,
    plan: OrchestratorPlan,
    label: str = "Regenerated",
    tab_id: Optional[str] = None
) -> RunTab:
    """Build a tab whose calls start in their initial state."""
    return RunTab(
        id=tab_id or f"{run_id}-tab-{uuid.uuid4().hex[:12]}",
        label=label,
        agent_calls=_calls_from_plan(run_id, plan),
        final_response_ref=plan.final_response
    )


def add_regenerated_tab(run: Run, plan: OrchestratorPlan, label: str = "Regenerated") -> Run:
    """Append a tab built from a regenerated plan and select it.

    A run without tabs first gets its current call list as an "Original" tab.
    """
    tab = run_tab_from_plan(run.id, normalize_plan(plan), label=label)
    tabs = get_effective_tabs(run) + [tab]
    logger.info(f"[RUN] Added tab '{tab.id}' to run '{run.id}'")
    return replace(run, tabs=tabs, selected_tab_id=tab.id)


def tab_to_plan_and_history(run_id: str, tab: RunTab) -> Tuple[OrchestratorPlan, List[Dict[str, Any]]]:
    """Convert a tab back into a short-id plan plus its execution history.

    This is what a planner needs to regenerate a graph from the current one.
    """
    full_to_short = {call.id: get_short_call_id(run_id, call.id) for call in tab.agent_calls}

    def to_short(ref: Reference, original: Any) -> Any:
        if ref.call_id is None:
            return original
        return rewrite_reference(original, ref, full_to_short.get(ref.call_id, ref.call_id))

    plan = OrchestratorPlan(
        calls=[
            PlanCall(
                id=full_to_short[call.id],
                agent_name=call.agent_name,
                inputs=walk_references(call.inputs, to_short)
            )
            for call in tab.agent_calls
        ],
        final_response=(
            walk_references(tab.final_response_ref, to_short)
            if tab.final_response_ref is not None else None
        )
    )
    history = []
    for call in tab.agent_calls:
        entry: Dict[str, Any] = {
            "call_id": full_to_short[call.id],
            "agent_name": call.agent_name,
            "state": call.state.value,
            "inputs": call.inputs,
        }
        if call.outputs is not None:
            entry["outputs"] = call.outputs
        if call.error_message is not None:
            entry["error_message"] = call.error_message
        history.append(entry)
    return plan, history


# Edits and reset

def update_call(
    run: Run,
    call_id: str,
    inputs: Optional[Dict[str, Any]] = None,
    outputs: Optional[Dict[str, Any]] = None,
    replace_inputs: bool = False,
    context: Optional[ResolutionContext] = None
) -> Run:
    """Edit a call's inputs and/or outputs, then recompute readiness.

    Edits to a running call are ignored. Outputs can only be edited on a
    finished call.

    Raises:
        CallNotFoundError: If the call is not in the selected tab
    """
    calls = get_selected_calls(run)
    target = find_call(run.id, calls, call_id)
    if target is None:
        raise CallNotFoundError(call_id)

    if target.state is CallState.RUNNING:
        logger.warning(f"[RUN] Ignoring edit to running call '{target.id}'")
        return run

    updated = target
    if inputs is not None:
        new_inputs = dict(inputs) if replace_inputs else {**target.inputs, **inputs}
        updated = replace(updated, inputs=new_inputs)
    if outputs is not None:
        if target.state is CallState.FINISHED:
            updated = replace(updated, outputs=dict(outputs))
        else:
            logger.warning(f"[RUN] Ignoring output edit on '{target.id}' in state {target.state.value}")

    calls = [updated if call.id == target.id else call for call in calls]
    return with_selected_calls(run, mark_ready_where_possible(run.id, calls, context or make_context(run)))


def reset_run(run: Run, context: Optional[ResolutionContext] = None) -> Run:
    """Reset the selected calls to their initial states and clear the final result."""
    calls = reset_calls(run.id, get_selected_calls(run), context or make_context(run))
    logger.info(f"[RUN] Reset run '{run.id}'")
    return with_final_result(with_selected_calls(run, calls))


# Final output and stuck detection

def get_final_output(run: Run, context: Optional[ResolutionContext] = None) -> Any:
    """Resolved value of the final response reference, or None."""
    ref_value = get_final_response_ref(run)
    if ref_value is None:
        return None
    ref = parse(ref_value)
    if ref is None:
        return None
    value = resolve_reference(run.id, get_selected_calls(run), ref, context or make_context(run))
    return None if value is UNRESOLVED else value


def is_stuck(run: Run, context: Optional[ResolutionContext] = None) -> bool:
    """True iff no call can progress, some call is queued or failed, and the
    final response (when the run has one) does not resolve.
    """
    calls = get_selected_calls(run)
    if any(call.state in (CallState.READY, CallState.RUNNING) for call in calls):
        return False
    if not any(call.state in (CallState.QUEUED, CallState.ERROR) for call in calls):
        return False

    ref_value = get_final_response_ref(run)
    if ref_value is None:
        return True
    ref = parse(ref_value)
    if ref is None:
        return True
    value = resolve_reference(run.id, calls, ref, context or make_context(run))
    return value is UNRESOLVED
