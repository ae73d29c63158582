"""Agent call graphs: references, readiness, normalization and scheduling."""

from .references import Reference, RefNamespace, get_call_id, needs_finished_output, parse
from .models import AgentCall, CallState, Run, RunTab, find_call, get_short_call_id, has_references
from .resolver import UNRESOLVED, ResolutionContext, resolve_inputs, resolve_inputs_tracked
from .readiness import (
    all_data_refs_resolved,
    get_queued_reason,
    get_unresolved_ref_call_ids,
    is_enabled,
    mark_ready_where_possible,
    parse_enable,
    reset_calls,
)
from .normalize import DagEdge, get_dag_edges, normalize_plan
from .runs import (
    add_regenerated_tab,
    create_run,
    get_effective_tabs,
    get_final_output,
    get_selected_calls,
    get_selected_tab,
    is_stuck,
    make_context,
    reset_run,
    select_tab,
    tab_to_plan_and_history,
    update_call,
)
from .dag import DispatchFn, ExecutionResult, RunScheduler, run_all, run_call

__all__ = [
    # References
    "Reference",
    "RefNamespace",
    "get_call_id",
    "needs_finished_output",
    "parse",
    # Model
    "AgentCall",
    "CallState",
    "Run",
    "RunTab",
    "find_call",
    "get_short_call_id",
    "has_references",
    # Resolution
    "UNRESOLVED",
    "ResolutionContext",
    "resolve_inputs",
    "resolve_inputs_tracked",
    # Readiness
    "all_data_refs_resolved",
    "get_queued_reason",
    "get_unresolved_ref_call_ids",
    "is_enabled",
    "mark_ready_where_possible",
    "parse_enable",
    "reset_calls",
    # Normalization
    "DagEdge",
    "get_dag_edges",
    "normalize_plan",
    # Runs
    "add_regenerated_tab",
    "create_run",
    "get_effective_tabs",
    "get_final_output",
    "get_selected_calls",
    "get_selected_tab",
    "is_stuck",
    "make_context",
    "reset_run",
    "select_tab",
    "tab_to_plan_and_history",
    "update_call",
    # Scheduling
    "DispatchFn",
    "ExecutionResult",
    "RunScheduler",
    "run_all",
    "run_call",
]
