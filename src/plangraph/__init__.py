"""plangraph: run planner-produced agent call graphs."""

from .agents import AgentDoc, AgentRegistry, OrchestratorPlan, parse_plan
from .graph import (
    AgentCall,
    CallState,
    Run,
    RunScheduler,
    create_run,
    is_stuck,
    normalize_plan,
    resolve_inputs,
    run_all,
)
from .settings import Settings

__version__ = "0.1.0"

__all__ = [
    "AgentCall",
    "AgentDoc",
    "AgentRegistry",
    "CallState",
    "OrchestratorPlan",
    "Run",
    "RunScheduler",
    "Settings",
    "create_run",
    "is_stuck",
    "normalize_plan",
    "parse_plan",
    "resolve_inputs",
    "run_all",
]
