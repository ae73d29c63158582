"""Agent registry, documentation and plan models."""

from .models import AgentArg, AgentDoc, AgentOutputField, OrchestratorPlan, PlanCall
from .plan import parse_plan, strip_code_fences, verify_plan
from .registry import Agent, AgentRegistry, FunctionAgent, agent

__all__ = [
    # Models
    "AgentArg",
    "AgentDoc",
    "AgentOutputField",
    "OrchestratorPlan",
    "PlanCall",
    # Plans
    "parse_plan",
    "strip_code_fences",
    "verify_plan",
    # Registry
    "Agent",
    "AgentRegistry",
    "FunctionAgent",
    "agent",
]
