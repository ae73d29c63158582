"""Agent documentation and orchestrator plan models."""

from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field


class AgentArg(BaseModel):
    """One declared input argument of an agent."""

    name: str
    format: str
    purpose: str
    optional: bool = False


class AgentOutputField(BaseModel):
    """One declared output field of an agent."""

    description: str
    type: str


class AgentDoc(BaseModel):
    """Read-only documentation of an agent, as shown to planners and users."""

    name: str
    purpose: str
    args: List[AgentArg] = Field(default_factory=list)
    output_schema: Dict[str, AgentOutputField] = Field(default_factory=dict)


class PlanCall(BaseModel):
    """One call in an orchestrator plan."""

    id: str
    agent_name: str
    inputs: Dict[str, Any] = Field(default_factory=dict)


class OrchestratorPlan(BaseModel):
    """A set of agent calls whose references form a DAG."""

    calls: List[PlanCall] = Field(default_factory=list)
    final_response: Optional[str] = Field(
        default=None,
        description="Reference to the call output holding the run's final answer"
    )
