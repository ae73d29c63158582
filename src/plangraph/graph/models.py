"""Data model for agent call graphs.

Calls, tabs and runs are frozen dataclasses. Every state change produces a
new object (``dataclasses.replace``) and every call list update produces a new
list, so a snapshot handed to a caller never changes underneath it.
"""

import re
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from .references import iter_references

ENABLE_KEY = "__enable"

_SHORT_ID_PATTERN = re.compile(r"^call_\d+$")


class CallState(str, Enum):
    """State of an agent call."""
    QUEUED = "queued"
    READY = "ready"
    RUNNING = "running"
    FINISHED = "finished"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (CallState.FINISHED, CallState.ERROR)


def has_references(value: Any) -> bool:
    """Check whether a JSON-like value contains a reference at any depth."""
    return next(iter_references(value), None) is not None


def initial_state_for(inputs: Dict[str, Any]) -> CallState:
    """State of a freshly created call: queued iff its inputs hold a reference."""
    return CallState.QUEUED if has_references(inputs) else CallState.READY


@dataclass(frozen=True)
class AgentCall:
    """One node of the call graph."""
    id: str
    agent_name: str
    state: CallState
    inputs: Dict[str, Any] = field(default_factory=dict)
    outputs: Optional[Dict[str, Any]] = None
    error_message: Optional[str] = None

    @classmethod
    def create(cls, call_id: str, agent_name: str, inputs: Optional[Dict[str, Any]] = None) -> "AgentCall":
        """Create a call in its initial state."""
        inputs = dict(inputs or {})
        return cls(id=call_id, agent_name=agent_name, state=initial_state_for(inputs), inputs=inputs)

    @property
    def enable_expression(self) -> Any:
        return self.inputs.get(ENABLE_KEY)

    def as_ready(self) -> "AgentCall":
        return replace(self, state=CallState.READY)

    def as_running(self) -> "AgentCall":
        return replace(self, state=CallState.RUNNING, outputs=None, error_message=None)

    def as_finished(self, outputs: Dict[str, Any]) -> "AgentCall":
        return replace(self, state=CallState.FINISHED, outputs=dict(outputs), error_message=None)

    def as_failed(self, message: str) -> "AgentCall":
        return replace(self, state=CallState.ERROR, outputs=None, error_message=message)

    def as_initial(self) -> "AgentCall":
        return replace(self, state=initial_state_for(self.inputs), outputs=None, error_message=None)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        data: Dict[str, Any] = {
            "id": self.id,
            "agent_name": self.agent_name,
            "state": self.state.value,
            "inputs": self.inputs,
        }
        if self.outputs is not None:
            data["outputs"] = self.outputs
        if self.error_message is not None:
            data["error_message"] = self.error_message
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AgentCall":
        return cls(
            id=data["id"],
            agent_name=data["agent_name"],
            state=CallState(data["state"]),
            inputs=dict(data.get("inputs") or {}),
            outputs=data.get("outputs"),
            error_message=data.get("error_message")
        )


@dataclass(frozen=True)
class RunTab:
    """An alternative version of a run's call graph."""
    id: str
    agent_calls: List[AgentCall]
    label: Optional[str] = None
    final_response_ref: Optional[str] = None
    final_output: Any = None
    final_error: Optional[str] = None
    dag_node_positions: Optional[Dict[str, Dict[str, float]]] = None


@dataclass(frozen=True)
class Run:
    """Top-level container for one task and its call graph(s)."""
    id: str
    created_at: str
    initial_task: str
    agent_calls: List[AgentCall]
    final_response_ref: Optional[str] = None
    final_output: Any = None
    final_error: Optional[str] = None
    dag_node_positions: Optional[Dict[str, Dict[str, float]]] = None
    tabs: Optional[List[RunTab]] = None
    selected_tab_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        data: Dict[str, Any] = {
            "id": self.id,
            "created_at": self.created_at,
            "initial_task": self.initial_task,
            "agent_calls": [call.to_dict() for call in self.agent_calls],
            "final_response_ref": self.final_response_ref,
            "final_output": self.final_output,
            "final_error": self.final_error,
        }
        if self.tabs:
            data["tabs"] = [
                {
                    "id": tab.id,
                    "label": tab.label,
                    "agent_calls": [call.to_dict() for call in tab.agent_calls],
                    "final_response_ref": tab.final_response_ref,
                    "final_output": tab.final_output,
                    "final_error": tab.final_error,
                }
                for tab in self.tabs
            ]
            data["selected_tab_id"] = self.selected_tab_id
        return data


def get_short_call_id(run_id: str, full_id: str) -> str:
    """Strip the run id prefix from a stored call id.

    ``run-1-call_2`` becomes ``call_2``. Ids from another run that still end
    in a ``call_N`` segment are shortened to that segment.
    """
    prefix = f"{run_id}-"
    if full_id.startswith(prefix):
        return full_id[len(prefix):]
    if "-" in full_id:
        last = full_id.rsplit("-", 1)[1]
        if _SHORT_ID_PATTERN.match(last):
            return last
    return full_id


def full_call_id(run_id: str, short_id: str) -> str:
    return f"{run_id}-{short_id}"


def find_call(run_id: str, calls: Sequence[AgentCall], call_id: str) -> Optional[AgentCall]:
    """Find a call by id, tolerating short and run-prefixed forms.

    Lookup order: exact id, then run-prefix-stripped id, then suffix match.
    """
    for call in calls:
        if call.id == call_id:
            return call

    short_id = get_short_call_id(run_id, call_id)
    for call in calls:
        if get_short_call_id(run_id, call.id) == short_id:
            return call

    suffix = f"-{call_id}"
    for call in calls:
        if call.id.endswith(suffix):
            return call

    return None
