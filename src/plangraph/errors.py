"""Exceptions raised by plangraph.

Graph content problems (unresolved references, cycles, unknown call ids) are
never raised; they are left in place for the caller to inspect. These errors
cover the collaborator-facing edges: plan parsing, the agent registry and
executors.
"""


class PlangraphError(Exception):
    """Base class for plangraph errors."""


class PlanValidationError(PlangraphError, ValueError):
    """An orchestrator plan is malformed."""


class UnknownAgentError(PlangraphError, KeyError):
    """No agent is registered under the requested name."""

    def __init__(self, agent_name: str):
        self.agent_name = agent_name
        super().__init__(agent_name)

    def __str__(self) -> str:
        return f'No executor configured for agent "{self.agent_name}".'


class DispatchError(PlangraphError):
    """An executor reported an application-level failure."""


class CallNotFoundError(PlangraphError, KeyError):
    """A run operation targeted a call id that is not in the selected tab."""

    def __init__(self, call_id: str):
        self.call_id = call_id
        super().__init__(call_id)

    def __str__(self) -> str:
        return f"Call '{self.call_id}' not found"
