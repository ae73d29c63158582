"""Agent registry: documentation plus executors, keyed by agent name."""

import inspect
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Iterator, List, Optional, Type

from loguru import logger
from pydantic import BaseModel, ValidationError

from ..errors import DispatchError, UnknownAgentError
from .models import AgentArg, AgentDoc, AgentOutputField


class Agent(ABC):
    """Base class for agents the scheduler can dispatch to.

    Subclasses set ``name``, ``purpose``, ``args`` and ``output_schema`` and
    implement ``_execute``.
    """

    name: str
    purpose: str
    args: List[AgentArg]
    output_schema: Dict[str, AgentOutputField]
    args_schema: Optional[Type[BaseModel]] = None

    def __init__(self):
        """Initialize the agent."""
        if not hasattr(self, 'name'):
            self.name = self.__class__.__name__
        if not hasattr(self, 'purpose'):
            self.purpose = self.__class__.__doc__ or "No description available"
        if not hasattr(self, 'args'):
            self.args = []
        if not hasattr(self, 'output_schema'):
            self.output_schema = {}

    @abstractmethod
    async def _execute(self, **inputs: Any) -> Dict[str, Any]:
        """Produce the agent's outputs.

        Must be implemented by subclasses.
        """
        raise NotImplementedError("Agent must implement _execute method")

    async def execute(self, inputs: Dict[str, Any]) -> Dict[str, Any]:
        """Validate resolved inputs and run the agent.

        Args:
            inputs: Reference-free inputs

        Returns:
            Output object

        Raises:
            DispatchError: If the inputs fail validation
        """
        if self.args_schema:
            try:
                inputs = self.args_schema(**inputs).model_dump()
            except ValidationError as e:
                raise DispatchError(f"Invalid inputs for agent '{self.name}': {e}") from e

        return await self._execute(**inputs)

    def to_doc(self) -> AgentDoc:
        return AgentDoc(
            name=self.name,
            purpose=self.purpose,
            args=list(self.args),
            output_schema=dict(self.output_schema)
        )


class FunctionAgent(Agent):
    """An agent backed by a plain (sync or async) function."""

    def __init__(
        self,
        name: str,
        purpose: str,
        func: Callable[..., Any],
        args: Optional[List[AgentArg]] = None,
        output_schema: Optional[Dict[str, AgentOutputField]] = None,
        args_schema: Optional[Type[BaseModel]] = None
    ):
        """Initialize a function agent.

        Args:
            name: Agent name used in plans
            purpose: What the agent does
            func: Function receiving the inputs as keyword arguments
            args: Declared arguments
            output_schema: Declared output fields
            args_schema: Pydantic model for input validation
        """
        self.name = name
        self.purpose = purpose
        self.func = func
        self.args = args or []
        self.output_schema = output_schema or {}
        self.args_schema = args_schema

    async def _execute(self, **inputs: Any) -> Dict[str, Any]:
        if inspect.iscoroutinefunction(self.func):
            return await self.func(**inputs)
        return self.func(**inputs)


def agent(
    name: Optional[str] = None,
    purpose: Optional[str] = None,
    args: Optional[List[AgentArg]] = None,
    output_schema: Optional[Dict[str, AgentOutputField]] = None,
    args_schema: Optional[Type[BaseModel]] = None
):
    """Decorator to create an agent from a function.

    Usage:
        @agent(name="Summarizer", output_schema={"summary": AgentOutputField(...)})
        async def summarize(text: str) -> dict:
            return {"summary": text[:100]}
    """
    def decorator(func: Callable[..., Any]) -> FunctionAgent:
        agent_name = name or func.__name__
        return FunctionAgent(
            name=agent_name,
            purpose=purpose or func.__doc__ or f"Agent {agent_name}",
            func=func,
            args=args,
            output_schema=output_schema,
            args_schema=args_schema
        )
    return decorator


class AgentRegistry:
    """Agents available to plans, by name."""

    def __init__(self, agents: Optional[List[Agent]] = None):
        self._agents: Dict[str, Agent] = {}
        for item in agents or []:
            self.register(item)

    def register(self, item: Agent) -> 'AgentRegistry':
        """Register an agent.

        Returns:
            Self for chaining

        Raises:
            ValueError: If an agent with the same name is already registered
        """
        if item.name in self._agents:
            raise ValueError(f"Agent '{item.name}' already registered")
        self._agents[item.name] = item
        logger.debug(f"[REGISTRY] Registered agent '{item.name}'")
        return self

    def get(self, name: str) -> Agent:
        try:
            return self._agents[name]
        except KeyError:
            raise UnknownAgentError(name) from None

    def get_doc(self, name: str) -> Optional[AgentDoc]:
        item = self._agents.get(name)
        return item.to_doc() if item is not None else None

    def names(self) -> List[str]:
        return list(self._agents)

    def docs(self) -> List[AgentDoc]:
        return [item.to_doc() for item in self._agents.values()]

    def docs_by_name(self) -> Dict[str, AgentDoc]:
        return {name: item.to_doc() for name, item in self._agents.items()}

    async def dispatch(self, agent_name: str, inputs: Dict[str, Any]) -> Dict[str, Any]:
        """Run an agent on resolved inputs; usable as a scheduler dispatch function.

        Raises:
            UnknownAgentError: If no agent is registered under ``agent_name``
        """
        return await self.get(agent_name).execute(inputs)

    def __contains__(self, name: object) -> bool:
        return name in self._agents

    def __iter__(self) -> Iterator[Agent]:
        return iter(self._agents.values())

    def __len__(self) -> int:
        return len(self._agents)

    def __repr__(self) -> str:
        return f"AgentRegistry(agents={self.names()})"
