"""Shared test fixtures."""

import asyncio
import os
import sys

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from plangraph.agents import AgentArg, AgentOutputField, AgentRegistry, FunctionAgent, OrchestratorPlan
from plangraph.errors import DispatchError
from plangraph.graph import AgentCall, CallState


def make_call(call_id, inputs=None, agent_name="A", state=None, outputs=None, error_message=None):
    """Build a call, defaulting to its initial state."""
    call = AgentCall.create(call_id, agent_name, inputs or {})
    if state is not None:
        call = AgentCall(
            id=call.id,
            agent_name=agent_name,
            state=state,
            inputs=call.inputs,
            outputs=outputs,
            error_message=error_message
        )
    return call


def finished(call_id, outputs, inputs=None, agent_name="A"):
    return make_call(call_id, inputs, agent_name, state=CallState.FINISHED, outputs=outputs)


def plan_from(calls, final_response=None):
    return OrchestratorPlan.model_validate({"calls": calls, "final_response": final_response})


async def _echo(**inputs):
    return {"echo": inputs}


async def _produce(value=5):
    return {"y": value, "flag": True}


async def _slow(delay=0.2):
    await asyncio.sleep(delay)
    return {"done": True}


async def _fail(**inputs):
    raise DispatchError("boom")


@pytest.fixture
def registry():
    """Registry with a handful of fake agents."""
    return AgentRegistry([
        FunctionAgent(
            name="Echo",
            purpose="Returns its inputs under 'echo'.",
            func=_echo,
            args=[AgentArg(name="x", format="any", purpose="Anything", optional=True)],
            output_schema={"echo": AgentOutputField(description="The inputs", type="object")}
        ),
        FunctionAgent(
            name="Producer",
            purpose="Produces a number.",
            func=_produce,
            output_schema={
                "y": AgentOutputField(description="A number", type="number"),
                "flag": AgentOutputField(description="Always true", type="boolean"),
            }
        ),
        FunctionAgent(name="Slow", purpose="Sleeps, then finishes.", func=_slow),
        FunctionAgent(name="Failing", purpose="Always fails.", func=_fail),
    ])


@pytest.fixture
def chain_plan():
    """call_1 produces y, call_2 echoes it."""
    return plan_from(
        [
            {"id": "call_1", "agent_name": "Producer", "inputs": {}},
            {"id": "call_2", "agent_name": "Echo", "inputs": {"x": {"ref": "call_1.outputs.y"}}},
        ],
        final_response="call_2.outputs.echo"
    )
