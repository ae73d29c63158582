"""Execution scheduler for agent call graphs."""

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, Iterable, List, Mapping, Optional, Set

from loguru import logger

from ..errors import CallNotFoundError, DispatchError, UnknownAgentError
from ..settings import Settings
from .models import AgentCall, CallState, Run, find_call, get_short_call_id
from .readiness import get_unresolved_ref_call_ids, mark_ready_where_possible, reset_calls
from .resolver import ResolutionContext, data_inputs, resolve_inputs_tracked
from .runs import (
    get_final_output,
    get_selected_calls,
    is_stuck,
    make_context,
    with_final_result,
    with_selected_calls,
)

DispatchFn = Callable[[str, Dict[str, Any]], Awaitable[Mapping[str, Any]]]


def _replace_call(calls: List[AgentCall], updated: AgentCall) -> List[AgentCall]:
    return [updated if call.id == updated.id else call for call in calls]


def unresolved_refs_message(run_id: str, calls: List[AgentCall], call: AgentCall) -> str:
    """Error text for a call whose output references did not resolve."""
    unresolved = get_unresolved_ref_call_ids(run_id, calls, call.inputs)
    if not unresolved:
        return "Refs could not be resolved. Dependency steps may not have finished."

    steps = []
    for call_id in unresolved:
        dep = find_call(run_id, calls, call_id)
        steps.append(f"{dep.agent_name} ({call_id})" if dep is not None else call_id)
    return f"Unresolved refs: run these steps first: {', '.join(steps)}."


@dataclass
class RunProgress:
    """Bookkeeping for one pass over a run."""
    wavefronts: int = 0
    semaphore: Optional[asyncio.Semaphore] = None


@dataclass
class ExecutionResult:
    """Result of running every call of a run."""
    run: Run
    status: str  # "success", "partial", "failed", "stuck"
    total_calls: int
    finished_calls: int
    failed_calls: int
    queued_calls: int
    wavefronts: int
    execution_time_seconds: float
    outputs: Dict[str, Any] = field(default_factory=dict)
    errors: Dict[str, str] = field(default_factory=dict)
    final_output: Any = None
    stuck: bool = False

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "run_id": self.run.id,
            "status": self.status,
            "total_calls": self.total_calls,
            "finished_calls": self.finished_calls,
            "failed_calls": self.failed_calls,
            "queued_calls": self.queued_calls,
            "wavefronts": self.wavefronts,
            "execution_time_seconds": round(self.execution_time_seconds, 3),
            "outputs": self.outputs,
            "errors": self.errors,
            "final_output": self.final_output,
            "stuck": self.stuck
        }


class RunScheduler:
    """Runs agent calls in dependency-ordered wavefronts.

    Each wavefront dispatches every ready call concurrently. A call's result
    is recorded as soon as it settles; once the whole wavefront has settled,
    readiness is recomputed and the next wavefront starts. One call's failure
    never cancels or fails its siblings.
    """

    def __init__(
        self,
        dispatch: DispatchFn,
        agent_docs: Optional[Mapping[str, Any]] = None,
        settings: Optional[Settings] = None,
        simulate_empty_output: Optional[Iterable[str]] = None
    ):
        """Initialize the scheduler.

        Args:
            dispatch: Async function ``(agent_name, inputs) -> outputs``
            agent_docs: Agent docs by name, for ``agent_definition`` refs
            settings: Concurrency and timeout settings (defaults if None)
            simulate_empty_output: Call ids (short or full) that finish with
                empty outputs without calling ``dispatch``
        """
        self.dispatch = dispatch
        self.agent_docs = dict(agent_docs or {})
        self.settings = settings or Settings()
        self.simulate_empty_output: Set[str] = set(simulate_empty_output or ())

    def _context(self, run: Run) -> ResolutionContext:
        return make_context(run, self.agent_docs)

    def _is_simulated(self, run_id: str, call: AgentCall) -> bool:
        return (
            call.id in self.simulate_empty_output
            or get_short_call_id(run_id, call.id) in self.simulate_empty_output
        )

    def _new_progress(self) -> RunProgress:
        max_concurrency = self.settings.max_concurrency
        return RunProgress(semaphore=asyncio.Semaphore(max_concurrency) if max_concurrency else None)

    async def _invoke(
        self,
        agent_name: str,
        inputs: Dict[str, Any],
        semaphore: Optional[asyncio.Semaphore] = None
    ) -> Mapping[str, Any]:
        timeout = self.settings.dispatch_timeout_seconds
        if semaphore is None:
            return await asyncio.wait_for(self.dispatch(agent_name, inputs), timeout)
        async with semaphore:
            return await asyncio.wait_for(self.dispatch(agent_name, inputs), timeout)

    async def _dispatch_call(
        self,
        run_id: str,
        calls: List[AgentCall],
        call: AgentCall,
        context: ResolutionContext,
        semaphore: Optional[asyncio.Semaphore] = None
    ) -> AgentCall:
        """Resolve a call's inputs, run it, and return the settled call."""
        if self._is_simulated(run_id, call):
            logger.info(f"[SCHEDULER] '{call.id}' finished with simulated empty output")
            return call.as_finished({})

        resolution = resolve_inputs_tracked(run_id, calls, data_inputs(call.inputs), context)
        if not resolution.complete:
            message = unresolved_refs_message(run_id, calls, call)
            logger.warning(f"[SCHEDULER] '{call.id}' not dispatched: {message}")
            return call.as_failed(message)

        logger.info(f"[SCHEDULER] Dispatching '{call.id}' to agent '{call.agent_name}'")
        start_time = time.time()
        try:
            outputs = await self._invoke(call.agent_name, resolution.value, semaphore)
        except asyncio.TimeoutError:
            message = (
                f"Agent '{call.agent_name}' timed out after "
                f"{self.settings.dispatch_timeout_seconds}s"
            )
            logger.error(f"[SCHEDULER] '{call.id}' {message}")
            return call.as_failed(message)
        except (DispatchError, UnknownAgentError) as e:
            logger.error(f"[SCHEDULER] '{call.id}' failed: {e}")
            return call.as_failed(str(e) or "Request failed")
        except Exception as e:
            logger.exception(f"[SCHEDULER] '{call.id}' raised: {e}")
            return call.as_failed(str(e) or e.__class__.__name__)

        if not isinstance(outputs, Mapping):
            message = f"Agent '{call.agent_name}' returned a non-object output"
            logger.error(f"[SCHEDULER] '{call.id}' {message}: {outputs!r}")
            return call.as_failed(message)

        logger.info(f"[SCHEDULER] '{call.id}' finished in {time.time() - start_time:.2f}s")
        return call.as_finished(dict(outputs))

    async def _run(self, run: Run, progress: RunProgress) -> AsyncIterator[List[AgentCall]]:
        context = self._context(run)

        calls = reset_calls(run.id, get_selected_calls(run), context)
        logger.info(f"[SCHEDULER] Starting run '{run.id}' with {len(calls)} calls")
        yield list(calls)

        while True:
            ready = [call for call in calls if call.state is CallState.READY]
            if not ready:
                break

            progress.wavefronts += 1
            ready_ids = {call.id for call in ready}
            calls = [call.as_running() if call.id in ready_ids else call for call in calls]
            logger.info(f"[SCHEDULER] Wavefront {progress.wavefronts}: {sorted(ready_ids)}")
            yield list(calls)

            dispatch_view = list(calls)
            tasks = [
                asyncio.create_task(
                    self._dispatch_call(run.id, dispatch_view, call, context, progress.semaphore)
                )
                for call in dispatch_view if call.id in ready_ids
            ]
            for settled in asyncio.as_completed(tasks):
                calls = _replace_call(calls, await settled)
                yield list(calls)

            calls = mark_ready_where_possible(run.id, calls, context)
            yield list(calls)

        logger.info(f"[SCHEDULER] Run '{run.id}' stopped after {progress.wavefronts} wavefronts")

    async def run_all(self, run: Run) -> AsyncIterator[List[AgentCall]]:
        """Reset the run's selected calls and run them to completion.

        Yields a snapshot of the call list after every change: the reset, each
        wavefront's move to running, each individual settlement, and each
        readiness recompute. The last snapshot is the final state.

        Args:
            run: Run whose selected call list is executed

        Yields:
            Call list snapshots
        """
        async for snapshot in self._run(run, self._new_progress()):
            yield snapshot

    async def execute(self, run: Run) -> ExecutionResult:
        """Run every call and summarize the outcome.

        Returns:
            Execution result holding the updated run
        """
        start_time = time.time()
        context = self._context(run)
        progress = self._new_progress()

        calls: List[AgentCall] = get_selected_calls(run)
        async for snapshot in self._run(run, progress):
            calls = snapshot

        run = with_selected_calls(run, calls)
        final_output = get_final_output(run, context)
        stuck = is_stuck(run, context)
        final_error = None
        if stuck:
            blocked = [call.id for call in calls if call.state in (CallState.QUEUED, CallState.ERROR)]
            final_error = f"Run is stuck: {', '.join(blocked)} cannot progress"
        run = with_final_result(run, final_output=final_output, final_error=final_error)

        outputs = {call.id: call.outputs for call in calls if call.state is CallState.FINISHED}
        errors = {call.id: call.error_message or "Unknown error" for call in calls if call.state is CallState.ERROR}
        queued = sum(1 for call in calls if call.state is CallState.QUEUED)

        if len(outputs) == len(calls):
            status = "success"
        elif errors and not outputs:
            status = "failed"
        elif stuck:
            status = "stuck"
        else:
            status = "partial"

        result = ExecutionResult(
            run=run,
            status=status,
            total_calls=len(calls),
            finished_calls=len(outputs),
            failed_calls=len(errors),
            queued_calls=queued,
            wavefronts=progress.wavefronts,
            execution_time_seconds=time.time() - start_time,
            outputs=outputs,
            errors=errors,
            final_output=final_output,
            stuck=stuck
        )

        logger.info(
            f"[SCHEDULER] Completed: {len(outputs)}/{len(calls)} calls, "
            f"status={status}, time={result.execution_time_seconds:.2f}s"
        )

        return result

    async def run_call(self, run: Run, call_id: str) -> Run:
        """Run a single call of the selected tab.

        Finished and failed calls are re-run. A queued call is re-evaluated
        first: if its output references are still unresolved it is marked as
        failed, if only its condition blocks it it is left queued. Running
        calls are left alone.

        Raises:
            CallNotFoundError: If the call is not in the selected tab
        """
        context = self._context(run)
        calls = get_selected_calls(run)
        target = find_call(run.id, calls, call_id)
        if target is None:
            raise CallNotFoundError(call_id)

        if target.state is CallState.RUNNING:
            logger.warning(f"[SCHEDULER] '{target.id}' is already running")
            return run

        if target.state is CallState.QUEUED:
            calls = mark_ready_where_possible(run.id, calls, context)
            target = find_call(run.id, calls, target.id)
            if target.state is CallState.QUEUED:
                if get_unresolved_ref_call_ids(run.id, calls, target.inputs):
                    calls = _replace_call(calls, target.as_failed(unresolved_refs_message(run.id, calls, target)))
                else:
                    logger.info(f"[SCHEDULER] '{target.id}' is blocked by its condition")
                return with_selected_calls(run, calls)

        running = target.as_running()
        calls = _replace_call(calls, running)
        settled = await self._dispatch_call(run.id, calls, running, context)
        calls = mark_ready_where_possible(run.id, _replace_call(calls, settled), context)
        return with_selected_calls(run, calls)


async def run_all(
    run: Run,
    dispatch: DispatchFn,
    agent_docs: Optional[Mapping[str, Any]] = None,
    settings: Optional[Settings] = None,
    simulate_empty_output: Optional[Iterable[str]] = None
) -> AsyncIterator[List[AgentCall]]:
    """Run every call of ``run``, yielding call list snapshots."""
    scheduler = RunScheduler(dispatch, agent_docs, settings, simulate_empty_output)
    async for snapshot in scheduler.run_all(run):
        yield snapshot


async def run_call(
    run: Run,
    call_id: str,
    dispatch: DispatchFn,
    agent_docs: Optional[Mapping[str, Any]] = None,
    settings: Optional[Settings] = None,
    simulate_empty_output: bool = False
) -> Run:
    """Run one call of ``run`` and return the updated run."""
    scheduler = RunScheduler(
        dispatch,
        agent_docs,
        settings,
        simulate_empty_output=[call_id] if simulate_empty_output else None
    )
    return await scheduler.run_call(run, call_id)
