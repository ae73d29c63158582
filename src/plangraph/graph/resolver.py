"""Reference resolution for agent call inputs.

Resolution never raises and never mutates the call list. A reference that
cannot be resolved yet (the target has not finished, the target or its agent
does not exist, a path segment is missing) is left in place unchanged, so a
partially resolved tree is a normal return value.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, List, Mapping, Optional, Sequence

from loguru import logger
from pydantic import BaseModel

from .models import AgentCall, CallState, ENABLE_KEY, find_call, has_references
from .references import RefNamespace, Reference, walk_references


class _Unresolved:
    def __repr__(self) -> str:
        return "UNRESOLVED"


UNRESOLVED: Any = _Unresolved()


@dataclass(frozen=True)
class ResolutionContext:
    """Values that references may point at besides other calls."""
    agent_docs: Mapping[str, Any] = field(default_factory=dict)
    initial_task: Optional[str] = None

    @classmethod
    def from_registry(cls, registry: Any, initial_task: Optional[str] = None) -> "ResolutionContext":
        return cls(agent_docs=registry.docs_by_name(), initial_task=initial_task)


@dataclass
class Resolution:
    """Result of resolving an inputs tree."""
    value: Any
    unresolved: List[Reference] = field(default_factory=list)

    @property
    def complete(self) -> bool:
        return not self.unresolved


def data_inputs(inputs: Dict[str, Any]) -> Dict[str, Any]:
    """Inputs without the reserved enable expression."""
    return {key: value for key, value in inputs.items() if key != ENABLE_KEY}


def walk_path(value: Any, path: Sequence[str]) -> Any:
    """Follow a dotted path through dicts (by key) and lists (by index)."""
    current = value
    for segment in path:
        if isinstance(current, dict):
            if segment not in current:
                return UNRESOLVED
            current = current[segment]
        elif isinstance(current, list):
            try:
                current = current[int(segment)]
            except (ValueError, IndexError):
                return UNRESOLVED
        else:
            return UNRESOLVED
    return current


def _as_document(doc: Any) -> Any:
    if isinstance(doc, BaseModel):
        return doc.model_dump()
    return doc


def resolve_reference(
    run_id: str,
    calls: Sequence[AgentCall],
    ref: Reference,
    context: Optional[ResolutionContext] = None,
    _visiting: FrozenSet[str] = frozenset()
) -> Any:
    """Resolve one reference, returning UNRESOLVED when it cannot be resolved yet."""
    context = context or ResolutionContext()

    if ref.namespace is RefNamespace.TASK:
        return UNRESOLVED if context.initial_task is None else context.initial_task

    if ref.namespace is RefNamespace.OPAQUE or ref.call_id is None:
        return UNRESOLVED

    target = find_call(run_id, calls, ref.call_id)
    if target is None:
        logger.debug(f"[RESOLVER] Unknown call '{ref.call_id}' in ref '{ref.raw}'")
        return UNRESOLVED

    if ref.namespace is RefNamespace.OUTPUTS:
        if target.state is not CallState.FINISHED or target.outputs is None:
            return UNRESOLVED
        return walk_path(target.outputs, ref.path)

    if ref.namespace is RefNamespace.AGENT_DEFINITION:
        doc = context.agent_docs.get(target.agent_name)
        if doc is None:
            logger.debug(f"[RESOLVER] No agent doc for '{target.agent_name}'")
            return UNRESOLVED
        return walk_path(_as_document(doc), ref.path)

    # inputs: resolve the target's own inputs first so chains work
    if target.id in _visiting:
        logger.warning(f"[RESOLVER] Input reference cycle through '{target.id}'")
        return UNRESOLVED
    nested = _resolve(run_id, calls, data_inputs(target.inputs), context, _visiting | {target.id})
    value = walk_path(nested.value, ref.path)
    if value is not UNRESOLVED and nested.unresolved and has_references(value):
        return UNRESOLVED
    return value


def _resolve(
    run_id: str,
    calls: Sequence[AgentCall],
    inputs: Any,
    context: Optional[ResolutionContext],
    visiting: FrozenSet[str]
) -> Resolution:
    unresolved: List[Reference] = []

    def substitute(ref: Reference, original: Any) -> Any:
        value = resolve_reference(run_id, calls, ref, context, visiting)
        if value is UNRESOLVED:
            unresolved.append(ref)
            return original
        return value

    return Resolution(value=walk_references(inputs, substitute), unresolved=unresolved)


def resolve_inputs_tracked(
    run_id: str,
    calls: Sequence[AgentCall],
    inputs: Any,
    context: Optional[ResolutionContext] = None
) -> Resolution:
    """Resolve every reference in ``inputs`` and report the ones left unresolved.

    Args:
        run_id: Id of the run the calls belong to
        calls: Current call list
        inputs: JSON-like inputs tree
        context: Agent docs and initial task for non-call references

    Returns:
        Resolution with the substituted tree and the unresolved references
    """
    return _resolve(run_id, calls, inputs, context, frozenset())


def resolve_inputs(
    run_id: str,
    calls: Sequence[AgentCall],
    inputs: Any,
    context: Optional[ResolutionContext] = None
) -> Any:
    """Resolve every reference in ``inputs``, leaving unresolvable ones in place."""
    return _resolve(run_id, calls, inputs, context, frozenset()).value
