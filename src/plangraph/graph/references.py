"""Reference grammar for agent call inputs.

A reference is either a string such as ``call_1.outputs.rows`` or an object
``{"ref": "call_1.outputs.rows", "negate": true}``. The namespace after the
call id selects what the reference points at:

- ``outputs``: the target call's outputs, available once it has finished
- ``inputs``: the target call's own (recursively resolved) inputs
- ``agent_definition``: the registry document of the target call's agent

The bare string ``task`` points at the run's initial task description.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

TASK_REF = "task"

NAMESPACE_MARKERS = (".outputs", ".inputs", ".agent_definition")

REF_PATTERN = re.compile(
    r"^(?P<call_id>[a-zA-Z0-9_-]+?)\.(?P<namespace>outputs|inputs|agent_definition)(?:\.(?P<path>.*))?$"
)


class RefNamespace(str, Enum):
    """What a reference points at."""
    OUTPUTS = "outputs"
    INPUTS = "inputs"
    AGENT_DEFINITION = "agent_definition"
    TASK = "task"
    OPAQUE = "opaque"  # object ref whose string does not follow the grammar


@dataclass(frozen=True)
class Reference:
    """A parsed reference value."""
    raw: str
    call_id: Optional[str]
    namespace: RefNamespace
    path: Tuple[str, ...] = ()
    negate: bool = False
    is_object: bool = False

    @property
    def needs_finished_output(self) -> bool:
        return self.namespace is RefNamespace.OUTPUTS

    @property
    def suffix(self) -> str:
        """Everything after the call id, e.g. ``.outputs.rows``."""
        if self.call_id is None:
            return ""
        return self.raw[len(self.call_id):]

    def with_call_id(self, call_id: str) -> str:
        """Return the reference string retargeted at another call id."""
        if self.call_id is None:
            return self.raw
        return f"{call_id}{self.suffix}"


def get_call_id(ref: str) -> str:
    """Return the call id part of a reference string.

    This is the text before the first namespace marker, or the whole string
    when there is none. Callers validate the result separately.
    """
    positions = [ref.find(marker) for marker in NAMESPACE_MARKERS]
    found = [pos for pos in positions if pos >= 0]
    return ref[:min(found)] if found else ref


def needs_finished_output(ref: str) -> bool:
    """True iff the reference reads a call's outputs."""
    match = REF_PATTERN.match(ref)
    return match is not None and match.group("namespace") == RefNamespace.OUTPUTS.value


def _parse_string(ref: str, negate: bool, is_object: bool) -> Optional[Reference]:
    if ref == TASK_REF:
        return Reference(raw=ref, call_id=None, namespace=RefNamespace.TASK,
                         negate=negate, is_object=is_object)

    match = REF_PATTERN.match(ref)
    if match is None:
        if not is_object:
            return None
        return Reference(raw=ref, call_id=get_call_id(ref), namespace=RefNamespace.OPAQUE,
                         negate=negate, is_object=True)

    path = match.group("path")
    return Reference(
        raw=ref,
        call_id=match.group("call_id"),
        namespace=RefNamespace(match.group("namespace")),
        path=tuple(path.split(".")) if path else (),
        negate=negate,
        is_object=is_object
    )


def parse(value: Any) -> Optional[Reference]:
    """Parse a value into a Reference, or None when it is a literal."""
    if isinstance(value, str):
        return _parse_string(value, negate=False, is_object=False)
    if isinstance(value, dict) and isinstance(value.get("ref"), str):
        return _parse_string(value["ref"], negate=value.get("negate") is True, is_object=True)
    return None


def walk_references(value: Any, on_ref: Callable[[Reference, Any], Any]) -> Any:
    """Rebuild a JSON-like tree, replacing every reference with ``on_ref(ref, value)``.

    Containers are copied; literals are returned as-is. References are not
    descended into, so an object reference is handled as a single leaf.
    """
    ref = parse(value)
    if ref is not None:
        return on_ref(ref, value)
    if isinstance(value, list):
        return [walk_references(item, on_ref) for item in value]
    if isinstance(value, dict):
        return {key: walk_references(item, on_ref) for key, item in value.items()}
    return value


def iter_references(value: Any) -> Iterator[Reference]:
    """Yield every reference in a JSON-like tree, depth first."""
    found: List[Reference] = []

    def collect(ref: Reference, original: Any) -> Any:
        found.append(ref)
        return original

    walk_references(value, collect)
    return iter(found)


def rewrite_reference(value: Any, ref: Reference, call_id: str) -> Any:
    """Return ``value`` with its reference retargeted at ``call_id``.

    Object references keep every other key (``negate`` included).
    """
    new_ref = ref.with_call_id(call_id)
    if ref.is_object:
        rewritten: Dict[str, Any] = dict(value)
        rewritten["ref"] = new_ref
        return rewritten
    return new_ref
