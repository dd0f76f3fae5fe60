"""Core reasoning data types."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Protocol, Tuple

from ..pricing import Usage
from .trace import ExecutionTrace


@dataclass
class ThoughtContext:
    """Shared context of one reasoning run.

    ``memory`` holds each executed node's output under the node id and is the
    only part that changes while a graph runs.
    """

    input: Dict[str, Any] = field(default_factory=dict)
    memory: Dict[str, Any] = field(default_factory=dict)
    metadata: Dict[str, Any] = field(default_factory=dict)
    trace: List[ExecutionTrace] = field(default_factory=list)

    def template_values(self) -> Dict[str, Any]:
        return {**self.input, **self.memory, **self.metadata}


@dataclass(frozen=True)
class ThoughtResult:
    """Output of one reasoning unit."""

    output: Any
    reasoning: str = ""
    confidence: float = 0.0
    usage: Usage = field(default_factory=Usage)
    cost: float = 0.0
    duration_ms: float = 0.0
    trace: Optional[ExecutionTrace] = None
    node_id: str = ""


NodeCondition = Callable[[ThoughtContext], bool]


@dataclass(frozen=True)
class ReasoningNode:
    """A graph node: its id, the ids it depends on, and an optional run condition."""

    id: str
    dependencies: Tuple[str, ...] = ()
    condition: Optional[NodeCondition] = None
    description: str = ""

    def __post_init__(self):
        # Accept any iterable of ids but store a tuple.
        object.__setattr__(self, "dependencies", tuple(self.dependencies))


class ThinkingUnit(Protocol):
    """The work a node performs."""

    async def think(self, context: ThoughtContext) -> ThoughtResult: ...
