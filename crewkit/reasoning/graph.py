"""Dependency-graph executor for reasoning steps."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence, Tuple, Union

from ..errors import GraphCycleError
from .module import FunctionThinker
from .types import NodeCondition, ReasoningNode, ThinkingUnit, ThoughtContext, ThoughtResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Edge:
    """Informational link between two nodes; scheduling uses node dependencies only."""

    source: str
    target: str
    condition: Optional[NodeCondition] = None


@dataclass
class GraphValidation:
    valid: bool
    errors: List[str] = field(default_factory=list)


@dataclass
class GraphRun:
    """Outcome of one graph execution."""

    results: List[ThoughtResult]
    context: ThoughtContext
    executed: List[str]
    skipped: List[str]

    @property
    def outputs(self) -> Dict[str, Any]:
        return {r.node_id: r.output for r in self.results}


class ReasoningGraph:
    """
    A DAG of reasoning nodes executed once in dependency order.

    A node runs only if every dependency ran and its condition (if any) holds
    for the current context. A skipped node never counts as executed, so
    everything that depends on it is skipped too, whatever its own condition.
    """

    def __init__(self) -> None:
        self._nodes: Dict[str, ReasoningNode] = {}
        self._units: Dict[str, ThinkingUnit] = {}
        self._edges: List[Edge] = []

    def add_node(
        self,
        node: ReasoningNode,
        unit: Union[ThinkingUnit, Callable[[ThoughtContext], Any]],
    ) -> "ReasoningGraph":
        if node.id in self._nodes:
            raise ValueError(f"Node {node.id!r} is already in the graph")
        if not hasattr(unit, "think"):
            unit = FunctionThinker(unit, name=node.id)
        self._nodes[node.id] = node
        self._units[node.id] = unit
        return self

    def connect(self, source: str, target: str, condition: Optional[NodeCondition] = None) -> "ReasoningGraph":
        self._edges.append(Edge(source=source, target=target, condition=condition))
        return self

    @property
    def nodes(self) -> List[ReasoningNode]:
        return list(self._nodes.values())

    def topological_order(self) -> List[str]:
        """
        Order node ids so that every node follows its dependencies.

        Raises:
            GraphCycleError: If any node depends on itself, directly or transitively
        """
        visited: set = set()
        in_progress: set = set()
        order: List[str] = []

        for root in self._nodes:
            if root in visited:
                continue
            # Iterative post-order DFS; each frame holds a node and its remaining dependencies.
            in_progress.add(root)
            stack: List[Tuple[str, Iterator[str]]] = [(root, iter(self._dependencies_of(root)))]
            while stack:
                node_id, pending = stack[-1]
                dep = next(pending, None)
                if dep is None:
                    stack.pop()
                    in_progress.discard(node_id)
                    visited.add(node_id)
                    if node_id in self._nodes:
                        order.append(node_id)
                elif dep in in_progress:
                    raise GraphCycleError(dep)
                elif dep not in visited:
                    in_progress.add(dep)
                    stack.append((dep, iter(self._dependencies_of(dep))))
        return order

    def _dependencies_of(self, node_id: str) -> Sequence[str]:
        node = self._nodes.get(node_id)
        return tuple(node.dependencies) if node is not None else ()

    def validate(self) -> GraphValidation:
        errors: List[str] = []
        for node_id, node in self._nodes.items():
            for dep in node.dependencies:
                if dep not in self._nodes:
                    errors.append(f"Node {node_id} depends on missing node {dep}")
        try:
            self.topological_order()
        except GraphCycleError as e:
            errors.append(str(e))
        return GraphValidation(valid=not errors, errors=errors)

    async def execute(self, context: Optional[ThoughtContext] = None) -> GraphRun:
        """
        Run the graph once.

        The context's ``memory`` and ``trace`` are updated in place; each
        executed node's output is stored under its id.

        Raises:
            GraphCycleError: Before any node runs, if the graph has a cycle
            Exception: Whatever a node's unit raises; the run stops there
        """
        context = context if context is not None else ThoughtContext()
        order = self.topological_order()
        results: List[ThoughtResult] = []
        executed: set = set()
        executed_order: List[str] = []
        skipped: List[str] = []

        for node_id in order:
            node = self._nodes[node_id]
            if not all(dep in executed for dep in node.dependencies):
                logger.debug(f"Skipping node {node_id}: dependencies not executed")
                skipped.append(node_id)
                continue
            if node.condition is not None and not node.condition(context):
                logger.debug(f"Skipping node {node_id}: condition is false")
                skipped.append(node_id)
                continue

            result = await self._units[node_id].think(context)
            if not result.node_id:
                result = replace(result, node_id=node_id)
            results.append(result)
            executed.add(node_id)
            executed_order.append(node_id)
            context.memory[node_id] = result.output
            if result.trace is not None:
                context.trace.append(result.trace)

        logger.info(f"Reasoning graph executed {len(executed_order)} node(s), skipped {len(skipped)}")
        return GraphRun(results=results, context=context, executed=executed_order, skipped=skipped)

    def stats(self) -> Dict[str, Any]:
        node_count = len(self._nodes)
        edge_count = len(self._edges)
        if node_count <= 3 and edge_count <= 3:
            complexity = "low"
        elif node_count <= 10 and edge_count <= 15:
            complexity = "medium"
        else:
            complexity = "high"
        return {"node_count": node_count, "edge_count": edge_count, "complexity": complexity}

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._nodes
