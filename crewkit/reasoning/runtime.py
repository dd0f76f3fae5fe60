"""Reasoning runtime: runs modules and graphs against scoped memory."""

from __future__ import annotations

import logging
import time
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple, Type

from pydantic import BaseModel

from ..agents.prompts import build_enhanced_query
from ..agents.protocol import AgentResult, output_to_text
from ..errors import GraphValidationError, ReasoningModuleError
from ..pricing import sum_usage
from ..providers.base import ChatProvider
from .executor import PromptExecutor
from .graph import GraphRun, ReasoningGraph
from .memory import DEFAULT_SCOPE, ThoughtMemory
from .module import ReasoningModule
from .strategies import PromptStrategy
from .trace import TraceLog
from .types import ThoughtContext, ThoughtResult

logger = logging.getLogger(__name__)


class ReasoningRuntime:
    """Owns the memory and trace log shared by the modules and graphs it runs."""

    def __init__(
        self,
        provider: Optional[ChatProvider] = None,
        model: str = "gpt-4o-mini",
        memory: Optional[ThoughtMemory] = None,
        traces: Optional[TraceLog] = None,
    ):
        self.executor = PromptExecutor(provider, model=model) if provider is not None else None
        self.memory = memory or ThoughtMemory()
        self.traces = traces or TraceLog()

    def create_module(
        self,
        name: str,
        template: str,
        strategies: Sequence[str] = (),
        schema: Optional[Type[BaseModel]] = None,
        max_retries: int = 1,
        description: str = "",
    ) -> ReasoningModule:
        """Build a module that uses this runtime's prompt executor."""
        if self.executor is None:
            raise ValueError("ReasoningRuntime was created without a provider")
        return ReasoningModule(
            name=name,
            template=template,
            executor=self.executor,
            strategies=[PromptStrategy.parse(s) for s in strategies],
            schema=schema,
            max_retries=max_retries,
            description=description,
        )

    def _context(self, input: Dict[str, Any], scope: str) -> ThoughtContext:
        return ThoughtContext(
            input=dict(input),
            memory=self.memory.read(scope),
            metadata={"scope": scope, "timestamp": datetime.now().isoformat()},
        )

    async def run(self, module: ReasoningModule, input: Dict[str, Any], scope: str = DEFAULT_SCOPE) -> ThoughtResult:
        """Run one module; its output is stored as ``<name>_result`` in ``scope``."""
        try:
            result = await module.think(self._context(input, scope))
        except ReasoningModuleError as e:
            if e.trace is not None:
                self.traces.add(e.trace)
            raise
        if result.trace is not None:
            self.traces.add(result.trace)
        self.memory.write(scope, f"{module.name}_result", result.output)
        return result

    async def execute_graph(
        self,
        graph: ReasoningGraph,
        input: Dict[str, Any],
        scope: str = DEFAULT_SCOPE,
    ) -> GraphRun:
        """
        Validate and run ``graph``; outputs are stored as ``graph_result_<i>``.

        Raises:
            GraphValidationError: If dependencies are missing or a cycle exists
        """
        validation = graph.validate()
        if not validation.valid:
            raise GraphValidationError(validation.errors)

        graph_run = await graph.execute(self._context(input, scope))
        for index, result in enumerate(graph_run.results):
            self.memory.write(scope, f"graph_result_{index}", result.output)
        for trace in graph_run.context.trace:
            self.traces.add(trace)
        return graph_run

    def stats(self) -> Dict[str, Any]:
        return {"memory_scopes": self.memory.scopes(), "memory_size": self.memory.size(), "traces": self.traces.stats()}


class GraphEnhancer:
    """Runs a reasoning graph before a conversation and folds its outputs into the query.

    Pass an instance as ``ConversationEngine(reasoning=...)``.
    """

    def __init__(self, runtime: ReasoningRuntime, graph: ReasoningGraph, scope: str = "reasoning"):
        self.runtime = runtime
        self.graph = graph
        self.scope = scope

    async def enhance(self, query: str) -> Tuple[str, AgentResult]:
        started = time.time()
        graph_run = await self.runtime.execute_graph(self.graph, {"query": query}, scope=self.scope)
        outputs: List[Tuple[str, str]] = [(r.node_id, output_to_text(r.output)) for r in graph_run.results]
        result = AgentResult(
            agent_id="reasoning",
            output=dict(outputs),
            usage=sum_usage(r.usage for r in graph_run.results),
            cost=sum(r.cost for r in graph_run.results),
            duration_ms=(time.time() - started) * 1000,
            metadata={"executed": graph_run.executed, "skipped": graph_run.skipped},
        )
        if not outputs:
            return query, result
        return build_enhanced_query(query, outputs), result
