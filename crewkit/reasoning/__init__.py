"""Reasoning graphs, modules and their runtime."""

from .executor import ExecutionOutcome, PromptExecutor
from .graph import Edge, GraphRun, GraphValidation, ReasoningGraph
from .memory import ThoughtMemory
from .module import EngineThinker, FunctionThinker, ReasoningModule
from .runtime import GraphEnhancer, ReasoningRuntime
from .strategies import PromptStrategy, StrategyType
from .templates import PromptTemplate
from .trace import ExecutionTrace, TraceLog
from .types import ReasoningNode, ThinkingUnit, ThoughtContext, ThoughtResult

__all__ = [
    "Edge",
    "EngineThinker",
    "ExecutionOutcome",
    "ExecutionTrace",
    "FunctionThinker",
    "GraphEnhancer",
    "GraphRun",
    "GraphValidation",
    "PromptExecutor",
    "PromptStrategy",
    "PromptTemplate",
    "ReasoningGraph",
    "ReasoningModule",
    "ReasoningNode",
    "ReasoningRuntime",
    "StrategyType",
    "ThinkingUnit",
    "ThoughtContext",
    "ThoughtMemory",
    "ThoughtResult",
    "TraceLog",
]
