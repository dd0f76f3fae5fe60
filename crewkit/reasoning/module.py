"""Reasoning units: prompt-driven modules and adapters for engines and functions."""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, Optional, Sequence, Type, Union

from pydantic import BaseModel

from ..errors import ReasoningModuleError
from .executor import PromptExecutor
from .strategies import PromptStrategy
from .templates import PromptTemplate
from .trace import ExecutionTrace
from .types import ThoughtContext, ThoughtResult

if TYPE_CHECKING:
    from ..agents.engine import ConversationEngine

logger = logging.getLogger(__name__)

STRUCTURED_CONFIDENCE = 0.9
TEXT_CONFIDENCE = 0.7


class ReasoningModule:
    """
    One reasoning step: render a template, wrap it with strategies, run it.

    The template sees the run's input, memory and metadata merged, in that
    order of precedence (later wins).
    """

    def __init__(
        self,
        name: str,
        template: Union[str, PromptTemplate],
        executor: PromptExecutor,
        strategies: Sequence[PromptStrategy] = (),
        schema: Optional[Type[BaseModel]] = None,
        max_retries: int = 1,
        description: str = "",
    ):
        self.name = name
        self.description = description
        self.template = template if isinstance(template, PromptTemplate) else PromptTemplate(template)
        self.executor = executor
        self.strategies = list(strategies)
        self.schema = schema
        self.max_retries = max_retries
        self.module_id = f"mod_{uuid.uuid4().hex[:12]}"

    def build_prompt(self, context: ThoughtContext):
        prompt = self.template.render(context.template_values())
        notes = []
        for strategy in self.strategies:
            prompt, note = strategy.apply(prompt)
            notes.append(note)
        return prompt, "; ".join(notes)

    async def think(self, context: ThoughtContext) -> ThoughtResult:
        """
        Run the module once.

        Raises:
            ReasoningModuleError: Wrapping the underlying failure; the failed
                trace is available as ``error.trace``
        """
        started = time.time()
        prompt, reasoning = self.build_prompt(context)
        strategy_names = ", ".join(s.type.value for s in self.strategies)

        try:
            outcome = await self.executor.execute(prompt, schema=self.schema, max_retries=self.max_retries)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            error = ReasoningModuleError(f"Reasoning module execution failed: {e}")
            error.trace = ExecutionTrace(
                source_id=self.name,
                input=dict(context.input),
                output=None,
                duration_ms=(time.time() - started) * 1000,
                error=str(e),
                reasoning=reasoning,
                strategy=strategy_names,
            )
            raise error from e

        duration_ms = (time.time() - started) * 1000
        trace = ExecutionTrace(
            source_id=self.name,
            input=dict(context.input),
            output=outcome.output,
            duration_ms=duration_ms,
            reasoning=reasoning,
            strategy=strategy_names,
            usage=outcome.usage,
        )
        return ThoughtResult(
            output=outcome.output,
            reasoning=reasoning,
            confidence=STRUCTURED_CONFIDENCE if self.schema is not None else TEXT_CONFIDENCE,
            usage=outcome.usage,
            cost=outcome.cost,
            duration_ms=duration_ms,
            trace=trace,
        )

    def plan(self) -> Dict[str, Any]:
        """Rough time and complexity estimate, for display."""
        count = len(self.strategies)
        has_schema = self.schema is not None
        complexity = "low"
        if count > 2 or has_schema:
            complexity = "medium"
        if count > 4:
            complexity = "high"
        estimated_ms = 1000 + count * 500 + (1000 if has_schema else 0)
        return {"estimated_time_ms": estimated_ms, "complexity": complexity}

    def info(self) -> Dict[str, Any]:
        return {
            "id": self.module_id,
            "name": self.name,
            "description": self.description,
            "strategies": [s.type.value for s in self.strategies],
            "has_schema": self.schema is not None,
        }


class EngineThinker:
    """Runs a conversation engine as a graph node.

    The prompt is the rendered template, or the run input's ``query`` when
    no template is given.
    """

    def __init__(self, engine: "ConversationEngine", template: Union[str, PromptTemplate, None] = None):
        self.engine = engine
        if isinstance(template, str):
            template = PromptTemplate(template)
        self.template = template

    @property
    def name(self) -> str:
        return self.engine.name

    async def think(self, context: ThoughtContext) -> ThoughtResult:
        values = context.template_values()
        prompt = self.template.render(values) if self.template else str(values.get("query", ""))
        result = await self.engine.execute(prompt)
        trace = ExecutionTrace(
            source_id=self.engine.name,
            input=dict(context.input),
            output=result.output,
            duration_ms=result.duration_ms,
            usage=result.usage,
        )
        return ThoughtResult(
            output=result.output,
            confidence=TEXT_CONFIDENCE,
            usage=result.usage,
            cost=result.cost,
            duration_ms=result.duration_ms,
            trace=trace,
        )


class FunctionThinker:
    """Wraps a plain (sync or async) function of the context as a graph node."""

    def __init__(self, func: Callable[[ThoughtContext], Union[Any, Awaitable[Any]]], name: str = ""):
        self.func = func
        self.name = name or getattr(func, "__name__", "function")

    async def think(self, context: ThoughtContext) -> ThoughtResult:
        started = time.time()
        value = self.func(context)
        if asyncio.iscoroutine(value):
            value = await value
        if isinstance(value, ThoughtResult):
            return value
        duration_ms = (time.time() - started) * 1000
        return ThoughtResult(
            output=value,
            confidence=1.0,
            duration_ms=duration_ms,
            trace=ExecutionTrace(source_id=self.name, input=dict(context.input), output=value, duration_ms=duration_ms),
        )
