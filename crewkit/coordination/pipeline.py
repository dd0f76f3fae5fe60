"""Pipeline builder: an ordered, optionally conditional sequence of agent steps."""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from ..agents.prompts import build_concatenation
from ..agents.protocol import AgentResult, Runnable
from ..errors import PipelineError, UnknownStepKindError
from ..observability import AgentObserver
from ..pricing import Usage, sum_usage
from .group import Group

logger = logging.getLogger(__name__)


class StepKind(str, Enum):
    SINGLE = "single"
    GROUP = "group"
    PARALLEL = "parallel"
    CONDITIONAL = "conditional"

    @classmethod
    def parse(cls, value: "str | StepKind") -> "StepKind":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            raise UnknownStepKindError(str(value)) from None


class ErrorHandling(str, Enum):
    """What a pipeline does when a step fails.

    ``retry`` is accepted but currently behaves like ``stop``.
    """

    STOP = "stop"
    CONTINUE = "continue"
    RETRY = "retry"

    @classmethod
    def parse(cls, value: "str | ErrorHandling") -> "ErrorHandling":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            raise ValueError(f"Unknown error handling mode: {value}") from None


@dataclass
class StepRecord:
    step_id: str
    kind: StepKind
    result: AgentResult


@dataclass
class PipelineContext:
    """What step conditions see: the original request and the results so far."""

    query: str
    results: List[StepRecord] = field(default_factory=list)

    @property
    def last(self) -> Optional[AgentResult]:
        return self.results[-1].result if self.results else None

    def outputs(self) -> Dict[str, Any]:
        return {record.step_id: record.result.output for record in self.results}


StepCondition = Callable[[PipelineContext], bool]


@dataclass(frozen=True)
class PipelineStep:
    """One step of a pipeline.

    Attributes:
        id: Unique within the pipeline
        kind: How ``units`` are run
        units: One runnable, or several for a parallel step
        condition: Predicate over the running context; the step is skipped when it is false
        else_of: For the ``else`` half of a conditional pair, the id of the ``if`` step
    """

    id: str
    kind: StepKind
    units: Tuple[Runnable, ...]
    condition: Optional[StepCondition] = None
    else_of: Optional[str] = None

    @property
    def has_condition(self) -> bool:
        return self.condition is not None or self.else_of is not None


@dataclass
class PipelineResult:
    """Outcome of a pipeline run.

    ``success`` is False only in ``continue`` mode, where ``steps`` holds the
    steps that completed before ``error``.
    """

    success: bool
    steps: List[StepRecord]
    final_answer: Any
    usage: Usage
    cost: float
    duration_ms: float
    error: Optional[str] = None
    skipped: List[str] = field(default_factory=list)

    def to_agent_result(self, agent_id: str) -> AgentResult:
        return AgentResult.aggregate(
            agent_id=agent_id,
            output=self.final_answer,
            sub_results=[record.result for record in self.steps],
            duration_ms=self.duration_ms,
            success=self.success,
            error=self.error,
            metadata={"skipped": list(self.skipped)},
        )


class Pipeline:
    """
    Fluent builder and runner for an ordered list of steps.

    Example:
        pipeline = (
            Pipeline("research")
            .start(researcher)
            .if_(lambda ctx: "code" in ctx.query, coder)
            .else_(writer)
            .parallel([reviewer_a, reviewer_b])
        )
        result = await pipeline.execute("...")

    Each executed step receives the previous executed step's output as its
    input (the original request for the first one). The step list is frozen
    once the pipeline has executed; ``clear()`` resets it.
    """

    def __init__(
        self,
        name: str,
        error_handling: "str | ErrorHandling" = ErrorHandling.STOP,
        description: str = "",
        observer: Optional[AgentObserver] = None,
    ):
        self.name = name
        self.description = description
        self.error_handling = ErrorHandling.parse(error_handling)
        self.observer = observer or AgentObserver(agent_id=name)
        self.pipeline_id = f"pipe_{uuid.uuid4().hex[:12]}"
        self._steps: List[PipelineStep] = []
        self._frozen = False

    @property
    def steps(self) -> List[PipelineStep]:
        return list(self._steps)

    # Builder

    def _append(
        self,
        kind: StepKind,
        units: Sequence[Runnable],
        condition: Optional[StepCondition] = None,
        else_of: Optional[str] = None,
    ) -> "Pipeline":
        if self._frozen:
            raise PipelineError(f"Pipeline {self.name!r} has already executed; call clear() to rebuild it")
        step = PipelineStep(
            id=f"step_{len(self._steps) + 1}",
            kind=kind,
            units=tuple(units),
            condition=condition,
            else_of=else_of,
        )
        self._steps.append(step)
        return self

    @staticmethod
    def _kind_of(unit: Runnable) -> StepKind:
        return StepKind.GROUP if isinstance(unit, Group) else StepKind.SINGLE

    def start(self, unit: Runnable) -> "Pipeline":
        if self._steps:
            raise PipelineError("start() must be the first step of a pipeline")
        return self._append(self._kind_of(unit), [unit])

    def then(self, unit: Runnable) -> "Pipeline":
        return self._append(self._kind_of(unit), [unit])

    def parallel(self, units: Sequence[Runnable]) -> "Pipeline":
        if not units:
            raise ValueError("parallel() needs at least one agent or group")
        return self._append(StepKind.PARALLEL, units)

    def if_(self, condition: StepCondition, unit: Runnable) -> "Pipeline":
        return self._append(StepKind.CONDITIONAL, [unit], condition=condition)

    def else_(self, unit: Runnable) -> "Pipeline":
        """Run ``unit`` exactly when the preceding ``if_`` step's condition was false.

        Only an ``if_`` step directly before opens an else branch. An ``else_``
        after another ``else_`` (or after an unconditional step) is ignored with
        a warning; chain ``if_`` calls for multi-way branching.
        """
        if not self._steps or self._steps[-1].condition is None:
            logger.warning(f"[{self.name}] else_() without a preceding if_() step; ignoring it")
            return self
        return self._append(StepKind.CONDITIONAL, [unit], else_of=self._steps[-1].id)

    def clear(self) -> None:
        self._steps = []
        self._frozen = False

    def validate(self) -> List[str]:
        """Return a list of problems; empty when the pipeline can run."""
        errors: List[str] = []
        if not self._steps:
            errors.append("Pipeline must have at least one step")
        return errors

    def info(self) -> Dict[str, Any]:
        return {
            "id": self.pipeline_id,
            "name": self.name,
            "description": self.description,
            "error_handling": self.error_handling.value,
            "step_count": len(self._steps),
            "steps": [
                {
                    "id": step.id,
                    "kind": step.kind.value,
                    "has_condition": step.has_condition,
                    "units": [getattr(unit, "name", type(unit).__name__) for unit in step.units],
                }
                for step in self._steps
            ],
        }

    # Execution

    async def execute(self, query: str) -> PipelineResult:
        """
        Run the steps in order.

        Raises:
            PipelineError: If the pipeline has no steps, or a step fails and the
                error handling mode is ``stop`` (or ``retry``)
        """
        errors = self.validate()
        if errors:
            raise PipelineError(f"Invalid pipeline: {'; '.join(errors)}")
        self._frozen = True

        start_time = time.time()
        context = PipelineContext(query=query)
        outcomes: Dict[str, bool] = {}
        skipped: List[str] = []
        logger.info(f"[{self.name}] Executing pipeline with {len(self._steps)} step(s)")

        for step in self._steps:
            step_start = time.time()
            try:
                if not self._should_run(step, context, outcomes):
                    logger.debug(f"[{self.name}] Skipping {step.id}: condition is false")
                    skipped.append(step.id)
                    continue

                step_input = context.last.text if context.last is not None else query
                self.observer.log_step_start(step.id, f"{step.kind.value}: {step_input}", agent_id=self.name)
                result = await self._run_step(step, step_input)
                if not result.success:
                    raise PipelineError(f"Step {step.id} failed: {result.error}")
            except asyncio.CancelledError:
                raise
            except Exception as e:
                duration_ms = (time.time() - step_start) * 1000
                self.observer.log_error("pipeline_step", str(e), {"step": step.id}, agent_id=self.name)
                self.observer.log_step_end(step.id, duration_ms, success=False, agent_id=self.name)
                if self.error_handling is ErrorHandling.CONTINUE:
                    logger.warning(f"[{self.name}] {step.id} failed, returning partial result: {e}")
                    return self._result(context, start_time, skipped, error=str(e))
                raise PipelineError(f"Pipeline execution failed: {e}") from e

            self.observer.log_step_end(step.id, result.duration_ms, agent_id=self.name)
            context.results.append(StepRecord(step_id=step.id, kind=step.kind, result=result))

        return self._result(context, start_time, skipped)

    @staticmethod
    def _should_run(step: PipelineStep, context: PipelineContext, outcomes: Dict[str, bool]) -> bool:
        if step.else_of is not None:
            return outcomes.get(step.else_of) is False
        if step.condition is None:
            return True
        outcome = bool(step.condition(context))
        outcomes[step.id] = outcome
        return outcome

    async def _run_step(self, step: PipelineStep, step_input: str) -> AgentResult:
        if step.kind is not StepKind.PARALLEL:
            return await step.units[0].execute(step_input)

        started = time.time()
        tasks = [asyncio.ensure_future(unit.execute(step_input)) for unit in step.units]
        try:
            results = list(await asyncio.gather(*tasks))
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise
        return AgentResult.aggregate(
            agent_id=step.id,
            output=build_concatenation("Agent", [r.text for r in results], heading="Parallel execution synthesis"),
            sub_results=results,
            duration_ms=(time.time() - started) * 1000,
            metadata={"kind": step.kind.value},
        )

    def _result(
        self,
        context: PipelineContext,
        start_time: float,
        skipped: List[str],
        error: Optional[str] = None,
    ) -> PipelineResult:
        steps = list(context.results)
        results = [record.result for record in steps]
        duration_ms = (time.time() - start_time) * 1000
        logger.info(f"[{self.name}] Pipeline finished: {len(steps)} step(s) run, {len(skipped)} skipped in {duration_ms:.0f}ms")
        return PipelineResult(
            success=error is None,
            steps=steps,
            final_answer=results[-1].output if results else None,
            usage=sum_usage(r.usage for r in results),
            cost=sum(r.cost for r in results),
            duration_ms=duration_ms,
            error=error,
            skipped=skipped,
        )

    def __repr__(self) -> str:
        return f"Pipeline(name={self.name!r}, steps={len(self._steps)}, error_handling={self.error_handling.value})"
