"""Coordination strategies for running several agents on one request."""

from __future__ import annotations

import asyncio
import logging
import time
from enum import Enum
from typing import List, Optional, Sequence, Tuple

from ..agents.prompts import build_collaborative_synthesis, build_concatenation
from ..agents.protocol import AgentResult, Runnable
from ..errors import CoordinationError, UnknownStrategyError
from ..observability import AgentObserver
from ..pricing import Usage, calculate_cost
from ..providers.base import ChatProvider
from ..providers.types import GenerationConfig, Message
from ..retry import RetryConfig, retry_with_backoff

logger = logging.getLogger(__name__)

SYNTHESIS_TEMPERATURE = 0.7
SYNTHESIS_MAX_TOKENS = 1500


class CoordinationStrategy(str, Enum):
    SEQUENTIAL = "sequential"
    PARALLEL = "parallel"
    COMPETITIVE = "competitive"
    COLLABORATIVE = "collaborative"
    CONDITIONAL = "conditional"

    @classmethod
    def parse(cls, value: "str | CoordinationStrategy") -> "CoordinationStrategy":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            raise UnknownStrategyError(str(value)) from None


class Group:
    """
    A set of members (engines, orchestrators or other groups) run under one
    coordination strategy.

    - sequential: each member gets the previous member's output; the first
      failure stops the run.
    - parallel: all members run concurrently on the same request; results keep
      member order; any failure fails the run. The output is a plain
      concatenation of member outputs.
    - competitive: all members run concurrently and the first outcome to
      settle wins, success or failure. Members that have not settled are
      cancelled.
    - collaborative: parallel, then one model call merges the outputs. If that
      call fails (or no provider is set) the concatenation is used instead.
    - conditional: runs the first member only.
    """

    def __init__(
        self,
        strategy: "str | CoordinationStrategy",
        members: Sequence[Runnable],
        name: str = "group",
        provider: Optional[ChatProvider] = None,
        model: str = "gpt-4o-mini",
        observer: Optional[AgentObserver] = None,
        retry_config: Optional[RetryConfig] = None,
    ):
        if not members:
            raise ValueError("Group needs at least one member")
        self.strategy = CoordinationStrategy.parse(strategy)
        self.members = list(members)
        self.name = name
        self.provider = provider
        self.model = model
        self.observer = observer or AgentObserver(agent_id=name)
        self.retry_config = retry_config or RetryConfig()

    async def execute(self, query: str) -> AgentResult:
        """
        Run the members on ``query`` under the group's strategy.

        Raises:
            CoordinationError: If a member fails (except in competitive mode,
                where a failure that settles first is returned as data)
        """
        start_time = time.time()
        self.observer.log_step_start(self.name, f"{self.strategy.value}: {query}", agent_id=self.name)
        handlers = {
            CoordinationStrategy.SEQUENTIAL: self._run_sequential,
            CoordinationStrategy.PARALLEL: self._run_parallel,
            CoordinationStrategy.COMPETITIVE: self._run_competitive,
            CoordinationStrategy.COLLABORATIVE: self._run_collaborative,
            CoordinationStrategy.CONDITIONAL: self._run_conditional,
        }

        try:
            result = await handlers[self.strategy](query, start_time)
        except CoordinationError as e:
            self._log_failure(start_time, str(e))
            raise
        except Exception as e:
            self._log_failure(start_time, str(e))
            raise CoordinationError(f"Group execution failed: {e}") from e

        self.observer.log_step_end(self.name, result.duration_ms, success=result.success, agent_id=self.name)
        return result

    def _log_failure(self, start_time: float, message: Optional[str] = None) -> None:
        if message:
            self.observer.log_error("group_execution", message, {"strategy": self.strategy.value}, agent_id=self.name)
        self.observer.log_step_end(self.name, (time.time() - start_time) * 1000, success=False, agent_id=self.name)

    def _elapsed(self, start_time: float) -> float:
        return (time.time() - start_time) * 1000

    @staticmethod
    def _require_success(result: AgentResult) -> AgentResult:
        """Raise when a member reported its failure as data, as a competitive group does."""
        if not result.success:
            raise CoordinationError(f"Group execution failed: {result.error}")
        return result

    async def _run_sequential(self, query: str, start_time: float) -> AgentResult:
        results: List[AgentResult] = []
        current = query
        for index, member in enumerate(self.members):
            logger.info(f"[{self.name}] Sequential member {index + 1}/{len(self.members)}: {member.name}")
            result = self._require_success(await member.execute(current))
            results.append(result)
            current = result.text

        return AgentResult.aggregate(
            agent_id=self.name,
            output=results[-1].output,
            sub_results=results,
            duration_ms=self._elapsed(start_time),
            metadata={"strategy": self.strategy.value},
        )

    async def _fan_out(self, query: str) -> List[AgentResult]:
        """Run every member concurrently; results in member order. Cancels the rest on failure."""
        tasks = [asyncio.ensure_future(member.execute(query)) for member in self.members]
        try:
            results = list(await asyncio.gather(*tasks))
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise
        return [self._require_success(result) for result in results]

    async def _run_parallel(self, query: str, start_time: float) -> AgentResult:
        results = await self._fan_out(query)
        return AgentResult.aggregate(
            agent_id=self.name,
            output=build_concatenation("Member", [r.text for r in results]),
            sub_results=results,
            duration_ms=self._elapsed(start_time),
            metadata={"strategy": self.strategy.value},
        )

    async def _run_competitive(self, query: str, start_time: float) -> AgentResult:
        async def settle(index: int, member: Runnable) -> Tuple[int, AgentResult]:
            member_start = time.time()
            try:
                return index, await member.execute(query)
            except Exception as e:
                logger.info(f"[{self.name}] Competitor {member.name} failed: {e}")
                return index, AgentResult.failure(member.name, str(e), duration_ms=self._elapsed(member_start))

        tasks = [asyncio.ensure_future(settle(i, m)) for i, m in enumerate(self.members)]
        done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        # Several outcomes can settle in the same loop iteration; prefer member order then.
        index, outcome = min((task.result() for task in done), key=lambda item: item[0])
        logger.info(f"[{self.name}] Competitive winner: member {index + 1} ({'success' if outcome.success else 'failure'})")
        return AgentResult.aggregate(
            agent_id=self.name,
            output=outcome.output,
            sub_results=[outcome],
            duration_ms=self._elapsed(start_time),
            success=outcome.success,
            error=outcome.error,
            metadata={
                "strategy": self.strategy.value,
                "settled_index": index,
                "winner_index": index if outcome.success else -1,
                "cancelled": len(pending),
            },
        )

    async def _run_collaborative(self, query: str, start_time: float) -> AgentResult:
        results = await self._fan_out(query)
        perspectives = [(r.agent_id, r.text) for r in results]
        concatenation = build_concatenation("Member", [text for _, text in perspectives])

        synthesis = await self._synthesize(query, perspectives)
        sub_results = list(results)
        if synthesis is not None:
            sub_results.append(synthesis)
            output = synthesis.output
        else:
            output = concatenation

        return AgentResult.aggregate(
            agent_id=self.name,
            output=output,
            sub_results=sub_results,
            duration_ms=self._elapsed(start_time),
            metadata={"strategy": self.strategy.value, "synthesized": synthesis is not None},
        )

    async def _synthesize(self, query: str, perspectives: Sequence[Tuple[str, str]]) -> Optional[AgentResult]:
        if self.provider is None:
            logger.warning(f"[{self.name}] No provider for collaborative synthesis; using concatenation")
            return None

        started = time.time()
        system, user = build_collaborative_synthesis(query, perspectives)
        config = GenerationConfig(
            system_prompt=system,
            temperature=SYNTHESIS_TEMPERATURE,
            max_tokens=SYNTHESIS_MAX_TOKENS,
        )

        async def make_request():
            return await self.provider.generate(messages=[Message.user(user)], tools=None, config=config)

        try:
            response = await retry_with_backoff(make_request, self.retry_config)
        except Exception as e:
            self.observer.log_error("collaborative_synthesis", str(e), agent_id=self.name)
            return None
        if not response.text:
            self.observer.log_error("collaborative_synthesis", "Empty synthesis response", agent_id=self.name)
            return None

        usage = Usage.from_dict(response.usage)
        cost = calculate_cost(self.model, usage)
        duration_ms = (time.time() - started) * 1000
        self.observer.log_llm_request(self.model, usage.total_tokens, cost, duration_ms, "synthesis", agent_id=self.name)
        return AgentResult(
            agent_id=f"{self.name}:synthesis",
            output=response.text,
            usage=usage,
            cost=cost,
            duration_ms=duration_ms,
        )

    async def _run_conditional(self, query: str, start_time: float) -> AgentResult:
        # Selection always falls on the first member; there is no selection rule yet.
        result = self._require_success(await self.members[0].execute(query))
        return AgentResult.aggregate(
            agent_id=self.name,
            output=result.output,
            sub_results=[result],
            duration_ms=self._elapsed(start_time),
            metadata={"strategy": self.strategy.value, "selected_index": 0},
        )

    def __repr__(self) -> str:
        return f"Group(name={self.name!r}, strategy={self.strategy.value}, members={[m.name for m in self.members]})"
