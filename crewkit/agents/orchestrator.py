"""Persona-driven orchestrator that runs several agents and consolidates their answers."""

from __future__ import annotations

import logging
import time
from dataclasses import replace
from typing import List, Optional, Sequence, Tuple

from ..capabilities.registry import CapabilityRegistry
from ..observability import AgentObserver
from ..pricing import Usage, calculate_cost
from ..providers.base import ChatProvider
from ..providers.types import GenerationConfig, Message
from ..retry import RetryConfig, retry_with_backoff
from .base import AgentConfig, Persona
from .engine import ConversationEngine
from .prompts import build_consolidation_fallback, build_consolidation_messages
from .protocol import AgentResult

logger = logging.getLogger(__name__)

CONSOLIDATION_TEMPERATURE = 0.7
CONSOLIDATION_MAX_TOKENS = 1500


class Orchestrator:
    """
    Runs its agents one after another on the same request, then asks the
    model, in the orchestrator's persona, for one consolidated answer.

    Every agent is rebuilt from its config with the orchestrator's persona,
    ``requires_human_input=False``, and the shared capabilities merged into
    its own. A failing agent fails the whole run. A failing consolidation call
    falls back to a plain summary of the agent outputs.
    """

    def __init__(
        self,
        persona: Persona,
        agents: Sequence[AgentConfig],
        provider: ChatProvider,
        capabilities: Optional[CapabilityRegistry] = None,
        shared_capabilities: Optional[CapabilityRegistry] = None,
        model: str = "gpt-4o-mini",
        observer: Optional[AgentObserver] = None,
        retry_config: Optional[RetryConfig] = None,
    ):
        if not agents:
            raise ValueError("Orchestrator needs at least one agent")
        self.persona = persona
        self.provider = provider
        self.model = model
        self.observer = observer or AgentObserver(agent_id=persona.role)
        self.retry_config = retry_config or RetryConfig()

        own = capabilities or CapabilityRegistry()
        shared = shared_capabilities or CapabilityRegistry()
        self.engines: List[ConversationEngine] = [
            self._build_engine(config, own, shared) for config in agents
        ]

    @property
    def name(self) -> str:
        return self.persona.role

    def _build_engine(
        self,
        config: AgentConfig,
        own: CapabilityRegistry,
        shared: CapabilityRegistry,
    ) -> ConversationEngine:
        config = config.with_persona(self.persona, requires_human_input=False)
        if config.capabilities:
            # Names resolve against own and shared; shared ones are always offered.
            available = own.merged(shared)
            selected = CapabilityRegistry(available.get(name) for name in config.capabilities)
            config = replace(config, capabilities=())
        else:
            selected = own
        return ConversationEngine(
            config,
            self.provider,
            capabilities=selected.merged(shared),
            observer=self.observer,
            retry_config=self.retry_config,
        )

    async def execute(self, query: str) -> AgentResult:
        """
        Run every agent on ``query`` and consolidate.

        Returns:
            AgentResult whose sub-results are the agent results followed by
            the consolidation call
        """
        start_time = time.time()
        self.observer.log_step_start(self.name, query, agent_id=self.name)
        logger.info(f"[{self.name}] Executing {len(self.engines)} agents in sequence")

        agent_results: List[AgentResult] = []
        for index, engine in enumerate(self.engines, start=1):
            logger.info(f"[{self.name}] Agent {index}/{len(self.engines)}: {engine.name}")
            agent_results.append(await engine.execute(query))

        outputs = [(engine.name, result.text) for engine, result in zip(self.engines, agent_results)]
        consolidation = await self._consolidate(query, outputs)

        duration_ms = (time.time() - start_time) * 1000
        self.observer.log_step_end(self.name, duration_ms, agent_id=self.name)
        return AgentResult.aggregate(
            agent_id=self.name,
            output=consolidation.output,
            sub_results=[*agent_results, consolidation],
            duration_ms=duration_ms,
            metadata={"role": self.persona.role, "agents": [e.name for e in self.engines]},
        )

    async def _consolidate(self, query: str, outputs: Sequence[Tuple[str, str]]) -> AgentResult:
        started = time.time()
        system, user = build_consolidation_messages(self.persona, query, outputs)
        config = GenerationConfig(
            system_prompt=system,
            temperature=CONSOLIDATION_TEMPERATURE,
            max_tokens=CONSOLIDATION_MAX_TOKENS,
        )

        async def make_request():
            return await self.provider.generate(messages=[Message.user(user)], tools=None, config=config)

        agent_id = f"{self.name}:consolidation"
        try:
            response = await retry_with_backoff(make_request, self.retry_config)
        except Exception as e:
            self.observer.log_error("consolidation", str(e), agent_id=self.name)
            return AgentResult(
                agent_id=agent_id,
                output=build_consolidation_fallback(outputs),
                duration_ms=(time.time() - started) * 1000,
                metadata={"fallback": True},
            )

        usage = Usage.from_dict(response.usage)
        cost = calculate_cost(self.model, usage)
        duration_ms = (time.time() - started) * 1000
        self.observer.log_llm_request(self.model, usage.total_tokens, cost, duration_ms, "consolidation", agent_id=self.name)
        return AgentResult(
            agent_id=agent_id,
            output=response.text or "Unable to generate final answer.",
            usage=usage,
            cost=cost,
            duration_ms=duration_ms,
            metadata={"fallback": False},
        )

    def __repr__(self) -> str:
        return f"Orchestrator(role={self.persona.role!r}, agents={[e.name for e in self.engines]})"
