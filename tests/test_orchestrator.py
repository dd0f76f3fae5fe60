"""Tests for the persona-driven orchestrator."""

from __future__ import annotations

import pytest

from crewkit.agents import AgentConfig, Orchestrator, Persona
from crewkit.capabilities import Capability, CapabilityRegistry, obj
from crewkit.errors import CapabilityNotFoundError
from crewkit.providers.types import LLMResponse
from crewkit.retry import RetryConfig


class _FakeProvider:
    def __init__(self, responses: list):
        self._responses = list(responses)
        self.model = "fake-model"
        self.requests: list[dict] = []

    async def generate(self, messages, tools, config):  # noqa: ANN001
        self.requests.append({"messages": list(messages), "tools": tools, "config": config})
        item = self._responses.pop(0) if self._responses else LLMResponse(text="done")
        if isinstance(item, Exception):
            raise item
        return item

    async def generate_stream(self, messages, tools, config):  # noqa: ANN001
        raise AssertionError("streaming path is not expected in this test")


PERSONA = Persona(role="Research Lead", description="Leads research", backstory="Former analyst")


def _usage(total: int) -> dict:
    return {"prompt_tokens": total, "completion_tokens": 0, "total_tokens": total}


@pytest.mark.asyncio
async def test_runs_agents_in_order_then_consolidates():
    provider = _FakeProvider(
        [
            LLMResponse(text="market facts", usage=_usage(10)),
            LLMResponse(text="risk notes", usage=_usage(20)),
            LLMResponse(text="final recommendation", usage=_usage(5)),
        ]
    )
    orchestrator = Orchestrator(
        PERSONA,
        [AgentConfig(name="market", description="Markets"), AgentConfig(name="risk", description="Risks")],
        provider,
    )

    result = await orchestrator.execute("Should we expand?")

    assert result.output == "final recommendation"
    assert [r.agent_id for r in result.sub_results] == ["market", "risk", "Research Lead:consolidation"]
    assert result.usage.total_tokens == 35
    assert result.cost == pytest.approx(sum(r.cost for r in result.sub_results))

    # Both agents get the same query and the orchestrator's persona.
    for request in provider.requests[:2]:
        assert request["messages"][0].text == "Should we expand?"
        assert request["config"].system_prompt.startswith("PERSONA CONTEXT:\nYou are operating as: Research Lead")
        assert "8. IMPORTANT" in request["config"].system_prompt

    consolidation = provider.requests[2]
    assert consolidation["config"].temperature == 0.7
    assert consolidation["config"].max_tokens == 1500
    assert "market: market facts" in consolidation["messages"][0].text
    assert "risk: risk notes" in consolidation["messages"][0].text


@pytest.mark.asyncio
async def test_consolidation_failure_falls_back_to_summary():
    provider = _FakeProvider(
        [
            LLMResponse(text="one"),
            LLMResponse(text="two"),
            ValueError("invalid request"),
        ]
    )
    orchestrator = Orchestrator(
        PERSONA,
        [AgentConfig(name="a"), AgentConfig(name="b")],
        provider,
        retry_config=RetryConfig(max_attempts=1),
    )

    result = await orchestrator.execute("q")

    assert result.output == (
        "Based on the analysis from 2 specialized agents, here's a summary of the findings:\n\na: one\n\nb: two"
    )
    assert result.sub_results[-1].metadata == {"fallback": True}


@pytest.mark.asyncio
async def test_empty_consolidation_uses_placeholder():
    provider = _FakeProvider([LLMResponse(text="one"), LLMResponse(text="")])
    orchestrator = Orchestrator(PERSONA, [AgentConfig(name="a")], provider)

    result = await orchestrator.execute("q")

    assert result.output == "Unable to generate final answer."


@pytest.mark.asyncio
async def test_agent_failure_fails_the_run():
    provider = _FakeProvider([LLMResponse()])
    orchestrator = Orchestrator(PERSONA, [AgentConfig(name="a")], provider)

    with pytest.raises(Exception, match="No response from model"):
        await orchestrator.execute("q")


def test_shared_capabilities_are_merged_into_each_agent():
    own = CapabilityRegistry([Capability("search", "", obj(), lambda: "x"), Capability("calc", "", obj(), lambda: 1)])
    shared = CapabilityRegistry([Capability("notify", "", obj(), lambda: None)])

    orchestrator = Orchestrator(
        PERSONA,
        [AgentConfig(name="a", capabilities=("search",)), AgentConfig(name="b")],
        _FakeProvider([]),
        capabilities=own,
        shared_capabilities=shared,
    )

    first, second = orchestrator.engines
    assert first.capabilities.names() == ["search", "notify"]
    assert second.capabilities.names() == ["search", "calc", "notify"]
    assert first.config.requires_human_input is False
    assert first.config.persona == PERSONA


def test_agent_may_name_a_shared_capability():
    shared = CapabilityRegistry([Capability("add", "", obj(), lambda: 2)])

    orchestrator = Orchestrator(
        PERSONA,
        [AgentConfig(name="calc", capabilities=("add",))],
        _FakeProvider([]),
        shared_capabilities=shared,
    )

    assert orchestrator.engines[0].capabilities.names() == ["add"]


def test_unknown_capability_name_still_raises():
    with pytest.raises(CapabilityNotFoundError, match="No capability found: missing"):
        Orchestrator(
            PERSONA,
            [AgentConfig(name="a", capabilities=("missing",))],
            _FakeProvider([]),
            shared_capabilities=CapabilityRegistry([Capability("add", "", obj(), lambda: 2)]),
        )


def test_requires_at_least_one_agent():
    with pytest.raises(ValueError):
        Orchestrator(PERSONA, [], _FakeProvider([]))
