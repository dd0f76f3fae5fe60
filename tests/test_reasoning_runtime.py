"""Tests for reasoning modules, templates, memory, traces and the runtime."""

from __future__ import annotations

from datetime import datetime, timedelta

import pytest
from pydantic import BaseModel

from crewkit.agents import AgentConfig, ConversationEngine
from crewkit.errors import GraphValidationError, ModelResponseError, ReasoningModuleError, StructuredOutputError
from crewkit.pricing import Usage
from crewkit.providers.types import LLMResponse
from crewkit.reasoning import (
    EngineThinker,
    ExecutionTrace,
    GraphEnhancer,
    PromptExecutor,
    PromptStrategy,
    PromptTemplate,
    ReasoningGraph,
    ReasoningNode,
    ReasoningRuntime,
    StrategyType,
    ThoughtContext,
    ThoughtMemory,
    TraceLog,
)


class _FakeProvider:
    def __init__(self, responses: list[LLMResponse] | None = None):
        self._responses = list(responses or [])
        self.model = "fake-model"
        self.requests: list[dict] = []

    async def generate(self, messages, tools, config):  # noqa: ANN001
        self.requests.append({"messages": list(messages), "tools": tools, "config": config})
        if self._responses:
            return self._responses.pop(0)
        return LLMResponse(text="done")

    async def generate_stream(self, messages, tools, config):  # noqa: ANN001
        raise AssertionError("streaming path is not expected in this test")


class Verdict(BaseModel):
    approved: bool
    reason: str


class TestPromptTemplate:
    def test_variables_blocks_and_partials(self):
        template = PromptTemplate(
            "{{>intro}}\nTopic: {{topic}}\n{{#each items}}- {{this}}\n{{/each}}{{#if urgent}}URGENT{{/if}}",
            partials={"intro": "Hello {{name}}"},
        )

        rendered = template.render({"name": "Ada", "topic": "graphs", "items": ["a", "b"], "urgent": True})

        assert rendered == "Hello Ada\nTopic: graphs\n- a\n- b\nURGENT"

    def test_unknown_variables_are_left_in_place(self):
        template = PromptTemplate("{{known}} and {{unknown}}", variables={"known": "yes"})

        assert template.render() == "yes and {{unknown}}"
        assert template.variables_used() == ["known", "unknown"]
        assert template.missing({}) == ["unknown"]

    def test_false_if_and_missing_each_render_empty(self):
        template = PromptTemplate("a{{#if flag}}b{{/if}}c{{#each list}}{{this}}{{/each}}")

        assert template.render({"flag": False}) == "ac"


class TestStrategies:
    def test_chain_of_thought(self):
        prompt, note = PromptStrategy.parse("chain-of-thought").apply("Why?")

        assert prompt.startswith("Why?\n\nLet's think through this step by step:")
        assert note == "Applied chain-of-thought strategy for systematic reasoning"

    def test_multi_perspective_uses_given_viewpoints(self):
        prompt, note = PromptStrategy(StrategyType.MULTI_PERSPECTIVE, perspectives=("legal", "ops")).apply("Plan")

        assert "Legal Perspective:\nOps Perspective:" in prompt
        assert note.endswith("legal, ops viewpoints")

    def test_unknown_strategy_name(self):
        with pytest.raises(ValueError):
            PromptStrategy.parse("telepathy")


class TestThoughtMemory:
    def test_scoped_reads_writes_and_export(self):
        memory = ThoughtMemory()
        memory.write("s1", "a", 1)
        memory.update_scope("s1", {"b": [1, 2]})
        memory.write("s2", "a", 2)

        assert memory.read("s1") == {"a": 1, "b": [1, 2]}
        assert memory.read("s2", "a") == 2
        assert memory.has("s1", "b")
        assert memory.size() == 3
        assert memory.size("s1") == 2

        snapshot = memory.export()
        snapshot["s1"]["b"].append(3)
        assert memory.read("s1", "b") == [1, 2]

        assert memory.delete("s1", "a") is True
        assert memory.delete("s1", "a") is False
        memory.clear("s2")
        assert memory.scopes() == ["s1"]

        restored = ThoughtMemory()
        restored.load(memory.export())
        assert restored.read("s1") == {"b": [1, 2]}
        restored.clear_all()
        assert restored.size() == 0


class TestTraceLog:
    def test_bounded_and_queries(self):
        log = TraceLog(max_entries=2)
        log.add(ExecutionTrace(source_id="a", input={}, output=1, duration_ms=10))
        log.add(ExecutionTrace(source_id="b", input={}, output=None, duration_ms=20, error="bad", usage=Usage(1, 1, 2)))
        log.add(ExecutionTrace(source_id="a", input={}, output=3, duration_ms=30))

        assert len(log) == 2
        assert [t.source_id for t in log.all()] == ["b", "a"]
        assert len(log.for_source("a")) == 1
        assert [t.error for t in log.errors()] == ["bad"]
        assert log.stats() == {
            "total": 2,
            "errors": 1,
            "success_rate": 0.5,
            "average_duration_ms": 25.0,
            "total_tokens": 2,
        }
        now = datetime.now()
        assert len(log.between(now - timedelta(minutes=1), now + timedelta(minutes=1))) == 2


class TestPromptExecutor:
    @pytest.mark.asyncio
    async def test_text_prompt(self):
        provider = _FakeProvider([LLMResponse(text="answer", usage={"prompt_tokens": 5, "completion_tokens": 5})])
        outcome = await PromptExecutor(provider).execute("question")

        assert outcome.output == "answer"
        assert outcome.usage.total_tokens == 10
        assert provider.requests[0]["config"].response_format is None

    @pytest.mark.asyncio
    async def test_structured_prompt_retries_then_validates(self):
        provider = _FakeProvider(
            [LLMResponse(text="oops"), LLMResponse(text='{"approved": true, "reason": "fine"}')]
        )
        executor = PromptExecutor(provider, retry_delay=0)

        outcome = await executor.execute("decide", schema=Verdict, max_retries=2)

        assert outcome.output == Verdict(approved=True, reason="fine")
        assert outcome.attempts == 2
        assert provider.requests[0]["messages"][0].text.endswith(
            "Please respond with valid JSON that matches the required schema."
        )
        assert provider.requests[0]["config"].response_format is not None

    @pytest.mark.asyncio
    async def test_errors_after_last_attempt(self):
        executor = PromptExecutor(_FakeProvider([LLMResponse(text='{"approved": "maybe"}')]), retry_delay=0)
        with pytest.raises(StructuredOutputError, match="Schema validation failed"):
            await executor.execute("decide", schema=Verdict)

        executor = PromptExecutor(_FakeProvider([LLMResponse(text="")]), retry_delay=0)
        with pytest.raises(ModelResponseError, match="No response content received"):
            await executor.execute("q")


class TestReasoningRuntime:
    @pytest.mark.asyncio
    async def test_run_module_stores_result_and_trace(self):
        provider = _FakeProvider([LLMResponse(text="step by step answer")])
        runtime = ReasoningRuntime(provider)
        module = runtime.create_module("analyze", "Analyze {{topic}}", strategies=["chain-of-thought"])

        result = await runtime.run(module, {"topic": "caching"}, scope="s")

        assert result.output == "step by step answer"
        assert result.confidence == 0.7
        assert result.reasoning == "Applied chain-of-thought strategy for systematic reasoning"
        assert provider.requests[0]["messages"][0].text.startswith("Analyze caching\n\nLet's think")
        assert runtime.memory.read("s", "analyze_result") == "step by step answer"
        assert runtime.traces.for_source("analyze")[0].strategy == "chain-of-thought"

    @pytest.mark.asyncio
    async def test_structured_module_has_higher_confidence(self):
        provider = _FakeProvider([LLMResponse(text='{"approved": false, "reason": "risky"}')])
        runtime = ReasoningRuntime(provider)
        module = runtime.create_module("judge", "Judge {{plan}}", schema=Verdict)

        result = await runtime.run(module, {"plan": "x"})

        assert result.output == Verdict(approved=False, reason="risky")
        assert result.confidence == 0.9
        assert module.plan() == {"estimated_time_ms": 2000, "complexity": "medium"}
        assert module.info()["has_schema"] is True

    @pytest.mark.asyncio
    async def test_module_failure_records_failed_trace(self):
        runtime = ReasoningRuntime(_FakeProvider([LLMResponse(text="")]))
        module = runtime.create_module("empty", "Say something")

        with pytest.raises(ReasoningModuleError, match="Reasoning module execution failed"):
            await runtime.run(module, {})

        assert runtime.traces.errors()[0].source_id == "empty"

    def test_create_module_requires_provider(self):
        with pytest.raises(ValueError):
            ReasoningRuntime().create_module("m", "t")

    @pytest.mark.asyncio
    async def test_execute_graph_validates_and_stores_outputs(self):
        runtime = ReasoningRuntime()
        graph = ReasoningGraph()
        graph.add_node(ReasoningNode("first"), lambda ctx: ctx.input["query"].upper())
        graph.add_node(ReasoningNode("second", dependencies=["first"]), lambda ctx: ctx.memory["first"] + "!")

        run = await runtime.execute_graph(graph, {"query": "hi"}, scope="g")

        assert run.outputs == {"first": "HI", "second": "HI!"}
        assert runtime.memory.read("g") == {"graph_result_0": "HI", "graph_result_1": "HI!"}
        assert len(runtime.traces) == 2

        broken = ReasoningGraph()
        broken.add_node(ReasoningNode("x", dependencies=["missing"]), lambda ctx: None)
        with pytest.raises(GraphValidationError, match="depends on missing node"):
            await runtime.execute_graph(broken, {})

    @pytest.mark.asyncio
    async def test_graph_enhancer_and_engine_thinker(self):
        provider = _FakeProvider(
            [LLMResponse(text="decomposed", usage={"prompt_tokens": 3, "completion_tokens": 3}), LLMResponse(text="final")]
        )
        runtime = ReasoningRuntime()
        planner = ConversationEngine(AgentConfig(name="planner"), provider)
        graph = ReasoningGraph().add_node(ReasoningNode("plan"), EngineThinker(planner, "Plan for: {{query}}"))
        engine = ConversationEngine(AgentConfig(name="answerer"), provider, reasoning=GraphEnhancer(runtime, graph))

        result = await engine.execute("ship it")

        assert provider.requests[0]["messages"][0].text == "Plan for: ship it"
        enhanced = provider.requests[1]["messages"][0].text
        assert enhanced.startswith("Original Query: ship it")
        assert "Reasoning step plan:\ndecomposed" in enhanced
        assert result.output == "final"
        assert result.sub_results[0].agent_id == "reasoning"
        assert result.sub_results[0].usage.total_tokens == 6
        assert result.usage.total_tokens == 6

    @pytest.mark.asyncio
    async def test_enhancer_leaves_query_alone_when_nothing_runs(self):
        runtime = ReasoningRuntime()
        graph = ReasoningGraph().add_node(ReasoningNode("never", condition=lambda ctx: False), lambda ctx: "x")

        query, result = await GraphEnhancer(runtime, graph).enhance("original")

        assert query == "original"
        assert result.metadata == {"executed": [], "skipped": ["never"]}


def test_thought_context_template_values_precedence():
    context = ThoughtContext(input={"a": 1, "b": 1}, memory={"b": 2, "c": 2}, metadata={"c": 3})

    assert context.template_values() == {"a": 1, "b": 2, "c": 3}
