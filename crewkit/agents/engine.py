"""Conversation engine: one agent answering one request, optionally with capabilities."""

from __future__ import annotations

import asyncio
import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol, Tuple, Union

from pydantic import ValidationError as PydanticValidationError

from ..capabilities.registry import CapabilityRegistry
from ..errors import (
    CapabilityExecutionError,
    CapabilityNotFoundError,
    CapabilityValidationError,
    ModelResponseError,
    StructuredOutputError,
)
from ..observability import AgentObserver
from ..pricing import Usage, calculate_cost
from ..providers.base import ChatProvider
from ..providers.types import (
    FunctionCall,
    FunctionResponse,
    GenerationConfig,
    LLMResponse,
    Message,
    ResponseFormat,
    StreamDelta,
    ToolSchema,
)
from ..retry import PermanentError, RetryConfig, retry_with_backoff
from .base import AgentConfig, ResponseMode
from .prompts import build_system_prompt, build_user_prompt
from .protocol import AgentResult

logger = logging.getLogger(__name__)

StreamCallback = Callable[[StreamDelta], Union[None, Awaitable[None]]]


class ReasoningEnhancer(Protocol):
    """Runs a reasoning pass before the conversation and rewrites the query."""

    async def enhance(self, query: str) -> Tuple[str, AgentResult]: ...


@dataclass
class ConversationState:
    """Mutable state of a single ``execute`` call; discarded when it returns."""

    messages: List[Message] = field(default_factory=list)
    pending_calls: List[FunctionCall] = field(default_factory=list)
    usage: Usage = field(default_factory=Usage)
    model_calls: int = 0
    capability_calls: List[Dict[str, Any]] = field(default_factory=list)


class ConversationEngine:
    """
    Drives one agent's exchange with the model service.

    Protocol per ``execute`` call:

    1. Send the system prompt and the user request, offering capabilities.
    2. If no capabilities are available, or the model requests none, the
       first answer is final (formatted for the configured response mode).
    3. Otherwise run every requested call in order. Failures become error
       payloads for that call rather than exceptions.
    4. Send the conversation plus all call results back exactly once and
       return that answer. There is no second round of calls.
    """

    def __init__(
        self,
        config: AgentConfig,
        provider: ChatProvider,
        capabilities: Optional[CapabilityRegistry] = None,
        observer: Optional[AgentObserver] = None,
        retry_config: Optional[RetryConfig] = None,
        reasoning: Optional[ReasoningEnhancer] = None,
    ):
        self.config = config
        self.provider = provider
        self.capabilities = self._select_capabilities(config, capabilities)
        self.observer = observer or AgentObserver(agent_id=config.name)
        self.retry_config = retry_config or RetryConfig()
        self.reasoning = reasoning

    @property
    def name(self) -> str:
        return self.config.name

    @staticmethod
    def _select_capabilities(
        config: AgentConfig,
        capabilities: Optional[CapabilityRegistry],
    ) -> CapabilityRegistry:
        if capabilities is None:
            if config.capabilities:
                raise CapabilityNotFoundError(config.capabilities[0])
            return CapabilityRegistry()
        if not config.capabilities:
            return capabilities
        return CapabilityRegistry(capabilities.get(name) for name in config.capabilities)

    def system_prompt(self) -> str:
        return build_system_prompt(
            name=self.config.name,
            description=self.config.description,
            persona=self.config.persona,
            requires_human_input=self.config.requires_human_input,
        )

    async def execute(
        self,
        query: str,
        upstream_context: Optional[str] = None,
        on_stream_delta: Optional[StreamCallback] = None,
    ) -> AgentResult:
        """
        Answer ``query`` and return the result.

        Args:
            query: The user request
            upstream_context: Output of an earlier agent, appended to the prompt
            on_stream_delta: Receives text chunks in streaming modes

        Returns:
            AgentResult with the final text or validated structured value

        Raises:
            ModelResponseError: If the model returns nothing
            StructuredOutputError: If a structured answer never validates
        """
        start_time = time.time()
        self.observer.log_step_start(self.name, query, agent_id=self.name)

        sub_results: List[AgentResult] = []
        try:
            if self.reasoning is not None:
                query, reasoning_result = await self.reasoning.enhance(query)
                sub_results.append(reasoning_result)

            state = ConversationState(messages=[Message.user(build_user_prompt(query, upstream_context))])
            output = await self._converse(state, on_stream_delta)
        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            self.observer.log_error("agent_execution", str(e), {"query": query[:200]}, agent_id=self.name)
            self.observer.log_step_end(self.name, duration_ms, success=False, agent_id=self.name)
            raise

        duration_ms = (time.time() - start_time) * 1000
        conversation = AgentResult(
            agent_id=self.name,
            output=output,
            usage=state.usage,
            cost=calculate_cost(self.config.model, state.usage),
            duration_ms=duration_ms,
            metadata={
                "model": self.config.model,
                "mode": self.config.mode.value,
                "model_calls": state.model_calls,
                "capability_calls": state.capability_calls,
            },
        )
        self.observer.log_step_end(self.name, duration_ms, agent_id=self.name)

        if not sub_results:
            return conversation
        return AgentResult.aggregate(
            agent_id=self.name,
            output=output,
            sub_results=[*sub_results, conversation],
            duration_ms=duration_ms,
            metadata=dict(conversation.metadata, reasoning=True),
        )

    async def _converse(self, state: ConversationState, on_stream_delta: Optional[StreamCallback]) -> Any:
        mode = self.config.mode
        tools = self.capabilities.tool_schemas() or None

        if tools is None:
            return await self._final_response(state, on_stream_delta)

        response = await self._call_model(state, tools, self._generation_config(), step="initial")
        if response.is_empty:
            raise ModelResponseError("No response from model")

        if not response.function_calls:
            logger.info(f"[{self.name}] Direct response, no capability calls requested")
            if mode.is_streaming and on_stream_delta and response.text:
                await _emit(on_stream_delta, StreamDelta(text=response.text))
            try:
                return self._format_output(response.text)
            except StructuredOutputError as e:
                if self.config.structured_retries <= 1:
                    raise
                logger.warning(f"[{self.name}] Structured output attempt 1/{self.config.structured_retries} failed: {e}")
                return await self._final_response(state, on_stream_delta, attempts=self.config.structured_retries - 1)

        state.pending_calls = list(response.function_calls)
        state.messages.append(Message.assistant_tool_calls(state.pending_calls, text=response.text))

        results: List[FunctionResponse] = []
        for call in state.pending_calls:
            results.append(await self._run_capability(state, call))
        state.pending_calls = []
        state.messages.append(Message.tool_response(results))

        return await self._final_response(state, on_stream_delta)

    async def _run_capability(self, state: ConversationState, call: FunctionCall) -> FunctionResponse:
        """Invoke one requested capability; every failure becomes an error payload."""
        started = time.time()
        args = dict(call.arguments or {})
        success = False
        try:
            value = await self.capabilities.invoke(call.name, args)
            payload: Dict[str, Any] = {"result": value}
            success = True
        except (CapabilityNotFoundError, CapabilityValidationError, CapabilityExecutionError) as e:
            payload = {"error": str(e)}
            self.observer.log_error(
                "capability_call",
                str(e),
                {"capability": call.name, "args": args},
                agent_id=self.name,
            )

        duration_ms = (time.time() - started) * 1000
        serialized = json.dumps(payload, ensure_ascii=False, default=str)
        self.observer.log_tool_call(call.name, args, serialized, duration_ms, success=success, agent_id=self.name)
        state.capability_calls.append({"name": call.name, "arguments": args, "success": success})
        return FunctionResponse(name=call.name, response=payload, call_id=call.id)

    async def _final_response(
        self,
        state: ConversationState,
        on_stream_delta: Optional[StreamCallback],
        attempts: Optional[int] = None,
    ) -> Any:
        """Produce the final answer in the configured mode, without offering capabilities."""
        mode = self.config.mode
        if attempts is None:
            attempts = self.config.structured_retries if mode.is_structured else 1
        last_error: Optional[StructuredOutputError] = None

        for attempt in range(attempts):
            if mode.is_streaming:
                response = await self._call_model_stream(state, on_stream_delta, step="final")
            else:
                response = await self._call_model(state, None, self._generation_config(), step="final")

            if not response.text:
                raise ModelResponseError("No response from model")
            try:
                return self._format_output(response.text)
            except StructuredOutputError as e:
                last_error = e
                logger.warning(f"[{self.name}] Structured output attempt {attempt + 1}/{attempts} failed: {e}")

        assert last_error is not None
        raise last_error

    def _format_output(self, text: str) -> Any:
        schema = self.config.response_schema
        if schema is None:
            return text
        try:
            return schema.model_validate_json(text)
        except PydanticValidationError as e:
            raise StructuredOutputError(f"Schema validation failed: {e}", raw=text) from e

    def _generation_config(self) -> GenerationConfig:
        response_format = None
        schema = self.config.response_schema
        if schema is not None:
            response_format = ResponseFormat(name=schema.__name__, schema=schema.model_json_schema())
        return self.config.sampling.to_generation_config(
            system_prompt=self.system_prompt(),
            response_format=response_format,
        )

    async def _call_model(
        self,
        state: ConversationState,
        tools: Optional[List[ToolSchema]],
        config: GenerationConfig,
        step: str,
    ) -> LLMResponse:
        started = time.time()

        async def make_request() -> LLMResponse:
            return await self.provider.generate(messages=list(state.messages), tools=tools, config=config)

        response = await retry_with_backoff(make_request, self.retry_config)
        self._record_usage(state, response.usage, started, step)
        self.observer.log_llm_response(
            step,
            response.text,
            [{"name": c.name, "arguments": c.arguments} for c in response.function_calls],
            agent_id=self.name,
        )
        return response

    async def _call_model_stream(
        self,
        state: ConversationState,
        on_stream_delta: Optional[StreamCallback],
        step: str,
    ) -> LLMResponse:
        started = time.time()
        config = self._generation_config()

        async def make_request() -> LLMResponse:
            collector = StreamCollector()
            emitted = False
            try:
                async for delta in self.provider.generate_stream(list(state.messages), None, config):
                    chunk = collector.add(delta)
                    if chunk and on_stream_delta:
                        emitted = True
                        await _emit(on_stream_delta, StreamDelta(text=chunk))
            except asyncio.CancelledError:
                raise
            except Exception as e:
                # Partial output already reached the caller; never replay the stream.
                if emitted:
                    raise PermanentError(f"Stream interrupted after output was delivered: {e}") from e
                raise
            return collector.response()

        response = await retry_with_backoff(make_request, self.retry_config)
        self._record_usage(state, response.usage, started, step)
        self.observer.log_llm_response(step, response.text, [], agent_id=self.name)
        return response

    def _record_usage(
        self,
        state: ConversationState,
        usage: Optional[Dict[str, int]],
        started: float,
        step: str,
    ) -> None:
        call_usage = Usage.from_dict(usage)
        state.usage = state.usage + call_usage
        state.model_calls += 1
        self.observer.log_llm_request(
            model=self.config.model,
            tokens=call_usage.total_tokens,
            cost=calculate_cost(self.config.model, call_usage),
            duration_ms=(time.time() - started) * 1000,
            step=step,
            agent_id=self.name,
        )

    def __repr__(self) -> str:
        return f"ConversationEngine(name={self.name!r}, capabilities={self.capabilities.names()})"


class StreamCollector:
    """Aggregates stream deltas into one response.

    Some providers send cumulative snapshots instead of increments; ``add``
    returns only the new text either way.
    """

    def __init__(self) -> None:
        self.text = ""
        self.usage: Optional[Dict[str, int]] = None
        self._calls: Dict[int, FunctionCall] = {}
        self._args: Dict[int, str] = {}

    def add(self, delta: StreamDelta) -> str:
        if delta.usage:
            self.usage = delta.usage

        index = delta.function_call_index if delta.function_call_index is not None else len(self._calls)
        if delta.function_call_start is not None:
            start = delta.function_call_start
            self._calls[index] = FunctionCall(name=start.name, arguments=dict(start.arguments), id=start.id)
        if delta.function_call_delta:
            key = delta.function_call_index if delta.function_call_index is not None else max(self._calls, default=0)
            self._args[key] = self._args.get(key, "") + delta.function_call_delta

        if not delta.text:
            return ""
        chunk = normalize_stream_text(self.text, delta.text)
        self.text += chunk
        return chunk

    def response(self) -> LLMResponse:
        calls: List[FunctionCall] = []
        for index in sorted(self._calls):
            call = self._calls[index]
            raw_args = self._args.get(index)
            if raw_args:
                try:
                    parsed = json.loads(raw_args)
                    call.arguments = parsed if isinstance(parsed, dict) else {}
                except ValueError:
                    call.arguments = {}
            calls.append(call)
        return LLMResponse(text=self.text.strip(), function_calls=calls, usage=self.usage)


def normalize_stream_text(accumulated: str, incoming: str) -> str:
    """Return the part of ``incoming`` not already present at the end of ``accumulated``."""
    if not incoming:
        return ""
    if not accumulated:
        return incoming
    if incoming.startswith(accumulated):
        return incoming[len(accumulated) :]
    return incoming


async def _emit(callback: StreamCallback, delta: StreamDelta) -> None:
    result = callback(delta)
    if asyncio.iscoroutine(result):
        await result
