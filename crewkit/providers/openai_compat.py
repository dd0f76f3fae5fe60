"""OpenAI-compatible chat completions provider."""

from __future__ import annotations

import json
import uuid
from typing import Any, AsyncIterator, Dict, List, Optional

from openai import AsyncOpenAI

from .types import (
    FunctionCall,
    GenerationConfig,
    LLMResponse,
    Message,
    ResponseFormat,
    StreamDelta,
    ToolSchema,
)


class OpenAICompatibleProvider:
    """Provider for any endpoint that speaks the OpenAI chat completions API."""

    def __init__(self, api_key: str, model: str, api_base: str = "", client: Optional[AsyncOpenAI] = None) -> None:
        self.model = model
        self.api_base = api_base or ""
        self.client = client or AsyncOpenAI(api_key=api_key, base_url=api_base or None)

    async def generate(
        self,
        messages: List[Message],
        tools: Optional[List[ToolSchema]],
        config: GenerationConfig,
    ) -> LLMResponse:
        kwargs = self._build_request(messages, tools, config, stream=False)
        completion = await self.client.chat.completions.create(**kwargs)
        return self._from_completion(completion)

    async def generate_stream(
        self,
        messages: List[Message],
        tools: Optional[List[ToolSchema]],
        config: GenerationConfig,
    ) -> AsyncIterator[StreamDelta]:
        kwargs = self._build_request(messages, tools, config, stream=True)
        stream = await self.client.chat.completions.create(**kwargs)
        async for chunk in stream:
            for delta in self._chunk_to_deltas(chunk):
                yield delta

    def _build_request(
        self,
        messages: List[Message],
        tools: Optional[List[ToolSchema]],
        config: GenerationConfig,
        stream: bool,
    ) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = {
            "model": self.model,
            "messages": self._to_openai_messages(messages, config.system_prompt),
            "stream": stream,
        }
        if stream:
            kwargs["stream_options"] = {"include_usage": True}

        optional = {
            "max_tokens": config.max_tokens,
            "temperature": config.temperature,
            "top_p": config.top_p,
            "frequency_penalty": config.frequency_penalty,
            "presence_penalty": config.presence_penalty,
        }
        kwargs.update({k: v for k, v in optional.items() if v is not None})

        if tools:
            kwargs["tools"] = [
                {
                    "type": "function",
                    "function": {"name": t.name, "description": t.description, "parameters": t.parameters},
                }
                for t in tools
            ]
            kwargs["tool_choice"] = "auto"

        if config.response_format is not None:
            kwargs["response_format"] = self._to_openai_response_format(config.response_format)
        return kwargs

    @staticmethod
    def _to_openai_response_format(fmt: ResponseFormat) -> Dict[str, Any]:
        if fmt.schema is None:
            return {"type": "json_object"}
        return {
            "type": "json_schema",
            "json_schema": {"name": fmt.name, "schema": fmt.schema, "strict": fmt.strict},
        }

    def _to_openai_messages(self, messages: List[Message], system_prompt: str) -> List[Dict[str, Any]]:
        result: List[Dict[str, Any]] = []
        if system_prompt:
            result.append({"role": "system", "content": system_prompt})

        for msg in messages:
            if msg.role == "tool":
                for part in msg.parts:
                    if part.function_response is None:
                        continue
                    result.append(
                        {
                            "role": "tool",
                            "tool_call_id": part.function_response.call_id or f"call_{uuid.uuid4().hex[:12]}",
                            "content": json.dumps(part.function_response.response, ensure_ascii=False, default=str),
                        }
                    )
                continue

            entry: Dict[str, Any] = {"role": msg.role, "content": msg.text}
            calls = msg.function_calls
            if calls:
                entry["tool_calls"] = []
                for call in calls:
                    # Tool results reference the call id, so assign one up front.
                    call.id = call.id or f"call_{uuid.uuid4().hex[:12]}"
                    entry["tool_calls"].append(
                        {
                            "id": call.id,
                            "type": "function",
                            "function": {"name": call.name, "arguments": json.dumps(call.arguments or {})},
                        }
                    )
            result.append(entry)
        return result

    def _from_completion(self, completion: Any) -> LLMResponse:
        choices = getattr(completion, "choices", None) or []
        if not choices:
            return LLMResponse(usage=self._usage_dict(getattr(completion, "usage", None)), raw=completion)

        message = choices[0].message
        calls: List[FunctionCall] = []
        for call in getattr(message, "tool_calls", None) or []:
            function = getattr(call, "function", None)
            if function is None:
                continue
            calls.append(
                FunctionCall(
                    name=function.name or "",
                    arguments=_parse_arguments(function.arguments),
                    id=getattr(call, "id", None),
                )
            )

        return LLMResponse(
            text=getattr(message, "content", None) or "",
            function_calls=calls,
            usage=self._usage_dict(getattr(completion, "usage", None)),
            raw=completion,
        )

    def _chunk_to_deltas(self, chunk: Any) -> List[StreamDelta]:
        deltas: List[StreamDelta] = []
        usage = self._usage_dict(getattr(chunk, "usage", None))
        if usage:
            deltas.append(StreamDelta(usage=usage))

        choices = getattr(chunk, "choices", None) or []
        if not choices:
            return deltas

        choice = choices[0]
        delta = getattr(choice, "delta", None)
        if delta is not None:
            content = getattr(delta, "content", None)
            if content:
                deltas.append(StreamDelta(text=content))

            for tool_call in getattr(delta, "tool_calls", None) or []:
                index = getattr(tool_call, "index", None)
                function = getattr(tool_call, "function", None)
                name = getattr(function, "name", None) if function else None
                args = getattr(function, "arguments", None) if function else None
                if name:
                    deltas.append(
                        StreamDelta(
                            function_call_start=FunctionCall(name=name, arguments={}, id=getattr(tool_call, "id", None)),
                            function_call_index=index,
                        )
                    )
                if args:
                    deltas.append(StreamDelta(function_call_delta=args, function_call_index=index))

        finish_reason = getattr(choice, "finish_reason", None)
        if finish_reason:
            deltas.append(StreamDelta(finish_reason=finish_reason))
        return deltas

    @staticmethod
    def _usage_dict(usage: Any) -> Optional[Dict[str, int]]:
        if not usage:
            return None
        return {
            "prompt_tokens": int(getattr(usage, "prompt_tokens", 0) or 0),
            "completion_tokens": int(getattr(usage, "completion_tokens", 0) or 0),
            "total_tokens": int(getattr(usage, "total_tokens", 0) or 0),
        }


def _parse_arguments(arguments: Any) -> Dict[str, Any]:
    if not arguments:
        return {}
    if isinstance(arguments, dict):
        return arguments
    try:
        parsed = json.loads(arguments)
    except (TypeError, ValueError):
        return {}
    return parsed if isinstance(parsed, dict) else {}
