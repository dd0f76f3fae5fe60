"""Google Gemini provider built on the google-genai SDK."""

from __future__ import annotations

from typing import Any, AsyncIterator, Dict, List, Optional

from google import genai
from google.genai import types

from .types import (
    FunctionCall,
    GenerationConfig,
    LLMResponse,
    Message,
    StreamDelta,
    ToolSchema,
)

_TYPE_MAP = {
    "string": types.Type.STRING,
    "integer": types.Type.INTEGER,
    "number": types.Type.NUMBER,
    "boolean": types.Type.BOOLEAN,
    "object": types.Type.OBJECT,
    "array": types.Type.ARRAY,
}


class GeminiProvider:
    """Gemini chat provider using the SDK's asyncio client."""

    def __init__(self, api_key: str, model: str, client: Optional[genai.Client] = None) -> None:
        self.model = model
        self.client = client or genai.Client(api_key=api_key)

    async def generate(
        self,
        messages: List[Message],
        tools: Optional[List[ToolSchema]],
        config: GenerationConfig,
    ) -> LLMResponse:
        response = await self.client.aio.models.generate_content(
            model=self.model,
            contents=self._to_contents(messages),
            config=self._to_request_config(tools, config),
        )
        return self._from_response(response)

    async def generate_stream(
        self,
        messages: List[Message],
        tools: Optional[List[ToolSchema]],
        config: GenerationConfig,
    ) -> AsyncIterator[StreamDelta]:
        stream = await self.client.aio.models.generate_content_stream(
            model=self.model,
            contents=self._to_contents(messages),
            config=self._to_request_config(tools, config),
        )
        async for chunk in stream:
            partial = self._from_response(chunk)
            if partial.text:
                yield StreamDelta(text=partial.text)
            for index, call in enumerate(partial.function_calls):
                yield StreamDelta(function_call_start=call, function_call_index=index)
            if partial.usage:
                yield StreamDelta(usage=partial.usage)

    def _to_request_config(
        self,
        tools: Optional[List[ToolSchema]],
        config: GenerationConfig,
    ) -> types.GenerateContentConfig:
        kwargs: Dict[str, Any] = {
            "system_instruction": config.system_prompt or None,
            "max_output_tokens": config.max_tokens,
            "temperature": config.temperature,
            "top_p": config.top_p,
            "frequency_penalty": config.frequency_penalty,
            "presence_penalty": config.presence_penalty,
        }
        if tools:
            kwargs["tools"] = [types.Tool(function_declarations=[self._to_declaration(t) for t in tools])]
        if config.response_format is not None:
            kwargs["response_mime_type"] = "application/json"
            if config.response_format.schema is not None:
                kwargs["response_json_schema"] = config.response_format.schema
        return types.GenerateContentConfig(**{k: v for k, v in kwargs.items() if v is not None})

    def _to_contents(self, messages: List[Message]) -> List[types.Content]:
        contents: List[types.Content] = []
        for msg in messages:
            role = "model" if msg.role == "assistant" else "user"
            parts: List[types.Part] = []
            for part in msg.parts:
                if part.text:
                    parts.append(types.Part.from_text(text=part.text))
                elif part.function_call:
                    parts.append(
                        types.Part.from_function_call(
                            name=part.function_call.name,
                            args=part.function_call.arguments,
                        )
                    )
                elif part.function_response:
                    parts.append(
                        types.Part.from_function_response(
                            name=part.function_response.name,
                            response=part.function_response.response,
                        )
                    )
            contents.append(types.Content(role=role, parts=parts))
        return contents

    def _to_declaration(self, tool: ToolSchema) -> types.FunctionDeclaration:
        return types.FunctionDeclaration(
            name=tool.name,
            description=tool.description,
            parameters=self._to_schema(tool.parameters),
        )

    def _to_schema(self, schema_def: Dict[str, Any]) -> types.Schema:
        gemini_type = _TYPE_MAP.get(str(schema_def.get("type", "string")).lower(), types.Type.STRING)
        kwargs: Dict[str, Any] = {"type": gemini_type}
        if schema_def.get("description"):
            kwargs["description"] = schema_def["description"]
        if isinstance(schema_def.get("enum"), list):
            kwargs["enum"] = [str(v) for v in schema_def["enum"]]
        if gemini_type == types.Type.OBJECT:
            kwargs["properties"] = {
                name: self._to_schema(prop) for name, prop in (schema_def.get("properties") or {}).items()
            }
            if schema_def.get("required"):
                kwargs["required"] = list(schema_def["required"])
        if gemini_type == types.Type.ARRAY and isinstance(schema_def.get("items"), dict):
            kwargs["items"] = self._to_schema(schema_def["items"])
        return types.Schema(**kwargs)

    def _from_response(self, response: Any) -> LLMResponse:
        usage = None
        metadata = getattr(response, "usage_metadata", None)
        if metadata is not None:
            usage = {
                "prompt_tokens": int(metadata.prompt_token_count or 0),
                "completion_tokens": int(metadata.candidates_token_count or 0),
                "total_tokens": int(metadata.total_token_count or 0),
            }

        if not response.candidates:
            return LLMResponse(usage=usage, raw=response)

        content = response.candidates[0].content
        calls: List[FunctionCall] = []
        texts: List[str] = []
        for part in (content.parts if content else None) or []:
            if part.function_call:
                calls.append(
                    FunctionCall(
                        name=part.function_call.name or "",
                        arguments=dict(part.function_call.args or {}),
                        id=part.function_call.id,
                    )
                )
            elif part.text:
                texts.append(part.text)

        return LLMResponse(text="".join(texts), function_calls=calls, usage=usage, raw=response)
