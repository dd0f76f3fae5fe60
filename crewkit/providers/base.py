"""Model service protocol."""

from __future__ import annotations

from typing import AsyncIterator, List, Optional, Protocol

from .types import GenerationConfig, LLMResponse, Message, StreamDelta, ToolSchema


class ChatProvider(Protocol):
    """A request/response chat completion service.

    ``generate_stream`` yields increments of the same response ``generate``
    would return; callers aggregate the stream themselves.
    """

    model: str

    async def generate(
        self,
        messages: List[Message],
        tools: Optional[List[ToolSchema]],
        config: GenerationConfig,
    ) -> LLMResponse: ...

    def generate_stream(
        self,
        messages: List[Message],
        tools: Optional[List[ToolSchema]],
        config: GenerationConfig,
    ) -> AsyncIterator[StreamDelta]: ...
