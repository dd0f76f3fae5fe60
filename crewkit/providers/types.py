"""Normalized request/response types for the model service."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class FunctionCall:
    """A capability call requested by the model."""

    name: str
    arguments: Dict[str, Any]
    id: Optional[str] = None


@dataclass
class FunctionResponse:
    """The result of a capability call, sent back to the model."""

    name: str
    response: Dict[str, Any]
    call_id: Optional[str] = None


@dataclass
class MessagePart:
    """One piece of a message: text, a call request, or a call result."""

    text: Optional[str] = None
    function_call: Optional[FunctionCall] = None
    function_response: Optional[FunctionResponse] = None


@dataclass
class Message:
    """A chat message; the system prompt travels in ``GenerationConfig``."""

    role: str  # "user" | "assistant" | "tool"
    parts: List[MessagePart] = field(default_factory=list)

    @classmethod
    def user(cls, text: str) -> "Message":
        return cls(role="user", parts=[MessagePart(text=text)])

    @classmethod
    def assistant(cls, text: str) -> "Message":
        return cls(role="assistant", parts=[MessagePart(text=text)])

    @classmethod
    def assistant_tool_calls(cls, calls: List[FunctionCall], text: str = "") -> "Message":
        parts = [MessagePart(text=text)] if text else []
        parts.extend(MessagePart(function_call=c) for c in calls)
        return cls(role="assistant", parts=parts)

    @classmethod
    def tool_response(cls, responses: List[FunctionResponse]) -> "Message":
        return cls(role="tool", parts=[MessagePart(function_response=r) for r in responses])

    @property
    def text(self) -> str:
        return "\n".join(p.text for p in self.parts if p.text)

    @property
    def function_calls(self) -> List[FunctionCall]:
        return [p.function_call for p in self.parts if p.function_call]


@dataclass
class ToolSchema:
    """A capability advertised to the model, parameters as JSON Schema."""

    name: str
    description: str
    parameters: Dict[str, Any]


@dataclass
class ResponseFormat:
    """Structured-output hint.

    With a ``schema`` the provider is asked for JSON matching it; without one
    any JSON object is requested.
    """

    name: str = "response"
    schema: Optional[Dict[str, Any]] = None
    strict: bool = False


@dataclass
class GenerationConfig:
    """Sampling parameters and per-request options."""

    system_prompt: str = ""
    max_tokens: Optional[int] = None
    temperature: Optional[float] = None
    top_p: Optional[float] = None
    frequency_penalty: Optional[float] = None
    presence_penalty: Optional[float] = None
    response_format: Optional[ResponseFormat] = None


@dataclass
class StreamDelta:
    """A single increment of a streamed response."""

    text: Optional[str] = None
    function_call_start: Optional[FunctionCall] = None
    function_call_delta: Optional[str] = None
    function_call_index: Optional[int] = None
    finish_reason: Optional[str] = None
    usage: Optional[Dict[str, int]] = None


@dataclass
class LLMResponse:
    """A complete model response."""

    text: str = ""
    function_calls: List[FunctionCall] = field(default_factory=list)
    usage: Optional[Dict[str, int]] = None
    raw: Any = None

    @property
    def is_empty(self) -> bool:
        return not self.text and not self.function_calls
