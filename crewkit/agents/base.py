"""Agent configuration value objects."""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional, Tuple, Type

from pydantic import BaseModel

from ..providers.types import GenerationConfig, ResponseFormat


@dataclass(frozen=True)
class Persona:
    """The role an orchestrator (and the agents it runs) speaks as."""

    role: str
    description: str = ""
    backstory: str = ""


@dataclass(frozen=True)
class SamplingParameters:
    """Sampling settings forwarded to the model service; None means provider default."""

    temperature: Optional[float] = 0.7
    max_tokens: Optional[int] = 4096
    top_p: Optional[float] = None
    frequency_penalty: Optional[float] = None
    presence_penalty: Optional[float] = None

    def to_generation_config(
        self,
        system_prompt: str = "",
        response_format: Optional[ResponseFormat] = None,
    ) -> GenerationConfig:
        return GenerationConfig(
            system_prompt=system_prompt,
            max_tokens=self.max_tokens,
            temperature=self.temperature,
            top_p=self.top_p,
            frequency_penalty=self.frequency_penalty,
            presence_penalty=self.presence_penalty,
            response_format=response_format,
        )


class ResponseMode(str, Enum):
    """How the final answer is produced."""

    TEXT = "text"
    STREAM_TEXT = "stream_text"
    STRUCTURED = "structured"
    STREAM_STRUCTURED = "stream_structured"

    @property
    def is_streaming(self) -> bool:
        return self in (ResponseMode.STREAM_TEXT, ResponseMode.STREAM_STRUCTURED)

    @property
    def is_structured(self) -> bool:
        return self in (ResponseMode.STRUCTURED, ResponseMode.STREAM_STRUCTURED)


@dataclass(frozen=True)
class AgentConfig:
    """Declarative description of one agent.

    Attributes:
        name: Agent name, also used as its id in results and logs
        description: What the agent specializes in
        model: Model identifier used for pricing and by the provider
        stream: Stream the final answer
        response_schema: Pydantic model the final answer must validate against
        sampling: Sampling parameters
        capabilities: Capability names to expose; empty means every capability
            in the registry handed to the engine
        persona: Upstream persona context, set by orchestrators
        requires_human_input: When False the prompt forbids clarification requests
        structured_retries: Attempts at producing a valid structured answer
    """

    name: str
    description: str = ""
    model: str = "gpt-4o-mini"
    stream: bool = False
    response_schema: Optional[Type[BaseModel]] = None
    sampling: SamplingParameters = SamplingParameters()
    capabilities: Tuple[str, ...] = ()
    persona: Optional[Persona] = None
    requires_human_input: bool = False
    structured_retries: int = 1

    def __post_init__(self):
        if not self.name:
            raise ValueError("AgentConfig.name must not be empty")
        if self.structured_retries < 1:
            raise ValueError("structured_retries must be at least 1")

    @property
    def mode(self) -> ResponseMode:
        if self.response_schema is not None:
            return ResponseMode.STREAM_STRUCTURED if self.stream else ResponseMode.STRUCTURED
        return ResponseMode.STREAM_TEXT if self.stream else ResponseMode.TEXT

    def with_persona(self, persona: Persona, requires_human_input: bool = False) -> "AgentConfig":
        return replace(self, persona=persona, requires_human_input=requires_human_input)
