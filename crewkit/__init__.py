"""crewkit - compose LLM agents, capabilities, reasoning graphs and multi-agent pipelines."""

__version__ = "0.1.0"

from .agents import AgentConfig, AgentResult, ConversationEngine, Orchestrator, Persona, SamplingParameters
from .capabilities import Capability, CapabilityRegistry
from .config import CrewBuilder, CrewkitConfig, load_config
from .coordination import CoordinationStrategy, ErrorHandling, Group, Pipeline, PipelineResult
from .errors import (
    CapabilityExecutionError,
    CapabilityNotFoundError,
    CapabilityValidationError,
    CoordinationError,
    CrewkitError,
    GraphCycleError,
    ModelResponseError,
    PipelineError,
    StructuredOutputError,
    UnknownStepKindError,
    UnknownStrategyError,
    ValidationError,
)
from .observability import AgentObserver
from .providers import create_provider
from .reasoning import ReasoningGraph, ReasoningNode, ReasoningRuntime

__all__ = [
    "AgentConfig",
    "AgentObserver",
    "AgentResult",
    "Capability",
    "CapabilityExecutionError",
    "CapabilityNotFoundError",
    "CapabilityRegistry",
    "CapabilityValidationError",
    "ConversationEngine",
    "CoordinationError",
    "CoordinationStrategy",
    "CrewBuilder",
    "CrewkitConfig",
    "CrewkitError",
    "ErrorHandling",
    "GraphCycleError",
    "Group",
    "ModelResponseError",
    "Orchestrator",
    "Persona",
    "Pipeline",
    "PipelineError",
    "PipelineResult",
    "ReasoningGraph",
    "ReasoningNode",
    "ReasoningRuntime",
    "SamplingParameters",
    "StructuredOutputError",
    "UnknownStepKindError",
    "UnknownStrategyError",
    "ValidationError",
    "create_provider",
    "load_config",
]
