"""Agents: configuration, the conversation engine and the orchestrator."""

from .base import AgentConfig, Persona, ResponseMode, SamplingParameters
from .engine import ConversationEngine, ConversationState, StreamCollector
from .orchestrator import Orchestrator
from .protocol import AgentResult, Runnable

__all__ = [
    "AgentConfig",
    "AgentResult",
    "ConversationEngine",
    "ConversationState",
    "Orchestrator",
    "Persona",
    "ResponseMode",
    "Runnable",
    "SamplingParameters",
    "StreamCollector",
]
