"""Exception hierarchy shared by the crewkit components."""

from __future__ import annotations

from typing import List, Optional


class CrewkitError(Exception):
    """Base class for all crewkit errors."""


class CapabilityValidationError(CrewkitError):
    """Capability arguments failed the parameter schema check."""

    def __init__(self, capability: str, issues: List[str]):
        self.capability = capability
        self.issues = list(issues)
        super().__init__(f"Parameter validation failed: {', '.join(self.issues)}")


# The taxonomy name used throughout the docs.
ValidationError = CapabilityValidationError


class CapabilityExecutionError(CrewkitError):
    """A capability implementation raised."""

    def __init__(self, capability: str, message: str):
        self.capability = capability
        super().__init__(f"Capability execution failed: {message}")


class CapabilityNotFoundError(CrewkitError):
    """No capability is registered under the requested name."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"No capability found: {name}")


class ModelResponseError(CrewkitError):
    """The model service returned nothing usable."""


class StructuredOutputError(CrewkitError):
    """A structured response failed to parse or to validate."""

    def __init__(self, message: str, raw: Optional[str] = None):
        self.raw = raw
        super().__init__(message)


class GraphCycleError(CrewkitError):
    """A reasoning graph contains a dependency cycle."""

    def __init__(self, node_id: str):
        self.node_id = node_id
        super().__init__(f"Circular dependency detected at node {node_id}")


class GraphValidationError(CrewkitError):
    """A reasoning graph failed structural validation."""

    def __init__(self, errors: List[str]):
        self.errors = list(errors)
        super().__init__(f"Invalid reasoning graph: {'; '.join(self.errors)}")


class UnknownStrategyError(CrewkitError):
    """A coordination strategy name is not recognised."""

    def __init__(self, strategy: str):
        self.strategy = strategy
        super().__init__(f"Unknown coordination strategy: {strategy}")


class UnknownStepKindError(CrewkitError):
    """A pipeline step kind is not recognised."""

    def __init__(self, kind: str):
        self.kind = kind
        super().__init__(f"Unknown pipeline step kind: {kind}")


class CoordinationError(CrewkitError):
    """A group of agents failed to produce a result."""


class PipelineError(CrewkitError):
    """A pipeline failed, or was modified after it started executing."""


class ReasoningModuleError(CrewkitError):
    """A reasoning module failed to produce an output."""

    # ExecutionTrace of the failed attempt, when one was recorded.
    trace = None
