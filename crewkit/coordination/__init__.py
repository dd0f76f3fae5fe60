"""Multi-agent coordination: groups and pipelines."""

from .group import CoordinationStrategy, Group
from .pipeline import (
    ErrorHandling,
    Pipeline,
    PipelineContext,
    PipelineResult,
    PipelineStep,
    StepKind,
    StepRecord,
)

__all__ = [
    "CoordinationStrategy",
    "ErrorHandling",
    "Group",
    "Pipeline",
    "PipelineContext",
    "PipelineResult",
    "PipelineStep",
    "StepKind",
    "StepRecord",
]
