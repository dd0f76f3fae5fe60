"""Result types shared by engines, orchestrators, groups and pipelines."""

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol, Sequence, Tuple

from ..pricing import Usage, sum_usage


def generate_result_id() -> str:
    """Generate a unique result ID."""
    return f"res_{uuid.uuid4().hex[:12]}"


@dataclass(frozen=True)
class AgentResult:
    """Outcome of one unit of work.

    Attributes:
        agent_id: Name of the engine, orchestrator or group that produced it
        output: Final text, or a validated structured value
        success: False only for failure outcomes reported as data
            (competitive groups, pipelines in ``continue`` mode)
        error: Error message when ``success`` is False
        usage: Token usage; equals the sum of ``sub_results`` when there are any
        cost: Estimated USD cost; likewise the sum of ``sub_results``
        duration_ms: Wall-clock duration in milliseconds
        sub_results: Results of the steps this result was built from
        metadata: Free-form details (mode, strategy, capability calls, ...)
        result_id: Unique identifier
    """

    agent_id: str
    output: Any
    success: bool = True
    error: Optional[str] = None
    usage: Usage = field(default_factory=Usage)
    cost: float = 0.0
    duration_ms: float = 0.0
    sub_results: Tuple["AgentResult", ...] = ()
    metadata: Dict[str, Any] = field(default_factory=dict)
    result_id: str = field(default_factory=generate_result_id)

    @classmethod
    def aggregate(
        cls,
        agent_id: str,
        output: Any,
        sub_results: Sequence["AgentResult"],
        duration_ms: float,
        metadata: Optional[Dict[str, Any]] = None,
        success: bool = True,
        error: Optional[str] = None,
    ) -> "AgentResult":
        """Build a result whose usage and cost are the totals of ``sub_results``."""
        subs = tuple(sub_results)
        return cls(
            agent_id=agent_id,
            output=output,
            success=success,
            error=error,
            usage=sum_usage(r.usage for r in subs),
            cost=sum(r.cost for r in subs),
            duration_ms=duration_ms,
            sub_results=subs,
            metadata=dict(metadata or {}),
        )

    @classmethod
    def failure(cls, agent_id: str, error: str, duration_ms: float = 0.0, **metadata: Any) -> "AgentResult":
        return cls(agent_id=agent_id, output=None, success=False, error=error, duration_ms=duration_ms, metadata=metadata)

    @property
    def text(self) -> str:
        """The output rendered as text; structured values become JSON."""
        return output_to_text(self.output)

    def get_all_errors(self) -> List[str]:
        """Errors from this result and every nested result."""
        errors = []
        if self.error:
            errors.append(f"{self.agent_id}: {self.error}")
        for sub_result in self.sub_results:
            errors.extend(sub_result.get_all_errors())
        return errors

    def to_dict(self) -> Dict[str, Any]:
        return {
            "result_id": self.result_id,
            "agent_id": self.agent_id,
            "success": self.success,
            "output": self.output if isinstance(self.output, (str, dict, list)) or self.output is None else self.text,
            "error": self.error,
            "usage": self.usage.to_dict(),
            "cost": self.cost,
            "duration_ms": self.duration_ms,
            "sub_results": [r.to_dict() for r in self.sub_results],
            "metadata": self.metadata,
        }


def output_to_text(output: Any) -> str:
    if output is None:
        return ""
    if isinstance(output, str):
        return output
    if hasattr(output, "model_dump_json"):
        return output.model_dump_json()
    try:
        return json.dumps(output, ensure_ascii=False, default=str)
    except (TypeError, ValueError):
        return str(output)


class Runnable(Protocol):
    """Anything that answers one request with an AgentResult."""

    name: str

    async def execute(self, query: str) -> AgentResult: ...
