"""Execution traces for reasoning steps."""

from __future__ import annotations

import uuid
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Deque, Dict, List, Optional

from ..pricing import Usage

MAX_TRACES = 1000


@dataclass(frozen=True)
class ExecutionTrace:
    """Immutable record of one unit of work. Used for analysis only."""

    source_id: str
    input: Any
    output: Any
    duration_ms: float
    error: Optional[str] = None
    reasoning: str = ""
    strategy: str = ""
    usage: Usage = field(default_factory=Usage)
    timestamp: datetime = field(default_factory=datetime.now)
    id: str = field(default_factory=lambda: f"trace_{uuid.uuid4().hex[:12]}")

    @property
    def failed(self) -> bool:
        return self.error is not None


class TraceLog:
    """Append-only, bounded list of traces; the oldest entries drop off first."""

    def __init__(self, max_entries: int = MAX_TRACES):
        self._traces: Deque[ExecutionTrace] = deque(maxlen=max_entries)

    def add(self, trace: ExecutionTrace) -> None:
        self._traces.append(trace)

    def all(self) -> List[ExecutionTrace]:
        return list(self._traces)

    def for_source(self, source_id: str) -> List[ExecutionTrace]:
        return [t for t in self._traces if t.source_id == source_id]

    def between(self, start: datetime, end: datetime) -> List[ExecutionTrace]:
        return [t for t in self._traces if start <= t.timestamp <= end]

    def errors(self) -> List[ExecutionTrace]:
        return [t for t in self._traces if t.failed]

    def stats(self) -> Dict[str, Any]:
        traces = list(self._traces)
        total = len(traces)
        errors = sum(1 for t in traces if t.failed)
        return {
            "total": total,
            "errors": errors,
            "success_rate": (total - errors) / total if total else 0.0,
            "average_duration_ms": sum(t.duration_ms for t in traces) / total if total else 0.0,
            "total_tokens": sum(t.usage.total_tokens for t in traces),
        }

    def clear(self) -> None:
        self._traces.clear()

    def __len__(self) -> int:
        return len(self._traces)
