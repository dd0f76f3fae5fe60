"""Event collection and logging for agent runs."""

from __future__ import annotations

import asyncio
import json
import logging
import os
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Set

from .store import LogRecord, LogStore

logger = logging.getLogger(__name__)

_KEY_ENV_VARS = ("OPENAI_API_KEY", "GEMINI_API_KEY", "CREWKIT_API_KEY")


@dataclass
class AgentEvent:
    """A single event in an agent's execution."""

    timestamp: datetime
    event_type: str  # "llm_request", "llm_response", "tool_call", "error", "step_start", "step_end"
    data: Dict[str, Any]
    duration_ms: Optional[float] = None
    tokens_used: Optional[int] = None
    cost_usd: Optional[float] = None


class AgentObserver:
    """
    Collects events for one agent (or a group of agents) and logs them.

    When a log store is attached every event is also written there in the
    background. Store failures are logged and dropped so that a broken store
    never fails a run; call ``flush()`` to wait for pending writes.
    """

    def __init__(self, agent_id: Optional[str] = None, verbose: bool = False, store: Optional[LogStore] = None):
        self.events: List[AgentEvent] = []
        self.agent_id = agent_id
        self.verbose = verbose
        self.store = store
        self.logger = logging.getLogger("crewkit")
        self._pending: Set[asyncio.Task] = set()
        self._setup_logging()

    def _setup_logging(self) -> None:
        if not self.logger.handlers:
            handler = logging.StreamHandler()
            handler.setFormatter(
                logging.Formatter(
                    "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
                    datefmt="%Y-%m-%d %H:%M:%S",
                )
            )
            self.logger.addHandler(handler)
        if self.verbose:
            self.logger.setLevel(logging.INFO)

    def _prefix(self, agent_id: Optional[str]) -> str:
        use_id = agent_id or self.agent_id
        return f"[{use_id}] " if use_id else ""

    def _record(self, event: AgentEvent, record: LogRecord) -> None:
        self.events.append(event)
        if self.store is None:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug(f"No running loop; dropping log record {record.id}")
            return
        task = loop.create_task(self._write(record))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _write(self, record: LogRecord) -> None:
        try:
            await self.store.write(record)
        except Exception as e:
            logger.warning(f"Log store write failed: {e}")

    async def flush(self) -> None:
        """Wait until every queued store write has finished."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def log_llm_request(
        self,
        model: str,
        tokens: int,
        cost: float,
        duration_ms: float,
        step: str,
        agent_id: Optional[str] = None,
    ) -> None:
        """
        Log a model-service request.

        Args:
            model: Model identifier
            tokens: Total tokens used (prompt + completion)
            cost: Estimated cost in USD
            duration_ms: Request duration in milliseconds
            step: Which call in the run this was ("initial", "final", ...)
        """
        agent = agent_id or self.agent_id
        self._record(
            AgentEvent(
                timestamp=datetime.now(),
                event_type="llm_request",
                data={"model": model, "step": step, "agent_id": agent},
                duration_ms=duration_ms,
                tokens_used=tokens,
                cost_usd=cost,
            ),
            LogRecord(
                message=f"LLM request ({step})",
                agent_id=agent,
                step_id=step,
                duration_ms=duration_ms,
                usage={"total_tokens": tokens},
                cost=cost,
                metadata={"model": model},
            ),
        )
        self.logger.info(
            f"{self._prefix(agent_id)}LLM: {model} | {step} | {tokens} tokens | ${cost:.6f} | {duration_ms:.2f}ms"
        )

    def log_llm_response(
        self,
        step: str,
        text: str,
        tool_calls: Optional[List[Dict[str, Any]]] = None,
        agent_id: Optional[str] = None,
    ) -> None:
        """Log what the model answered (text plus requested calls)."""
        agent = agent_id or self.agent_id
        calls = tool_calls or []
        self._record(
            AgentEvent(
                timestamp=datetime.now(),
                event_type="llm_response",
                data={"step": step, "text": text, "tool_calls": calls},
            ),
            LogRecord(
                message=f"LLM response ({step})",
                level="debug",
                agent_id=agent,
                step_id=step,
                metadata={"text": text[:500], "tool_calls": calls},
            ),
        )
        self.logger.debug(f"{self._prefix(agent_id)}LLM response | {step} | tools={json.dumps(calls, default=str)}")

    def log_tool_call(
        self,
        tool_name: str,
        args: Dict[str, Any],
        result: str,
        duration_ms: float,
        success: bool = True,
        agent_id: Optional[str] = None,
    ) -> None:
        """
        Log a capability invocation.

        Args:
            tool_name: Capability name
            args: Arguments the model supplied
            result: Serialized result or error payload
            duration_ms: Execution time in milliseconds
            success: Whether the invocation succeeded
        """
        agent = agent_id or self.agent_id
        self._record(
            AgentEvent(
                timestamp=datetime.now(),
                event_type="tool_call",
                data={"tool": tool_name, "args": args, "result": result[:200], "success": success},
                duration_ms=duration_ms,
            ),
            LogRecord(
                message=f"Capability {tool_name} {'succeeded' if success else 'failed'}",
                level="info" if success else "warning",
                agent_id=agent,
                capability_name=tool_name,
                duration_ms=duration_ms,
                metadata={"args": args, "result": result[:500]},
            ),
        )
        status = "ok" if success else "failed"
        self.logger.info(f"{self._prefix(agent_id)}Capability: {tool_name} {status} ({duration_ms:.2f}ms)")

    def log_error(
        self,
        error_type: str,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        agent_id: Optional[str] = None,
    ) -> None:
        """
        Log an error event.

        Args:
            error_type: Category, e.g. "capability_execution" or "model_response"
            message: Error message
            context: Additional details
        """
        agent = agent_id or self.agent_id
        self._record(
            AgentEvent(
                timestamp=datetime.now(),
                event_type="error",
                data={"error_type": error_type, "message": message, "context": context or {}},
            ),
            LogRecord(
                message=message,
                level="error",
                agent_id=agent,
                metadata={"error_type": error_type, **(context or {})},
            ),
        )
        self.logger.error(f"{self._prefix(agent_id)}Error ({error_type}): {message}")

    def log_step_start(self, step: str, detail: Optional[str] = None, agent_id: Optional[str] = None) -> None:
        agent = agent_id or self.agent_id
        self._record(
            AgentEvent(
                timestamp=datetime.now(),
                event_type="step_start",
                data={"step": step, "detail": detail[:100] if detail else None},
            ),
            LogRecord(message=f"Step {step} started", level="debug", agent_id=agent, step_id=step),
        )
        self.logger.info(f"{self._prefix(agent_id)}Step {step} started")

    def log_step_end(
        self,
        step: str,
        duration_ms: float,
        success: bool = True,
        agent_id: Optional[str] = None,
    ) -> None:
        agent = agent_id or self.agent_id
        self._record(
            AgentEvent(
                timestamp=datetime.now(),
                event_type="step_end",
                data={"step": step, "success": success},
                duration_ms=duration_ms,
            ),
            LogRecord(
                message=f"Step {step} {'completed' if success else 'failed'}",
                level="info" if success else "error",
                agent_id=agent,
                step_id=step,
                duration_ms=duration_ms,
            ),
        )
        self.logger.info(f"{self._prefix(agent_id)}Step {step} {'completed' if success else 'failed'} ({duration_ms:.2f}ms)")

    def get_session_stats(self) -> Dict[str, Any]:
        """Summarize the events collected so far."""
        tool_calls = [e for e in self.events if e.event_type == "tool_call"]
        llm_requests = [e for e in self.events if e.event_type == "llm_request"]
        errors = [e for e in self.events if e.event_type == "error"]

        return {
            "tool_calls": len(tool_calls),
            "failed_tool_calls": sum(1 for e in tool_calls if not e.data.get("success", True)),
            "llm_requests": len(llm_requests),
            "total_tokens": sum(e.tokens_used or 0 for e in llm_requests),
            "total_cost_usd": sum(e.cost_usd or 0.0 for e in llm_requests),
            "errors": len(errors),
            "total_duration_ms": sum(e.duration_ms or 0.0 for e in self.events if e.event_type == "step_end"),
        }

    def clear(self) -> None:
        self.events.clear()

    @staticmethod
    def check_environment() -> List[str]:
        """Return configuration warnings for the current process environment.

        Nothing is checked at import time; call this explicitly from an entry point.
        """
        warnings: List[str] = []
        if not any(os.environ.get(key) for key in _KEY_ENV_VARS):
            warnings.append(f"No model API key found; set one of {', '.join(_KEY_ENV_VARS)}")
        return warnings
