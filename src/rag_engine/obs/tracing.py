"""Run tracing and usage accounting."""

from __future__ import annotations

import re
import threading
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone

from rag_engine.types import ExecutedTool, TokenUsage

_TOKEN_PATTERN = re.compile(r"\w+|[^\w\s]", flags=re.UNICODE)


@dataclass(slots=True)
class TraceRecord:
    trace_id: str
    timestamp_utc: str
    question: str
    answer: str
    executed_tools: list[ExecutedTool]
    usage: TokenUsage | None
    iterations: int
    latency_ms: float
    error: str | None = None


class TraceStore:
    """In-memory trace storage for API-level observability."""

    def __init__(self, max_records: int = 1000) -> None:
        self._records: dict[str, TraceRecord] = {}
        self._max_records = max_records
        self._lock = threading.Lock()

    def create_record(
        self,
        *,
        question: str,
        answer: str,
        executed_tools: list[ExecutedTool],
        usage: TokenUsage | None,
        iterations: int,
        latency_ms: float,
        error: str | None = None,
    ) -> TraceRecord:
        record = TraceRecord(
            trace_id=str(uuid.uuid4()),
            timestamp_utc=datetime.now(timezone.utc).isoformat(),
            question=question,
            answer=answer,
            executed_tools=list(executed_tools),
            usage=usage,
            iterations=iterations,
            latency_ms=latency_ms,
            error=error,
        )
        with self._lock:
            self._records[record.trace_id] = record
            while len(self._records) > self._max_records:
                self._records.pop(next(iter(self._records)))
        return record

    def get(self, trace_id: str) -> TraceRecord:
        record = self._records.get(trace_id)
        if record is None:
            raise KeyError(f"Trace not found: {trace_id}")
        return record

    def list_recent(self, limit: int = 20) -> list[TraceRecord]:
        return list(self._records.values())[-limit:]

    def summary(self) -> dict[str, float | int]:
        """Aggregate core observability metrics for dashboard display."""
        records = list(self._records.values())
        total = len(records)
        if total == 0:
            return {
                "total_runs": 0,
                "failed_runs": 0,
                "avg_latency_ms": 0.0,
                "p95_latency_ms": 0.0,
                "total_prompt_tokens": 0,
                "total_completion_tokens": 0,
                "total_tool_calls": 0,
                "failed_tool_calls": 0,
            }

        latencies = sorted(record.latency_ms for record in records)
        p95_index = max(0, int((len(latencies) * 0.95) - 1))
        tools = [tool for record in records for tool in record.executed_tools]
        return {
            "total_runs": total,
            "failed_runs": sum(1 for record in records if record.error),
            "avg_latency_ms": sum(latencies) / total,
            "p95_latency_ms": latencies[p95_index],
            "total_prompt_tokens": sum(r.usage.prompt_tokens for r in records if r.usage),
            "total_completion_tokens": sum(r.usage.completion_tokens for r in records if r.usage),
            "total_tool_calls": len(tools),
            "failed_tool_calls": sum(1 for tool in tools if tool.failed),
        }


class Timer:
    """Simple context timer used by the orchestrator."""

    def __init__(self) -> None:
        self._start = 0.0
        self.elapsed_ms = 0.0

    def __enter__(self) -> "Timer":
        self._start = time.perf_counter()
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        self.elapsed_ms = (time.perf_counter() - self._start) * 1000.0


def estimate_token_count(text: str) -> int:
    return len(_TOKEN_PATTERN.findall(text))
