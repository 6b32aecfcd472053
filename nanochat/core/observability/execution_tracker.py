"""
Execution Time Tracking for Generation Runs

Times every orchestration stage of a run (history load, enrichment, prompt
assembly, streaming, finalize) so slow enrichment providers or a sluggish
gateway show up in the logs as a single structured line per stage.

Architectural Decision: Context manager pattern for automatic timing
- Automatic start/end time capture
- Nested timing support (stages contain substages)
- Conversation ID correlation for all measurements
- Failed stages record the error type without swallowing the exception

Usage:
    tracker = get_tracker()

    with tracker.track_stage(Stage.WEB_SEARCH, "Web search", conversation_id, depth="deep"):
        result = await web_search.search(...)

    summary = tracker.get_execution_summary(conversation_id)
    tracker.clear_run_data(conversation_id)
"""

import statistics
import time
from contextlib import contextmanager
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any

from nanochat.core.config.settings import get_settings
from nanochat.core.logging import get_logger, log_stage

logger = get_logger(__name__)


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass
class StageExecution:
    """
    A single stage execution with timing information.

    Attributes:
        stage_id: Stage identifier (e.g., "2.1_WEB_SEARCH")
        stage_name: Human-readable stage name
        conversation_id: Conversation the run belongs to
        duration_ms: Duration in milliseconds (set when the stage exits)
        success: Whether the stage completed without raising
    """

    stage_id: str
    stage_name: str
    conversation_id: str
    started_at: str
    ended_at: str | None = None
    duration_ms: float | None = None
    success: bool = True
    error_type: str | None = None
    error_message: str | None = None
    substages: list["StageExecution"] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["substages"] = [s.to_dict() for s in self.substages]
        return data


class ExecutionTracker:
    """
    Per-run stage timer.

    Runs are keyed by conversation id; at most one run per conversation is
    active at a time, so the key is unambiguous. Nested `track_stage` calls
    for the same conversation become substages of the enclosing stage.
    """

    def __init__(self, enabled: bool | None = None):
        self._executions: dict[str, list[StageExecution]] = {}
        self._stage_stack: dict[str, list[StageExecution]] = {}
        if enabled is None:
            enabled = get_settings().EXECUTION_TRACKING_ENABLED
        self._tracking_enabled = enabled

    @property
    def enabled(self) -> bool:
        return self._tracking_enabled

    @contextmanager
    def track_stage(self, stage_id, stage_name: str, conversation_id: str, **metadata):
        """
        Context manager for tracking a stage execution.

        Args:
            stage_id: Stage identifier (`Stage` member or string)
            stage_name: Human-readable stage name
            conversation_id: Conversation ID for correlation
            **metadata: Additional metadata to store

        Yields:
            StageExecution, or None when tracking is disabled
        """
        if not self._tracking_enabled:
            yield None
            return

        stage_id = getattr(stage_id, "value", stage_id)
        execution = StageExecution(
            stage_id=stage_id,
            stage_name=stage_name,
            conversation_id=conversation_id,
            started_at=_utc_now(),
            metadata=metadata,
        )

        self._executions.setdefault(conversation_id, [])
        stack = self._stage_stack.setdefault(conversation_id, [])
        stack.append(execution)

        start_time = time.perf_counter()
        log_stage(
            logger,
            stage_id,
            f"Stage started: {stage_name}",
            level="debug",
            conversation_id=conversation_id,
            **metadata,
        )

        try:
            yield execution
            execution.success = True

        except BaseException as e:
            execution.success = False
            execution.error_type = type(e).__name__
            execution.error_message = str(e)

            log_stage(
                logger,
                stage_id,
                f"Stage failed: {stage_name}",
                level="warning",
                conversation_id=conversation_id,
                error_type=execution.error_type,
                error_message=execution.error_message,
            )
            raise

        finally:
            duration_ms = (time.perf_counter() - start_time) * 1000
            execution.ended_at = _utc_now()
            execution.duration_ms = round(duration_ms, 2)

            stack = self._stage_stack.get(conversation_id)
            if stack:
                stack.pop()
                if stack:
                    stack[-1].substages.append(execution)
                else:
                    self._executions.setdefault(conversation_id, []).append(execution)

            log_stage(
                logger,
                stage_id,
                f"Stage completed: {stage_name}",
                level="info" if execution.success else "warning",
                conversation_id=conversation_id,
                duration_ms=execution.duration_ms,
                success=execution.success,
            )

    def get_execution_summary(self, conversation_id: str) -> dict[str, Any]:
        """
        Get the execution summary of the current (or last) run of a conversation.

        Returns:
            Dict containing total_duration_ms, stage_count, stages, success
            and failed_stages
        """
        executions = self._executions.get(conversation_id, [])
        total_duration = sum(e.duration_ms for e in executions if e.duration_ms is not None)
        failed_stages = [
            {
                "stage_id": e.stage_id,
                "stage_name": e.stage_name,
                "error_type": e.error_type,
                "error_message": e.error_message,
            }
            for e in executions
            if not e.success
        ]

        return {
            "conversation_id": conversation_id,
            "total_duration_ms": round(total_duration, 2),
            "stage_count": len(executions),
            "stages": [e.to_dict() for e in executions],
            "success": len(failed_stages) == 0,
            "failed_stages": failed_stages,
        }

    def get_stage_statistics(self, stage_id) -> dict[str, Any]:
        """Duration statistics for one stage across all tracked runs."""
        stage_id = getattr(stage_id, "value", stage_id)
        durations = [
            e.duration_ms
            for run in self._executions.values()
            for e in run
            if e.stage_id == stage_id and e.duration_ms is not None
        ]

        if not durations:
            return {"stage_id": stage_id, "execution_count": 0}

        return {
            "stage_id": stage_id,
            "execution_count": len(durations),
            "avg_duration_ms": round(statistics.mean(durations), 2),
            "p50_duration_ms": round(statistics.median(durations), 2),
            "min_duration_ms": round(min(durations), 2),
            "max_duration_ms": round(max(durations), 2),
        }

    def clear_run_data(self, conversation_id: str) -> None:
        """
        Clear execution data for a conversation.

        Called when a run finishes, after its summary has been logged, so the
        tracker does not grow with the number of conversations.
        """
        self._executions.pop(conversation_id, None)
        self._stage_stack.pop(conversation_id, None)


_tracker: ExecutionTracker | None = None


def get_tracker() -> ExecutionTracker:
    """Get the global execution tracker instance (singleton)."""
    global _tracker

    if _tracker is None:
        _tracker = ExecutionTracker()

    return _tracker
