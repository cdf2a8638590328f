# engine.py
# The execution-engine interface shared by both control strategies.
#
# A task is driven end-to-end by exactly one ExecutionEngine: the plan-based
# engine (plan_engine.py) or the conversation loop (conversation.py). Both
# dispatch through the same CapabilityRegistry and mutate one
# OrchestrationContext; the bookkeeping they share lives here.

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from enum import Enum
from typing import Callable

from pydantic import BaseModel, Field

from video_agent.capabilities import CapabilityRegistry, Dispatch
from video_agent.config import Settings
from video_agent.context import OrchestrationContext
from video_agent.errors import TaskCancelled
from video_agent.models import CompletedCall, TaskOutput, TaskStatus
from video_agent.reasoning import ReasoningEngine

ProgressCallback = Callable[[int, str], None]


class StepState(str, Enum):
    """Where a planned step ended up after a pass."""

    PENDING = "pending"
    SKIPPED = "skipped"
    WAITING = "waiting"
    EXECUTING = "executing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class TaskOutcome(BaseModel):
    """What an engine reports back to the hosting layer."""

    task_id: str
    status: TaskStatus
    output: TaskOutput | None = None
    error: str = ""
    step_states: dict[str, StepState] = Field(default_factory=dict)
    iterations: int = 0
    ledger_root: str = ""


def assemble_output(
    context: OrchestrationContext,
    status: TaskStatus,
    title: str | None,
    final: str | None,
) -> TaskOutput:
    return TaskOutput(
        task_id=context.task_id,
        title=title or "",
        style=str(context.get_state("style") or context.request.style or ""),
        final=final or "",
        status=status,
    )


class ExecutionEngine(ABC):
    """Common interface: run(context) drives one task to a TaskOutcome."""

    strategy: str = ""

    def __init__(
        self,
        registry: CapabilityRegistry,
        reasoner: ReasoningEngine,
        settings: Settings | None = None,
        on_progress: ProgressCallback | None = None,
        cancel_event: threading.Event | None = None,
    ) -> None:
        self._registry = registry
        self._reasoner = reasoner
        self._settings = settings or Settings()
        self._on_progress = on_progress
        self._cancel_event = cancel_event
        self._last_progress = 0

    @abstractmethod
    def run(self, context: OrchestrationContext) -> TaskOutcome:
        """Drive the task. Never raises for capability or planning faults."""

    # ------------------------------------------------------------------
    # Shared bookkeeping
    # ------------------------------------------------------------------

    def _progress(self, percent: int, message: str) -> None:
        # Monotonic: replanning can grow the queue after a step reported.
        self._last_progress = max(self._last_progress, min(100, percent))
        if self._on_progress is not None:
            self._on_progress(self._last_progress, message)

    def _check_cancelled(self) -> None:
        if self._cancel_event is not None and self._cancel_event.is_set():
            raise TaskCancelled("Task cancelled before the next dispatch.")

    def _record(
        self,
        context: OrchestrationContext,
        step_id: str,
        dispatch: Dispatch,
        attempt: int = 1,
    ) -> CompletedCall:
        result = dispatch.result
        call = CompletedCall(
            step_id=step_id,
            capability=dispatch.capability,
            params=dispatch.params,
            result=result,
            started_at=dispatch.started_at,
            duration_ms=dispatch.duration_ms,
            attempt=attempt,
            success=result.success,
            error=result.error,
        )
        context.record(call)
        return call
