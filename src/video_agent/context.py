# context.py
# Per-task shared state: produced resources, arbitrary state values and the
# append-only call history.
#
# Exactly one engine drives one context at a time, so there is no locking here.

from __future__ import annotations

from typing import Any

from video_agent.models import CapabilityResult, CompletedCall, ExecutionPlan, UserRequest


class OrchestrationContext:
    """Mutable state for a single task."""

    def __init__(self, task_id: str, request: UserRequest | str) -> None:
        if isinstance(request, str):
            request = UserRequest(text=request)
        self.task_id = task_id
        self.request = request
        self._resources: dict[str, str] = {}
        self._state: dict[str, Any] = {}
        self._history: list[CompletedCall] = []
        self._plans: list[ExecutionPlan] = []

    # ------------------------------------------------------------------
    # Resources
    # ------------------------------------------------------------------

    def get_resource(self, key: str, default: str | None = None) -> str | None:
        return self._resources.get(key, default)

    def set_resource(self, key: str, path: str) -> None:
        self._resources[key] = path

    @property
    def resources(self) -> dict[str, str]:
        """Shallow copy, in insertion order."""
        return dict(self._resources)

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    def get_state(self, key: str, default: Any = None) -> Any:
        return self._state.get(key, default)

    def set_state(self, key: str, value: Any) -> None:
        self._state[key] = value

    @property
    def state(self) -> dict[str, Any]:
        return dict(self._state)

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    def record(self, call: CompletedCall) -> None:
        self._history.append(call)

    @property
    def history(self) -> tuple[CompletedCall, ...]:
        return tuple(self._history)

    def succeeded(self, step_id: str) -> bool:
        """True if any recorded call for `step_id` succeeded."""
        return any(call.step_id == step_id and call.success for call in self._history)

    def merge(self, result: CapabilityResult) -> None:
        """Fold a successful result's resources and data into the context."""
        if not result.success:
            return
        self._resources.update(result.resources)
        self._state.update(result.data)

    # ------------------------------------------------------------------
    # Plans
    # ------------------------------------------------------------------

    def add_plan(self, plan: ExecutionPlan) -> None:
        self._plans.append(plan)

    @property
    def plans(self) -> tuple[ExecutionPlan, ...]:
        return tuple(self._plans)

    def snapshot(self) -> dict[str, Any]:
        """JSON-serializable view, handed to the external task store."""
        return {
            "task_id": self.task_id,
            "request": self.request.model_dump(),
            "resources": self.resources,
            "state": self.state,
            "history": [call.model_dump(mode="json") for call in self._history],
            "plans": [plan.model_dump(mode="json") for plan in self._plans],
        }
