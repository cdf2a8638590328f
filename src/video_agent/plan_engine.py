# plan_engine.py
# Plan-based execution engine.
#
# Control flow:
#   reasoning engine → ExecutionPlan → validate + commit to queue ledger
#   → single forward pass over the queue:
#       condition check → dependency check → ledger verify → dispatch (+ retries)
#       → merge into context → replan? (new steps appended to the queue tail)
#
# A step whose dependencies have not succeeded is dropped for the pass, never
# re-queued. It only runs later if a replanning round emits it again.

from __future__ import annotations

from video_agent import display
from video_agent.conditions import evaluate_condition
from video_agent.context import OrchestrationContext
from video_agent.engine import ExecutionEngine, StepState, TaskOutcome, assemble_output
from video_agent.errors import (
    CapabilityNotFound,
    ConditionError,
    ConditionFalse,
    DependencyUnmet,
    IntegrityError,
    InvalidArguments,
    PlanValidationError,
    ReasoningEngineError,
    StepFailedError,
    TaskCancelled,
)
from video_agent.merkle import MerkleTree
from video_agent.models import CapabilityResult, ExecutionPlan, PlannedStep, TaskOutput, TaskStatus


# ---------------------------------------------------------------------------
# Execution queue
# ---------------------------------------------------------------------------


class ExecutionQueue:
    """
    Ordered, append-only list of enumerated steps.

    Enforces the queue invariants on every enumeration: ids are unique and
    dependencies only name steps already in the queue. Each enumerated step
    is committed to a Merkle ledger so later mutation is detectable.
    """

    def __init__(self) -> None:
        self._steps: list[PlannedStep] = []
        self._ids: set[str] = set()
        self.ledger = MerkleTree()

    def __len__(self) -> int:
        return len(self._steps)

    def __getitem__(self, index: int) -> PlannedStep:
        return self._steps[index]

    @property
    def steps(self) -> list[PlannedStep]:
        return list(self._steps)

    def enumerate(self, steps: list[PlannedStep], round_no: int = 0) -> list[PlannedStep]:
        """
        Validate and append `steps`. All-or-nothing.

        In the initial round (round_no=0) a duplicate id is an error. In a
        replanning round, an id that collides with the queue is renamed to
        "<id>~r<round>" and references to it from later steps of the same
        round are rewritten.
        """
        seen = set(self._ids)
        renames: dict[str, str] = {}
        staged: list[PlannedStep] = []

        for step in steps:
            step_id = step.id
            if step_id in seen:
                if round_no == 0:
                    raise PlanValidationError(f"Duplicate step id '{step_id}'.")
                step_id = f"{step.id}~r{round_no}"
                suffix = 2
                while step_id in seen:
                    step_id = f"{step.id}~r{round_no}.{suffix}"
                    suffix += 1
                renames[step.id] = step_id

            deps = [renames.get(dep, dep) for dep in step.depends_on]
            for dep in deps:
                if dep not in seen:
                    raise PlanValidationError(
                        f"Step '{step_id}' depends on '{dep}', which is not an earlier step."
                    )

            if step_id != step.id or deps != step.depends_on:
                step = step.model_copy(update={"id": step_id, "depends_on": deps})
            staged.append(step)
            seen.add(step_id)

        for step in staged:
            self._steps.append(step)
            self._ids.add(step.id)
            self.ledger.append(step.model_dump(mode="json"))
        return staged

    def verify(self, index: int) -> bool:
        return self.ledger.verify_leaf(index, self._steps[index].model_dump(mode="json"))


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class PlanExecutionEngine(ExecutionEngine):
    """
    Walks a declarative ExecutionPlan against the capability registry.

    Example:
        engine = PlanExecutionEngine(registry, OpenAIReasoningEngine(settings), settings)
        outcome = engine.run(OrchestrationContext("task-1", "A 60s explainer on tides"))
    """

    strategy = "plan"

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.queue = ExecutionQueue()
        self.step_states: dict[str, StepState] = {}
        self._final: TaskOutput | None = None
        self._replans = 0

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def run(self, context: OrchestrationContext) -> TaskOutcome:
        """
        Ask the reasoning engine for a plan and execute it.

        Returns a TaskOutcome in all cases. Planning failures and invalid
        plans fail the task before any step executes; a required-step failure
        fails it after the partial work (which stays in the context).
        """
        display.task_start(context.task_id, self.strategy, context.request.text)
        self._progress(5, "Generating execution plan")

        try:
            plan = self._reasoner.plan(context, self._registry.schema_catalog())
        except ReasoningEngineError as exc:
            return self._failed(context, f"Failed to generate execution plan: {exc}")

        try:
            output = self.execute_plan(plan, context)
        except (PlanValidationError, StepFailedError, IntegrityError, TaskCancelled) as exc:
            return self._failed(context, str(exc))

        outcome = TaskOutcome(
            task_id=context.task_id,
            status=TaskStatus.COMPLETED,
            output=output,
            step_states=dict(self.step_states),
            iterations=len(context.history),
            ledger_root=self.queue.ledger.root,
        )
        self._progress(100, "Task completed")
        display.execution_summary(context.history)
        display.final_result(outcome)
        return outcome

    def _failed(self, context: OrchestrationContext, message: str) -> TaskOutcome:
        display.halt(message)
        return TaskOutcome(
            task_id=context.task_id,
            status=TaskStatus.FAILED,
            output=self._final,
            error=message,
            step_states=dict(self.step_states),
            iterations=len(context.history),
            ledger_root=self.queue.ledger.root,
        )

    # ------------------------------------------------------------------
    # Plan execution
    # ------------------------------------------------------------------

    def execute_plan(self, plan: ExecutionPlan, context: OrchestrationContext) -> TaskOutput | None:
        """
        Single forward pass over `plan` (and whatever replanning appends).

        Returns the final artifact output if a terminal capability succeeded.
        Raises PlanValidationError before any step runs if the plan breaks
        queue invariants; raises StepFailedError when a required step fails.
        """
        start = len(self.queue)
        self.queue.enumerate(plan.steps, round_no=self._replans)
        context.add_plan(plan)
        display.plan_parsed(plan)
        display.ledger_committed(self.queue.ledger.root, len(self.queue))

        index = start
        while index < len(self.queue):
            self._check_cancelled()
            step = self.queue[index]
            self.step_states[step.id] = StepState.PENDING
            display.step_start(index, len(self.queue), step)

            try:
                self._gate(step, context)
            except ConditionFalse as skip:
                self.step_states[step.id] = StepState.SKIPPED
                display.step_skipped(step, skip.reason)
                index += 1
                continue
            except DependencyUnmet as skip:
                self.step_states[step.id] = StepState.WAITING
                display.step_waiting(step, skip.reason)
                index += 1
                continue

            if not self.queue.verify(index):
                display.integrity_breach(index, step)
                raise IntegrityError(
                    f"Step '{step.id}' was mutated after enumeration (queue index {index}). Halting."
                )

            self.step_states[step.id] = StepState.EXECUTING
            result = self._execute_step(step, context)

            if not result.success:
                self.step_states[step.id] = StepState.FAILED
                if step.optional:
                    display.optional_step_failed(step, result.error)
                    index += 1
                    continue
                display.required_step_failed(step, result.error)
                raise StepFailedError(step.id, step.capability, result.error or result.message)

            self.step_states[step.id] = StepState.SUCCEEDED
            context.merge(result)
            self._capture_final(step, result, context)
            self._progress(
                10 + int(85 * (index + 1) / len(self.queue)),
                f"Completed step {step.id} ({step.capability})",
            )
            self._maybe_replan(step, result, context)
            index += 1

        return self._final

    def _gate(self, step: PlannedStep, context: OrchestrationContext) -> None:
        """Raise a StepSkipped subclass if the step may not run now."""
        try:
            if not evaluate_condition(step.condition, context):
                raise ConditionFalse(step.id, f"condition not met: {step.condition}")
        except ConditionError as exc:
            display.condition_error(step, str(exc))
            raise ConditionFalse(step.id, f"condition could not be evaluated: {exc}") from exc

        unmet = [dep for dep in step.depends_on if not context.succeeded(dep)]
        if unmet:
            raise DependencyUnmet(step.id, f"waiting for {unmet}")

    def _execute_step(self, step: PlannedStep, context: OrchestrationContext) -> CapabilityResult:
        """Dispatch with up to `1 + step.retry` attempts; every attempt is recorded."""
        attempts = step.retry + 1
        result = CapabilityResult(success=False, error="not dispatched")
        for attempt in range(1, attempts + 1):
            if attempt > 1:
                self._check_cancelled()
                display.step_retry(step, attempt, attempts, result.error)
            dispatch = self._registry.dispatch(
                step.capability,
                step.params,
                context,
                timeout=self._settings.dispatch_timeout,
            )
            self._record(context, step.id, dispatch, attempt)
            result = dispatch.result
            if result.success:
                display.step_succeeded(step, result)
                break
            # Arguments and lookups fail the same way every time.
            if result.error_kind in (CapabilityNotFound.__name__, InvalidArguments.__name__):
                break
        return result

    def _capture_final(self, step: PlannedStep, result: CapabilityResult, context: OrchestrationContext) -> None:
        capability = self._registry.resolve(step.capability)
        if not capability.terminal:
            return
        final = None
        if capability.artifact_resource:
            final = result.resources.get(capability.artifact_resource)
        if final is None and capability.artifact_field:
            value = result.data.get(capability.artifact_field)
            final = value if isinstance(value, str) else None
        if final and capability.artifact_resource:
            context.set_resource(capability.artifact_resource, final)
        title = context.get_state("title")
        self._final = assemble_output(
            context, TaskStatus.COMPLETED, str(title) if title is not None else None, final
        )

    # ------------------------------------------------------------------
    # Replanning
    # ------------------------------------------------------------------

    def _maybe_replan(self, step: PlannedStep, result: CapabilityResult, context: OrchestrationContext) -> None:
        capability = self._registry.resolve(step.capability)
        if result.suggested_next:
            reason = f"capability suggests {result.suggested_next}"
        elif capability.wants_replan(result):
            reason = (
                f"{capability.replan_metric}={result.data.get(capability.replan_metric)} "
                f"below {capability.replan_threshold}"
            )
        else:
            return

        if self._replans >= self._settings.max_replans:
            display.replan_limit(self._settings.max_replans)
            return

        self._replans += 1
        display.replan_triggered(step, reason)
        try:
            plan = self._reasoner.replan(context, step, result, self._registry.schema_catalog())
        except ReasoningEngineError as exc:
            display.replan_failed(str(exc))
            return

        try:
            added = self.queue.enumerate(plan.steps, round_no=self._replans)
        except PlanValidationError as exc:
            display.replan_failed(str(exc))
            return
        context.add_plan(plan)
        display.replan_appended(added, self.queue.ledger.root)
