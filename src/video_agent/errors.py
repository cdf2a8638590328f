# errors.py
# Exception taxonomy shared by the registry and both execution engines.


class OrchestrationError(Exception):
    """Base class for every error raised by the orchestration engine."""


# ---------------------------------------------------------------------------
# Capability faults
# ---------------------------------------------------------------------------


class CapabilityNotFound(OrchestrationError):
    """Raised when a capability name is absent from the registry."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Capability '{name}' is not registered.")
        self.name = name


class InvalidArguments(OrchestrationError):
    """Raised when call arguments do not match the capability's declared schema."""

    def __init__(self, capability: str, problems: list[str]) -> None:
        super().__init__(f"Invalid arguments for '{capability}': " + "; ".join(problems))
        self.capability = capability
        self.problems = problems


class CapabilityExecutionError(OrchestrationError):
    """Wraps an I/O, subprocess or network failure raised inside a capability."""


class CapabilityTimeout(CapabilityExecutionError):
    """Raised when a capability call exceeds its per-call timeout."""


# ---------------------------------------------------------------------------
# Soft skips, never propagated past the plan engine
# ---------------------------------------------------------------------------


class StepSkipped(OrchestrationError):
    """A step was not executed during this pass."""

    def __init__(self, step_id: str, reason: str) -> None:
        super().__init__(f"Step '{step_id}' skipped: {reason}")
        self.step_id = step_id
        self.reason = reason


class ConditionFalse(StepSkipped):
    pass


class DependencyUnmet(StepSkipped):
    pass


class ConditionError(OrchestrationError):
    """Raised when a condition expression cannot be parsed or uses a forbidden construct."""


# ---------------------------------------------------------------------------
# Plan / task level
# ---------------------------------------------------------------------------


class ReasoningEngineError(OrchestrationError):
    """Raised when the reasoning engine is unreachable or returns malformed output."""


class PlanValidationError(OrchestrationError):
    """Raised when a plan breaks queue invariants (duplicate ids, forward dependencies)."""


class PlanExhausted(OrchestrationError):
    """Raised when the iteration cap is reached before the task completed."""


class IntegrityError(OrchestrationError):
    """Raised when an enumerated step was mutated after commit. Always fatal."""


class StepFailedError(OrchestrationError):
    """Raised when a required step fails; aborts the active plan."""

    def __init__(self, step_id: str, capability: str, cause: str) -> None:
        super().__init__(f"Required step '{step_id}' ({capability}) failed: {cause}")
        self.step_id = step_id
        self.capability = capability
        self.cause = cause


class TaskCancelled(OrchestrationError):
    """Raised when the hosting layer cancels a task between dispatches."""
