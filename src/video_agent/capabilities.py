# capabilities.py
# Capability interface and registry.
#
# Both execution engines resolve work by capability name through one
# CapabilityRegistry. The registry owns argument validation, timeouts and
# failure normalization: a capability fault never escapes dispatch() as an
# exception, it comes back as CapabilityResult(success=False).

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from typing import TYPE_CHECKING, Any, Callable

from pydantic import BaseModel, ConfigDict, ValidationError

from video_agent import display
from video_agent.errors import (
    CapabilityExecutionError,
    CapabilityNotFound,
    CapabilityTimeout,
    InvalidArguments,
)
from video_agent.models import CapabilityResult, ParameterSchema, ParameterSpec

if TYPE_CHECKING:
    from video_agent.context import OrchestrationContext


# ---------------------------------------------------------------------------
# Capability interface
# ---------------------------------------------------------------------------


class Capability(ABC):
    """
    A named unit of work the engines can invoke.

    Subclasses declare metadata as class attributes and implement invoke().
    The metadata drives engine behaviour generically:

      terminal          successful output is the task's final artifact
      replan_metric     numeric data field checked against replan_threshold
      state_slot        fixed Context state key used by the conversation loop
      artifact_field    data field copied to resource `artifact_resource`
      timeout           per-call timeout override (seconds)
    """

    name: str = ""
    description: str = ""
    parameters: ParameterSchema = ParameterSchema()

    terminal: bool = False
    replan_metric: str | None = None
    replan_threshold: float = 0.7
    state_slot: str | None = None
    artifact_field: str | None = None
    artifact_resource: str | None = None
    timeout: float | None = None

    @abstractmethod
    def invoke(self, params: dict[str, Any], context: OrchestrationContext | None) -> CapabilityResult:
        """Run the capability. May raise; the registry normalizes failures."""

    def wants_replan(self, result: CapabilityResult) -> bool:
        """True when the declared replan metric in `result` falls below threshold."""
        if not self.replan_metric:
            return False
        value = result.data.get(self.replan_metric)
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return False
        return value < self.replan_threshold

    def describe(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "parameters": self.parameters.export(),
        }


class FunctionCapability(Capability):
    """Adapts a plain callable `fn(params, context)` into a Capability."""

    def __init__(
        self,
        name: str,
        description: str,
        fn: Callable[..., Any],
        parameters: ParameterSchema | None = None,
        **metadata: Any,
    ) -> None:
        self.name = name
        self.description = description
        self.parameters = parameters or ParameterSchema()
        self._fn = fn
        for key, value in metadata.items():
            if not hasattr(Capability, key):
                raise TypeError(f"Unknown capability metadata '{key}'.")
            setattr(self, key, value)

    def invoke(self, params: dict[str, Any], context: OrchestrationContext | None) -> CapabilityResult:
        outcome = self._fn(params, context)
        if isinstance(outcome, CapabilityResult):
            return outcome
        return CapabilityResult.model_validate(outcome)


# ---------------------------------------------------------------------------
# Schema validation
# ---------------------------------------------------------------------------


def _type_matches(spec: ParameterSpec, value: Any) -> bool:
    if spec.type == "string":
        return isinstance(value, str)
    if spec.type == "boolean":
        return isinstance(value, bool)
    if isinstance(value, bool):
        return False
    if spec.type == "integer":
        return isinstance(value, int)
    if spec.type == "number":
        return isinstance(value, (int, float))
    if spec.type == "array":
        return isinstance(value, (list, tuple))
    if spec.type == "object":
        return isinstance(value, dict)
    return False


def validate_arguments(capability: Capability, params: dict[str, Any] | None) -> dict[str, Any]:
    """
    Check `params` against the capability's schema and return a normalized copy
    with declared defaults filled in.

    Raises InvalidArguments listing every violation found.
    """
    if params is None:
        params = {}
    if not isinstance(params, dict):
        raise InvalidArguments(capability.name, [f"arguments must be an object, got {type(params).__name__}"])

    schema = capability.parameters
    problems: list[str] = []

    for key in schema.required:
        if key not in params:
            problems.append(f"missing required field '{key}'")

    for key, value in params.items():
        spec = schema.properties.get(key)
        if spec is None:
            problems.append(f"unknown field '{key}'")
            continue
        if not _type_matches(spec, value):
            problems.append(f"field '{key}' expects {spec.type}, got {type(value).__name__}")
        elif spec.enum is not None and value not in spec.enum:
            problems.append(f"field '{key}' must be one of {spec.enum}, got {value!r}")

    if problems:
        raise InvalidArguments(capability.name, problems)

    normalized = dict(params)
    for key, spec in schema.properties.items():
        if key not in normalized and spec.default is not None:
            normalized[key] = spec.default
    return normalized


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


class Dispatch(BaseModel):
    """Timing and outcome of one registry dispatch."""

    model_config = ConfigDict(frozen=True)

    capability: str
    params: dict[str, Any]
    result: CapabilityResult
    started_at: float
    duration_ms: int


def _failure(exc: BaseException) -> CapabilityResult:
    return CapabilityResult(
        success=False,
        error=str(exc) or exc.__class__.__name__,
        error_kind=exc.__class__.__name__,
        message=f"{exc.__class__.__name__}: {exc}",
    )


class CapabilityRegistry:
    """
    In-memory mapping of capability names to implementations.

    register() overwrites any existing mapping for the name. Lookup is always
    by name; engines never inspect capability types.
    """

    def __init__(self, default_timeout: float | None = None) -> None:
        self._caps: dict[str, Capability] = {}
        self._default_timeout = default_timeout

    def register(self, capability: Capability) -> None:
        if not capability.name:
            raise ValueError("Capability must declare a non-empty name.")
        self._caps[capability.name] = capability
        display.capability_registered(capability.name)

    def resolve(self, name: str) -> Capability:
        try:
            return self._caps[name]
        except KeyError:
            raise CapabilityNotFound(name) from None

    def validate(self, name: str, params: dict[str, Any] | None) -> dict[str, Any]:
        return validate_arguments(self.resolve(name), params)

    def names(self) -> list[str]:
        return list(self._caps)

    def __contains__(self, name: object) -> bool:
        return name in self._caps

    def __len__(self) -> int:
        return len(self._caps)

    # ------------------------------------------------------------------
    # Catalog export
    # ------------------------------------------------------------------

    def schema_catalog(self) -> list[dict[str, Any]]:
        """{name, description, parameters} for every registered capability."""
        return [cap.describe() for cap in self._caps.values()]

    def tool_schemas(self) -> list[dict[str, Any]]:
        """The catalog in OpenAI function-tool shape."""
        return [{"type": "function", "function": entry} for entry in self.schema_catalog()]

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def dispatch(
        self,
        name: str,
        params: dict[str, Any] | None,
        context: OrchestrationContext | None = None,
        timeout: float | None = None,
    ) -> Dispatch:
        """
        Resolve, validate and invoke a capability.

        Never raises for capability faults: not-found, invalid arguments,
        exceptions raised by the capability and timeouts are all normalized
        into a failed CapabilityResult with error and error_kind populated.
        """
        started_at = time.time()
        clock = time.monotonic()
        normalized = dict(params or {}) if isinstance(params, dict) else {}

        try:
            capability = self.resolve(name)
            normalized = validate_arguments(capability, params)
            limit = capability.timeout or timeout or self._default_timeout
            result = self._invoke(capability, normalized, context, limit)
        except (CapabilityNotFound, InvalidArguments, CapabilityExecutionError) as exc:
            result = _failure(exc)
        except ValidationError as exc:
            # Capability returned something that is not a CapabilityResult.
            result = _failure(CapabilityExecutionError(f"Malformed result from '{name}': {exc}"))
        except Exception as exc:
            result = _failure(CapabilityExecutionError(f"{exc.__class__.__name__}: {exc}"))

        duration_ms = int((time.monotonic() - clock) * 1000)
        display.capability_dispatched(name, result.success, duration_ms, result.error)
        return Dispatch(
            capability=name,
            params=normalized,
            result=result,
            started_at=started_at,
            duration_ms=duration_ms,
        )

    def _invoke(
        self,
        capability: Capability,
        params: dict[str, Any],
        context: OrchestrationContext | None,
        timeout: float | None,
    ) -> CapabilityResult:
        if timeout is None:
            return capability.invoke(params, context)

        pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"cap-{capability.name}")
        future = pool.submit(capability.invoke, params, context)
        try:
            return future.result(timeout=timeout)
        except FutureTimeout:
            future.cancel()
            raise CapabilityTimeout(
                f"Capability '{capability.name}' exceeded its {timeout:g}s timeout."
            ) from None
        finally:
            pool.shutdown(wait=False, cancel_futures=True)

    def rejected(self, name: str, params: dict[str, Any] | None, exc: Exception) -> Dispatch:
        """Dispatch record for a call refused before it reached the registry."""
        result = _failure(exc)
        display.capability_dispatched(name, False, 0, result.error)
        return Dispatch(
            capability=name,
            params=dict(params or {}),
            result=result,
            started_at=time.time(),
            duration_ms=0,
        )
