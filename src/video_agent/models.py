# models.py
# Data contracts for the video-agent orchestration engine.
# No business logic lives here, only schema and validation.

from __future__ import annotations

import json
from enum import Enum
from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


# ---------------------------------------------------------------------------
# Capability schema
# ---------------------------------------------------------------------------

JsonType = Literal["string", "number", "integer", "boolean", "array", "object"]


class ParameterSpec(BaseModel):
    """One typed field of a capability's parameter schema."""

    type: JsonType
    description: str = ""
    enum: list[Any] | None = None
    default: Any = None


class ParameterSchema(BaseModel):
    """JSON-schema style object description, as sent to the reasoning engine."""

    type: Literal["object"] = "object"
    properties: dict[str, ParameterSpec] = Field(default_factory=dict)
    required: list[str] = Field(default_factory=list)

    def export(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


class CapabilityResult(BaseModel):
    """Normalized outcome of one capability invocation."""

    success: bool
    data: dict[str, Any] = Field(default_factory=dict)
    resources: dict[str, str] = Field(default_factory=dict)
    suggested_next: list[str] = Field(default_factory=list)
    message: str = ""
    error: str = ""
    error_kind: str = Field(default="", description="Taxonomy class name of the failure, if any.")
    metadata: dict[str, Any] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Plans
# ---------------------------------------------------------------------------


class PlannedStep(BaseModel):
    """A single declared step of an execution plan."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str = Field(..., validation_alias=AliasChoices("id", "step_id"))
    capability: str = Field(..., validation_alias=AliasChoices("capability", "agent_name", "tool"))
    action: str = ""
    params: dict[str, Any] = Field(
        default_factory=dict, validation_alias=AliasChoices("params", "parameters", "args")
    )
    condition: str | None = None
    depends_on: list[str] = Field(
        default_factory=list, validation_alias=AliasChoices("depends_on", "dependsOn", "dependency")
    )
    optional: bool = False
    retry: int = Field(default=0, ge=0, description="Extra attempts after the first.")

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> Any:
        # Planners frequently emit integer ids.
        return str(value) if isinstance(value, int) else value

    @field_validator("depends_on", mode="before")
    @classmethod
    def _coerce_deps(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, (str, int)):
            value = [value]
        return [str(v) for v in value]


class ExecutionPlan(BaseModel):
    """A plan emitted by one planning round."""

    model_config = ConfigDict(populate_by_name=True)

    analysis: str = Field(default="", validation_alias=AliasChoices("analysis", "task_analysis"))
    strategy: str = ""
    steps: list[PlannedStep] = Field(default_factory=list)
    reasoning: str = ""


# ---------------------------------------------------------------------------
# History
# ---------------------------------------------------------------------------


class CompletedCall(BaseModel):
    """Immutable history entry appended after every dispatch attempt."""

    model_config = ConfigDict(frozen=True)

    step_id: str
    capability: str
    params: dict[str, Any] = Field(default_factory=dict)
    result: CapabilityResult
    started_at: float = Field(..., description="Unix timestamp of the dispatch start.")
    duration_ms: int = 0
    attempt: int = 1
    success: bool
    error: str = ""


# ---------------------------------------------------------------------------
# Conversation protocol
# ---------------------------------------------------------------------------


class InvocationRequest(BaseModel):
    """A capability call requested by the reasoning engine."""

    call_id: str
    capability: str
    arguments: dict[str, Any] = Field(default_factory=dict)
    error: str = Field(default="", description="Set when the raw arguments could not be decoded.")

    def as_tool_call(self) -> dict[str, Any]:
        return {
            "id": self.call_id,
            "type": "function",
            "function": {"name": self.capability, "arguments": json.dumps(self.arguments)},
        }


class ReasoningReply(BaseModel):
    assistant_text: str = ""
    invocations: list[InvocationRequest] = Field(default_factory=list)


class ChatMessage(BaseModel):
    role: Literal["system", "user", "assistant", "tool"]
    content: str = ""
    tool_calls: list[InvocationRequest] = Field(default_factory=list)
    tool_call_id: str | None = None
    name: str | None = None

    def to_openai(self) -> dict[str, Any]:
        message: dict[str, Any] = {"role": self.role, "content": self.content}
        if self.tool_calls:
            message["tool_calls"] = [call.as_tool_call() for call in self.tool_calls]
        if self.tool_call_id is not None:
            message["tool_call_id"] = self.tool_call_id
        if self.name is not None and self.role == "tool":
            message["name"] = self.name
        return message


# ---------------------------------------------------------------------------
# Task input / output
# ---------------------------------------------------------------------------


class UserRequest(BaseModel):
    """The original creative request a task was started with."""

    text: str
    style: str = ""
    images: list[str] = Field(default_factory=list)
    audio: str = ""
    video: str = ""


class TaskStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    INCOMPLETE = "incomplete"
    FAILED = "failed"


class TaskOutput(BaseModel):
    """Final result assembled from the Context at the end of a task."""

    task_id: str
    title: str = ""
    style: str = ""
    final: str = Field(default="", description="Path or URL of the final rendered artifact.")
    status: TaskStatus = TaskStatus.COMPLETED
