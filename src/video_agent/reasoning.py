# reasoning.py
# Reasoning-engine contract and its implementations.
#
# The engines treat the reasoning engine as a black box: it receives the
# capability catalog plus task state and returns either an ExecutionPlan
# (plan / replan) or a ReasoningReply listing requested invocations
# (converse). Transport and parse failures surface as ReasoningEngineError.

from __future__ import annotations

import json
import re
from typing import TYPE_CHECKING, Any, Protocol

from openai import OpenAI, OpenAIError
from pydantic import ValidationError

from video_agent.config import Settings
from video_agent.errors import ReasoningEngineError
from video_agent.models import (
    CapabilityResult,
    ChatMessage,
    ExecutionPlan,
    InvocationRequest,
    PlannedStep,
    ReasoningReply,
)

if TYPE_CHECKING:
    from video_agent.context import OrchestrationContext


class ReasoningEngine(Protocol):
    def plan(self, context: OrchestrationContext, catalog: list[dict[str, Any]]) -> ExecutionPlan: ...

    def replan(
        self,
        context: OrchestrationContext,
        step: PlannedStep,
        result: CapabilityResult,
        catalog: list[dict[str, Any]],
    ) -> ExecutionPlan: ...

    def converse(self, messages: list[ChatMessage], tools: list[dict[str, Any]]) -> ReasoningReply: ...


# ---------------------------------------------------------------------------
# System Prompts
# ---------------------------------------------------------------------------

PLANNING_SYSTEM_PROMPT = """\
You are an intelligent video generation orchestrator. Analyze the user's \
request and produce an execution plan that uses only the capabilities listed below.

Respond with the plan inside <plan> tags containing valid JSON matching this schema:

<plan>
{
  "analysis": "what kind of video is requested and what it needs",
  "strategy": "one-line summary of the approach",
  "steps": [
    {
      "id": "s1",
      "capability": "capability_name",
      "action": "short label",
      "params": {"param_name": "value"},
      "condition": "optional expression, e.g. has_resource('script_data')",
      "depends_on": ["ids of earlier steps"],
      "optional": false,
      "retry": 0
    }
  ],
  "reasoning": "why these capabilities in this order"
}
</plan>

RULES:
- Step ids must be unique. depends_on may only name steps that appear earlier in the list.
- params must match the capability's parameter schema exactly; omit fields you do not need.
- Mark steps optional only when the video can still be produced without them.
- Conditions may use resources["key"], state["key"], has_resource("key"), has_state("key"), \
comparisons and and/or/not.

Available capabilities:
{catalog}\
"""

PLANNING_USER_PROMPT = """\
Task Analysis Request:
- User Text: "{text}"
- Video Style: "{style}"
- Has Images: {has_images}
- Has Audio: {has_audio}

Current Context:
- Available Resources: {resources}
- Previous Steps: {previous}

Please analyze this video generation task and create an optimal execution plan. Consider:

1. What type of video is requested?
2. Which capabilities are needed and in what order?
3. Should any steps be conditional or optional?
4. How can we ensure the best quality output?\
"""

REPLANNING_USER_PROMPT = """\
Current situation analysis:
- Just completed step: {step_id} using {capability}
- Result: {message} (Success: {success})
- Suggested next capabilities: {suggested}
- Current resources: {resources}
- Quality indicators: {data}

Based on the current results, generate ONLY the additional steps needed to \
optimize the outcome (quality improvement, alternative approaches, validation). \
Use new step ids. Return an empty steps list if the remaining plan is fine.\
"""


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _format_catalog(catalog: list[dict[str, Any]]) -> str:
    lines = []
    for entry in catalog:
        lines.append(f"- {entry['name']}: {entry['description']}")
        lines.append(f"  parameters: {json.dumps(entry['parameters'])}")
    return "\n".join(lines)


def parse_plan(response: str) -> ExecutionPlan:
    """
    Extract and validate plan JSON from a model response.

    Accepts <plan> tags, a ```json fenced block, or a bare JSON object.
    Raises ReasoningEngineError if no valid plan can be recovered.
    """
    match = re.search(r"<plan>(.*?)</plan>", response, re.DOTALL)
    if match:
        raw = match.group(1)
    else:
        fenced = re.search(r"```(?:json)?\s*(\{.*\})\s*```", response, re.DOTALL)
        if fenced:
            raw = fenced.group(1)
        else:
            start, end = response.find("{"), response.rfind("}")
            if start == -1 or end <= start:
                raise ReasoningEngineError("Reasoning engine response contains no plan JSON.")
            raw = response[start : end + 1]

    try:
        data = json.loads(raw.strip(), strict=False)
        return ExecutionPlan.model_validate(data)
    except (json.JSONDecodeError, ValidationError) as exc:
        raise ReasoningEngineError(f"Plan content is invalid: {exc}") from exc


def _decode_invocation(tool_call: Any) -> InvocationRequest:
    raw = tool_call.function.arguments or "{}"
    try:
        arguments = json.loads(raw) if isinstance(raw, str) else dict(raw)
    except json.JSONDecodeError as exc:
        return InvocationRequest(
            call_id=tool_call.id,
            capability=tool_call.function.name,
            error=f"Arguments are not valid JSON: {exc}",
        )
    if not isinstance(arguments, dict):
        return InvocationRequest(
            call_id=tool_call.id,
            capability=tool_call.function.name,
            error="Arguments must be a JSON object.",
        )
    return InvocationRequest(call_id=tool_call.id, capability=tool_call.function.name, arguments=arguments)


# ---------------------------------------------------------------------------
# OpenAI-compatible engine
# ---------------------------------------------------------------------------


class OpenAIReasoningEngine:
    """
    Reasoning engine backed by any OpenAI-compatible chat completions API
    (OpenRouter by default).
    """

    def __init__(self, settings: Settings, client: OpenAI | None = None) -> None:
        self._settings = settings
        self._client = client

    @property
    def client(self) -> OpenAI:
        if self._client is None:
            if not self._settings.api_key:
                raise ReasoningEngineError("No API key configured (set OPENROUTER_API_KEY).")
            self._client = OpenAI(
                base_url=self._settings.base_url,
                api_key=self._settings.api_key,
                timeout=self._settings.llm_timeout,
            )
        return self._client

    def _complete(self, messages: list[dict[str, Any]], **kwargs: Any) -> Any:
        try:
            response = self.client.chat.completions.create(
                model=self._settings.model,
                messages=messages,
                **kwargs,
            )
        except OpenAIError as exc:
            raise ReasoningEngineError(f"Reasoning engine call failed: {exc}") from exc
        if not response.choices:
            raise ReasoningEngineError("No response from reasoning engine.")
        return response.choices[0].message

    def plan(self, context: OrchestrationContext, catalog: list[dict[str, Any]]) -> ExecutionPlan:
        request = context.request
        prompt = PLANNING_USER_PROMPT.format(
            text=request.text,
            style=request.style,
            has_images=bool(request.images),
            has_audio=bool(request.audio),
            resources=context.resources,
            previous=len(context.history),
        )
        message = self._complete(
            [
                {"role": "system", "content": PLANNING_SYSTEM_PROMPT.replace("{catalog}", _format_catalog(catalog))},
                {"role": "user", "content": prompt},
            ]
        )
        return parse_plan(message.content or "")

    def replan(
        self,
        context: OrchestrationContext,
        step: PlannedStep,
        result: CapabilityResult,
        catalog: list[dict[str, Any]],
    ) -> ExecutionPlan:
        prompt = REPLANNING_USER_PROMPT.format(
            step_id=step.id,
            capability=step.capability,
            message=result.message,
            success=result.success,
            suggested=result.suggested_next,
            resources=context.resources,
            data=json.dumps(result.data, default=str),
        )
        message = self._complete(
            [
                {"role": "system", "content": PLANNING_SYSTEM_PROMPT.replace("{catalog}", _format_catalog(catalog))},
                {"role": "user", "content": prompt},
            ]
        )
        return parse_plan(message.content or "")

    def converse(self, messages: list[ChatMessage], tools: list[dict[str, Any]]) -> ReasoningReply:
        kwargs: dict[str, Any] = {}
        if tools:
            kwargs = {"tools": tools, "tool_choice": "auto"}
        message = self._complete([m.to_openai() for m in messages], **kwargs)
        calls = [_decode_invocation(tc) for tc in (message.tool_calls or [])]
        return ReasoningReply(assistant_text=message.content or "", invocations=calls)


# ---------------------------------------------------------------------------
# Scripted engine
# ---------------------------------------------------------------------------


class ScriptedReasoningEngine:
    """
    Deterministic reasoning engine that replays canned responses in order.

    Used for offline runs and tests. When the script runs out: plan() raises,
    replan() returns an empty plan, converse() returns a reply with no
    invocations (which ends a conversation loop).
    """

    def __init__(
        self,
        plans: list[ExecutionPlan | dict[str, Any]] | None = None,
        replans: list[ExecutionPlan | dict[str, Any]] | None = None,
        replies: list[ReasoningReply | dict[str, Any]] | None = None,
    ) -> None:
        self._plans = [ExecutionPlan.model_validate(p) for p in plans or []]
        self._replans = [ExecutionPlan.model_validate(p) for p in replans or []]
        self._replies = [ReasoningReply.model_validate(r) for r in replies or []]
        self.conversations: list[list[ChatMessage]] = []
        self.replan_requests: list[tuple[str, CapabilityResult]] = []

    def plan(self, context: OrchestrationContext, catalog: list[dict[str, Any]]) -> ExecutionPlan:
        if not self._plans:
            raise ReasoningEngineError("Scripted reasoning engine has no plan left.")
        return self._plans.pop(0)

    def replan(
        self,
        context: OrchestrationContext,
        step: PlannedStep,
        result: CapabilityResult,
        catalog: list[dict[str, Any]],
    ) -> ExecutionPlan:
        self.replan_requests.append((step.id, result))
        if not self._replans:
            return ExecutionPlan(strategy="No further changes")
        return self._replans.pop(0)

    def converse(self, messages: list[ChatMessage], tools: list[dict[str, Any]]) -> ReasoningReply:
        self.conversations.append(list(messages))
        if not self._replies:
            return ReasoningReply(assistant_text="Task complete.")
        return self._replies.pop(0)
