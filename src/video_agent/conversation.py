# conversation.py
# Conversation-loop execution engine.
#
# The reasoning engine drives the task turn by turn: each turn it sees the
# full message history plus the capability catalog and either requests
# invocations (which the loop dispatches and answers with tool messages) or
# requests nothing, which ends the task. A hard iteration cap bounds the loop.

from __future__ import annotations

import json

from video_agent import display
from video_agent.context import OrchestrationContext
from video_agent.engine import ExecutionEngine, TaskOutcome, assemble_output
from video_agent.errors import (
    InvalidArguments,
    PlanExhausted,
    ReasoningEngineError,
    TaskCancelled,
)
from video_agent.models import CapabilityResult, ChatMessage, InvocationRequest, TaskOutput, TaskStatus

# ---------------------------------------------------------------------------
# System Prompt
# ---------------------------------------------------------------------------

CONVERSATION_SYSTEM_PROMPT = """\
You are an intelligent video generation orchestrator. Your job is to help \
users create videos by using the available tools strategically.

AVAILABLE TOOLS:
{tools}

INSTRUCTIONS:
1. Analyze the user's request to understand what type of video they want
2. Use tools step by step to gather information, generate content, and create the final video
3. Always start with content analysis to understand the requirements
4. Choose tools based on the specific needs of each request
5. Check quality before finalizing
6. Only indicate completion when you have successfully created a video file

DECISION MAKING PRINCIPLES:
- For educational content: prioritize accuracy and clarity
- For commercial content: focus on visual impact and persuasion
- For entertainment: emphasize creativity and engagement
- Always consider the target audience
- Use quality checks for important content

You must use tools to accomplish tasks. Do not try to generate content directly. \
When the video is finished, reply without requesting any tool.\
"""

USER_REQUEST_PROMPT = 'Please help me create a video based on this request: "{text}"'


class ConversationEngine(ExecutionEngine):
    """
    Iterative request/respond loop with the reasoning engine.

    Successful results land in fixed context slots declared by each
    capability (state_slot, artifact_resource); final-result assembly reads
    the title from `title_slot` and the artifact from `artifact_resource`.
    """

    strategy = "conversation"

    def __init__(
        self,
        *args,
        max_iterations: int | None = None,
        title_slot: str = "script",
        artifact_resource: str = "final_video",
        **kwargs,
    ) -> None:
        super().__init__(*args, **kwargs)
        self.max_iterations = max_iterations or self._settings.max_iterations
        self.title_slot = title_slot
        self.artifact_resource = artifact_resource
        self.messages: list[ChatMessage] = []

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def run(self, context: OrchestrationContext) -> TaskOutcome:
        display.task_start(context.task_id, self.strategy, context.request.text)
        self.messages = [
            ChatMessage(role="system", content=self.build_system_prompt()),
            ChatMessage(role="user", content=USER_REQUEST_PROMPT.format(text=context.request.text)),
        ]

        status = TaskStatus.COMPLETED
        error = ""
        iterations = 0
        try:
            iterations = self._loop(context)
            display.loop_complete(iterations)
        except PlanExhausted as exc:
            status, error, iterations = TaskStatus.INCOMPLETE, str(exc), self.max_iterations
            display.loop_exhausted(self.max_iterations)
        except (ReasoningEngineError, TaskCancelled) as exc:
            status, error = TaskStatus.FAILED, str(exc)
            iterations = sum(1 for m in self.messages if m.role == "assistant")
            display.halt(error)

        outcome = TaskOutcome(
            task_id=context.task_id,
            status=status,
            output=self.build_final_result(context, status),
            error=error,
            iterations=iterations,
        )
        self._progress(100, f"Task {status.value}")
        display.execution_summary(context.history)
        display.final_result(outcome)
        return outcome

    def build_system_prompt(self) -> str:
        tools = "\n".join(
            f"- {entry['name']}: {entry['description']}" for entry in self._registry.schema_catalog()
        )
        return CONVERSATION_SYSTEM_PROMPT.format(tools=tools)

    # ------------------------------------------------------------------
    # Loop
    # ------------------------------------------------------------------

    def _loop(self, context: OrchestrationContext) -> int:
        """Run turns until the engine stops requesting tools. Returns turns used."""
        for iteration in range(1, self.max_iterations + 1):
            self._check_cancelled()
            display.iteration_start(iteration, self.max_iterations)

            reply = self._reasoner.converse(list(self.messages), self._registry.tool_schemas())
            self.messages.append(
                ChatMessage(role="assistant", content=reply.assistant_text, tool_calls=reply.invocations)
            )
            display.assistant_reply(reply.assistant_text, len(reply.invocations))

            if not reply.invocations:
                return iteration

            for call in reply.invocations:
                self._check_cancelled()
                self._invoke(call, context)

            self._progress(
                int(90 * iteration / self.max_iterations),
                f"Iteration {iteration}: {len(reply.invocations)} tool call(s)",
            )

        raise PlanExhausted(
            f"Reached the {self.max_iterations}-iteration cap before the reasoning engine finished."
        )

    def _invoke(self, call: InvocationRequest, context: OrchestrationContext) -> CapabilityResult:
        if call.error:
            # Undecodable arguments fail only this invocation.
            exc = InvalidArguments(call.capability, [call.error])
            dispatch = self._registry.rejected(call.capability, call.arguments, exc)
        else:
            dispatch = self._registry.dispatch(
                call.capability,
                call.arguments,
                context,
                timeout=self._settings.dispatch_timeout,
            )
        self._record(context, call.call_id, dispatch)
        result = dispatch.result

        if result.success:
            content = json.dumps(result.data, default=str)
            self._apply_slots(call.capability, result, context)
        else:
            content = f"Tool execution failed: {result.error}"

        self.messages.append(
            ChatMessage(role="tool", content=content, tool_call_id=call.call_id, name=call.capability)
        )
        display.tool_result(call, result)
        return result

    def _apply_slots(self, name: str, result: CapabilityResult, context: OrchestrationContext) -> None:
        capability = self._registry.resolve(name)
        if capability.state_slot:
            context.set_state(capability.state_slot, result.data)
        if capability.artifact_field and capability.artifact_resource:
            value = result.data.get(capability.artifact_field)
            if isinstance(value, str) and value:
                context.set_resource(capability.artifact_resource, value)

    # ------------------------------------------------------------------
    # Final result
    # ------------------------------------------------------------------

    def build_final_result(self, context: OrchestrationContext, status: TaskStatus) -> TaskOutput:
        script = context.get_state(self.title_slot)
        title = script.get("title") if isinstance(script, dict) else None
        return assemble_output(
            context,
            status,
            str(title) if title is not None else None,
            context.get_resource(self.artifact_resource),
        )
