import json

import pytest
from unittest.mock import MagicMock
from openai import OpenAIError

from video_agent.config import Settings
from video_agent.context import OrchestrationContext
from video_agent.errors import ReasoningEngineError
from video_agent.models import CapabilityResult, ChatMessage, InvocationRequest, PlannedStep
from video_agent.reasoning import OpenAIReasoningEngine, ScriptedReasoningEngine, parse_plan

CATALOG = [
    {
        "name": "generate_script",
        "description": "Generate a script",
        "parameters": {"type": "object", "properties": {}, "required": []},
    }
]


def _tool_call(call_id, name, arguments):
    call = MagicMock()
    call.id = call_id
    call.function.name = name
    call.function.arguments = arguments
    return call


def _client(content="", tool_calls=None):
    message = MagicMock()
    message.content = content
    message.tool_calls = tool_calls
    client = MagicMock()
    client.chat.completions.create.return_value = MagicMock(choices=[MagicMock(message=message)])
    return client

# ---------------------------------------------------------------------------
# Plan Parser Tests
# ---------------------------------------------------------------------------

def test_parse_plan_tags_with_aliases():
    response = """
    Some preamble.
    <plan>
    {
        "task_analysis": "educational explainer",
        "strategy": "script then render",
        "steps": [
            {"step_id": 1, "agent_name": "generate_script", "parameters": {"topic": "tides"}},
            {"step_id": 2, "tool": "render_video", "dependsOn": 1, "optional": true}
        ]
    }
    </plan>
    """
    plan = parse_plan(response)

    assert plan.analysis == "educational explainer"
    assert [s.id for s in plan.steps] == ["1", "2"]
    assert plan.steps[0].capability == "generate_script"
    assert plan.steps[0].params == {"topic": "tides"}
    assert plan.steps[1].depends_on == ["1"]
    assert plan.steps[1].optional is True

def test_parse_plan_fenced_json():
    response = 'Here you go:\n```json\n{"steps": [{"id": "a", "capability": "x"}]}\n```'
    assert parse_plan(response).steps[0].id == "a"

def test_parse_plan_bare_json():
    response = 'Plan follows {"strategy": "s", "steps": []} and that is all.'
    plan = parse_plan(response)
    assert plan.strategy == "s"
    assert plan.steps == []

def test_parse_plan_malformed_json():
    with pytest.raises(ReasoningEngineError, match="invalid"):
        parse_plan("<plan>{ broken json }</plan>")

def test_parse_plan_schema_violation():
    with pytest.raises(ReasoningEngineError):
        parse_plan('<plan>{"steps": [{"id": "a"}]}</plan>')

def test_parse_plan_without_json():
    with pytest.raises(ReasoningEngineError, match="no plan"):
        parse_plan("I can't help with that.")

# ---------------------------------------------------------------------------
# OpenAI-compatible engine
# ---------------------------------------------------------------------------

def test_plan_sends_catalog_and_request():
    client = _client('<plan>{"steps": [{"id": "s1", "capability": "generate_script"}]}</plan>')
    engine = OpenAIReasoningEngine(Settings(model="test-model"), client=client)

    plan = engine.plan(OrchestrationContext("t", "tides explainer"), CATALOG)

    assert plan.steps[0].capability == "generate_script"
    kwargs = client.chat.completions.create.call_args.kwargs
    assert kwargs["model"] == "test-model"
    system, user = kwargs["messages"]
    assert "- generate_script: Generate a script" in system["content"]
    assert "{catalog}" not in system["content"]
    assert 'User Text: "tides explainer"' in user["content"]

def test_replan_mentions_step_result():
    client = _client('<plan>{"steps": []}</plan>')
    engine = OpenAIReasoningEngine(Settings(), client=client)
    step = PlannedStep(id="q", capability="check_quality")
    result = CapabilityResult(success=True, data={"quality_score": 0.5}, message="weak")

    plan = engine.replan(OrchestrationContext("t", "x"), step, result, CATALOG)

    assert plan.steps == []
    user = client.chat.completions.create.call_args.kwargs["messages"][1]["content"]
    assert "Just completed step: q using check_quality" in user
    assert '"quality_score": 0.5' in user

def test_converse_decodes_tool_calls():
    client = _client(
        "Starting.",
        [
            _tool_call("c1", "generate_script", '{"topic": "tides"}'),
            _tool_call("c2", "render_video", "{not json"),
            _tool_call("c3", "render_video", "[1, 2]"),
        ],
    )
    engine = OpenAIReasoningEngine(Settings(), client=client)

    reply = engine.converse([ChatMessage(role="user", content="hi")], [{"type": "function"}])

    assert reply.assistant_text == "Starting."
    good, bad_json, not_object = reply.invocations
    assert good.arguments == {"topic": "tides"} and good.error == ""
    assert bad_json.error.startswith("Arguments are not valid JSON")
    assert not_object.error == "Arguments must be a JSON object."
    kwargs = client.chat.completions.create.call_args.kwargs
    assert kwargs["tool_choice"] == "auto"

def test_converse_without_tools_omits_tool_choice():
    client = _client("Done.")
    engine = OpenAIReasoningEngine(Settings(), client=client)

    reply = engine.converse([ChatMessage(role="user", content="hi")], [])

    assert reply.invocations == []
    assert "tools" not in client.chat.completions.create.call_args.kwargs

def test_transport_error_is_wrapped():
    client = MagicMock()
    client.chat.completions.create.side_effect = OpenAIError("connection reset")
    engine = OpenAIReasoningEngine(Settings(), client=client)

    with pytest.raises(ReasoningEngineError, match="connection reset"):
        engine.converse([ChatMessage(role="user", content="hi")], [])

def test_empty_choices():
    client = MagicMock()
    client.chat.completions.create.return_value = MagicMock(choices=[])
    engine = OpenAIReasoningEngine(Settings(), client=client)

    with pytest.raises(ReasoningEngineError, match="No response"):
        engine.converse([ChatMessage(role="user", content="hi")], [])

def test_missing_api_key():
    engine = OpenAIReasoningEngine(Settings(api_key=None))
    with pytest.raises(ReasoningEngineError, match="API key"):
        engine.plan(OrchestrationContext("t", "x"), CATALOG)

# ---------------------------------------------------------------------------
# Message wire format
# ---------------------------------------------------------------------------

def test_assistant_message_carries_tool_calls():
    message = ChatMessage(
        role="assistant",
        content="",
        tool_calls=[InvocationRequest(call_id="c1", capability="render_video", arguments={"output_format": "mp4"})],
    )
    wire = message.to_openai()
    call = wire["tool_calls"][0]
    assert call["id"] == "c1"
    assert call["function"]["name"] == "render_video"
    assert json.loads(call["function"]["arguments"]) == {"output_format": "mp4"}

def test_tool_message_carries_call_id():
    wire = ChatMessage(role="tool", content="{}", tool_call_id="c1", name="render_video").to_openai()
    assert wire == {"role": "tool", "content": "{}", "tool_call_id": "c1", "name": "render_video"}

# ---------------------------------------------------------------------------
# Scripted engine
# ---------------------------------------------------------------------------

def test_scripted_engine_runs_out():
    engine = ScriptedReasoningEngine()
    ctx = OrchestrationContext("t", "x")

    with pytest.raises(ReasoningEngineError):
        engine.plan(ctx, CATALOG)
    step = PlannedStep(id="a", capability="x")
    assert engine.replan(ctx, step, CapabilityResult(success=True), CATALOG).steps == []
    assert engine.converse([], []).invocations == []
