import time

import pytest
from unittest.mock import MagicMock

from video_agent.capabilities import CapabilityRegistry, FunctionCapability
from video_agent.errors import CapabilityNotFound, CapabilityTimeout, InvalidArguments
from video_agent.models import CapabilityResult, ParameterSchema, ParameterSpec

ECHO_SCHEMA = ParameterSchema(
    properties={
        "message": ParameterSpec(type="string", description="Text to echo"),
        "times": ParameterSpec(type="integer", default=1),
        "mode": ParameterSpec(type="string", enum=["loud", "quiet"]),
    },
    required=["message"],
)


def _echo(params, context):
    return CapabilityResult(success=True, data={"echo": params["message"] * params["times"]})


@pytest.fixture
def registry():
    reg = CapabilityRegistry()
    reg.register(FunctionCapability("echo", "Repeat a message", _echo, ECHO_SCHEMA))
    return reg

# ---------------------------------------------------------------------------
# Registration and lookup
# ---------------------------------------------------------------------------

def test_register_and_resolve(registry):
    assert "echo" in registry
    assert len(registry) == 1
    assert registry.names() == ["echo"]
    assert registry.resolve("echo").description == "Repeat a message"

def test_register_overwrites_existing_name(registry):
    registry.register(FunctionCapability("echo", "Replacement", _echo, ECHO_SCHEMA))
    assert len(registry) == 1
    assert registry.resolve("echo").description == "Replacement"

def test_register_rejects_empty_name(registry):
    with pytest.raises(ValueError):
        registry.register(FunctionCapability("", "nameless", _echo))

def test_resolve_unknown_raises(registry):
    with pytest.raises(CapabilityNotFound, match="ghost"):
        registry.resolve("ghost")

def test_unknown_metadata_is_rejected():
    with pytest.raises(TypeError, match="colour"):
        FunctionCapability("x", "x", _echo, colour="red")

# ---------------------------------------------------------------------------
# Schema validation
# ---------------------------------------------------------------------------

def test_validate_fills_defaults(registry):
    assert registry.validate("echo", {"message": "hi"}) == {"message": "hi", "times": 1}

def test_validate_missing_required(registry):
    with pytest.raises(InvalidArguments) as exc_info:
        registry.validate("echo", {})
    assert "missing required field 'message'" in exc_info.value.problems

def test_validate_unknown_field(registry):
    with pytest.raises(InvalidArguments, match="unknown field 'volume'"):
        registry.validate("echo", {"message": "hi", "volume": 11})

def test_validate_wrong_type(registry):
    with pytest.raises(InvalidArguments, match="expects integer"):
        registry.validate("echo", {"message": "hi", "times": "2"})

def test_validate_bool_is_not_an_integer(registry):
    with pytest.raises(InvalidArguments):
        registry.validate("echo", {"message": "hi", "times": True})

def test_validate_enum(registry):
    with pytest.raises(InvalidArguments, match="must be one of"):
        registry.validate("echo", {"message": "hi", "mode": "whisper"})

def test_validate_reports_every_problem(registry):
    with pytest.raises(InvalidArguments) as exc_info:
        registry.validate("echo", {"times": "x", "extra": 1})
    assert len(exc_info.value.problems) == 3

# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------

def test_dispatch_success(registry):
    dispatch = registry.dispatch("echo", {"message": "hi", "times": 2})
    assert dispatch.result.success is True
    assert dispatch.result.data == {"echo": "hihi"}
    assert dispatch.params == {"message": "hi", "times": 2}
    assert dispatch.duration_ms >= 0

def test_dispatch_unknown_capability_is_normalized(registry):
    dispatch = registry.dispatch("ghost", {})
    assert dispatch.result.success is False
    assert dispatch.result.error_kind == "CapabilityNotFound"

def test_dispatch_invalid_arguments_never_invokes():
    fn = MagicMock()
    reg = CapabilityRegistry()
    reg.register(FunctionCapability("echo", "echo", fn, ECHO_SCHEMA))

    dispatch = reg.dispatch("echo", {"times": 3})

    assert dispatch.result.success is False
    assert dispatch.result.error_kind == "InvalidArguments"
    fn.assert_not_called()

def test_dispatch_exception_is_normalized():
    def explode(params, context):
        raise RuntimeError("boom")

    reg = CapabilityRegistry()
    reg.register(FunctionCapability("explode", "always fails", explode))

    result = reg.dispatch("explode", {}).result
    assert result.success is False
    assert result.error_kind == "CapabilityExecutionError"
    assert "boom" in result.error

def test_dispatch_keeps_taxonomy_errors():
    def slow_backend(params, context):
        raise CapabilityTimeout("backend too slow")

    reg = CapabilityRegistry()
    reg.register(FunctionCapability("slow", "slow", slow_backend))

    result = reg.dispatch("slow", {}).result
    assert result.error_kind == "CapabilityTimeout"
    assert result.error == "backend too slow"

def test_dispatch_accepts_plain_dict_results():
    reg = CapabilityRegistry()
    reg.register(FunctionCapability("plain", "plain", lambda p, c: {"success": True, "data": {"n": 1}}))
    assert reg.dispatch("plain", {}).result.data == {"n": 1}

def test_dispatch_malformed_result():
    reg = CapabilityRegistry()
    reg.register(FunctionCapability("bad", "bad", lambda p, c: {"nonsense": 1}))

    result = reg.dispatch("bad", {}).result
    assert result.success is False
    assert result.error_kind == "CapabilityExecutionError"
    assert "Malformed result" in result.error

def test_dispatch_timeout():
    reg = CapabilityRegistry()
    reg.register(FunctionCapability("sleepy", "sleeps", lambda p, c: time.sleep(0.5)))

    dispatch = reg.dispatch("sleepy", {}, timeout=0.05)

    assert dispatch.result.success is False
    assert dispatch.result.error_kind == "CapabilityTimeout"
    assert dispatch.duration_ms < 500

def test_capability_timeout_overrides_dispatch_timeout():
    reg = CapabilityRegistry(default_timeout=30)
    reg.register(FunctionCapability("sleepy", "sleeps", lambda p, c: time.sleep(0.5), timeout=0.05))

    dispatch = reg.dispatch("sleepy", {}, timeout=30)
    assert dispatch.result.error_kind == "CapabilityTimeout"

def test_rejected_records_failure_without_dispatch(registry):
    dispatch = registry.rejected("echo", {"message": 1}, InvalidArguments("echo", ["bad json"]))
    assert dispatch.result.success is False
    assert dispatch.result.error_kind == "InvalidArguments"
    assert dispatch.duration_ms == 0

# ---------------------------------------------------------------------------
# Catalog and replan metric
# ---------------------------------------------------------------------------

def test_schema_catalog(registry):
    catalog = registry.schema_catalog()
    assert catalog == [
        {
            "name": "echo",
            "description": "Repeat a message",
            "parameters": ECHO_SCHEMA.export(),
        }
    ]
    assert catalog[0]["parameters"]["required"] == ["message"]

def test_tool_schemas_use_function_shape(registry):
    tool = registry.tool_schemas()[0]
    assert tool["type"] == "function"
    assert tool["function"]["name"] == "echo"

@pytest.mark.parametrize(
    "data, expected",
    [
        ({"quality_score": 0.5}, True),
        ({"quality_score": 0.9}, False),
        ({}, False),
        ({"quality_score": True}, False),
        ({"quality_score": "low"}, False),
    ],
)
def test_wants_replan(data, expected):
    cap = FunctionCapability("check", "check", _echo, replan_metric="quality_score")
    assert cap.wants_replan(CapabilityResult(success=True, data=data)) is expected
