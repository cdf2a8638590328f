import pytest

from video_agent.conditions import evaluate_condition
from video_agent.context import OrchestrationContext
from video_agent.errors import ConditionError


@pytest.fixture
def context():
    ctx = OrchestrationContext("task-1", "request")
    ctx.set_resource("script_data", "/tmp/script.json")
    ctx.set_state("quality_score", 0.65)
    ctx.set_state("shots", [{"id": 1}, {"id": 2}])
    ctx.set_state("content_type", "educational")
    return ctx

# ---------------------------------------------------------------------------
# Accepted expressions
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("expression", [None, "", "   "])
def test_blank_condition_is_true(expression, context):
    assert evaluate_condition(expression, context) is True

@pytest.mark.parametrize(
    "expression, expected",
    [
        ("has_resource('script_data')", True),
        ("has_resource('final_video')", False),
        ("not has_resource('final_video')", True),
        ("has_state('shots') and len(state['shots']) > 1", True),
        ("state['quality_score'] < 0.7", True),
        ("state['quality_score'] >= 0.7 or has_resource('final_video')", False),
        ("resources['script_data'] == '/tmp/script.json'", True),
        ("state['content_type'] in ['educational', 'news']", True),
        ("state['missing'] == null", True),
        ("true and not false", True),
        ("0.5 < state['quality_score'] < 0.7", True),
        ("state['shots'][0]['id'] == 1", True),
        ("state['shots'][5] == null", True),
    ],
)
def test_condition_values(expression, expected, context):
    assert evaluate_condition(expression, context) is expected

def test_missing_value_never_satisfies_ordering(context):
    assert evaluate_condition("state['absent'] < 0.7", context) is False
    assert evaluate_condition("state['absent'] > 0.7", context) is False

# ---------------------------------------------------------------------------
# Rejected expressions
# ---------------------------------------------------------------------------

@pytest.mark.parametrize(
    "expression",
    [
        "__import__('os').system('true')",
        "state.keys()",
        "open('/etc/passwd')",
        "lambda: 1",
        "unknown_name == 1",
        "[x for x in state]",
        "has_resource(key='x')",
        "state['a'] +",
        "-state['absent'] < 0",
        "state[['k']] == 1",
    ],
)
def test_disallowed_expressions_raise(expression, context):
    with pytest.raises(ConditionError):
        evaluate_condition(expression, context)
