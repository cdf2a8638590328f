import threading

import pytest

from video_agent.capabilities import CapabilityRegistry, FunctionCapability
from video_agent.config import Settings
from video_agent.models import CapabilityResult, InvocationRequest, ReasoningReply, TaskStatus
from video_agent.observer import TaskObserver
from video_agent.reasoning import ScriptedReasoningEngine
from video_agent.runner import TaskRunner


def _registry():
    reg = CapabilityRegistry()
    reg.register(
        FunctionCapability(
            "render",
            "render",
            lambda p, c: CapabilityResult(success=True, data={"video_file": "/tmp/v.mp4"}),
            terminal=True,
            artifact_field="video_file",
            artifact_resource="final_video",
        )
    )
    reg.register(FunctionCapability("broken", "broken", lambda p, c: CapabilityResult(success=False, error="nope")))
    return reg


@pytest.fixture
def observer():
    return TaskObserver()

# ---------------------------------------------------------------------------
# Observer
# ---------------------------------------------------------------------------

def test_register_and_update(observer):
    observer.register("t1")
    assert observer.get("t1").status is TaskStatus.PENDING

    assert observer.update("t1", TaskStatus.PROCESSING, 40, "Generating script") is True
    entry = observer.get("t1")
    assert entry.status is TaskStatus.PROCESSING
    assert entry.progress == 40
    assert entry.message == "Generating script"
    assert entry.updated_at >= entry.created_at

def test_update_unknown_task(observer):
    assert observer.update("ghost", TaskStatus.PROCESSING, 10, "x") is False
    assert observer.get("ghost") is None

def test_progress_is_clamped(observer):
    observer.register("t1")
    observer.update("t1", TaskStatus.PROCESSING, 140, "x")
    assert observer.get("t1").progress == 100

def test_readers_get_copies(observer):
    observer.register("t1")
    snapshot = observer.get("t1")
    snapshot.message = "tampered"
    observer.list()["t1"].message = "tampered"
    assert observer.get("t1").message == "Task created"

def test_remove(observer):
    observer.register("t1")
    assert observer.remove("t1") is True
    assert observer.remove("t1") is False
    assert observer.list() == {}

def test_concurrent_writers(observer):
    ids = [f"t{i}" for i in range(8)]
    for task_id in ids:
        observer.register(task_id)

    def writer(task_id):
        for step in range(50):
            observer.update(task_id, TaskStatus.PROCESSING, step, f"step {step}")
        observer.update(task_id, TaskStatus.COMPLETED, 100, "done")

    threads = [threading.Thread(target=writer, args=(task_id,)) for task_id in ids]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert {entry.status for entry in observer.list().values()} == {TaskStatus.COMPLETED}

# ---------------------------------------------------------------------------
# Runner
# ---------------------------------------------------------------------------

def test_plan_task_completes(observer):
    reasoner = ScriptedReasoningEngine(plans=[{"steps": [{"id": "r", "capability": "render"}]}])
    runner = TaskRunner(_registry(), reasoner, observer, Settings(workers=1))
    try:
        task_id = runner.submit("A teaser")
        outcome = runner.result(task_id, timeout=10)
    finally:
        runner.shutdown()

    assert outcome.status is TaskStatus.COMPLETED
    assert outcome.output.final == "/tmp/v.mp4"
    progress = observer.get(task_id)
    assert progress.status is TaskStatus.COMPLETED
    assert progress.progress == 100
    assert len(runner.execution_log(task_id)) == 1
    assert runner.context(task_id).get_resource("final_video") == "/tmp/v.mp4"

def test_failed_task_is_reported(observer):
    reasoner = ScriptedReasoningEngine(plans=[{"steps": [{"id": "b", "capability": "broken"}]}])
    runner = TaskRunner(_registry(), reasoner, observer, Settings(workers=1))
    try:
        task_id = runner.submit("A teaser", task_id="fixed-id")
        outcome = runner.result(task_id, timeout=10)
    finally:
        runner.shutdown()

    assert task_id == "fixed-id"
    assert outcome.status is TaskStatus.FAILED
    progress = observer.get(task_id)
    assert progress.status is TaskStatus.FAILED
    assert "nope" in progress.message

def test_conversation_strategy_incomplete(observer):
    loop_forever = [
        ReasoningReply(invocations=[InvocationRequest(call_id=f"c{i}", capability="render")]) for i in range(5)
    ]
    reasoner = ScriptedReasoningEngine(replies=loop_forever)
    runner = TaskRunner(_registry(), reasoner, observer, Settings(workers=1, max_iterations=2))
    try:
        task_id = runner.submit("A teaser", strategy="conversation")
        outcome = runner.result(task_id, timeout=10)
    finally:
        runner.shutdown()

    assert outcome.status is TaskStatus.INCOMPLETE
    assert observer.get(task_id).status is TaskStatus.INCOMPLETE
    assert len(runner.execution_log(task_id)) == 2

def test_unknown_strategy(observer):
    runner = TaskRunner(_registry(), ScriptedReasoningEngine(), observer, Settings(workers=1))
    try:
        with pytest.raises(ValueError, match="Unknown strategy"):
            runner.submit("x", strategy="graph")
    finally:
        runner.shutdown()

def test_submit_after_shutdown(observer):
    runner = TaskRunner(_registry(), ScriptedReasoningEngine(), observer, Settings(workers=1))
    runner.shutdown()
    with pytest.raises(RuntimeError):
        runner.submit("x")

def test_execution_log_for_unknown_task(observer):
    runner = TaskRunner(_registry(), ScriptedReasoningEngine(), observer, Settings(workers=1))
    try:
        assert runner.execution_log("ghost") == ()
    finally:
        runner.shutdown()

def test_forget_drops_task_records(observer):
    reasoner = ScriptedReasoningEngine(plans=[{"steps": [{"id": "r", "capability": "render"}]}])
    runner = TaskRunner(_registry(), reasoner, observer, Settings(workers=1))
    try:
        task_id = runner.submit("A teaser")
        runner.result(task_id, timeout=10)

        assert runner.forget(task_id) is True
        assert runner.context(task_id) is None
        assert runner.execution_log(task_id) == ()
        assert observer.get(task_id) is None
        assert runner.forget(task_id) is False
        with pytest.raises(KeyError):
            runner.result(task_id)
    finally:
        runner.shutdown()
