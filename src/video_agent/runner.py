# runner.py
# Hosting layer: launches each task on a background worker thread, returns
# its id immediately and reports progress through the TaskObserver.
#
# Each task gets its own OrchestrationContext and engine instance; the
# registry and reasoning engine are shared and must be thread-safe.

import threading
import uuid
from concurrent.futures import Future, ThreadPoolExecutor

from video_agent import display
from video_agent.capabilities import CapabilityRegistry
from video_agent.config import Settings
from video_agent.context import OrchestrationContext
from video_agent.conversation import ConversationEngine
from video_agent.engine import ExecutionEngine, TaskOutcome
from video_agent.models import CompletedCall, TaskStatus, UserRequest
from video_agent.observer import TaskObserver
from video_agent.plan_engine import PlanExecutionEngine
from video_agent.reasoning import ReasoningEngine

STRATEGIES: dict[str, type[ExecutionEngine]] = {
    PlanExecutionEngine.strategy: PlanExecutionEngine,
    ConversationEngine.strategy: ConversationEngine,
}


class TaskRunner:
    """
    Runs tasks asynchronously with either execution strategy.

    Example:
        runner = TaskRunner(registry, reasoner, TaskObserver(), settings)
        task_id = runner.submit("A 30 second product teaser", strategy="conversation")
        outcome = runner.result(task_id)
    """

    def __init__(
        self,
        registry: CapabilityRegistry,
        reasoner: ReasoningEngine,
        observer: TaskObserver,
        settings: Settings | None = None,
    ) -> None:
        self._registry = registry
        self._reasoner = reasoner
        self._observer = observer
        self._settings = settings or Settings()
        self._pool = ThreadPoolExecutor(max_workers=self._settings.workers, thread_name_prefix="task")
        self._cancel = threading.Event()
        self._futures: dict[str, Future] = {}
        self._contexts: dict[str, OrchestrationContext] = {}
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    def submit(self, request: UserRequest | str, strategy: str = "plan", task_id: str | None = None) -> str:
        if strategy not in STRATEGIES:
            raise ValueError(f"Unknown strategy '{strategy}'. Choose from {sorted(STRATEGIES)}.")
        if self._cancel.is_set():
            raise RuntimeError("TaskRunner has been shut down.")

        task_id = task_id or str(uuid.uuid4())
        context = OrchestrationContext(task_id, request)
        self._observer.register(task_id)
        with self._lock:
            self._contexts[task_id] = context
            self._futures[task_id] = self._pool.submit(self._run, context, strategy)
        return task_id

    def _run(self, context: OrchestrationContext, strategy: str) -> TaskOutcome:
        task_id = context.task_id
        self._observer.update(task_id, TaskStatus.PROCESSING, 0, "Analyzing user requirements")

        def on_progress(percent: int, message: str) -> None:
            self._observer.update(task_id, TaskStatus.PROCESSING, percent, message)

        engine = STRATEGIES[strategy](
            self._registry,
            self._reasoner,
            self._settings,
            on_progress=on_progress,
            cancel_event=self._cancel,
        )
        try:
            outcome = engine.run(context)
        except Exception as exc:
            self._observer.update(task_id, TaskStatus.FAILED, 0, f"Internal error: {exc}")
            raise

        if outcome.status is TaskStatus.FAILED:
            current = self._observer.get(task_id)
            progress = current.progress if current is not None else 0
            self._observer.update(task_id, TaskStatus.FAILED, progress, outcome.error)
        elif outcome.status is TaskStatus.INCOMPLETE:
            self._observer.update(task_id, TaskStatus.INCOMPLETE, 100, outcome.error)
        else:
            self._observer.update(task_id, TaskStatus.COMPLETED, 100, "Video generation completed")
        return outcome

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def result(self, task_id: str, timeout: float | None = None) -> TaskOutcome:
        """Block until the task finishes. Re-raises internal engine errors."""
        with self._lock:
            future = self._futures[task_id]
        return future.result(timeout=timeout)

    def context(self, task_id: str) -> OrchestrationContext | None:
        with self._lock:
            return self._contexts.get(task_id)

    def execution_log(self, task_id: str) -> tuple[CompletedCall, ...]:
        context = self.context(task_id)
        return context.history if context is not None else ()

    def forget(self, task_id: str) -> bool:
        """
        Drop a task's future, context and observer entry. Returns False for
        unknown ids. A running task keeps running; only its records go.
        """
        with self._lock:
            future = self._futures.pop(task_id, None)
            context = self._contexts.pop(task_id, None)
        removed = self._observer.remove(task_id)
        return future is not None or context is not None or removed

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    def shutdown(self, wait: bool = True) -> None:
        """
        Stop accepting tasks and cancel running ones.

        Engines stop before their next dispatch; in-flight calls end at their
        dispatch timeout. Context mutations already made are kept.
        """
        self._cancel.set()
        display.runner_shutdown(len(self._futures))
        self._pool.shutdown(wait=wait, cancel_futures=True)
