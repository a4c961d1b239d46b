import threading

import pytest
from sqlalchemy.exc import SQLAlchemyError

from taskengine.models.enums import QueueStatus, TargetKind
from taskengine.repositories.execution_log_repository import ExecutionLogRepository
from taskengine.repositories.queue_repository import QueueRepository
from taskengine.repositories.workflow_repository import ResumptionRepository, TaskRepository
from taskengine.schemas.responses import PromptResponse, ServiceResponse
from taskengine.services.mock_backend import MockExecutionBackend
from taskengine.services.task_queue_worker import (
    COMPLETED,
    DISCARDED,
    FAILED,
    IDLE,
    RETRY_SCHEDULED,
    TaskQueueWorker,
)


class FixedRoll:
    def __init__(self, value):
        self.value = value

    def random(self):
        return self.value


class ScriptedBackend:
    def __init__(self, response):
        self.response = response
        self.calls = 0

    def execute(self, endpoint, input_data, config):
        self.calls += 1
        return self.response


def make_worker(session_factory, backend, **kwargs):
    return TaskQueueWorker(session_factory=session_factory, backend_factory=lambda config: backend, **kwargs)


def test_weather_mock_item_completes(session, session_factory, weather_config):
    item = QueueRepository(session).enqueue("inst-1", "task-1", weather_config.id, {"city": "SF"}, max_retries=3)
    backend = MockExecutionBackend(rng=FixedRoll(0.99), sleep=lambda s: None)

    assert make_worker(session_factory, backend).poll_once() == COMPLETED

    done = QueueRepository(session).get(item.id)
    assert done.status == QueueStatus.COMPLETED
    assert done.output_data["temperature"] == 72

    task = TaskRepository(session).get("task-1")
    assert task.status == QueueStatus.COMPLETED
    assert task.output_data["temperature"] == 72

    assert len(ResumptionRepository(session).list_for_instance("inst-1")) == 1

    logs = ExecutionLogRepository(session).list_for_task("task-1")
    assert len(logs) == 1
    assert logs[0].service_name == "Weather Service"
    assert logs[0].http_status_code == 200
    assert logs[0].retry_attempt == 0


def test_idle_when_queue_empty(session_factory):
    assert make_worker(session_factory, ScriptedBackend(None)).poll_once() == IDLE


@pytest.mark.parametrize("max_retries", [1, 2, 3, 5])
def test_fails_after_exactly_max_retries_executions(session, session_factory, weather_config, max_retries):
    item = QueueRepository(session).enqueue("inst-1", "task-1", weather_config.id, max_retries=max_retries)
    backend = ScriptedBackend(ServiceResponse(status="error", error="upstream down", status_code=500))
    worker = make_worker(session_factory, backend)

    outcomes = []
    while True:
        outcome = worker.poll_once()
        if outcome == IDLE:
            break
        outcomes.append(outcome)

    assert backend.calls == max_retries
    assert outcomes == [RETRY_SCHEDULED] * (max_retries - 1) + [FAILED]

    failed = QueueRepository(session).get(item.id)
    assert failed.status == QueueStatus.FAILED
    assert failed.retry_count == max_retries - 1
    assert failed.error_message == "upstream down"
    assert TaskRepository(session).get("task-1").status == QueueStatus.FAILED
    assert ResumptionRepository(session).list_for_instance("inst-1") == []


def test_retry_returns_item_to_pending(session, session_factory, weather_config):
    item = QueueRepository(session).enqueue("inst-1", "task-1", weather_config.id, max_retries=3)
    backend = ScriptedBackend(ServiceResponse(status="error", error="timeout", status_code=408))

    assert make_worker(session_factory, backend).poll_once() == RETRY_SCHEDULED

    pending = QueueRepository(session).get(item.id)
    assert pending.status == QueueStatus.PENDING
    assert pending.retry_count == 1
    assert pending.error_message == "timeout"
    assert TaskRepository(session).get("task-1") is None


def test_mock_not_found_scenario_spends_full_retry_budget(session, session_factory, weather_config):
    # 0.15 <= roll < 0.18 lands on the 404 "Invalid Location" scenario
    item = QueueRepository(session).enqueue("inst-1", "task-1", weather_config.id, max_retries=3)
    backend = MockExecutionBackend(rng=FixedRoll(0.16), sleep=lambda s: None)
    worker = make_worker(session_factory, backend)

    outcomes = [worker.poll_once() for _ in range(4)]

    assert outcomes == [RETRY_SCHEDULED, RETRY_SCHEDULED, FAILED, IDLE]
    failed = QueueRepository(session).get(item.id)
    assert failed.status == QueueStatus.FAILED
    assert failed.retry_count == 2
    assert len(ExecutionLogRepository(session).list_for_task("task-1")) == 3
    assert all(log.http_status_code == 404 for log in ExecutionLogRepository(session).list_for_task("task-1"))


def test_backend_fault_forces_failed(session, session_factory, weather_config):
    item = QueueRepository(session).enqueue("inst-1", "task-1", weather_config.id)

    class Exploding:
        def execute(self, endpoint, input_data, config):
            raise RuntimeError("backend bug")

    assert make_worker(session_factory, Exploding()).poll_once() == FAILED

    failed = QueueRepository(session).get(item.id)
    assert failed.status == QueueStatus.FAILED
    assert failed.error_message == "backend bug"
    assert TaskRepository(session).get("task-1").status == QueueStatus.FAILED


def test_missing_configuration_fails(session, session_factory):
    item = QueueRepository(session).enqueue("inst-1", "task-1", "no-such-config")
    assert make_worker(session_factory, ScriptedBackend(None)).poll_once() == FAILED
    failed = QueueRepository(session).get(item.id)
    assert failed.error_message == "Service configuration not found: no-such-config"


def test_cancelled_in_flight_result_is_discarded(session, session_factory, weather_config):
    item = QueueRepository(session).enqueue("inst-1", "task-1", weather_config.id)

    class CancelDuringCall:
        def execute(self, endpoint, input_data, config):
            with session_factory() as other:
                QueueRepository(other).cancel(item.id, "operator abort")
            return ServiceResponse(status="success", data={"late": True}, status_code=200)

    assert make_worker(session_factory, CancelDuringCall()).poll_once() == DISCARDED

    cancelled = QueueRepository(session).get(item.id)
    assert cancelled.status == QueueStatus.FAILED
    assert cancelled.error_message == "operator abort"
    assert ResumptionRepository(session).list_for_instance("inst-1") == []


def test_prompt_item_dispatches_to_prompt_library(session, session_factory, mocker):
    item = QueueRepository(session).enqueue(
        "inst-1", "task-1", "summarise_case", {"case": "c-1"}, target_kind=TargetKind.PROMPT
    )
    library = mocker.MagicMock()
    library.execute_prompt.return_value = PromptResponse(success=True, data={"summary": "ok"}, duration_ms=12)
    worker = TaskQueueWorker(session_factory=session_factory, prompt_library_factory=lambda s: library)

    assert worker.poll_once() == COMPLETED

    code, variables, context = library.execute_prompt.call_args.args
    assert code == "summarise_case"
    assert variables == {"case": "c-1"}
    assert context.workflow_instance_id == "inst-1"
    assert context.task_id == "task-1"
    assert QueueRepository(session).get(item.id).output_data == {"summary": "ok"}


def test_prompt_validation_failure_is_terminal(session, session_factory, mocker):
    item = QueueRepository(session).enqueue(
        "inst-1", "task-1", "summarise_case", {}, target_kind=TargetKind.PROMPT, max_retries=3
    )
    library = mocker.MagicMock()
    library.execute_prompt.return_value = PromptResponse(
        success=False, error="Input validation failed: root: 'case' is a required property"
    )
    worker = TaskQueueWorker(session_factory=session_factory, prompt_library_factory=lambda s: library)

    assert worker.poll_once() == FAILED
    assert QueueRepository(session).get(item.id).status == QueueStatus.FAILED


def test_prompt_provider_failure_is_retried(session, session_factory, mocker):
    QueueRepository(session).enqueue("inst-1", "task-1", "summarise_case", {}, target_kind=TargetKind.PROMPT)
    library = mocker.MagicMock()
    library.execute_prompt.return_value = PromptResponse(success=False, error="overloaded", status_code=529)
    worker = TaskQueueWorker(session_factory=session_factory, prompt_library_factory=lambda s: library)

    assert worker.poll_once() == RETRY_SCHEDULED


def test_drain_respects_max_items(session, session_factory, weather_config):
    for i in range(5):
        QueueRepository(session).enqueue("inst-1", f"task-{i}", weather_config.id)
    backend = ScriptedBackend(ServiceResponse(status="success", data={}, status_code=200))
    worker = make_worker(session_factory, backend)

    assert worker.drain(max_items=3) == [COMPLETED] * 3
    assert worker.drain(max_items=10) == [COMPLETED] * 2
    assert worker.drain() == []


def test_run_forever_survives_failed_tick(session_factory, mocker):
    worker = make_worker(session_factory, ScriptedBackend(None), poll_interval_s=0)
    stop = threading.Event()
    calls = []

    def fake_drain():
        calls.append(1)
        if len(calls) == 1:
            raise RuntimeError("database unreachable")
        stop.set()
        return []

    mocker.patch.object(worker, "drain", side_effect=fake_drain)
    worker.run_forever(stop)
    assert len(calls) == 2


def test_drain_pool_shares_one_item_budget(session_factory, mocker):
    worker = make_worker(session_factory, ScriptedBackend(None), pool_size=4)
    lock = threading.Lock()
    claimed = []

    def fake_poll_once():
        with lock:
            claimed.append(1)
        return COMPLETED

    mocker.patch.object(worker, "poll_once", side_effect=fake_poll_once)
    assert worker.drain(max_items=7) == [COMPLETED] * 7
    assert len(claimed) == 7


def test_drain_pool_stops_when_queue_runs_dry(session_factory, mocker):
    worker = make_worker(session_factory, ScriptedBackend(None), pool_size=3)
    lock = threading.Lock()
    remaining = [2]

    def fake_poll_once():
        with lock:
            if remaining[0] == 0:
                return IDLE
            remaining[0] -= 1
            return COMPLETED

    mocker.patch.object(worker, "poll_once", side_effect=fake_poll_once)
    assert worker.drain(max_items=10) == [COMPLETED, COMPLETED]


def test_failed_resumption_write_rolls_back_completion(session, session_factory, weather_config, mocker):
    item = QueueRepository(session).enqueue("inst-1", "task-1", weather_config.id, max_retries=3)
    mocker.patch.object(ResumptionRepository, "signal", side_effect=SQLAlchemyError("resumption insert failed"))
    backend = ScriptedBackend(ServiceResponse(status="success", data={"ok": True}, status_code=200))

    assert make_worker(session_factory, backend).poll_once() == FAILED

    failed = QueueRepository(session).get(item.id)
    assert failed.status == QueueStatus.FAILED
    assert failed.error_message == "resumption insert failed"
    task = TaskRepository(session).get("task-1")
    assert task.status == QueueStatus.FAILED
    assert task.completed_at is None
    assert ResumptionRepository(session).list_for_instance("inst-1") == []
