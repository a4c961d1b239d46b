import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, List, Optional

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from taskengine.config import (
    AUDIT_WRITE_FAILURE_POLICY,
    TASK_POLL_INTERVAL_SECONDS,
    WORKER_MAX_ITEMS_PER_TICK,
    WORKER_POOL_SIZE,
)
from taskengine.errors import AuditWriteFailurePolicy
from taskengine.models.enums import ExecutionStatus, QueueStatus, TargetKind
from taskengine.models.queue_item import QueueItem
from taskengine.models.service_config import ServiceConfiguration
from taskengine.repositories.execution_log_repository import ExecutionLogRepository
from taskengine.repositories.queue_repository import QueueRepository
from taskengine.repositories.service_config_repository import ServiceConfigRepository
from taskengine.repositories.workflow_repository import ResumptionRepository, TaskRepository
from taskengine.schemas.prompts import ExecutionContext
from taskengine.schemas.responses import PromptResponse, ServiceResponse
from taskengine.services.execution_backend import ExecutionBackend, create_execution_backend
from taskengine.services.prompt_library import PromptLibrary

logger = structlog.get_logger(__name__)

IDLE = "IDLE"
COMPLETED = "COMPLETED"
RETRY_SCHEDULED = "RETRY_SCHEDULED"
FAILED = "FAILED"
DISCARDED = "DISCARDED"

# Prompt failures that a second attempt cannot fix
_TERMINAL_PROMPT_ERRORS = ("Input validation failed", "Output validation failed", "Prompt template '")


def _default_session_factory() -> Session:
    from taskengine.dependencies import engine
    return Session(engine)


def prompt_to_service_response(response: PromptResponse) -> ServiceResponse:
    if response.success:
        return ServiceResponse(
            status="success",
            data=response.data,
            status_code=200,
            execution_time_ms=response.duration_ms,
        )
    error = response.error or "Prompt execution failed"
    return ServiceResponse(
        status="error",
        error=error,
        status_code=response.status_code,
        execution_time_ms=response.duration_ms,
        retryable_hint=False if error.startswith(_TERMINAL_PROMPT_ERRORS) else None,
    )


class TaskQueueWorker:
    """Claims queue items one at a time and drives each through
    PENDING -> RUNNING -> COMPLETED | PENDING (retry) | FAILED.

    Every item runs in its own session so pool threads never share one.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session] = _default_session_factory,
        backend_factory: Callable[[ServiceConfiguration], ExecutionBackend] = create_execution_backend,
        prompt_library_factory: Callable[[Session], PromptLibrary] = PromptLibrary,
        poll_interval_s: float = TASK_POLL_INTERVAL_SECONDS,
        pool_size: int = WORKER_POOL_SIZE,
        max_items_per_tick: int = WORKER_MAX_ITEMS_PER_TICK,
        audit_policy: AuditWriteFailurePolicy = AuditWriteFailurePolicy(AUDIT_WRITE_FAILURE_POLICY),
    ):
        self.session_factory = session_factory
        self.backend_factory = backend_factory
        self.prompt_library_factory = prompt_library_factory
        self.poll_interval_s = poll_interval_s
        self.pool_size = max(1, pool_size)
        self.max_items_per_tick = max(1, max_items_per_tick)
        self.audit_policy = audit_policy

    def poll_once(self) -> str:
        with self.session_factory() as session:
            item = QueueRepository(session).claim_next()
            if item is None:
                return IDLE
            return self.process_item(session, item)

    def drain(self, max_items: Optional[int] = None, pool_size: Optional[int] = None) -> List[str]:
        """Process until the queue is empty or max_items have been claimed."""
        remaining = [max_items or self.max_items_per_tick]
        lock = threading.Lock()

        def run() -> List[str]:
            outcomes = []
            while True:
                with lock:
                    if remaining[0] <= 0:
                        return outcomes
                    remaining[0] -= 1
                outcome = self.poll_once()
                if outcome == IDLE:
                    return outcomes
                outcomes.append(outcome)

        workers = max(1, pool_size or self.pool_size)
        if workers == 1:
            return run()

        results: List[str] = []
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="queue-worker") as pool:
            futures = [pool.submit(run) for _ in range(workers)]
            for future in futures:
                results.extend(future.result())
        return results

    def run_forever(self, stop_event: threading.Event) -> None:
        logger.info("worker_started", poll_interval_s=self.poll_interval_s, pool_size=self.pool_size)
        while not stop_event.is_set():
            try:
                outcomes = self.drain()
                if outcomes:
                    logger.info("worker_tick", processed=len(outcomes), outcomes=outcomes)
            except Exception:
                # A tick that blows up (database unreachable) must not end the loop
                logger.exception("worker_tick_failed")
            stop_event.wait(self.poll_interval_s)
        logger.info("worker_stopped")

    def process_item(self, session: Session, item: QueueItem) -> str:
        log = logger.bind(queue_id=item.id, task_id=item.task_id, attempt=item.retry_count + 1)
        log.info("queue_item_claimed", target_kind=item.target_kind, config_id=item.config_id)
        try:
            if item.target_kind == TargetKind.PROMPT:
                response = self._run_prompt(session, item)
            else:
                response = self._run_service(session, item)
            return self._record_outcome(session, item, response)
        except Exception as e:
            session.rollback()
            log.exception("queue_item_fault")
            message = str(e) or e.__class__.__name__
            self._finish_failed(session, item, message)
            return FAILED

    def _run_service(self, session: Session, item: QueueItem) -> ServiceResponse:
        config = ServiceConfigRepository(session).get(item.config_id)
        if config is None or not config.is_active:
            raise LookupError(f"Service configuration not found: {item.config_id}")

        backend = self.backend_factory(config)
        response = backend.execute(config.endpoint_url or "", item.input_data or {}, config)
        self._log_execution(session, item, config, response)
        return response

    def _run_prompt(self, session: Session, item: QueueItem) -> ServiceResponse:
        library = self.prompt_library_factory(session)
        context = ExecutionContext(workflow_instance_id=item.instance_id, task_id=item.task_id)
        return prompt_to_service_response(library.execute_prompt(item.config_id, item.input_data or {}, context))

    def _log_execution(self, session: Session, item: QueueItem, config: ServiceConfiguration, response: ServiceResponse):
        try:
            ExecutionLogRepository(session).log_service_execution(
                app_uuid=item.app_uuid or config.app_uuid,
                instance_id=item.instance_id,
                task_id=item.task_id,
                service_config_id=config.id,
                service_name=config.service_name,
                status=ExecutionStatus.SUCCESS if response.ok else ExecutionStatus.FAILED,
                request_data=item.input_data,
                response_data=response.data,
                error_message=response.error,
                execution_time_ms=response.execution_time_ms,
                http_status_code=response.status_code,
                retry_attempt=item.retry_count,
            )
        except SQLAlchemyError as e:
            session.rollback()
            if self.audit_policy == AuditWriteFailurePolicy.RAISE:
                raise
            logger.error("service_audit_write_failed", queue_id=item.id, error=str(e))

    def _finish_failed(self, session: Session, item: QueueItem, message: Optional[str]) -> bool:
        # queue row and task mirror land in one commit
        if not QueueRepository(session).fail(item.id, message, commit=False):
            session.rollback()
            return False
        TaskRepository(session).mirror_status(
            item.task_id, item.instance_id, QueueStatus.FAILED, error_message=message, commit=False
        )
        session.commit()
        return True

    def _record_outcome(self, session: Session, item: QueueItem, response: ServiceResponse) -> str:
        queue = QueueRepository(session)
        log = logger.bind(queue_id=item.id, task_id=item.task_id, duration_ms=response.execution_time_ms)

        if response.ok:
            # completion, task mirror and resumption signal commit together or not at all
            if not queue.complete(item.id, response.data, commit=False):
                session.rollback()
                log.warning("queue_item_result_discarded", reason="no longer RUNNING")
                return DISCARDED
            TaskRepository(session).mirror_status(
                item.task_id, item.instance_id, QueueStatus.COMPLETED, output_data=response.data or {}, commit=False
            )
            ResumptionRepository(session).signal(item.instance_id, commit=False)
            session.commit()
            log.info("queue_item_completed")
            return COMPLETED

        next_retry_count = item.retry_count + 1
        if response.retryable and next_retry_count < item.max_retries:
            if not queue.schedule_retry(item.id, next_retry_count, response.error):
                log.warning("queue_item_result_discarded", reason="no longer RUNNING")
                return DISCARDED
            log.info(
                "queue_item_retry_scheduled",
                retry_count=next_retry_count,
                max_retries=item.max_retries,
                status_code=response.status_code,
            )
            return RETRY_SCHEDULED

        if not self._finish_failed(session, item, response.error):
            log.warning("queue_item_result_discarded", reason="no longer RUNNING")
            return DISCARDED
        log.warning(
            "queue_item_failed",
            retryable=response.retryable,
            retry_count=item.retry_count,
            max_retries=item.max_retries,
            status_code=response.status_code,
            error=response.error,
        )
        return FAILED
