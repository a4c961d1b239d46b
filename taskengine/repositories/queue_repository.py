import time
from typing import Optional, Dict, Any, List
from sqlalchemy import func, select, update
from taskengine.repositories.base_repository import BaseRepository
from taskengine.models.queue_item import QueueItem
from taskengine.models.enums import QueueStatus, TargetKind

class QueueRepository(BaseRepository):
    def get(self, item_id: str) -> Optional[QueueItem]:
        return self.session.get(QueueItem, item_id, populate_existing=True)

    def enqueue(
        self,
        instance_id: str,
        task_id: str,
        config_id: str,
        input_data: Optional[Dict[str, Any]] = None,
        max_retries: int = 3,
        target_kind: TargetKind = TargetKind.SERVICE,
        app_uuid: Optional[str] = None,
    ) -> QueueItem:
        item = QueueItem(
            instance_id=instance_id,
            task_id=task_id,
            config_id=config_id,
            target_kind=target_kind,
            input_data=input_data or {},
            max_retries=max_retries,
            app_uuid=app_uuid,
        )
        return self._save(item)

    def list_by_status(self, status: QueueStatus) -> List[QueueItem]:
        statement = select(QueueItem).where(QueueItem.status == status).order_by(QueueItem.created_at)
        return list(self.session.execute(statement).scalars().all())

    def claim_next(self) -> Optional[QueueItem]:
        """Flip the oldest PENDING item to RUNNING in one statement and return it.

        The row is picked and updated by a single UPDATE ... WHERE id = (SELECT ...
        FOR UPDATE SKIP LOCKED) so two workers can never claim the same item.
        SQLite has no row locks; its database-level write lock serialises the statement.
        """
        now = time.time()
        next_id = (
            select(QueueItem.id)
            .where(QueueItem.status == QueueStatus.PENDING)
            .order_by(QueueItem.created_at)
            .limit(1)
            .with_for_update(skip_locked=True)
            .scalar_subquery()
        )
        statement = (
            update(QueueItem)
            .where(QueueItem.id == next_id, QueueItem.status == QueueStatus.PENDING)
            .values(
                status=QueueStatus.RUNNING,
                started_at=func.coalesce(QueueItem.started_at, now),
                last_attempt_at=now,
            )
            .returning(QueueItem.id)
            .execution_options(synchronize_session=False)
        )
        claimed_id = self.session.execute(statement).scalar_one_or_none()
        self.session.commit()
        if claimed_id is None:
            return None
        return self.get(claimed_id)

    def _transition_running(self, item_id: str, commit: bool = True, **values) -> bool:
        # Only a still-RUNNING item may move on; a cancelled item keeps its FAILED state
        statement = (
            update(QueueItem)
            .where(QueueItem.id == item_id, QueueItem.status == QueueStatus.RUNNING)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = self.session.execute(statement)
        if commit:
            self.session.commit()
        return result.rowcount == 1

    def complete(self, item_id: str, output_data: Any, commit: bool = True) -> bool:
        return self._transition_running(
            item_id,
            commit=commit,
            status=QueueStatus.COMPLETED,
            output_data=output_data or {},
            error_message=None,
            completed_at=time.time(),
        )

    def schedule_retry(self, item_id: str, retry_count: int, error_message: Optional[str]) -> bool:
        return self._transition_running(
            item_id,
            status=QueueStatus.PENDING,
            retry_count=retry_count,
            error_message=error_message,
        )

    def fail(self, item_id: str, error_message: Optional[str], commit: bool = True) -> bool:
        return self._transition_running(
            item_id,
            commit=commit,
            status=QueueStatus.FAILED,
            error_message=error_message,
            completed_at=time.time(),
        )

    def cancel(self, item_id: str, reason: str = "Cancelled by operator") -> bool:
        """Operator abort: terminal FAILED. An in-flight call finishes and its result is discarded."""
        statement = (
            update(QueueItem)
            .where(
                QueueItem.id == item_id,
                QueueItem.status.in_([QueueStatus.PENDING, QueueStatus.RUNNING]),
            )
            .values(status=QueueStatus.FAILED, error_message=reason, completed_at=time.time())
            .execution_options(synchronize_session=False)
        )
        result = self.session.execute(statement)
        self.session.commit()
        return result.rowcount == 1
