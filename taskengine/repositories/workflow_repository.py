import time
from typing import Optional, Any, List
from sqlmodel import select
from taskengine.repositories.base_repository import BaseRepository
from taskengine.models.workflow import InstanceTask, WorkflowResumption
from taskengine.models.enums import QueueStatus

class TaskRepository(BaseRepository):
    def get(self, task_id: str) -> Optional[InstanceTask]:
        return self.session.get(InstanceTask, task_id, populate_existing=True)

    def mirror_status(
        self,
        task_id: str,
        instance_id: str,
        status: QueueStatus,
        output_data: Any = None,
        error_message: Optional[str] = None,
        commit: bool = True,
    ) -> InstanceTask:
        task = self.get(task_id) or InstanceTask(id=task_id, instance_id=instance_id)
        task.status = status
        task.error_message = error_message
        task.updated_at = time.time()
        if output_data is not None:
            task.output_data = output_data
        if status == QueueStatus.COMPLETED:
            task.completed_at = time.time()
        return self._save(task, commit=commit)

class ResumptionRepository(BaseRepository):
    def signal(self, instance_id: str, priority: int = 1, commit: bool = True) -> WorkflowResumption:
        return self._save(WorkflowResumption(instance_id=instance_id, priority=priority), commit=commit)

    def list_for_instance(self, instance_id: str) -> List[WorkflowResumption]:
        statement = select(WorkflowResumption).where(WorkflowResumption.instance_id == instance_id)
        return list(self.session.exec(statement).all())
