from typing import Optional, Dict, Any, List
from sqlmodel import select
from taskengine.repositories.base_repository import BaseRepository
from taskengine.models.execution_log import ServiceExecutionLog
from taskengine.models.enums import ExecutionStatus

class ExecutionLogRepository(BaseRepository):
    def log_service_execution(
        self,
        app_uuid: Optional[str],
        instance_id: Optional[str],
        task_id: Optional[str],
        service_config_id: Optional[str],
        service_name: str,
        status: ExecutionStatus,
        request_data: Optional[Dict[str, Any]],
        response_data: Any,
        error_message: Optional[str],
        execution_time_ms: int,
        http_status_code: Optional[int],
        retry_attempt: int,
    ) -> ServiceExecutionLog:
        entry = ServiceExecutionLog(
            app_uuid=app_uuid,
            instance_id=instance_id,
            task_id=task_id,
            service_config_id=service_config_id,
            service_name=service_name,
            status=status,
            request_data=request_data,
            response_data=response_data,
            error_message=error_message,
            execution_time_ms=execution_time_ms,
            http_status_code=http_status_code,
            retry_attempt=retry_attempt,
        )
        return self._save(entry)

    def list_for_task(self, task_id: str) -> List[ServiceExecutionLog]:
        statement = (
            select(ServiceExecutionLog)
            .where(ServiceExecutionLog.task_id == task_id)
            .order_by(ServiceExecutionLog.created_at)
        )
        return list(self.session.exec(statement).all())
