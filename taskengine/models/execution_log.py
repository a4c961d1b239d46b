import time
import uuid
from typing import Any, Dict, Optional
from sqlmodel import SQLModel, Field, JSON
from taskengine.models.enums import ExecutionStatus

class ServiceExecutionLog(SQLModel, table=True):
    """Append-only audit row, one per service call attempt."""
    __tablename__ = "service_execution_logs"

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    app_uuid: Optional[str] = None
    instance_id: Optional[str] = Field(default=None, index=True)
    task_id: Optional[str] = None
    service_config_id: Optional[str] = None
    service_name: str
    status: ExecutionStatus
    request_data: Optional[Dict] = Field(default=None, sa_type=JSON)
    response_data: Optional[Any] = Field(default=None, sa_type=JSON)
    error_message: Optional[str] = None
    execution_time_ms: Optional[int] = None
    http_status_code: Optional[int] = None
    retry_attempt: int = Field(default=0)
    created_at: float = Field(default_factory=time.time)
