import time
import uuid
from typing import Any, Optional
from sqlmodel import SQLModel, Field, JSON
from taskengine.models.enums import QueueStatus

class InstanceTask(SQLModel, table=True):
    """Owning task record of the workflow engine. The worker only mirrors status onto it."""
    __tablename__ = "instance_tasks"

    id: str = Field(primary_key=True)
    instance_id: str = Field(index=True)
    status: QueueStatus = Field(default=QueueStatus.PENDING)
    output_data: Optional[Any] = Field(default=None, sa_type=JSON)
    error_message: Optional[str] = None
    updated_at: float = Field(default_factory=time.time)
    completed_at: Optional[float] = None

class WorkflowResumption(SQLModel, table=True):
    """Insert-only resumption signal consumed by the workflow engine."""
    __tablename__ = "workflow_execution_queue"

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    instance_id: str = Field(index=True)
    priority: int = Field(default=1)
    status: str = Field(default="PENDING")
    created_at: float = Field(default_factory=time.time)
