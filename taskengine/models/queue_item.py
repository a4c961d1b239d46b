import time
import uuid
from typing import Any, Dict, Optional
from sqlmodel import SQLModel, Field, JSON
from taskengine.models.enums import QueueStatus, TargetKind

class QueueItem(SQLModel, table=True):
    __tablename__ = "task_queue"

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    app_uuid: Optional[str] = None
    instance_id: str = Field(index=True)
    task_id: str = Field(index=True)

    # service_configurations.id for SERVICE, prompt_templates.code for PROMPT
    target_kind: TargetKind = Field(default=TargetKind.SERVICE)
    config_id: str

    input_data: Dict = Field(default_factory=dict, sa_type=JSON)
    output_data: Optional[Any] = Field(default=None, sa_type=JSON)

    status: QueueStatus = Field(default=QueueStatus.PENDING, index=True)
    retry_count: int = Field(default=0)
    max_retries: int = Field(default=3)
    error_message: Optional[str] = None

    created_at: float = Field(default_factory=time.time, index=True)
    started_at: Optional[float] = None
    last_attempt_at: Optional[float] = None
    completed_at: Optional[float] = None
