from pydantic import BaseModel, Field
from typing import Any, Dict, Optional
from taskengine.models.enums import TargetKind

class EnqueueRequest(BaseModel):
    instance_id: str
    task_id: str
    config_id: str
    target_kind: TargetKind = TargetKind.SERVICE
    input_data: Dict[str, Any] = Field(default_factory=dict)
    max_retries: int = Field(default=3, ge=1)
    app_uuid: Optional[str] = None

class EnqueueResponse(BaseModel):
    success: bool
    queue_id: str
    status: str

class ServiceTestRequest(BaseModel):
    input_data: Dict[str, Any] = Field(default_factory=dict)
