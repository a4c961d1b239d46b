import time
import uuid
from typing import Dict, Optional
from sqlmodel import SQLModel, Field, JSON
from taskengine.models.enums import ServiceType, HttpMethod

class ServiceConfiguration(SQLModel, table=True):
    __tablename__ = "service_configurations"

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    app_uuid: Optional[str] = None
    service_name: str
    service_type: ServiceType = Field(default=ServiceType.MOCK)
    description: Optional[str] = None

    # REAL services
    endpoint_url: Optional[str] = None
    http_method: HttpMethod = Field(default=HttpMethod.POST)
    timeout_seconds: int = Field(default=30)
    max_retries: int = Field(default=3)
    # {"type": "api_key"|"bearer"|"basic_auth"|"custom_header", ...secret fields, "headers": {...}}
    authentication: Optional[Dict] = Field(default=None, sa_type=JSON)

    # MOCK services
    mock_template_id: Optional[str] = None
    mock_definition: Optional[Dict] = Field(default=None, sa_type=JSON)

    is_active: bool = Field(default=True)
    created_at: float = Field(default_factory=time.time)
    updated_at: float = Field(default_factory=time.time)
