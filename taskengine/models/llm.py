import time
import uuid
from typing import Any, Dict, Optional
from sqlmodel import SQLModel, Field, JSON
from taskengine.models.enums import ModelProvider, OutputFormat, PromptExecutionStatus

class ModelInterface(SQLModel, table=True):
    __tablename__ = "llm_interfaces"

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    name: str = Field(default="")
    provider: ModelProvider = Field(index=True)
    api_key_enc: str
    base_url: Optional[str] = None
    default_model: Optional[str] = None
    is_active: bool = Field(default=True)
    is_default: bool = Field(default=False)
    created_at: float = Field(default_factory=time.time)
    updated_at: float = Field(default_factory=time.time)

class PromptTemplate(SQLModel, table=True):
    __tablename__ = "prompt_templates"

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    prompt_code: str = Field(unique=True, index=True)
    prompt_name: str = Field(default="")
    category: str = Field(default="ANALYSIS")
    system_prompt: Optional[str] = None
    user_prompt_template: str
    default_llm_interface_id: Optional[str] = None
    default_model: str
    temperature: float = Field(default=0.7)
    max_tokens: int = Field(default=4096)
    input_schema: Optional[Dict] = Field(default=None, sa_type=JSON)
    output_schema: Optional[Dict] = Field(default=None, sa_type=JSON)
    output_format: OutputFormat = Field(default=OutputFormat.TEXT)
    version: int = Field(default=1)
    is_active: bool = Field(default=True)
    created_at: float = Field(default_factory=time.time)
    updated_at: float = Field(default_factory=time.time)

class PromptExecution(SQLModel, table=True):
    """Audit row written before the model call and completed exactly once."""
    __tablename__ = "prompt_executions"

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    prompt_template_id: Optional[str] = None
    llm_interface_id: Optional[str] = None
    workflow_instance_id: Optional[str] = None
    task_id: Optional[str] = None
    stakeholder_id: Optional[str] = None
    input_data: Dict = Field(default_factory=dict, sa_type=JSON)
    rendered_prompt: Optional[str] = None
    provider: Optional[str] = None
    model_used: Optional[str] = None
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    output_data: Optional[Any] = Field(default=None, sa_type=JSON)
    raw_response: Optional[str] = None
    status: PromptExecutionStatus = Field(default=PromptExecutionStatus.RUNNING)
    error_message: Optional[str] = None
    tokens_input: Optional[int] = None
    tokens_output: Optional[int] = None
    cost_estimate: Optional[float] = None
    duration_ms: Optional[int] = None
    started_at: float = Field(default_factory=time.time)
    completed_at: Optional[float] = None
