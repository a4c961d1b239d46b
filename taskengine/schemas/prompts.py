from pydantic import BaseModel, Field
from typing import Any, Dict, Optional

class ExecutionContext(BaseModel):
    stakeholder_id: Optional[str] = None
    workflow_instance_id: Optional[str] = None
    task_id: Optional[str] = None
    model_override: Optional[str] = None

class RenderedPrompt(BaseModel):
    system_prompt: str
    user_prompt: str
    model: str
    temperature: float
    max_tokens: int
    output_format: str
    output_schema: Optional[Dict[str, Any]] = None

class ExecutePromptRequest(BaseModel):
    prompt_code: str
    variables: Dict[str, Any] = Field(default_factory=dict)
    context: ExecutionContext = Field(default_factory=ExecutionContext)
