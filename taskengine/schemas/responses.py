from pydantic import BaseModel, Field
from typing import Any, Literal, Optional

class ServiceResponse(BaseModel):
    """Normalised result of one execution-backend call."""
    status: Literal["success", "error"]
    data: Optional[Any] = None
    error: Optional[str] = None
    status_code: Optional[int] = None
    execution_time_ms: int = 0
    # Only failures a re-run cannot fix (schema validation, unknown template) set it False
    retryable_hint: Optional[bool] = Field(default=None, exclude=True)

    @property
    def ok(self) -> bool:
        return self.status == "success"

    @property
    def retryable(self) -> bool:
        if self.ok:
            return False
        return self.retryable_hint is not False

class TokenUsage(BaseModel):
    input: int = 0
    output: int = 0

class PromptResponse(BaseModel):
    """Normalised result of one AI model call, identical across providers."""
    success: bool
    data: Optional[Any] = None
    raw_response: str = ""
    tokens_used: TokenUsage = Field(default_factory=TokenUsage)
    cost_estimate: float = 0.0
    duration_ms: int = 0
    error: Optional[str] = None
    model: Optional[str] = None
    status_code: Optional[int] = None
    execution_id: Optional[str] = None
