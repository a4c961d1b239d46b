from typing import Any, Dict, Protocol, runtime_checkable
from taskengine.models.enums import ServiceType
from taskengine.models.service_config import ServiceConfiguration
from taskengine.schemas.responses import ServiceResponse
from taskengine.services.http_backend import HTTPExecutionBackend
from taskengine.services.mock_backend import MockExecutionBackend

@runtime_checkable
class ExecutionBackend(Protocol):
    """Uniform service-call contract.

    Business failures (HTTP 4xx/5xx, timeouts, malformed mock definitions) come
    back as ServiceResponse(status="error"); only programmer errors raise.
    Implementations hold no per-call state and may be shared between threads.
    """

    def execute(self, endpoint: str, input_data: Dict[str, Any], config: ServiceConfiguration) -> ServiceResponse: ...

def create_execution_backend(config: ServiceConfiguration) -> ExecutionBackend:
    if config.service_type == ServiceType.MOCK:
        return MockExecutionBackend()
    return HTTPExecutionBackend()
