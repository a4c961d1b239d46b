from fastapi import APIRouter, Depends, HTTPException
from sqlmodel import Session

from taskengine.dependencies import get_session
from taskengine.repositories.service_config_repository import ServiceConfigRepository
from taskengine.schemas.queue import ServiceTestRequest
from taskengine.services.execution_backend import create_execution_backend
from taskengine.templates.mock_services import get_mock_service_template_options

router = APIRouter()

@router.get("/services/mock-templates")
def list_mock_templates():
    return {"templates": get_mock_service_template_options()}

@router.post("/services/{config_id}/test")
def test_service(config_id: str, req: ServiceTestRequest, session: Session = Depends(get_session)):
    config = ServiceConfigRepository(session).get(config_id)
    if not config:
        raise HTTPException(404, "Service configuration not found")

    backend = create_execution_backend(config)
    response = backend.execute(config.endpoint_url or "", req.input_data, config)
    return response.model_dump()
