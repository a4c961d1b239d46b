from fastapi import APIRouter, Depends, HTTPException
from sqlmodel import Session

from taskengine.dependencies import get_session
from taskengine.models.enums import QueueStatus, TargetKind
from taskengine.repositories.llm_repository import PromptRepository
from taskengine.repositories.queue_repository import QueueRepository
from taskengine.repositories.service_config_repository import ServiceConfigRepository
from taskengine.schemas.queue import EnqueueRequest, EnqueueResponse

router = APIRouter()

@router.post("/queue", status_code=201, response_model=EnqueueResponse)
def enqueue(req: EnqueueRequest, session: Session = Depends(get_session)):
    if req.target_kind == TargetKind.SERVICE:
        config = ServiceConfigRepository(session).get(req.config_id)
        if not config or not config.is_active:
            raise HTTPException(400, "Unknown service configuration")
    elif not PromptRepository(session).get_active_template(req.config_id):
        raise HTTPException(400, "Unknown prompt template")

    item = QueueRepository(session).enqueue(
        instance_id=req.instance_id,
        task_id=req.task_id,
        config_id=req.config_id,
        input_data=req.input_data,
        max_retries=req.max_retries,
        target_kind=req.target_kind,
        app_uuid=req.app_uuid,
    )
    return {"success": True, "queue_id": item.id, "status": item.status.value}

@router.get("/queue/{item_id}")
def get_queue_item(item_id: str, session: Session = Depends(get_session)):
    item = QueueRepository(session).get(item_id)
    if not item:
        raise HTTPException(404, "Queue item not found")
    return item.model_dump()

@router.post("/queue/{item_id}/cancel")
def cancel_queue_item(item_id: str, session: Session = Depends(get_session)):
    repo = QueueRepository(session)
    item = repo.get(item_id)
    if not item:
        raise HTTPException(404, "Queue item not found")

    previous = item.status
    if not repo.cancel(item_id):
        raise HTTPException(409, f"Queue item already {repo.get(item_id).status.value}")
    return {"success": True, "queue_id": item_id, "previous_status": previous.value, "new_status": QueueStatus.FAILED.value}
