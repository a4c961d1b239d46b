from fastapi import APIRouter, Depends, HTTPException, Query
from sqlmodel import Session

from taskengine.dependencies import get_session
from taskengine.services.task_queue_worker import IDLE, TaskQueueWorker

router = APIRouter()

@router.post("/workers/service-tasks")
def trigger_worker(
    action: str = Query("process-once"),
    max_items: int = Query(None, ge=1),
    session: Session = Depends(get_session),
):
    """Run the queue worker inline. The continuous loop lives in worker.run_worker or Celery beat."""
    engine = session.get_bind()
    worker = TaskQueueWorker(session_factory=lambda: Session(engine))

    if action == "process-once":
        outcome = worker.poll_once()
        return {"success": True, "processed": 0 if outcome == IDLE else 1, "outcomes": [] if outcome == IDLE else [outcome]}
    if action == "drain":
        outcomes = worker.drain(max_items=max_items, pool_size=1)
        return {"success": True, "processed": len(outcomes), "outcomes": outcomes}
    raise HTTPException(400, f"Unsupported action '{action}'")
