from celery import Task
from sqlalchemy.exc import OperationalError

from taskengine.celery_app import celery_app
from taskengine.logging_config import setup_logging
from taskengine.services.task_queue_worker import TaskQueueWorker

setup_logging("taskengine-celery")

class BaseTaskWithRetry(Task):
    autoretry_for = (OperationalError,)
    retry_kwargs = {"max_retries": 10, "countdown": 3}
    retry_backoff = True

@celery_app.task(bind=True, base=BaseTaskWithRetry, acks_late=True)
def process_task_queue(self, max_items: int = None):
    outcomes = TaskQueueWorker().drain(max_items=max_items)
    return {"processed": len(outcomes), "outcomes": outcomes}

@celery_app.task(bind=True, base=BaseTaskWithRetry, acks_late=True)
def process_one_queue_item(self):
    return TaskQueueWorker().poll_once()
