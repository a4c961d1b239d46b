from celery import Celery
from taskengine.config import REDIS_URL, TASK_POLL_INTERVAL_SECONDS

celery_app = Celery("taskengine", broker=REDIS_URL, backend=REDIS_URL, include=["worker.tasks"])

celery_app.conf.beat_schedule = {
    "process-task-queue": {
        "task": "worker.tasks.process_task_queue",
        "schedule": TASK_POLL_INTERVAL_SECONDS,
    },
}

# One tick at a time per worker process; claiming is atomic so extra processes are safe
celery_app.conf.task_acks_late = True
celery_app.conf.worker_prefetch_multiplier = 1
