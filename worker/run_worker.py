"""Standalone polling worker: python -m worker.run_worker"""
import signal
import threading

import structlog

from taskengine.dependencies import init_db
from taskengine.logging_config import setup_logging
from taskengine.services.task_queue_worker import TaskQueueWorker

logger = structlog.get_logger(__name__)


def main(stop_event: threading.Event = None) -> None:
    setup_logging("taskengine-worker")
    init_db()
    stop_event = stop_event or threading.Event()

    def handle_signal(signum, frame):
        logger.info("shutdown_requested", signal=signal.Signals(signum).name)
        stop_event.set()

    signal.signal(signal.SIGINT, handle_signal)
    signal.signal(signal.SIGTERM, handle_signal)

    TaskQueueWorker().run_forever(stop_event)


if __name__ == "__main__":
    main()
