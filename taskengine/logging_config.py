import logging
import sys
from typing import Optional

import structlog

from taskengine.config import LOG_FORMAT, LOG_LEVEL


def setup_logging(
    service_name: str = "taskengine",
    log_format: Optional[str] = None,
    log_level: Optional[str] = None,
) -> None:
    """Configure structlog on top of stdlib logging.

    "json" renders one object per line for log shipping, anything else
    renders the human readable console format.
    """
    log_format = log_format or LOG_FORMAT
    log_level = log_level or LOG_LEVEL
    numeric_level = getattr(logging, log_level.upper(), logging.INFO)

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=numeric_level, force=True)

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]
    if log_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=False))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    structlog.contextvars.bind_contextvars(service=service_name)
    structlog.get_logger(__name__).info("logging_initialized", log_format=log_format, log_level=log_level)
