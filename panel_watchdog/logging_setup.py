"""
Structured logging configuration.

Every line is one JSON object. Kills happen on deadline timer threads,
so each event carries the process and thread it came from alongside the
service name; context bound with contextvars would not follow the work
onto those threads.
"""

import logging
import os
import sys
from pathlib import Path
from typing import Optional
import structlog
from structlog.processors import CallsiteParameter

SERVICE_NAME = "panel-watchdog"


def add_service_context(service: str):
    """Processor stamping the service name and pid on every event."""
    pid = os.getpid()

    def processor(logger, method_name, event_dict):
        event_dict.setdefault("service", service)
        event_dict.setdefault("pid", pid)
        return event_dict

    return processor


def setup_logging(
    log_level: str = "INFO",
    log_file: Optional[str] = None,
    service: str = SERVICE_NAME,
) -> None:
    """
    Configure structured logging for the watchdog.

    Args:
        log_level: Root level name (DEBUG, INFO, WARNING, ERROR)
        log_file: Optional file that receives the same lines as stdout
        service: Value of the "service" key on every event
    """
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        raise ValueError(f"Unknown log level: {log_level}")

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            add_service_context(service),
            structlog.processors.CallsiteParameterAdder([CallsiteParameter.THREAD_NAME]),
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        level=level,
        handlers=handlers,
        force=True,
    )
