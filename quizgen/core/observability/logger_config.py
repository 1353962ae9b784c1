import logging

import structlog
from structlog.contextvars import merge_contextvars

from quizgen.core.observability.context_vars import (
    CorrelationLogFilter,
    get_correlation_id,
    get_document_id,
)
from quizgen.core.settings import settings


def add_context_vars(_, __, event_dict):
    """
    Processor to inject run ContextVars into the log event.
    """
    cid = get_correlation_id()
    if cid:
        event_dict["correlation_id"] = cid

    trace = {"document_id": get_document_id()}
    existing_trace = event_dict.get("trace", {})
    if isinstance(existing_trace, dict):
        trace.update(existing_trace)
    event_dict["trace"] = {k: v for k, v in trace.items() if v is not None}

    if "event" in event_dict:
        event_dict["message"] = event_dict.pop("event")

    return event_dict


def configure_structlog():
    """
    Configures structlog to replace standard logging with canonical JSON.
    """
    handler = logging.StreamHandler()
    handler.addFilter(CorrelationLogFilter())

    # Third-party libraries still log through stdlib
    standard_formatter = logging.Formatter(
        " [%(asctime)s] [%(levelname)s] [trace_id=%(correlation_id)s] %(name)s: %(message)s"
    )
    handler.setFormatter(standard_formatter)

    resolved_level = str(settings.LOG_LEVEL or "INFO").upper()
    log_level = getattr(logging, resolved_level, logging.INFO)

    logging.basicConfig(format="%(message)s", level=log_level, handlers=[handler])

    for noisy_logger in ("httpx", "httpcore", "openai", "hpack"):
        logging.getLogger(noisy_logger).setLevel(logging.WARNING)

    processors = [
        merge_contextvars,
        add_context_vars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.JSONRenderer(),
    ]

    structlog.configure(
        processors=processors,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
