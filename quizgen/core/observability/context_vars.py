import logging
from contextvars import ContextVar
from typing import Optional

from structlog.contextvars import bind_contextvars

# Context Variables for the generation run
correlation_id_ctx: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)
document_id_ctx: ContextVar[Optional[str]] = ContextVar("document_id", default=None)


def get_correlation_id() -> str:
    """Returns the current correlation ID. Defaults to 'unknown' if not set."""
    return correlation_id_ctx.get() or "unknown"


def set_correlation_id(correlation_id: str) -> None:
    correlation_id_ctx.set(correlation_id)


def get_document_id() -> Optional[str]:
    return document_id_ctx.get()


def set_document_id(document_id: str) -> None:
    document_id_ctx.set(document_id)


def bind_context(**kwargs):
    """
    Binds the provided key-value pairs to the current structlog context.
    """
    bind_contextvars(**kwargs)


class CorrelationLogFilter(logging.Filter):
    """
    Logging filter to inject correlation ID into log records.
    """

    def filter(self, record):
        record.correlation_id = get_correlation_id()
        return True
