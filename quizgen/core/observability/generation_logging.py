"""Event helpers shared by every generation component."""

from __future__ import annotations

from typing import Any

_LEVELS = frozenset({"debug", "info", "warning", "error", "critical"})


def compact_error(value: Any, *, limit: int = 320) -> str:
    """Single-line error text; exceptions without a message fall back to their class name."""
    text = str(value or "").replace("\n", " ").strip()
    if not text and isinstance(value, BaseException):
        text = type(value).__name__
    if len(text) <= limit:
        return text
    return text[:limit] + "..."


def emit_event(logger: Any, event: str, *, level: str = "info", **fields: Any) -> None:
    """
    Logs `event` on a structlog logger. Fields set to None are left out so the
    JSON lines only carry what the call site actually knows.
    """
    method = level if level in _LEVELS else "info"
    payload = {key: value for key, value in fields.items() if value is not None}
    getattr(logger, method)(str(event), **payload)
