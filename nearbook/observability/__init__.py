"""Observability: LangSmith tracing (optional, env-controlled)."""

from nearbook.observability.langsmith import (
    flush,
    get_client,
    is_enabled,
    trace,
    traceable,
)

__all__ = ["trace", "traceable", "flush", "get_client", "is_enabled"]
