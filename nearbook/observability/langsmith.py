"""LangSmith tracing integration.

Tracing is off unless LANGSMITH_TRACING=true; the exported helpers are then no-ops,
so decorated search stages cost nothing and never reach the network.
"""

from __future__ import annotations

import atexit
import os
from collections.abc import Callable
from typing import Any, Literal, cast

from langsmith import Client as LangSmithClient
from langsmith import traceable as _ls_traceable
from langsmith.run_helpers import trace as _ls_trace

_ENABLED = os.getenv("LANGSMITH_TRACING", "").strip().lower() == "true"
_project = os.getenv("LANGSMITH_PROJECT", "nearbook")

_LangSmithRunType = Literal[
    "tool", "chain", "llm", "retriever", "embedding", "prompt", "parser"
]


def is_enabled() -> bool:
    return _ENABLED


class _NoOpRun:
    def end(self, outputs: dict[str, Any] | None = None) -> None:
        pass


class _NoOpTraceContext:
    def __enter__(self) -> _NoOpRun:
        return _NoOpRun()

    def __exit__(self, *args: Any) -> None:
        pass

    async def __aenter__(self) -> _NoOpRun:
        return _NoOpRun()

    async def __aexit__(self, *args: Any) -> None:
        pass


def _noop_trace(
    name: str,
    run_type: str = "chain",
    *,
    inputs: dict[str, Any] | None = None,
    metadata: dict[str, Any] | None = None,
    **kwargs: Any,
) -> _NoOpTraceContext:
    del name, run_type, inputs, metadata, kwargs
    return _NoOpTraceContext()


def _noop_traceable(
    name: str | None = None,
    run_type: str = "chain",
    **kwargs: Any,
) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        return fn

    return decorator


def _noop_flush() -> None:
    pass


def _noop_get_client() -> LangSmithClient | None:
    return None


_client: LangSmithClient | None = None


def _ls_get_client() -> LangSmithClient | None:
    global _client
    if _client is None:
        _client = LangSmithClient()
    return _client


def _ls_trace_ctx(
    name: str,
    run_type: str = "chain",
    *,
    inputs: dict[str, Any] | None = None,
    metadata: dict[str, Any] | None = None,
    project_name: str | None = None,
    **kwargs: Any,
):
    return _ls_trace(
        name,
        run_type=cast("_LangSmithRunType", run_type),
        inputs=inputs or {},
        metadata=metadata or {},
        project_name=project_name or _project,
        **kwargs,
    )


def _ls_traceable_deco(
    name: str | None = None,
    run_type: str = "chain",
    **kwargs: Any,
):
    kwargs.setdefault("project_name", _project)
    return _ls_traceable(  # type: ignore[call-overload]
        name=name,
        run_type=run_type,
        **kwargs,
    )


def _ls_flush() -> None:
    c = _ls_get_client()
    if c is not None:
        c.flush()


if _ENABLED:
    trace = _ls_trace_ctx
    traceable = _ls_traceable_deco
    flush = _ls_flush
    get_client = _ls_get_client
    atexit.register(flush)
else:
    trace = _noop_trace
    traceable = _noop_traceable
    flush = _noop_flush
    get_client = _noop_get_client
