"""Structured logging: console and JSON-lines event log for search runs."""

import contextvars
import json
import logging
import os
import sys
import threading
import time
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any

from nearbook.core.config import config


def _format_duration(seconds: float) -> str:
    if seconds < 0:
        return "0s"
    if seconds >= 60:
        m = int(seconds // 60)
        s = seconds % 60
        if s < 0.05:
            return f"{m}m"
        return f"{m}m {s:.0f}s" if s >= 1 else f"{m}m {s:.1f}s"
    if seconds >= 0.05:
        return f"{seconds:.1f}s"
    if seconds > 0:
        return "<0.1s"
    return "0s"


def _short_reason(reason: str | None, max_len: int = 80) -> str:
    """One-line short reason for console (failed lookup)."""
    if not reason or not reason.strip():
        return ""
    s = reason.strip().replace("\n", " ").strip()
    return s[:max_len] + "..." if len(s) > max_len else s


_RUN_SEP = "  " + "─" * 42 + "  "
_log_search_start: contextvars.ContextVar[float | None] = contextvars.ContextVar(
    "log_search_start", default=None
)
_log_in_search: contextvars.ContextVar[bool] = contextvars.ContextVar(
    "log_in_search", default=False
)
_log_stage: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "log_stage", default=None
)


def _use_color() -> bool:
    if os.environ.get("NO_COLOR"):
        return False
    try:
        return sys.stdout.isatty()
    except Exception:
        return False


def _c(role: str) -> str:
    if not _use_color():
        return ""
    # 38;5;N = foreground 256-color
    codes = {
        "dim": "\033[38;5;239m",
        "stage": "\033[38;5;81m",
        "run": "\033[38;5;78m",
        "done_ok": "\033[38;5;78m",
        "done_fail": "\033[38;5;203m",
        "duration": "\033[38;5;221m",
        "strategy": "\033[38;5;245m",
    }
    return codes.get(role, "")


def _reset() -> str:
    if not _use_color():
        return ""
    return "\033[0m"


@dataclass
class LogEvent:
    event_type: str
    timestamp: str
    data: dict[str, Any]

    def to_dict(self) -> dict:
        return asdict(self)

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str)


class NearbookLogger:
    def __init__(self):
        config.logs_dir.mkdir(parents=True, exist_ok=True)
        self.log_file = config.logs_dir / "nearbook.log"
        self._file_lock = threading.Lock()
        self._log_file_handle = open(self.log_file, "a", encoding="utf-8")
        self._setup_console_logger()

    def _setup_console_logger(self):
        self.console = logging.getLogger("nearbook")
        self.console.setLevel(logging.DEBUG)
        self._console_formatter = logging.Formatter(
            "%(asctime)s │ %(message)s", datefmt="%H:%M:%S"
        )
        if not self.console.handlers:
            handler = logging.StreamHandler()
            handler.setLevel(logging.INFO)
            handler.setFormatter(self._console_formatter)
            self.console.addHandler(handler)
        self._setup_third_party_console_logging()

    def _setup_third_party_console_logging(self):
        # googleapiclient logs discovery-cache noise at WARNING
        for name in ("googleapiclient.discovery_cache", "httpx"):
            logging.getLogger(name).setLevel(logging.ERROR)

    def log_event(self, event: LogEvent) -> None:
        with self._file_lock:
            self._log_file_handle.write(event.to_json() + "\n")
            self._log_file_handle.flush()

    def _timestamp(self) -> str:
        return datetime.now().isoformat()

    def _prefix(self) -> str:
        if _log_stage.get():
            return "  │   └ "
        if _log_in_search.get():
            return "  │ "
        return ""

    def search_started(self, calendar_ids: list[str], time_min: datetime, time_max: datetime):
        _log_search_start.set(time.monotonic())
        _log_in_search.set(True)
        _log_stage.set(None)
        event = LogEvent(
            event_type="SEARCH_STARTED",
            timestamp=self._timestamp(),
            data={
                "calendar_ids": calendar_ids,
                "time_min": time_min.isoformat(),
                "time_max": time_max.isoformat(),
            },
        )
        self.log_event(event)
        self.console.info(
            f"{_c('run')}▶ Search{_reset()}  calendars={', '.join(calendar_ids)}  "
            f"{time_min.date().isoformat()} → {time_max.date().isoformat()}"
        )

    def stage(self, name: str | None) -> None:
        """Enter a pipeline stage (None leaves the current one)."""
        _log_stage.set(None)
        if name is None:
            return
        event = LogEvent(
            event_type="STAGE", timestamp=self._timestamp(), data={"stage": name}
        )
        self.log_event(event)
        self.console.debug(f"{self._prefix()}{_c('stage')}{name}{_reset()}")
        _log_stage.set(name)

    def strategy_selected(self, kind: str, reason: str = ""):
        event = LogEvent(
            event_type="STRATEGY_SELECTED",
            timestamp=self._timestamp(),
            data={"strategy": kind, "reason": reason},
        )
        self.log_event(event)
        suffix = f"  ({reason})" if reason else ""
        self.console.info(
            f"{self._prefix()}Distance strategy: {_c('strategy')}{kind}{_reset()}{suffix}"
        )

    def external_call(self, provider: str, endpoint: str, status: str, duration_seconds: float):
        event = LogEvent(
            event_type="EXTERNAL_CALL",
            timestamp=self._timestamp(),
            data={
                "provider": provider,
                "endpoint": endpoint,
                "status": status,
                "duration_seconds": round(duration_seconds, 3),
            },
        )
        self.log_event(event)

    def lookup_failed(self, strategy: str, origin: str, destination: str, reason: str):
        event = LogEvent(
            event_type="LOOKUP_FAILED",
            timestamp=self._timestamp(),
            data={
                "strategy": strategy,
                "origin": origin[:200],
                "destination": destination[:200],
                "reason": reason[:500],
            },
        )
        self.log_event(event)
        self.console.debug(
            f"{self._prefix()}{_c('done_fail')}✗{_reset()} {strategy} lookup dropped: "
            f"{_short_reason(destination, 40)}  {_short_reason(reason)}"
        )

    def target_ranked(
        self,
        title: str,
        day_key: str,
        kept: int,
        dropped: int,
        strategy: str,
        duration_seconds: float,
    ):
        event = LogEvent(
            event_type="TARGET_RANKED",
            timestamp=self._timestamp(),
            data={
                "title": title[:200],
                "day_key": day_key,
                "kept": kept,
                "dropped": dropped,
                "strategy": strategy,
                "duration_seconds": round(duration_seconds, 3),
            },
        )
        self.log_event(event)
        dur = f"{_c('duration')}{_format_duration(duration_seconds)}{_reset()}"
        self.console.info(
            f"{self._prefix()}{title[:60]}  {day_key}  kept={kept} dropped={dropped}  "
            f"{_c('strategy')}[{strategy}]{_reset()}  {dur}"
        )

    def search_finished(self, targets: int, days: int, warnings: int, success: bool = True):
        _log_stage.set(None)
        start = _log_search_start.get()
        _log_search_start.set(None)
        elapsed = (time.monotonic() - start) if start is not None else 0.0
        event = LogEvent(
            event_type="SEARCH_FINISHED",
            timestamp=self._timestamp(),
            data={
                "targets": targets,
                "days": days,
                "warnings": warnings,
                "success": success,
                "duration_seconds": round(elapsed, 3),
            },
        )
        self.log_event(event)
        status_str = (
            f"{_c('done_ok')}[ok]{_reset()}" if success else f"{_c('done_fail')}[failed]{_reset()}"
        )
        dur_colored = f"{_c('duration')}{_format_duration(elapsed)}{_reset()}"
        self.console.info(
            f"{self._prefix()}{_c('done_ok')}✓ Done{_reset()}  targets={targets} days={days} "
            f"warnings={warnings}  total {dur_colored}  {status_str}"
        )
        _log_in_search.set(False)
        self.console.info(_RUN_SEP)

    def error(self, message: str, *args, exception: Exception | None = None, **kwargs):
        event = LogEvent(
            event_type="ERROR",
            timestamp=self._timestamp(),
            data={
                "message": message,
                "exception": str(exception) if exception else None,
            },
        )
        self.log_event(event)

        # Filter kwargs for standard logger
        allowed = {"exc_info", "stack_info", "stacklevel", "extra"}
        log_kwargs = {k: v for k, v in kwargs.items() if k in allowed}
        if exception and "exc_info" not in log_kwargs:
            log_kwargs["exc_info"] = exception

        self.console.error(f"❌ Error: {message}", *args, **log_kwargs)

    def info(self, message: str, *args, **kwargs):
        allowed = {"exc_info", "stack_info", "stacklevel", "extra"}
        log_kwargs = {k: v for k, v in kwargs.items() if k in allowed}
        self.console.info(message, *args, **log_kwargs)

    def warning(self, message: str, *args, **kwargs):
        event = LogEvent(
            event_type="WARNING",
            timestamp=self._timestamp(),
            data={"message": message[:500]},
        )
        self.log_event(event)

        allowed = {"exc_info", "stack_info", "stacklevel", "extra"}
        log_kwargs = {k: v for k, v in kwargs.items() if k in allowed}
        self.console.warning(f"⚠️ {message}", *args, **log_kwargs)

    def debug(self, message: str, *args, **kwargs):
        event = LogEvent(
            event_type="DEBUG", timestamp=self._timestamp(), data={"message": message}
        )
        self.log_event(event)

        allowed = {"exc_info", "stack_info", "stacklevel", "extra"}
        log_kwargs = {k: v for k, v in kwargs.items() if k in allowed}
        self.console.debug(message, *args, **log_kwargs)


logger = NearbookLogger()
