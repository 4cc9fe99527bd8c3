"""Structured runtime event log for estimate sessions.

One JSON object per line in ``runtime_events.jsonl`` under the storage root.
Events raised while working on a session carry a ``session`` block (input
revision, in-flight run revision, item counts) so a failed run can be matched
to the edit it was issued for. Service failures also record the HTTP status
and the server's ``detail`` list next to the exception.
"""

from __future__ import annotations

import json
import sys
import traceback
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any

from cost_estimator.defaults import storage_root

if TYPE_CHECKING:
    from cost_estimator.session import SessionState


LOG_FILE_NAME = "runtime_events.jsonl"

LOG_DIR = Path(".local_store")
RUNTIME_EVENTS_LOG_FILE = LOG_DIR / LOG_FILE_NAME

# Default level per event; anything not listed logs at INFO.
EVENT_LEVELS: dict[str, str] = {
    "factors_loaded": "INFO",
    "factors_load_failed": "ERROR",
    "cbs_import": "INFO",
    "risk_import": "INFO",
    "simulation_blocked": "WARNING",
    "simulation_started": "INFO",
    "simulation_finished": "INFO",
    "simulation_failed": "ERROR",
    "commentary_failed": "WARNING",
    "export_finished": "INFO",
    "export_failed": "ERROR",
    "session_saved": "INFO",
    "uncaught_exception": "ERROR",
}

_EXCEPTION_HOOK_INSTALLED = False


def configure_log_root(path_value: str | Path | None = None) -> Path:
    global LOG_DIR, RUNTIME_EVENTS_LOG_FILE
    LOG_DIR = storage_root(path_value)
    RUNTIME_EVENTS_LOG_FILE = LOG_DIR / LOG_FILE_NAME
    return LOG_DIR


def session_context(state: "SessionState") -> dict[str, Any]:
    return {
        "revision": state.revision,
        "run_revision": state.run_revision,
        "status": state.status,
        "correlation_mode": state.correlation_mode,
        "cbs_items": len(state.cbs_items),
        "risks": len(state.risks),
    }


def _exception_fields(exc: BaseException) -> dict[str, Any]:
    fields: dict[str, Any] = {
        "exception_type": type(exc).__name__,
        "exception_message": str(exc),
    }
    status = getattr(exc, "status_code", None)
    if status is not None:
        fields["api_status"] = status
    detail = getattr(exc, "detail", None)
    if isinstance(detail, list):
        fields["api_detail"] = detail
    if exc.__traceback__ is not None:
        fields["traceback"] = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    return fields


def log_event(
    event: str,
    message: str,
    *,
    state: "SessionState | None" = None,
    level: str | None = None,
    context: dict[str, Any] | None = None,
    exc: BaseException | None = None,
) -> dict[str, Any]:
    """Build and append one event record, returning it.

    A log file that cannot be written is skipped; logging never interrupts
    an estimate workflow.
    """
    record: dict[str, Any] = {
        "timestamp_utc": datetime.now(timezone.utc).isoformat(),
        "level": str(level or EVENT_LEVELS.get(event, "INFO")).upper(),
        "event": str(event),
        "message": str(message),
        "context": dict(context or {}),
    }
    if state is not None:
        record["session"] = session_context(state)
    if exc is not None:
        record.update(_exception_fields(exc))

    line = json.dumps(record, default=str, ensure_ascii=False)
    try:
        LOG_DIR.mkdir(parents=True, exist_ok=True)
        with RUNTIME_EVENTS_LOG_FILE.open("a", encoding="utf-8") as f:
            f.write(line + "\n")
    except OSError:
        pass
    return record


def _parse_line(line: str) -> dict[str, Any]:
    try:
        return json.loads(line)
    except json.JSONDecodeError:
        return {
            "timestamp_utc": datetime.now(timezone.utc).isoformat(),
            "level": "ERROR",
            "event": "log_parse_error",
            "message": "Malformed log line encountered.",
            "context": {"line": line},
        }


def read_runtime_events(limit: int = 200, event: str | None = None) -> list[dict[str, Any]]:
    """Return up to ``limit`` most recent events, optionally only those named ``event``."""
    if limit <= 0 or not RUNTIME_EVENTS_LOG_FILE.exists():
        return []
    try:
        lines = RUNTIME_EVENTS_LOG_FILE.read_text(encoding="utf-8").splitlines()
    except OSError:
        return []
    records = [_parse_line(line) for line in lines if line.strip()]
    if event is not None:
        records = [r for r in records if r.get("event") == event]
    return records[-int(limit):]


def install_global_exception_logging() -> None:
    """Log uncaught exceptions, then defer to the previous hook."""
    global _EXCEPTION_HOOK_INSTALLED
    if _EXCEPTION_HOOK_INSTALLED:
        return
    previous = sys.excepthook

    def _hook(exc_type, exc, exc_tb):
        if not issubclass(exc_type, KeyboardInterrupt):
            log_event("uncaught_exception", str(exc), exc=exc)
        previous(exc_type, exc, exc_tb)

    sys.excepthook = _hook
    _EXCEPTION_HOOK_INSTALLED = True


configure_log_root()
