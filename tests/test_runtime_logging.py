from __future__ import annotations

import sys
from pathlib import Path

import cost_estimator.runtime_logging as runtime_logging
from cost_estimator.api_client import ApiError
from cost_estimator.defaults import storage_root
from cost_estimator.session import RunStarted, reduce


def test_log_event_append_and_read():
    record = runtime_logging.log_event(
        "test_event",
        "Test warning.",
        level="warning",
        context={"case": "append_and_read", "ids": ("cbs01", "cbs02")},
    )
    events = runtime_logging.read_runtime_events(limit=10)
    assert len(events) == 1
    assert events[0]["event"] == "test_event"
    assert events[0]["level"] == "WARNING"
    assert events[0]["context"]["case"] == "append_and_read"
    assert events[0]["context"]["ids"] == ["cbs01", "cbs02"]
    assert "session" not in events[0]
    assert record["message"] == "Test warning."


def test_level_defaults_from_event_name():
    runtime_logging.log_event("simulation_failed", "Failed.")
    runtime_logging.log_event("simulation_blocked", "Blocked.")
    runtime_logging.log_event("something_else", "Other.")
    assert [e["level"] for e in runtime_logging.read_runtime_events()] == ["ERROR", "WARNING", "INFO"]


def test_session_block_tracks_revisions(base_state):
    state = reduce(base_state, RunStarted())
    runtime_logging.log_event("simulation_started", "Started.", state=state)
    session = runtime_logging.read_runtime_events()[0]["session"]
    assert session == {
        "revision": state.revision,
        "run_revision": state.revision,
        "status": "Ready",
        "correlation_mode": state.correlation_mode,
        "cbs_items": len(state.cbs_items),
        "risks": len(state.risks),
    }


def test_exceptions_are_recorded():
    try:
        raise ValueError("bad factor")
    except ValueError as exc:
        runtime_logging.log_event("boom", "Failed.", exc=exc)
    event = runtime_logging.read_runtime_events()[0]
    assert event["exception_type"] == "ValueError"
    assert event["exception_message"] == "bad factor"
    assert "Traceback" in event["traceback"]
    assert "api_status" not in event


def test_api_errors_record_status_and_detail():
    detail = [{"loc": ["body", "settings", "iterations"], "msg": "must be an integer"}]
    runtime_logging.log_event("simulation_failed", "Failed.", exc=ApiError(422, detail, "/simulate"))
    event = runtime_logging.read_runtime_events()[0]
    assert event["exception_type"] == "ApiError"
    assert event["api_status"] == 422
    assert event["api_detail"] == detail
    assert "traceback" not in event


def test_malformed_lines_become_parse_errors():
    log_file = runtime_logging.RUNTIME_EVENTS_LOG_FILE
    log_file.parent.mkdir(parents=True, exist_ok=True)
    log_file.write_text('{"event":"ok","level":"INFO","timestamp_utc":"2026-01-01T00:00:00+00:00","message":"ok","context":{}}\nnot-json\n', encoding="utf-8")

    events = runtime_logging.read_runtime_events(limit=10)
    assert len(events) == 2
    assert events[0]["event"] == "ok"
    assert events[1]["event"] == "log_parse_error"


def test_read_limit_and_event_filter():
    for idx in range(5):
        runtime_logging.log_event("cbs_import" if idx % 2 else "risk_import", f"msg {idx}")
    assert [e["message"] for e in runtime_logging.read_runtime_events(limit=2)] == ["msg 3", "msg 4"]
    assert [e["message"] for e in runtime_logging.read_runtime_events(event="cbs_import")] == ["msg 1", "msg 3"]
    assert runtime_logging.read_runtime_events(limit=0) == []


def test_unwritable_log_does_not_raise(tmp_path, monkeypatch):
    blocker = tmp_path / "blocker"
    blocker.write_text("", encoding="utf-8")
    monkeypatch.setattr(runtime_logging, "LOG_DIR", blocker / "logs")
    monkeypatch.setattr(runtime_logging, "RUNTIME_EVENTS_LOG_FILE", blocker / "logs" / "runtime_events.jsonl")
    record = runtime_logging.log_event("session_saved", "Saved.")
    assert record["level"] == "INFO"


def test_log_root_follows_storage_env(monkeypatch, tmp_path):
    monkeypatch.setenv("COST_ESTIMATOR_STORAGE_ROOT", str(tmp_path / "store"))
    assert runtime_logging.configure_log_root() == tmp_path / "store"
    assert runtime_logging.RUNTIME_EVENTS_LOG_FILE == tmp_path / "store" / "runtime_events.jsonl"

    monkeypatch.setenv("COST_ESTIMATOR_STORAGE_ROOT", "   ")
    assert storage_root() == Path(".local_store")


def test_global_exception_hook_logs_and_chains(monkeypatch):
    seen = []
    monkeypatch.setattr(runtime_logging, "_EXCEPTION_HOOK_INSTALLED", False)
    monkeypatch.setattr(sys, "excepthook", lambda *args: seen.append(args[0]))

    runtime_logging.install_global_exception_logging()
    sys.excepthook(RuntimeError, RuntimeError("uncaught"), None)

    assert seen == [RuntimeError]
    assert runtime_logging.read_runtime_events()[-1]["event"] == "uncaught_exception"
