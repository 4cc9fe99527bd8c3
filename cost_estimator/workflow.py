"""Call-site orchestration of service requests around the session reducer.

Every function takes a session and returns the next one. Service failures are
converted into the session's structured error list here and logged; nothing
below this layer catches transport errors.
"""

from __future__ import annotations

import re

import requests

from cost_estimator import runtime_logging
from cost_estimator.api_client import ApiError, SimulationApiClient
from cost_estimator.csv_import import parse_cbs_csv, parse_risks_csv
from cost_estimator.factors import ConfidenceFactorTable
from cost_estimator.payload import build_payload
from cost_estimator.persistence import build_estimate_bundle, load_saved, migrate_bundle, save_named_bundle
from cost_estimator.session import (
    CbsImported,
    CommentaryFailed,
    CommentaryReceived,
    CommentaryStarted,
    ErrorsReported,
    FactorsFailed,
    FactorsLoaded,
    RisksImported,
    RunFailed,
    RunStarted,
    RunSucceeded,
    SessionState,
    reduce,
    state_from_inputs,
    state_to_inputs,
)
from cost_estimator.validation import validate_inputs


EXPORT_KINDS = {"excel": "xlsx", "json": "json"}


def _error_list(exc: Exception, msg: str) -> tuple[dict, ...]:
    if isinstance(exc, ApiError):
        return tuple(exc.detail)
    return ({"msg": msg, "detail": str(exc)},)


def safe_filename(name: str) -> str:
    text = re.sub(r"[^a-z0-9]+", "-", str(name or "").strip().lower())
    return text.strip("-")


def load_confidence_factors(state: SessionState, client: SimulationApiClient) -> SessionState:
    try:
        table = ConfidenceFactorTable.from_response(client.get_confidence_factors())
    except (ApiError, requests.RequestException) as exc:
        runtime_logging.log_event("factors_load_failed", "Confidence factors request failed.", state=state, exc=exc)
        return reduce(state, FactorsFailed(_error_list(exc, "Confidence factors unavailable")))
    runtime_logging.log_event("factors_loaded", "Confidence factors loaded.", context={"keys": table.keys})
    return reduce(state, FactorsLoaded(table))


def import_cbs_text(state: SessionState, text: str, delimiter: str = ",") -> SessionState:
    result = parse_cbs_csv(text, delimiter)
    state = reduce(state, CbsImported(result))
    runtime_logging.log_event(
        "cbs_import",
        "CBS import parsed." if result.ok else "CBS import failed.",
        state=state,
        level=None if result.ok else "WARNING",
        context={"rows": len(result.records), "warnings": len(result.warnings)},
    )
    return state


def import_risks_text(state: SessionState, text: str, delimiter: str = ",") -> SessionState:
    result = parse_risks_csv(text, delimiter)
    state = reduce(state, RisksImported(result))
    runtime_logging.log_event(
        "risk_import",
        "Risk import parsed." if result.ok else "Risk import failed.",
        state=state,
        level=None if result.ok else "WARNING",
        context={"rows": len(result.records), "warnings": len(result.warnings)},
    )
    return state


def run_commentary(
    state: SessionState,
    client: SimulationApiClient,
    payload: dict | None = None,
    draft: bool = False,
) -> SessionState:
    """Request narrative commentary; ``draft`` asks for the quick template variant."""
    state = reduce(state, CommentaryStarted())
    payload = payload if payload is not None else build_payload(state)
    try:
        data = client.commentary_draft(payload) if draft else client.commentary_run(payload)
    except (ApiError, requests.RequestException) as exc:
        runtime_logging.log_event("commentary_failed", "Commentary request failed.", state=state, exc=exc)
        return reduce(state, CommentaryFailed(_error_list(exc, "Commentary unavailable")))
    return reduce(state, CommentaryReceived(data.get("mode_used"), data.get("commentary") or ""))


def run_simulation(state: SessionState, client: SimulationApiClient, with_commentary: bool = True) -> SessionState:
    """Validate, clear prior results, call the service, and apply the response."""
    issues = validate_inputs(state)
    if issues:
        runtime_logging.log_event("simulation_blocked", "Validation failed.", state=state, context={"issues": len(issues)})
        return reduce(state, ErrorsReported(tuple({"msg": "Validation failed", "detail": issue} for issue in issues)))

    state = reduce(state, RunStarted())
    revision = state.run_revision
    payload = build_payload(state)
    runtime_logging.log_event(
        "simulation_started",
        "Simulation request issued.",
        state=state,
        context={"iterations": payload["settings"]["iterations"], "seed": payload["settings"]["seed"]},
    )
    try:
        data = client.simulate(payload)
    except (ApiError, requests.RequestException) as exc:
        runtime_logging.log_event("simulation_failed", "Simulation request failed.", state=state, exc=exc)
        return reduce(state, RunFailed(_error_list(exc, "Network/API error"), revision))

    state = reduce(state, RunSucceeded(data, revision))
    runtime_logging.log_event(
        "simulation_finished",
        "Simulation results applied." if state.has_results else "Simulation response discarded.",
        state=state,
        context={"has_results": state.has_results},
    )
    if with_commentary and state.has_results:
        state = run_commentary(state, client, payload)
    return state


def export_results(
    state: SessionState,
    client: SimulationApiClient,
    kind: str,
    name: str = "",
) -> tuple[SessionState, bytes | None, str]:
    """Request a rendered export; returns (state, content, filename)."""
    if kind not in EXPORT_KINDS:
        raise ValueError(f"Unsupported export kind: {kind}")
    if not state.has_results:
        return state, None, ""

    payload = build_payload(state)
    try:
        content = client.export_excel(payload) if kind == "excel" else client.export_json(payload)
    except (ApiError, requests.RequestException) as exc:
        runtime_logging.log_event("export_failed", f"{kind} export failed.", state=state, exc=exc)
        return reduce(state, ErrorsReported(_error_list(exc, f"Export {kind} failed"))), None, ""

    if kind == "excel":
        filename = "cost-risk-results.xlsx"
    else:
        filename = f"cost-risk-{safe_filename(name) or 'scenario'}.json"
    runtime_logging.log_event("export_finished", "Export downloaded.", state=state, context={"kind": kind, "bytes": len(content)})
    return state, content, filename


def save_session(state: SessionState, name: str, overwrite: bool = False) -> tuple[bool, str]:
    ok, msg = save_named_bundle(name, build_estimate_bundle(name, state_to_inputs(state)), overwrite=overwrite)
    if ok:
        runtime_logging.log_event("session_saved", "Estimate saved.", state=state, context={"name": name})
    return ok, msg


def load_session(name: str, factor_table: ConfidenceFactorTable | None = None) -> tuple[SessionState | None, list[str]]:
    bundle = load_saved(name)
    if bundle is None:
        return None, [f"No saved estimate named '{name}'."]
    inputs, warnings, unknown = migrate_bundle(bundle)
    if unknown:
        warnings.append(f"Ignored unknown keys: {', '.join(unknown)}")
    state = state_from_inputs(inputs)
    if factor_table is not None:
        state = reduce(state, FactorsLoaded(factor_table))
    return state, warnings
