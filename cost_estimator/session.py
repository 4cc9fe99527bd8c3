"""Session aggregate and the pure reducer that applies user and service events to it."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Callable

from cost_estimator.csv_import import ImportResult
from cost_estimator.factors import ConfidenceFactorTable, reassign_unknown_factors
from cost_estimator.schema import (
    CBS_ID_PREFIX,
    CORRELATION_MODES,
    RISK_ID_PREFIX,
    CBSItem,
    DerivedCost,
    Risk,
    SimulationSettings,
    UserDefinedCost,
    cbs_item_from_record,
    cbs_item_to_record,
    make_sequential_id,
    migrate_session_inputs,
    risk_from_record,
    risk_to_record,
)
from cost_estimator.sensitivity import SensitivityTiers, classify_sensitivity


class SessionError(ValueError):
    """Raised when an event cannot be applied to the current session."""


@dataclass(frozen=True)
class SessionState:
    settings: SimulationSettings = field(default_factory=SimulationSettings)
    correlation_mode: str = "none"
    cbs_items: tuple[CBSItem, ...] = ()
    risks: tuple[Risk, ...] = ()
    cbs_counter: int = 0
    risk_counter: int = 0
    factor_table: ConfidenceFactorTable = field(default_factory=ConfidenceFactorTable)
    status: str = "Loading"
    results: dict | None = None
    sensitivity: tuple[dict, ...] = ()
    commentary: str | None = None
    commentary_mode: str | None = None
    commentary_errors: tuple[dict, ...] = ()
    is_commentary_running: bool = False
    errors: tuple[dict, ...] = ()
    is_running: bool = False
    revision: int = 0
    run_revision: int | None = None

    @property
    def has_results(self) -> bool:
        return self.results is not None


# Events ------------------------------------------------------------------

@dataclass(frozen=True)
class FactorsLoaded:
    table: ConfidenceFactorTable


@dataclass(frozen=True)
class FactorsFailed:
    errors: tuple[dict, ...]


@dataclass(frozen=True)
class AddCbsItem:
    pass


@dataclass(frozen=True)
class UpdateCbsItem:
    item_id: str
    changes: dict[str, Any]


@dataclass(frozen=True)
class DeleteCbsItem:
    item_id: str


@dataclass(frozen=True)
class AddRisk:
    pass


@dataclass(frozen=True)
class UpdateRisk:
    risk_id: str
    changes: dict[str, Any]


@dataclass(frozen=True)
class DeleteRisk:
    risk_id: str


@dataclass(frozen=True)
class SetIterations:
    value: Any


@dataclass(frozen=True)
class SetSeed:
    value: Any


@dataclass(frozen=True)
class SetCorrelationMode:
    mode: str


@dataclass(frozen=True)
class CbsImported:
    result: ImportResult


@dataclass(frozen=True)
class RisksImported:
    result: ImportResult


@dataclass(frozen=True)
class RunStarted:
    pass


@dataclass(frozen=True)
class RunSucceeded:
    response: dict
    revision: int


@dataclass(frozen=True)
class RunFailed:
    errors: tuple[dict, ...]
    revision: int


@dataclass(frozen=True)
class CommentaryStarted:
    pass


@dataclass(frozen=True)
class CommentaryReceived:
    mode_used: str | None
    commentary: str


@dataclass(frozen=True)
class CommentaryFailed:
    errors: tuple[dict, ...]


@dataclass(frozen=True)
class ErrorsReported:
    errors: tuple[dict, ...]


@dataclass(frozen=True)
class ErrorsCleared:
    pass


# Construction ------------------------------------------------------------

def state_from_inputs(inputs: dict, factor_table: ConfidenceFactorTable | None = None) -> SessionState:
    """Build a session from migrated inputs (see ``migrate_session_inputs``)."""
    return SessionState(
        settings=SimulationSettings(iterations=inputs["iterations"], seed=inputs["seed"]),
        correlation_mode=inputs["correlation_mode"],
        cbs_items=tuple(cbs_item_from_record(r) for r in inputs["cbs_items"]),
        risks=tuple(risk_from_record(r) for r in inputs["risks"]),
        cbs_counter=int(inputs["cbs_counter"]),
        risk_counter=int(inputs["risk_counter"]),
        factor_table=factor_table or ConfidenceFactorTable(),
    )


def initial_state() -> SessionState:
    inputs, _, _ = migrate_session_inputs({})
    return state_from_inputs(inputs)


def state_to_inputs(state: SessionState) -> dict:
    return {
        "iterations": state.settings.iterations,
        "seed": state.settings.seed,
        "correlation_mode": state.correlation_mode,
        "cbs_items": [cbs_item_to_record(item) for item in state.cbs_items],
        "risks": [risk_to_record(risk) for risk in state.risks],
        "cbs_counter": state.cbs_counter,
        "risk_counter": state.risk_counter,
    }


def sensitivity_tiers(state: SessionState) -> SensitivityTiers:
    return classify_sensitivity(list(state.sensitivity), state.cbs_items, state.risks)


# Reducer helpers ---------------------------------------------------------

def _invalidate(state: SessionState, **changes: Any) -> SessionState:
    """Apply an input change and drop every result derived from the old inputs."""
    return replace(
        state,
        results=None,
        sensitivity=(),
        commentary=None,
        commentary_mode=None,
        commentary_errors=(),
        is_commentary_running=False,
        revision=state.revision + 1,
        **changes,
    )


def _find(items: tuple, item_id: str, kind: str) -> int:
    for idx, item in enumerate(items):
        if item.id == item_id:
            return idx
    raise SessionError(f"Unknown {kind} id: {item_id}")


_CBS_MANUAL_KEYS = {"best_case_cost": "best", "most_likely_cost": "most_likely", "worst_case_cost": "worst"}
_CBS_PLAIN_KEYS = {"name", "base_cost", "driver_group", "sensitivity"}
_RISK_KEYS = {"name", "probability", "low_cost", "most_likely_cost", "high_cost"}


def _apply_cbs_changes(item: CBSItem, changes: dict[str, Any]) -> CBSItem:
    unknown = set(changes) - _CBS_PLAIN_KEYS - set(_CBS_MANUAL_KEYS) - {"confidence_factor"}
    if unknown:
        raise SessionError(f"Unsupported CBS fields: {', '.join(sorted(unknown))}")
    if "confidence_factor" in changes:
        item = item.with_confidence_factor(changes["confidence_factor"])
    item = replace(item, **{k: v for k, v in changes.items() if k in _CBS_PLAIN_KEYS})
    manual = {_CBS_MANUAL_KEYS[k]: v for k, v in changes.items() if k in _CBS_MANUAL_KEYS}
    if manual:
        item = item.with_manual_costs(**manual)
    return item


def _apply_risk_changes(risk: Risk, changes: dict[str, Any]) -> Risk:
    unknown = set(changes) - _RISK_KEYS - {"risk_type"}
    if unknown:
        raise SessionError(f"Unsupported risk fields: {', '.join(sorted(unknown))}")
    risk = replace(risk, **{k: v for k, v in changes.items() if k in _RISK_KEYS})
    # Re-applying the type keeps inherent risks at zero cost.
    return risk.with_risk_type(changes.get("risk_type", risk.risk_type))


# Handlers ----------------------------------------------------------------

def _factors_loaded(state: SessionState, event: FactorsLoaded) -> SessionState:
    items = reassign_unknown_factors(state.cbs_items, event.table)
    state = replace(state, factor_table=event.table, status="Ready")
    if items != state.cbs_items:
        state = _invalidate(state, cbs_items=items)
    return state


def _factors_failed(state: SessionState, event: FactorsFailed) -> SessionState:
    return replace(state, status="Backend not reachable", errors=tuple(event.errors))


def _add_cbs_item(state: SessionState, event: AddCbsItem) -> SessionState:
    counter = state.cbs_counter + 1
    item = CBSItem(
        id=make_sequential_id(CBS_ID_PREFIX, counter),
        cost_mode=DerivedCost(state.factor_table.default_factor()),
    )
    return _invalidate(state, cbs_items=state.cbs_items + (item,), cbs_counter=counter)


def _update_cbs_item(state: SessionState, event: UpdateCbsItem) -> SessionState:
    idx = _find(state.cbs_items, event.item_id, "CBS item")
    items = list(state.cbs_items)
    items[idx] = _apply_cbs_changes(items[idx], event.changes)
    return _invalidate(state, cbs_items=tuple(items))


def _delete_cbs_item(state: SessionState, event: DeleteCbsItem) -> SessionState:
    items = tuple(item for item in state.cbs_items if item.id != event.item_id)
    return _invalidate(state, cbs_items=items)


def _add_risk(state: SessionState, event: AddRisk) -> SessionState:
    counter = state.risk_counter + 1
    risk = Risk(id=make_sequential_id(RISK_ID_PREFIX, counter))
    return _invalidate(state, risks=state.risks + (risk,), risk_counter=counter)


def _update_risk(state: SessionState, event: UpdateRisk) -> SessionState:
    idx = _find(state.risks, event.risk_id, "risk")
    risks = list(state.risks)
    risks[idx] = _apply_risk_changes(risks[idx], event.changes)
    return _invalidate(state, risks=tuple(risks))


def _delete_risk(state: SessionState, event: DeleteRisk) -> SessionState:
    risks = tuple(risk for risk in state.risks if risk.id != event.risk_id)
    return _invalidate(state, risks=risks)


def _set_iterations(state: SessionState, event: SetIterations) -> SessionState:
    return _invalidate(state, settings=replace(state.settings, iterations=event.value))


def _set_seed(state: SessionState, event: SetSeed) -> SessionState:
    return _invalidate(state, settings=replace(state.settings, seed=event.value))


def _set_correlation_mode(state: SessionState, event: SetCorrelationMode) -> SessionState:
    mode = str(event.mode or "").strip().lower()
    if mode not in CORRELATION_MODES:
        raise SessionError(f"Unsupported correlation mode: {event.mode}")
    return _invalidate(state, correlation_mode=mode)


def _cbs_imported(state: SessionState, event: CbsImported) -> SessionState:
    result = event.result
    if not result.ok:
        detail = "\n".join(result.warnings) or "No CBS names found in CSV."
        return replace(state, errors=({"msg": "CBS import failed", "detail": detail},))

    default_factor = state.factor_table.default_factor()
    items = []
    for idx, record in enumerate(result.records, start=1):
        if record.get("userDefined"):
            mode = UserDefinedCost(
                best=record["bestCaseCost"],
                most_likely=record["mostLikelyCost"],
                worst=record["worstCaseCost"],
            )
        else:
            mode = DerivedCost(default_factor)
        base = record.get("baseCost")
        items.append(
            CBSItem(
                id=make_sequential_id(CBS_ID_PREFIX, idx),
                name=record["name"],
                base_cost=0 if base is None else base,
                cost_mode=mode,
            )
        )
    errors = ({"msg": "CBS import warnings (import succeeded)", "detail": "\n".join(result.warnings)},) if result.warnings else ()
    return _invalidate(state, cbs_items=tuple(items), cbs_counter=len(items), errors=errors)


def _risks_imported(state: SessionState, event: RisksImported) -> SessionState:
    result = event.result
    if not result.ok:
        detail = "\n".join(result.warnings) or "No risks parsed."
        return replace(state, errors=({"msg": "Risk import failed", "detail": detail},))

    risks = tuple(
        risk_from_record({"id": make_sequential_id(RISK_ID_PREFIX, idx), **record})
        for idx, record in enumerate(result.records, start=1)
    )
    errors = ({"msg": "Risk import warnings (import succeeded)", "detail": "\n".join(result.warnings)},) if result.warnings else ()
    return _invalidate(state, risks=risks, risk_counter=len(risks), errors=errors)


def _run_started(state: SessionState, event: RunStarted) -> SessionState:
    if state.is_running:
        raise SessionError("A simulation run is already in progress.")
    return replace(
        state,
        results=None,
        sensitivity=(),
        commentary=None,
        commentary_mode=None,
        commentary_errors=(),
        is_commentary_running=False,
        errors=(),
        is_running=True,
        run_revision=state.revision,
    )


def _run_succeeded(state: SessionState, event: RunSucceeded) -> SessionState:
    state = replace(state, is_running=False)
    if event.revision != state.revision:
        # Inputs changed while the request was in flight.
        return state
    response = event.response if isinstance(event.response, dict) else {}
    sensitivity = response.get("sensitivity")
    return replace(
        state,
        results=response.get("results") or None,
        sensitivity=tuple(sensitivity) if isinstance(sensitivity, list) else (),
    )


def _run_failed(state: SessionState, event: RunFailed) -> SessionState:
    return replace(state, is_running=False, errors=tuple(event.errors))


def _commentary_started(state: SessionState, event: CommentaryStarted) -> SessionState:
    return replace(state, is_commentary_running=True, commentary=None, commentary_mode=None, commentary_errors=())


def _commentary_received(state: SessionState, event: CommentaryReceived) -> SessionState:
    if not state.is_commentary_running:
        return state
    return replace(state, is_commentary_running=False, commentary=event.commentary or "", commentary_mode=event.mode_used)


def _commentary_failed(state: SessionState, event: CommentaryFailed) -> SessionState:
    if not state.is_commentary_running:
        return state
    return replace(state, is_commentary_running=False, commentary_errors=tuple(event.errors))


def _errors_reported(state: SessionState, event: ErrorsReported) -> SessionState:
    return replace(state, errors=tuple(event.errors))


def _errors_cleared(state: SessionState, event: ErrorsCleared) -> SessionState:
    return replace(state, errors=())


_HANDLERS: dict[type, Callable[[SessionState, Any], SessionState]] = {
    FactorsLoaded: _factors_loaded,
    FactorsFailed: _factors_failed,
    AddCbsItem: _add_cbs_item,
    UpdateCbsItem: _update_cbs_item,
    DeleteCbsItem: _delete_cbs_item,
    AddRisk: _add_risk,
    UpdateRisk: _update_risk,
    DeleteRisk: _delete_risk,
    SetIterations: _set_iterations,
    SetSeed: _set_seed,
    SetCorrelationMode: _set_correlation_mode,
    CbsImported: _cbs_imported,
    RisksImported: _risks_imported,
    RunStarted: _run_started,
    RunSucceeded: _run_succeeded,
    RunFailed: _run_failed,
    CommentaryStarted: _commentary_started,
    CommentaryReceived: _commentary_received,
    CommentaryFailed: _commentary_failed,
    ErrorsReported: _errors_reported,
    ErrorsCleared: _errors_cleared,
}


def reduce(state: SessionState, event: Any) -> SessionState:
    """Return the session that results from applying ``event`` to ``state``."""
    handler = _HANDLERS.get(type(event))
    if handler is None:
        raise SessionError(f"Unsupported event: {type(event).__name__}")
    return handler(state, event)
