"""Canonical simulation request payload assembly."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

from cost_estimator.schema import (
    CONFIDENCE_TABLE_VERSION,
    CBSItem,
    Risk,
    coerce_number,
    is_blank,
)

if TYPE_CHECKING:
    from cost_estimator.session import SessionState


def _optional_cost(value: Any) -> float | None:
    # Blank means "not provided", which the service treats differently from 0.
    if is_blank(value):
        return None
    return coerce_number(value)


def _int_or_zero(value: Any) -> int:
    return int(coerce_number(value))


def _cbs_payload(item: CBSItem, correlated: bool) -> dict[str, Any]:
    return {
        "id": item.id,
        "name": item.name,
        "baseCost": coerce_number(item.base_cost),
        "confidenceFactor": item.confidence_factor,
        "driver_group": (item.driver_group or None) if correlated else None,
        "sensitivity": str(item.sensitivity or "medium").strip().lower() if correlated else None,
        "bestCaseCost": _optional_cost(item.best_case_cost),
        "mostLikelyCost": _optional_cost(item.most_likely_cost),
        "worstCaseCost": _optional_cost(item.worst_case_cost),
    }


def _risk_payload(risk: Risk) -> dict[str, Any]:
    return {
        "id": risk.id,
        "name": risk.name,
        "riskType": "inherent" if risk.is_inherent else "contingent",
        "probability": coerce_number(risk.probability),
        "lowCost": coerce_number(risk.low_cost),
        "mostLikelyCost": coerce_number(risk.most_likely_cost),
        "highCost": coerce_number(risk.high_cost),
    }


def build_payload(state: "SessionState") -> dict[str, Any]:
    """Build the request body shared by simulate, commentary and export calls."""
    correlated = state.correlation_mode == "standard"
    return {
        "settings": {
            "iterations": _int_or_zero(state.settings.iterations),
            "seed": _int_or_zero(state.settings.seed),
            "percentiles": list(state.settings.percentiles),
        },
        "confidenceTableVersion": CONFIDENCE_TABLE_VERSION,
        "correlation_mode": state.correlation_mode,
        "cbsItems": [_cbs_payload(item, correlated) for item in state.cbs_items],
        "contingentRisks": [_risk_payload(risk) for risk in state.risks],
    }


def payload_to_json(payload: dict[str, Any]) -> str:
    return json.dumps(payload, sort_keys=True, ensure_ascii=False, allow_nan=False)
