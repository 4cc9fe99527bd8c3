"""Estimate data model, constants, and saved-input migration utilities."""

from __future__ import annotations

import math
import re
from copy import deepcopy
from dataclasses import dataclass, field, replace
from typing import Any, Union

from cost_estimator.defaults import (
    DEFAULT_CONFIDENCE_FACTOR,
    DEFAULTS,
    DRIVER_OPTIONS,
    SENSITIVITY_LEVELS,
)


SCHEMA_VERSION = 1
ESTIMATE_TYPE = "estimate"

USER_DEFINED = "User defined"
EXCLUDED_FACTORS = {USER_DEFINED, "% Allocation"}

MAX_ITERATIONS = 20000
PERCENTILES = (0.05, 0.1, 0.5, 0.9)
CONFIDENCE_TABLE_VERSION = "v1"

CORRELATION_MODES = {"none", "standard"}
RISK_TYPES = {"contingent", "inherent"}
CORRELATED_SENSITIVITIES = {"low", "medium", "high"}

CBS_ID_PREFIX = "cbs"
RISK_ID_PREFIX = "r"

_ID_PATTERN = re.compile(r"^([A-Za-z]+)(\d+)$")


# Number coercion ---------------------------------------------------------

def parse_number(value: Any) -> float | None:
    """Return a finite float, or None for blank, non-numeric or non-finite input."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        out = float(value)
    else:
        text = str(value).strip()
        if not text:
            return None
        try:
            out = float(text)
        except ValueError:
            return None
    return out if math.isfinite(out) else None


def coerce_number(value: Any, default: float = 0.0) -> float:
    parsed = parse_number(value)
    return default if parsed is None else parsed


def is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


# Identifiers -------------------------------------------------------------

def make_sequential_id(prefix: str, n: int) -> str:
    return f"{prefix}{int(n):02d}"


def id_ordinal(identifier: str) -> int | None:
    m = _ID_PATTERN.match(str(identifier or ""))
    if not m:
        return None
    return int(m.group(2))


def display_id(identifier: str) -> str:
    """Format an identifier as prefix + 3-digit number without touching the stored form."""
    text = str(identifier or "")
    m = _ID_PATTERN.match(text)
    if not m:
        return text
    return f"{m.group(1)}{int(m.group(2)):03d}"


# Cost modes --------------------------------------------------------------

def is_user_defined_factor(value: Any) -> bool:
    return str(value or "").strip().lower() == USER_DEFINED.lower()


@dataclass(frozen=True)
class DerivedCost:
    """Three-point costs derived from base cost times a named confidence factor."""

    factor: str = DEFAULT_CONFIDENCE_FACTOR


@dataclass(frozen=True)
class UserDefinedCost:
    """Three-point costs entered manually; fields may hold raw edit values."""

    best: Any = None
    most_likely: Any = None
    worst: Any = None


CostMode = Union[DerivedCost, UserDefinedCost]


# Entities ----------------------------------------------------------------

@dataclass(frozen=True)
class CBSItem:
    id: str
    name: str = ""
    base_cost: Any = 0
    cost_mode: CostMode = field(default_factory=DerivedCost)
    driver_group: str = ""
    sensitivity: str = "medium"

    @property
    def is_user_defined(self) -> bool:
        return isinstance(self.cost_mode, UserDefinedCost)

    @property
    def confidence_factor(self) -> str:
        if isinstance(self.cost_mode, UserDefinedCost):
            return USER_DEFINED
        return self.cost_mode.factor

    @property
    def best_case_cost(self) -> Any:
        return self.cost_mode.best if isinstance(self.cost_mode, UserDefinedCost) else None

    @property
    def most_likely_cost(self) -> Any:
        return self.cost_mode.most_likely if isinstance(self.cost_mode, UserDefinedCost) else None

    @property
    def worst_case_cost(self) -> Any:
        return self.cost_mode.worst if isinstance(self.cost_mode, UserDefinedCost) else None

    def with_confidence_factor(self, factor: Any) -> "CBSItem":
        """Switch cost mode; leaving "User defined" drops the manual fields."""
        if is_user_defined_factor(factor):
            if self.is_user_defined:
                return self
            return replace(self, cost_mode=UserDefinedCost())
        return replace(self, cost_mode=DerivedCost(str(factor or "")))

    def with_manual_costs(self, **costs: Any) -> "CBSItem":
        """Update manual costs; ignored unless the item is in user defined mode."""
        if not isinstance(self.cost_mode, UserDefinedCost):
            return self
        return replace(self, cost_mode=replace(self.cost_mode, **costs))


@dataclass(frozen=True)
class Risk:
    id: str
    name: str = ""
    risk_type: str = "contingent"
    probability: Any = 0
    low_cost: Any = 0
    most_likely_cost: Any = 0
    high_cost: Any = 0

    @property
    def is_inherent(self) -> bool:
        return str(self.risk_type or "contingent").strip().lower() == "inherent"

    def with_risk_type(self, risk_type: Any) -> "Risk":
        out = replace(self, risk_type=str(risk_type or "contingent"))
        if out.is_inherent:
            out = replace(out, low_cost=0, most_likely_cost=0, high_cost=0)
        return out


@dataclass(frozen=True)
class SimulationSettings:
    iterations: Any = DEFAULTS["iterations"]
    seed: Any = DEFAULTS["seed"]
    percentiles: tuple[float, ...] = PERCENTILES


# Record conversion -------------------------------------------------------

_MANUAL_FIELDS = {"bestCaseCost": "best", "mostLikelyCost": "most_likely", "worstCaseCost": "worst"}


def cbs_item_from_record(record: dict) -> CBSItem:
    factor = record.get("confidenceFactor") or DEFAULT_CONFIDENCE_FACTOR
    if is_user_defined_factor(factor):
        mode: CostMode = UserDefinedCost(
            best=record.get("bestCaseCost"),
            most_likely=record.get("mostLikelyCost"),
            worst=record.get("worstCaseCost"),
        )
    else:
        mode = DerivedCost(str(factor))
    return CBSItem(
        id=str(record["id"]),
        name=str(record.get("name") or ""),
        base_cost=record.get("baseCost", 0),
        cost_mode=mode,
        driver_group=str(record.get("driverGroup") or ""),
        sensitivity=str(record.get("sensitivity") or "medium"),
    )


def cbs_item_to_record(item: CBSItem) -> dict:
    return {
        "id": item.id,
        "name": item.name,
        "baseCost": item.base_cost,
        "confidenceFactor": item.confidence_factor,
        "bestCaseCost": item.best_case_cost,
        "mostLikelyCost": item.most_likely_cost,
        "worstCaseCost": item.worst_case_cost,
        "driverGroup": item.driver_group,
        "sensitivity": item.sensitivity,
    }


def risk_from_record(record: dict) -> Risk:
    risk = Risk(
        id=str(record["id"]),
        name=str(record.get("name") or ""),
        probability=record.get("probability", 0),
        low_cost=record.get("lowCost", 0),
        most_likely_cost=record.get("mostLikelyCost", 0),
        high_cost=record.get("highCost", 0),
    )
    return risk.with_risk_type(record.get("riskType") or "contingent")


def risk_to_record(risk: Risk) -> dict:
    return {
        "id": risk.id,
        "name": risk.name,
        "riskType": risk.risk_type,
        "probability": risk.probability,
        "lowCost": risk.low_cost,
        "mostLikelyCost": risk.most_likely_cost,
        "highCost": risk.high_cost,
    }


# Saved-input migration ---------------------------------------------------

def _sanitize_records(
    raw_records: Any,
    prefix: str,
    warnings: list[str],
    key_name: str,
) -> tuple[list[dict], int]:
    sanitized: list[dict] = []
    if raw_records is None:
        return sanitized, 0
    if not isinstance(raw_records, list):
        warnings.append(f"{key_name} ignored because it is not a list.")
        return sanitized, 0

    seen_ids: set[str] = set()
    max_ordinal = 0
    pending: list[dict] = []
    for idx, item in enumerate(raw_records):
        if not isinstance(item, dict):
            warnings.append(f"{key_name}[{idx}] ignored because entry is not an object.")
            continue
        record = dict(item)
        rid = str(record.get("id") or "").strip()
        if not rid or rid in seen_ids or id_ordinal(rid) is None:
            if rid:
                warnings.append(f"{key_name}[{idx}] id '{rid}' is invalid or duplicated; a new id was assigned.")
            record["id"] = None
        else:
            seen_ids.add(rid)
            record["id"] = rid
            max_ordinal = max(max_ordinal, id_ordinal(rid) or 0)
        pending.append(record)

    for record in pending:
        if record["id"] is None:
            max_ordinal += 1
            record["id"] = make_sequential_id(prefix, max_ordinal)
        sanitized.append(record)
    return sanitized, max_ordinal


def _sanitize_cbs_record(record: dict, warnings: list[str], idx: int) -> dict:
    out = {**DEFAULTS["cbs_items"][0], "name": "", **record}
    out["name"] = str(out.get("name") or "")
    if is_user_defined_factor(out.get("confidenceFactor")):
        out["confidenceFactor"] = USER_DEFINED
    else:
        out["confidenceFactor"] = str(out.get("confidenceFactor") or DEFAULT_CONFIDENCE_FACTOR)
        for key in _MANUAL_FIELDS:
            out[key] = None
    if out.get("driverGroup") and out["driverGroup"] not in DRIVER_OPTIONS:
        warnings.append(f"cbs_items[{idx}] driverGroup invalid; cleared.")
        out["driverGroup"] = ""
    sens = str(out.get("sensitivity") or "").strip().lower()
    if sens not in SENSITIVITY_LEVELS:
        warnings.append(f"cbs_items[{idx}] sensitivity invalid; reset to medium.")
        sens = "medium"
    out["sensitivity"] = sens
    return out


def _sanitize_risk_record(record: dict, warnings: list[str], idx: int) -> dict:
    out = {**DEFAULTS["risks"][0], "name": "", **record}
    out["name"] = str(out.get("name") or "")
    risk_type = str(out.get("riskType") or "contingent").strip().lower()
    if risk_type not in RISK_TYPES:
        warnings.append(f"risks[{idx}] riskType invalid; reset to contingent.")
        risk_type = "contingent"
    out["riskType"] = risk_type
    return out


def migrate_session_inputs(raw_inputs: Any) -> tuple[dict, list[str], list[str]]:
    """Normalize saved session inputs into the current schema.

    Returns (inputs, warnings, unknown_keys). Never raises on malformed data;
    anything unusable falls back to DEFAULTS with a warning.
    """
    warnings: list[str] = []
    unknown_keys: list[str] = []
    inputs = deepcopy(DEFAULTS)
    payload = raw_inputs if isinstance(raw_inputs, dict) else {}

    for k, v in payload.items():
        if k in inputs:
            inputs[k] = deepcopy(v)
        else:
            unknown_keys.append(k)

    mode = str(inputs.get("correlation_mode") or "none").strip().lower()
    if mode not in CORRELATION_MODES:
        warnings.append("correlation_mode invalid; reset to none.")
        mode = "none"
    inputs["correlation_mode"] = mode

    for key in ("iterations", "seed"):
        parsed = parse_number(inputs.get(key))
        if parsed is None:
            warnings.append(f"{key} invalid and reset to default.")
            inputs[key] = DEFAULTS[key]
        else:
            inputs[key] = int(parsed)

    cbs_records, cbs_max = _sanitize_records(inputs.get("cbs_items"), CBS_ID_PREFIX, warnings, "cbs_items")
    risk_records, risk_max = _sanitize_records(inputs.get("risks"), RISK_ID_PREFIX, warnings, "risks")
    inputs["cbs_items"] = [_sanitize_cbs_record(r, warnings, i) for i, r in enumerate(cbs_records)]
    inputs["risks"] = [_sanitize_risk_record(r, warnings, i) for i, r in enumerate(risk_records)]

    # Counters only move forward so ids are never handed out twice.
    for key, floor in (("cbs_counter", cbs_max), ("risk_counter", risk_max)):
        parsed = parse_number(inputs.get(key))
        inputs[key] = max(int(parsed) if parsed is not None else 0, floor)

    return inputs, warnings, sorted(unknown_keys)
