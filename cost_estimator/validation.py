"""Pre-flight validation of estimate inputs before a simulation run."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from cost_estimator.input_metadata import risk_ordering_warnings
from cost_estimator.schema import (
    CORRELATED_SENSITIVITIES,
    MAX_ITERATIONS,
    CBSItem,
    Risk,
    display_id,
    is_blank,
    parse_number,
)

if TYPE_CHECKING:
    from cost_estimator.session import SessionState


@dataclass(frozen=True)
class ValidationReport:
    issues: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.issues


def _check_non_negative(issues: list[str], label: str, field_name: str, value: Any) -> float | None:
    if is_blank(value):
        issues.append(f"{label}: {field_name} is required.")
        return None
    parsed = parse_number(value)
    if parsed is None or parsed < 0:
        issues.append(f"{label}: {field_name} must be a number ≥ 0.")
        return None
    return parsed


def _iteration_issues(iterations: Any) -> list[str]:
    issues: list[str] = []
    n = parse_number(iterations)
    if n is None or n <= 0:
        issues.append("Iterations must be a positive number.")
    elif not n.is_integer():
        issues.append("Iterations must be a whole number.")
    elif n > MAX_ITERATIONS:
        issues.append(f"Iterations must be {MAX_ITERATIONS:,} or less.")
    return issues


def _cbs_item_issues(item: CBSItem, correlation_mode: str, known_factors: set[str] | None) -> list[str]:
    issues: list[str] = []
    label = f"CBS {display_id(item.id)}"

    if not str(item.name or "").strip():
        issues.append(f"{label}: Name is required.")

    base = parse_number(item.base_cost)
    if base is None or base < 0:
        issues.append(f"{label}: Base cost must be a number ≥ 0.")

    factor = item.confidence_factor
    if not str(factor or "").strip():
        issues.append(f"{label}: Confidence factor is required.")
    elif not item.is_user_defined and known_factors is not None and factor not in known_factors:
        issues.append(f"{label}: Confidence factor '{factor}' is not available.")

    if correlation_mode == "standard":
        if not str(item.driver_group or "").strip():
            issues.append(f"{label}: Driver group is required when correlation is Standard.")
        if str(item.sensitivity or "").strip().lower() not in CORRELATED_SENSITIVITIES:
            issues.append(f"{label}: Sensitivity must be low, medium, or high.")

    if item.is_user_defined:
        best = _check_non_negative(issues, label, "Best case cost", item.best_case_cost)
        ml = _check_non_negative(issues, label, "Most likely cost", item.most_likely_cost)
        worst = _check_non_negative(issues, label, "Worst case cost", item.worst_case_cost)
        if best is not None and ml is not None and best > ml:
            issues.append(f"{label}: Best case must be ≤ Most likely.")
        if ml is not None and worst is not None and ml > worst:
            issues.append(f"{label}: Most likely must be ≤ Worst case.")

    return issues


def _risk_issues(risk: Risk) -> list[str]:
    issues: list[str] = []
    label = f"Risk {display_id(risk.id)}"

    if not str(risk.name or "").strip():
        issues.append(f"{label}: Name is required.")

    p = parse_number(risk.probability)
    if p is None or p < 0 or p > 1:
        issues.append(f"{label}: Probability must be between 0 and 1.")

    _check_non_negative(issues, label, "Low cost", risk.low_cost)
    _check_non_negative(issues, label, "Most likely cost", risk.most_likely_cost)
    _check_non_negative(issues, label, "High cost", risk.high_cost)
    return issues


def run_validation(state: "SessionState") -> ValidationReport:
    """Evaluate every rule against the session.

    Blocking issues are collected in rule order. Contingent risk ordering
    (low <= most likely <= high) is reported as a warning only.
    """
    issues: list[str] = []
    issues.extend(_iteration_issues(state.settings.iterations))

    if not state.cbs_items:
        issues.append("Add at least one CBS item.")
    known = set(state.factor_table.keys) if state.factor_table.is_loaded else None
    for item in state.cbs_items:
        issues.extend(_cbs_item_issues(item, state.correlation_mode, known))

    for risk in state.risks:
        issues.extend(_risk_issues(risk))

    return ValidationReport(issues=issues, warnings=risk_ordering_warnings(state.risks))


def validate_inputs(state: "SessionState") -> list[str]:
    """Return blocking issues; an empty list means the inputs are simulation-ready."""
    return run_validation(state).issues


def can_run(state: "SessionState") -> bool:
    return not state.is_running and not validate_inputs(state)
