"""Input help text, driver descriptions, and advisory (non-blocking) checks."""

from __future__ import annotations

from typing import Any, Iterable

from cost_estimator.schema import Risk, display_id, parse_number


DRIVER_TOOLTIPS: dict[str, str] = {
    "Market & economic conditions": (
        "Changes in market prices and economic conditions that affect multiple cost items at the same time "
        "(e.g. materials escalation, inflation, fuel or energy costs)."
    ),
    "Labour market & productivity": (
        "Availability, cost, and productivity of labour that can influence multiple work packages simultaneously "
        "(e.g. wage pressure, labour shortages, industrial action)."
    ),
    "Site & environmental conditions": (
        "Physical site conditions or environmental factors that can impact several cost items together "
        "(e.g. ground conditions, access constraints, utilities, weather)."
    ),
    "Regulatory environments": (
        "Regulatory, approval, or authority requirements that may constrain delivery "
        "(e.g. permits, possessions, third-party approvals, compliance conditions)."
    ),
    "Procurement & contract complexities": (
        "Commercial and procurement factors that can influence costs across multiple packages "
        "(e.g. tender market behaviour, contract packaging, risk allocation, claims environment)."
    ),
    "Technology & commissioning complexity": (
        "Complexity or uncertainty in systems, technology, testing, or commissioning "
        "(e.g. system integration or unproven technology)."
    ),
}

FIELD_HELP: dict[str, str] = {
    "baseCost": "Point estimate for the item before uncertainty is applied.",
    "confidenceFactor": "Named multiplier set applied to base cost. Pick 'User defined' to enter Best/Most likely/Worst.",
    "driverGroup": "Primary driver that moves this item together with others under Standard correlation.",
    "sensitivity": "How strongly this item responds to its driver.",
    "riskType": "Contingent risks draw their own cost; inherent risks are carried in base-cost variability.",
    "probability": "Chance the risk occurs, between 0 and 1.",
    "iterations": "Number of Monte Carlo draws the service runs.",
    "seed": "Random seed; the same seed and inputs reproduce the same results.",
}

INPUT_GUIDANCE: dict[str, dict[str, Any]] = {
    "iterations": {"min": 1000, "max": 20000, "note": "Fewer than 1,000 draws gives unstable P90 estimates."},
}


def _fmt(v: float) -> str:
    if abs(v - round(v)) < 1e-9:
        return f"{int(round(v)):,}"
    return f"{v:.3f}".rstrip("0").rstrip(".")


def help_with_guidance(key: str, base_help: str | None = None) -> str:
    base_help = base_help if base_help is not None else FIELD_HELP.get(key, "")
    g = INPUT_GUIDANCE.get(key)
    if not g:
        return base_help
    return f"{base_help} Reasonable range: {_fmt(g['min'])} to {_fmt(g['max'])}. {g['note']}"


def driver_help(driver_group: str) -> str:
    if not driver_group:
        return "Select the primary driver that influences this cost item."
    return DRIVER_TOOLTIPS.get(driver_group, "")


def risk_ordering_warnings(risks: Iterable[Risk]) -> list[str]:
    """Soft low <= most likely <= high checks for contingent risks."""
    warnings: list[str] = []
    for risk in risks:
        if risk.is_inherent:
            continue
        low = parse_number(risk.low_cost)
        ml = parse_number(risk.most_likely_cost)
        high = parse_number(risk.high_cost)
        label = f"Risk {display_id(risk.id)}"
        if low is not None and ml is not None and low > ml:
            warnings.append(f"{label}: Low must be ≤ Most likely.")
        if ml is not None and high is not None and ml > high:
            warnings.append(f"{label}: Most likely must be ≤ High.")
    return warnings


def advisory_warnings(inputs: dict[str, Any], risks: Iterable[Risk] = ()) -> list[str]:
    warnings: list[str] = []
    for key, g in INPUT_GUIDANCE.items():
        if key not in inputs:
            continue
        v = parse_number(inputs[key])
        if v is None:
            continue
        if v < g["min"] or v > g["max"]:
            warnings.append(f"{key}={_fmt(v)} is outside the recommended range [{_fmt(g['min'])}, {_fmt(g['max'])}].")
    warnings.extend(risk_ordering_warnings(risks))
    return warnings
