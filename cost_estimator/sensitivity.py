"""Tiering of simulation sensitivity results into dominant and moderate drivers."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable

import pandas as pd

from cost_estimator.schema import CBSItem, Risk, coerce_number


DOMINANT_MIN = 0.30
MODERATE_MIN = 0.15
MAX_PER_TIER = 6

TIER_COLUMNS = ["name", "display_name", "category", "spearman_rho", "abs_rho", "direction"]


def _empty_tier() -> pd.DataFrame:
    return pd.DataFrame(columns=TIER_COLUMNS)


@dataclass(frozen=True)
class SensitivityTiers:
    dominant: pd.DataFrame = field(default_factory=_empty_tier)
    moderate: pd.DataFrame = field(default_factory=_empty_tier)

    @property
    def is_empty(self) -> bool:
        return self.dominant.empty and self.moderate.empty


def _name_lookup(cbs_items: Iterable[CBSItem], risks: Iterable[Risk]) -> dict[str, dict[str, str]]:
    return {
        "CBS": {item.id: item.name for item in cbs_items},
        "RISK": {risk.id: risk.name for risk in risks},
    }


def resolve_display_name(row: dict[str, Any], lookup: dict[str, dict[str, str]]) -> str:
    raw = str(row.get("name", ""))
    category = str(row.get("category", "")).upper()
    if category in lookup:
        return lookup[category].get(raw) or raw
    for names in lookup.values():
        if names.get(raw):
            return names[raw]
    return raw


def _frame(rows: list[dict[str, Any]], lookup: dict[str, dict[str, str]]) -> pd.DataFrame:
    records = []
    for row in rows:
        if not isinstance(row, dict):
            continue
        rho = coerce_number(row.get("spearman_rho"))
        abs_rho = coerce_number(row.get("abs_rho"), default=abs(rho))
        records.append(
            {
                "name": str(row.get("name", "")),
                "display_name": resolve_display_name(row, lookup),
                "category": row.get("category"),
                "spearman_rho": rho,
                "abs_rho": abs_rho,
                "direction": "+" if rho >= 0 else "-",
            }
        )
    if not records:
        return _empty_tier()
    return pd.DataFrame.from_records(records, columns=TIER_COLUMNS)


def classify_sensitivity(
    rows: list[dict[str, Any]] | None,
    cbs_items: Iterable[CBSItem] = (),
    risks: Iterable[Risk] = (),
    max_per_tier: int = MAX_PER_TIER,
) -> SensitivityTiers:
    """Split rows into Dominant (|rho| >= 0.30) and Moderate (0.15 <= |rho| < 0.30) tiers.

    Rows below 0.15 are dropped. Each tier is sorted by abs_rho descending and
    capped at ``max_per_tier`` rows.
    """
    df = _frame(list(rows or []), _name_lookup(cbs_items, risks))
    if df.empty:
        return SensitivityTiers()

    df = df.sort_values("abs_rho", ascending=False, kind="mergesort").reset_index(drop=True)
    dominant = df[df["abs_rho"] >= DOMINANT_MIN].head(max_per_tier).reset_index(drop=True)
    moderate = df[(df["abs_rho"] >= MODERATE_MIN) & (df["abs_rho"] < DOMINANT_MIN)]
    return SensitivityTiers(dominant=dominant, moderate=moderate.head(max_per_tier).reset_index(drop=True))
