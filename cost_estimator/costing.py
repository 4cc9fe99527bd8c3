"""Three-point cost derivation for CBS items."""

from __future__ import annotations

import math
from typing import Iterable, NamedTuple

import numpy as np

from cost_estimator.factors import ConfidenceFactorTable
from cost_estimator.schema import CBSItem, UserDefinedCost, coerce_number, parse_number


class DerivedCosts(NamedTuple):
    best: float
    most_likely: float
    worst: float
    is_derived: bool

    @property
    def is_complete(self) -> bool:
        return all(math.isfinite(v) for v in (self.best, self.most_likely, self.worst))


def _manual_value(value) -> float:
    parsed = parse_number(value)
    return np.nan if parsed is None else parsed


def calc_derived_costs(item: CBSItem, table: ConfidenceFactorTable) -> DerivedCosts:
    """Return best / most likely / worst for one item.

    User defined items return their manual fields (NaN where blank). An unknown
    factor yields all-NaN with ``is_derived=True``; callers must treat that row
    as incomplete rather than sending it anywhere.
    """
    mode = item.cost_mode
    if isinstance(mode, UserDefinedCost):
        return DerivedCosts(
            _manual_value(mode.best),
            _manual_value(mode.most_likely),
            _manual_value(mode.worst),
            False,
        )

    entry = table.get(mode.factor)
    if entry is None:
        return DerivedCosts(np.nan, np.nan, np.nan, True)

    base = coerce_number(item.base_cost)
    return DerivedCosts(base * entry.best, base * entry.most_likely, base * entry.worst, True)


def total_base_cost(items: Iterable[CBSItem]) -> float:
    return float(sum(coerce_number(item.base_cost) for item in items))
