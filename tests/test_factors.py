from __future__ import annotations

from cost_estimator.factors import ConfidenceFactorTable, reassign_unknown_factors
from cost_estimator.schema import CBSItem, DerivedCost, UserDefinedCost


def test_excluded_factors_are_dropped_and_order_kept(factor_table):
    assert factor_table.keys == ["Optimistic", "Realistic", "Pessimistic"]
    assert "User defined" not in factor_table
    assert "% Allocation" not in factor_table
    assert len(factor_table) == 3


def test_missing_or_invalid_multipliers_default_to_one():
    table = ConfidenceFactorTable.from_response({"factors": {"Odd": {"best": "x", "worst": 2}}})
    entry = table.get("Odd")
    assert (entry.best, entry.most_likely, entry.worst) == (1.0, 1.0, 2.0)


def test_malformed_response_gives_empty_table():
    for body in (None, [], {"factors": "nope"}, {}):
        table = ConfidenceFactorTable.from_response(body)
        assert not table.is_loaded
        assert table.keys == []


def test_default_factor_prefers_realistic(factor_table):
    assert factor_table.default_factor() == "Realistic"


def test_default_factor_falls_back_to_first_key():
    table = ConfidenceFactorTable.from_response({"factors": {"Low": {}, "High": {}}})
    assert table.default_factor() == "Low"


def test_unknown_factors_are_reassigned(factor_table):
    items = (
        CBSItem(id="cbs01", cost_mode=DerivedCost("Legacy")),
        CBSItem(id="cbs02", cost_mode=DerivedCost("Pessimistic")),
        CBSItem(id="cbs03", cost_mode=UserDefinedCost(1, 2, 3)),
    )
    out = reassign_unknown_factors(items, factor_table)
    assert [i.confidence_factor for i in out] == ["Realistic", "Pessimistic", "User defined"]
    assert out[2].best_case_cost == 1


def test_reassignment_skipped_until_table_loads():
    items = (CBSItem(id="cbs01", cost_mode=DerivedCost("Legacy")),)
    assert reassign_unknown_factors(items, ConfidenceFactorTable()) == items


def test_blank_factor_is_not_reassigned(factor_table):
    items = (
        CBSItem(id="cbs01", cost_mode=DerivedCost("")),
        CBSItem(id="cbs02", cost_mode=DerivedCost("Legacy")),
    )
    out = reassign_unknown_factors(items, factor_table)
    assert [i.confidence_factor for i in out] == ["", "Realistic"]
