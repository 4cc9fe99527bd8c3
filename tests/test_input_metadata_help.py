from __future__ import annotations

from cost_estimator.defaults import DRIVER_OPTIONS
from cost_estimator.input_metadata import DRIVER_TOOLTIPS, advisory_warnings, driver_help, help_with_guidance
from cost_estimator.schema import Risk


def test_every_driver_group_has_a_tooltip():
    assert set(DRIVER_TOOLTIPS) == set(DRIVER_OPTIONS)
    assert driver_help("").startswith("Select the primary driver")
    assert "permits" in driver_help("Regulatory environments")


def test_help_with_guidance_appends_range():
    help_text = help_with_guidance("iterations")
    assert "Monte Carlo" in help_text
    assert "Reasonable range: 1,000 to 20,000." in help_text
    assert help_with_guidance("seed") == help_with_guidance("seed", None)
    assert "Reasonable range" not in help_with_guidance("seed")


def test_advisory_warnings_flag_low_iterations_and_risk_order():
    risks = [Risk(id="r03", name="Strike", low_cost=10, most_likely_cost=5, high_cost=20)]
    warnings = advisory_warnings({"iterations": 500, "seed": 1}, risks)
    assert warnings == [
        "iterations=500 is outside the recommended range [1,000, 20,000].",
        "Risk r003: Low must be ≤ Most likely.",
    ]
