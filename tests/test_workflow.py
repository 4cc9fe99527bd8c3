from __future__ import annotations

import requests

import cost_estimator.runtime_logging as runtime_logging
from cost_estimator.session import SetIterations, UpdateCbsItem, initial_state, reduce
from cost_estimator.workflow import (
    export_results,
    import_cbs_text,
    import_risks_text,
    load_confidence_factors,
    load_session,
    run_commentary,
    run_simulation,
    safe_filename,
    save_session,
)


SIMULATE_RESPONSE = {
    "results": {"p5": 90.0, "p10": 95.0, "p50": 120.0, "p90": 180.0, "contingency_p90_minus_p50": 60.0},
    "sensitivity": [{"name": "cbs04", "category": "CBS", "spearman_rho": 0.7}],
}


def _events():
    return [e["event"] for e in runtime_logging.read_runtime_events()]


def test_load_confidence_factors_success_and_failure(fake_client, factors_response):
    client, _ = fake_client({("GET", "/config/confidence-factors"): (200, factors_response)})
    state = load_confidence_factors(initial_state(), client)
    assert state.status == "Ready"
    assert state.factor_table.keys == ["Optimistic", "Realistic", "Pessimistic"]

    client, _ = fake_client({})
    state = load_confidence_factors(initial_state(), client)
    assert state.status == "Backend not reachable"
    assert state.errors[0]["msg"] == "Confidence factors unavailable"
    assert "factors_load_failed" in _events()


def test_factor_load_keeps_server_detail(fake_client):
    detail = [{"msg": "Factor table not configured", "type": "config"}]
    client, _ = fake_client({("GET", "/config/confidence-factors"): (500, {"detail": detail})})
    state = load_confidence_factors(initial_state(), client)
    assert state.status == "Backend not reachable"
    assert state.errors == tuple(detail)

    record = runtime_logging.read_runtime_events(event="factors_load_failed")[-1]
    assert record["api_status"] == 500
    assert record["api_detail"] == detail


def test_run_simulation_with_commentary(base_state, fake_client):
    client, session = fake_client(
        {
            ("POST", "/simulate"): (200, SIMULATE_RESPONSE),
            ("POST", "/commentary/run"): (200, {"mode_used": "template", "commentary": "P90 is 180."}),
        }
    )
    state = run_simulation(base_state, client)
    assert session.paths() == ["simulate", "commentary/run"]
    assert session.calls[0]["json"] == session.calls[1]["json"]
    assert state.results["p90"] == 180.0
    assert state.commentary == "P90 is 180."
    assert state.commentary_mode == "template"
    assert not state.is_running
    assert "simulation_finished" in _events()


def test_run_events_carry_session_revision(base_state, fake_client):
    client, _ = fake_client({("POST", "/simulate"): (200, SIMULATE_RESPONSE)})
    run_simulation(base_state, client, with_commentary=False)

    started = runtime_logging.read_runtime_events(event="simulation_started")[-1]
    assert started["session"]["revision"] == base_state.revision
    assert started["session"]["run_revision"] == base_state.revision
    assert started["context"]["iterations"] == base_state.settings.iterations


def test_validation_failure_skips_the_request(base_state, fake_client):
    client, session = fake_client({})
    state = run_simulation(reduce(base_state, SetIterations(25000)), client)
    assert session.calls == []
    assert state.errors == ({"msg": "Validation failed", "detail": "Iterations must be 20,000 or less."},)
    assert not state.is_running
    assert _events() == ["simulation_blocked"]


def test_api_error_detail_reaches_session(base_state, fake_client):
    detail = [{"loc": ["body", "settings"], "msg": "bad settings"}]
    client, _ = fake_client({("POST", "/simulate"): (422, {"detail": detail})})
    state = run_simulation(base_state, client)
    assert state.errors == tuple(detail)
    assert not state.has_results
    assert not state.is_running


def test_network_error_is_reported(base_state, fake_client):
    client, _ = fake_client({("POST", "/simulate"): requests.ConnectionError("refused")})
    state = run_simulation(base_state, client)
    assert state.errors == ({"msg": "Network/API error", "detail": "refused"},)
    assert "simulation_failed" in _events()


def test_commentary_failure_keeps_results_and_server_detail(base_state, fake_client):
    client, _ = fake_client(
        {
            ("POST", "/simulate"): (200, SIMULATE_RESPONSE),
            ("POST", "/commentary/run"): (503, {"detail": [{"msg": "LLM quota exceeded"}]}),
        }
    )
    state = run_simulation(base_state, client)
    assert state.has_results
    assert state.commentary is None
    assert state.commentary_errors == ({"msg": "LLM quota exceeded"},)
    assert runtime_logging.read_runtime_events(event="commentary_failed")[-1]["api_status"] == 503


def test_commentary_transport_error_is_wrapped(base_state, fake_client):
    client, _ = fake_client({("POST", "/commentary/draft"): requests.Timeout("read timed out")})
    state = run_commentary(base_state, client, draft=True)
    assert state.commentary_errors == ({"msg": "Commentary unavailable", "detail": "read timed out"},)


def test_run_without_commentary(base_state, fake_client):
    client, session = fake_client({("POST", "/simulate"): (200, SIMULATE_RESPONSE)})
    state = run_simulation(base_state, client, with_commentary=False)
    assert session.paths() == ["simulate"]
    assert state.commentary is None


def test_export_results(base_state, fake_client):
    client, _ = fake_client(
        {
            ("POST", "/simulate"): (200, SIMULATE_RESPONSE),
            ("POST", "/export/excel"): (200, b"xlsx-bytes"),
            ("POST", "/export/json"): (500, b"oops"),
        }
    )
    state, content, filename = export_results(base_state, client, "excel")
    assert content is None
    assert filename == ""

    state = run_simulation(state, client, with_commentary=False)
    _, content, filename = export_results(state, client, "excel")
    assert content == b"xlsx-bytes"
    assert filename == "cost-risk-results.xlsx"

    state, content, _ = export_results(state, client, "json")
    assert content is None
    assert state.errors == ({"msg": "Request failed", "detail": "oops"},)


def test_import_helpers_log_outcomes(base_state):
    state = import_cbs_text(base_state, "Bridge\nTunnel\n")
    assert [i.name for i in state.cbs_items] == ["Bridge", "Tunnel"]
    state = import_risks_text(state, "name,low,high\n")
    assert state.errors[0]["msg"] == "Risk import failed"
    assert _events() == ["cbs_import", "risk_import"]
    assert [e["level"] for e in runtime_logging.read_runtime_events()] == ["INFO", "WARNING"]


def test_save_and_load_session(base_state):
    state = reduce(base_state, UpdateCbsItem("cbs02", {"name": "Design & approvals", "base_cost": 420000}))
    ok, _ = save_session(state, "Option A")
    assert ok
    assert _events() == ["session_saved"]

    loaded, warnings = load_session("Option A", base_state.factor_table)
    assert warnings == []
    assert loaded.cbs_items == state.cbs_items
    assert loaded.status == "Ready"

    missing, warnings = load_session("Option B")
    assert missing is None
    assert warnings == ["No saved estimate named 'Option B'."]


def test_safe_filename():
    assert safe_filename("  Stage 2: Civil / Rail ") == "stage-2-civil-rail"
    assert safe_filename("") == ""


def test_draft_commentary_uses_draft_endpoint(base_state, fake_client):
    client, session = fake_client(
        {
            ("POST", "/simulate"): (200, SIMULATE_RESPONSE),
            ("POST", "/commentary/draft"): (200, {"mode_used": "draft", "commentary": "Draft text."}),
        }
    )
    state = run_simulation(base_state, client, with_commentary=False)
    state = run_commentary(state, client, draft=True)
    assert session.paths() == ["simulate", "commentary/draft"]
    assert state.commentary == "Draft text."
    assert state.commentary_mode == "draft"


def test_json_export_filename_uses_estimate_name(base_state, fake_client):
    client, _ = fake_client(
        {
            ("POST", "/simulate"): (200, SIMULATE_RESPONSE),
            ("POST", "/export/json"): (200, b"{}"),
        }
    )
    state = run_simulation(base_state, client, with_commentary=False)
    _, content, filename = export_results(state, client, "json", name="Option A / Rev 2")
    assert content == b"{}"
    assert filename == "cost-risk-option-a-rev-2.json"
