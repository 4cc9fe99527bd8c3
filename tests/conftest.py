from __future__ import annotations

import json
from copy import deepcopy
from pathlib import Path
from typing import Any

import pytest
import requests

import cost_estimator.persistence as persistence
import cost_estimator.runtime_logging as runtime_logging
from cost_estimator.api_client import SimulationApiClient
from cost_estimator.factors import ConfidenceFactorTable
from cost_estimator.session import FactorsLoaded, initial_state, reduce


FACTORS_RESPONSE = {
    "factors": {
        "Optimistic": {"best": 0.95, "most_likely": 1.0, "worst": 1.1},
        "Realistic": {"best": 0.9, "most_likely": 1.05, "worst": 1.3},
        "Pessimistic": {"best": 0.85, "most_likely": 1.1, "worst": 1.6},
        "% Allocation": {"best": 1, "most_likely": 1, "worst": 1},
        "User defined": {"best": 1, "most_likely": 1, "worst": 1},
    }
}


class FakeResponse:
    def __init__(self, status_code: int, body: Any = None):
        self.status_code = status_code
        if isinstance(body, bytes):
            self._json = None
            self.content = body
        else:
            self._json = body
            self.content = b"" if body is None else json.dumps(body).encode("utf-8")
        self.text = self.content.decode("utf-8", errors="replace")

    @property
    def ok(self) -> bool:
        return self.status_code < 400

    def json(self) -> Any:
        if self._json is None:
            raise ValueError("No JSON body")
        return self._json


class FakeSession:
    """Answers ``request`` from routes keyed by (method, path suffix).

    A route value is an exception to raise or a ``(status, body)`` pair; a
    ``bytes`` body is returned raw, anything else as JSON.
    """

    def __init__(self, routes: dict[tuple[str, str], Any]):
        self.routes = routes
        self.calls: list[dict[str, Any]] = []

    def request(self, method, url, json=None, headers=None, timeout=None):
        self.calls.append({"method": method, "url": url, "json": json, "headers": headers, "timeout": timeout})
        for (route_method, suffix), answer in self.routes.items():
            if route_method == method and url.endswith(suffix):
                if isinstance(answer, Exception):
                    raise answer
                return FakeResponse(*answer)
        raise requests.ConnectionError(f"No route for {method} {url}")

    def paths(self) -> list[str]:
        return [call["url"].split("://", 1)[-1].split("/", 1)[-1] for call in self.calls]


@pytest.fixture
def factors_response() -> dict:
    return deepcopy(FACTORS_RESPONSE)


@pytest.fixture
def factor_table() -> ConfidenceFactorTable:
    return ConfidenceFactorTable.from_response(FACTORS_RESPONSE)


@pytest.fixture
def base_state(factor_table):
    return reduce(initial_state(), FactorsLoaded(factor_table))


@pytest.fixture
def fake_client():
    """Factory: ``fake_client(routes) -> (SimulationApiClient, FakeSession)``."""

    def _make(routes: dict[tuple[str, str], Any], timeout_s: float = 5):
        session = FakeSession(routes)
        return SimulationApiClient("http://svc/", timeout_s=timeout_s, session=session), session

    return _make


@pytest.fixture(autouse=True)
def isolated_storage(tmp_path, monkeypatch):
    monkeypatch.setattr(runtime_logging, "LOG_DIR", Path(tmp_path))
    monkeypatch.setattr(runtime_logging, "RUNTIME_EVENTS_LOG_FILE", Path(tmp_path) / "runtime_events.jsonl")
    monkeypatch.setattr(persistence, "STORE_DIR", Path(tmp_path))
    monkeypatch.setattr(persistence, "ESTIMATE_STORE_FILE", Path(tmp_path) / "estimates.json")
