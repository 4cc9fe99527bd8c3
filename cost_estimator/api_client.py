"""HTTP client for the simulation, commentary, export and configuration endpoints."""

from __future__ import annotations

import os
from typing import Any

import requests


_BASE_URL_ENV_VAR = "COST_ESTIMATOR_API_BASE_URL"
_TIMEOUT_ENV_VAR = "COST_ESTIMATOR_API_TIMEOUT"
DEFAULT_TIMEOUT_S = 300.0


class ApiError(RuntimeError):
    """Non-2xx response; ``detail`` is the server's error list, unmodified."""

    def __init__(self, status_code: int, detail: list[Any], path: str = ""):
        self.status_code = int(status_code)
        self.detail = detail
        self.path = path
        super().__init__(f"API {self.status_code} for {path or 'request'}")


def _safe_json(resp: requests.Response) -> Any:
    try:
        return resp.json()
    except ValueError:
        return None


def error_detail(resp: requests.Response) -> list[Any]:
    data = _safe_json(resp)
    if isinstance(data, dict) and isinstance(data.get("detail"), list):
        return data["detail"]
    return [{"msg": "Request failed", "detail": data if data else resp.text}]


def base_url_from_env() -> str:
    base = os.getenv(_BASE_URL_ENV_VAR, "").strip().rstrip("/")
    if not base:
        raise RuntimeError(f"{_BASE_URL_ENV_VAR} is not defined")
    return base


def timeout_from_env() -> float:
    raw = os.getenv(_TIMEOUT_ENV_VAR, "").strip()
    try:
        value = float(raw) if raw else DEFAULT_TIMEOUT_S
    except ValueError:
        return DEFAULT_TIMEOUT_S
    return value if value > 0 else DEFAULT_TIMEOUT_S


class SimulationApiClient:
    """Thin request/response wrapper; one call per user action, no retries."""

    def __init__(
        self,
        base_url: str | None = None,
        timeout_s: float | None = None,
        session: requests.Session | None = None,
    ):
        self.base_url = (base_url or base_url_from_env()).strip().rstrip("/")
        self.timeout_s = timeout_s if timeout_s is not None else timeout_from_env()
        self.session = session or requests.Session()

    def url(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    def _request(self, method: str, path: str, payload: dict | None = None) -> requests.Response:
        resp = self.session.request(
            method,
            self.url(path),
            json=payload,
            headers={"Content-Type": "application/json"},
            timeout=self.timeout_s,
        )
        if not resp.ok:
            raise ApiError(resp.status_code, error_detail(resp), path)
        return resp

    def _json(self, method: str, path: str, payload: dict | None = None) -> dict:
        data = _safe_json(self._request(method, path, payload))
        return data if isinstance(data, dict) else {}

    def get_confidence_factors(self) -> dict:
        return self._json("GET", "/config/confidence-factors")

    def simulate(self, payload: dict) -> dict:
        return self._json("POST", "/simulate", payload)

    def commentary_run(self, payload: dict) -> dict:
        return self._json("POST", "/commentary/run", payload)

    def commentary_draft(self, payload: dict) -> dict:
        return self._json("POST", "/commentary/draft", payload)

    def export_excel(self, payload: dict) -> bytes:
        return self._request("POST", "/export/excel", payload).content

    def export_json(self, payload: dict) -> bytes:
        return self._request("POST", "/export/json", payload).content
