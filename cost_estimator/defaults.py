"""Default session inputs, fixed option lists, and the local storage root."""

from __future__ import annotations

import os
from pathlib import Path


STORAGE_ENV_VAR = "COST_ESTIMATOR_STORAGE_ROOT"
DEFAULT_STORE_DIR = Path(".local_store")


def storage_root(path_value: str | Path | None = None) -> Path:
    """Resolve the directory shared by saved estimates and the runtime log.

    ``None`` reads COST_ESTIMATOR_STORAGE_ROOT; blank falls back to ``.local_store``.
    """
    if path_value is None:
        path_value = os.getenv(STORAGE_ENV_VAR, "")
    text = str(path_value).strip()
    if not text:
        return DEFAULT_STORE_DIR
    return Path(os.path.expandvars(os.path.expanduser(text)))


DRIVER_OPTIONS = [
    "Market & economic conditions",
    "Labour market & productivity",
    "Site & environmental conditions",
    "Regulatory environments",
    "Procurement & contract complexities",
    "Technology & commissioning complexity",
]

SENSITIVITY_LEVELS = ["none", "low", "medium", "high"]

DEFAULT_CONFIDENCE_FACTOR = "Realistic"


def _starter_cbs(item_id: str, name: str) -> dict:
    return {
        "id": item_id,
        "name": name,
        "baseCost": 0,
        "confidenceFactor": DEFAULT_CONFIDENCE_FACTOR,
        "bestCaseCost": None,
        "mostLikelyCost": None,
        "worstCaseCost": None,
        "driverGroup": "",
        "sensitivity": "medium",
    }


DEFAULTS = {
    "iterations": 5000,
    "seed": 123456,
    "correlation_mode": "none",
    "cbs_items": [
        _starter_cbs("cbs01", "INVESTIGATION"),
        _starter_cbs("cbs02", "FUNCTIONAL DESIGN"),
        _starter_cbs("cbs03", "DETAILED DESIGN"),
        _starter_cbs("cbs04", "CONSTRUCTION"),
    ],
    "risks": [
        {
            "id": "r01",
            "name": "Unknown services relocation",
            "riskType": "contingent",
            "probability": 0.2,
            "lowCost": 200000,
            "mostLikelyCost": 600000,
            "highCost": 1200000,
        },
        {
            "id": "r02",
            "name": "Contamination disposal",
            "riskType": "contingent",
            "probability": 0.1,
            "lowCost": 150000,
            "mostLikelyCost": 400000,
            "highCost": 900000,
        },
    ],
    "cbs_counter": 4,
    "risk_counter": 2,
}
