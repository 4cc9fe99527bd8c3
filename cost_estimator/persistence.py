"""Local persistence of named estimate sessions."""

from __future__ import annotations

import json
from copy import deepcopy
from datetime import datetime, timezone
from pathlib import Path

from cost_estimator.defaults import storage_root
from cost_estimator.schema import ESTIMATE_TYPE, SCHEMA_VERSION, migrate_session_inputs


STORE_DIR = Path(".local_store")
ESTIMATE_STORE_FILE = STORE_DIR / "estimates.json"


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def configure_storage_root(path_value: str | Path | None) -> Path:
    """Configure the directory that holds saved estimates; ``None`` reads the environment."""
    global STORE_DIR, ESTIMATE_STORE_FILE
    STORE_DIR = storage_root(path_value)
    ESTIMATE_STORE_FILE = STORE_DIR / "estimates.json"
    return STORE_DIR


def _load_store() -> dict:
    if not ESTIMATE_STORE_FILE.exists():
        return {}
    try:
        data = json.loads(ESTIMATE_STORE_FILE.read_text(encoding="utf-8"))
    except json.JSONDecodeError:
        return {}
    return data if isinstance(data, dict) else {}


def _save_store(data: dict) -> None:
    STORE_DIR.mkdir(parents=True, exist_ok=True)
    tmp = ESTIMATE_STORE_FILE.with_suffix(f"{ESTIMATE_STORE_FILE.suffix}.tmp")
    tmp.write_text(json.dumps(data, indent=2), encoding="utf-8")
    tmp.replace(ESTIMATE_STORE_FILE)


def list_saved_names() -> list[str]:
    return sorted(_load_store().keys())


def load_saved(name: str) -> dict | None:
    return deepcopy(_load_store().get(name))


def save_named_bundle(name: str, bundle: dict, overwrite: bool = False) -> tuple[bool, str]:
    if not name.strip():
        return False, "Name is required."
    store = _load_store()
    if name in store and not overwrite:
        return False, "Name already exists."
    store[name] = bundle
    _save_store(store)
    return True, "Saved."


def delete_saved(name: str) -> bool:
    store = _load_store()
    if name not in store:
        return False
    del store[name]
    _save_store(store)
    return True


def build_estimate_bundle(name: str, inputs: dict) -> dict:
    return {
        "type": ESTIMATE_TYPE,
        "schema_version": SCHEMA_VERSION,
        "name": name,
        "created_at": _now_iso(),
        "inputs": deepcopy(inputs),
    }


def migrate_bundle(payload: object) -> tuple[dict, list[str], list[str]]:
    """Return migrated inputs from a saved bundle or a bare inputs dict."""
    if not isinstance(payload, dict):
        inputs, warnings, unknown = migrate_session_inputs({})
        return inputs, ["Import payload is not a JSON object."] + warnings, unknown

    if payload.get("type") == ESTIMATE_TYPE:
        inputs, warnings, unknown = migrate_session_inputs(payload.get("inputs", {}))
        version = payload.get("schema_version")
        if version != SCHEMA_VERSION:
            warnings.append(f"Imported schema_version={version}; migrated to schema_version={SCHEMA_VERSION}.")
        return inputs, warnings, unknown

    inputs, warnings, unknown = migrate_session_inputs(payload)
    warnings.append("Imported bare inputs JSON without bundle metadata.")
    return inputs, warnings, unknown


def parse_import_json(raw_json: str) -> tuple[dict, list[str], list[str]]:
    try:
        payload = json.loads(raw_json)
    except json.JSONDecodeError:
        inputs, _, _ = migrate_session_inputs({})
        return inputs, ["Could not parse import JSON."], []
    return migrate_bundle(payload)


configure_storage_root(storage_root())
