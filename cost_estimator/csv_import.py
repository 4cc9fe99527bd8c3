"""
Delimited-text import for CBS items and risk registers.

Both parsers share one pipeline:

- UTF-8 BOM stripped, line endings normalized, blank lines dropped
- Header cells unquoted and lower-cased for alias matching
- Each logical column resolved against a fixed alias list (-1 = absent)

Malformed rows never raise. CBS rows without a name are skipped silently;
risk rows are skipped or repaired with a row-numbered warning. Whole-file
problems (missing required headers, nothing usable) set ``failed``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any

from cost_estimator.schema import parse_number


CBS_COLUMN_ALIASES: dict[str, list[str]] = {
    "name": ["name", "cbs", "cbsname"],
    "baseCost": ["basecost", "base_cost", "cost", "base"],
    "low": ["low", "lowcost", "best", "bestcase", "bestcasecost"],
    "mostLikely": ["mostlikely", "mostlikelycost", "mode", "ml"],
    "high": ["high", "highcost", "worst", "worstcase", "worstcasecost"],
}

RISK_COLUMN_ALIASES: dict[str, list[str]] = {
    "name": ["name", "risk"],
    "riskType": ["risktype", "type"],
    "probability": ["probability", "p"],
    "lowCost": ["lowcost", "low"],
    "mostLikelyCost": ["mostlikelycost", "mostlikely", "mode"],
    "highCost": ["highcost", "high"],
}

# Required risk columns and the label used when reporting them missing.
RISK_REQUIRED_LABELS: dict[str, str] = {
    "name": "name (or risk)",
    "probability": "probability (or p)",
    "lowCost": "lowCost (or low)",
    "mostLikelyCost": "mostLikelyCost (or mostLikely/mode)",
    "highCost": "highCost (or high)",
}

_DOUBLE_QUOTED = re.compile(r'^"(.*)"$', re.DOTALL)
_SINGLE_QUOTED = re.compile(r"^'(.*)'$", re.DOTALL)


@dataclass
class ImportResult:
    records: list[dict] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    failed: bool = False

    @property
    def ok(self) -> bool:
        return not self.failed and len(self.records) > 0


def normalise_lines(text: str) -> list[str]:
    text = str(text or "").lstrip("\ufeff")
    lines = text.replace("\r\n", "\n").replace("\r", "\n").split("\n")
    return [line.strip() for line in lines if line.strip()]


def split_row(row: str, delimiter: str = ",") -> list[str]:
    cells = []
    for cell in row.split(delimiter):
        cell = cell.strip()
        cell = _DOUBLE_QUOTED.sub(r"\1", cell)
        cell = _SINGLE_QUOTED.sub(r"\1", cell)
        cells.append(cell)
    return cells


def resolve_columns(header: list[str], aliases: dict[str, list[str]]) -> dict[str, int]:
    """Map each logical column to the index of its first matching alias, or -1."""
    lowered = [h.lower() for h in header]
    resolved: dict[str, int] = {}
    for column, names in aliases.items():
        resolved[column] = -1
        for alias in names:
            if alias.lower() in lowered:
                resolved[column] = lowered.index(alias.lower())
                break
    return resolved


def _cell(cells: list[str], idx: int) -> str:
    if idx < 0 or idx >= len(cells):
        return ""
    return cells[idx].strip()


# CBS ---------------------------------------------------------------------

def _cbs_record(cells: list[str], cols: dict[str, int]) -> dict[str, Any]:
    base = parse_number(_cell(cells, cols["baseCost"])) if cols["baseCost"] != -1 else None
    trio = [parse_number(_cell(cells, cols[k])) if cols[k] != -1 else None for k in ("low", "mostLikely", "high")]
    user_defined = base is not None and all(v is not None for v in trio)
    return {
        "name": _cell(cells, cols["name"]),
        "baseCost": base,
        "userDefined": user_defined,
        "bestCaseCost": trio[0] if user_defined else None,
        "mostLikelyCost": trio[1] if user_defined else None,
        "worstCaseCost": trio[2] if user_defined else None,
    }


def parse_cbs_csv(text: str, delimiter: str = ",") -> ImportResult:
    """Parse a CBS list: a header with a name column, or a bare one-name-per-line list.

    Each record carries ``name``, ``baseCost`` (None when absent), ``userDefined``
    and the manual trio (None unless ``userDefined``).
    """
    result = ImportResult()
    lines = normalise_lines(text)
    if not lines:
        result.failed = True
        return result

    header = split_row(lines[0], delimiter)
    cols = resolve_columns(header, CBS_COLUMN_ALIASES)

    if cols["name"] != -1:
        data_lines = lines[1:]
    else:
        # Bare list: every line is a name in the first cell.
        data_lines = lines
        cols = {k: -1 for k in CBS_COLUMN_ALIASES}
        cols["name"] = 0

    seen: set[str] = set()
    for line in data_lines:
        record = _cbs_record(split_row(line, delimiter), cols)
        if not record["name"]:
            continue
        key = record["name"].lower()
        if key in seen:
            continue
        seen.add(key)
        result.records.append(record)

    if not result.records:
        result.failed = True
    return result


# Risks -------------------------------------------------------------------

def parse_risks_csv(text: str, delimiter: str = ",") -> ImportResult:
    """Parse a risk register; all columns except riskType are required."""
    result = ImportResult()
    lines = normalise_lines(text)
    if not lines:
        result.failed = True
        result.warnings.append("No rows found.")
        return result

    cols = resolve_columns(split_row(lines[0], delimiter), RISK_COLUMN_ALIASES)
    missing = [label for column, label in RISK_REQUIRED_LABELS.items() if cols[column] == -1]
    if missing:
        result.failed = True
        result.warnings.append(f"Missing required headers: {', '.join(missing)}")
        return result

    warnings = result.warnings
    for row_num in range(1, len(lines)):
        label = f"Row {row_num + 1}"
        cells = split_row(lines[row_num], delimiter)

        name = _cell(cells, cols["name"])
        if not name:
            warnings.append(f"{label}: missing risk name; skipped.")
            continue

        risk_type = "contingent"
        if cols["riskType"] != -1:
            raw = _cell(cells, cols["riskType"]).lower()
            if raw in ("inherent", "contingent"):
                risk_type = raw
            elif raw:
                warnings.append(f"{label}: invalid riskType '{raw}', defaulted to 'contingent'.")

        probability = parse_number(_cell(cells, cols["probability"]))
        if probability is None:
            warnings.append(f"{label}: probability not a number; set to 0.")
            probability = 0.0
        if probability < 0 or probability > 1:
            warnings.append(f"{label}: probability out of range; clamped to 0-1.")
            probability = min(1.0, max(0.0, probability))

        costs = {}
        for column in ("lowCost", "mostLikelyCost", "highCost"):
            value = parse_number(_cell(cells, cols[column]))
            if value is None:
                warnings.append(f"{label}: {column} not a number; set to 0.")
                value = 0.0
            elif value < 0:
                warnings.append(f"{label}: {column} < 0; set to 0.")
                value = 0.0
            costs[column] = value

        if risk_type == "inherent":
            costs = {column: 0.0 for column in costs}
        elif not (costs["lowCost"] <= costs["mostLikelyCost"] <= costs["highCost"]):
            warnings.append(
                f"{label}: expected low <= mostLikely <= high "
                f"(got {costs['lowCost']:g}, {costs['mostLikelyCost']:g}, {costs['highCost']:g}). "
                "Simulation will still run."
            )

        result.records.append(
            {"name": name, "riskType": risk_type, "probability": probability, **costs}
        )

    if not result.records:
        result.failed = True
    return result
