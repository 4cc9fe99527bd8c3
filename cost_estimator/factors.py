"""Read-only confidence factor lookup loaded from the estimation service."""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Iterable, Mapping

from cost_estimator.defaults import DEFAULT_CONFIDENCE_FACTOR
from cost_estimator.schema import EXCLUDED_FACTORS, CBSItem


@dataclass(frozen=True)
class ConfidenceFactorEntry:
    key: str
    best: float = 1.0
    most_likely: float = 1.0
    worst: float = 1.0


def _multiplier(raw: Mapping[str, Any], name: str) -> float:
    value = raw.get(name)
    if value is None:
        return 1.0
    try:
        return float(value)
    except (TypeError, ValueError):
        return 1.0


@dataclass(frozen=True)
class ConfidenceFactorTable:
    """Immutable mapping of factor key to multipliers, in service order."""

    entries: Mapping[str, ConfidenceFactorEntry] = field(default_factory=lambda: MappingProxyType({}))

    @classmethod
    def from_response(cls, data: Any) -> "ConfidenceFactorTable":
        """Build from a `{factors: {key: {best, most_likely, worst}}}` response body."""
        factors = data.get("factors") if isinstance(data, dict) else None
        if not isinstance(factors, dict):
            factors = {}
        entries: dict[str, ConfidenceFactorEntry] = {}
        for key, raw in factors.items():
            key = str(key)
            if key in EXCLUDED_FACTORS:
                continue
            raw = raw if isinstance(raw, dict) else {}
            entries[key] = ConfidenceFactorEntry(
                key=key,
                best=_multiplier(raw, "best"),
                most_likely=_multiplier(raw, "most_likely"),
                worst=_multiplier(raw, "worst"),
            )
        return cls(entries=MappingProxyType(entries))

    @property
    def keys(self) -> list[str]:
        return list(self.entries.keys())

    @property
    def is_loaded(self) -> bool:
        return len(self.entries) > 0

    def get(self, key: str) -> ConfidenceFactorEntry | None:
        return self.entries.get(key)

    def __contains__(self, key: object) -> bool:
        return key in self.entries

    def __len__(self) -> int:
        return len(self.entries)

    def default_factor(self) -> str:
        if DEFAULT_CONFIDENCE_FACTOR in self.entries or not self.entries:
            return DEFAULT_CONFIDENCE_FACTOR
        return next(iter(self.entries))


def reassign_unknown_factors(items: Iterable[CBSItem], table: ConfidenceFactorTable) -> tuple[CBSItem, ...]:
    """Move derived items whose factor is set but missing from the table onto the fallback factor."""
    items = tuple(items)
    if not table.is_loaded:
        return items
    fallback = table.default_factor()
    out = []
    for item in items:
        if not item.is_user_defined and item.confidence_factor and item.confidence_factor not in table:
            item = item.with_confidence_factor(fallback)
        out.append(item)
    return tuple(out)
