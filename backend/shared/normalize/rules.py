from __future__ import annotations

"""Keyword lists and tunable constants driving quote reconciliation.

The defaults live in ``reconcile_rules.yaml`` next to this module. A different
file can be supplied through the ``RECONCILE_RULES_PATH`` environment variable
or passed explicitly to :func:`load_rules`. Keys missing from the YAML fall
back to the built-in defaults so partial override files stay valid.
"""

import os
from dataclasses import dataclass, field, replace
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import yaml

DEFAULT_RULES_PATH = Path(__file__).resolve().parent / "reconcile_rules.yaml"

LABEL_MERGE_LONGER = "longer"
LABEL_MERGE_FIRST = "first"
_LABEL_MERGE_POLICIES = {LABEL_MERGE_LONGER, LABEL_MERGE_FIRST}

_DEFAULT_NEVER_CONSOLIDATE = (
    "dthc",
    "destination terminal",
    "terminal handling",
    "port charges",
    "port charge",
    "nvocc",
    "dthc-nvocc",
)
_DEFAULT_EXCLUSION = (
    "excluded",
    "exclusion",
    "not included",
    "not-included",
    "not covered",
    "excluded from",
    "excluded from quote",
    "not part of",
    "exclusions",
)
_DEFAULT_BASE_COST = (
    "base-cost",
    "base cost",
    "basecost",
    "base",
    "transportation",
    "shipping base",
    "freight base",
)
_DEFAULT_TOTAL = ("total", "sum", "grand total", "final amount", "subtotal")


@dataclass(frozen=True)
class ReconciliationRules:
    never_consolidate: Tuple[str, ...] = _DEFAULT_NEVER_CONSOLIDATE
    exclusion: Tuple[str, ...] = _DEFAULT_EXCLUSION
    base_cost: Tuple[str, ...] = _DEFAULT_BASE_COST
    total: Tuple[str, ...] = _DEFAULT_TOTAL
    # Empirical constants pending calibration against real documents.
    total_tolerance: float = 0.01
    label_merge: str = LABEL_MERGE_LONGER
    source: Optional[str] = field(default=None, compare=False)

    def with_overrides(self, **changes: Any) -> "ReconciliationRules":
        return replace(self, **changes)


def _keyword_tuple(raw: Any, name: str) -> Tuple[str, ...]:
    if raw is None:
        return ()
    if isinstance(raw, str):
        raw = [raw]
    if not isinstance(raw, list):
        raise ValueError(f"'{name}' must be a list of keywords")
    cleaned = [str(item).strip().lower() for item in raw if str(item).strip()]
    return tuple(dict.fromkeys(cleaned))


def rules_from_mapping(data: Dict[str, Any], source: Optional[str] = None) -> ReconciliationRules:
    """Build rules from a parsed mapping, keeping defaults for missing keys."""

    if not isinstance(data, dict):
        raise ValueError("reconciliation rules YAML must define a mapping")

    defaults = ReconciliationRules()
    changes: Dict[str, Any] = {"source": source}
    for name in ("never_consolidate", "exclusion", "base_cost", "total"):
        if name in data:
            changes[name] = _keyword_tuple(data[name], name)

    if data.get("total_tolerance") is not None:
        try:
            tolerance = float(data["total_tolerance"])
        except (TypeError, ValueError) as exc:
            raise ValueError("'total_tolerance' must be a number") from exc
        if tolerance < 0:
            raise ValueError("'total_tolerance' must not be negative")
        changes["total_tolerance"] = tolerance

    if data.get("label_merge") is not None:
        policy = str(data["label_merge"]).strip().lower()
        if policy not in _LABEL_MERGE_POLICIES:
            raise ValueError(
                f"'label_merge' must be one of {', '.join(sorted(_LABEL_MERGE_POLICIES))}"
            )
        changes["label_merge"] = policy

    return defaults.with_overrides(**changes)


def load_rules(path: Optional[str | Path] = None) -> ReconciliationRules:
    """Load reconciliation rules from *path* (or the configured default)."""

    resolved = Path(path) if path else Path(os.getenv("RECONCILE_RULES_PATH", str(DEFAULT_RULES_PATH)))
    loaded = yaml.safe_load(resolved.read_text(encoding="utf-8")) or {}
    return rules_from_mapping(loaded, source=str(resolved))


@lru_cache(maxsize=1)
def get_rules() -> ReconciliationRules:
    """Process-wide rules, loaded once."""

    return load_rules()


def clear_rules_cache() -> None:
    get_rules.cache_clear()
