"""Cross-quote reconciliation of free-text "other cost" categories.

All functions are pure over the current quote list: the category registry is
recomputed on every read, and edits return a new list with the target quote
replaced (read-modify-replace).
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from backend.app.models import OtherCostItem, QuoteData
from backend.shared.normalize.rules import LABEL_MERGE_FIRST, ReconciliationRules, get_rules
from backend.shared.normalize.text import keys_match, normalize_key

logger = logging.getLogger("movequote.merge")


@dataclass
class OtherCostCategory:
    normalized_key: str
    key: str
    label: str
    description: str
    aliases: List[str] = field(default_factory=list)

    def has_alias(self, raw_key: str) -> bool:
        return raw_key in self.aliases

    def to_payload(self) -> Dict[str, Any]:
        return {
            "normalizedKey": self.normalized_key,
            "key": self.key,
            "label": self.label,
            "description": self.description,
            "aliases": list(self.aliases),
        }


def _prefer(current: str, incoming: str, policy: str) -> str:
    if policy == LABEL_MERGE_FIRST:
        return current
    return incoming if len(incoming) > len(current) else current


def build_category_registry(
    quotes: Sequence[QuoteData],
    rules: Optional[ReconciliationRules] = None,
) -> List[OtherCostCategory]:
    """Deduplicate every quote's "other" entries into first-seen ordered categories."""
    policy = (rules or get_rules()).label_merge
    registry: Dict[str, OtherCostCategory] = {}
    for quote in quotes:
        for item in quote.other or []:
            normalized = normalize_key(item.key)
            if not normalized:
                continue
            category = registry.get(normalized)
            if category is None:
                registry[normalized] = OtherCostCategory(
                    normalized_key=normalized,
                    key=item.key,
                    label=item.label,
                    description=item.description,
                    aliases=[item.key],
                )
                continue
            if item.key not in category.aliases:
                category.aliases.append(item.key)
            category.label = _prefer(category.label, item.label, policy)
            category.description = _prefer(category.description, item.description, policy)
    return list(registry.values())


def find_category(categories: Sequence[OtherCostCategory], normalized_key: str) -> Optional[OtherCostCategory]:
    for category in categories:
        if category.normalized_key == normalized_key:
            return category
    return None


def resolve_item_for_quote(
    quote: QuoteData,
    normalized_key: str,
    categories: Optional[Sequence[OtherCostCategory]] = None,
) -> Optional[OtherCostItem]:
    """Return the quote's ledger entry for a category, or None when it has no value."""
    if not quote.other or not normalized_key:
        return None
    category = find_category(categories, normalized_key) if categories is not None else None
    for item in quote.other:
        if category is not None:
            if category.has_alias(item.key):
                return item
        elif normalize_key(item.key) == normalized_key:
            return item
    return None


def parse_cost_input(raw: Any) -> Optional[float]:
    """Parse a cost typed by the user.

    Empty input means "cleared" and yields ``None``. Raises ``ValueError`` for
    anything that is not a finite, non-negative number.
    """
    if raw is None:
        return None
    if isinstance(raw, bool):
        raise ValueError("Boolean is not a cost")
    if isinstance(raw, (int, float)):
        try:
            value = float(raw)
        except OverflowError as exc:
            raise ValueError(f"Cost out of range: {raw!r}") from exc
    else:
        text = str(raw).strip()
        if not text:
            return None
        value = float(text)
    if not math.isfinite(value) or value < 0:
        raise ValueError(f"Invalid cost value: {raw!r}")
    return value


def _find_source_item(quotes: Sequence[QuoteData], raw_key: str, normalized: str) -> Optional[OtherCostItem]:
    for quote in quotes:
        for item in quote.other or []:
            if item.key == raw_key:
                return item
    for quote in quotes:
        for item in quote.other or []:
            if keys_match(item.key, normalized):
                return item
    return None


def upsert_other_cost(
    quotes: Sequence[QuoteData],
    quote_id: str,
    raw_key: str,
    new_value: Any,
) -> List[QuoteData]:
    """Set one quote's value for an other-cost category.

    A cleared value (``None`` or empty input) is stored as 0 so the category
    stays visible for every quote. Invalid numeric input and unknown quote ids
    leave the list unchanged; the operation never raises.
    """
    current = list(quotes)
    try:
        parsed = parse_cost_input(new_value)
    except ValueError:
        logger.debug("other_cost.upsert ignored invalid value=%r key=%r", new_value, raw_key)
        return current
    value = 0.0 if parsed is None else parsed

    normalized = normalize_key(raw_key)
    if not normalized:
        logger.debug("other_cost.upsert ignored unusable key=%r", raw_key)
        return current

    target = next((quote for quote in current if quote.id == quote_id), None)
    if target is None:
        logger.debug("other_cost.upsert unknown quote_id=%r", quote_id)
        return current

    ledger = list(target.other or [])
    index = next((idx for idx, item in enumerate(ledger) if item.key == raw_key), None)
    if index is None:
        index = next((idx for idx, item in enumerate(ledger) if normalize_key(item.key) == normalized), None)

    if index is not None:
        ledger[index] = ledger[index].model_copy(update={"value": value})
    else:
        source = _find_source_item(current, raw_key, normalized)
        if source is not None:
            entry = OtherCostItem(key=source.key, label=source.label, description=source.description, value=value)
        else:
            entry = OtherCostItem(key=raw_key, label=raw_key.strip(), description="", value=value)
        ledger.append(entry)

    updated = target.model_copy(update={"other": ledger or None})
    logger.debug("other_cost.upsert quote_id=%s key=%s value=%.2f", quote_id, normalized, value)
    return [updated if quote.id == quote_id else quote for quote in current]


def other_cost_rows(
    quotes: Sequence[QuoteData],
    rules: Optional[ReconciliationRules] = None,
) -> List[Dict[str, Any]]:
    """Display rows: one per category, with each quote's value and edit key."""
    categories = build_category_registry(quotes, rules)
    rows: List[Dict[str, Any]] = []
    for category in categories:
        cells = []
        for quote in quotes:
            item = resolve_item_for_quote(quote, category.normalized_key, categories)
            cells.append(
                {
                    "quoteId": quote.id,
                    "value": item.value if item is not None else None,
                    "editKey": item.key if item is not None else category.key,
                }
            )
        row = category.to_payload()
        row["cells"] = cells
        rows.append(row)
    return rows
