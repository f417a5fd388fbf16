"""Intra-record repair of extracted quotes.

A candidate record coming out of document extraction is untrusted: base-cost
fragments may sit in the "other" ledger and displayed aggregates may have been
captured as line items. Two ordered passes turn it into a canonical quote:

1. :func:`consolidate_base_cost` folds base-cost fragments into ``baseCost``.
2. :func:`filter_total_artifacts` drops ledger lines that restate a total.

Consolidation runs first so a legitimate fragment is merged before the total
check could mistake it for an aggregate.
"""

from __future__ import annotations

import logging
from typing import Iterable, List, Optional, Sequence, Union

from backend.app.models import (
    SERVICE_ITEM_TEMPLATES,
    CandidateOtherItem,
    CandidateQuote,
    CandidateServiceItem,
    QuoteData,
    ServiceItem,
)
from backend.shared.normalize.rules import ReconciliationRules, get_rules
from backend.shared.normalize.text import contains_any, matching_terms

logger = logging.getLogger("movequote.reconcile")

NEVER_CONSOLIDATE = "never_consolidate"
EXCLUDED = "excluded"
BASE_COST = "base_cost"
UNCLASSIFIED = "other"


def _resolve_rules(rules: Optional[ReconciliationRules]) -> ReconciliationRules:
    return rules if rules is not None else get_rules()


def classify_other_item(item: CandidateOtherItem, rules: Optional[ReconciliationRules] = None) -> str:
    """Return the consolidation tier an "other" entry falls into.

    Tiers are evaluated in priority order: never-consolidate terms, then
    exclusion language, then the positive base-cost pattern.
    """
    rules = _resolve_rules(rules)
    texts = (item.key, item.label, item.description)

    if any(contains_any(text, rules.never_consolidate) for text in texts):
        return NEVER_CONSOLIDATE
    if any(contains_any(text, rules.exclusion) for text in texts):
        return EXCLUDED
    # Labels are display text only; base-cost hints come from key/description.
    if contains_any(item.key, rules.base_cost) or contains_any(item.description, rules.base_cost):
        return BASE_COST
    return UNCLASSIFIED


def consolidate_base_cost(
    candidate: CandidateQuote,
    rules: Optional[ReconciliationRules] = None,
) -> CandidateQuote:
    """Merge base-cost fragments from the "other" ledger into ``base_cost``.

    Idempotent: merged entries are removed, so a second run finds nothing.
    """
    if not candidate.other:
        return candidate

    rules = _resolve_rules(rules)
    merged: List[CandidateOtherItem] = []
    remaining: List[CandidateOtherItem] = []
    for item in candidate.other:
        tier = classify_other_item(item, rules)
        logger.debug("consolidate.classify key=%r tier=%s", item.key, tier)
        if tier == BASE_COST:
            merged.append(item)
        else:
            remaining.append(item)

    if not merged:
        return candidate

    additional = sum(item.value for item in merged)
    new_base_cost = (candidate.base_cost or 0.0) + additional
    logger.info(
        "consolidate.base_cost merged=%d added=%.2f base_cost=%.2f",
        len(merged),
        additional,
        new_base_cost,
    )
    return candidate.model_copy(
        update={"base_cost": new_base_cost, "other": remaining or None}
    )


def excluded_service_cost(items: Iterable[Union[CandidateServiceItem, ServiceItem]]) -> float:
    """Sum of costs of service items charged separately (not included)."""
    total = 0.0
    for item in items:
        if not item.included and item.cost is not None:
            total += item.cost
    return total


def expected_grand_total(
    base_cost: Optional[float],
    service_items: Iterable[Union[CandidateServiceItem, ServiceItem]],
    other_values: Sequence[float],
    skip_index: Optional[int] = None,
) -> float:
    """Base cost + excluded service costs + other values (optionally skipping one)."""
    others = sum(value for idx, value in enumerate(other_values) if idx != skip_index)
    return (base_cost or 0.0) + excluded_service_cost(service_items) + others


def is_total_artifact(
    item: CandidateOtherItem,
    expected_total: float,
    rules: Optional[ReconciliationRules] = None,
) -> bool:
    rules = _resolve_rules(rules)
    for text in (item.key, item.label, item.description):
        hits = matching_terms(text, rules.total)
        if hits:
            logger.debug("total_artifact key=%s terms=%s", item.key, hits)
            return True
    if expected_total > 0:
        tolerance = abs(expected_total * rules.total_tolerance)
        if abs(item.value - expected_total) <= tolerance:
            return True
    return False


def filter_total_artifacts(
    candidate: CandidateQuote,
    rules: Optional[ReconciliationRules] = None,
) -> CandidateQuote:
    """Drop ledger entries that restate an aggregate of the other components.

    Every entry is tested against the original ledger, so the surviving set
    does not depend on entry order.
    """
    if not candidate.other:
        return candidate

    rules = _resolve_rules(rules)
    original = list(candidate.other)
    values = [item.value for item in original]
    survivors: List[CandidateOtherItem] = []
    for index, item in enumerate(original):
        expected = expected_grand_total(candidate.base_cost, candidate.service_items, values, skip_index=index)
        if is_total_artifact(item, expected, rules):
            logger.info("filter.total_artifact key=%r value=%.2f expected=%.2f", item.key, item.value, expected)
            continue
        survivors.append(item)

    if len(survivors) == len(original):
        return candidate
    return candidate.model_copy(update={"other": survivors or None})


def reconcile_candidate(
    candidate: CandidateQuote,
    rules: Optional[ReconciliationRules] = None,
) -> CandidateQuote:
    """Run both passes in order: consolidation, then total filtering."""
    rules = _resolve_rules(rules)
    return filter_total_artifacts(consolidate_base_cost(candidate, rules), rules)


def to_canonical_quote(candidate: CandidateQuote, quote_id: str) -> QuoteData:
    """Convert a (reconciled) candidate into a canonical quote with template metadata."""
    by_id = {item.id: item for item in candidate.service_items}
    service_items = []
    for template in SERVICE_ITEM_TEMPLATES:
        extracted = by_id.get(template["id"])
        service_items.append(
            ServiceItem(
                id=template["id"],
                name=template["name"],
                subtext=template["subtext"],
                included=extracted.included if extracted else False,
                cost=extracted.cost if extracted else None,
            )
        )

    other = candidate.other_costs()
    return QuoteData(
        id=quote_id,
        company_name=candidate.company_name,
        base_cost=candidate.base_cost,
        service_items=service_items,
        shipment_weight=candidate.shipment_weight,
        shipment_volume=candidate.shipment_volume,
        transit_time_min=candidate.transit_time_min,
        transit_time_max=candidate.transit_time_max,
        insurance_percentage=candidate.insurance_percentage,
        other=other or None,
    )


def reconcile_to_quote(
    candidate: CandidateQuote,
    quote_id: str,
    rules: Optional[ReconciliationRules] = None,
) -> QuoteData:
    return to_canonical_quote(reconcile_candidate(candidate, rules), quote_id)
