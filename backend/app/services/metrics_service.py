"""Per-quote totals and the cross-quote price analysis shown next to them."""

from __future__ import annotations

from typing import Dict, List, Optional, Sequence

from backend.app.models import CalculatedMetrics, QuoteData, is_positive_number

LOWEST_TOTAL = "Lowest Total"
LOWEST_PER_POUND = "Lowest per lb."
LOWEST_PER_CUBIC_FOOT = "Lowest per cu ft"
BEST_PRICE = "Best Price"


def quote_total(quote: QuoteData) -> float:
    total = quote.base_cost or 0.0
    for item in quote.service_items:
        if not item.included:
            total += item.cost or 0.0
    for entry in quote.other or []:
        total += entry.value
    return total


def compute_metrics(quote: QuoteData) -> CalculatedMetrics:
    total = quote_total(quote)
    per_pound = total / quote.shipment_weight if is_positive_number(quote.shipment_weight) else None
    per_cubic_foot = total / quote.shipment_volume if is_positive_number(quote.shipment_volume) else None
    return CalculatedMetrics(
        total_cost=total,
        price_per_pound=per_pound,
        price_per_cubic_foot=per_cubic_foot,
    )


def compute_all(quotes: Sequence[QuoteData]) -> Dict[str, CalculatedMetrics]:
    return {quote.id: compute_metrics(quote) for quote in quotes}


def _lowest(values: List[float]) -> Optional[float]:
    return min(values) if values else None


def lowest_values(calculations: Dict[str, CalculatedMetrics]) -> Dict[str, Optional[float]]:
    """Lowest total among positive totals, and lowest present unit prices."""
    metrics = list(calculations.values())
    return {
        "totalCost": _lowest([m.total_cost for m in metrics if m.total_cost > 0]),
        "pricePerPound": _lowest([m.price_per_pound for m in metrics if m.price_per_pound is not None]),
        "pricePerCubicFoot": _lowest(
            [m.price_per_cubic_foot for m in metrics if m.price_per_cubic_foot is not None]
        ),
    }


def quote_labels(metrics: CalculatedMetrics, lowest: Dict[str, Optional[float]]) -> Dict[str, object]:
    """Which categories a quote wins, and whether it wins all it takes part in."""
    participated = 0
    labels: List[str] = []

    if metrics.total_cost > 0:
        participated += 1
        if lowest["totalCost"] is not None and metrics.total_cost == lowest["totalCost"]:
            labels.append(LOWEST_TOTAL)
    if metrics.price_per_pound is not None:
        participated += 1
        if metrics.price_per_pound == lowest["pricePerPound"]:
            labels.append(LOWEST_PER_POUND)
    if metrics.price_per_cubic_foot is not None:
        participated += 1
        if metrics.price_per_cubic_foot == lowest["pricePerCubicFoot"]:
            labels.append(LOWEST_PER_CUBIC_FOOT)

    return {
        "labels": labels,
        "isBestPrice": participated > 0 and len(labels) == participated,
    }


def has_unknown_costs(quotes: Sequence[QuoteData]) -> bool:
    """True when any separately charged service has no cost entered yet."""
    return any(
        not item.included and item.cost is None
        for quote in quotes
        for item in quote.service_items
    )


def price_analysis(quotes: Sequence[QuoteData]) -> Dict[str, object]:
    calculations = compute_all(quotes)
    lowest = lowest_values(calculations)
    per_quote = {quote_id: quote_labels(metrics, lowest) for quote_id, metrics in calculations.items()}
    return {
        "lowest": lowest,
        "quotes": per_quote,
        "bestPriceQuoteIds": [quote_id for quote_id, info in per_quote.items() if info["isBestPrice"]],
        "hasUnknownCosts": has_unknown_costs(quotes),
    }
