"""Comparison session: the ordered quote list and every edit applied to it.

Each operation reads the current list, builds a replacement and swaps it in.
The session holds no locks; the HTTP host serializes access.
"""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from backend.app.error_messages import redirect_notice
from backend.app.models import (
    CandidateQuote,
    QuoteData,
    create_default_quote,
    decode_candidate,
)
from backend.app.services import merge_service, metrics_service
from backend.app.services.reconcile_service import reconcile_to_quote
from backend.shared.normalize.rules import ReconciliationRules, get_rules

REFERENCE_QUOTE_ID = "arpin-quote"
REFERENCE_COMPANY_NAME = "Arpin International"
DEFAULT_MAX_COMPETITORS = 4
DEFAULT_MIN_COMPETITORS = 2

DEFAULT_COMPANY_NAME_RE = re.compile(r"^Company \d+$")

CURRENCY_NAMES: Dict[str, str] = {
    "EUR": "Euro",
    "GBP": "British Pound",
    "CAD": "Canadian Dollar",
    "AUD": "Australian Dollar",
    "JPY": "Japanese Yen",
    "CHF": "Swiss Franc",
    "USD": "US Dollar",
}

SHIPMENT_FIELDS = {
    "shipmentWeight": "shipment_weight",
    "shipment_weight": "shipment_weight",
    "shipmentVolume": "shipment_volume",
    "shipment_volume": "shipment_volume",
}


class ServiceError(Exception):
    """Domain specific error that can be translated to HTTP responses."""

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


@dataclass
class RedirectInfo:
    was_redirected: bool
    original_target_was_reference: bool
    detected_company_name: str
    target_quote_id: str

    def to_payload(self) -> Dict[str, Any]:
        return {
            "wasRedirected": self.was_redirected,
            "originalTargetWasArpin": self.original_target_was_reference,
            "detectedCompanyName": self.detected_company_name,
            "targetQuoteId": self.target_quote_id,
            "message": redirect_notice(self.detected_company_name, redirected=self.was_redirected),
        }


def currency_disclosure(candidate: CandidateQuote) -> Optional[Dict[str, Any]]:
    """Describe the conversion the collaborator applied, if any."""
    code = candidate.original_currency
    rate = candidate.exchange_rate
    if not code or code.upper() == "USD" or rate is None:
        return None
    code = code.upper()
    return {
        "originalCurrency": code,
        "currencyName": CURRENCY_NAMES.get(code, code),
        "exchangeRate": rate,
        "display": f"1 {code} = {rate:.4f} USD",
    }


def _is_finite(value: float) -> bool:
    try:
        return math.isfinite(value)
    except OverflowError:
        return False


def _optional_positive(value: Optional[float]) -> bool:
    return value is None or (_is_finite(value) and value > 0)


def _optional_cost(value: Optional[float]) -> bool:
    return value is None or (_is_finite(value) and value >= 0)


def initial_quotes() -> List[QuoteData]:
    return [
        create_default_quote(REFERENCE_QUOTE_ID, REFERENCE_COMPANY_NAME),
        create_default_quote("quote-1", "Company 1"),
        create_default_quote("quote-2", "Company 2"),
    ]


class ComparisonSession:
    def __init__(
        self,
        *,
        max_competitors: int = DEFAULT_MAX_COMPETITORS,
        min_competitors: int = DEFAULT_MIN_COMPETITORS,
        rules: Optional[ReconciliationRules] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        if min_competitors < 0 or max_competitors < min_competitors:
            raise ValueError("competitor limits must satisfy 0 <= min <= max")
        self.max_competitors = max_competitors
        self.min_competitors = min_competitors
        self.rules = rules
        self.logger = logger or logging.getLogger("movequote.session")
        self.quotes: List[QuoteData] = initial_quotes()

    # --- lookups ---

    @property
    def active_rules(self) -> ReconciliationRules:
        return self.rules if self.rules is not None else get_rules()

    def competitors(self) -> List[QuoteData]:
        return [quote for quote in self.quotes if quote.id != REFERENCE_QUOTE_ID]

    def get_quote(self, quote_id: str) -> QuoteData:
        for quote in self.quotes:
            if quote.id == quote_id:
                return quote
        raise ServiceError(f"Unknown quote: {quote_id}", status_code=404)

    def _replace(self, updated: QuoteData) -> QuoteData:
        self.quotes = [updated if quote.id == updated.id else quote for quote in self.quotes]
        return updated

    def _update(self, quote_id: str, **changes: Any) -> QuoteData:
        return self._replace(self.get_quote(quote_id).model_copy(update=changes))

    def _next_quote_id(self) -> str:
        taken = {quote.id for quote in self.quotes}
        n = len(self.quotes)
        while f"quote-{n}" in taken:
            n += 1
        return f"quote-{n}"

    # --- list management ---

    def add_quote(self) -> QuoteData:
        competitors = self.competitors()
        if len(competitors) >= self.max_competitors:
            raise ServiceError(
                f"At most {self.max_competitors} competitor quotes can be compared.", status_code=409
            )
        quote = create_default_quote(self._next_quote_id(), f"Company {len(competitors) + 1}")
        self.quotes = [*self.quotes, quote]
        self.logger.info("session.add_quote id=%s", quote.id)
        return quote

    def remove_quote(self, quote_id: str) -> None:
        if quote_id == REFERENCE_QUOTE_ID:
            raise ServiceError("The Arpin quote cannot be removed.", status_code=409)
        self.get_quote(quote_id)
        if len(self.competitors()) <= self.min_competitors:
            raise ServiceError(
                f"At least {self.min_competitors} competitor quotes are required.", status_code=409
            )
        self.quotes = [quote for quote in self.quotes if quote.id != quote_id]
        self.logger.info("session.remove_quote id=%s", quote_id)

    def reset(self) -> Dict[str, Any]:
        self.quotes = initial_quotes()
        self.logger.info("session.reset")
        return {"ok": True, "message": "Comparison cleared."}

    # --- field edits ---

    def update_company_name(self, quote_id: str, company_name: str) -> QuoteData:
        if quote_id == REFERENCE_QUOTE_ID:
            raise ServiceError("The Arpin quote cannot be renamed.", status_code=409)
        return self._update(quote_id, company_name=company_name)

    def update_base_cost(self, quote_id: str, base_cost: Optional[float]) -> QuoteData:
        quote = self.get_quote(quote_id)
        if not _optional_cost(base_cost):
            self.logger.debug("session.update_base_cost ignored value=%r", base_cost)
            return quote
        return self._replace(quote.model_copy(update={"base_cost": base_cost}))

    def update_service_item(
        self,
        quote_id: str,
        service_id: str,
        included: bool,
        cost: Optional[float],
    ) -> QuoteData:
        quote = self.get_quote(quote_id)
        if not any(item.id == service_id for item in quote.service_items):
            raise ServiceError(f"Unknown service item: {service_id}", status_code=404)
        if not _optional_cost(cost):
            self.logger.debug("session.update_service_item ignored cost=%r", cost)
            return quote
        items = [
            item.model_copy(update={"included": included, "cost": cost}) if item.id == service_id else item
            for item in quote.service_items
        ]
        return self._replace(quote.model_copy(update={"service_items": items}))

    def update_shipment_details(self, quote_id: str, field_name: str, value: Optional[float]) -> QuoteData:
        quote = self.get_quote(quote_id)
        attr = SHIPMENT_FIELDS.get(field_name)
        if attr is None:
            raise ServiceError(f"Unknown shipment field: {field_name}", status_code=400)
        if not _optional_positive(value):
            self.logger.debug("session.update_shipment_details ignored %s=%r", attr, value)
            return quote
        return self._replace(quote.model_copy(update={attr: value}))

    def update_transit_time(
        self, quote_id: str, minimum: Optional[float], maximum: Optional[float]
    ) -> QuoteData:
        quote = self.get_quote(quote_id)
        if not (_optional_positive(minimum) and _optional_positive(maximum)):
            self.logger.debug("session.update_transit_time ignored min=%r max=%r", minimum, maximum)
            return quote
        return self._replace(quote.model_copy(update={"transit_time_min": minimum, "transit_time_max": maximum}))

    def update_insurance(self, quote_id: str, percentage: Optional[float]) -> QuoteData:
        quote = self.get_quote(quote_id)
        if percentage is not None and not (_is_finite(percentage) and 0 <= percentage <= 100):
            self.logger.debug("session.update_insurance ignored value=%r", percentage)
            return quote
        return self._replace(quote.model_copy(update={"insurance_percentage": percentage}))

    def upsert_other_cost(self, quote_id: str, raw_key: str, value: Any) -> QuoteData:
        self.get_quote(quote_id)
        self.quotes = merge_service.upsert_other_cost(self.quotes, quote_id, raw_key, value)
        return self.get_quote(quote_id)

    # --- extraction results ---

    def _is_unpopulated(self, quote: QuoteData) -> bool:
        if quote.base_cost or quote.other:
            return False
        if quote.shipment_weight or quote.shipment_volume:
            return False
        if any(item.cost for item in quote.service_items):
            return False
        return bool(DEFAULT_COMPANY_NAME_RE.match(quote.company_name.strip())) or not quote.company_name.strip()

    def first_unpopulated_competitor_id(self) -> Optional[str]:
        for quote in self.competitors():
            if self._is_unpopulated(quote):
                return quote.id
        return None

    def apply_candidate(self, quote_id: str, payload: Any) -> Dict[str, Any]:
        """Decode, reconcile and store a collaborator record.

        Raises :class:`~backend.app.models.CandidateDecodeError` when the
        record does not match the candidate schema; the session is untouched
        in that case.
        """
        self.get_quote(quote_id)
        candidate = decode_candidate(payload)

        redirect: Optional[RedirectInfo] = None
        target_id = quote_id
        if quote_id == REFERENCE_QUOTE_ID and not candidate.is_arpin_quote:
            competitor_id = self.first_unpopulated_competitor_id()
            redirect = RedirectInfo(
                was_redirected=competitor_id is not None,
                original_target_was_reference=True,
                detected_company_name=candidate.company_name,
                target_quote_id=competitor_id or quote_id,
            )
            target_id = redirect.target_quote_id

        quote = reconcile_to_quote(candidate, target_id, self.active_rules)
        if target_id == REFERENCE_QUOTE_ID:
            quote = quote.model_copy(update={"company_name": REFERENCE_COMPANY_NAME})
        self._replace(quote)
        self.logger.info(
            "candidate.applied target=%s redirected=%s other=%d",
            target_id,
            bool(redirect and redirect.was_redirected),
            len(quote.other or []),
        )
        return {
            "quote": quote.to_payload(),
            "redirect": redirect.to_payload() if redirect else None,
            "currency": currency_disclosure(candidate),
        }

    # --- read model ---

    def snapshot(self) -> Dict[str, Any]:
        calculations = metrics_service.compute_all(self.quotes)
        return {
            "quotes": [quote.to_payload() for quote in self.quotes],
            "calculations": {quote_id: metrics.to_payload() for quote_id, metrics in calculations.items()},
            "otherCosts": merge_service.other_cost_rows(self.quotes, self.active_rules),
            "analysis": metrics_service.price_analysis(self.quotes),
            "limits": {
                "maxCompetitors": self.max_competitors,
                "minCompetitors": self.min_competitors,
            },
        }
