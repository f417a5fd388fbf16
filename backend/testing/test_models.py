import pytest

from backend.app.models import (
    REQUIRED_SERVICE_ITEM_IDS,
    CandidateDecodeError,
    CandidateQuote,
    create_default_quote,
    decode_candidate,
)


def test_decode_valid_candidate(make_candidate):
    payload = make_candidate(
        base_cost=4200.0,
        other=[{"key": "Fuel Surcharge", "label": "Fuel Surcharge", "description": "", "value": 120.0}],
        excluded_costs={"crating": 350.0},
        isArpinQuote=True,
        originalCurrency="EUR",
        exchangeRate=1.08,
    )

    candidate = decode_candidate(payload)

    assert isinstance(candidate, CandidateQuote)
    assert candidate.base_cost == 4200.0
    assert candidate.is_arpin_quote is True
    assert [item.id for item in candidate.service_items] == list(REQUIRED_SERVICE_ITEM_IDS)
    crating = next(item for item in candidate.service_items if item.id == "crating")
    assert crating.included is False and crating.cost == 350.0
    assert candidate.other_costs()[0].key == "Fuel Surcharge"


def test_decode_rejects_missing_service_item(make_candidate):
    payload = make_candidate()
    payload["serviceItems"] = payload["serviceItems"][:7]

    with pytest.raises(CandidateDecodeError) as excinfo:
        decode_candidate(payload)

    assert "exactly 8 service items" in excinfo.value.message
    assert excinfo.value.errors


def test_decode_rejects_duplicate_ids(make_candidate):
    payload = make_candidate()
    payload["serviceItems"][7] = dict(payload["serviceItems"][0])

    with pytest.raises(CandidateDecodeError) as excinfo:
        decode_candidate(payload)

    assert "Duplicate service item IDs" in excinfo.value.message


def test_decode_rejects_unknown_id(make_candidate):
    payload = make_candidate()
    payload["serviceItems"][3] = {"id": "piano-moving", "included": True, "cost": None}

    with pytest.raises(CandidateDecodeError):
        decode_candidate(payload)


def test_decode_rejects_insurance_out_of_range(make_candidate):
    with pytest.raises(CandidateDecodeError) as excinfo:
        decode_candidate(make_candidate(insurancePercentage=120.0))
    assert "insurancePercentage" in excinfo.value.message or "insurance_percentage" in excinfo.value.message


def test_decode_rejects_string_money(make_candidate):
    with pytest.raises(CandidateDecodeError):
        decode_candidate(make_candidate(baseCost="4,200"))


def test_decode_rejects_non_object():
    with pytest.raises(CandidateDecodeError):
        decode_candidate(["not", "a", "record"])


def test_default_quote_has_all_templates_in_order():
    quote = create_default_quote("quote-1", "Company 1")

    assert [item.id for item in quote.service_items] == list(REQUIRED_SERVICE_ITEM_IDS)
    assert all(item.included is False and item.cost is None for item in quote.service_items)
    assert quote.other is None
    payload = quote.to_payload()
    assert payload["companyName"] == "Company 1"
    assert payload["serviceItems"][5]["name"] == "Destination Terminal Handling Charges (DTHC)"
