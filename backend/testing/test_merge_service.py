import pytest

from backend.app.models import OtherCostItem, create_default_quote
from backend.app.services.merge_service import (
    build_category_registry,
    other_cost_rows,
    parse_cost_input,
    resolve_item_for_quote,
    upsert_other_cost,
)
from backend.shared.normalize.rules import LABEL_MERGE_FIRST, ReconciliationRules


def _quote(quote_id, *entries):
    quote = create_default_quote(quote_id, quote_id.title())
    if entries:
        quote = quote.model_copy(update={"other": [OtherCostItem(**entry) for entry in entries]})
    return quote


@pytest.fixture
def fuel_quotes():
    return [
        _quote("quote-a", {"key": "Fuel Surcharge", "label": "Fuel", "description": "", "value": 50.0}),
        _quote(
            "quote-b",
            {"key": "fuel_surcharge", "label": "Fuel Surcharge", "description": "Per mile fuel adjustment", "value": 75.0},
        ),
        _quote("quote-c"),
    ]


def test_registry_merges_equivalent_keys(fuel_quotes):
    categories = build_category_registry(fuel_quotes)

    assert len(categories) == 1
    category = categories[0]
    assert category.normalized_key == "fuel-surcharge"
    assert category.key == "Fuel Surcharge"
    assert category.aliases == ["Fuel Surcharge", "fuel_surcharge"]
    assert category.label == "Fuel Surcharge"
    assert category.description == "Per mile fuel adjustment"


def test_registry_first_policy_keeps_first_label(fuel_quotes):
    rules = ReconciliationRules().with_overrides(label_merge=LABEL_MERGE_FIRST)

    category = build_category_registry(fuel_quotes, rules)[0]

    assert category.label == "Fuel"
    assert category.description == ""


def test_registry_tie_keeps_current_label():
    quotes = [
        _quote("quote-a", {"key": "Shuttle", "label": "Shuttle A", "value": 10.0}),
        _quote("quote-b", {"key": "shuttle", "label": "Shuttle B", "value": 20.0}),
    ]

    assert build_category_registry(quotes)[0].label == "Shuttle A"


def test_registry_preserves_first_seen_order_and_skips_unusable_keys():
    quotes = [
        _quote("quote-a", {"key": "Stair Carry", "value": 40.0}, {"key": "!!!", "value": 5.0}),
        _quote("quote-b", {"key": "Bulky Item", "value": 90.0}, {"key": "stair carry", "value": 35.0}),
    ]

    categories = build_category_registry(quotes)

    assert [category.normalized_key for category in categories] == ["stair-carry", "bulky-item"]


def test_resolve_item_for_quote(fuel_quotes):
    categories = build_category_registry(fuel_quotes)

    assert resolve_item_for_quote(fuel_quotes[1], "fuel-surcharge", categories).value == 75.0
    assert resolve_item_for_quote(fuel_quotes[0], "fuel-surcharge").value == 50.0
    assert resolve_item_for_quote(fuel_quotes[2], "fuel-surcharge", categories) is None


def test_upsert_zero_keeps_category_visible(fuel_quotes):
    updated = upsert_other_cost(fuel_quotes, "quote-b", "fuel_surcharge", None)

    categories = build_category_registry(updated)
    assert len(categories) == 1
    assert resolve_item_for_quote(updated[1], "fuel-surcharge", categories).value == 0.0
    assert resolve_item_for_quote(updated[0], "fuel-surcharge", categories).value == 50.0
    assert fuel_quotes[1].other[0].value == 75.0


def test_upsert_matches_normalized_key(fuel_quotes):
    updated = upsert_other_cost(fuel_quotes, "quote-b", "Fuel Surcharge", "80")

    assert len(updated[1].other) == 1
    assert updated[1].other[0].key == "fuel_surcharge"
    assert updated[1].other[0].value == 80.0


def test_upsert_prefers_exact_key_over_normalized_match():
    quotes = [
        _quote(
            "quote-a",
            {"key": "Fuel Surcharge", "label": "Fuel", "description": "", "value": 50.0},
            {"key": "fuel_surcharge", "label": "Fuel (per mile)", "description": "", "value": 20.0},
        )
    ]

    updated = upsert_other_cost(quotes, "quote-a", "fuel_surcharge", 35)

    first, second = updated[0].other
    assert (first.key, first.value) == ("Fuel Surcharge", 50.0)
    assert (second.key, second.value) == ("fuel_surcharge", 35.0)


def test_upsert_appends_with_label_from_other_quote(fuel_quotes):
    updated = upsert_other_cost(fuel_quotes, "quote-c", "fuel_surcharge", 60)

    entry = updated[2].other[0]
    assert entry.key == "fuel_surcharge"
    assert entry.label == "Fuel Surcharge"
    assert entry.description == "Per mile fuel adjustment"
    assert entry.value == 60.0


def test_upsert_normalized_source_copies_primary_key(fuel_quotes):
    updated = upsert_other_cost(fuel_quotes, "quote-c", "FUEL SURCHARGE", 60)

    assert updated[2].other[0].key == "Fuel Surcharge"
    assert updated[2].other[0].label == "Fuel"


def test_upsert_seeds_new_category():
    quotes = [_quote("quote-a"), _quote("quote-b")]

    updated = upsert_other_cost(quotes, "quote-a", "Piano Handling", 150.0)

    assert updated[0].other == [
        OtherCostItem(key="Piano Handling", label="Piano Handling", description="", value=150.0)
    ]
    assert updated[1].other is None


@pytest.mark.parametrize("value", ["abc", "-5", -5.0, float("nan"), True, 10**400])
def test_upsert_ignores_invalid_values(fuel_quotes, value):
    assert upsert_other_cost(fuel_quotes, "quote-a", "Fuel Surcharge", value) == fuel_quotes


def test_upsert_ignores_unknown_quote_and_empty_key(fuel_quotes):
    assert upsert_other_cost(fuel_quotes, "quote-z", "Fuel Surcharge", 10) == fuel_quotes
    assert upsert_other_cost(fuel_quotes, "quote-a", "***", 10) == fuel_quotes


def test_parse_cost_input():
    assert parse_cost_input("") is None
    assert parse_cost_input("  ") is None
    assert parse_cost_input(None) is None
    assert parse_cost_input("125.50") == 125.5
    assert parse_cost_input(0) == 0.0
    with pytest.raises(ValueError):
        parse_cost_input("12 dollars")
    with pytest.raises(ValueError):
        parse_cost_input("-1")
    with pytest.raises(ValueError):
        parse_cost_input(10**400)


def test_other_cost_rows(fuel_quotes):
    rows = other_cost_rows(fuel_quotes)

    assert len(rows) == 1
    row = rows[0]
    assert row["normalizedKey"] == "fuel-surcharge"
    assert row["label"] == "Fuel Surcharge"
    assert row["cells"] == [
        {"quoteId": "quote-a", "value": 50.0, "editKey": "Fuel Surcharge"},
        {"quoteId": "quote-b", "value": 75.0, "editKey": "fuel_surcharge"},
        {"quoteId": "quote-c", "value": None, "editKey": "Fuel Surcharge"},
    ]
