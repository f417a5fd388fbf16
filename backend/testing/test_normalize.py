from backend.shared.normalize.text import (
    contains_any,
    keys_match,
    matching_terms,
    normalize_key,
)


def test_normalize_key_folds_case_and_separators() -> None:
    assert normalize_key("Fuel Surcharge") == "fuel-surcharge"
    assert normalize_key("fuel_surcharge") == "fuel-surcharge"
    assert normalize_key("  FUEL   __ Surcharge  ") == "fuel-surcharge"


def test_normalize_key_strips_disallowed_characters() -> None:
    assert normalize_key("Bulky Item (Piano)!") == "bulky-item-piano"
    assert normalize_key("Storage: 30 days") == "storage-30-days"
    assert normalize_key("Crème") == "crme"


def test_normalize_key_empty_inputs() -> None:
    assert normalize_key(None) == ""
    assert normalize_key("") == ""
    assert normalize_key("   ") == ""
    assert normalize_key("$$$") == ""


def test_keys_match_requires_usable_key() -> None:
    assert keys_match("Fuel Surcharge", "fuel_surcharge")
    assert not keys_match("Fuel Surcharge", "fuel surcharges")
    assert not keys_match("!!!", "???")


def test_contains_any_is_case_insensitive() -> None:
    assert contains_any("Excluded From Quote", ["excluded"])
    assert contains_any("PORT-CHARGES-DTHC", ["dthc"])
    assert not contains_any("Fuel Surcharge", ["total", "base"])
    assert not contains_any(None, ["total"])


def test_matching_terms_preserves_term_order() -> None:
    terms = ["grand total", "total", "sum"]
    assert matching_terms("Grand Total (USD)", terms) == ["grand total", "total"]
    assert matching_terms("", terms) == []
