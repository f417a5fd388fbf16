import pytest

from backend.shared.normalize.rules import (
    DEFAULT_RULES_PATH,
    LABEL_MERGE_FIRST,
    LABEL_MERGE_LONGER,
    ReconciliationRules,
    get_rules,
    load_rules,
    rules_from_mapping,
)


def test_default_rules_file_matches_builtin_defaults():
    rules = load_rules(DEFAULT_RULES_PATH)
    assert rules == ReconciliationRules()
    assert rules.source == str(DEFAULT_RULES_PATH)
    assert "dthc" in rules.never_consolidate
    assert "excluded from quote" in rules.exclusion
    assert "transportation" in rules.base_cost
    assert "subtotal" in rules.total
    assert rules.total_tolerance == pytest.approx(0.01)
    assert rules.label_merge == LABEL_MERGE_LONGER


def test_partial_override_keeps_defaults(tmp_path):
    path = tmp_path / "rules.yaml"
    path.write_text("total:\n  - Balance Due\ntotal_tolerance: 0.05\nlabel_merge: first\n", encoding="utf-8")

    rules = load_rules(path)

    assert rules.total == ("balance due",)
    assert rules.total_tolerance == pytest.approx(0.05)
    assert rules.label_merge == LABEL_MERGE_FIRST
    assert rules.exclusion == ReconciliationRules().exclusion


def test_env_path_is_used_by_get_rules(tmp_path, monkeypatch):
    path = tmp_path / "rules.yaml"
    path.write_text("base_cost: [linehaul]\n", encoding="utf-8")
    monkeypatch.setenv("RECONCILE_RULES_PATH", str(path))

    rules = get_rules()

    assert rules.base_cost == ("linehaul",)
    assert get_rules() is rules


@pytest.mark.parametrize(
    "data, message",
    [
        ({"total_tolerance": -0.1}, "must not be negative"),
        ({"total_tolerance": "abc"}, "must be a number"),
        ({"label_merge": "shortest"}, "label_merge"),
        ({"exclusion": {"a": 1}}, "list of keywords"),
    ],
)
def test_invalid_rules_are_rejected(data, message):
    with pytest.raises(ValueError) as excinfo:
        rules_from_mapping(data)
    assert message in str(excinfo.value)


def test_rules_file_must_be_mapping(tmp_path):
    path = tmp_path / "rules.yaml"
    path.write_text("- just\n- a list\n", encoding="utf-8")
    with pytest.raises(ValueError):
        load_rules(path)
