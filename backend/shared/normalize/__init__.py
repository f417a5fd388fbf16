"""Key normalization and reconciliation keyword rules."""

from .rules import ReconciliationRules, get_rules, load_rules
from .text import contains_any, keys_match, matching_terms, normalize_key

__all__ = [
    "ReconciliationRules",
    "contains_any",
    "get_rules",
    "keys_match",
    "load_rules",
    "matching_terms",
    "normalize_key",
]
