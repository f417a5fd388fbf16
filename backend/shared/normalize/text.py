"""Key folding primitives shared by the reconciliation and merge services."""

from __future__ import annotations

import re
from typing import Iterable, List, Optional

_RE_SEPARATORS = re.compile(r"[\s_]+")
_RE_DISALLOWED = re.compile(r"[^a-z0-9-]")


def normalize_key(raw_key: Optional[str]) -> str:
    """Return the canonical folded form of a free-text cost identifier.

    The procedure lowercases, trims, collapses runs of whitespace/underscores
    into a single hyphen and strips every character outside ``[a-z0-9-]``.
    ``None`` and empty inputs yield an empty string, which marks the key as
    unusable for matching.
    """

    if not raw_key:
        return ""

    folded = raw_key.lower().strip()
    folded = _RE_SEPARATORS.sub("-", folded)
    return _RE_DISALLOWED.sub("", folded)


def keys_match(lhs: Optional[str], rhs: Optional[str]) -> bool:
    """True when both keys fold to the same, non-empty normalized key."""

    left = normalize_key(lhs)
    return bool(left) and left == normalize_key(rhs)


def contains_any(text: Optional[str], terms: Iterable[str]) -> bool:
    """Case-insensitive substring test of *text* against every term."""

    if not text:
        return False
    lowered = text.lower()
    return any(term and term.lower() in lowered for term in terms)


def matching_terms(text: Optional[str], terms: Iterable[str]) -> List[str]:
    """Return the subset of *terms* found in *text*, preserving term order."""

    if not text:
        return []
    lowered = text.lower()
    return [term for term in terms if term and term.lower() in lowered]
