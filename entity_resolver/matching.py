"""Fuzzy Matching Utilities.

Pure functions used to resolve free-text references (client, vendor,
category, and project names, emails, phone numbers) against stored records:

1. ``classify_search_term`` decides which field a term should be compared with
2. ``match_score`` scores a term against a candidate string (0-100)

Scoring rules (case-insensitive):
    exact match                      -> 100
    one string contains the other    -> 90
    otherwise                        -> round(100 * (1 - levenshtein / max_len)), floored at 0

Examples:
    >>> match_score("Acme", "Acme Corp")
    90
    >>> match_score("Mexterix", "Nexterix")
    88
    >>> classify_search_term("jo@x.co")
    <SearchType.EMAIL: 'email'>
"""

import math
import re

from entity_resolver.models import SearchType


# Characters ignored when deciding whether a term is a phone number
PHONE_STRIP_PATTERN = re.compile(r"[\s\-+()]")

MIN_PHONE_DIGITS = 7

EXACT_SCORE = 100
CONTAINS_SCORE = 90


def classify_search_term(term: str) -> SearchType:
    """Classify a search term as email, phone, or name.

    - email: contains both ``@`` and ``.``
    - phone: after stripping whitespace, ``+``, ``-`` and parentheses, the
      remainder is at least 7 ASCII digits and nothing else
    - name: anything else
    """
    if "@" in term and "." in term:
        return SearchType.EMAIL

    stripped = PHONE_STRIP_PATTERN.sub("", term)
    if len(stripped) >= MIN_PHONE_DIGITS and re.fullmatch(r"[0-9]+", stripped):
        return SearchType.PHONE

    return SearchType.NAME


def phone_digits(value: str) -> str:
    """Strip a phone number down to its digits."""
    return re.sub(r"[^0-9]", "", value or "")


def levenshtein_distance(a: str, b: str) -> int:
    """Classic Levenshtein edit distance (unit cost insert/delete/substitute).

    Case-insensitive. Uses two rolling rows instead of the full matrix.
    """
    s = a.lower()
    t = b.lower()

    if len(s) < len(t):
        s, t = t, s

    previous = list(range(len(t) + 1))
    for i, sc in enumerate(s, start=1):
        current = [i] + [0] * len(t)
        for j, tc in enumerate(t, start=1):
            if sc == tc:
                current[j] = previous[j - 1]
            else:
                current[j] = 1 + min(
                    previous[j],        # deletion
                    current[j - 1],     # insertion
                    previous[j - 1],    # substitution
                )
        previous = current

    return previous[len(t)]


def match_score(search: str, target: str) -> int:
    """Score how well ``search`` matches ``target`` on a 0-100 scale.

    Deterministic and pure: auto-confirmation thresholds depend on it.
    """
    s = search.lower()
    t = target.lower()

    if s == t:
        return EXACT_SCORE

    if s in t or t in s:
        return CONTAINS_SCORE

    max_length = max(len(s), len(t))
    distance = levenshtein_distance(s, t)
    ratio = (1 - distance / max_length) * 100

    # Round half up so 87.5 scores 88
    return max(0, int(math.floor(ratio + 0.5)))
