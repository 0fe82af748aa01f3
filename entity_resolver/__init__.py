"""Entity Resolver - fuzzy resolution of free-text references.

Turns a name, email, or phone number typed or spoken by the user into a
client, vendor, category, or project record owned by the caller.

Key Features:
- Search-term classification (email / phone / name)
- Deterministic 0-100 scoring (exact, containment, Levenshtein ratio)
- Suggestions at >= 50, auto-selection of a unique top candidate at >= 85

Usage:
    from entity_resolver import EntityResolver

    resolver = EntityResolver(datastore)
    resolution = resolver.resolve_in("clients", "Acme", owner_id,
                                     secondary_fields=("company_name",))

    if resolution.is_resolved:
        client_id = resolution.selected.id
    else:
        for candidate in resolution.suggestions:
            print(f"{candidate.name}: {candidate.score}")
"""

from entity_resolver.models import (
    SearchType,
    MatchType,
    MatchCandidate,
    EntityResolution,
    MatchingConfig,
    DEFAULT_MATCHING_CONFIG,
)
from entity_resolver.matching import (
    classify_search_term,
    levenshtein_distance,
    match_score,
)
from entity_resolver.resolver import EntityResolver, resolve

__all__ = [
    # Models
    "SearchType",
    "MatchType",
    "MatchCandidate",
    "EntityResolution",
    "MatchingConfig",
    "DEFAULT_MATCHING_CONFIG",
    # Matching
    "classify_search_term",
    "levenshtein_distance",
    "match_score",
    # Resolver
    "EntityResolver",
    "resolve",
]
