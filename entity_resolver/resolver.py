"""Entity Resolver Algorithm.

Turns a user-supplied string (name, email, or phone) into zero, one, or many
candidate records of one entity type, using only the owner's data:

1. Classify the search term (email / phone / name)
2. Email or phone: substring match on that field only (100 on equality, else 90)
3. Name: best of name and secondary-field scores; an address substring hit
   lifts a weak candidate to 80; candidates below 50 are discarded
4. Sort descending by score (stable, so ties keep pool order) and truncate

Absence is a normal outcome: the resolver never raises for "not found".
"""

from typing import Any, Dict, Iterable, List, Optional, Protocol, Sequence

from entity_resolver.matching import (
    classify_search_term,
    match_score,
    phone_digits,
    EXACT_SCORE,
    CONTAINS_SCORE,
)
from entity_resolver.models import (
    EntityResolution,
    MatchCandidate,
    MatchingConfig,
    MatchType,
    SearchType,
    DEFAULT_MATCHING_CONFIG,
)


# Upper bound on rows pulled into one candidate pool
CANDIDATE_POOL_LIMIT = 500


class CandidateSource(Protocol):
    """Protocol for loading a candidate pool.

    The datastore implements this; every query is scoped to one owner.
    """

    def find(
        self,
        table: str,
        owner_id: str,
        filters: Optional[Dict[str, Any]] = None,
        order_by: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        ...


def _candidate(record: Dict[str, Any], name_field: str, score: int, matched_field: str) -> MatchCandidate:
    return MatchCandidate(
        id=str(record["id"]),
        name=record.get(name_field) or "",
        score=score,
        matched_field=matched_field,
        record=record,
    )


def score_candidates(
    search_term: str,
    candidates: Iterable[Dict[str, Any]],
    search_type: SearchType,
    name_field: str = "name",
    secondary_fields: Sequence[str] = (),
    address_field: Optional[str] = None,
    config: MatchingConfig = DEFAULT_MATCHING_CONFIG,
) -> List[MatchCandidate]:
    """Score every candidate against the term. No filtering or sorting."""
    scored = []

    if search_type == SearchType.EMAIL:
        term = search_term.lower()
        for record in candidates:
            email = (record.get("email") or "").lower()
            if email and term in email:
                score = EXACT_SCORE if email == term else CONTAINS_SCORE
                scored.append(_candidate(record, name_field, score, "email"))
        return scored

    if search_type == SearchType.PHONE:
        digits = phone_digits(search_term)
        for record in candidates:
            phone = phone_digits(record.get("phone"))
            if phone and digits in phone:
                score = EXACT_SCORE if phone == digits else CONTAINS_SCORE
                scored.append(_candidate(record, name_field, score, "phone"))
        return scored

    term_lower = search_term.lower()
    for record in candidates:
        best = match_score(search_term, record.get(name_field) or "")
        matched_field = name_field

        for field_name in secondary_fields:
            value = record.get(field_name)
            if not value:
                continue
            field_score = match_score(search_term, value)
            if field_score > best:
                best = field_score
                matched_field = field_name

        if address_field and best < config.suggestion_threshold:
            address = (record.get(address_field) or "").lower()
            if address and term_lower in address:
                best = config.address_score
                matched_field = address_field

        scored.append(_candidate(record, name_field, best, matched_field))

    return scored


def resolve(
    search_term: str,
    candidates: Iterable[Dict[str, Any]],
    limit: Optional[int] = None,
    name_field: str = "name",
    secondary_fields: Sequence[str] = (),
    address_field: Optional[str] = None,
    config: MatchingConfig = DEFAULT_MATCHING_CONFIG,
) -> EntityResolution:
    """Resolve a search term against a candidate pool.

    Args:
        search_term: Free-text name, email, or phone number
        candidates: Records (dicts with at least ``id`` and the name field)
        limit: Max suggestions (default 5)
        name_field: Primary field compared for name searches
        secondary_fields: Extra fields scored with ``match_score`` (e.g. company_name)
        address_field: Field checked for a substring hit when the name score is weak
        config: Matching thresholds

    Returns:
        EntityResolution with ranked suggestions and, when allowed, a selection
    """
    term = (search_term or "").strip()
    search_type = classify_search_term(term)

    if not term:
        return EntityResolution(search_term=search_term or "", search_type=search_type)

    scored = score_candidates(
        term,
        candidates,
        search_type,
        name_field=name_field,
        secondary_fields=secondary_fields,
        address_field=address_field,
        config=config,
    )

    suggestions = [c for c in scored if c.score >= config.suggestion_threshold]
    # list.sort is stable: equal scores keep pool order
    suggestions.sort(key=lambda c: c.score, reverse=True)
    suggestions = suggestions[:limit or config.default_limit]

    resolution = EntityResolution(
        search_term=term,
        search_type=search_type,
        suggestions=suggestions,
    )

    if not suggestions:
        return resolution

    top = suggestions[0]
    tied = len(suggestions) > 1 and suggestions[1].score == top.score

    if top.score == EXACT_SCORE:
        resolution.exact_match = top

    if tied:
        resolution.match_type = MatchType.SUGGESTIONS
    elif top.score == EXACT_SCORE:
        resolution.selected = top
        resolution.match_type = MatchType.EXACT
    elif top.score >= config.auto_match_threshold:
        resolution.selected = top
        resolution.match_type = MatchType.AUTO_MATCH
    else:
        resolution.match_type = MatchType.SUGGESTIONS

    return resolution


class EntityResolver:
    """Resolves free-text references against one owner's stored records.

    Example:
        resolver = EntityResolver(datastore)
        resolution = resolver.resolve_in(
            "clients", "Acme", owner_id,
            secondary_fields=("company_name",),
            address_field="address",
        )

        if resolution.is_resolved:
            client_id = resolution.selected.id
        elif resolution.needs_confirmation:
            ...  # ask "did you mean" with resolution.suggestions
    """

    def __init__(self, source: CandidateSource, config: MatchingConfig = DEFAULT_MATCHING_CONFIG):
        self.source = source
        self.config = config

    def load_pool(
        self,
        table: str,
        owner_id: str,
        filters: Optional[Dict[str, Any]] = None,
    ) -> List[Dict[str, Any]]:
        return self.source.find(table, owner_id, filters=filters, order_by="created_at", limit=CANDIDATE_POOL_LIMIT)

    def resolve_in(
        self,
        table: str,
        search_term: str,
        owner_id: str,
        filters: Optional[Dict[str, Any]] = None,
        name_field: str = "name",
        secondary_fields: Sequence[str] = (),
        address_field: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> EntityResolution:
        """Load the owner's pool from ``table`` and resolve ``search_term`` against it."""
        pool = self.load_pool(table, owner_id, filters)
        return resolve(
            search_term,
            pool,
            limit=limit,
            name_field=name_field,
            secondary_fields=secondary_fields,
            address_field=address_field,
            config=self.config,
        )
