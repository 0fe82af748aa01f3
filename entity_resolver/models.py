"""Entity Resolver Data Models.

This module defines the Pydantic models for entity resolution:
- SearchType: Which field a search term is compared against
- MatchType: How the resolution was decided
- MatchCandidate: A scored candidate record
- EntityResolution: The result of resolving one search term
- MatchingConfig: Thresholds for suggestions and auto-selection
"""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class SearchType(str, Enum):
    """Kind of search term."""
    EMAIL = "email"
    PHONE = "phone"
    NAME = "name"


class MatchType(str, Enum):
    """How the entity was resolved."""
    EXACT = "exact"              # Case-insensitive equality on the compared field
    AUTO_MATCH = "auto_match"    # Single top suggestion above the auto-match threshold
    SUGGESTIONS = "suggestions"  # Candidates found, user must pick ("did you mean")
    NO_MATCH = "no_match"        # Nothing scored above the suggestion threshold


class MatchCandidate(BaseModel):
    """A candidate record with its match score."""
    id: str = Field(..., description="Record ID")
    name: str = Field(..., description="Display name")
    score: int = Field(..., ge=0, le=100, description="Match score (0-100)")
    matched_field: str = Field(default="name", description="Field that produced the score")
    record: Dict[str, Any] = Field(default_factory=dict, exclude=True)

    def summary(self) -> Dict[str, Any]:
        """Compact form returned to the orchestrating model."""
        return {"id": self.id, "name": self.name, "score": self.score}


class EntityResolution(BaseModel):
    """Result of entity resolution.

    ``selected`` is set when the resolver may use a candidate without asking
    the user who they meant (exact match, or a single top suggestion at or
    above the auto-match threshold). The preview/confirm protocol still
    applies to the action itself.

    Attributes:
        search_term: The original free-text term
        search_type: How the term was classified
        match_type: How the resolution was decided
        exact_match: Candidate whose compared field equals the term
        selected: Candidate usable without identity confirmation
        suggestions: Ranked candidates scoring at or above the suggestion threshold
    """
    search_term: str
    search_type: SearchType
    match_type: MatchType = Field(default=MatchType.NO_MATCH)
    exact_match: Optional[MatchCandidate] = None
    selected: Optional[MatchCandidate] = None
    suggestions: List[MatchCandidate] = Field(default_factory=list)

    @property
    def is_resolved(self) -> bool:
        return self.selected is not None

    @property
    def needs_confirmation(self) -> bool:
        return self.selected is None and bool(self.suggestions)

    @property
    def not_found(self) -> bool:
        return not self.suggestions

    @property
    def best(self) -> Optional[MatchCandidate]:
        return self.suggestions[0] if self.suggestions else None


class MatchingConfig(BaseModel):
    """Configuration for entity matching."""
    suggestion_threshold: int = Field(default=50, description="Min score to be a suggestion")
    auto_match_threshold: int = Field(default=85, description="Min score for auto-selection")
    best_match_threshold: int = Field(default=80, description="Min score reported as bestMatch in searches")
    address_score: int = Field(default=80, description="Score for an address substring hit")
    default_limit: int = Field(default=5, description="Max suggestions returned")


DEFAULT_MATCHING_CONFIG = MatchingConfig()
