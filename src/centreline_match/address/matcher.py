"""Fuzzy matching of candidate street names against the corpus."""

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional

from rapidfuzz.distance import Levenshtein

from centreline_match.address.normalizer import StreetNormalizer


class MatchType(str, Enum):
    """How a candidate matched the corpus."""

    EXACT = "exact"
    FUZZY = "fuzzy"
    NONE = "none"


@dataclass
class StreetMatch:
    """Result from matching one candidate string."""

    match_type: MatchType = MatchType.NONE
    matched_name: Optional[str] = None
    confidence: float = 0.0  # 0.0 to 1.0
    distance: Optional[int] = None  # edit distance, 0 for exact

    @property
    def is_matched(self) -> bool:
        """Check if the candidate resolved to a corpus street."""
        return self.match_type != MatchType.NONE and self.matched_name is not None


class FuzzyStreetMatcher:
    """
    Match candidate street names to normalized corpus names.

    Exact matches always win with confidence 1.0. Otherwise the corpus name
    with the smallest Levenshtein distance is accepted if it is within
    ``max_distance``; confidence drops by 0.1 per edit. Equal distances are
    resolved to the lexicographically smallest name.
    """

    def __init__(self, max_distance: int = 3, normalizer: Optional[StreetNormalizer] = None):
        """
        Initialize matcher.

        Args:
            max_distance: Largest edit distance still accepted as fuzzy (0-9)
            normalizer: Normalizer applied to candidates
        """
        if not 0 <= max_distance <= 9:
            raise ValueError(f"max_distance must be between 0 and 9, got {max_distance}")
        self.max_distance = max_distance
        self._normalizer = normalizer or StreetNormalizer()

    def match(self, candidate: str, corpus_names: Iterable[str]) -> StreetMatch:
        """
        Find the best corpus name for a raw candidate.

        Args:
            candidate: Raw street name extracted from text
            corpus_names: Distinct normalized street names in the corpus

        Returns:
            StreetMatch with type, matched corpus name and confidence
        """
        normalized = self._normalizer.normalize(candidate)
        if not normalized:
            return StreetMatch()

        if not isinstance(corpus_names, (set, frozenset, list, tuple)):
            corpus_names = list(corpus_names)

        if normalized in corpus_names:
            return StreetMatch(
                match_type=MatchType.EXACT,
                matched_name=normalized,
                confidence=1.0,
                distance=0,
            )

        best_name: Optional[str] = None
        best_distance = self.max_distance + 1
        for name in corpus_names:
            distance = Levenshtein.distance(normalized, name, score_cutoff=self.max_distance)
            if distance > self.max_distance:
                continue
            if distance < best_distance or (distance == best_distance and name < best_name):
                best_name = name
                best_distance = distance

        if best_name is None:
            return StreetMatch()

        return StreetMatch(
            match_type=MatchType.FUZZY,
            matched_name=best_name,
            confidence=round(1 - best_distance / 10, 2),
            distance=best_distance,
        )
