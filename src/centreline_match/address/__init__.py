"""Street name extraction, normalization and matching for centreline-match."""

from centreline_match.address.normalizer import StreetNormalizer
from centreline_match.address.extractor import StreetNameExtractor, extract_street_names
from centreline_match.address.matcher import FuzzyStreetMatcher, MatchType, StreetMatch
from centreline_match.address.composer import ComposedAddress, compose_address, join_addresses

__all__ = [
    "StreetNormalizer",
    "StreetNameExtractor",
    "extract_street_names",
    "FuzzyStreetMatcher",
    "MatchType",
    "StreetMatch",
    "ComposedAddress",
    "compose_address",
    "join_addresses",
]
