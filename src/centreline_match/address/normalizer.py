"""Street name normalization for centreline matching."""

import re
from typing import Dict, Optional


class StreetNormalizer:
    """
    Normalize street names for matching against the centreline corpus.

    The corpus spells street types and directions in abbreviated form
    ("Queen St W"), so free-text variants are contracted to that style:
    - Street type contraction (STREET -> st, AVENUE -> ave)
    - Directional contraction (WEST -> w)
    - Case folding and whitespace collapsing
    - Punctuation removal ("St." -> "st")

    No contracted form is itself a key of the contraction tables, which
    keeps normalize() idempotent.
    """

    # Street type variants to the corpus abbreviation
    STREET_TYPES: Dict[str, str] = {
        "street": "st",
        "str": "st",
        "avenue": "ave",
        "av": "ave",
        "road": "rd",
        "drive": "dr",
        "drv": "dr",
        "boulevard": "blvd",
        "blv": "blvd",
        "parkway": "pkwy",
        "pky": "pkwy",
        "crescent": "cres",
        "place": "pl",
        "court": "crt",
        "ct": "crt",
        "ln": "lane",
        "terrace": "terr",
        "trail": "trl",
        "gardens": "gdns",
        "square": "sq",
        "circle": "crcl",
        "heights": "hts",
        "grove": "grv",
        "gate": "gt",
    }

    # Directionals to the corpus abbreviation
    DIRECTIONALS: Dict[str, str] = {
        "west": "w",
        "east": "e",
        "north": "n",
        "south": "s",
    }

    def __init__(self) -> None:
        self._contractions: Dict[str, str] = {**self.STREET_TYPES, **self.DIRECTIONALS}

    def normalize(self, street_name: Optional[str]) -> str:
        """
        Normalize a street name for equality comparison.

        Args:
            street_name: Raw street name, e.g. "Queen Street West"

        Returns:
            Canonical lowercase form, e.g. "queen st w"; "" for empty input
        """
        if not street_name:
            return ""

        result = street_name.lower().strip()

        # Remove special characters except spaces and hyphens
        result = re.sub(r"[^\w\s\-]", "", result)

        words = [self._contractions.get(word, word) for word in result.split()]
        return " ".join(words)

    def is_normalized(self, street_name: str) -> bool:
        """Check whether a string is already in canonical form."""
        return self.normalize(street_name) == street_name
