"""Extract candidate street names from free-form disruption text."""

import heapq
import re
from typing import Iterator, Optional, Tuple

# Common capitalized disruption vocabulary that never starts or continues a street name
STOP_WORDS = (
    "Toronto",
    "Hydro",
    "Emergency",
    "Repairs",
    "Construction",
    "Road",
    "Closure",
    "Closures",
    "Watermain",
    "Repair",
    "Lane",
    "Sidewalk",
    "TTC",
    "Work",
    "Major",
    "Project",
    "From",
    "Between",
    "Near",
    "And",
    "At",
    "On",
    "To",
    "Affecting",
    "Closed",
)

STREET_SUFFIXES = (
    r"St(?:reet)?|Ave(?:nue)?|Rd|Road|Blvd|Boulevard|Dr(?:ive)?|Cres(?:cent)?"
    r"|Crt|Court|Pl(?:ace)?|Lane|Way|Line|Pkwy|Parkway"
)

DIRECTIONS = r"W(?:est)?|E(?:ast)?|N(?:orth)?|S(?:outh)?"

_STOP = r"(?!(?:%s)\b)" % "|".join(STOP_WORDS)
_WORD = r"(?:[A-Z][a-z]+(?:['\-]?[A-Z][a-z]+)*|O'[A-Z][a-z]+)"
_NAME = rf"{_STOP}{_WORD}(?:\s+{_STOP}{_WORD}){{0,2}}?"
_SIDE = rf"{_NAME}(?:\s+(?:{STREET_SUFFIXES})\b\.?)?(?:\s+(?:{DIRECTIONS})\b)?"


class StreetNameExtractor:
    """
    Find street-name-like substrings in text.

    Recognizes:
    - A capitalized name followed by a road type ("Queen Street West")
    - Intersections ("King and Spadina", "Bay St & Dundas St")
    - Ranges ("between Bathurst and Spadina")

    Extraction is stateless; every call to extract() starts a fresh scan.
    """

    STREET_PATTERN = re.compile(
        rf"\b(?P<street>{_NAME}\s+(?:{STREET_SUFFIXES})\b(?:\.?\s+(?:{DIRECTIONS})\b)?)"
    )

    INTERSECTION_PATTERN = re.compile(
        rf"\b(?:[Bb]etween\s+)?(?P<first>{_SIDE})\s+(?:and|&)\s+(?P<second>{_SIDE})"
    )

    def extract(self, text: Optional[str]) -> Iterator[str]:
        """
        Lazily yield candidate street names in order of appearance.

        Candidates keep their original spelling (whitespace collapsed) and
        are deduplicated by exact string only.

        Args:
            text: Title and/or description text

        Yields:
            Raw candidate street names
        """
        if not text:
            return

        seen = set()
        merged = heapq.merge(
            self._street_matches(text),
            self._intersection_matches(text),
            key=lambda item: item[0],
        )
        for _, candidate in merged:
            if candidate and candidate not in seen:
                seen.add(candidate)
                yield candidate

    def _street_matches(self, text: str) -> Iterator[Tuple[int, str]]:
        """Yield (position, candidate) for name + road type matches."""
        for match in self.STREET_PATTERN.finditer(text):
            yield match.start("street"), _clean(match.group("street"))

    def _intersection_matches(self, text: str) -> Iterator[Tuple[int, str]]:
        """Yield (position, candidate) for both sides of intersection phrasing."""
        for match in self.INTERSECTION_PATTERN.finditer(text):
            yield match.start("first"), _clean(match.group("first"))
            yield match.start("second"), _clean(match.group("second"))


def _clean(candidate: str) -> str:
    return " ".join(candidate.split()).rstrip(".")


_default_extractor = StreetNameExtractor()


def extract_street_names(text: Optional[str]) -> Iterator[str]:
    """Yield candidate street names from text using the default extractor."""
    return _default_extractor.extract(text)
