"""Semantic layer — attributes that describe a hidden value without revealing it.

Runs after NER in regex+NER mode. A downstream reader of anonymized text
can still tell that «PERSON_001» is addressed as "Dr" and is likely female,
or that «LOCATION_002» is a country or city rather than a river, while the
values themselves stay in the encrypted map.

Attributes added:
    PERSON    title ("Mr", "Dr", ...) and gender when the title implies one
    LOCATION  scope ("political", "geographic", "facility") from the spaCy label
"""

from __future__ import annotations
import logging
import re
from dataclasses import replace
from typing import Callable

from .types import EntityMatch

logger = logging.getLogger(__name__)

# Honorific → implied gender (None = title only)
HONORIFICS: dict[str, str | None] = {
    "mr": "male",
    "sir": "male",
    "mrs": "female",
    "ms": "female",
    "miss": "female",
    "madam": "female",
    "dr": None,
    "prof": None,
}

# spaCy entity label → location scope
LOCATION_SCOPES = {
    "GPE": "political",    # countries, cities, states
    "LOC": "geographic",   # mountains, rivers, regions
    "FAC": "facility",     # buildings, airports, bridges
}


class SemanticEnricher:
    """Adds descriptive attributes to PERSON and LOCATION matches."""

    __slots__ = ("_honorific_re",)

    def __init__(self) -> None:
        self._honorific_re: re.Pattern | None = None

    @property
    def loaded(self) -> bool:
        return self._honorific_re is not None

    def load(self, *, on_status: Callable[[str], None] | None = None) -> None:
        if self._honorific_re is not None:
            return
        if on_status:
            on_status("Loading semantic enrichment...")
        alternation = "|".join(sorted(HONORIFICS, key=len, reverse=True))
        # Anchored at the end so only the words right before a name count
        self._honorific_re = re.compile(rf"\b({alternation})\.?\s+$", re.IGNORECASE)
        logger.info("Semantic enrichment ready")

    def enrich(self, text: str, matches: list[EntityMatch]) -> list[EntityMatch]:
        if self._honorific_re is None:
            raise RuntimeError("Semantic enrichment is not loaded")
        return [self._enrich_one(text, m) for m in matches]

    def _enrich_one(self, text: str, match: EntityMatch) -> EntityMatch:
        attributes = dict(match.attributes)
        if match.entity_type == "PERSON":
            hit = self._honorific_re.search(text, max(0, match.start - 16), match.start)
            if hit:
                title = hit.group(1).lower()
                attributes["title"] = title.capitalize()
                if HONORIFICS[title]:
                    attributes["gender"] = HONORIFICS[title]
        elif match.entity_type == "LOCATION":
            scope = LOCATION_SCOPES.get(attributes.get("ner_label", ""))
            if scope:
                attributes["scope"] = scope

        if attributes == dict(match.attributes):
            return match
        return replace(match, attributes=attributes)
