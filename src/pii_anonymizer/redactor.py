"""Redactor — one layered detection pass producing a fresh PIIMap.

Usage:
    from pii_anonymizer.redactor import Redactor

    redactor = Redactor()                  # regex only
    result = redactor.redact("Email me at john@acme.com")
    print(result.anonymized_text)          # "Email me at «EMAIL_ADDRESS_001»"
    print(result.stats.total_entities)     # 1
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Callable

from .patterns import remove_overlaps, scan_regex
from .pii_map import PIIMap
from .presidio_layer import NerEngine
from .semantic import SemanticEnricher
from .types import DetectionResult, EntityMatch, SessionStats


@dataclass
class RedactorConfig:
    """Filtering options shared by every layer."""
    custom_scanners: list[Callable[[str], list[EntityMatch]]] = field(default_factory=list)
    # Entity types to always skip (e.g. don't anonymize dates)
    skip_types: set[str] = field(default_factory=set)
    # Values that should never be anonymized
    allow_list: set[str] = field(default_factory=set)


class Redactor:
    """Layered PII redactor.

    Layer 1: Regex patterns (emails, phones, SSNs, IPs, etc.)
    Layer 2: NER engine, when one is attached (names, orgs, locations)
    Layer 3: Custom scanners (user-provided callables)

    Surviving matches then pass through the semantic enricher, if attached.
    """

    def __init__(
        self,
        config: RedactorConfig | None = None,
        *,
        ner: NerEngine | None = None,
        semantic: SemanticEnricher | None = None,
    ) -> None:
        self.config = config or RedactorConfig()
        self.ner = ner
        self.semantic = semantic

    def redact(self, text: str) -> DetectionResult:
        """Detect PII in text and replace it with placeholder tokens."""
        all_matches: list[EntityMatch] = []

        # --- Layer 1: Regex (fast, deterministic) ---
        regex_matches = scan_regex(text)
        all_matches.extend(regex_matches)

        # --- Layer 2: NER (if attached) ---
        if self.ner is not None:
            regex_spans = [(m.start, m.end) for m in regex_matches]
            all_matches.extend(self.ner.scan(text, exclude_spans=regex_spans))

        # --- Layer 3: Custom scanners ---
        for scanner in self.config.custom_scanners:
            all_matches.extend(scanner(text))

        filtered = [
            m for m in all_matches
            if m.entity_type not in self.config.skip_types
            and m.text not in self.config.allow_list
        ]
        filtered = remove_overlaps(filtered)

        if self.semantic is not None:
            filtered = self.semantic.enrich(text, filtered)

        # Mint tokens in reading order so numbering follows the text
        pii_map = PIIMap()
        tokens = [
            pii_map.get_or_create_token(m.entity_type, m.text, (m.start, m.end), m.attributes)
            for m in filtered
        ]

        # Apply replacements right-to-left to preserve offsets
        result = text
        for match, token in reversed(list(zip(filtered, tokens))):
            result = result[:match.start] + token + result[match.end:]

        return DetectionResult(
            anonymized_text=result,
            pii_map=pii_map,
            stats=SessionStats.from_pii_map(pii_map),
            entities=filtered,
        )
