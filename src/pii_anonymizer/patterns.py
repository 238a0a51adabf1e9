"""Regex layer — fast patterns for structured PII.

This is the whole detector in regex-only mode and the first layer in
regex+NER mode. It catches the deterministic stuff: emails, phones, IPs,
credit cards, SSNs, IBANs and secrets.
"""

from __future__ import annotations
import re
from typing import Callable, NamedTuple

from .types import EntityMatch


class PatternSpec(NamedTuple):
    entity_type: str
    regex: re.Pattern
    score: float
    validate: Callable[[str], bool] | None = None


def luhn_checksum(number: str) -> bool:
    """Validate a card number with the Luhn algorithm."""
    digits = [int(d) for d in re.sub(r"\D", "", number)]
    if not 13 <= len(digits) <= 19:
        return False
    checksum = 0
    for i, digit in enumerate(reversed(digits)):
        if i % 2 == 1:
            digit *= 2
            if digit > 9:
                digit -= 9
        checksum += digit
    return checksum % 10 == 0


def _valid_ssn(value: str) -> bool:
    area, group, serial = re.split(r"[\s\-]", value)
    return area not in ("000", "666") and not area.startswith("9") \
        and group != "00" and serial != "0000"


PATTERNS: list[PatternSpec] = [
    PatternSpec("EMAIL_ADDRESS", re.compile(
        r"\b[a-zA-Z0-9._%+\-]+@[a-zA-Z0-9.\-]+\.[a-zA-Z]{2,}\b"
    ), 1.0),

    # International and domestic formats
    PatternSpec("PHONE_NUMBER", re.compile(
        r"(?<!\w)"
        r"(?:\+?\d{1,3}[\s\-.]?)?"
        r"(?:\(?\d{2,4}\)?[\s\-.]?)"
        r"\d{3,4}[\s\-.]?\d{3,4}"
        r"(?!\d)"
    ), 0.85),

    # Visa, MC, Amex, Discover with optional separators
    PatternSpec("CREDIT_CARD", re.compile(
        r"\b(?:4\d{3}|5[1-5]\d{2}|3[47]\d{2}|6(?:011|5\d{2}))"
        r"[\s\-.]?\d{4}[\s\-.]?\d{4}[\s\-.]?\d{1,4}\b"
    ), 0.95, luhn_checksum),

    PatternSpec("US_SSN", re.compile(
        r"\b\d{3}[\s\-]\d{2}[\s\-]\d{4}\b"
    ), 0.9, _valid_ssn),

    PatternSpec("IBAN_CODE", re.compile(
        r"\b[A-Z]{2}\d{2}(?:\s?[A-Z0-9]{4}){2,7}(?:\s?[A-Z0-9]{1,3})?\b"
    ), 0.8),

    PatternSpec("IP_ADDRESS", re.compile(
        r"\b(?:(?:25[0-5]|2[0-4]\d|[01]?\d\d?)\.){3}"
        r"(?:25[0-5]|2[0-4]\d|[01]?\d\d?)\b"
    ), 0.9),

    # YYYY-MM-DD, DD/MM/YYYY, MM/DD/YYYY
    PatternSpec("DATE_OF_BIRTH", re.compile(
        r"\b(?:\d{4}[\-/]\d{1,2}[\-/]\d{1,2}|\d{1,2}[\-/]\d{1,2}[\-/]\d{4})\b"
    ), 0.6),

    PatternSpec("URL_WITH_SECRET", re.compile(
        r"https?://[^\s]+[?&](?:api_key|token|secret|password|key)=[^\s&]+"
    ), 0.95),

    PatternSpec("API_KEY", re.compile(
        r"(?:api[_\-]?key|secret|token|password|bearer)\s*[:=]\s*['\"]?[a-zA-Z0-9\-_\.]{20,}['\"]?",
        re.IGNORECASE,
    ), 0.8),
]


def scan_regex(text: str, patterns: list[PatternSpec] | None = None) -> list[EntityMatch]:
    """Run all regex patterns against text. Returns non-overlapping matches."""
    matches: list[EntityMatch] = []
    for spec in patterns or PATTERNS:
        for m in spec.regex.finditer(text):
            if spec.validate is not None and not spec.validate(m.group()):
                continue
            matches.append(EntityMatch(
                entity_type=spec.entity_type,
                start=m.start(),
                end=m.end(),
                text=m.group(),
                score=spec.score,
                source="regex",
            ))
    return remove_overlaps(matches)


def remove_overlaps(matches: list[EntityMatch]) -> list[EntityMatch]:
    """Drop overlapping matches, keeping higher-score then longer spans."""
    if not matches:
        return matches
    ranked = sorted(matches, key=lambda m: (-m.score, -(m.end - m.start)))
    taken: list[EntityMatch] = []
    used: list[tuple[int, int]] = []
    for m in ranked:
        if not any(m.start < e and m.end > s for s, e in used):
            taken.append(m)
            used.append((m.start, m.end))
    return sorted(taken, key=lambda m: m.start)
