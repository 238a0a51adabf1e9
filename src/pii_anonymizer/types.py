"""Core types."""

from __future__ import annotations
from collections import Counter
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .errors import ErrorKind, PIIAnonymizerError
    from .pii_map import PIIMap


class DetectorMode(str, Enum):
    """Which detector backend is active."""
    DISABLED = "disabled"              # same backend as REGEX_ONLY
    REGEX_ONLY = "regex_only"
    REGEX_PLUS_NER = "regex_plus_ner"

    @property
    def uses_ner(self) -> bool:
        return self is DetectorMode.REGEX_PLUS_NER

    def normalized(self) -> "DetectorMode":
        return DetectorMode.REGEX_PLUS_NER if self.uses_ner else DetectorMode.REGEX_ONLY


class InitState(str, Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    ERROR = "error"


@dataclass(frozen=True, slots=True)
class EntityMatch:
    """A single detected PII span, before token assignment."""
    entity_type: str       # e.g. "EMAIL_ADDRESS", "PERSON", "PHONE_NUMBER"
    start: int
    end: int
    text: str
    score: float           # 0.0–1.0 confidence
    source: str            # "regex" | "ner" | "custom"
    # e.g. {"ner_label": "GPE"}, {"title": "Dr", "gender": "female"}
    attributes: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class Entity:
    """A detected value bound to its placeholder token."""
    entity_type: str
    original_value: str
    placeholder_token: str
    span: tuple[int, int]  # first occurrence in the input text
    attributes: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class SessionStats:
    total_entities: int = 0
    counts_by_type: Mapping[str, int] = field(default_factory=lambda: MappingProxyType({}))

    @classmethod
    def from_pii_map(cls, pii_map: PIIMap) -> "SessionStats":
        counts = Counter(e.entity_type for e in pii_map.values())
        return cls(total_entities=len(pii_map), counts_by_type=MappingProxyType(dict(counts)))


@dataclass(frozen=True, slots=True)
class DownloadProgress:
    file: str
    percent: float | None = None

    def describe(self) -> str:
        return f"{self.file}: {round(self.percent or 0)}%"


@dataclass(slots=True)
class DetectionResult:
    """Result of one detector pass over a text."""
    anonymized_text: str
    pii_map: PIIMap
    stats: SessionStats
    entities: list[EntityMatch] = field(default_factory=list)


# ── Structured operation results ─────────────────────────────────────

@dataclass(frozen=True, slots=True)
class Result:
    """Outcome of a public manager operation. Never raised, always returned."""
    success: bool
    error: str | None = None
    error_kind: ErrorKind | None = None

    @classmethod
    def ok(cls, **payload) -> "Result":
        return cls(success=True, **payload)

    @classmethod
    def failure(cls, exc: PIIAnonymizerError) -> "Result":
        return cls(success=False, error=str(exc), error_kind=exc.kind)


@dataclass(frozen=True, slots=True)
class AnonymizeResult(Result):
    anonymized_text: str | None = None
    entity_count: int | None = None


@dataclass(frozen=True, slots=True)
class DeanonymizeResult(Result):
    original_text: str | None = None
