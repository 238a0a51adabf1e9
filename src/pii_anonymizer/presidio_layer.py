"""NER layer — Presidio analysis for unstructured PII.

Catches names, organizations, locations and other entities that regex
can't reliably detect. Uses spaCy under the hood. The spaCy model is
downloaded on demand when ``auto_download`` is set; download failures are
raised as ModelDownloadError so callers can tell them apart from other
load errors.
"""

from __future__ import annotations
import logging
from typing import TYPE_CHECKING, Callable

from .errors import ModelDownloadError
from .types import DownloadProgress, EntityMatch

if TYPE_CHECKING:
    from presidio_analyzer import AnalyzerEngine

logger = logging.getLogger(__name__)

# Default entity types to detect (Presidio's full set is much larger)
DEFAULT_ENTITIES = [
    "PERSON",
    "ORGANIZATION",
    "LOCATION",
    "NRP",           # nationality, religious, political group
    "MEDICAL_LICENSE",
    "URL",
    "DATE_TIME",
]


def default_model_name(language: str) -> str:
    return f"{language}_core_web_sm"


class ModelUnavailable(Exception):
    """The spaCy model is not installed and downloading is disabled."""


def ensure_model(
    model_name: str,
    *,
    auto_download: bool = True,
    on_status: Callable[[str], None] | None = None,
    on_download_progress: Callable[[DownloadProgress], None] | None = None,
) -> None:
    """Make sure a spaCy model package is importable, downloading it if allowed."""
    import spacy.util

    if spacy.util.is_package(model_name):
        return
    if not auto_download:
        raise ModelUnavailable(
            f"spaCy model {model_name!r} is not installed and auto_download is off"
        )

    from spacy.cli import download

    if on_status:
        on_status(f"Downloading {model_name}...")
    if on_download_progress:
        on_download_progress(DownloadProgress(file=model_name, percent=0.0))
    logger.info("Downloading spaCy model %s", model_name)
    try:
        download(model_name)
    except SystemExit as e:
        # spacy's CLI reports failures by exiting
        raise ModelDownloadError(f"Failed to download {model_name} (exit {e.code})") from e
    except OSError as e:
        raise ModelDownloadError(f"Failed to download {model_name}: {e}") from e
    if on_download_progress:
        on_download_progress(DownloadProgress(file=model_name, percent=100.0))


class NerEngine:
    """Owns one Presidio AnalyzerEngine. Not shared between backends."""

    __slots__ = ("language", "model_name", "entities", "score_threshold", "_engine")

    def __init__(
        self,
        *,
        language: str = "en",
        model_name: str | None = None,
        entities: list[str] | None = None,
        score_threshold: float = 0.35,
    ) -> None:
        self.language = language
        self.model_name = model_name or default_model_name(language)
        self.entities = entities or DEFAULT_ENTITIES
        self.score_threshold = score_threshold
        self._engine: AnalyzerEngine | None = None

    @property
    def loaded(self) -> bool:
        return self._engine is not None

    def load(
        self,
        *,
        auto_download: bool = True,
        on_status: Callable[[str], None] | None = None,
        on_download_progress: Callable[[DownloadProgress], None] | None = None,
    ) -> None:
        """Blocking: fetch the model if needed and build the analyzer."""
        if self._engine is not None:
            return
        ensure_model(
            self.model_name,
            auto_download=auto_download,
            on_status=on_status,
            on_download_progress=on_download_progress,
        )
        if on_status:
            on_status(f"Loading {self.model_name}...")

        from presidio_analyzer import AnalyzerEngine
        from presidio_analyzer.nlp_engine import NlpEngineProvider

        provider = NlpEngineProvider(nlp_configuration={
            "nlp_engine_name": "spacy",
            "models": [{"lang_code": self.language, "model_name": self.model_name}],
        })
        nlp_engine = provider.create_engine()
        self._engine = AnalyzerEngine(nlp_engine=nlp_engine, supported_languages=[self.language])
        logger.info("NER engine ready (%s)", self.model_name)

    def close(self) -> None:
        self._engine = None

    def scan(
        self,
        text: str,
        *,
        exclude_spans: list[tuple[int, int]] | None = None,
    ) -> list[EntityMatch]:
        """Run Presidio analysis on text.

        Args:
            text: Input text to scan.
            exclude_spans: Spans already matched by the regex layer; overlapping matches are skipped.
        """
        if self._engine is None:
            raise RuntimeError("NER engine is not loaded")
        # One spaCy pass serves both Presidio and the label lookup below
        nlp_artifacts = self._engine.nlp_engine.process_text(text, self.language)
        results = self._engine.analyze(
            text=text,
            language=self.language,
            entities=self.entities,
            score_threshold=self.score_threshold,
            nlp_artifacts=nlp_artifacts,
        )
        labels = {(ent.start_char, ent.end_char): ent.label_ for ent in nlp_artifacts.entities}

        exclude = exclude_spans or []
        matches: list[EntityMatch] = []
        for r in results:
            # Regex wins for structured PII
            if any(r.start < e and r.end > s for s, e in exclude):
                continue
            label = labels.get((r.start, r.end))
            matches.append(EntityMatch(
                entity_type=r.entity_type,
                start=r.start,
                end=r.end,
                text=text[r.start:r.end],
                score=r.score,
                source="ner",
                attributes={"ner_label": label} if label else {},
            ))

        return sorted(matches, key=lambda m: m.start)
