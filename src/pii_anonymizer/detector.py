"""Detector backends — the swappable component the session manager drives.

A backend goes through construct → initialize → detect* → dispose.
Construction is cheap; ``initialize`` does the slow work (model download
and load) off the event loop. ``detect`` also runs in the executor for the
NER backend since spaCy inference blocks.
"""

from __future__ import annotations
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Callable, Protocol, runtime_checkable

from .errors import BackendConstructionFailed, NotInitialized
from .presidio_layer import NerEngine
from .redactor import Redactor, RedactorConfig
from .semantic import SemanticEnricher
from .types import DetectionResult, DetectorMode, DownloadProgress

logger = logging.getLogger(__name__)


@dataclass
class DetectorConfig:
    """Options recognized by create_backend."""
    mode: DetectorMode = DetectorMode.REGEX_ONLY
    auto_download: bool = True
    on_status: Callable[[str], None] | None = None
    on_download_progress: Callable[[DownloadProgress], None] | None = None
    language: str = "en"
    score_threshold: float = 0.35
    ner_entities: list[str] | None = None
    ner_model: str | None = None
    skip_types: set[str] = field(default_factory=set)
    allow_list: set[str] = field(default_factory=set)
    semantic: bool = True               # enrich NER matches; ignored in regex-only mode


@runtime_checkable
class DetectorBackend(Protocol):
    """Interface of a detector backend handle.

    Implementations:
    - RegexBackend (regex only)
    - NerBackend (regex + Presidio NER + semantic enrichment)
    - Fakes (tests)
    """

    mode: DetectorMode

    async def initialize(self) -> None:
        """Wait until the backend can serve detect calls."""
        ...

    async def detect(self, text: str) -> DetectionResult:
        ...

    async def dispose(self) -> None:
        """Release resources. The handle is unusable afterwards."""
        ...


class RegexBackend:
    mode = DetectorMode.REGEX_ONLY

    def __init__(self, config: DetectorConfig) -> None:
        self.config = config
        self._redactor = Redactor(RedactorConfig(
            skip_types=set(config.skip_types),
            allow_list=set(config.allow_list),
        ))
        self._ready = False
        self._disposed = False

    @property
    def ready(self) -> bool:
        return self._ready and not self._disposed

    def _status(self, message: str) -> None:
        if self.config.on_status:
            self.config.on_status(message)

    async def initialize(self) -> None:
        if self._disposed:
            raise BackendConstructionFailed("Backend was disposed")
        self._ready = True

    async def detect(self, text: str) -> DetectionResult:
        if not self.ready:
            raise NotInitialized("Detector backend is not ready")
        return self._redactor.redact(text)

    async def dispose(self) -> None:
        self._disposed = True
        self._ready = False


class NerBackend(RegexBackend):
    mode = DetectorMode.REGEX_PLUS_NER

    def __init__(self, config: DetectorConfig) -> None:
        super().__init__(config)
        self._ner = NerEngine(
            language=config.language,
            model_name=config.ner_model,
            entities=config.ner_entities,
            score_threshold=config.score_threshold,
        )
        self._redactor.ner = self._ner
        self._semantic = SemanticEnricher() if config.semantic else None

    async def initialize(self) -> None:
        if self._disposed:
            raise BackendConstructionFailed("Backend was disposed")
        if self._ready:
            return
        self._status("Loading NER model...")
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, lambda: self._ner.load(
                auto_download=self.config.auto_download,
                on_status=self.config.on_status,
                on_download_progress=self.config.on_download_progress,
            ))
        except Exception as e:
            raise BackendConstructionFailed.wrap(e)
        if self._semantic is not None:
            self._semantic.load(on_status=self.config.on_status)
            self._redactor.semantic = self._semantic
        self._ready = True

    async def detect(self, text: str) -> DetectionResult:
        if not self.ready:
            raise NotInitialized("Detector backend is not ready")
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._redactor.redact, text)

    async def dispose(self) -> None:
        await super().dispose()
        self._ner.close()


def create_backend(config: DetectorConfig) -> DetectorBackend:
    """Construct (but do not initialize) the backend for config.mode."""
    try:
        if config.mode.uses_ner:
            return NerBackend(config)
        return RegexBackend(config)
    except Exception as e:
        raise BackendConstructionFailed.wrap(e)
