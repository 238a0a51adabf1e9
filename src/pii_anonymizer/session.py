"""SessionManager — owns the detector backend and the single live session.

Usage:
    manager = SessionManager()
    await manager.initialize()                       # regex-only, no download

    result = await manager.anonymize("Mail john@acme.com")
    result.anonymized_text                           # "Mail «EMAIL_ADDRESS_001»"

    restored = await manager.deanonymize(result.anonymized_text)
    restored.original_text                           # "Mail john@acme.com"

    await manager.set_detector_mode(DetectorMode.REGEX_PLUS_NER)

Every public operation returns a Result instead of raising. All state is
mutated on the event loop; the guard flag and InitState keep
initialization and mode switches single-flight.
"""

from __future__ import annotations
import asyncio
import logging
from dataclasses import dataclass
from typing import Callable

from .codec import EncryptedPIIMap, decrypt_pii_map, encrypt_pii_map
from .config import ManagerConfig
from .detector import DetectorBackend, DetectorConfig, create_backend
from .errors import (
    AlreadyInProgress,
    BackendConstructionFailed,
    ErrorKind,
    NoActiveSession,
    NotInitialized,
    PIIAnonymizerError,
)
from .keys import InMemoryKeyProvider
from .pii_map import rehydrate
from .state import ObservableStatus, Transition, transition_for
from .types import (
    AnonymizeResult,
    DeanonymizeResult,
    DetectorMode,
    DownloadProgress,
    InitState,
    Result,
    SessionStats,
)

logger = logging.getLogger(__name__)

BackendFactory = Callable[[DetectorConfig], DetectorBackend]


@dataclass(frozen=True, slots=True)
class Session:
    """Encrypted record of the last anonymization pass."""
    encrypted_pii_map: EncryptedPIIMap
    stats: SessionStats


class SessionManager:
    """Coordinates detector backends, the key provider and the current session."""

    def __init__(
        self,
        config: ManagerConfig | None = None,
        *,
        key_provider: InMemoryKeyProvider | None = None,
        backend_factory: BackendFactory = create_backend,
    ) -> None:
        self.config = config or ManagerConfig()
        self.key_provider = key_provider or InMemoryKeyProvider()
        self.status = ObservableStatus()
        self._backend_factory = backend_factory
        self._backend: DetectorBackend | None = None
        self._session: Session | None = None
        self._switching = False
        self._generation = 0
        self._anonymize_seq = 0

    # ------------------------------------------------------------------
    # Read-only status
    # ------------------------------------------------------------------

    @property
    def init_state(self) -> InitState:
        return self.status.snapshot.init_state

    @property
    def mode(self) -> DetectorMode | None:
        return self.status.snapshot.mode

    @property
    def status_text(self) -> str:
        return self.status.snapshot.status_text

    @property
    def last_error(self) -> str | None:
        return self.status.snapshot.last_error

    @property
    def download_progress(self) -> str:
        return self.status.snapshot.download_progress

    @property
    def ner_loading(self) -> bool:
        return self.status.snapshot.ner_loading

    @property
    def current_session(self) -> Session | None:
        return self._session

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def initialize(self) -> Result:
        """Bring up the regex-only backend. No-op when ready or already running."""
        if self.init_state in (InitState.READY, InitState.INITIALIZING):
            return Result.ok()

        self.status.update(
            init_state=InitState.INITIALIZING,
            status_text="Initializing...",
            last_error=None,
        )
        try:
            await self._dispose_current()
            backend = await self._build(DetectorMode.REGEX_ONLY)
        except BackendConstructionFailed as e:
            logger.error("Anonymizer initialization failed: %s", e)
            self.status.update(
                init_state=InitState.ERROR,
                mode=None,
                status_text="Error",
                last_error=str(e),
            )
            return Result.failure(e)

        self._backend = backend
        self.status.update(
            init_state=InitState.READY,
            mode=DetectorMode.REGEX_ONLY,
            status_text="Ready",
        )
        logger.info("Anonymizer ready (regex only)")
        return Result.ok()

    async def set_detector_mode(self, target: DetectorMode) -> Result:
        """Swap the detector backend, falling back to regex-only on failure."""
        if self.init_state is not InitState.READY:
            return Result.failure(NotInitialized())
        if self._switching:
            return Result.failure(AlreadyInProgress())

        try:
            transition = transition_for(DetectorMode(target))
        except ValueError as e:
            return Result(success=False, error=str(e), error_kind=ErrorKind.UNKNOWN)
        if transition.target == self.mode:
            return Result.ok()

        self._switching = True
        self.status.update(
            ner_loading=transition.ner_loading,
            status_text=transition.loading_status,
            download_progress="Preparing..." if transition.ner_loading else "",
        )
        try:
            return await self._apply(transition)
        finally:
            self._switching = False
            self.status.update(ner_loading=False)

    async def dispose(self) -> None:
        """Release the backend and forget the session. initialize() may follow."""
        self.clear_session()
        await self._dispose_current()
        self.status.reset()

    # ------------------------------------------------------------------
    # Pipelines
    # ------------------------------------------------------------------

    async def anonymize(self, text: str) -> AnonymizeResult:
        """Detect and replace PII; the new session replaces any previous one.

        The most recently *started* call owns the session. An earlier call
        that finishes later still returns its text, but does not install
        its map over the newer one.
        """
        backend = self._backend
        if self.init_state is not InitState.READY or backend is None:
            return AnonymizeResult.failure(NotInitialized())

        self._anonymize_seq += 1
        seq = self._anonymize_seq
        try:
            detection = await backend.detect(text)
            encrypted = encrypt_pii_map(detection.pii_map, self.key_provider.get_key())
        except PIIAnonymizerError as e:
            logger.error("Anonymization failed: %s", e)
            return AnonymizeResult.failure(e)
        except Exception as e:
            logger.exception("Anonymization failed")
            return AnonymizeResult(
                success=False,
                error=str(e) or "Anonymization failed",
                error_kind=ErrorKind.UNKNOWN,
            )

        if seq == self._anonymize_seq:
            self._session = Session(encrypted_pii_map=encrypted, stats=detection.stats)
        else:
            logger.debug("Anonymization #%d superseded; session not replaced", seq)
        return AnonymizeResult.ok(
            anonymized_text=detection.anonymized_text,
            entity_count=detection.stats.total_entities,
        )

    async def deanonymize(self, anonymized_text: str) -> DeanonymizeResult:
        """Restore original values using the current session's map."""
        session = self._session
        if session is None:
            return DeanonymizeResult.failure(NoActiveSession())

        try:
            pii_map = decrypt_pii_map(session.encrypted_pii_map, self.key_provider.get_key())
        except PIIAnonymizerError as e:
            logger.error("Deanonymization failed: %s", e)
            return DeanonymizeResult.failure(e)
        except Exception as e:
            logger.exception("Deanonymization failed")
            return DeanonymizeResult(
                success=False,
                error=str(e) or "Failed to restore original data",
                error_kind=ErrorKind.UNKNOWN,
            )

        return DeanonymizeResult.ok(original_text=rehydrate(anonymized_text, pii_map))

    # ------------------------------------------------------------------
    # Session housekeeping
    # ------------------------------------------------------------------

    def clear_session(self) -> None:
        # In-flight anonymize calls must not resurrect a session
        self._anonymize_seq += 1
        self._session = None

    def has_active_session(self) -> bool:
        return self._session is not None

    def get_session_stats(self) -> SessionStats | None:
        return self._session.stats if self._session else None

    # ------------------------------------------------------------------
    # Backend transitions
    # ------------------------------------------------------------------

    async def _apply(self, transition: Transition) -> Result:
        previous = self.mode
        await self._dispose_current()
        try:
            backend = await self._build(transition.target)
        except BackendConstructionFailed as e:
            return await self._recover(transition, previous, e)

        self._backend = backend
        self.status.update(
            mode=transition.target,
            status_text=transition.ready_status,
            download_progress="",
            last_error=None,
        )
        logger.info("Detector mode switched to %s", transition.target.value)
        return Result.ok()

    async def _recover(
        self,
        transition: Transition,
        previous: DetectorMode | None,
        error: BackendConstructionFailed,
    ) -> Result:
        logger.error("Switch to %s failed: %s", transition.target.value, error)
        failure = Result(success=False, error=error.user_message, error_kind=error.kind)
        self.status.update(
            mode=previous,
            status_text=transition.failed_status,
            last_error=error.user_message,
            download_progress="",
        )

        if transition.fallback is None:
            # No confirmed backend; a later set_detector_mode retries
            self.status.update(mode=None)
            return failure

        try:
            backend = await self._build(transition.fallback)
        except BackendConstructionFailed as e:
            logger.error("Fallback to %s failed: %s", transition.fallback.value, e)
            self.status.update(init_state=InitState.ERROR, mode=None, status_text="Error")
            return failure

        self._backend = backend
        self.status.update(
            mode=transition.fallback,
            status_text=transition_for(transition.fallback).ready_status,
        )
        return failure

    async def _build(self, mode: DetectorMode) -> DetectorBackend:
        """Construct and initialize a backend; failures are disposed and wrapped."""
        self._generation += 1
        try:
            backend = self._backend_factory(self._detector_config(mode, self._generation))
        except Exception as e:
            raise BackendConstructionFailed.wrap(e)
        try:
            await backend.initialize()
        except Exception as e:
            await self._dispose(backend)
            raise BackendConstructionFailed.wrap(e)
        return backend

    async def _dispose_current(self) -> None:
        backend, self._backend = self._backend, None
        if backend is not None:
            await self._dispose(backend)

    async def _dispose(self, backend: DetectorBackend) -> None:
        try:
            await backend.dispose()
        except Exception:
            logger.exception("Failed to dispose %s backend", backend.mode.value)

    def _detector_config(self, mode: DetectorMode, generation: int) -> DetectorConfig:
        loop = asyncio.get_running_loop()

        def post(**changes) -> None:
            # Backends report from executor threads; apply on the loop and
            # drop reports from backends that are no longer being built.
            def apply() -> None:
                if generation == self._generation:
                    self.status.update(**changes)
            try:
                running = asyncio.get_running_loop()
            except RuntimeError:
                running = None
            if running is loop:
                apply()
            else:
                loop.call_soon_threadsafe(apply)

        def on_status(message: str) -> None:
            post(status_text=message)

        def on_download_progress(progress: DownloadProgress) -> None:
            post(download_progress=progress.describe())

        cfg = self.config
        return DetectorConfig(
            mode=mode,
            auto_download=cfg.auto_download,
            on_status=on_status,
            on_download_progress=on_download_progress,
            language=cfg.language,
            score_threshold=cfg.score_threshold,
            ner_entities=cfg.ner_entities,
            ner_model=cfg.ner_model,
            skip_types=set(cfg.skip_types),
            allow_list=set(cfg.allow_list),
            semantic=cfg.semantic,
        )
