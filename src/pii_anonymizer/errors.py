"""Error taxonomy shared by the manager and its collaborators."""

from __future__ import annotations
from enum import Enum
from urllib.error import URLError


class ErrorKind(str, Enum):
    NOT_INITIALIZED = "not_initialized"
    ALREADY_IN_PROGRESS = "already_in_progress"
    BACKEND_CONSTRUCTION_FAILED = "backend_construction_failed"
    NO_ACTIVE_SESSION = "no_active_session"
    DECRYPTION_FAILED = "decryption_failed"
    UNKNOWN = "unknown"


NETWORK_REMEDIATION = (
    "NER model download failed. Please check your connection and try again."
)


class PIIAnonymizerError(Exception):
    """Base class for every error this package reports."""
    kind: ErrorKind = ErrorKind.UNKNOWN
    default_message = "Unknown error"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)


class NotInitialized(PIIAnonymizerError):
    kind = ErrorKind.NOT_INITIALIZED
    default_message = "Not initialized"


class AlreadyInProgress(PIIAnonymizerError):
    kind = ErrorKind.ALREADY_IN_PROGRESS
    default_message = "A detector mode switch is already in progress"


class NoActiveSession(PIIAnonymizerError):
    kind = ErrorKind.NO_ACTIVE_SESSION
    default_message = "No active session. Please anonymize text first."


class DecryptionFailed(PIIAnonymizerError):
    kind = ErrorKind.DECRYPTION_FAILED
    default_message = "Failed to restore original data"


class BackendConstructionFailed(PIIAnonymizerError):
    """A detector backend could not be built or made ready.

    ``network`` is True when the root cause is a download/transport failure
    the user can act on, False for opaque internal errors.
    """
    kind = ErrorKind.BACKEND_CONSTRUCTION_FAILED
    default_message = "Failed to initialize detector"

    def __init__(self, message: str | None = None, *, network: bool = False) -> None:
        super().__init__(message)
        self.network = network

    @property
    def user_message(self) -> str:
        return NETWORK_REMEDIATION if self.network else str(self)

    @classmethod
    def wrap(cls, exc: BaseException) -> "BackendConstructionFailed":
        if isinstance(exc, BackendConstructionFailed):
            return exc
        wrapped = cls(str(exc) or exc.__class__.__name__, network=is_network_error(exc))
        wrapped.__cause__ = exc
        return wrapped


class NetworkError(PIIAnonymizerError):
    """Transport-level failure raised by a collaborator (download, proxy)."""
    default_message = "Network error"


class ModelDownloadError(NetworkError):
    default_message = "Failed to download model"


def is_network_error(exc: BaseException | None) -> bool:
    """Walk the cause chain looking for a typed network failure."""
    seen: set[int] = set()
    while exc is not None and id(exc) not in seen:
        if isinstance(exc, (NetworkError, ConnectionError, URLError)):
            return True
        if isinstance(exc, BackendConstructionFailed) and exc.network:
            return True
        seen.add(id(exc))
        exc = exc.__cause__ or exc.__context__
    return False
