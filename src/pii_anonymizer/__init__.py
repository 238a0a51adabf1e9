"""PII Anonymizer — local PII anonymization with encrypted, reversible sessions."""

from .codec import EncryptedPIIMap, decrypt_pii_map, encrypt_pii_map
from .config import ManagerConfig, create_manager, load_config, load_from_yaml
from .detector import DetectorBackend, DetectorConfig, create_backend
from .errors import (
    AlreadyInProgress,
    BackendConstructionFailed,
    DecryptionFailed,
    ErrorKind,
    ModelDownloadError,
    NetworkError,
    NoActiveSession,
    NotInitialized,
    PIIAnonymizerError,
)
from .keys import InMemoryKeyProvider
from .pii_map import PIIMap, rehydrate
from .semantic import SemanticEnricher
from .session import Session, SessionManager
from .state import ObservableStatus, StatusSnapshot
from .types import (
    AnonymizeResult,
    DeanonymizeResult,
    DetectorMode,
    DownloadProgress,
    Entity,
    EntityMatch,
    InitState,
    Result,
    SessionStats,
)

__all__ = [
    "SessionManager", "Session",
    "ManagerConfig", "create_manager", "load_config", "load_from_yaml",
    "DetectorBackend", "DetectorConfig", "create_backend",
    "InMemoryKeyProvider",
    "EncryptedPIIMap", "encrypt_pii_map", "decrypt_pii_map",
    "PIIMap", "rehydrate", "SemanticEnricher",
    "ObservableStatus", "StatusSnapshot",
    "DetectorMode", "InitState", "Entity", "EntityMatch", "SessionStats",
    "DownloadProgress", "Result", "AnonymizeResult", "DeanonymizeResult",
    "ErrorKind", "PIIAnonymizerError", "NotInitialized", "AlreadyInProgress",
    "BackendConstructionFailed", "NoActiveSession", "DecryptionFailed",
    "NetworkError", "ModelDownloadError",
]
__version__ = "0.1.0"
