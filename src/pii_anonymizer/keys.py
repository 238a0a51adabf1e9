"""In-memory key provider — one symmetric key per process, never persisted."""

from __future__ import annotations
import logging
import threading

from cryptography.hazmat.primitives.ciphers.aead import AESGCM

logger = logging.getLogger(__name__)

KEY_BITS = 256


class InMemoryKeyProvider:
    """Issues a 256-bit AES key on first use and keeps it until rotated.

    Rotating discards the old key, which makes every map encrypted under it
    permanently unreadable.
    """

    __slots__ = ("_key", "_lock")

    def __init__(self, key: bytes | None = None) -> None:
        if key is not None and len(key) * 8 != KEY_BITS:
            raise ValueError(f"key must be {KEY_BITS} bits")
        self._key = key
        self._lock = threading.Lock()

    def get_key(self) -> bytes:
        with self._lock:
            if self._key is None:
                self._key = AESGCM.generate_key(bit_length=KEY_BITS)
                logger.debug("Generated new session key")
            return self._key

    def rotate(self) -> bytes:
        with self._lock:
            self._key = AESGCM.generate_key(bit_length=KEY_BITS)
        logger.info("Session key rotated; earlier sessions are no longer readable")
        return self._key

    @property
    def has_key(self) -> bool:
        return self._key is not None
