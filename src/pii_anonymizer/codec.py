"""Encryption codec for PII maps.

Security design:
- AES-256-GCM (authenticated), 96-bit random nonce per map
- The algorithm id is bound as associated data, so a payload relabelled
  with another algorithm fails authentication
- Decryption either returns the full map or raises DecryptionFailed;
  there is no partial result
"""

from __future__ import annotations
import base64
import json
import logging
import os
from dataclasses import dataclass

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .errors import DecryptionFailed
from .pii_map import PIIMap

logger = logging.getLogger(__name__)

ALGORITHM = "AES-256-GCM"
NONCE_BYTES = 12
FORMAT_VERSION = 1


@dataclass(frozen=True, slots=True)
class EncryptedPIIMap:
    """Opaque at-rest form of a PIIMap."""
    algorithm: str
    nonce: bytes
    ciphertext: bytes
    version: int = FORMAT_VERSION

    def to_dict(self) -> dict[str, str | int]:
        """JSON-safe storable form."""
        return {
            "algorithm": self.algorithm,
            "version": self.version,
            "nonce": base64.b64encode(self.nonce).decode("ascii"),
            "ciphertext": base64.b64encode(self.ciphertext).decode("ascii"),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "EncryptedPIIMap":
        try:
            return cls(
                algorithm=data["algorithm"],
                version=int(data.get("version", FORMAT_VERSION)),
                nonce=base64.b64decode(data["nonce"], validate=True),
                ciphertext=base64.b64decode(data["ciphertext"], validate=True),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise DecryptionFailed(f"Malformed encrypted PII map: {e}") from e


def _aad(algorithm: str, version: int) -> bytes:
    return f"{algorithm}:v{version}".encode("ascii")


def encrypt_pii_map(pii_map: PIIMap, key: bytes) -> EncryptedPIIMap:
    """Encrypt a plaintext map under key."""
    plaintext = json.dumps(pii_map.to_records(), ensure_ascii=False).encode("utf-8")
    nonce = os.urandom(NONCE_BYTES)
    ciphertext = AESGCM(key).encrypt(nonce, plaintext, _aad(ALGORITHM, FORMAT_VERSION))
    return EncryptedPIIMap(algorithm=ALGORITHM, nonce=nonce, ciphertext=ciphertext)


def decrypt_pii_map(encrypted: EncryptedPIIMap, key: bytes) -> PIIMap:
    """Decrypt an EncryptedPIIMap. Raises DecryptionFailed on any mismatch."""
    if encrypted.algorithm != ALGORITHM or encrypted.version != FORMAT_VERSION:
        raise DecryptionFailed(
            f"Unsupported encryption format: {encrypted.algorithm} v{encrypted.version}"
        )
    try:
        plaintext = AESGCM(key).decrypt(
            encrypted.nonce,
            encrypted.ciphertext,
            _aad(encrypted.algorithm, encrypted.version),
        )
    except InvalidTag as e:
        raise DecryptionFailed(
            "Failed to restore original data: wrong key or corrupted payload"
        ) from e
    except ValueError as e:
        # Bad key or nonce length
        raise DecryptionFailed(f"Failed to restore original data: {e}") from e

    try:
        return PIIMap.from_records(json.loads(plaintext.decode("utf-8")))
    except (ValueError, KeyError, TypeError, IndexError) as e:
        logger.error("Decrypted PII map has an unexpected shape")
        raise DecryptionFailed("Failed to restore original data: corrupted map") from e
