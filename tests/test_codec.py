"""Tests for the key provider and the PII map encryption codec."""

import sys, os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

import json
from dataclasses import replace

import pytest

from pii_anonymizer import (
    DecryptionFailed,
    EncryptedPIIMap,
    InMemoryKeyProvider,
    PIIMap,
    decrypt_pii_map,
    encrypt_pii_map,
)
from pii_anonymizer.codec import ALGORITHM


def _sample_map():
    pii_map = PIIMap()
    pii_map.get_or_create_token("PERSON", "Zoë Müller", (0, 10))
    pii_map.get_or_create_token("EMAIL_ADDRESS", "zoe@example.de", (14, 28))
    return pii_map


# ── Key provider ─────────────────────────────────────────────────────

def test_key_is_stable_until_rotated():
    provider = InMemoryKeyProvider()
    assert not provider.has_key
    key = provider.get_key()
    assert len(key) == 32
    assert provider.get_key() == key
    rotated = provider.rotate()
    assert rotated != key
    assert provider.get_key() == rotated


def test_key_provider_rejects_wrong_key_size():
    with pytest.raises(ValueError):
        InMemoryKeyProvider(b"short")


# ── Codec ────────────────────────────────────────────────────────────

def test_encrypt_decrypt():
    key = InMemoryKeyProvider().get_key()
    pii_map = _sample_map()
    encrypted = encrypt_pii_map(pii_map, key)
    assert encrypted.algorithm == ALGORITHM
    assert len(encrypted.nonce) == 12
    restored = decrypt_pii_map(encrypted, key)
    assert list(restored) == list(pii_map)
    assert restored["«PERSON_001»"].original_value == "Zoë Müller"


def test_ciphertext_hides_values():
    key = InMemoryKeyProvider().get_key()
    encrypted = encrypt_pii_map(_sample_map(), key)
    assert b"zoe@example.de" not in encrypted.ciphertext
    assert "zoe@example.de" not in json.dumps(encrypted.to_dict())


def test_fresh_nonce_per_encryption():
    key = InMemoryKeyProvider().get_key()
    first = encrypt_pii_map(_sample_map(), key)
    second = encrypt_pii_map(_sample_map(), key)
    assert first.nonce != second.nonce
    assert first.ciphertext != second.ciphertext


def test_wrong_key_fails():
    encrypted = encrypt_pii_map(_sample_map(), InMemoryKeyProvider().get_key())
    with pytest.raises(DecryptionFailed):
        decrypt_pii_map(encrypted, InMemoryKeyProvider().get_key())


def test_tampered_ciphertext_fails():
    key = InMemoryKeyProvider().get_key()
    encrypted = encrypt_pii_map(_sample_map(), key)
    flipped = bytes([encrypted.ciphertext[0] ^ 0x01]) + encrypted.ciphertext[1:]
    with pytest.raises(DecryptionFailed):
        decrypt_pii_map(replace(encrypted, ciphertext=flipped), key)


def test_unknown_algorithm_fails():
    key = InMemoryKeyProvider().get_key()
    encrypted = encrypt_pii_map(_sample_map(), key)
    with pytest.raises(DecryptionFailed):
        decrypt_pii_map(replace(encrypted, algorithm="ROT13"), key)


def test_storable_form_roundtrip():
    key = InMemoryKeyProvider().get_key()
    encrypted = encrypt_pii_map(_sample_map(), key)
    stored = json.loads(json.dumps(encrypted.to_dict()))
    assert decrypt_pii_map(EncryptedPIIMap.from_dict(stored), key)["«EMAIL_ADDRESS_001»"].original_value \
        == "zoe@example.de"


def test_malformed_storable_form():
    with pytest.raises(DecryptionFailed):
        EncryptedPIIMap.from_dict({"algorithm": ALGORITHM, "nonce": "!!!"})


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
