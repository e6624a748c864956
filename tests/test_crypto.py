# tests/test_crypto.py

import base64
import os

import pytest
from persistence.crypto import CryptoUtils


@pytest.fixture
def crypto():
    return CryptoUtils(os.urandom(32))


def test_encrypt_decrypt_roundtrip(crypto):
    aad = b"gi_registrations|personal_info"
    plaintext = b'{"name": "Rina"}'

    ct = crypto.encrypt_bytes(plaintext, aad)
    out = crypto.decrypt_bytes(ct, aad)

    assert out == plaintext


def test_decrypt_fails_with_wrong_aad(crypto):
    ct = crypto.encrypt_bytes(b"secret", b"gi_registrations|identity")

    with pytest.raises(Exception):
        crypto.decrypt_bytes(ct, b"gi_registrations|personal_info")


def test_ciphertext_tamper_fails(crypto):
    aad = b"aad"
    ct = crypto.encrypt_bytes(b"secret", aad)

    # modify first character
    tampered = ("A" if ct[0] != "A" else "B") + ct[1:]

    with pytest.raises(Exception):
        crypto.decrypt_bytes(tampered, aad)


def test_blind_index_is_deterministic_and_keyed(crypto):
    first = crypto.blind_index("123456789012", "aadhar")

    assert first == crypto.blind_index("123456789012", "aadhar")
    assert first != crypto.blind_index("123456789012", "voter")
    assert first != CryptoUtils(os.urandom(32)).blind_index("123456789012", "aadhar")


def test_key_must_be_32_bytes():
    with pytest.raises(RuntimeError):
        CryptoUtils.from_env(base64.b64encode(b"short").decode())
