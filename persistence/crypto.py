import os
import base64
from typing import Optional

from dotenv import load_dotenv
from cryptography.hazmat.primitives import hashes, hmac
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

load_dotenv()


class CryptoUtils:
    """AES-256-GCM for sensitive columns, HMAC-SHA256 blind indexes for lookups."""

    def __init__(self, key: bytes):
        if len(key) != 32:
            raise RuntimeError(
                f"ENCRYPTION_KEY must decode to 32 bytes for AES-256. Got {len(key)} bytes."
            )
        self.key = key

    @classmethod
    def from_env(cls, key_b64: Optional[str] = None) -> "CryptoUtils":
        key_b64 = key_b64 or os.getenv("ENCRYPTION_KEY")
        if not key_b64:
            raise RuntimeError("ENCRYPTION_KEY missing in .env")
        return cls(base64.b64decode(key_b64))

    def encrypt_bytes(self, plaintext: bytes, aad: bytes) -> str:
        aesgcm = AESGCM(self.key)
        nonce = os.urandom(12)
        ct = aesgcm.encrypt(nonce, plaintext, aad)
        payload = b"v1" + nonce + ct
        return base64.b64encode(payload).decode("utf-8")

    def decrypt_bytes(self, payload_b64: str, aad: bytes) -> bytes:
        raw = base64.b64decode(payload_b64.encode("utf-8"))
        if raw[:2] != b"v1":
            raise ValueError("Not encrypted with expected format/version header")
        nonce = raw[2:14]
        ct = raw[14:]
        aesgcm = AESGCM(self.key)
        return aesgcm.decrypt(nonce, ct, aad)

    def blind_index(self, value: str, purpose: str) -> str:
        """Deterministic keyed digest so equal identifiers can be matched without decrypting."""
        h = hmac.HMAC(self.key, hashes.SHA256())
        h.update(purpose.encode("utf-8") + b"|" + value.encode("utf-8"))
        return h.finalize().hex()
