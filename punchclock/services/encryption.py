from __future__ import annotations

import base64
import hashlib

import numpy as np
from cryptography.fernet import Fernet, InvalidToken

from punchclock.core.config import get_settings
from punchclock.core.errors import DatabaseError


class EmbeddingCrypto:
    """Encrypts face descriptors at rest; they are biometric data."""

    def __init__(self, key_material: str):
        digest = hashlib.sha256(key_material.encode("utf-8")).digest()
        self._fernet = Fernet(base64.urlsafe_b64encode(digest))

    def encrypt(self, vector: np.ndarray) -> bytes:
        payload = np.asarray(vector, dtype=np.float32).tobytes()
        return self._fernet.encrypt(payload)

    def decrypt(self, ciphertext: bytes) -> np.ndarray:
        try:
            payload = self._fernet.decrypt(bytes(ciphertext))
        except InvalidToken as exc:
            raise DatabaseError("Stored embedding could not be decrypted; check EMBEDDING_CIPHER_KEY.") from exc
        return np.frombuffer(payload, dtype=np.float32).copy()


embedding_crypto = EmbeddingCrypto(get_settings().embedding_cipher_key)
