from __future__ import annotations

import base64
import hashlib
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken


class SecretCipher:
    """Seal and unseal short strings (cookie values) with a key derived from the app secret."""

    def __init__(self, secret: str, ttl_sec: Optional[int] = None) -> None:
        if not secret:
            raise ValueError("APP_SECRET_KEY is required for sealing values.")
        self._fernet = Fernet(self._derive_key(secret))
        self._ttl = ttl_sec

    def seal(self, value: str) -> str:
        """Encrypt a plain string into a URL-safe token."""

        return self._fernet.encrypt(value.encode("utf-8")).decode("utf-8")

    def unseal(self, token: str) -> str:
        """Decrypt a sealed token, rejecting tampered or expired ones."""

        try:
            return self._fernet.decrypt(token.encode("utf-8"), ttl=self._ttl).decode("utf-8")
        except InvalidToken as exc:
            raise ValueError("Sealed value is invalid or expired.") from exc

    @staticmethod
    def _derive_key(secret: str) -> bytes:
        digest = hashlib.sha256(secret.encode("utf-8")).digest()
        return base64.urlsafe_b64encode(digest)
