from __future__ import annotations

import json
import logging
from typing import Optional

from fastapi import Request, Response

from ticketwise.core.config import Settings, get_settings
from ticketwise.hosted.envelope import MemberIdentity
from ticketwise.providers.base import ProviderError
from ticketwise.utils.crypto import SecretCipher

logger = logging.getLogger(__name__)

COOKIE_MAX_AGE_SEC = 8 * 60 * 60

# Cookie name -> MemberIdentity attribute.
COOKIE_FIELDS: dict[str, str] = {
    "memberContext": "member_context",
    "memberId": "member_id",
    "memberHash": "member_hash",
    "companyName": "company_id",
    "memberEmail": "email",
    "codeBase": "code_base",
}


class AuthCookieStore:
    """Persist the authenticated member in sealed, short-lived cookies."""

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self._settings = settings or get_settings()
        self._cipher: Optional[SecretCipher] = None

    def _get_cipher(self) -> SecretCipher:
        if self._cipher is None:
            if not self._settings.app_secret_key:
                raise ProviderError(
                    "APP_SECRET_MISSING", "APP_SECRET_KEY must be set to store member sessions."
                )
            self._cipher = SecretCipher(self._settings.app_secret_key, ttl_sec=COOKIE_MAX_AGE_SEC)
        return self._cipher

    @property
    def enabled(self) -> bool:
        return bool(self._settings.app_secret_key)

    def seal_identity(self, identity: MemberIdentity) -> str:
        payload = {name: getattr(identity, attr) for name, attr in COOKIE_FIELDS.items()}
        payload["site"] = identity.site
        return self._get_cipher().seal(json.dumps(payload))

    def unseal_identity(self, token: str) -> Optional[MemberIdentity]:
        """Return the identity inside a sealed token, or None if it is invalid or expired."""

        try:
            payload = json.loads(self._get_cipher().unseal(token))
        except ValueError:
            logger.info("Rejected invalid member session token")
            return None
        if not isinstance(payload, dict):
            return None
        return _identity_from_fields(payload)

    def write(self, response: Response, identity: MemberIdentity) -> None:
        cipher = self._get_cipher()
        for name, attr in COOKIE_FIELDS.items():
            value = getattr(identity, attr)
            if value is None:
                response.delete_cookie(name, secure=True, httponly=True, samesite="none")
                continue
            response.set_cookie(
                name,
                cipher.seal(str(value)),
                max_age=COOKIE_MAX_AGE_SEC,
                secure=True,
                httponly=True,
                samesite="none",
            )

    def read(self, request: Request) -> Optional[MemberIdentity]:
        if not self.enabled:
            return None
        cipher = self._get_cipher()
        fields: dict[str, Optional[str]] = {}
        for name in COOKIE_FIELDS:
            raw = request.cookies.get(name)
            if raw is None:
                fields[name] = None
                continue
            try:
                fields[name] = cipher.unseal(raw)
            except ValueError:
                logger.info("Ignoring invalid %s cookie", name)
                fields[name] = None
        return _identity_from_fields(fields)

    def clear(self, response: Response) -> None:
        for name in COOKIE_FIELDS:
            response.delete_cookie(name, secure=True, httponly=True, samesite="none")


def _identity_from_fields(fields: dict) -> Optional[MemberIdentity]:
    member_id = fields.get("memberId")
    member_hash = fields.get("memberHash")
    if not member_id or not member_hash:
        return None
    return MemberIdentity(
        member_id=str(member_id),
        member_hash=str(member_hash),
        email=fields.get("memberEmail"),
        company_id=fields.get("companyName"),
        member_context=fields.get("memberContext"),
        code_base=fields.get("codeBase"),
        site=fields.get("site"),
    )


def get_auth_store(request: Request) -> AuthCookieStore:
    """Dependency to access the cookie store from app state."""

    return request.app.state.auth_store
