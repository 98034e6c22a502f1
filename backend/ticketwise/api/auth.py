from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status

from ticketwise.api.errors import to_http_error
from ticketwise.hosted.envelope import MemberIdentity
from ticketwise.providers.base import ProviderError
from ticketwise.schemas.auth import MemberSessionResponse, SessionTokenRequest
from ticketwise.services.auth_store import AuthCookieStore, get_auth_store

router = APIRouter(prefix="/api/auth", tags=["auth"])


@router.post("/session", response_model=MemberSessionResponse)
async def create_member_session(
    payload: SessionTokenRequest,
    response: Response,
    store: AuthCookieStore = Depends(get_auth_store),
) -> MemberSessionResponse:
    """Exchange a hosted-channel session token for member cookies."""

    try:
        identity = store.unseal_identity(payload.token)
        if identity is None:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Session token is invalid or expired.",
            )
        store.write(response, identity)
    except ProviderError as exc:
        raise to_http_error(exc) from exc
    return _session_response(identity)


@router.get("/session", response_model=MemberSessionResponse)
async def get_member_session(
    request: Request,
    store: AuthCookieStore = Depends(get_auth_store),
) -> MemberSessionResponse:
    """Report the member currently stored in cookies."""

    return _session_response(store.read(request))


@router.delete("/session", response_model=MemberSessionResponse)
async def clear_member_session(
    response: Response,
    store: AuthCookieStore = Depends(get_auth_store),
) -> MemberSessionResponse:
    """Forget the stored member."""

    store.clear(response)
    return _session_response(None)


def _session_response(identity: Optional[MemberIdentity]) -> MemberSessionResponse:
    if identity is None:
        return MemberSessionResponse(authenticated=False)
    return MemberSessionResponse(
        authenticated=True,
        member_id=identity.member_id,
        email=identity.email,
        company_id=identity.company_id,
        code_base=identity.code_base,
    )
