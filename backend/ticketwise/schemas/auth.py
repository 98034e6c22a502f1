from __future__ import annotations

from typing import Optional

from pydantic import Field

from ticketwise.schemas.common import APIModel


class SessionTokenRequest(APIModel):
    """Sealed identity issued by the hosted channel after authentication."""

    token: str = Field(min_length=1, max_length=8000)


class MemberSessionResponse(APIModel):
    authenticated: bool
    member_id: Optional[str] = None
    email: Optional[str] = None
    company_id: Optional[str] = None
    code_base: Optional[str] = None
