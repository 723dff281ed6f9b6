from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING

import structlog
from pydantic import BaseModel
from starlette.responses import Response

from menu_admin.core.config import settings

if TYPE_CHECKING:
    from menu_admin.backend.auth import SupabaseAuth

logger = structlog.get_logger(__name__)

LOGIN_ROUTE = "/admin"
DEV_FLAG_COOKIE = "dev_admin_authenticated"
ACCESS_TOKEN_COOKIE = "sb_access_token"
PAGE_COOKIE = "admin_page"


class AdminSession(BaseModel):
    access_token: str | None = None
    dev_authenticated: bool = False

    @classmethod
    def from_cookies(cls, cookies: Mapping[str, str]) -> AdminSession:
        return cls(
            access_token=cookies.get(ACCESS_TOKEN_COOKIE) or None,
            dev_authenticated=cookies.get(DEV_FLAG_COOKIE) == "true",
        )

    def refresh_from(self, other: AdminSession) -> None:
        self.access_token = other.access_token
        self.dev_authenticated = other.dev_authenticated

    def write_cookies(self, response: Response) -> None:
        options = {"httponly": True, "samesite": "lax", "secure": settings.cookie_secure}
        if self.access_token:
            response.set_cookie(ACCESS_TOKEN_COOKIE, self.access_token, **options)
        else:
            response.delete_cookie(ACCESS_TOKEN_COOKIE)
        if self.dev_authenticated:
            response.set_cookie(DEV_FLAG_COOKIE, "true", **options)
        else:
            response.delete_cookie(DEV_FLAG_COOKIE)


class AuthContext:
    """Answer "is this admin signed in?" for one session."""

    def __init__(self, session: AdminSession, auth: SupabaseAuth) -> None:
        self.session = session
        self._auth = auth

    async def is_authenticated(self) -> bool:
        if not self.session.access_token:
            return False
        user = await self._auth.get_user(self.session.access_token)
        return user is not None

    async def sign_out(self) -> None:
        # The development flag goes first so a failing backend cannot keep it alive.
        self.session.dev_authenticated = False
        token, self.session.access_token = self.session.access_token, None
        if token:
            await self._auth.sign_out(token)
