from __future__ import annotations

from functools import partial
from typing import Any

import anyio
import structlog

from menu_admin.backend.client import SERVICE, SupabaseHTTP
from menu_admin.core.errors import ExternalAPIError

logger = structlog.get_logger(__name__)


def _expect_object(data: Any, path: str) -> dict[str, Any]:
    if not isinstance(data, dict):
        raise ExternalAPIError(SERVICE, "Unexpected response shape from auth service", path=path)
    return data


class SupabaseAuth:
    def __init__(self, http: SupabaseHTTP | None = None) -> None:
        self.http = http or SupabaseHTTP()

    async def get_user(self, access_token: str) -> dict[str, Any] | None:
        """Return the user behind ``access_token``, or None when the session is invalid.

        Transport errors, unexpected statuses and malformed bodies raise
        ``ExternalAPIError``.
        """
        path = "/auth/v1/user"
        try:
            data = await anyio.to_thread.run_sync(
                partial(self.http.request_json, "GET", path, access_token=access_token)
            )
        except ExternalAPIError as exc:
            if exc.unauthorized:
                logger.info("auth_session_invalid", status_code=exc.status_code)
                return None
            raise
        return _expect_object(data, path)

    async def sign_in_with_password(self, email: str, password: str) -> str:
        path = "/auth/v1/token"
        data = await anyio.to_thread.run_sync(
            partial(
                self.http.request_json,
                "POST",
                path,
                params={"grant_type": "password"},
                json={"email": email, "password": password},
            )
        )
        token = _expect_object(data, path).get("access_token")
        if not token:
            raise ExternalAPIError(SERVICE, "Auth response did not include an access token", path=path)
        logger.info("auth_signed_in")
        return token

    async def sign_out(self, access_token: str) -> None:
        await anyio.to_thread.run_sync(
            partial(self.http.request, "POST", "/auth/v1/logout", access_token=access_token)
        )
        logger.info("auth_signed_out")
