from __future__ import annotations

from typing import Any

import requests
import structlog

from menu_admin.core.config import settings
from menu_admin.core.errors import ExternalAPIError

logger = structlog.get_logger(__name__)

SERVICE = "supabase"


def _error_message(response: requests.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        data = None
    if isinstance(data, dict):
        for key in ("message", "msg", "error_description", "error"):
            value = data.get(key)
            if isinstance(value, str) and value:
                return value
    text = response.text.strip()
    return text or f"HTTP {response.status_code}"


class SupabaseHTTP:
    """Blocking HTTP access to a Supabase project.

    Every failure, transport or HTTP status, surfaces as ``ExternalAPIError``
    carrying the backend's own message.
    """

    def __init__(
        self,
        url: str | None = None,
        anon_key: str | None = None,
        timeout: float | None = None,
    ) -> None:
        self.url = (url or settings.supabase_url).rstrip("/")
        self.anon_key = anon_key if anon_key is not None else settings.supabase_anon_key
        self.timeout = timeout or settings.supabase_timeout

    def request(
        self,
        method: str,
        path: str,
        *,
        access_token: str | None = None,
        params: dict[str, str] | None = None,
        json: Any = None,
        headers: dict[str, str] | None = None,
    ) -> requests.Response:
        request_headers = {
            "apikey": self.anon_key,
            "Authorization": f"Bearer {access_token or self.anon_key}",
        }
        if headers:
            request_headers.update(headers)
        try:
            response = requests.request(
                method,
                f"{self.url}{path}",
                headers=request_headers,
                params=params,
                json=json,
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            logger.warning("supabase_request_failed", method=method, path=path, error=str(exc))
            raise ExternalAPIError(SERVICE, str(exc), path=path) from exc

        if response.status_code >= 400:
            message = _error_message(response)
            logger.warning(
                "supabase_error_response",
                method=method,
                path=path,
                status_code=response.status_code,
                error=message,
            )
            raise ExternalAPIError(SERVICE, message, status_code=response.status_code, path=path)
        return response

    def request_json(self, method: str, path: str, **kwargs: Any) -> Any:
        """Like :meth:`request`, decoding the body. An empty body yields None."""
        response = self.request(method, path, **kwargs)
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            logger.warning(
                "supabase_invalid_body",
                method=method,
                path=path,
                status_code=response.status_code,
            )
            raise ExternalAPIError(
                SERVICE,
                "Response body is not valid JSON",
                status_code=response.status_code,
                path=path,
            ) from exc
