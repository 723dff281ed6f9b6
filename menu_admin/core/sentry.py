from __future__ import annotations

import re
from typing import Any

import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.logging import LoggingIntegration

from menu_admin.core.config import settings

BEARER_PATTERN = re.compile(r"Bearer\s+[A-Za-z0-9\-_\.=]+")
EMAIL_PATTERN = re.compile(r"[\w\.\-+]+@[\w\-]+\.[\w\.\-]+")
APIKEY_PARAM_PATTERN = re.compile(r"(apikey=)[^&\s]+")

HEADER_REPLACEMENTS = {
    "authorization": "[TOKEN_REDACTED]",
    "apikey": "[TOKEN_REDACTED]",
    "cookie": "[COOKIES_REDACTED]",
}


def mask_secrets(text: str | None) -> str | None:
    """Mask bearer tokens, API keys and e-mail addresses in text."""
    if text is None:
        return None
    text = BEARER_PATTERN.sub("Bearer [TOKEN_REDACTED]", text)
    text = APIKEY_PARAM_PATTERN.sub(r"\1[TOKEN_REDACTED]", text)
    return EMAIL_PATTERN.sub("[EMAIL_REDACTED]", text)


def _scrub_request(request: dict[str, Any]) -> None:
    headers = request.get("headers") or {}
    for name in list(headers):
        replacement = HEADER_REPLACEMENTS.get(name.lower())
        if replacement is not None:
            headers[name] = replacement
    if isinstance(request.get("query_string"), str):
        request["query_string"] = mask_secrets(request["query_string"])


def before_send(event: dict[str, Any], hint: dict[str, Any]) -> dict[str, Any] | None:
    request = event.get("request")
    if isinstance(request, dict):
        _scrub_request(request)

    for exception in event.get("exception", {}).get("values", []):
        if "value" in exception:
            exception["value"] = mask_secrets(exception["value"])

    for breadcrumb in event.get("breadcrumbs", {}).get("values", []):
        if "message" in breadcrumb:
            breadcrumb["message"] = mask_secrets(breadcrumb["message"])
        data = breadcrumb.get("data") or {}
        for key, value in data.items():
            if isinstance(value, str):
                data[key] = mask_secrets(value)

    return event


def init_sentry() -> None:
    """Initialize Sentry when a DSN is configured; otherwise do nothing."""
    if not settings.sentry_dsn:
        return

    sentry_sdk.init(
        dsn=settings.sentry_dsn,
        environment=settings.sentry_environment or settings.environment,
        integrations=[
            FastApiIntegration(transaction_style="endpoint"),
            # breadcrumbs only, log records never become events
            LoggingIntegration(level=None, event_level=None),
        ],
        traces_sample_rate=0.1,
        before_send=before_send,
        send_default_pii=False,
        max_breadcrumbs=50,
    )
    sentry_sdk.set_tag("service", settings.app_name)
