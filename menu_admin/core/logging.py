from __future__ import annotations

import json
import logging
import sys
from contextvars import ContextVar
from typing import Any

import structlog

request_id_ctx: ContextVar[str | None] = ContextVar("request_id", default=None)
page_id_ctx: ContextVar[str | None] = ContextVar("page_id", default=None)

REDACTED_KEYS = frozenset({"access_token", "password", "apikey", "authorization"})


def _bind_request_context(_: logging.Logger, __: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    event_dict["request_id"] = request_id_ctx.get()
    # explicit page_id kwargs win over the request's cookie
    event_dict.setdefault("page_id", page_id_ctx.get())
    return event_dict


def _redact_credentials(_: logging.Logger, __: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    for key in event_dict.keys() & REDACTED_KEYS:
        event_dict[key] = "[REDACTED]"
    return event_dict


def _event_as_message(_: logging.Logger, __: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    event_dict["message"] = event_dict.pop("event", None)
    return event_dict


def _render_json_line(_: logging.Logger, __: str, event_dict: dict[str, Any]) -> str:
    # model ids and datetimes fall back to str()
    return json.dumps(event_dict, ensure_ascii=False, default=str)


def configure_logging(level: str = "INFO") -> None:
    """Send structlog output to stdout as one JSON object per line."""
    log_level = logging.getLevelName(level.upper())
    if not isinstance(log_level, int):
        log_level = logging.INFO

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=log_level)
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.TimeStamper(fmt="iso", utc=True, key="timestamp"),
            structlog.processors.add_log_level,
            _bind_request_context,
            _redact_credentials,
            _event_as_message,
            structlog.processors.format_exc_info,
            _render_json_line,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
