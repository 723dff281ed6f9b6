"""Supabase Realtime subscription for row-level change events.

Speaks the Phoenix channel protocol over a websocket: ``phx_join`` with a
``postgres_changes`` filter, a heartbeat on the ``phoenix`` topic, and
``phx_leave`` on release. A channel never raises connection problems into its
owner; it logs them and reports ``CHANNEL_ERROR`` in :attr:`status`.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any
from urllib.parse import urlencode

import structlog
import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from menu_admin.core.config import settings
from menu_admin.menu.models import ChangeEvent
from menu_admin.menu.repository import ChangeHandler, Subscription

logger = structlog.get_logger(__name__)

PROTOCOL_VERSION = "1.0.0"


def build_socket_url(url: str, api_key: str) -> str:
    base = url.rstrip("/")
    if base.startswith("https://"):
        base = "wss://" + base[len("https://"):]
    elif base.startswith("http://"):
        base = "ws://" + base[len("http://"):]
    query = urlencode({"apikey": api_key, "vsn": PROTOCOL_VERSION})
    return f"{base}/realtime/v1/websocket?{query}"


class RealtimeChannel(Subscription):
    def __init__(
        self,
        *,
        url: str,
        api_key: str,
        channel: str,
        schema: str,
        table: str,
        access_token: str | None = None,
        heartbeat_interval: float | None = None,
    ) -> None:
        self.socket_url = build_socket_url(url, api_key)
        self.topic = f"realtime:{channel}"
        self.schema = schema
        self.table = table
        self.access_token = access_token
        self.heartbeat_interval = heartbeat_interval or settings.realtime_heartbeat_interval
        self.status = "CLOSED"
        self._ref = 0
        self._join_ref: str | None = None
        self._ws: Any = None
        self._task: asyncio.Task[None] | None = None
        self._on_change: ChangeHandler | None = None
        self._closed = False

    async def subscribe(self, on_change: ChangeHandler) -> None:
        if self._task is not None:
            raise RuntimeError("Channel already subscribed")
        self._on_change = on_change
        self.status = "JOINING"
        self._task = asyncio.create_task(self._run())

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._ws is not None:
            try:
                await self._send(self.topic, "phx_leave", {})
                await self._ws.close()
            except (ConnectionClosed, WebSocketException, OSError) as exc:
                logger.debug("realtime_leave_failed", topic=self.topic, error=str(exc))
        if self._task is not None and self._task is not asyncio.current_task():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            except Exception as exc:
                logger.error("realtime_reader_failed", topic=self.topic, error=str(exc))
        self.status = "CLOSED"
        logger.info("realtime_channel_closed", topic=self.topic)

    @property
    def closed(self) -> bool:
        return self._closed

    def _next_ref(self) -> str:
        self._ref += 1
        return str(self._ref)

    def _join_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "config": {
                "broadcast": {"self": False},
                "presence": {"key": ""},
                "postgres_changes": [
                    {"event": "*", "schema": self.schema, "table": self.table}
                ],
            }
        }
        if self.access_token:
            payload["access_token"] = self.access_token
        return payload

    async def _send(self, topic: str, event: str, payload: dict[str, Any]) -> str:
        ref = self._next_ref()
        message = {"topic": topic, "event": event, "payload": payload, "ref": ref}
        await self._ws.send(json.dumps(message))
        return ref

    async def _run(self) -> None:
        try:
            self._ws = await websockets.connect(self.socket_url)
        except (WebSocketException, OSError, asyncio.TimeoutError) as exc:
            self.status = "CHANNEL_ERROR"
            logger.error("realtime_connect_failed", topic=self.topic, error=str(exc))
            return

        heartbeat: asyncio.Task[None] | None = None
        try:
            self._join_ref = await self._send(self.topic, "phx_join", self._join_payload())
            heartbeat = asyncio.create_task(self._heartbeat())
            async for raw in self._ws:
                await self._dispatch(raw)
            if not self._closed:
                self.status = "CLOSED"
                logger.warning("realtime_socket_ended", topic=self.topic)
        except ConnectionClosed as exc:
            if not self._closed:
                self.status = "CHANNEL_ERROR"
                logger.warning("realtime_connection_closed", topic=self.topic, error=str(exc))
        except Exception:
            self.status = "CHANNEL_ERROR"
            logger.exception("realtime_dispatch_failed", topic=self.topic)
        finally:
            if heartbeat is not None:
                heartbeat.cancel()

    async def _heartbeat(self) -> None:
        while not self._closed:
            await asyncio.sleep(self.heartbeat_interval)
            try:
                await self._send("phoenix", "heartbeat", {})
            except (ConnectionClosed, WebSocketException) as exc:
                logger.warning("realtime_heartbeat_failed", topic=self.topic, error=str(exc))
                return

    async def _dispatch(self, raw: str | bytes) -> None:
        try:
            message = json.loads(raw)
        except ValueError:
            logger.warning("realtime_message_invalid")
            return
        if not isinstance(message, dict):
            logger.warning("realtime_message_invalid", kind=type(message).__name__)
            return

        event = message.get("event")
        payload = message.get("payload")
        if not isinstance(payload, dict):
            payload = {}
        if message.get("topic") != self.topic:
            return

        if event == "phx_reply" and message.get("ref") == self._join_ref:
            if payload.get("status") == "ok":
                self.status = "SUBSCRIBED"
                logger.info("realtime_subscribed", topic=self.topic, table=self.table)
            else:
                self.status = "CHANNEL_ERROR"
                logger.error("realtime_join_rejected", topic=self.topic, response=payload.get("response"))
        elif event == "postgres_changes":
            data = payload.get("data")
            if not isinstance(data, dict):
                data = {}
            change = ChangeEvent(
                type=str(data.get("type", "")),
                table=str(data.get("table", self.table)),
                record=data.get("record") or data.get("old_record"),
            )
            if self._closed or self._on_change is None:
                return
            logger.info("realtime_event", topic=self.topic, type=change.type, table=change.table)
            await self._on_change(change)
        elif event in {"phx_error", "phx_close"}:
            self.status = "CHANNEL_ERROR" if event == "phx_error" else "CLOSED"
            logger.warning("realtime_channel_event", topic=self.topic, event=event)
