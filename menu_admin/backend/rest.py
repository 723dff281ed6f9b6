from __future__ import annotations

from functools import partial
from typing import Any

import anyio
import structlog
from pydantic import ValidationError

from menu_admin.auth.session import AdminSession
from menu_admin.backend.client import SERVICE, SupabaseHTTP
from menu_admin.backend.realtime import RealtimeChannel
from menu_admin.core.config import settings
from menu_admin.core.errors import ExternalAPIError
from menu_admin.menu.models import MenuItem, MenuItemUpdate, MenuSnapshot
from menu_admin.menu.repository import ChangeHandler, MenuRepository, Subscription

logger = structlog.get_logger(__name__)


class SupabaseMenuRepository(MenuRepository):
    """Menu table served by PostgREST, change feed by Supabase Realtime."""

    def __init__(
        self,
        session: AdminSession,
        http: SupabaseHTTP | None = None,
        table: str | None = None,
    ) -> None:
        self.session = session
        self.http = http or SupabaseHTTP()
        self.table = table or settings.menu_table

    async def list_items(self) -> MenuSnapshot:
        rows = await self._call("GET", params={"select": "*"})
        items = self._parse_rows(rows)
        logger.info("menu_rows_fetched", count=len(items))
        return MenuSnapshot(items=items)

    async def update_item(self, item_id: str, changes: MenuItemUpdate) -> MenuItem | None:
        rows = await self._call(
            "PATCH",
            params={"id": f"eq.{item_id}"},
            json=changes.to_payload(),
            headers={"Prefer": "return=representation"},
        )
        items = self._parse_rows(rows)
        return items[0] if items else None

    async def delete_item(self, item_id: str) -> None:
        await self._call("DELETE", params={"id": f"eq.{item_id}"})

    async def subscribe(self, on_change: ChangeHandler) -> Subscription:
        channel = RealtimeChannel(
            url=self.http.url,
            api_key=self.http.anon_key,
            channel=settings.realtime_channel,
            schema=settings.realtime_schema,
            table=self.table,
            access_token=self.session.access_token,
        )
        await channel.subscribe(on_change)
        return channel

    async def _call(
        self,
        method: str,
        *,
        params: dict[str, str],
        json: Any = None,
        headers: dict[str, str] | None = None,
    ) -> Any:
        rows = await anyio.to_thread.run_sync(
            partial(
                self.http.request_json,
                method,
                f"/rest/v1/{self.table}",
                access_token=self.session.access_token,
                params=params,
                json=json,
                headers=headers,
            )
        )
        return [] if rows is None else rows

    @staticmethod
    def _parse_rows(rows: Any) -> list[MenuItem]:
        if not isinstance(rows, list):
            raise ExternalAPIError(SERVICE, "Unexpected response shape for menu rows")
        try:
            return [MenuItem.model_validate(row) for row in rows]
        except ValidationError as exc:
            raise ExternalAPIError(SERVICE, f"Invalid menu row: {exc}") from exc
