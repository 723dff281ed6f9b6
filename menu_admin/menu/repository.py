from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Iterable

import structlog

from menu_admin.auth.session import AdminSession
from menu_admin.core.config import settings
from menu_admin.core.errors import ExternalAPIError
from menu_admin.menu.models import ChangeEvent, MenuItem, MenuItemUpdate, MenuSnapshot
from menu_admin.menu.sample_data import sample_menu_items

logger = structlog.get_logger(__name__)

ChangeHandler = Callable[[ChangeEvent], Awaitable[None]]


class Subscription(ABC):
    @abstractmethod
    async def close(self) -> None:
        raise NotImplementedError


class MenuRepository(ABC):
    @abstractmethod
    async def list_items(self) -> MenuSnapshot:
        raise NotImplementedError

    @abstractmethod
    async def update_item(self, item_id: str, changes: MenuItemUpdate) -> MenuItem | None:
        raise NotImplementedError

    @abstractmethod
    async def delete_item(self, item_id: str) -> None:
        raise NotImplementedError

    @abstractmethod
    async def subscribe(self, on_change: ChangeHandler) -> Subscription:
        raise NotImplementedError


class _ListenerSubscription(Subscription):
    def __init__(self, owner: InMemoryMenuRepository, on_change: ChangeHandler) -> None:
        self._owner = owner
        self._on_change = on_change

    async def close(self) -> None:
        self._owner._listeners = [
            listener for listener in self._owner._listeners if listener is not self._on_change
        ]


class InMemoryMenuRepository(MenuRepository):
    """Menu table kept in process memory.

    Used as the backend in development builds and tests, and as the local
    mirror behind :class:`DevelopmentFallbackRepository`. Mutations notify
    subscribers the way the realtime channel would.
    """

    def __init__(self, items: Iterable[MenuItem] | None = None) -> None:
        self._items: list[MenuItem] = [item.model_copy(deep=True) for item in items or []]
        self._listeners: list[ChangeHandler] = []

    def snapshot_items(self) -> list[MenuItem]:
        return [item.model_copy(deep=True) for item in self._items]

    def replace_all(self, items: Iterable[MenuItem]) -> None:
        self._items = [item.model_copy(deep=True) for item in items]

    async def list_items(self) -> MenuSnapshot:
        return MenuSnapshot(items=self.snapshot_items())

    async def update_item(self, item_id: str, changes: MenuItemUpdate) -> MenuItem | None:
        for index, item in enumerate(self._items):
            if item.id == item_id:
                updated = item.apply(changes)
                self._items[index] = updated
                await self._emit("UPDATE", updated)
                return updated.model_copy(deep=True)
        return None

    async def delete_item(self, item_id: str) -> None:
        removed = [item for item in self._items if item.id == item_id]
        self._items = [item for item in self._items if item.id != item_id]
        for item in removed:
            await self._emit("DELETE", item)

    async def subscribe(self, on_change: ChangeHandler) -> Subscription:
        self._listeners.append(on_change)
        return _ListenerSubscription(self, on_change)

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    async def _emit(self, change_type: str, item: MenuItem) -> None:
        event = ChangeEvent(type=change_type, table=settings.menu_table, record=item.to_row())
        for listener in list(self._listeners):
            await listener(event)


class DevelopmentFallbackRepository(MenuRepository):
    """Route menu operations to the backend, simulating success in development mode.

    When the backend fails and the session carries the development flag:

    * every failed read returns the built-in sample dataset, so the reload
      that follows a simulated write shows the sample rows again;
    * updates and deletes are applied to a local store holding the rows the
      page last received, and the changed item is returned as if persisted.

    Without the development flag every backend error propagates unchanged.
    """

    def __init__(self, primary: MenuRepository, session: AdminSession) -> None:
        self._primary = primary
        self._session = session
        self._local = InMemoryMenuRepository()

    async def list_items(self) -> MenuSnapshot:
        try:
            snapshot = await self._primary.list_items()
        except ExternalAPIError as exc:
            if not self._session.dev_authenticated:
                raise
            logger.warning("menu_read_fallback", error=str(exc))
            self._local.replace_all(sample_menu_items())
            return MenuSnapshot(items=self._local.snapshot_items(), simulated=True)

        self._local.replace_all(snapshot.items)
        return snapshot

    async def update_item(self, item_id: str, changes: MenuItemUpdate) -> MenuItem | None:
        try:
            return await self._primary.update_item(item_id, changes)
        except ExternalAPIError as exc:
            if not self._session.dev_authenticated:
                raise
            logger.warning("menu_update_simulated", item_id=item_id, error=str(exc))
            return await self._local.update_item(item_id, changes)

    async def delete_item(self, item_id: str) -> None:
        try:
            await self._primary.delete_item(item_id)
        except ExternalAPIError as exc:
            if not self._session.dev_authenticated:
                raise
            logger.warning("menu_delete_simulated", item_id=item_id, error=str(exc))
            await self._local.delete_item(item_id)

    async def subscribe(self, on_change: ChangeHandler) -> Subscription:
        return await self._primary.subscribe(on_change)
