from __future__ import annotations

from typing import Any

import pytest

from menu_admin.admin.page import AdminMenuPage
from menu_admin.admin.registry import PageRegistry
from menu_admin.auth.session import AdminSession, AuthContext
from menu_admin.core.errors import ExternalAPIError
from menu_admin.menu.models import MenuItem, MenuItemUpdate, MenuSnapshot
from menu_admin.menu.repository import (
    ChangeHandler,
    DevelopmentFallbackRepository,
    InMemoryMenuRepository,
    MenuRepository,
    Subscription,
)

BACKEND_ROWS = [
    {
        "id": "3",
        "name": {"en": "Aji de Gallina", "es": "Ají de Gallina"},
        "description": {
            "en": "Creamy chicken stew with yellow chili",
            "es": "Guiso cremoso de pollo con ají amarillo",
        },
        "price": "$13.50",
        "category": "mainDish",
        "isPopular": False,
        "isVegetarian": False,
        "ingredients": ["chicken", "aji amarillo", "bread", "milk"],
        "image": "/images/aji.jpg",
    },
    {
        "id": "1",
        "name": {"en": "Lomo Saltado", "es": "Lomo Saltado"},
        "description": {
            "en": "Stir-fried beef with onions, tomatoes and french fries",
            "es": "Carne de res salteada con cebollas, tomates y papas fritas",
        },
        "price": "$15.99",
        "category": "mainDish",
        "isPopular": True,
        "isVegetarian": False,
        "ingredients": ["beef", "onions", "tomatoes", "soy sauce", "french fries"],
        "image": "/placeholder.svg",
    },
    {
        "id": "2",
        "name": {"en": "Causa Limeña", "es": "Causa Limeña"},
        "description": {
            "en": "Layered potato terrine with avocado",
            "es": "Terrina de papa amarilla con palta",
        },
        "price": "$9.00",
        "category": "coldDishes",
        "isPopular": False,
        "isVegetarian": True,
        "ingredients": ["potato", "avocado", "lime"],
        "image": "/images/causa.jpg",
    },
]


def backend_items() -> list[MenuItem]:
    return [MenuItem.model_validate(row) for row in BACKEND_ROWS]


class CountingSubscription(Subscription):
    def __init__(self, owner: BackendDouble, inner: Subscription) -> None:
        self._owner = owner
        self._inner = inner

    async def close(self) -> None:
        self._owner.subscriptions_closed += 1
        await self._inner.close()


class BackendDouble(MenuRepository):
    """In-memory backend that can be switched into failing reads or writes."""

    def __init__(self, items: list[MenuItem] | None = None) -> None:
        self.store = InMemoryMenuRepository(backend_items() if items is None else items)
        self.fail_reads = False
        self.fail_writes = False
        self.list_calls = 0
        self.write_calls = 0
        self.subscriptions_opened = 0
        self.subscriptions_closed = 0

    def _error(self) -> ExternalAPIError:
        return ExternalAPIError("supabase", "backend unavailable", status_code=503)

    async def list_items(self) -> MenuSnapshot:
        self.list_calls += 1
        if self.fail_reads:
            raise self._error()
        return await self.store.list_items()

    async def update_item(self, item_id: str, changes: MenuItemUpdate) -> MenuItem | None:
        self.write_calls += 1
        if self.fail_writes:
            raise self._error()
        return await self.store.update_item(item_id, changes)

    async def delete_item(self, item_id: str) -> None:
        self.write_calls += 1
        if self.fail_writes:
            raise self._error()
        await self.store.delete_item(item_id)

    async def subscribe(self, on_change: ChangeHandler) -> Subscription:
        self.subscriptions_opened += 1
        return CountingSubscription(self, await self.store.subscribe(on_change))


class FakeAuth:
    def __init__(self) -> None:
        self.user: dict[str, Any] | None = {"id": "admin-1", "email": "admin@example.com"}
        self.error: ExternalAPIError | None = None
        self.sign_in_error: ExternalAPIError | None = None
        self.sign_out_error: ExternalAPIError | None = None
        self.sign_out_calls: list[str] = []

    async def get_user(self, access_token: str) -> dict[str, Any] | None:
        if self.error is not None:
            raise self.error
        return self.user

    async def sign_in_with_password(self, email: str, password: str) -> str:
        if self.sign_in_error is not None:
            raise self.sign_in_error
        return "access-token-1"

    async def sign_out(self, access_token: str) -> None:
        self.sign_out_calls.append(access_token)
        if self.sign_out_error is not None:
            raise self.sign_out_error


@pytest.fixture()
def backend() -> BackendDouble:
    return BackendDouble()


@pytest.fixture()
def fake_auth() -> FakeAuth:
    return FakeAuth()


@pytest.fixture()
def make_page(backend: BackendDouble, fake_auth: FakeAuth):
    def _make(
        *,
        access_token: str | None = "access-token-1",
        dev_authenticated: bool = False,
        page_id: str = "page-1",
    ) -> AdminMenuPage:
        session = AdminSession(access_token=access_token, dev_authenticated=dev_authenticated)
        repository = DevelopmentFallbackRepository(backend, session)
        return AdminMenuPage(page_id, repository, AuthContext(session, fake_auth))

    return _make


@pytest.fixture()
def page_registry(backend: BackendDouble, fake_auth: FakeAuth) -> PageRegistry:
    def factory(page_id: str, session: AdminSession) -> AdminMenuPage:
        repository = DevelopmentFallbackRepository(backend, session)
        return AdminMenuPage(page_id, repository, AuthContext(session, fake_auth))

    return PageRegistry(factory, idle_timeout=3600)
