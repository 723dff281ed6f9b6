"""View-model for the menu administration page.

One :class:`AdminMenuPage` lives for as long as an admin keeps the page open.
Mounting runs the session guard, the initial load and opens the change
subscription; :meth:`AdminMenuPage.unmount` releases that subscription.
Handlers catch backend failures at their boundary and turn them into toasts.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from urllib.parse import urlencode

import anyio
import structlog
from pydantic import BaseModel

from menu_admin.admin import notifications
from menu_admin.admin.notifications import NOTICE_SESSION_INVALID, NOTICE_SIGNED_OUT, Toast
from menu_admin.auth.session import LOGIN_ROUTE, AdminSession, AuthContext
from menu_admin.core.errors import ExternalAPIError
from menu_admin.menu.models import ChangeEvent, MenuItem, MenuItemUpdate
from menu_admin.menu.repository import MenuRepository, Subscription

logger = structlog.get_logger(__name__)

Confirm = Callable[[str], bool]


class Redirect(BaseModel):
    path: str
    notice: str | None = None

    @property
    def url(self) -> str:
        if self.notice:
            return f"{self.path}?{urlencode({'notice': self.notice})}"
        return self.path


class AdminMenuPage:
    def __init__(self, page_id: str, repository: MenuRepository, auth: AuthContext) -> None:
        self.page_id = page_id
        self.items: list[MenuItem] = []
        self.loading = False
        self.selected_item: MenuItem | None = None
        self.is_editing = False
        self.toasts: list[Toast] = []
        self.redirect: Redirect | None = None
        self.mounted = False
        self.version = 0
        self.last_seen = time.monotonic()
        self._repository = repository
        self._auth = auth
        self._subscription: Subscription | None = None
        self._changed = asyncio.Event()

    @property
    def session(self) -> AdminSession:
        return self._auth.session

    @property
    def show_spinner(self) -> bool:
        return self.loading and not self.items

    def find_item(self, item_id: str) -> MenuItem | None:
        return next((item for item in self.items if item.id == item_id), None)

    async def mount(self) -> bool:
        """Guard, load and subscribe once. Returns False when the guard redirected."""
        if self.mounted:
            return True
        if not await self.check_access():
            return False
        self.mounted = True
        await self.load_items()
        self._subscription = await self._repository.subscribe(self._on_change)
        logger.info("admin_page_mounted", page_id=self.page_id)
        return True

    async def unmount(self) -> None:
        self.mounted = False
        subscription, self._subscription = self._subscription, None
        if subscription is not None:
            await subscription.close()
            logger.info("admin_page_unmounted", page_id=self.page_id)
        self._touch()

    async def check_access(self) -> bool:
        try:
            authenticated = await self._auth.is_authenticated()
        except ExternalAPIError as exc:
            logger.error("auth_check_failed", page_id=self.page_id, error=str(exc))
            if self.session.dev_authenticated:
                return True
            self.redirect = Redirect(path=LOGIN_ROUTE)
            return False

        if not authenticated and not self.session.dev_authenticated:
            logger.info("admin_access_denied", page_id=self.page_id)
            self.redirect = Redirect(path=LOGIN_ROUTE, notice=NOTICE_SESSION_INVALID)
            return False
        return True

    async def load_items(self) -> None:
        self.loading = True
        self._touch()
        try:
            snapshot = await self._repository.list_items()
        except ExternalAPIError as exc:
            logger.error("menu_load_failed", page_id=self.page_id, error=str(exc))
            self.notify(notifications.load_failed(str(exc)))
            return
        finally:
            self.loading = False

        self.items = list(snapshot.items)
        if snapshot.simulated:
            self.notify(notifications.development_mode())
        self._touch()

    async def update_item(self, item_id: str, changes: MenuItemUpdate) -> bool:
        """Persist ``changes``, then reload and close the editor.

        The returned row replaces the local copy before the reload. In
        development mode with the backend down that row is simulated, and the
        reload brings back the sample dataset, so the edit does not outlive it.
        On failure the editor stays open and False is returned.
        """
        self.loading = True
        try:
            updated = await self._repository.update_item(item_id, changes)
        except ExternalAPIError as exc:
            logger.error("menu_update_failed", page_id=self.page_id, item_id=item_id, error=str(exc))
            self.notify(notifications.update_failed(str(exc)))
            return False
        finally:
            self.loading = False

        if updated is not None:
            self._replace_local(updated)
        self.notify(notifications.update_succeeded())
        await self.load_items()
        self.close_editor()
        return True

    async def delete_item(self, item_id: str, confirm: Confirm) -> bool:
        if not confirm(notifications.DELETE_CONFIRMATION):
            return False

        self.loading = True
        try:
            await self._repository.delete_item(item_id)
        except ExternalAPIError as exc:
            logger.error("menu_delete_failed", page_id=self.page_id, item_id=item_id, error=str(exc))
            self.notify(notifications.delete_failed(str(exc)))
            return False
        finally:
            self.loading = False

        self.items = [item for item in self.items if item.id != item_id]
        self.notify(notifications.delete_succeeded())
        await self.load_items()
        return True

    async def sign_out(self) -> None:
        try:
            await self._auth.sign_out()
        except ExternalAPIError as exc:
            logger.warning("sign_out_failed", page_id=self.page_id, error=str(exc))
        self.notify(notifications.signed_out())
        self.redirect = Redirect(path=LOGIN_ROUTE, notice=NOTICE_SIGNED_OUT)
        await self.unmount()

    def add_item(self) -> None:
        self.notify(notifications.coming_soon())

    def open_editor(self, item_id: str) -> bool:
        item = self.find_item(item_id)
        if item is None:
            self.notify(notifications.item_not_found())
            return False
        self.selected_item = item
        self.is_editing = True
        self._touch()
        return True

    def close_editor(self) -> None:
        self.is_editing = False
        self.selected_item = None
        self._touch()

    def notify(self, toast: Toast) -> None:
        logger.info("toast_shown", page_id=self.page_id, title=toast.title, variant=toast.variant)
        self.toasts.append(toast)
        self._touch()

    def drain_toasts(self) -> list[Toast]:
        toasts, self.toasts = self.toasts, []
        return toasts

    async def wait_for_change(self, version: int, timeout: float) -> int:
        """Block until :attr:`version` moves past ``version`` or ``timeout`` elapses."""
        if self.version != version:
            return self.version
        changed = self._changed
        with anyio.move_on_after(timeout):
            await changed.wait()
        return self.version

    async def _on_change(self, event: ChangeEvent) -> None:
        if not self.mounted:
            return
        logger.info("menu_change_received", page_id=self.page_id, type=event.type)
        await self.load_items()

    def _replace_local(self, updated: MenuItem) -> None:
        for index, item in enumerate(self.items):
            if item.id == updated.id:
                self.items[index] = updated
                return

    def _touch(self) -> None:
        self.version += 1
        self._changed.set()
        self._changed = asyncio.Event()
