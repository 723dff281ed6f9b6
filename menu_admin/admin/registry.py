from __future__ import annotations

import time
import uuid
from collections.abc import Callable

import structlog

from menu_admin.admin.page import AdminMenuPage
from menu_admin.auth.session import AdminSession
from menu_admin.core.config import settings

logger = structlog.get_logger(__name__)

PageFactory = Callable[[str, AdminSession], AdminMenuPage]


class PageRegistry:
    """Mounted admin pages keyed by the browser's page cookie."""

    def __init__(self, factory: PageFactory, idle_timeout: float | None = None) -> None:
        self._factory = factory
        self._idle_timeout = idle_timeout if idle_timeout is not None else settings.page_idle_timeout
        self._pages: dict[str, AdminMenuPage] = {}

    def __len__(self) -> int:
        return len(self._pages)

    def get(self, page_id: str | None) -> AdminMenuPage | None:
        if not page_id:
            return None
        page = self._pages.get(page_id)
        if page is not None:
            page.last_seen = time.monotonic()
        return page

    async def open(self, page_id: str | None, session: AdminSession) -> AdminMenuPage:
        await self.evict_idle()
        page = self.get(page_id)
        if page is None:
            page = self._factory(uuid.uuid4().hex, session)
            self._pages[page.page_id] = page
            logger.info("admin_page_created", page_id=page.page_id)
        else:
            page.session.refresh_from(session)
        return page

    async def close(self, page_id: str) -> None:
        page = self._pages.pop(page_id, None)
        if page is not None:
            await page.unmount()

    async def evict_idle(self) -> int:
        cutoff = time.monotonic() - self._idle_timeout
        stale = [page_id for page_id, page in self._pages.items() if page.last_seen < cutoff]
        for page_id in stale:
            logger.info("admin_page_evicted", page_id=page_id)
            await self.close(page_id)
        return len(stale)

    async def close_all(self) -> None:
        for page_id in list(self._pages):
            await self.close(page_id)
