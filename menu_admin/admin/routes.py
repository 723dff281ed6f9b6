from __future__ import annotations

import json
import secrets
from pathlib import Path

import structlog
from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import HTMLResponse, RedirectResponse, Response, StreamingResponse
from fastapi.templating import Jinja2Templates

from menu_admin.admin import notifications
from menu_admin.admin.forms import parse_edit_form
from menu_admin.admin.page import AdminMenuPage
from menu_admin.admin.registry import PageRegistry
from menu_admin.auth.session import (
    ACCESS_TOKEN_COOKIE,
    DEV_FLAG_COOKIE,
    LOGIN_ROUTE,
    PAGE_COOKIE,
    AdminSession,
    AuthContext,
)
from menu_admin.backend.auth import SupabaseAuth
from menu_admin.backend.rest import SupabaseMenuRepository
from menu_admin.core.config import settings
from menu_admin.core.errors import ExternalAPIError
from menu_admin.core.limits import limiter
from menu_admin.core.logging import page_id_ctx
from menu_admin.menu.repository import (
    DevelopmentFallbackRepository,
    InMemoryMenuRepository,
    MenuRepository,
)
from menu_admin.menu.sample_data import sample_menu_items

logger = structlog.get_logger(__name__)

MENU_ROUTE = "/admin/menu"

router = APIRouter()
templates = Jinja2Templates(directory=str(Path(__file__).resolve().parent.parent / "templates"))

auth_client = SupabaseAuth()
_memory_store: InMemoryMenuRepository | None = None


def _primary_repository(session: AdminSession) -> MenuRepository:
    global _memory_store
    if settings.menu_backend == "memory":
        if _memory_store is None:
            _memory_store = InMemoryMenuRepository(sample_menu_items())
        return _memory_store
    return SupabaseMenuRepository(session)


def build_admin_page(page_id: str, session: AdminSession) -> AdminMenuPage:
    repository = DevelopmentFallbackRepository(_primary_repository(session), session)
    return AdminMenuPage(page_id, repository, AuthContext(session, auth_client))


registry = PageRegistry(build_admin_page)


def _see_other(url: str) -> RedirectResponse:
    return RedirectResponse(url, status_code=303)


def _live_context(page: AdminMenuPage) -> dict[str, object]:
    return {
        "page": page,
        "items": page.items,
        "toasts": page.drain_toasts(),
        "selected": page.selected_item if page.is_editing else None,
    }


async def _mounted_page(request: Request) -> AdminMenuPage | None:
    page = registry.get(request.cookies.get(PAGE_COOKIE))
    if page is None or not page.mounted:
        return None
    page_id_ctx.set(page.page_id)
    page.session.refresh_from(AdminSession.from_cookies(request.cookies))
    return page


@router.get(LOGIN_ROUTE, response_class=HTMLResponse)
async def login_page(request: Request, notice: str | None = None) -> Response:
    toast = notifications.notice_toast(notice)
    return templates.TemplateResponse(
        request,
        "admin/login.html",
        {"toasts": [toast] if toast else [], "dev_mode": settings.dev_mode_enabled},
    )


def _dev_credentials_match(email: str, password: str) -> bool:
    if not settings.dev_mode_enabled or not settings.dev_admin_password:
        return False
    return secrets.compare_digest(email, settings.dev_admin_email) and secrets.compare_digest(
        password, settings.dev_admin_password
    )


@router.post(f"{LOGIN_ROUTE}/login")
@limiter.limit(settings.login_rate_limit)
async def login(request: Request) -> Response:
    form = await request.form()
    email = str(form.get("email", "")).strip()
    password = str(form.get("password", ""))
    session = AdminSession()

    try:
        session.access_token = await auth_client.sign_in_with_password(email, password)
    except ExternalAPIError as exc:
        logger.warning("sign_in_failed", status_code=exc.status_code, error=str(exc))
        if not _dev_credentials_match(email, password):
            return templates.TemplateResponse(
                request,
                "admin/login.html",
                {
                    "toasts": [notifications.sign_in_failed(str(exc))],
                    "dev_mode": settings.dev_mode_enabled,
                },
                status_code=401,
            )
        logger.info("dev_sign_in")
        session.dev_authenticated = True

    response = _see_other(MENU_ROUTE)
    session.write_cookies(response)
    return response


@router.get(MENU_ROUTE, response_class=HTMLResponse)
async def menu_page(request: Request) -> Response:
    page = await registry.open(
        request.cookies.get(PAGE_COOKIE), AdminSession.from_cookies(request.cookies)
    )
    page_id_ctx.set(page.page_id)
    if not await page.mount():
        await registry.close(page.page_id)
        response = _see_other(page.redirect.url if page.redirect else LOGIN_ROUTE)
        response.delete_cookie(PAGE_COOKIE)
        return response

    response = templates.TemplateResponse(request, "admin/menu.html", _live_context(page))
    response.set_cookie(
        PAGE_COOKIE, page.page_id, httponly=True, samesite="lax", secure=settings.cookie_secure
    )
    return response


@router.get(f"{MENU_ROUTE}/grid", response_class=HTMLResponse)
async def menu_grid(request: Request) -> Response:
    page = await _mounted_page(request)
    if page is None:
        raise HTTPException(status_code=404, detail="Page not mounted")
    return templates.TemplateResponse(request, "admin/_live.html", _live_context(page))


@router.get(f"{MENU_ROUTE}/events")
async def menu_events(request: Request) -> StreamingResponse:
    """Stream a ``menu`` event whenever the mounted page changes."""
    page = await _mounted_page(request)
    if page is None:
        raise HTTPException(status_code=404, detail="Page not mounted")

    async def event_gen():
        version = page.version
        while True:
            if await request.is_disconnected():
                break
            current = await page.wait_for_change(version, settings.sse_keepalive_interval)
            if not page.mounted:
                yield "event: closed\ndata: {}\n\n"
                break
            if current == version:
                yield ":keepalive\n\n"
                continue
            version = current
            yield f"event: menu\nid: {version}\ndata: {json.dumps({'version': version})}\n\n"

    return StreamingResponse(event_gen(), media_type="text/event-stream")


@router.get(f"{MENU_ROUTE}/items/{{item_id}}/edit")
async def open_editor(request: Request, item_id: str) -> Response:
    page = await _mounted_page(request)
    if page is not None:
        page.open_editor(item_id)
    return _see_other(MENU_ROUTE)


@router.post(f"{MENU_ROUTE}/editor/cancel")
async def cancel_editor(request: Request) -> Response:
    page = await _mounted_page(request)
    if page is not None:
        page.close_editor()
    return _see_other(MENU_ROUTE)


@router.post(f"{MENU_ROUTE}/items/new")
async def add_item(request: Request) -> Response:
    page = await _mounted_page(request)
    if page is not None:
        page.add_item()
    return _see_other(MENU_ROUTE)


@router.post(f"{MENU_ROUTE}/items/{{item_id}}")
@limiter.limit(settings.admin_rate_limit)
async def save_item(request: Request, item_id: str) -> Response:
    page = await _mounted_page(request)
    if page is None:
        return _see_other(MENU_ROUTE)

    current = page.find_item(item_id)
    if current is None:
        page.notify(notifications.item_not_found())
        page.close_editor()
        return _see_other(MENU_ROUTE)

    changes = parse_edit_form(await request.form(), current)
    if changes.is_empty():
        page.close_editor()
    else:
        await page.update_item(item_id, changes)
    return _see_other(MENU_ROUTE)


@router.post(f"{MENU_ROUTE}/items/{{item_id}}/delete")
@limiter.limit(settings.admin_rate_limit)
async def delete_item(request: Request, item_id: str) -> Response:
    page = await _mounted_page(request)
    if page is None:
        return _see_other(MENU_ROUTE)

    form = await request.form()
    confirmed = form.get("confirmed") == "yes"
    await page.delete_item(item_id, confirm=lambda _prompt: confirmed)
    return _see_other(MENU_ROUTE)


@router.post("/admin/signout")
async def sign_out(request: Request) -> Response:
    page = await registry.open(
        request.cookies.get(PAGE_COOKIE), AdminSession.from_cookies(request.cookies)
    )
    page_id_ctx.set(page.page_id)
    await page.sign_out()
    await registry.close(page.page_id)

    response = _see_other(page.redirect.url if page.redirect else LOGIN_ROUTE)
    for cookie in (DEV_FLAG_COOKIE, ACCESS_TOKEN_COOKIE, PAGE_COOKIE):
        response.delete_cookie(cookie)
    return response
