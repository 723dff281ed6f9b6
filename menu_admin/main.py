from __future__ import annotations

import uuid
from contextlib import asynccontextmanager

import anyio
import requests
import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from menu_admin.admin import routes as admin_routes
from menu_admin.auth.session import PAGE_COOKIE
from menu_admin.core.config import settings
from menu_admin.core.errors import ExternalAPIError
from menu_admin.core.limits import limiter
from menu_admin.core.logging import configure_logging, page_id_ctx, request_id_ctx
from menu_admin.core.sentry import init_sentry

configure_logging(settings.log_level)
init_sentry()
logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("service_started", menu_backend=settings.menu_backend)
    if settings.menu_backend == "supabase" and not settings.supabase_anon_key:
        logger.warning("supabase_anon_key_missing")
    try:
        yield
    finally:
        await admin_routes.registry.close_all()
        logger.info("service_stopped")


app = FastAPI(title=settings.app_name, lifespan=lifespan)
app.state.limiter = limiter
app.add_middleware(SlowAPIMiddleware)
app.include_router(admin_routes.router)


@app.middleware("http")
async def add_request_context(request: Request, call_next):
    request_id = request.headers.get("x-request-id") or str(uuid.uuid4())

    request_id_token = request_id_ctx.set(request_id)
    page_id_token = page_id_ctx.set(request.cookies.get(PAGE_COOKIE))

    try:
        response = await call_next(request)
    finally:
        request_id_ctx.reset(request_id_token)
        page_id_ctx.reset(page_id_token)

    response.headers["x-request-id"] = request_id
    return response


@app.exception_handler(RequestValidationError)
async def on_validation_error(request: Request, exc: RequestValidationError):
    logger.warning("request_invalid", path=request.url.path, errors=exc.errors())
    return JSONResponse(status_code=422, content={"detail": exc.errors()})


@app.exception_handler(ExternalAPIError)
async def on_backend_error(request: Request, exc: ExternalAPIError):
    logger.warning(
        "backend_unavailable",
        path=request.url.path,
        service=exc.service,
        status_code=exc.status_code,
        backend_path=exc.path,
    )
    return JSONResponse(status_code=503, content={"detail": f"{exc.service} is unavailable"})


@app.exception_handler(RateLimitExceeded)
async def on_rate_limited(request: Request, exc: RateLimitExceeded):
    logger.warning("rate_limited", path=request.url.path, limit=str(exc.detail))
    return JSONResponse(status_code=429, content={"detail": "Too many requests"})


@app.exception_handler(Exception)
async def on_unhandled_error(request: Request, exc: Exception):
    logger.exception("unhandled_error", path=request.url.path)
    return JSONResponse(status_code=500, content={"detail": "Internal Server Error"})


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}


READY_TIMEOUT = 1.5
SUPABASE_PROBES = {
    "supabase_auth": "/auth/v1/health",
    "supabase_rest": "/rest/v1/",
}


def _probe_supabase(path: str) -> None:
    response = requests.get(
        f"{settings.supabase_url.rstrip('/')}{path}",
        headers={"apikey": settings.supabase_anon_key},
        timeout=READY_TIMEOUT,
    )
    response.raise_for_status()


@app.get("/ready")
async def ready() -> JSONResponse:
    """Report whether the configured menu backend answers."""
    if settings.menu_backend == "memory":
        return JSONResponse({"status": "ok", "checks": {"menu_backend": {"status": "ok"}}})

    checks: dict[str, dict[str, str]] = {}
    for name, path in SUPABASE_PROBES.items():
        try:
            with anyio.fail_after(READY_TIMEOUT):
                await anyio.to_thread.run_sync(_probe_supabase, path)
        except Exception as exc:  # noqa: BLE001 - any probe failure means not ready
            logger.warning("readiness_probe_failed", probe=name, error=str(exc))
            checks[name] = {"status": "error", "error": str(exc)}
        else:
            checks[name] = {"status": "ok"}

    healthy = all(check["status"] == "ok" for check in checks.values())
    return JSONResponse(
        status_code=200 if healthy else 503,
        content={"status": "ok" if healthy else "error", "checks": checks},
    )
