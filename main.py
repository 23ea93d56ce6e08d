"""
main.py
GetLife API entry point: wires the per-domain routers, middleware stack,
error translation and the startup/shutdown hooks into one FastAPI app.
"""

import json
import logging
import os
import time
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

import config.redis_client as redis_state
from config.database import AsyncSessionLocal, close_db, init_db
from config.redis_client import SessionGuard, close_redis, init_redis
from config.settings import settings
from shared.utils.errors import AppError, StoreError

from services.admin.router import router as admin_router
from services.auth.router import router as auth_router
from services.balance.router import router as balance_router
from services.catalog.router import router as catalog_router
from services.chat.router import router as chat_router
from services.mitra.router import router as mitra_router
from services.order.router import router as order_router
from services.user.router import router as user_router
from services.voucher.router import router as voucher_router

from tasks.bootstrap_admin import bootstrap_admin
from tasks.seed_catalog import seed_catalog

ROUTERS = (
    auth_router,
    user_router,
    catalog_router,
    order_router,
    mitra_router,
    balance_router,
    voucher_router,
    chat_router,
    admin_router,
)

# Never counted against the unauthenticated rate limit
UNLIMITED_PATHS = frozenset({"/", "/health", "/metrics", "/docs", "/redoc", "/openapi.json"})


# ── Logging ───────────────────────────────────────────────────

class JSONFormatter(logging.Formatter):
    """One JSON object per log line."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "instance": os.getenv("INSTANCE_NAME", "unknown"),
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry)


def configure_logging() -> None:
    handler = logging.StreamHandler()
    handler.setFormatter(JSONFormatter())
    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(logging.DEBUG if settings.DEBUG else logging.INFO)


configure_logging()
logger = logging.getLogger(__name__)


# ── Lifecycle ─────────────────────────────────────────────────

@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_db()
    await init_redis()
    logger.info("Database and Redis connected")

    if settings.APP_ENV == "development":
        await seed_catalog()
    await bootstrap_admin()

    logger.info(f"{settings.APP_NAME} v{settings.APP_VERSION} started")
    yield

    await close_redis()
    await close_db()
    logger.info(f"{settings.APP_NAME} stopped")


# ── Middleware ────────────────────────────────────────────────

async def tag_request(request: Request, call_next):
    """Propagate or mint X-Request-ID and report handling time in X-Process-Time."""
    request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
    request.state.request_id = request_id

    started = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - started) * 1000

    response.headers["X-Request-ID"] = request_id
    response.headers["X-Process-Time"] = f"{elapsed_ms:.2f}ms"
    return response


async def limit_anonymous_traffic(request: Request, call_next):
    """
    Per-IP fixed window for requests without a bearer token, which covers
    sign-in and sign-up guessing. Lets traffic through when Redis is down.
    """
    anonymous = not request.headers.get("Authorization", "").startswith("Bearer ")
    client = redis_state.redis_client
    if not anonymous or client is None or request.url.path in UNLIMITED_PATHS:
        return await call_next(request)

    client_ip = request.client.host if request.client else "unknown"
    try:
        allowed = await SessionGuard(client).allow_request(
            f"unauth:{client_ip}", settings.RATE_LIMIT_UNAUTH_PER_MINUTE
        )
    except Exception as e:
        logger.error(f"Rate limiter unavailable: {e}")
        allowed = True

    if allowed:
        return await call_next(request)

    logger.warning(f"Rate limit exceeded for {client_ip}")
    return JSONResponse(
        status_code=429,
        content={"detail": "Terlalu banyak permintaan, coba lagi nanti", "code": "RATE_LIMITED"},
        headers={"Retry-After": "60"},
    )


# ── Error translation ────────────────────────────────────────

def _request_id(request: Request):
    return getattr(request.state, "request_id", None)


async def handle_app_error(request: Request, exc: AppError):
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "code": exc.code},
        headers=exc.headers,
    )


async def handle_store_error(request: Request, exc: SQLAlchemyError):
    """Any data-store failure that escaped a router surfaces as STORE_UNAVAILABLE."""
    request_id = _request_id(request)
    logger.error(f"[{request_id}] Store failure: {exc}", exc_info=True)
    err = StoreError("Database is unavailable. Please try again later.")
    return JSONResponse(
        status_code=err.status_code,
        content={"detail": err.detail, "code": err.code, "request_id": request_id},
    )


async def handle_unexpected(request: Request, exc: Exception):
    request_id = _request_id(request)
    logger.error(f"[{request_id}] Unhandled {type(exc).__name__}: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={
            "detail": str(exc) if settings.DEBUG else "An internal server error occurred",
            "code": "INTERNAL_ERROR",
            "request_id": request_id,
        },
    )


# ── Health ────────────────────────────────────────────────────

async def _database_ok() -> bool:
    try:
        async with AsyncSessionLocal() as session:
            await session.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.warning(f"Health check: database unreachable: {e}")
        return False
    return True


async def _redis_ok() -> bool:
    client = redis_state.redis_client
    if client is None:
        return True
    try:
        await client.ping()
    except Exception as e:
        logger.warning(f"Health check: redis unreachable: {e}")
        return False
    return True


async def health_check():
    components = {
        "database": "ok" if await _database_ok() else "error",
        "redis": "ok" if await _redis_ok() else "error",
    }
    healthy = all(state == "ok" for state in components.values())
    body = {"status": "ok" if healthy else "degraded", "version": settings.APP_VERSION, **components}
    return JSONResponse(content=body, status_code=200 if healthy else 503)


# ── App factory ───────────────────────────────────────────────

API_DESCRIPTION = """
GetLife connects customers with verified mitra partners for home cleaning
and massage.

* **user**: place orders, top up balance, redeem vouchers, chat with the assigned mitra
* **mitra**: submit identity documents, accept open orders for a commission, run them to completion
* **admin**: review verifications, block accounts, manage vouchers and banners, read stats

Send `Authorization: Bearer <access_token>` from `/auth/signup` or `/auth/signin`.
"""


def create_app() -> FastAPI:
    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description=API_DESCRIPTION,
        lifespan=lifespan,
    )

    # add_middleware wraps: the last one added runs first
    app.add_middleware(GZipMiddleware, minimum_size=500)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "X-Process-Time"],
    )
    app.middleware("http")(limit_anonymous_traffic)
    app.middleware("http")(tag_request)
    app.add_middleware(TrustedHostMiddleware, allowed_hosts=settings.allowed_hosts_list)

    app.add_exception_handler(AppError, handle_app_error)
    app.add_exception_handler(SQLAlchemyError, handle_store_error)
    app.add_exception_handler(Exception, handle_unexpected)

    app.add_api_route("/health", health_check, methods=["GET"], include_in_schema=False)

    @app.get("/", include_in_schema=False)
    async def root():
        return {"name": settings.APP_NAME, "version": settings.APP_VERSION, "docs": "/docs"}

    for router in ROUTERS:
        app.include_router(router)

    Instrumentator().instrument(app).expose(app, endpoint="/metrics", tags=["Monitoring"])
    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        workers=1 if settings.DEBUG else settings.WORKERS,
        log_level="debug" if settings.DEBUG else "info",
    )
