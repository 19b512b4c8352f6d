"""FastAPI application entry point.

Run with: uvicorn src.main:app --reload --port 8000

User routes live under /api (JWT bearer), service-to-service routes under
/internal/v1 (INTERNAL_SERVICE_TOKEN bearer).
"""

# ruff: noqa: E402  -- uvloop.install() must run before other imports

import uvloop

uvloop.install()

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy import text

from config.settings import settings
from src.bp_common.database import engine
from src.bp_common.errors import AppError
from src.bp_common.redis_client import close_redis, ping_redis
from src.bp_common.response import error_response
from src.bp_gateway.middleware.request_log import RequestLogMiddleware
from src.bp_ledger.api.router import router as budget_router
from src.bp_order.api.router import router as order_router
from src.bp_ranking.api.router import router as ranking_router
from src.bp_room.api.internal_router import router as room_internal_router
from src.bp_room.api.router import router as room_router
from src.bp_settlement.api.internal_router import router as settlement_internal_router
from src.bp_settlement.api.router import router as settlement_router

logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup: verify DB + Redis connections. Shutdown: dispose."""
    async with engine.connect() as conn:
        await conn.execute(text("SELECT 1"))
    await ping_redis()
    yield
    await engine.dispose()
    await close_redis()


app = FastAPI(
    title=settings.APP_NAME,
    version="0.1.0",
    lifespan=lifespan,
)


app.add_middleware(RequestLogMiddleware)


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    resp = error_response(exc.code, exc.message, exc.reason)
    resp.request_id = getattr(request.state, "request_id", resp.request_id)
    return JSONResponse(
        status_code=exc.http_status,
        content=resp.model_dump(),
    )


app.include_router(room_router, prefix="/api")
app.include_router(order_router, prefix="/api")
app.include_router(ranking_router, prefix="/api")
app.include_router(settlement_router, prefix="/api")

app.include_router(budget_router, prefix="/internal/v1")
app.include_router(room_internal_router, prefix="/internal/v1")
app.include_router(settlement_internal_router, prefix="/internal/v1")


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok", "version": "0.1.0"}
