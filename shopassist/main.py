import asyncio
import logging
import os
import time
from contextlib import asynccontextmanager, suppress

from fastapi import FastAPI
from loguru import logger

from shopassist.routers import chat, metrics
from shopassist.services.chatbot import ChatConfig, build_chat_service
from shopassist.services.sessions import SessionStore
from shopassist.utils import slog
from shopassist.utils.logging import setup_logging
from shopassist.utils.metrics import record_endpoint

SESSION_MAX_AGE_HOURS = float(os.getenv("SESSION_MAX_AGE_HOURS", "24"))
SESSION_SWEEP_INTERVAL_HOURS = float(os.getenv("SESSION_SWEEP_INTERVAL_HOURS", "6"))
UNMATCHED_ROUTE = "<unmatched>"


async def _sweep_sessions(store: SessionStore, max_age_hours: float, interval_hours: float) -> None:
    while True:
        await asyncio.sleep(interval_hours * 3600)
        store.sweep(max_age_hours * 3600)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # startup: logging, session store, chat service, expiry sweeper
    setup_logging()
    store = SessionStore(history_limit=ChatConfig.from_env().history_limit)
    app.state.session_store = store
    app.state.chat_service = build_chat_service(store)
    sweeper = asyncio.create_task(
        _sweep_sessions(store, SESSION_MAX_AGE_HOURS, SESSION_SWEEP_INTERVAL_HOURS)
    )
    logger.info("[app] started")
    yield
    # shutdown: stop the sweeper
    sweeper.cancel()
    with suppress(asyncio.CancelledError):
        await sweeper
    logger.info("[app] stopped")


app = FastAPI(
    title="ShopAssist",
    description="Conversational product recommendations for a vitamin & supplement store.",
    version="0.1.0",
    lifespan=lifespan,
)


def _route_template(request) -> str:
    # metrics keyed by route template; raw paths carry session ids
    route = request.scope.get("route")
    return getattr(route, "path", None) or UNMATCHED_ROUTE


@app.middleware("http")
async def _logging_middleware(request, call_next):
    start = time.perf_counter()
    req_id = slog.request_id_from(request.headers)
    client_ip = request.client.host if request.client else None
    try:
        response = await call_next(request)
    except Exception as e:
        latency_ms = int((time.perf_counter() - start) * 1000)
        ctx = getattr(request.state, "log_context", {})
        slog.log_event(
            "request.error",
            level=logging.ERROR,
            request_id=req_id,
            path=str(request.url.path),
            method=request.method,
            latency_ms=latency_ms,
            client_ip=client_ip,
            error=str(e),
            **(ctx or {}),
        )
        raise
    latency_ms = int((time.perf_counter() - start) * 1000)
    ctx = getattr(request.state, "log_context", {}) or {}
    slog.finalize_request_log(
        request_id=req_id,
        method=request.method,
        path=str(request.url.path),
        status=response.status_code,
        latency_ms=latency_ms,
        client_ip=client_ip,
        ctx=ctx,
    )
    record_endpoint(
        method=request.method,
        path=_route_template(request),
        latency_ms=latency_ms,
        status=response.status_code,
    )
    response.headers[slog.REQUEST_ID_HEADER] = req_id
    return response


app.include_router(chat.router)
app.include_router(metrics.router)
