# main.py — Task collaboration board API
# Features:
# - Request correlation IDs and timing headers
# - Security headers
# - WebSocket board hub
# - Background task archiver
# - Cached single-task reads (X-Cache)
# - Health check with DB verification

import os
import json
import uuid
import time
import logging
from contextlib import asynccontextmanager
from datetime import timedelta

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from sqlalchemy import text

from archiver import TaskArchiver, ARCHIVE_ENABLED, ARCHIVE_INTERVAL_SECONDS, ARCHIVE_DELAY_SECONDS
from auth import RefreshTokenStore
from cache import TaskCache, DEFAULT_TTL_MINUTES
from database import init_db, close_db, seed_db, get_db_context, get_db_session, async_session_maker, engine
from notifications import ConnectionManager, BoardNotifier
from repositories import task_repository_scope
from telemetry import setup_telemetry

# Logging
logging.basicConfig(
    level=getattr(logging, os.getenv("LOG_LEVEL", "INFO").upper(), logging.INFO),
    format="%(asctime)s [%(name)s] %(levelname)s %(message)s",
)
logger = logging.getLogger("taskboard")

VERSION = "1.0.0"


def init_app_state(app: FastAPI) -> None:
    """Create the process-lifetime collaborators request handlers reach via app.state"""
    app.state.task_cache = TaskCache(default_ttl=timedelta(minutes=DEFAULT_TTL_MINUTES))
    app.state.refresh_tokens = RefreshTokenStore()
    app.state.connections = ConnectionManager()
    app.state.notifier = BoardNotifier(app.state.connections)
    app.state.archiver = None


async def teardown_app_state(app: FastAPI) -> None:
    app.state.task_cache.clear()
    app.state.refresh_tokens.clear()
    await app.state.connections.close_all()


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Starting task board API v{VERSION}...")
    await init_db()
    async with get_db_context() as session:
        await seed_db(session)

    init_app_state(app)
    if ARCHIVE_ENABLED:
        app.state.archiver = TaskArchiver(
            task_repository_scope(async_session_maker),
            interval_seconds=ARCHIVE_INTERVAL_SECONDS,
            delay_seconds=ARCHIVE_DELAY_SECONDS,
            cache=app.state.task_cache,
            notifier=app.state.notifier,
        )
        app.state.archiver.start()
    else:
        logger.info("Task archiver disabled (ARCHIVE_ENABLED=false)")

    setup_telemetry(app, engine)
    yield

    logger.info("Shutting down task board API...")
    if app.state.archiver is not None:
        await app.state.archiver.stop()
    await teardown_app_state(app)
    await close_db()


app = FastAPI(
    title="Task Collaboration Board",
    description="Kanban-style task board with live updates and automatic archival",
    version=VERSION,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# ============================================================
# CORS
# ============================================================

ALLOWED_ORIGINS = [
    origin.strip()
    for origin in os.getenv(
        "CORS_ORIGINS",
        "http://localhost:3000,http://localhost:5173"
    ).split(",")
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "X-Request-ID", "X-Correlation-ID"],
    expose_headers=["X-Request-ID", "X-Correlation-ID", "X-Cache"],
)


# ============================================================
# MIDDLEWARE: Correlation IDs + Timing
# ============================================================

@app.middleware("http")
async def correlation_id_middleware(request: Request, call_next):
    request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
    correlation_id = request.headers.get("X-Correlation-ID", request_id)
    request.state.request_id = request_id
    request.state.correlation_id = correlation_id

    start = time.perf_counter()
    response = await call_next(request)
    duration = time.perf_counter() - start

    response.headers["X-Request-ID"] = request_id
    response.headers["X-Correlation-ID"] = correlation_id
    response.headers["X-Response-Time"] = f"{duration:.4f}s"

    logger.info(
        f"{request.method} {request.url.path} → {response.status_code} "
        f"({duration:.3f}s) [rid={request_id[:8]}]"
    )
    return response


# ============================================================
# MIDDLEWARE: Security Headers
# ============================================================

@app.middleware("http")
async def security_headers_middleware(request: Request, call_next):
    response = await call_next(request)
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
    return response


# ============================================================
# EXCEPTION HANDLERS
# ============================================================

@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    # Sanitise errors to ensure JSON serialisability
    errors = []
    for err in exc.errors():
        clean_err = {
            "type": str(err.get("type", "unknown")),
            "loc": list(err.get("loc", [])),
            "msg": str(err.get("msg", "")),
        }
        if "input" in err:
            try:
                json.dumps(err["input"])
                clean_err["input"] = err["input"]
            except (TypeError, ValueError):
                clean_err["input"] = str(err["input"])
        errors.append(clean_err)

    return JSONResponse(
        status_code=422,
        content={
            "detail": errors,
            "request_id": getattr(request.state, "request_id", None),
        },
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={
            "detail": "Internal server error",
            "request_id": getattr(request.state, "request_id", None),
        },
    )


# ============================================================
# ROUTERS
# ============================================================

from routers import auth, tasks, users, websocket_router

app.include_router(auth.router)
app.include_router(tasks.router)
app.include_router(users.router)
app.include_router(websocket_router.router)


# ============================================================
# HEALTH & ROOT
# ============================================================

@app.get("/health")
async def health_check(request: Request):
    """Health check with database connectivity verification"""
    db_status = "unknown"
    try:
        async for db in get_db_session():
            await db.execute(text("SELECT 1"))
            db_status = "connected"
            break
    except Exception as e:
        db_status = f"error: {str(e)[:100]}"

    archiver = getattr(request.app.state, "archiver", None)
    cache = getattr(request.app.state, "task_cache", None)
    return {
        "status": "healthy" if db_status == "connected" else "degraded",
        "version": VERSION,
        "environment": os.getenv("ENVIRONMENT", "development"),
        "database": db_status,
        "archiver": archiver.state.value if archiver is not None else "disabled",
        "cache": cache.stats() if cache is not None else None,
    }


@app.get("/")
async def root():
    return {
        "name": "Task Collaboration Board",
        "version": VERSION,
        "docs": "/docs",
        "health": "/health",
        "hub": "/hubs/tasks",
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=int(os.getenv("PORT", 8000)),
        reload=os.getenv("ENVIRONMENT") == "development",
    )
