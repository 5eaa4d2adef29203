"""
backend/app/main.py

Purpose:
    FastAPI application bootstrap, middleware/router wiring, startup seeding,
    and the process-wide exception handlers.

Dependencies:
    - app.database
    - app.providers.odds_api
"""

import logging
from contextlib import asynccontextmanager

from bson.errors import InvalidId
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo.errors import (
    ConnectionFailure,
    DuplicateKeyError,
    OperationFailure,
)

from app.config import settings
import app.database as _db
from app.database import connect_db, close_db
from app.middleware.logging import StructuredLoggingMiddleware, setup_logging
from app.providers.odds_api import odds_provider

logger = logging.getLogger("courtside")


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    await connect_db()

    from app.seed import seed_admin_user
    await seed_admin_user()
    logger.info(
        "Courtside started: tracked_team=%s cost=%d payout=%d",
        settings.TRACKED_TEAM, settings.WAGER_COST, settings.WAGER_PAYOUT,
    )

    yield

    await odds_provider.aclose()
    await close_db()


app = FastAPI(
    title="Courtside",
    description="Play-money point-spread wagering on one tracked team",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.BACKEND_CORS_ORIGINS.split(","),
    allow_credentials=True,
    allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)

# Structured logging
app.add_middleware(StructuredLoggingMiddleware)

# Routers
from app.routers.auth import router as auth_router
from app.routers.user import router as user_router
from app.routers.games import router as games_router
from app.routers.wagers import router as wagers_router

app.include_router(auth_router)
app.include_router(user_router)
app.include_router(games_router)
app.include_router(wagers_router)


async def _invalid_id(request: Request, exc: InvalidId):
    return JSONResponse(status_code=400, content={"detail": "Invalid ID."})


async def _validation_error(request: Request, exc: RequestValidationError):
    """Flatten pydantic errors to ``{field, message}`` pairs."""
    errors = []
    for err in exc.errors():
        # Drop the "body" / "query" / "path" prefix
        loc = [str(part) for part in err.get("loc", ())[1:]] or ["request"]
        errors.append({"field": ".".join(loc), "message": err.get("msg", "Invalid value.")})
    return JSONResponse(status_code=422, content={"detail": "Validation error.", "errors": errors})


async def _duplicate_key(request: Request, exc: DuplicateKeyError):
    return JSONResponse(status_code=409, content={"detail": "Duplicate entry."})


async def _db_unavailable(request: Request, exc: Exception):
    logger.error(
        "Database unavailable (%s): %s %s", type(exc).__name__, request.method, request.url.path,
    )
    return JSONResponse(status_code=503, content={"detail": "Service temporarily unavailable."})


async def _db_operation_failed(request: Request, exc: OperationFailure):
    logger.error("Database operation error on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=500, content={"detail": "An internal error occurred."})


async def _unhandled(request: Request, exc: Exception):
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": "An internal error occurred."})


def _register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(InvalidId, _invalid_id)
    app.add_exception_handler(RequestValidationError, _validation_error)
    app.add_exception_handler(DuplicateKeyError, _duplicate_key)
    # ServerSelectionTimeoutError is a ConnectionFailure subclass
    app.add_exception_handler(ConnectionFailure, _db_unavailable)
    app.add_exception_handler(OperationFailure, _db_operation_failed)
    app.add_exception_handler(Exception, _unhandled)


_register_exception_handlers(app)


@app.get("/health")
async def health():
    """Health check: DB ping plus odds provider circuit and quota."""
    try:
        result = await _db.db.command("ping")
        db_ok = result.get("ok") == 1.0
    except Exception:
        db_ok = False

    return {
        "status": "healthy" if db_ok else "degraded",
        "db": "connected" if db_ok else "disconnected",
        "odds_provider": {
            "circuit": odds_provider.circuit_state,
            "usage": odds_provider.api_usage,
        },
    }
