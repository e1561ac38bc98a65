import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .api import router
from .config import settings
from .database import init_db
from .errors import (
    ConcurrentModification,
    ConflictingDirection,
    MarketError,
    NoPairAvailable,
    StoreUnavailable,
    ValidationError,
)

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Startup Exchange API", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(router, prefix="/api")


def status_for_error(exc: MarketError) -> int:
    if isinstance(exc, ValidationError):
        return 404 if exc.not_found else 400
    if isinstance(exc, NoPairAvailable):
        return 404
    if isinstance(exc, (ConflictingDirection, ConcurrentModification)):
        return 409
    if isinstance(exc, StoreUnavailable):
        return 503
    # InsufficientFunds, InsufficientPosition, NoGiftsRemaining
    return 400


@app.exception_handler(MarketError)
async def handle_market_error(request: Request, exc: MarketError):
    status_code = status_for_error(exc)
    if status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(
        status_code=status_code,
        content={"detail": exc.message, "error": type(exc).__name__},
    )


@app.on_event("startup")
def on_startup():
    """Create database tables on startup."""
    init_db()


@app.get("/health")
def health_check():
    return {"status": "healthy"}
