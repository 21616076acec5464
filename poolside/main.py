import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from poolside.core.config import get_settings
from poolside.core.database import engine, Base
from poolside.core.errors import (
    PoolsideError, NotFoundError, ValidationError, ConstraintViolation, IncompleteSeasonError,
)
from poolside.api import pools, contestants, weeks, rules, leaderboard, season

# Import all models so Base.metadata is populated for create_all
import poolside.models.models  # noqa: F401

settings = get_settings()

logging.basicConfig(level=getattr(logging, settings.log_level.upper(), logging.INFO))
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # create_all is idempotent and skips existing tables
    logger.info("Starting up, creating database tables...")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables ready.")
    yield
    await engine.dispose()


app = FastAPI(
    title=settings.app_name,
    description="Weekly ceremony recording and points engine for fantasy eviction pools.",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS: the admin surface is served from elsewhere
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _issues(exc) -> list[dict]:
    return [i.to_dict() if hasattr(i, "to_dict") else {"message": str(i)} for i in getattr(exc, "issues", [])]


@app.exception_handler(PoolsideError)
async def poolside_error_handler(request: Request, exc: PoolsideError):
    if isinstance(exc, NotFoundError):
        return JSONResponse(status_code=404, content={"detail": str(exc)})
    if isinstance(exc, IncompleteSeasonError):
        return JSONResponse(status_code=422, content={
            "detail": str(exc),
            "failing_checks": [{"id": c.id, "label": c.label, "issues": c.issues} for c in exc.failing_checks],
        })
    if isinstance(exc, ValidationError):
        return JSONResponse(status_code=422, content={"detail": str(exc), "issues": _issues(exc)})
    if isinstance(exc, ConstraintViolation):
        logger.info("Rejected write: %s", exc)
        return JSONResponse(status_code=409, content={
            "detail": str(exc),
            "error": type(exc).__name__,
            "issues": _issues(exc),
        })
    logger.error("Unhandled engine error: %s", exc)
    return JSONResponse(status_code=500, content={"detail": str(exc)})


# API routers
app.include_router(pools.router)
app.include_router(contestants.router)
app.include_router(weeks.router)
app.include_router(rules.router)
app.include_router(leaderboard.router)
app.include_router(season.router)


@app.get("/health")
async def health():
    return {"status": "healthy"}
