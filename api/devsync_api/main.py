from __future__ import annotations

import logging
import os
import time

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, RedirectResponse

from devsync_api.adapters.contribution_store import ContributionStore, InMemoryContributionStore
from devsync_api.adapters.sql_store import SqlContributionStore
from devsync_api.routers import admin_prs, health, leaderboard
from devsync_api.services.errors import PipelineError
from devsync_api.services.github_client import GitHubClient
from devsync_api.services.pipeline_config import PipelineConfig

app = FastAPI(title="DevSync Contribution Points API", version="1.0.0")
logger = logging.getLogger("devsync.api")
if not logger.handlers:
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s"))
    logger.addHandler(handler)
logger.propagate = False
logger.setLevel(logging.INFO)


def _env_flag(name: str, default: bool = False) -> bool:
    raw = os.getenv(name, "1" if default else "").strip().lower()
    return raw in {"1", "true", "yes", "on"}


def _slow_request_ms_threshold() -> float:
    raw = os.getenv("API_SLOW_REQUEST_MS", "1500").strip()
    try:
        return max(25.0, float(raw))
    except ValueError:
        return 1500.0


def _route_path(request: Request) -> str:
    route = request.scope.get("route")
    route_path = str(getattr(route, "path", "") or "") if route is not None else ""
    return route_path or request.url.path


def build_store() -> ContributionStore:
    database_url = os.getenv("DATABASE_URL")
    if database_url:
        # Production: PostgreSQL (any SQLAlchemy URL works)
        return SqlContributionStore(database_url)
    # Development/Testing: in-memory store with optional JSON persistence
    return InMemoryContributionStore(persist_path=os.getenv("CONTRIBUTION_STORE_PATH"))


# Configure CORS
allowed_origins_str = os.getenv("ALLOWED_ORIGINS", "http://localhost:3000")
allowed_origins = [origin.strip() for origin in allowed_origins_str.split(",") if origin.strip()]

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.state.contribution_store = build_store()
app.state.pipeline_config = PipelineConfig.from_env()
app.state.github_client = GitHubClient()


@app.exception_handler(PipelineError)
async def _pipeline_error(request: Request, exc: PipelineError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("pipeline_error path=%s detail=%s", request.url.path, exc.detail)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


@app.exception_handler(Exception)
async def _unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        "unhandled_api_error method=%s path=%s exception=%s",
        request.method,
        _route_path(request),
        exc.__class__.__name__,
        exc_info=exc,
    )
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


@app.on_event("shutdown")
async def _flush_store() -> None:
    store = app.state.contribution_store
    if isinstance(store, InMemoryContributionStore):
        store.save()


@app.get("/", include_in_schema=False)
async def root():
    """Redirect to API documentation."""
    return RedirectResponse(url="/docs")


app.include_router(admin_prs.router, prefix="/api/admin", tags=["admin"])
app.include_router(leaderboard.router, prefix="/api", tags=["leaderboard"])
app.include_router(health.router, prefix="/api", tags=["health"])


@app.middleware("http")
async def log_slow_requests(request: Request, call_next):
    start = time.perf_counter()
    status_code: int | None = None
    exc_name: str | None = None
    try:
        response = await call_next(request)
        status_code = response.status_code
        return response
    except Exception as exc:
        status_code = 500
        exc_name = exc.__class__.__name__
        raise
    finally:
        elapsed_ms = (time.perf_counter() - start) * 1000.0
        if status_code is None:
            status_code = 500
        if elapsed_ms >= _slow_request_ms_threshold() or _env_flag("API_LOG_ALL_REQUESTS") or status_code >= 500:
            logger.warning(
                "slow_api_request method=%s path=%s raw_path=%s status=%s elapsed_ms=%.2f exception=%s",
                request.method,
                _route_path(request),
                request.url.path,
                status_code,
                elapsed_ms,
                exc_name or "none",
            )
