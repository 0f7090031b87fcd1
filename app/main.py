from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded

from app.api.router import api_router
from app.config import get_settings
from app.core.errors import LifecycleError, StoreUnavailableError
from app.core.locks import DatasetLocks
from app.core.logging import get_logger, setup_logging
from app.core.rate_limit import limiter, rate_limit_exceeded_handler
from app.services.notifier import ProgressNotifier

logger = get_logger(__name__)

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup/shutdown."""
    # Startup
    setup_logging()
    app.state.dataset_locks = DatasetLocks()
    app.state.notifier = ProgressNotifier(
        heartbeat_seconds=settings.sse_heartbeat_seconds,
        queue_size=settings.sse_queue_size,
    )
    app.state.notifier.start()
    yield
    # Shutdown
    await app.state.notifier.shutdown()


app = FastAPI(
    title="MaskWise Jobs",
    description="Job lifecycle API for MaskWise dataset processing",
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/api/docs" if settings.debug else None,
    redoc_url="/api/redoc" if settings.debug else None,
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)  # type: ignore[arg-type]

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.base_url, "http://localhost:3000"],  # Next.js dev server
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(LifecycleError)
async def lifecycle_error_handler(request: Request, exc: LifecycleError) -> JSONResponse:
    """Map lifecycle errors to their HTTP status and JSON body."""
    if isinstance(exc, StoreUnavailableError):
        logger.bind(path=request.url.path, reason=exc.reason).error("store_unavailable_response")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# Include API routes
app.include_router(api_router)


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint for load balancers."""
    return {"status": "healthy"}
