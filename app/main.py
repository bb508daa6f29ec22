import logging
import traceback
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from app.api.router import api_router
from app.core.config import settings, validate_settings_for_production
from app.core.exceptions import ClientDisconnected, EvaluationError
from app.core.logging import setup_logging
from app.core.metrics import PrometheusMiddleware, metrics_response
from app.core.middleware import RequestLoggingMiddleware
from app.core.rate_limit import limiter
from app.core.sentry import init_sentry
from app.gateway.gateway import ProviderGateway

# Configure logging before anything else
setup_logging()
init_sentry()

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    validate_settings_for_production()
    app.state.gateway = ProviderGateway.from_settings(settings)
    available = app.state.gateway.available_providers()
    if available:
        logger.info("Starting Passage Evaluator (providers: %s)", ", ".join(available))
    else:
        logger.warning("Starting Passage Evaluator with no provider API keys configured")

    yield

    logger.info("Passage Evaluator shut down")


app = FastAPI(
    title="Passage Evaluator",
    description="LLM-based passage evaluation with the three-phase pushback protocol",
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/api/docs" if settings.app_debug else None,
    redoc_url="/api/redoc" if settings.app_debug else None,
)


@app.exception_handler(EvaluationError)
async def _evaluation_error_handler(request: Request, exc: EvaluationError):
    if exc.http_status >= 500:
        logger.error("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc)
    return JSONResponse(status_code=exc.http_status, content={"error": str(exc)})


@app.exception_handler(ClientDisconnected)
async def _client_disconnected_handler(request: Request, exc: ClientDisconnected):
    # Nobody is listening; 499 only shows up in logs and metrics
    return Response(status_code=499)


# Log unhandled exceptions so they appear in the service logs
@app.exception_handler(Exception)
async def _unhandled_exception_handler(request: Request, exc: Exception):
    tb = traceback.format_exception(type(exc), exc, exc.__traceback__)
    logger.error("Unhandled %s on %s %s:\n%s", type(exc).__name__, request.method, request.url.path, "".join(tb))
    return JSONResponse(status_code=500, content={"error": f"{type(exc).__name__}: {exc}"})


# Rate limiter
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# Request logging and metrics middleware
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(PrometheusMiddleware)

# CORS: allowed_origins is comma-separated
_origins = [o.strip() for o in settings.allowed_origins.split(",") if o.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_origins=_origins,
    allow_credentials=_origins != ["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

# API routes
app.include_router(api_router)


@app.get("/api/health")
async def health():
    gateway = getattr(app.state, "gateway", None)
    return {
        "status": "ok",
        "providers": gateway.available_providers() if gateway else [],
    }


@app.get("/metrics", include_in_schema=False)
async def metrics():
    return metrics_response()
