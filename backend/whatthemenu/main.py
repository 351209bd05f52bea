from __future__ import annotations

from contextlib import asynccontextmanager

import sentry_sdk
from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sentry_sdk.integrations.fastapi import FastApiIntegration

from .api.routes import explain as explain_routes
from .errors import RateLimited, WhatTheMenuError
from .generator import OpenAIGenerator
from .governor import RequestGovernor
from .health import HealthChecker
from .logging_config import SERVICE_NAME, SERVICE_VERSION, configure_structlog, get_logger
from .metrics import PrometheusMiddleware, get_metrics
from .quota import QuotaService
from .resolver import ExplanationResolver
from .settings import settings
from .storage import CorpusStore
from .utils import add_cors, add_request_id_tracing, add_security_headers

# Configure structured logging (must be done before any logging calls)
configure_structlog(json_logs=not settings.DEBUG)

if settings.SENTRY_DSN:
    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        environment=settings.SENTRY_ENVIRONMENT,
        release=settings.SENTRY_RELEASE or f"{SERVICE_NAME}@dev",
        integrations=[FastApiIntegration()],
        traces_sample_rate=settings.SENTRY_TRACES_SAMPLE_RATE,
    )

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("startup", database=settings.database_url.split("://", 1)[0])
    yield
    await app.state.generator.aclose()
    await app.state.store.close()
    logger.info("shutdown")


app = FastAPI(
    title="WhatTheMenu API",
    version=SERVICE_VERSION,
    description="Plain-language explanations of restaurant menu dishes",
    lifespan=lifespan,
)
add_cors(app)
add_security_headers(app)
add_request_id_tracing(app)
app.add_middleware(PrometheusMiddleware)


def install_services(target: FastAPI, store: CorpusStore, generator) -> None:
    """Wire the resolution pipeline onto ``target.state``."""
    target.state.store = store
    target.state.generator = generator
    target.state.quota = QuotaService()
    target.state.resolver = ExplanationResolver(store, generator, quota=target.state.quota)
    target.state.governor = RequestGovernor.from_settings()
    target.state.health = HealthChecker(store, generator)


install_services(app, CorpusStore(), OpenAIGenerator())
app.include_router(explain_routes.router)


@app.exception_handler(WhatTheMenuError)
async def whatthemenu_error_handler(request: Request, exc: WhatTheMenuError) -> JSONResponse:
    headers: dict[str, str] = {}
    if isinstance(exc, RateLimited):
        headers["Retry-After"] = str(exc.retry_after)
        if exc.limit:
            headers["X-RateLimit-Limit"] = str(exc.limit)
            headers["X-RateLimit-Remaining"] = "0"
    if exc.status_code >= 500:
        logger.error("request_failed", path=request.url.path, error=exc.message)
    return JSONResponse({"error": exc.message}, status_code=exc.status_code, headers=headers)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    message = "Invalid request"
    if errors:
        first = errors[0]
        location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"{location}: {first.get('msg')}" if location else str(first.get("msg"))
    return JSONResponse({"error": message}, status_code=400)


@app.get("/health")
async def health(request: Request):
    """Return service health including upstream dependency checks."""
    health_status = await request.app.state.health.check_all()
    status_code = 200 if health_status["status"] == "healthy" else 503
    body = {
        "status": health_status["status"],
        "timestamp": health_status.get("timestamp"),
        "checks": health_status.get("checks", {}),
        "service": SERVICE_NAME,
        "version": SERVICE_VERSION,
    }
    return JSONResponse(content=body, status_code=status_code)


@app.get("/metrics")
def metrics():
    """Expose Prometheus metrics."""
    try:
        return get_metrics()
    except Exception:  # pragma: no cover - defensive path
        logger.exception("metrics_export_failed")
        raise HTTPException(status_code=503, detail="metrics unavailable")
