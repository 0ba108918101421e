"""Main FastAPI application."""

import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI

from . import __version__
from .api import webhooks_router
from .core.config import settings, Environment
from .core.logging_config import setup_logging
from .dependencies import close_clients
from .exceptions import ConfigurationError, PagesmithError
from .middleware.exception_handler import pagesmith_exception_handler
from .middleware.request_context import RequestContextMiddleware

# Setup logging first
setup_logging(log_level=settings.log_level, log_format=settings.log_format)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown lifecycle for the Pagesmith service."""
    logger.info(f"Environment: {settings.environment.value}")
    try:
        settings.validate_production_config()
    except ConfigurationError as e:
        logger.critical(f"STARTUP BLOCKED: {e}")
        raise SystemExit(1) from e

    if settings.environment == Environment.DEVELOPMENT:
        for problem in settings.missing_production_settings():
            logger.warning(f"CONFIG: {problem}")

    yield  # App runs here

    await close_clients()


app = FastAPI(
    title="Pagesmith",
    description=(
        "Generates a static project website from GitHub repository events. "
        "Merged pull requests, pushes and `@pagesmith` comment commands are "
        "received on `/api/webhooks/github`; the generated site is proposed "
        "back to the repository as a pull request."
    ),
    version=__version__,
    license_info={"name": "MIT", "url": "https://opensource.org/licenses/MIT"},
    lifespan=lifespan,
)

app.add_middleware(RequestContextMiddleware)

# Register exception handlers
app.add_exception_handler(PagesmithError, pagesmith_exception_handler)

logger.info(
    "Pagesmith started | env=%s | model=%s | webhook_secret=%s",
    settings.environment.value,
    settings.llm_model or "unset",
    "set" if settings.github_webhook_secret else "unset",
)

# Include routers
app.include_router(webhooks_router)


@app.get("/")
def root():
    """Root endpoint."""
    return {
        "name": "Pagesmith",
        "version": __version__,
        "status": "running"
    }


_startup_time = time.monotonic()


@app.get("/health")
def health_check():
    """Health check reporting uptime and which collaborators are configured.

    Never raises and never calls out, so load balancers can always poll it.
    """
    missing = settings.missing_production_settings()
    return {
        "status": "healthy" if not missing else "degraded",
        "llm_configured": bool(settings.llm_model),
        "github_configured": bool(settings.github_token),
        "uptime_seconds": round(time.monotonic() - _startup_time),
        "version": __version__,
    }
