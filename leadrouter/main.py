"""
LeadRouter - lead lifecycle and routing engine for a local-services marketplace.
Main FastAPI application entry point.
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware
from leadrouter.config import get_settings
from leadrouter.api.router import api_router
from leadrouter.utils.logging import (
    configure_structured_logging,
    generate_correlation_id,
    set_correlation_id,
)

logger = logging.getLogger("leadrouter")


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Injects a correlation ID into every request context and response header."""

    async def dispatch(self, request: Request, call_next) -> Response:
        cid = request.headers.get("X-Correlation-ID") or generate_correlation_id()
        set_correlation_id(cid)
        response = await call_next(request)
        response.headers["X-Correlation-ID"] = cid
        return response


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown events."""
    settings = get_settings()
    logger.info("LeadRouter starting up (env=%s)", settings.app_env)

    if not settings.jwt_secret:
        logger.warning(
            "JWT_SECRET not set - falling back to APP_SECRET_KEY for provider tokens."
        )
    if not settings.stripe_secret_key:
        logger.warning("STRIPE_SECRET_KEY not set - lead acceptance charges will fail.")

    if settings.sentry_dsn:
        try:
            import sentry_sdk
            sentry_sdk.init(
                dsn=settings.sentry_dsn,
                traces_sample_rate=0.1,
                environment=settings.app_env,
            )
            logger.info("Sentry initialized")
        except Exception as e:
            logger.warning("Sentry initialization failed: %s", str(e))

    worker_tasks: list[asyncio.Task] = []

    from leadrouter.workers.fallback_sweeper import run_fallback_sweeper
    worker_tasks.append(asyncio.create_task(run_fallback_sweeper()))
    logger.info("Fallback sweeper started")

    yield

    logger.info("LeadRouter shutting down - stopping %d workers...", len(worker_tasks))
    for task in worker_tasks:
        task.cancel()
    if worker_tasks:
        done, pending = await asyncio.wait(worker_tasks, timeout=10.0)
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    # Flush queued notifications before the loop goes away
    from leadrouter.services import lead_events
    await lead_events.drain()

    from leadrouter.utils.redis import close_redis
    await close_redis()

    from leadrouter.database import dispose_engine
    await dispose_engine()
    logger.info("LeadRouter shutdown complete")


def create_app() -> FastAPI:
    """Application factory."""
    settings = get_settings()

    configure_structured_logging(settings.log_level)

    application = FastAPI(
        title="LeadRouter",
        description="Lead lifecycle and routing engine",
        version="1.0.0",
        lifespan=lifespan,
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=[
            "http://localhost:3000",
            settings.frontend_url,
        ],
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "OPTIONS"],
        allow_headers=[
            "Authorization", "Content-Type", "X-Correlation-ID", "X-API-Key",
            "Accept", "Origin", "X-Requested-With",
        ],
    )

    # Added after CORS so it runs on every request
    application.add_middleware(CorrelationIdMiddleware)

    application.include_router(api_router)

    return application


app = create_app()
