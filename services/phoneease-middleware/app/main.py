"""FastAPI application wiring for the PhoneEase middleware."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

import uvicorn
from fastapi import FastAPI, Response
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from .api.routes import install_exception_handlers, router as v1_router
from .config import get_settings
from .domain.assistant import AssistantService
from .domain.service import RegistrationService
from .generation.anthropic_backend import AnthropicGenerator
from .generation.registry import GeneratorRegistry
from .generation.vertex_backend import VertexGenerator
from .repository import AccountRepository, open_pool
from .telephony import TwilioProvisioningClient, build_twilio_client

settings = get_settings()


def build_generators() -> GeneratorRegistry:
    """Gemini serves every model name except ``claude-*``, which goes to Anthropic."""
    registry = GeneratorRegistry(
        default=VertexGenerator.from_settings(settings.gcp_project, settings.vertex_location)
    )
    registry.register(
        "claude-",
        AnthropicGenerator.from_settings(
            settings.anthropic_api_key, timeout_seconds=settings.anthropic_timeout_seconds
        ),
    )
    return registry


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialise shared clients (Postgres pool, Twilio, AI backends) for the app lifecycle."""
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    pool = open_pool(settings.database_url, timeout_seconds=settings.store_timeout_seconds)
    pool.open()
    store = AccountRepository(pool)
    telephony = TwilioProvisioningClient(
        build_twilio_client(
            settings.twilio_account_sid,
            settings.twilio_auth_token,
            timeout_seconds=settings.telephony_timeout_seconds,
        ),
        webhook_base_url=settings.webhook_base_url,
        fallback_locality=settings.fallback_locality,
    )

    app.state.pool = pool
    app.state.registration_service = RegistrationService(
        store,
        telephony,
        billing_period_days=settings.billing_period_days,
        calls_limit=settings.calls_limit,
        training_limit=settings.training_limit,
    )
    app.state.assistant_service = AssistantService(
        store, build_generators(), default_model=settings.default_model
    )
    logging.getLogger(__name__).info(
        "%s %s started (environment=%s)", settings.app_name, settings.version, settings.environment
    )
    try:
        yield
    finally:
        pool.close()


app = FastAPI(title=settings.app_name, version=settings.version, lifespan=lifespan)

# the WordPress plugin calls from arbitrary customer sites
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
    max_age=600,
)

install_exception_handlers(app)


@app.get("/health", tags=["health"])
def health() -> dict[str, str]:
    """Return a minimal readiness indicator used by orchestration systems."""
    return {
        "status": "healthy",
        "service": settings.app_name,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@app.get("/metrics")
def metrics() -> Response:
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


app.include_router(v1_router)


def run() -> None:
    """Serve the app with uvicorn using the configured host and port."""
    uvicorn.run(app, host=settings.http_host, port=settings.http_port)
