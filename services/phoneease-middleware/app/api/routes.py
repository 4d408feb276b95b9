"""HTTP route definitions for the PhoneEase middleware."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Depends, FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from starlette.exceptions import HTTPException as StarletteHTTPException

from schemas import BusinessInfo, ConversationTurn

from ..config import get_settings
from ..domain import errors
from ..domain.assistant import AssistantService
from ..domain.contracts import RegisterAccountInput
from ..domain.service import RegistrationService
from ..generation.anthropic_backend import MAX_OUTPUT_TOKENS, TEMPERATURE
from ..security.rate_limiter import build_rate_limiter

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1")


class RegisterRequest(BaseModel):
    """Registration payload; field rules are enforced by the registration service."""

    display_name: str | None = None
    contact_phone: str | None = None
    site_identifier: str | None = None


class RegisterResponse(BaseModel):
    success: bool = True
    account_token: str
    provisioned_number: str
    subaccount_id: str
    message: str = "Customer registered successfully"


class TrainRequest(BaseModel):
    site_token: str | None = None
    message: str | None = None
    model: str | None = None
    business_info: BusinessInfo | None = None


class ChatRequest(BaseModel):
    site_token: str | None = None
    message: str | None = None
    model: str | None = None
    business_info: BusinessInfo | None = None
    conversation_history: list[ConversationTurn] | None = None
    system_prompt: str | None = None


class AssistantResponse(BaseModel):
    success: bool = True
    ai_response: str
    tokens_used: int


settings = get_settings()
rate_limiter = build_rate_limiter(settings)


def get_registration_service(request: Request) -> RegistrationService:
    """Resolve the `RegistrationService` stored on the FastAPI application state."""
    service: RegistrationService = request.app.state.registration_service
    return service


def get_assistant_service(request: Request) -> AssistantService:
    service: AssistantService = request.app.state.assistant_service
    return service


@router.get("/health", tags=["health"])
def detailed_health() -> dict[str, Any]:
    """Readiness plus the build version and generation settings in effect."""
    return {
        "status": "healthy",
        "service": settings.app_name,
        "version": settings.version,
        "environment": settings.environment,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "generation": {
            "default_model": settings.default_model,
            "max_output_tokens": MAX_OUTPUT_TOKENS,
            "temperature": TEMPERATURE,
        },
    }


@router.post(
    "/customers/register",
    response_model=RegisterResponse,
    status_code=status.HTTP_201_CREATED,
)
def register_customer(
    request: Request,
    payload: RegisterRequest,
    service: RegistrationService = Depends(get_registration_service),
) -> RegisterResponse | JSONResponse:
    """Create a telephony sub-account, buy a number and store the new account."""
    if not rate_limiter.allow(f"register:{_client_key(request)}"):
        return _failure(status.HTTP_429_TOO_MANY_REQUESTS, {"error": "rate limited"})

    logger.info("registration requested for site %s", payload.site_identifier)
    try:
        result = service.register(
            RegisterAccountInput(
                display_name=payload.display_name,
                site_identifier=payload.site_identifier,
                contact_phone=payload.contact_phone,
            )
        )
    except errors.DomainError as exc:
        return _error_response(exc)
    except Exception as exc:
        logger.exception("registration failed before any provider side effect")
        return _error_response(
            errors.InternalError("Internal server error during registration", cause=str(exc))
        )

    return RegisterResponse(
        account_token=result.account_token,
        provisioned_number=result.provisioned_number,
        subaccount_id=result.subaccount_id,
    )


@router.post("/train", response_model=AssistantResponse)
def train(
    request: Request,
    payload: TrainRequest,
    service: AssistantService = Depends(get_assistant_service),
) -> AssistantResponse | JSONResponse:
    """Answer a business owner's training question, consuming training quota."""
    missing = _missing_field(payload.site_token, payload.message, payload.business_info)
    if missing:
        return _failure(status.HTTP_400_BAD_REQUEST, {"error": f"Missing required field: {missing}"})
    if not rate_limiter.allow(f"train:{_client_key(request)}"):
        return _failure(status.HTTP_429_TOO_MANY_REQUESTS, {"error": "rate limited"})

    try:
        result = service.train(
            payload.site_token, payload.message, payload.business_info, model=payload.model
        )
    except errors.DomainError as exc:
        return _error_response(exc)
    return AssistantResponse(ai_response=result.text, tokens_used=result.tokens_used)


@router.post("/chat", response_model=AssistantResponse)
def chat(
    payload: ChatRequest,
    service: AssistantService = Depends(get_assistant_service),
) -> AssistantResponse | JSONResponse:
    """Reply to a live caller as the business receptionist."""
    missing = _missing_field(payload.site_token, payload.message, payload.business_info)
    if missing:
        return _failure(status.HTTP_400_BAD_REQUEST, {"error": f"Missing required field: {missing}"})

    try:
        result = service.chat(
            payload.site_token,
            payload.message,
            payload.business_info,
            history=payload.conversation_history or [],
            system_prompt=payload.system_prompt,
            model=payload.model,
        )
    except errors.DomainError as exc:
        return _error_response(exc)
    return AssistantResponse(ai_response=result.text, tokens_used=result.tokens_used)


def install_exception_handlers(app: FastAPI) -> None:
    """Render framework-level failures with the same envelope as domain failures."""

    async def on_invalid_body(request: Request, exc: RequestValidationError) -> JSONResponse:
        body: dict[str, Any] = {"error": "Invalid request body"}
        if settings.is_development:
            body["details"] = str(exc.errors())
        return _failure(status.HTTP_400_BAD_REQUEST, body)

    async def on_http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        if exc.status_code == status.HTTP_404_NOT_FOUND:
            logger.info("route not found: %s %s", request.method, request.url.path)
            return _failure(exc.status_code, {"error": "Endpoint not found", "path": request.url.path})
        return _failure(exc.status_code, {"error": str(exc.detail)})

    async def on_unhandled(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("unhandled error on %s %s", request.method, request.url.path)
        return _error_response(errors.InternalError("Internal server error", cause=str(exc)))

    app.add_exception_handler(RequestValidationError, on_invalid_body)
    app.add_exception_handler(StarletteHTTPException, on_http_error)
    app.add_exception_handler(Exception, on_unhandled)


def _error_response(exc: errors.DomainError) -> JSONResponse:
    body: dict[str, Any] = {"error": exc.error}

    if isinstance(exc, errors.ConflictError):
        body.update(
            account_token=exc.account_token,
            provisioned_number=exc.provisioned_number,
            message="This site already has a registered phone number",
        )
    elif isinstance(exc, errors.QuotaExceededError):
        body.update(used=exc.used, limit=exc.limit)
    elif exc.status_code >= 500:
        body["details"] = _details(exc)
    return _failure(exc.status_code, body)


def _details(exc: errors.DomainError) -> str | None:
    """Safe explanation, extended with raw provider text only in development."""
    if settings.is_development and exc.cause:
        return f"{exc.details}: {exc.cause}" if exc.details else exc.cause
    return exc.details


def _failure(status_code: int, body: dict[str, Any]) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, **body})


def _missing_field(site_token: str | None, message: str | None, business: BusinessInfo | None) -> str | None:
    if not site_token:
        return "site_token"
    if not message:
        return "message"
    if business is None or not business.business_name:
        return "business_info.business_name"
    return None


def _client_key(request: Request) -> str:
    return request.client.host if request.client else "unknown"
