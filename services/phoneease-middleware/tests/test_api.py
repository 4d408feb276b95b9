from __future__ import annotations

from dataclasses import replace

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from app.api import routes
from app.config import Settings
from app.domain.assistant import AssistantService
from app.domain.locality import extract_locality
from app.domain.service import RegistrationService
from app.generation.registry import GenerationError, GeneratorRegistry
from app.repository import StoreError
from app.security.rate_limiter import SlidingWindowRateLimiter
from app.telephony import TelephonyError
from schemas import GenerationResult

from conftest import FakeAccountStore, FakeTelephony

REGISTER_URL = "/api/v1/customers/register"
REGISTRATION = {
    "display_name": "Test Biz",
    "contact_phone": "(305) 693-3949",
    "site_identifier": "https://test.biz",
}
BUSINESS = {"business_name": "Test Biz", "business_hours": "9-5"}


class StubGenerator:
    name = "stub"

    def __init__(self) -> None:
        self.calls: list[tuple] = []
        self.error: Exception | None = None

    def respond(self, model, system_prompt, message, history=()):
        self.calls.append((model, system_prompt, message, list(history)))
        if self.error:
            raise self.error
        return GenerationResult(text=f"reply to {message}", tokens_used=42)


@pytest.fixture
def api(store: FakeAccountStore, telephony: FakeTelephony, registration_service):
    """Provide a FastAPI test client with isolated state."""
    generator = StubGenerator()
    app = FastAPI()
    app.include_router(routes.router)
    routes.install_exception_handlers(app)
    app.state.registration_service = registration_service
    app.state.assistant_service = AssistantService(
        store, GeneratorRegistry(default=generator), default_model="gemini-test"
    )

    original_limiter = routes.rate_limiter
    routes.rate_limiter = SlidingWindowRateLimiter(max_requests=100, window_seconds=60)

    with TestClient(app) as client:
        yield client, generator

    routes.rate_limiter = original_limiter


@pytest.fixture
def development(monkeypatch):
    monkeypatch.setattr(routes, "settings", replace(routes.settings, environment="development"))


def test_register_end_to_end(api, store):
    client, _ = api

    response = client.post(REGISTER_URL, json=REGISTRATION)

    assert response.status_code == 201
    body = response.json()
    assert body["success"] is True
    assert body["message"]
    assert extract_locality(body["provisioned_number"]) == "305"
    record = store.records[body["account_token"]]
    assert record.provisioned_number == body["provisioned_number"]
    assert record.telephony_subaccount_id == body["subaccount_id"]
    assert "telephony_subaccount_secret" not in body


def test_register_rejects_whitespace_name(api, telephony):
    client, _ = api

    response = client.post(REGISTER_URL, json={**REGISTRATION, "display_name": "   "})

    assert response.status_code == 400
    assert response.json()["success"] is False
    assert "display_name" in response.json()["error"]
    assert telephony.created == []


def test_register_rejects_missing_site(api):
    client, _ = api

    response = client.post(REGISTER_URL, json={"display_name": "Test Biz"})

    assert response.status_code == 400
    assert "site_identifier" in response.json()["error"]


def test_register_rejects_malformed_body_with_400(api):
    client, _ = api

    response = client.post(REGISTER_URL, json={"display_name": ["not", "a", "string"]})

    assert response.status_code == 400
    assert response.json() == {"success": False, "error": "Invalid request body"}


def test_register_twice_returns_conflict(api, telephony):
    client, _ = api
    first = client.post(REGISTER_URL, json=REGISTRATION).json()

    response = client.post(REGISTER_URL, json=REGISTRATION)

    assert response.status_code == 409
    body = response.json()
    assert body["success"] is False
    assert body["account_token"] == first["account_token"]
    assert body["provisioned_number"] == first["provisioned_number"]
    assert body["message"]
    assert len(telephony.created) == 1


def test_subaccount_failure_is_503_without_raw_text(api, telephony):
    client, _ = api
    telephony.create_error = TelephonyError("HTTP 401 secret-internal-detail")

    response = client.post(REGISTER_URL, json=REGISTRATION)

    assert response.status_code == 503
    body = response.json()
    assert body["success"] is False
    assert "secret-internal-detail" not in body["details"]


def test_no_inventory_is_503_with_locality_message(api, store):
    client, _ = api
    client.app.state.registration_service = RegistrationService(store, FakeTelephony({}))

    response = client.post(REGISTER_URL, json=REGISTRATION)

    assert response.status_code == 503
    assert response.json()["details"] == "No phone numbers available in area code 305"


def test_persistence_failure_is_500_and_rolls_back(api, store, telephony):
    client, _ = api
    store.insert_error = StoreError("could not serialize access")

    response = client.post(REGISTER_URL, json=REGISTRATION)

    assert response.status_code == 500
    body = response.json()
    assert body["error"] == "Database error"
    assert "could not serialize" not in body["details"]
    assert telephony.closed == [telephony.created[0]]


def test_development_mode_exposes_raw_error_text(api, store, development):
    client, _ = api
    store.insert_error = StoreError("could not serialize access")

    response = client.post(REGISTER_URL, json=REGISTRATION)

    assert response.status_code == 500
    assert "could not serialize access" in response.json()["details"]


def test_unexpected_error_before_provider_calls_is_500(api, store, telephony):
    client, _ = api
    store.lookup_error = RuntimeError("boom")

    response = client.post(REGISTER_URL, json=REGISTRATION)

    assert response.status_code == 500
    assert response.json()["success"] is False
    assert telephony.created == []


def test_register_is_rate_limited(api):
    client, _ = api
    routes.rate_limiter = SlidingWindowRateLimiter(max_requests=1, window_seconds=60)

    first = client.post(REGISTER_URL, json=REGISTRATION)
    second = client.post(REGISTER_URL, json={**REGISTRATION, "site_identifier": "https://b.biz"})

    assert first.status_code == 201
    assert second.status_code == 429
    assert second.json()["error"] == "rate limited"


def test_train_throttle_is_per_client_not_per_token(api, store):
    client, generator = api
    routes.rate_limiter = SlidingWindowRateLimiter(max_requests=1, window_seconds=60)
    account = store.seed()

    first = client.post(
        "/api/v1/train",
        json={"site_token": account.account_token, "message": "hi", "business_info": BUSINESS},
    )
    second = client.post(
        "/api/v1/train",
        json={"site_token": "made-up-token", "message": "hi", "business_info": BUSINESS},
    )

    assert first.status_code == 200
    assert second.status_code == 429
    assert len(generator.calls) == 1


def test_train_consumes_training_quota(api, store):
    client, generator = api
    account = store.seed()

    response = client.post(
        "/api/v1/train",
        json={"site_token": account.account_token, "message": "hours?", "business_info": BUSINESS},
    )

    assert response.status_code == 200
    assert response.json() == {"success": True, "ai_response": "reply to hours?", "tokens_used": 42}
    assert store.records[account.account_token].training_used == 1
    model, prompt, _, _ = generator.calls[0]
    assert model == "gemini-test"
    assert "Test Biz" in prompt


def test_train_rejects_exhausted_quota(api, store):
    client, generator = api
    account = store.seed(training_used=100, training_limit=100)

    response = client.post(
        "/api/v1/train",
        json={"site_token": account.account_token, "message": "hi", "business_info": BUSINESS},
    )

    assert response.status_code == 429
    assert response.json()["used"] == 100
    assert generator.calls == []


def test_train_requires_fields(api):
    client, _ = api

    response = client.post("/api/v1/train", json={"site_token": "tok", "business_info": BUSINESS})

    assert response.status_code == 400
    assert response.json()["error"] == "Missing required field: message"


def test_train_unknown_token_is_404(api):
    client, _ = api

    response = client.post(
        "/api/v1/train",
        json={"site_token": "nope", "message": "hi", "business_info": BUSINESS},
    )

    assert response.status_code == 404


def test_chat_uses_supplied_system_prompt_and_history(api, store):
    client, generator = api
    account = store.seed()

    response = client.post(
        "/api/v1/chat",
        json={
            "site_token": account.account_token,
            "message": "are you open?",
            "business_info": BUSINESS,
            "system_prompt": "You answer for Test Biz.",
            "conversation_history": [
                {"role": "user", "content": "hello"},
                {"role": "assistant", "content": "hi, how can we help?"},
            ],
        },
    )

    assert response.status_code == 200
    _, prompt, message, history = generator.calls[0]
    assert prompt == "You answer for Test Biz."
    assert message == "are you open?"
    assert [turn.role for turn in history] == ["user", "assistant"]
    assert store.records[account.account_token].training_used == 0


def test_chat_backend_failure_is_503(api, store):
    client, generator = api
    account = store.seed()
    generator.error = GenerationError("overloaded")

    response = client.post(
        "/api/v1/chat",
        json={"site_token": account.account_token, "message": "hi", "business_info": BUSINESS},
    )

    assert response.status_code == 503
    assert response.json()["error"] == "AI service unavailable"


def test_versioned_health_reports_build_and_generation_settings(api):
    client, _ = api

    response = client.get("/api/v1/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["version"] == routes.settings.version
    assert body["generation"]["default_model"] == routes.settings.default_model
    assert body["generation"]["max_output_tokens"] == 150
    assert body["generation"]["temperature"] == 0.7


def test_unknown_route_returns_envelope(api):
    client, _ = api

    response = client.get("/api/v1/nope")

    assert response.status_code == 404
    assert response.json() == {"success": False, "error": "Endpoint not found", "path": "/api/v1/nope"}


def test_settings_development_flag():
    assert Settings(environment="development").is_development
    assert not Settings(environment="production").is_development
