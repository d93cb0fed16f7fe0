"""
Unit tests for the Introspection service HTTP surface.
"""

import pytest
from unittest.mock import AsyncMock, MagicMock, patch
from fastapi.testclient import TestClient

from service_introspection.app.engine import AuthorizationDecision
from service_introspection.app.main import IntrospectionService, create_app
from service_introspection.app.tokens.models import CredentialType, IntrospectionResponse
from shared.config import IntrospectionConfig
from shared.models import ServiceDescriptor
from shared.test_helpers import (
    CONSUMER, TEST_SECRET_PHRASE, mock_token_generator, service_id,
    subscription_did, test_data_factory
)


@pytest.fixture
def config():
    return IntrospectionConfig(token_secret_phrase=TEST_SECRET_PHRASE, env="test")


class TestIntrospectionService:
    """Test cases for IntrospectionService with a stubbed engine."""

    @pytest.fixture
    def engine(self):
        engine = MagicMock()
        engine.decide = AsyncMock()
        return engine

    @pytest.fixture
    def service(self, config, engine):
        return IntrospectionService(config, engine=engine)

    @pytest.fixture
    def client(self, service):
        return TestClient(service.app)

    def test_root(self, client):
        response = client.get("/")

        assert response.status_code == 200
        assert response.json()["service"] == "introspection"

    def test_allow(self, client, engine):
        engine.decide.return_value = AuthorizationDecision.allow(IntrospectionResponse(
            user_id=CONSUMER,
            owner="0xowner",
            auth_type=CredentialType.BEARER,
            auth_header="Bearer abc",
            service_token="abc",
            upstream_host="api.example.com",
            scope=service_id(),
            exp=2000000000,
            iat=1000000000
        ))

        response = client.post("/introspect", headers={
            "Authorization": "Bearer token",
            "NVM-Requested-Url": "https://api.example.com/users/42"
        })

        assert response.status_code == 200
        assert response.json() == {
            "active": True,
            "user_id": CONSUMER,
            "owner": "0xowner",
            "auth_type": "bearer",
            "auth_header": "Bearer abc",
            "service_token": "abc",
            "upstream_host": "api.example.com",
            "scope": service_id(),
            "exp": 2000000000,
            "iat": 1000000000,
        }
        engine.decide.assert_called_once_with("Bearer token", "https://api.example.com/users/42")

    def test_deny_is_empty_401(self, client, engine):
        engine.decide.return_value = AuthorizationDecision.deny("ENDPOINT_NOT_GRANTED")

        response = client.post("/introspect", headers={"nvm-requested-url": "https://api.example.com/"})

        assert response.status_code == 401
        assert response.content == b""
        engine.decide.assert_called_once_with(None, "https://api.example.com/")

    def test_configurable_headers(self, engine):
        config = IntrospectionConfig(
            token_secret_phrase=TEST_SECRET_PHRASE,
            authorization_header="x-access-token",
            requested_url_header="x-original-url"
        )
        engine.decide.return_value = AuthorizationDecision.deny("UNAUTHORIZED")
        client = TestClient(IntrospectionService(config, engine=engine).app)

        client.post("/introspect", headers={"x-access-token": "tok", "x-original-url": "https://h/"})

        engine.decide.assert_called_once_with("tok", "https://h/")

    def test_health(self, service, client):
        service._check_dependencies = AsyncMock(return_value={"asset_registry": "ok", "ledger": "ok"})

        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["dependencies"] == {"asset_registry": "ok", "ledger": "ok"}
        assert response.json()["status"] == "ok"

    def test_health_reports_open_circuit(self, service, client):
        for _ in range(service.ledger.circuit_breaker.failure_threshold):
            service.ledger.circuit_breaker._record_failure()
        service.registry.circuit_breaker._record_failure()

        with patch("httpx.AsyncClient") as mock_client:
            mock_client.return_value.__aenter__.return_value.get = AsyncMock(
                return_value=MagicMock(status_code=200)
            )
            response = client.get("/health")

        assert response.json()["dependencies"] == {"asset_registry": "ok", "ledger": "circuit_open"}
        assert response.json()["status"] == "degraded"

    def test_metrics(self, client):
        response = client.get("/metrics")

        assert response.status_code == 200
        assert "webservice_requests_total" in response.text


class TestIntrospectionEndToEnd:
    """Decisions through the real engine with stubbed collaborators."""

    @pytest.fixture
    def service(self, config):
        service = IntrospectionService(config)
        descriptors = {
            service_id(): ServiceDescriptor.parse(test_data_factory.create_service_descriptor()),
            subscription_did(): ServiceDescriptor.parse(test_data_factory.create_subscription_descriptor()),
        }
        service.registry.resolve = AsyncMock(side_effect=lambda asset_id: descriptors[asset_id])
        service.ledger.balance = AsyncMock(return_value=3)
        return service

    def test_token_allowed(self, service):
        token = mock_token_generator.generate_access_token(test_data_factory.create_claims())

        response = TestClient(service.app).post("/introspect", headers={
            "authorization": f"Bearer {token}",
            "nvm-requested-url": "https://api.example.com/users/42"
        })

        assert response.status_code == 200
        body = response.json()
        assert body["user_id"] == CONSUMER
        assert body["upstream_host"] == "api.example.com"
        assert body["auth_header"] == "Bearer upstream-secret"

    def test_zero_balance_denied(self, service):
        service.ledger.balance = AsyncMock(return_value=0)
        token = mock_token_generator.generate_access_token(test_data_factory.create_claims())

        response = TestClient(service.app).post("/introspect", headers={
            "authorization": f"Bearer {token}",
            "nvm-requested-url": "https://api.example.com/users/42"
        })

        assert response.status_code == 401
        assert response.content == b""


def test_create_app(config):
    assert create_app(config).title == "Introspection Service"
