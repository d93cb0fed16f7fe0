"""
Unit tests for the asset registry client.
"""

import json

import httpx
import pytest
from unittest.mock import AsyncMock, patch

from shared.errors import AssetNotFoundError, ExternalServiceError
from shared.models import ChargeType, SubscriptionType
from shared.registry_client import AssetRegistryClient
from shared.retry import RetryConfig
from shared.test_helpers import CONTRACT_ADDRESS, OWNER, service_id, test_data_factory


def _response(status_code: int, body=None, text: str = None) -> httpx.Response:
    content = text if text is not None else json.dumps(body or {})
    return httpx.Response(
        status_code=status_code,
        content=content,
        request=httpx.Request("GET", f"http://registry.test/api/v1/assets/{service_id()}")
    )


class TestAssetRegistryClient:
    """Test cases for AssetRegistryClient."""

    @pytest.fixture
    def registry_client(self):
        return AssetRegistryClient(
            "http://registry.test/",
            retry_config=RetryConfig(max_attempts=2, base_delay=0, jitter=False)
        )

    @pytest.mark.asyncio
    async def test_resolve(self, registry_client):
        payload = test_data_factory.create_service_descriptor(
            charge_type="dynamic", max_credits_to_charge=10, open_endpoints=["/public"]
        )

        with patch("httpx.AsyncClient") as mock_client:
            get = AsyncMock(return_value=_response(200, payload))
            mock_client.return_value.__aenter__.return_value.get = get

            descriptor = await registry_client.resolve(service_id())

        assert descriptor.owner == OWNER
        assert descriptor.access_control.contract_address == CONTRACT_ADDRESS
        assert descriptor.charge_policy.charge_type == ChargeType.DYNAMIC
        assert descriptor.charge_policy.subscription_type == SubscriptionType.CREDITS
        assert descriptor.charge_policy.max_credits_to_charge == 10
        assert descriptor.open_endpoints == ["/public"]
        assert descriptor.min_credits_required == 1
        get.assert_called_once_with(f"http://registry.test/api/v1/assets/{service_id()}")

    @pytest.mark.asyncio
    async def test_not_found(self, registry_client):
        with patch("httpx.AsyncClient") as mock_client:
            mock_client.return_value.__aenter__.return_value.get = AsyncMock(return_value=_response(404))

            with pytest.raises(AssetNotFoundError):
                await registry_client.resolve(service_id())

    @pytest.mark.asyncio
    async def test_server_error(self, registry_client):
        with patch("httpx.AsyncClient") as mock_client:
            mock_client.return_value.__aenter__.return_value.get = AsyncMock(return_value=_response(500))

            with pytest.raises(ExternalServiceError):
                await registry_client.resolve(service_id())

    @pytest.mark.asyncio
    async def test_malformed_descriptor(self, registry_client):
        with patch("httpx.AsyncClient") as mock_client:
            mock_client.return_value.__aenter__.return_value.get = AsyncMock(
                return_value=_response(200, {"id": service_id()})
            )

            with pytest.raises(ExternalServiceError) as exc_info:
                await registry_client.resolve(service_id())

        assert "malformed" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_body_not_json(self, registry_client):
        with patch("httpx.AsyncClient") as mock_client:
            mock_client.return_value.__aenter__.return_value.get = AsyncMock(
                return_value=_response(200, text="<html>")
            )

            with pytest.raises(ExternalServiceError):
                await registry_client.resolve(service_id())

    @pytest.mark.asyncio
    async def test_transport_error_retried(self, registry_client):
        payload = test_data_factory.create_service_descriptor()

        with patch("httpx.AsyncClient") as mock_client:
            get = AsyncMock(side_effect=[httpx.ConnectError("refused"), _response(200, payload)])
            mock_client.return_value.__aenter__.return_value.get = get

            descriptor = await registry_client.resolve(service_id())

        assert descriptor.id == service_id()
        assert get.call_count == 2

    @pytest.mark.asyncio
    async def test_unreachable(self, registry_client):
        with patch("httpx.AsyncClient") as mock_client:
            mock_client.return_value.__aenter__.return_value.get = AsyncMock(
                side_effect=httpx.ConnectError("refused")
            )

            with pytest.raises(ExternalServiceError) as exc_info:
                await registry_client.resolve(service_id())

        assert exc_info.value.details["error"] == "refused"
