"""
Asset registry client.
"""

import httpx
from typing import Optional
from urllib.parse import quote

from pydantic import ValidationError as PydanticValidationError

from shared.logging import get_logger
from shared.errors import AssetNotFoundError, ExternalServiceError
from shared.circuit_breaker import CircuitBreaker, CircuitBreakerOpenException
from shared.models import ServiceDescriptor
from shared.retry import retry_on_exception, RetryConfig, RetryError


class AssetRegistryClient:
    """Resolves asset identifiers to service descriptors."""

    def __init__(self, registry_url: str, timeout: float = 5.0,
                 retry_config: Optional[RetryConfig] = None):
        self.registry_url = registry_url.rstrip("/")
        self.timeout = timeout
        self.logger = get_logger("registry.client")
        self.circuit_breaker = CircuitBreaker(
            failure_threshold=5,
            recovery_timeout=30.0,
            name="asset_registry"
        )
        self.retry_config = retry_config or RetryConfig(max_attempts=2, base_delay=0.2)

    async def resolve(self, asset_id: str) -> ServiceDescriptor:
        """Resolve a descriptor, raising AssetNotFoundError if the registry has none."""

        @retry_on_exception((httpx.TransportError,), config=self.retry_config)
        async def _fetch():
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                return await client.get(
                    f"{self.registry_url}/api/v1/assets/{quote(asset_id, safe=':')}"
                )

        try:
            response = await self.circuit_breaker.call(_fetch)
        except CircuitBreakerOpenException as e:
            raise ExternalServiceError("asset_registry", str(e), details={"asset_id": asset_id}) from e
        except RetryError as e:
            self.logger.error("Asset registry unreachable", asset_id=asset_id, error=str(e))
            raise ExternalServiceError(
                "asset_registry",
                "unreachable",
                details={"asset_id": asset_id, "error": str(e.last_exception)}
            ) from e

        if response.status_code == 404:
            raise AssetNotFoundError(asset_id)
        if response.status_code != 200:
            raise ExternalServiceError(
                "asset_registry",
                f"unexpected status {response.status_code}",
                details={"asset_id": asset_id, "status_code": response.status_code}
            )

        try:
            descriptor = ServiceDescriptor.parse(response.json())
        except (ValueError, PydanticValidationError) as e:
            raise ExternalServiceError(
                "asset_registry",
                "malformed descriptor",
                details={"asset_id": asset_id, "error": str(e)}
            ) from e

        self.logger.debug("Asset resolved", asset_id=asset_id, owner=descriptor.owner)
        return descriptor
