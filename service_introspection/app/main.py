"""
Introspection service for the Credit Gateway.

The reverse proxy calls ``POST /introspect`` for every incoming request and
forwards it upstream only on a 200 answer.
"""

from typing import Optional

import httpx
from fastapi import Request, Response

from shared.base_service import BaseService
from shared.config import IntrospectionConfig, get_config
from shared.ledger_client import LedgerClient
from shared.registry_client import AssetRegistryClient

from .engine import AuthorizationEngine
from .subscriptions.checker import SubscriptionBalanceChecker
from .tokens.codec import TokenCodec


class IntrospectionService(BaseService):
    """Introspection service implementation."""

    def __init__(self, config: Optional[IntrospectionConfig] = None,
                 engine: Optional[AuthorizationEngine] = None):
        config = config or get_config(IntrospectionConfig)
        super().__init__(config)

        self.registry = AssetRegistryClient(config.registry_url, timeout=config.http_timeout)
        self.ledger = LedgerClient(config.ledger_url, timeout=config.http_timeout)
        self.engine = engine or AuthorizationEngine(
            codec=TokenCodec(config.token_secret_phrase),
            checker=SubscriptionBalanceChecker(self.registry, self.ledger, config.asset_id_prefix),
            registry=self.registry,
            metrics=self.metrics,
            asset_id_prefix=config.asset_id_prefix,
            decision_timeout=config.decision_timeout_seconds
        )

        self._setup_introspection_routes()

    def _setup_introspection_routes(self):
        """Set up introspection-specific routes."""

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "service": "introspection",
                "message": "Credit Gateway - Introspection Service",
                "version": "1.0.0"
            }

        @self.app.post("/introspect")
        async def introspect(request: Request):
            """Decide whether the proxy may forward a request.

            Deny is an empty 401; the reason only goes to the operator log.
            """
            decision = await self.engine.decide(
                request.headers.get(self.config.authorization_header),
                request.headers.get(self.config.requested_url_header)
            )
            if not decision.allowed:
                return Response(status_code=401)
            return decision.response.model_dump(mode="json")

    async def _check_dependencies(self):
        """Check introspection dependencies."""
        dependencies = {}

        for name, url, breaker in (
            ("asset_registry", self.config.registry_url, self.registry.circuit_breaker),
            ("ledger", self.config.ledger_url, self.ledger.circuit_breaker),
        ):
            if breaker.is_open():
                dependencies[name] = "circuit_open"
                continue
            try:
                async with httpx.AsyncClient() as client:
                    response = await client.get(url, timeout=self.config.http_timeout)
                dependencies[name] = "ok" if response.status_code < 500 else "error"
            except httpx.HTTPError:
                dependencies[name] = "error"

        return dependencies


def create_app(config: Optional[IntrospectionConfig] = None):
    """Create FastAPI application."""
    service = IntrospectionService(config)
    return service.app


if __name__ == "__main__":
    service = IntrospectionService()
    service.run()
