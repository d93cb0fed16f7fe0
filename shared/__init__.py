"""
Shared utilities for the Credit Gateway.

This package aggregates common building blocks consumed by both services:

- config: Service configuration via pydantic-settings
- logging: Structured logging with correlation context
- metrics: Prometheus metrics helpers
- errors: Canonical error types and responses
- retry / circuit_breaker: Resilient calls to external collaborators
- models: Service descriptor schemas
- registry_client / ledger_client: Asset registry and chain client adapters

Any cross-service logic should live here to avoid import cycles across
service packages. Do not import from service_* packages into shared/.
"""
