"""
Request-time authorization engine.

Every request ends in Allow or Deny. A request carrying a token is checked
against the token's claims; when that fails, or when there is no token, the
open-access path may still allow it if the requested host names an asset
whose descriptor lists the path as an open endpoint.
"""

import asyncio
import re
import time
from dataclasses import dataclass
from typing import Callable, Optional
from urllib.parse import urlsplit

from shared.logging import get_logger, set_usage_context
from shared.errors import (
    AuthorizationDenied, BadRequestedUrlError, InvalidTokenError,
    UnauthorizedError, UpstreamResolutionTimeoutError
)
from shared.metrics import MetricsCollector
from shared.registry_client import AssetRegistryClient
from .credentials import compose_credential
from .endpoints.matcher import match_endpoints, require_endpoint
from .subscriptions.checker import SubscriptionBalanceChecker
from .tokens.codec import TokenCodec
from .tokens.models import CredentialType, IntrospectionResponse

_ASSET_HEX = re.compile(r"^(0x)?([0-9a-f]{64})$")


@dataclass(frozen=True)
class RequestedUrl:
    url: str
    hostname: str
    path: str


@dataclass(frozen=True)
class AuthorizationDecision:
    """Allow (with the introspection body) or Deny (with a reason code)."""
    allowed: bool
    response: Optional[IntrospectionResponse] = None
    reason: Optional[str] = None

    @classmethod
    def allow(cls, response: IntrospectionResponse) -> "AuthorizationDecision":
        return cls(allowed=True, response=response)

    @classmethod
    def deny(cls, reason: str) -> "AuthorizationDecision":
        return cls(allowed=False, reason=reason)


def parse_requested_url(value: Optional[str]) -> RequestedUrl:
    """Parse the fully-qualified URL the proxy was asked for."""
    if not value or not value.strip():
        raise BadRequestedUrlError("Requested URL header missing")

    try:
        parts = urlsplit(value.strip())
        # Accessing port validates it
        parts.port
    except ValueError as e:
        raise BadRequestedUrlError("Requested URL is malformed", details={"url": value, "error": str(e)}) from e

    if parts.scheme not in ("http", "https") or not parts.hostname:
        raise BadRequestedUrlError("Requested URL is not an absolute http(s) URL", details={"url": value})

    return RequestedUrl(url=value, hostname=parts.hostname, path=parts.path or "/")


def decode_asset_id(hostname: str, prefix: str) -> Optional[str]:
    """Read an asset identifier from the leftmost label of ``hostname``."""
    labels = hostname.lower().split(".")
    if len(labels) < 2:
        return None
    match = _ASSET_HEX.match(labels[0])
    if not match:
        return None
    return f"{prefix}:{match.group(2)}"


class AuthorizationEngine:
    """Decides whether the proxy may forward a request upstream."""

    def __init__(self,
                 codec: TokenCodec,
                 checker: SubscriptionBalanceChecker,
                 registry: AssetRegistryClient,
                 metrics: MetricsCollector,
                 asset_id_prefix: str = "did:nv",
                 decision_timeout: float = 5.0,
                 clock: Callable[[], float] = time.time):
        self.codec = codec
        self.checker = checker
        self.registry = registry
        self.metrics = metrics
        self.asset_id_prefix = asset_id_prefix
        self.decision_timeout = decision_timeout
        self.clock = clock
        self.logger = get_logger("introspection.engine")

    async def decide(self, authorization: Optional[str], requested_url: Optional[str]) -> AuthorizationDecision:
        """Decide a request. Never raises; failures become Deny."""
        with self.metrics.time_operation("authorization_decision_seconds"):
            try:
                target = parse_requested_url(requested_url)
            except BadRequestedUrlError as e:
                return self._deny(e)

            try:
                return await asyncio.wait_for(
                    self._decide(authorization, target),
                    timeout=self.decision_timeout
                )
            except asyncio.TimeoutError:
                return self._deny(UpstreamResolutionTimeoutError(
                    details={"timeout_seconds": self.decision_timeout, "url": target.url}
                ))
            except Exception as e:
                self.logger.error("Unexpected error while deciding", error=str(e), exc_info=True)
                return self._deny(UnauthorizedError("Unable to decide request", details={"url": target.url}))

    async def _decide(self, authorization: Optional[str], target: RequestedUrl) -> AuthorizationDecision:
        token_denial: Optional[AuthorizationDenied] = None

        if authorization:
            try:
                return self._allow(await self.authorize_token(authorization, target), via="token")
            except AuthorizationDenied as e:
                self.logger.info("Token path denied, trying open access", code=e.code, message=e.message)
                token_denial = e

        try:
            response = await self.authorize_open_access(target)
        except AuthorizationDenied as e:
            return self._deny(token_denial or e)
        return self._allow(response, via="open")

    async def authorize_token(self, authorization: str, target: RequestedUrl) -> IntrospectionResponse:
        """Token path: decode, match endpoint, check subscription, compose credential."""
        claims = self.codec.decode(authorization)
        set_usage_context(consumer_id=claims.user_id, service_id=claims.did)

        now = self.clock()
        if claims.is_expired(now):
            raise InvalidTokenError("Token expired", details={"exp": claims.exp})
        if claims.nbf is not None and now < claims.nbf:
            raise InvalidTokenError("Token not yet valid", details={"nbf": claims.nbf})

        pattern = require_endpoint(target.path, claims.endpoints)
        await self.checker.ensure(claims)
        credential = compose_credential(claims.authentication)

        return IntrospectionResponse(
            user_id=claims.user_id,
            owner=claims.owner,
            auth_type=credential.auth_type,
            auth_header=credential.header,
            service_token=credential.token,
            upstream_host=pattern.hostname or target.hostname,
            scope=claims.did,
            exp=claims.exp,
            iat=claims.iat
        )

    async def authorize_open_access(self, target: RequestedUrl) -> IntrospectionResponse:
        """Open-access path for requests to an asset's open endpoints."""
        asset_id = decode_asset_id(target.hostname, self.asset_id_prefix)
        if asset_id is None:
            raise UnauthorizedError("No asset identifier in requested host", details={"host": target.hostname})

        try:
            descriptor = await self.registry.resolve(asset_id)
        except Exception as e:
            raise UnauthorizedError(
                "Unable to resolve asset for open access",
                details={"asset_id": asset_id, "cause": str(e)}
            ) from e

        pattern, matched = match_endpoints(target.path, descriptor.open_endpoints)
        if not matched:
            raise UnauthorizedError(
                f"{target.path} is not an open endpoint of {asset_id}",
                details={"asset_id": asset_id}
            )

        set_usage_context(service_id=asset_id)
        return IntrospectionResponse(
            user_id="",
            owner=descriptor.owner,
            auth_type=CredentialType.NONE,
            upstream_host=pattern.hostname or target.hostname,
            scope=asset_id
        )

    def _allow(self, response: IntrospectionResponse, via: str) -> AuthorizationDecision:
        self.metrics.increment_counter(
            "webservice_requests_total",
            service=response.scope,
            owner=response.owner or "",
            consumer=response.user_id,
            upstream_host=response.upstream_host
        )
        self.metrics.increment_counter("authorization_decisions_total", decision="allow", reason=via)
        self.logger.info(
            "Request allowed",
            via=via,
            scope=response.scope,
            upstream_host=response.upstream_host,
            auth_type=response.auth_type.value
        )
        return AuthorizationDecision.allow(response)

    def _deny(self, error: AuthorizationDenied) -> AuthorizationDecision:
        self.metrics.increment_counter("authorization_decisions_total", decision="deny", reason=error.code)
        self.logger.warning("Request denied", code=error.code, message=error.message, details=error.details)
        return AuthorizationDecision.deny(error.code)
