"""
Subscription balance checks for the introspection service.
"""

from dataclasses import dataclass

from shared.logging import get_logger
from shared.errors import SubscriptionValidationFailedError
from shared.ledger_client import LedgerClient
from shared.models import SubscriptionType, same_identity, subscription_id
from shared.registry_client import AssetRegistryClient
from ..tokens.models import AuthorizationClaims


@dataclass(frozen=True)
class SubscriptionCheck:
    """Outcome of a subscription check."""
    passed: bool
    reason: str
    balance: int = 0
    required: int = 0


class SubscriptionBalanceChecker:
    """Decides whether a consumer may use a service right now."""

    def __init__(self, registry: AssetRegistryClient, ledger: LedgerClient,
                 asset_id_prefix: str = "did:nv"):
        self.registry = registry
        self.ledger = ledger
        self.asset_id_prefix = asset_id_prefix
        self.logger = get_logger("introspection.subscriptions")

    async def check(self, claims: AuthorizationClaims) -> SubscriptionCheck:
        """Check the consumer in ``claims`` against the service's subscription.

        Any failure to resolve metadata or balances is raised as
        SubscriptionValidationFailedError with the cause attached.
        """
        try:
            return await self._check(claims)
        except SubscriptionValidationFailedError:
            raise
        except Exception as e:
            self.logger.warning(
                "Unable to validate subscription",
                service_id=claims.did,
                consumer_id=claims.user_id,
                error=str(e)
            )
            raise SubscriptionValidationFailedError(
                f"Unable to validate subscription for {claims.did}",
                details={"cause": str(e)}
            ) from e

    async def _check(self, claims: AuthorizationClaims) -> SubscriptionCheck:
        service = await self.registry.resolve(claims.did)
        if same_identity(claims.user_id, service.owner):
            return SubscriptionCheck(passed=True, reason="owner")

        access = service.require_access_control()
        subscription = claims.subscription_did or subscription_id(self.asset_id_prefix, access.token_id)

        subscription_descriptor = await self.registry.resolve(subscription)
        if subscription_descriptor.charge_policy.subscription_type == SubscriptionType.TIME:
            return SubscriptionCheck(passed=True, reason="time-based subscription")

        required = service.min_credits_required
        balance = await self.ledger.balance(access.contract_address, access.token_id, claims.user_id)
        self.logger.debug(
            "Subscription balance",
            subscription=subscription,
            consumer_id=claims.user_id,
            balance=balance,
            required=required
        )

        if balance >= required:
            return SubscriptionCheck(passed=True, reason="balance", balance=balance, required=required)
        return SubscriptionCheck(passed=False, reason="insufficient balance", balance=balance, required=required)

    async def ensure(self, claims: AuthorizationClaims) -> SubscriptionCheck:
        """Run check() and raise if it did not pass."""
        result = await self.check(claims)
        if not result.passed:
            raise SubscriptionValidationFailedError(
                f"Insufficient balance for {claims.did}",
                details={"balance": result.balance, "required": result.required}
            )
        return result
