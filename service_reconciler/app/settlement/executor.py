"""
Credit debit execution.
"""

from typing import Any, Optional

from shared.logging import get_logger
from shared.models import ChargePolicy, ChargeType, same_identity
from ..models import SettlementSuccess, sanitize_message
from .resolver import SettlementTarget

REASON_OWNER = "Call by owner."
REASON_FREE = "Free service."
REASON_INSUFFICIENT_FUNDS = "Insufficient funds"
REASON_BURNED = "Burned"

logger = get_logger("reconciler.executor")


def parse_credits_hint(raw: Optional[Any]) -> Optional[int]:
    """Read the upstream's credits-consumed hint; invalid values count as absent."""
    if raw is None or raw == "":
        return None
    try:
        value = int(str(raw).strip())
    except ValueError:
        logger.warning("Unable to parse credits hint", credits_consumed=raw)
        return None
    if value < 0:
        logger.warning("Negative credits hint ignored", credits_consumed=raw)
        return None
    return value


def compute_credits_to_charge(policy: ChargePolicy, hint: Optional[int],
                              default_credits: Optional[int] = None) -> Optional[int]:
    """Credits to charge for one call, or None when the service is free.

    Fixed charging uses the policy minimum. Dynamic charging takes the hint
    (or ``default_credits``) clamped to the policy's [min, max] range.
    """
    reported = hint if hint is not None else default_credits
    minimum = policy.min_credits_to_charge
    maximum = policy.max_credits_to_charge

    if policy.charge_type == ChargeType.FIXED:
        return minimum if minimum is not None else reported

    credits = reported if reported is not None else minimum
    if credits is None:
        return None
    if minimum is not None and credits < minimum:
        credits = minimum
    if maximum is not None and credits > maximum:
        credits = maximum
    return credits


class CreditDebitExecutor:
    """Debits consumers for settled usage, never beyond their balance."""

    def __init__(self, account: str, default_credits: Optional[int] = None):
        self.account = account
        self.default_credits = default_credits
        self.logger = logger

    async def execute(self, target: SettlementTarget) -> SettlementSuccess:
        record = target.record
        policy = target.descriptor.charge_policy
        hint = parse_credits_hint(record.credits_consumed)
        credits = compute_credits_to_charge(policy, hint, self.default_credits)

        self.logger.debug(
            "Credits to charge",
            log_id=record.log_id,
            charge_type=policy.charge_type.value,
            credits_hint=hint,
            credits=credits
        )

        if same_identity(target.consumer_id, target.subscription_owner):
            self.logger.info("Skipping call by owner", log_id=record.log_id, service_id=record.service_id)
            return SettlementSuccess(record.log_id, 0, REASON_OWNER)

        if credits is None or credits < 1:
            self.logger.info("Skipping free service", log_id=record.log_id, service_id=record.service_id)
            return SettlementSuccess(record.log_id, 0, REASON_FREE)

        balance = await target.contract.balance(target.token_id, target.consumer_id)
        self.logger.debug(
            "Consumer balance",
            consumer_id=target.consumer_id,
            token_id=target.token_id,
            balance=balance
        )

        if balance == 0:
            self.logger.warning(
                "Consumer has no balance, request should have been blocked by the proxy",
                log_id=record.log_id,
                consumer_id=target.consumer_id,
                subscription_id=target.subscription_id
            )
            return SettlementSuccess(record.log_id, 0, REASON_INSUFFICIENT_FUNDS)

        amount = credits
        if balance < credits:
            self.logger.warning(
                "Insufficient balance, burning remaining balance",
                log_id=record.log_id,
                consumer_id=target.consumer_id,
                credits=credits,
                balance=balance
            )
            amount = balance

        self.logger.info(
            "Burning credits",
            log_id=record.log_id,
            consumer_id=target.consumer_id,
            subscription_id=target.subscription_id,
            amount=amount
        )
        await target.contract.burn(target.consumer_id, target.token_id, amount, self.account)
        return SettlementSuccess(record.log_id, amount, REASON_BURNED)
