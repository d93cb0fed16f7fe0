"""
Asset and contract resolution for usage records.
"""

from dataclasses import dataclass
from typing import Optional

from shared.logging import get_logger
from shared.errors import InvalidRecordError
from shared.ledger_client import ContractBinding, LedgerClient
from shared.models import ServiceDescriptor, subscription_id
from shared.registry_client import AssetRegistryClient
from ..models import UsageRecord


@dataclass(frozen=True)
class SettlementTarget:
    """Everything needed to charge one usage record."""
    record: UsageRecord
    descriptor: ServiceDescriptor
    contract: ContractBinding
    token_id: str
    subscription_id: str
    subscription_owner: str

    @property
    def consumer_id(self) -> str:
        return self.record.consumer_id


class ContractCache:
    """The currently loaded credits contract, scoped to one batch.

    Bindings are reloaded only when consecutive records use a different
    contract address.
    """

    def __init__(self, ledger: LedgerClient):
        self.ledger = ledger
        self.logger = get_logger("reconciler.contracts")
        self._binding: Optional[ContractBinding] = None
        self.loads = 0

    @property
    def active_address(self) -> Optional[str]:
        return self._binding.contract_address if self._binding else None

    async def load(self, contract_address: str) -> ContractBinding:
        if self._binding is not None and self._binding.contract_address == contract_address:
            self.logger.debug("Contract already loaded, skipping", contract_address=contract_address)
            return self._binding

        self.logger.debug("Loading contract", contract_address=contract_address)
        self._binding = await self.ledger.bind_contract(contract_address)
        self.loads += 1
        return self._binding


def validate_record(record: UsageRecord):
    """Reject records that must never be billed."""
    if not record.service_id:
        raise InvalidRecordError("Invalid service id", details={"log_id": record.log_id})
    if not record.consumer_id:
        raise InvalidRecordError("Invalid consumer id", details={"log_id": record.log_id})
    if not record.upstream_succeeded:
        raise InvalidRecordError(
            "Upstream call failed, no credits are charged for it",
            details={"log_id": record.log_id, "upstream_status": record.upstream_status}
        )


class AssetResolver:
    """Resolves a usage record to its service, subscription and contract."""

    def __init__(self, registry: AssetRegistryClient, ledger: LedgerClient,
                 asset_id_prefix: str = "did:nv"):
        self.registry = registry
        self.ledger = ledger
        self.asset_id_prefix = asset_id_prefix
        self.logger = get_logger("reconciler.resolver")

    async def resolve(self, record: UsageRecord, contracts: ContractCache) -> SettlementTarget:
        validate_record(record)

        self.logger.debug("Resolving service", service_id=record.service_id)
        descriptor = await self.registry.resolve(record.service_id)
        access = descriptor.require_access_control()

        subscription = subscription_id(self.asset_id_prefix, access.token_id)
        owner = await self.ledger.owner_of(subscription)
        contract = await contracts.load(access.contract_address)

        return SettlementTarget(
            record=record,
            descriptor=descriptor,
            contract=contract,
            token_id=access.token_id,
            subscription_id=subscription,
            subscription_owner=owner
        )
