"""
Ledger (chain client) adapter.

The ledger holds consumers' subscription balances. This adapter speaks to a
chain-client HTTP API; signing and submitting transactions happen behind it.
"""

import httpx
from dataclasses import dataclass
from typing import Any, Dict, Optional
from urllib.parse import quote

from shared.logging import get_logger
from shared.errors import ExternalServiceError
from shared.circuit_breaker import CircuitBreaker, CircuitBreakerOpenException
from shared.retry import retry_on_exception, RetryConfig, RetryError


class LedgerClient:
    """Client for balance queries, debits and asset ownership lookups."""

    def __init__(self, ledger_url: str, timeout: float = 10.0,
                 retry_config: Optional[RetryConfig] = None):
        self.ledger_url = ledger_url.rstrip("/")
        self.timeout = timeout
        self.logger = get_logger("ledger.client")
        self.circuit_breaker = CircuitBreaker(
            failure_threshold=5,
            recovery_timeout=30.0,
            name="ledger"
        )
        self.retry_config = retry_config or RetryConfig(max_attempts=3, base_delay=0.5)

    async def _request(self, method: str, path: str,
                       json: Optional[Dict[str, Any]] = None,
                       retry: bool = True) -> Dict[str, Any]:
        config = self.retry_config if retry else RetryConfig(max_attempts=1)

        @retry_on_exception((httpx.TransportError,), config=config)
        async def _send():
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                return await client.request(method, f"{self.ledger_url}{path}", json=json)

        try:
            response = await self.circuit_breaker.call(_send)
        except CircuitBreakerOpenException as e:
            raise ExternalServiceError("ledger", str(e), details={"path": path}) from e
        except RetryError as e:
            raise ExternalServiceError(
                "ledger",
                "unreachable",
                details={"path": path, "error": str(e.last_exception)}
            ) from e

        if response.status_code >= 400:
            raise ExternalServiceError(
                "ledger",
                f"{method} {path} failed with status {response.status_code}",
                details={"status_code": response.status_code, "body": response.text[:200]}
            )
        return response.json() if response.content else {}

    async def bind_contract(self, contract_address: str) -> "ContractBinding":
        """Load the bindings for a credits contract."""
        self.logger.debug("Loading credits contract", contract_address=contract_address)
        await self._request("GET", f"/api/v1/contracts/{quote(contract_address)}")
        return ContractBinding(client=self, contract_address=contract_address)

    async def balance(self, contract_address: str, token_id: str, holder: str) -> int:
        """Current balance of ``holder`` for ``token_id``."""
        payload = await self._request(
            "GET",
            f"/api/v1/contracts/{quote(contract_address)}/tokens/{quote(token_id)}"
            f"/balances/{quote(holder)}"
        )
        balance = int(payload["balance"])
        if balance < 0:
            raise ExternalServiceError("ledger", f"negative balance reported: {balance}")
        return balance

    async def burn(self, contract_address: str, holder: str, token_id: str,
                   amount: int, account: str) -> Dict[str, Any]:
        """Debit ``amount`` credits from ``holder``, authorized by ``account``."""
        # Not retried here; the reconciler retries the whole record next cycle
        # after re-reading the balance.
        return await self._request(
            "POST",
            f"/api/v1/contracts/{quote(contract_address)}/burn",
            json={
                "holder": holder,
                "tokenId": token_id,
                "amount": str(amount),
                "account": account,
            },
            retry=False
        )

    async def owner_of(self, asset_id: str) -> str:
        """Current owner of an asset (e.g. a subscription)."""
        payload = await self._request("GET", f"/api/v1/assets/{quote(asset_id, safe=':')}/owner")
        owner = payload.get("owner")
        if not owner:
            raise ExternalServiceError("ledger", f"no owner reported for {asset_id}")
        return owner


@dataclass(frozen=True)
class ContractBinding:
    """A loaded credits contract."""
    client: LedgerClient
    contract_address: str

    async def balance(self, token_id: str, holder: str) -> int:
        return await self.client.balance(self.contract_address, token_id, holder)

    async def burn(self, holder: str, token_id: str, amount: int, account: str) -> Dict[str, Any]:
        return await self.client.burn(self.contract_address, holder, token_id, amount, account)
