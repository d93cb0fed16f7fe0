"""
Reconciler worker for the Credit Gateway.

Runs the reconciliation loop until SIGINT/SIGTERM, or until the work queue
becomes unavailable, in which case the process exits non-zero and is
expected to be restarted by its supervisor.
"""

import asyncio
import signal
import sys
from typing import Optional

from shared.config import ReconcilerConfig, get_config
from shared.errors import ConfigurationError
from shared.ledger_client import LedgerClient
from shared.logging import configure_logging, get_logger
from shared.metrics import get_metrics_collector
from shared.registry_client import AssetRegistryClient

from .loop import ReconciliationLoop
from .queue.postgres import WorkQueue
from .settlement.executor import CreditDebitExecutor
from .settlement.resolver import AssetResolver


class ReconcilerService:
    """Wires the reconciliation loop from configuration."""

    def __init__(self, config: ReconcilerConfig):
        self.config = config
        configure_logging(config.service_name, config.log_level)
        self.logger = get_logger(f"{config.service_name}.service")
        self.metrics = get_metrics_collector(config.service_name)

        self.registry = AssetRegistryClient(config.registry_url, timeout=config.http_timeout)
        self.ledger = LedgerClient(config.ledger_url, timeout=config.http_timeout)
        self.loop = ReconciliationLoop(
            open_queue=self._open_queue,
            resolver=AssetResolver(self.registry, self.ledger, config.asset_id_prefix),
            executor=CreditDebitExecutor(config.ledger_account, config.default_credits_consumed),
            metrics=self.metrics,
            max_retries=config.max_retries,
            sleep_duration=config.sleep_duration_seconds
        )

    async def _open_queue(self) -> WorkQueue:
        self.logger.debug("Connecting to work queue", host=self.config.pg_host, port=self.config.pg_port)
        return await WorkQueue.open(self.config.postgres_connect_args)

    async def run(self) -> int:
        """Run until stopped; returns the process exit code."""
        event_loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            event_loop.add_signal_handler(sig, self.loop.stop)

        if self.config.metrics_port:
            self.metrics.start_metrics_server(self.config.metrics_port)

        self.logger.info(
            "Reconciler started",
            max_retries=self.config.max_retries,
            sleep_duration_seconds=self.config.sleep_duration_seconds,
            account=self.config.ledger_account
        )
        result = await self.loop.run_forever()
        return 1 if result is not None and result.is_fatal else 0


def main(config: Optional[ReconcilerConfig] = None) -> int:
    try:
        config = config or get_config(ReconcilerConfig)
    except ConfigurationError as e:
        configure_logging("reconciler")
        get_logger("reconciler.service").error(e.message, details=e.details)
        return 1

    return asyncio.run(ReconcilerService(config).run())


if __name__ == "__main__":
    sys.exit(main())
