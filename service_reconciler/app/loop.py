"""
Reconciliation loop.

One cycle opens a fresh queue connection, settles every pending record in
order, records the outcomes, dead-letters exhausted records and closes the
connection. ``run_forever`` repeats cycles until stopped or until a cycle
reports a fatal store error.
"""

import asyncio
from typing import Awaitable, Callable, Optional

from shared.logging import get_logger, set_usage_context, clear_context
from shared.errors import BURN_ERROR_CODE, InvalidRecordError, QueueUnavailableError
from shared.metrics import MetricsCollector
from .models import (
    CycleResult, CycleStatus, SettlementBatch, SettlementFailure,
    TransactionOutcome, UsageRecord
)
from .queue.postgres import WorkQueue
from .settlement.executor import CreditDebitExecutor, sanitize_message
from .settlement.recorder import OutcomeRecorder
from .settlement.resolver import AssetResolver, ContractCache

QueueFactory = Callable[[], Awaitable[WorkQueue]]


class ReconciliationLoop:
    """Settles reported usage against consumer balances."""

    def __init__(self,
                 open_queue: QueueFactory,
                 resolver: AssetResolver,
                 executor: CreditDebitExecutor,
                 metrics: MetricsCollector,
                 max_retries: int = 3,
                 sleep_duration: float = 5.0):
        self.open_queue = open_queue
        self.resolver = resolver
        self.executor = executor
        self.metrics = metrics
        self.max_retries = max_retries
        self.sleep_duration = sleep_duration
        self.logger = get_logger("reconciler.loop")
        self._stopping = asyncio.Event()

    def stop(self):
        """Finish the in-flight cycle, then return from run_forever."""
        if not self._stopping.is_set():
            self.logger.info("Stop requested, finishing current cycle")
        self._stopping.set()

    @property
    def stopping(self) -> bool:
        return self._stopping.is_set()

    async def settle(self, record: UsageRecord, contracts: ContractCache) -> TransactionOutcome:
        """Settle one record. Business errors become failures, never exceptions."""
        set_usage_context(consumer_id=record.consumer_id, service_id=record.service_id, log_id=record.log_id)
        self.logger.info("Processing usage record")

        try:
            target = await self.resolver.resolve(record, contracts)
            return await self.executor.execute(target)
        except InvalidRecordError as e:
            self.logger.warning("Invalid usage record", log_id=record.log_id, error=e.message)
            return SettlementFailure(record.log_id, e.code, sanitize_message(e.message), retryable=False)
        except Exception as e:
            self.logger.warning("Unable to settle usage record", log_id=record.log_id, error=str(e))
            return SettlementFailure(record.log_id, BURN_ERROR_CODE, sanitize_message(e))
        finally:
            clear_context()

    async def run_cycle(self) -> CycleResult:
        """Run one reconciliation cycle."""
        with self.metrics.time_operation("reconciliation_cycle_seconds"):
            try:
                queue = await self.open_queue()
            except QueueUnavailableError as e:
                return self._fatal(e)

            try:
                records = await queue.fetch_pending(self.max_retries)

                batch = SettlementBatch()
                contracts = ContractCache(self.resolver.ledger)
                for record in records:
                    batch.add(await self.settle(record, contracts))

                self.logger.debug(
                    "Outcomes to record",
                    successes=len(batch.successes),
                    failures=len(batch.failures)
                )
                summary = await OutcomeRecorder(queue).record(batch)
                swept = await queue.sweep_dead_letters(self.max_retries)
            except QueueUnavailableError as e:
                return self._fatal(e)
            finally:
                await self._close(queue)

        for success in batch.successes:
            self.metrics.increment_counter("settlements_total", outcome=success.reason)
        for failure in batch.failures:
            self.metrics.increment_counter("settlements_total", outcome=failure.error_code)
        self.metrics.increment_counter("credits_debited_total", batch.credits_debited)
        self.metrics.increment_counter("dead_lettered_total", swept + summary.dead_lettered)

        result = CycleResult(
            status=CycleStatus.COMPLETED,
            fetched=len(records),
            succeeded=len(batch.successes),
            failed=len(batch.failures),
            dead_lettered=swept + summary.dead_lettered,
            credits_debited=batch.credits_debited
        )
        self.logger.info(
            "Reconciliation cycle finished",
            fetched=result.fetched,
            succeeded=result.succeeded,
            failed=result.failed,
            dead_lettered=result.dead_lettered,
            credits_debited=result.credits_debited,
            write_failures=len(summary.write_failures)
        )
        return result

    async def run_forever(self) -> Optional[CycleResult]:
        """Repeat cycles until stopped; returns the fatal result if one halts the loop."""
        while not self.stopping:
            result = await self.run_cycle()
            if result.is_fatal:
                self.logger.error("Reconciliation halted on fatal error", error=result.error)
                return result

            self.logger.info("Sleeping before next cycle", seconds=self.sleep_duration)
            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=self.sleep_duration)
            except asyncio.TimeoutError:
                pass

        self.logger.info("Reconciliation loop stopped")
        return None

    async def _close(self, queue: WorkQueue):
        try:
            await queue.close()
        except Exception as e:
            self.logger.warning("Unable to close work queue connection", error=str(e))

    def _fatal(self, error: QueueUnavailableError) -> CycleResult:
        self.logger.error("Work queue unavailable", error=error.message, details=error.details)
        self.metrics.record_error(error.code)
        return CycleResult.fatal(error.message)
