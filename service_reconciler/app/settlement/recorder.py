"""
Outcome recording back into the work queue.
"""

from dataclasses import dataclass, field
from typing import List

from shared.logging import get_logger
from shared.errors import UPDATE_ERROR_CODE
from ..models import SettlementBatch, SettlementFailure
from ..queue.postgres import WorkQueue
from .executor import sanitize_message


@dataclass
class RecordingSummary:
    done: int = 0
    retried: int = 0
    dead_lettered: int = 0
    write_failures: List[SettlementFailure] = field(default_factory=list)


class OutcomeRecorder:
    """Writes settlement outcomes row by row; one failed write never blocks the rest."""

    def __init__(self, queue: WorkQueue):
        self.queue = queue
        self.logger = get_logger("reconciler.recorder")

    async def record(self, batch: SettlementBatch) -> RecordingSummary:
        summary = RecordingSummary()

        for success in batch.successes:
            try:
                updated = await self.queue.mark_done(success.log_id)
            except Exception as e:
                self._write_failed(summary, success.log_id, e)
                continue
            summary.done += 1
            self.logger.info(
                "Usage record settled",
                log_id=success.log_id,
                credits_debited=success.credits_debited,
                reason=success.reason,
                rows=updated
            )

        for failure in batch.failures:
            try:
                if failure.retryable:
                    updated = await self.queue.mark_failed(failure.log_id, failure.recorded_message)
                else:
                    updated = await self.queue.mark_invalid(failure.log_id, failure.recorded_message)
            except Exception as e:
                self._write_failed(summary, failure.log_id, e)
                continue

            if failure.retryable:
                summary.retried += 1
            else:
                summary.dead_lettered += 1
            self.logger.info(
                "Usage record failed",
                log_id=failure.log_id,
                error=failure.recorded_message,
                retryable=failure.retryable,
                rows=updated
            )

        return summary

    def _write_failed(self, summary: RecordingSummary, log_id: str, error: Exception):
        self.logger.warning("Unable to update usage record", log_id=log_id, code=UPDATE_ERROR_CODE, error=str(error))
        summary.write_failures.append(
            SettlementFailure(log_id, UPDATE_ERROR_CODE, sanitize_message(error))
        )
