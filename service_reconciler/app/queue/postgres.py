"""
PostgreSQL work queue for usage records.
"""

import asyncio
from typing import Any, Dict, List, Mapping

import asyncpg
from pydantic import ValidationError as PydanticValidationError

from shared.logging import get_logger
from shared.errors import UPDATE_ERROR_CODE, InvalidRecordError, QueueUnavailableError
from ..models import RecordStatus, UsageRecord, sanitize_message

QUEUE_TABLE = 'public."serviceLogsQueue"'

SELECT_PENDING = f"""
    SELECT * FROM {QUEUE_TABLE}
    WHERE status = $1 AND retried < $2
    ORDER BY "createdAt" ASC
"""

MARK_DONE = f"""
    UPDATE {QUEUE_TABLE}
    SET status = $2, "errorMessage" = '', "updatedAt" = NOW()
    WHERE "logId" = $1
"""

MARK_FAILED = f"""
    UPDATE {QUEUE_TABLE}
    SET retried = retried + 1, "errorMessage" = $2, "updatedAt" = NOW()
    WHERE "logId" = $1
"""

MARK_INVALID = f"""
    UPDATE {QUEUE_TABLE}
    SET status = $3, retried = retried + 1, "errorMessage" = $2, "updatedAt" = NOW()
    WHERE "logId" = $1
"""

SWEEP_DEAD_LETTERS = f"""
    UPDATE {QUEUE_TABLE}
    SET status = $2, "updatedAt" = NOW()
    WHERE retried >= $1 AND status <> $2
"""


def _affected_rows(status: str) -> int:
    """Parse the row count out of an asyncpg command tag like ``UPDATE 3``."""
    try:
        return int(status.split()[-1])
    except (AttributeError, IndexError, ValueError):
        return 0


class WorkQueue:
    """Usage records queue over a single connection.

    A queue is opened at the start of a reconciliation cycle and closed at
    its end.
    """

    def __init__(self, connection: asyncpg.Connection):
        self.connection = connection
        self.logger = get_logger("reconciler.queue.postgres")

    @classmethod
    async def open(cls, connect_args: Dict[str, Any], timeout: float = 10.0) -> "WorkQueue":
        """Connect to the store, raising QueueUnavailableError on failure.

        ``connect_args`` are asyncpg keyword parameters (host, port, user,
        password, database).
        """
        try:
            connection = await asyncpg.connect(**connect_args, timeout=timeout)
        except (OSError, asyncpg.PostgresError, asyncpg.InterfaceError, asyncio.TimeoutError) as e:
            raise QueueUnavailableError(
                "Unable to connect to work queue",
                details={"error": str(e)}
            ) from e
        return cls(connection)

    async def close(self):
        if not self.connection.is_closed():
            await self.connection.close()

    async def fetch_pending(self, max_retries: int) -> List[UsageRecord]:
        """Pending records below the retry ceiling, oldest first."""
        try:
            rows = await self.connection.fetch(SELECT_PENDING, RecordStatus.PENDING.value, max_retries)
        except (OSError, asyncpg.PostgresError, asyncpg.InterfaceError) as e:
            self.logger.error("Unable to read pending usage records", error=str(e))
            raise QueueUnavailableError(
                "Unable to read pending usage records",
                details={"error": str(e)}
            ) from e

        records = []
        for row in rows:
            try:
                records.append(UsageRecord.from_row(row))
            except PydanticValidationError as e:
                await self._reject_unreadable(row, e)

        self.logger.info("Usage records found", count=len(records))
        return records

    async def _reject_unreadable(self, row: Mapping[str, Any], error: PydanticValidationError):
        """Move a row that can not be parsed to Error so it is not read again."""
        log_id = row.get("logId")
        if log_id is None or not str(log_id).strip():
            self.logger.warning("Skipping unreadable usage record without a log id", error=str(error))
            return

        fields = ", ".join(".".join(str(part) for part in err["loc"]) for err in error.errors())
        rejection = InvalidRecordError(f"Unreadable usage record ({fields})")
        self.logger.warning("Unreadable usage record", log_id=log_id, error=str(error))
        try:
            await self.mark_invalid(str(log_id), f"{rejection.code} {sanitize_message(rejection.message)}")
        except (OSError, asyncpg.PostgresError, asyncpg.InterfaceError) as e:
            self.logger.error(
                "Unable to record unreadable usage record",
                code=UPDATE_ERROR_CODE,
                log_id=log_id,
                error=str(e)
            )

    async def mark_done(self, log_id: str) -> int:
        status = await self.connection.execute(MARK_DONE, log_id, RecordStatus.DONE.value)
        return _affected_rows(status)

    async def mark_failed(self, log_id: str, error_message: str) -> int:
        status = await self.connection.execute(MARK_FAILED, log_id, error_message)
        return _affected_rows(status)

    async def mark_invalid(self, log_id: str, error_message: str) -> int:
        """Move a record straight to terminal Error."""
        status = await self.connection.execute(MARK_INVALID, log_id, error_message, RecordStatus.ERROR.value)
        return _affected_rows(status)

    async def sweep_dead_letters(self, max_retries: int) -> int:
        """Set Error on every record whose retry counter reached the ceiling."""
        try:
            status = await self.connection.execute(SWEEP_DEAD_LETTERS, max_retries, RecordStatus.ERROR.value)
        except (OSError, asyncpg.PostgresError, asyncpg.InterfaceError) as e:
            self.logger.error("Unable to sweep dead-lettered usage records", error=str(e))
            raise QueueUnavailableError(
                "Unable to sweep dead-lettered usage records",
                details={"error": str(e)}
            ) from e

        swept = _affected_rows(status)
        if swept:
            self.logger.info("Usage records dead-lettered", count=swept)
        return swept
