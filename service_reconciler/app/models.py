"""
Reconciler data models: usage records, settlement outcomes and cycle results.
"""

import json
import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, List, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

_NON_PRINTABLE = re.compile(r"[^\x20-\x7E]")


def sanitize_message(message: Any) -> str:
    """Strip everything outside printable ASCII."""
    return _NON_PRINTABLE.sub("", str(message))


class RecordStatus(str, Enum):
    PENDING = "Pending"
    DONE = "Done"
    ERROR = "Error"


class UsageRecord(BaseModel):
    """A row of the usage work queue."""
    model_config = ConfigDict(frozen=True)

    log_id: str = Field(..., min_length=1)
    service_id: Optional[str] = None
    consumer_id: Optional[str] = None
    upstream_status: Optional[str] = None
    credits_consumed: Optional[str] = Field(None, description="Credits hint reported by the upstream")
    status: RecordStatus = RecordStatus.PENDING
    retried: int = Field(0, ge=0)
    error_message: str = ""
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("log_id", "upstream_status", "credits_consumed", mode="before")
    @classmethod
    def _as_text(cls, value: Any) -> Any:
        if value is None or isinstance(value, str):
            return value
        return str(value)

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "UsageRecord":
        """Build a record from a queue row.

        Rows written by older ingestion shims only carry the proxy's JSON
        access-log line in ``logLine``; its fields fill in whatever the
        explicit columns leave empty.
        """
        row = dict(row)
        log_line = _parse_log_line(row.get("logLine"))

        return cls(
            log_id=row["logId"],
            service_id=row.get("serviceId") or log_line.get("scope"),
            consumer_id=row.get("consumerId") or log_line.get("user_id"),
            upstream_status=row.get("upstreamStatus") or log_line.get("upstream_status"),
            credits_consumed=_first_present(
                row.get("creditsConsumed"),
                log_line.get("upstream_http_NVMCreditsConsumed")
            ),
            status=row.get("status") or RecordStatus.PENDING,
            retried=row.get("retried") or 0,
            error_message=row.get("errorMessage") or "",
            created_at=row.get("createdAt"),
            updated_at=row.get("updatedAt")
        )

    @property
    def upstream_succeeded(self) -> bool:
        return bool(self.upstream_status) and self.upstream_status.strip().startswith("2")


def _parse_log_line(raw: Optional[Union[str, dict]]) -> dict:
    if not raw:
        return {}
    if isinstance(raw, dict):
        return raw
    try:
        parsed = json.loads(raw)
    except ValueError:
        return {}
    return parsed if isinstance(parsed, dict) else {}


def _first_present(*values: Any) -> Any:
    for value in values:
        if value is not None and value != "":
            return value
    return None


@dataclass(frozen=True)
class SettlementSuccess:
    """A record settled; ``credits_debited`` may be 0."""
    log_id: str
    credits_debited: int
    reason: str


@dataclass(frozen=True)
class SettlementFailure:
    """A record that failed to settle in this cycle."""
    log_id: str
    error_code: str
    error_message: str
    # Non-retryable failures go straight to terminal Error
    retryable: bool = True

    @property
    def recorded_message(self) -> str:
        return f"{self.error_code} {self.error_message}"


TransactionOutcome = Union[SettlementSuccess, SettlementFailure]


@dataclass
class SettlementBatch:
    """Outcomes of one batch, in processing order."""
    successes: List[SettlementSuccess] = field(default_factory=list)
    failures: List[SettlementFailure] = field(default_factory=list)

    def add(self, outcome: TransactionOutcome):
        if isinstance(outcome, SettlementSuccess):
            self.successes.append(outcome)
        else:
            self.failures.append(outcome)

    @property
    def credits_debited(self) -> int:
        return sum(success.credits_debited for success in self.successes)


class CycleStatus(str, Enum):
    COMPLETED = "completed"
    FATAL = "fatal"


@dataclass(frozen=True)
class CycleResult:
    """Summary of one reconciliation cycle."""
    status: CycleStatus
    fetched: int = 0
    succeeded: int = 0
    failed: int = 0
    dead_lettered: int = 0
    credits_debited: int = 0
    error: Optional[str] = None

    @property
    def is_fatal(self) -> bool:
        return self.status == CycleStatus.FATAL

    @classmethod
    def fatal(cls, error: str) -> "CycleResult":
        return cls(status=CycleStatus.FATAL, error=error)
