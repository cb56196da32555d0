"""Execution history ledger — bounded, most-recent-first."""

from __future__ import annotations

from datetime import datetime, timedelta

from autotrigger.core.schedule.types import TriggerRecord


class HistoryLedger:
    """In-memory ledger of trigger attempts.

    ``append`` puts the newest record at the head; anything past ``limit``
    or older than ``max_age`` is evicted. Records are frozen, so handing out
    copies of the list is enough to keep them untouched.
    """

    def __init__(self, limit: int = 40, max_age: timedelta | None = timedelta(days=7)):
        if limit < 1:
            raise ValueError("history limit must be >= 1")
        self.limit = limit
        self.max_age = max_age
        self._records: list[TriggerRecord] = []

    def __len__(self) -> int:
        return len(self._records)

    def append(self, record: TriggerRecord, now: datetime | None = None) -> None:
        self._records.insert(0, record)
        self._records = self._retain(self._records, now)

    def load(self, records: list[TriggerRecord], now: datetime | None = None) -> None:
        """Restore persisted records (most recent first)."""
        self._records = self._retain(list(records), now)

    def clear(self) -> None:
        self._records = []

    def list(self) -> list[TriggerRecord]:
        return list(self._records)

    def last(self) -> TriggerRecord | None:
        return self._records[0] if self._records else None

    def _retain(self, records: list[TriggerRecord], now: datetime | None) -> list[TriggerRecord]:
        if self.max_age is not None:
            cutoff = (now or datetime.now()) - self.max_age
            records = [r for r in records if _naive(r.timestamp) >= cutoff]
        return records[: self.limit]


def _naive(ts: datetime) -> datetime:
    """Compare in local naive time regardless of how the record was stamped."""
    if ts.tzinfo is not None:
        return ts.astimezone().replace(tzinfo=None)
    return ts
