"""Ledger records, snapshots and transaction receipts."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from ..fhe.types import Handle


@dataclass
class Profile:
    user_address: str
    created_at: int
    allow_aggregation: bool
    allow_anonymous_report: bool
    join_leaderboard: bool = False
    total_entries: int = 0


@dataclass(frozen=True)
class EncryptedSleepEntry:
    """One accepted submission; immutable once on the ledger."""

    date: int
    bedtime: Handle
    wake_time: Handle
    duration: Handle
    deep_sleep_ratio: Handle
    wake_count: Handle
    sleep_score: Handle

    @property
    def handles(self) -> tuple[Handle, ...]:
        return (
            self.bedtime,
            self.wake_time,
            self.duration,
            self.deep_sleep_ratio,
            self.wake_count,
            self.sleep_score,
        )


@dataclass(frozen=True)
class AggregateSnapshot:
    """Encrypted running sums plus the plaintext number of folded entries."""

    sum_duration: Handle
    sum_deep_sleep: Handle
    sum_score: Handle
    count: int

    @property
    def handles(self) -> tuple[Handle, Handle, Handle]:
        return (self.sum_duration, self.sum_deep_sleep, self.sum_score)


@dataclass(frozen=True)
class LedgerEvent:
    name: str
    args: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Receipt:
    tx_hash: str
    block_number: int
    sender: str
    events: tuple[LedgerEvent, ...] = ()
    return_value: Any = None
    status: int = 1


class PendingTransaction:
    """A committed write awaiting confirmation by the caller."""

    def __init__(self, receipt: Receipt):
        self.hash = receipt.tx_hash
        self._receipt = receipt

    async def wait(self) -> Receipt:
        return self._receipt
