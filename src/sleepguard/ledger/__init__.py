"""Ledger aggregate store: profiles, encrypted entries and running sums."""

from .models import AggregateSnapshot, EncryptedSleepEntry, LedgerEvent, PendingTransaction, Profile, Receipt
from .store import EVENT_TOPICS, LedgerAggregateStore, LedgerConnection, SleepGuardLedger

__all__ = [
    "AggregateSnapshot",
    "EVENT_TOPICS",
    "EncryptedSleepEntry",
    "LedgerAggregateStore",
    "LedgerConnection",
    "LedgerEvent",
    "PendingTransaction",
    "Profile",
    "Receipt",
    "SleepGuardLedger",
]
