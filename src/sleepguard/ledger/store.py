"""
The ledger aggregate store.

``SleepGuardLedger`` keeps profiles, encrypted entries and the encrypted
running sums. Every write is a transaction: it runs under the ledger lock,
validates fully before touching state, and then commits at once, so a
caller never observes a half-applied entry. Aggregates are only ever
changed inside ``submit_sleep_data``; there is no other mutator.

Callers talk to the ledger through a ``LedgerConnection`` bound to their
address, which is what ``LedgerAggregateStore`` describes.
"""

from __future__ import annotations

import asyncio
import hashlib
import itertools
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, replace
from typing import Protocol

from loguru import logger

from ..core.events import (
    LEADERBOARD_PARTICIPATION_UPDATED,
    PRIVACY_SETTINGS_UPDATED,
    PROFILE_CREATED,
    SLEEP_DATA_SUBMITTED,
)
from ..core.exceptions import (
    DataAlreadySubmittedForDate,
    HandleLayoutError,
    InvalidIndex,
    InvalidProof,
    ProfileAlreadyExists,
    ProfileNotCreated,
    Unauthorized,
)
from ..core.utils.addresses import normalize_address
from ..core.utils.logging import short_hex
from ..fhe.engine import HomomorphicEngine
from ..fhe.types import EUINT32, Handle
from ..payload import day_key, validate_layout
from .models import (
    AggregateSnapshot,
    EncryptedSleepEntry,
    LedgerEvent,
    PendingTransaction,
    Profile,
    Receipt,
)

AGGREGATE_TYPE = EUINT32


class LedgerAggregateStore(Protocol):
    """Operations the client core depends on, as seen by one caller."""

    address: str
    account: str

    async def has_profile(self, user: str) -> bool: ...

    async def get_profile(self, user: str) -> Profile | None: ...

    async def create_profile(self, allow_aggregation: bool, allow_anonymous_report: bool) -> PendingTransaction: ...

    async def update_privacy_settings(
        self, allow_aggregation: bool, allow_anonymous_report: bool
    ) -> PendingTransaction: ...

    async def update_leaderboard_participation(self, join: bool) -> PendingTransaction: ...

    async def submit_sleep_data(self, date: int, handles: Sequence[Handle], proof: bytes) -> PendingTransaction: ...

    async def get_user_entries_count(self, user: str) -> int: ...

    async def get_user_sleep_data(self, index: int) -> EncryptedSleepEntry: ...

    async def get_user_aggregated_stats(self, user: str) -> AggregateSnapshot: ...

    async def total_participants(self) -> int: ...

    async def authorize_global_stats(self) -> PendingTransaction: ...

    async def get_global_average_stats(self) -> AggregateSnapshot: ...


@dataclass
class _Aggregate:
    sum_duration: Handle
    sum_deep_sleep: Handle
    sum_score: Handle
    count: int = 0

    def snapshot(self) -> AggregateSnapshot:
        return AggregateSnapshot(self.sum_duration, self.sum_deep_sleep, self.sum_score, self.count)


class SleepGuardLedger:
    """In-process ledger holding per-user and global encrypted aggregates."""

    def __init__(self, engine: HomomorphicEngine, address: str, clock: Callable[[], float] = time.time):
        self.engine = engine
        self.address = normalize_address(address)
        self.clock = clock
        self._lock = asyncio.Lock()
        self._block = itertools.count(1)
        self._tx_nonce = itertools.count()

        self._profiles: dict[str, Profile] = {}
        self._entries: dict[str, list[EncryptedSleepEntry]] = {}
        self._days: dict[str, set[int]] = {}
        self._user_aggregates: dict[str, _Aggregate] = {}
        self._global = self._zero_aggregate()
        self.event_log: list[LedgerEvent] = []

    def connect(self, account: str) -> LedgerConnection:
        return LedgerConnection(self, account)

    # ── Transactions ─────────────────────────────────────────────────

    async def _transact(self, sender: str, fn: Callable[[str, list[LedgerEvent]], object]) -> PendingTransaction:
        sender = normalize_address(sender)
        async with self._lock:
            events: list[LedgerEvent] = []
            result = fn(sender, events)
            nonce = next(self._tx_nonce)
            tx_hash = "0x" + hashlib.sha256(f"{self.address}:{sender}:{nonce}".encode()).hexdigest()
            receipt = Receipt(tx_hash, next(self._block), sender, tuple(events), result)
            self.event_log.extend(events)
        return PendingTransaction(receipt)

    def _create_profile(self, sender: str, events: list[LedgerEvent], allow_aggregation: bool, allow_anonymous: bool):
        if sender in self._profiles:
            raise ProfileAlreadyExists()
        aggregate = self._zero_aggregate()
        for handle in aggregate.snapshot().handles:
            self.engine.allow(handle, sender)

        now = int(self.clock())
        self._profiles[sender] = Profile(sender, now, bool(allow_aggregation), bool(allow_anonymous))
        self._entries[sender] = []
        self._days[sender] = set()
        self._user_aggregates[sender] = aggregate
        events.append(LedgerEvent("ProfileCreated", {"user": sender, "timestamp": now}))
        logger.debug(f"Profile created for {short_hex(sender)}")

    def _update_privacy(self, sender: str, events: list[LedgerEvent], allow_aggregation: bool, allow_anonymous: bool):
        profile = self._require_profile(sender)
        profile.allow_aggregation = bool(allow_aggregation)
        profile.allow_anonymous_report = bool(allow_anonymous)
        events.append(
            LedgerEvent(
                "PrivacySettingsUpdated",
                {"user": sender, "aggregation": profile.allow_aggregation, "anonymousReport": profile.allow_anonymous_report},
            )
        )

    def _update_leaderboard(self, sender: str, events: list[LedgerEvent], join: bool):
        profile = self._require_profile(sender)
        profile.join_leaderboard = bool(join)
        events.append(LedgerEvent("LeaderboardParticipationUpdated", {"user": sender, "join": profile.join_leaderboard}))

    def _submit(self, sender: str, events: list[LedgerEvent], date: int, handles: Sequence[Handle], proof: bytes):
        profile = self._require_profile(sender)
        day = day_key(int(date))
        if day in self._days[sender]:
            raise DataAlreadySubmittedForDate()
        try:
            validate_layout(handles)
        except HandleLayoutError as e:
            raise InvalidProof(str(e)) from e
        verified = self.engine.verify_input(handles, proof, self.address, sender)

        entry = EncryptedSleepEntry(int(date), *verified)
        for handle in entry.handles:
            self.engine.allow(handle, self.address)
            self.engine.allow(handle, sender)

        user_agg = global_agg = None
        if profile.allow_aggregation:
            user_agg = self._fold(self._user_aggregates[sender], entry, (self.address, sender))
            global_agg = self._fold(self._global, entry, (self.address,))

        # Commit
        self._entries[sender].append(entry)
        self._days[sender].add(day)
        profile.total_entries += 1
        if user_agg is not None and global_agg is not None:
            self._user_aggregates[sender] = user_agg
            self._global = global_agg
        events.append(LedgerEvent("SleepDataSubmitted", {"user": sender, "date": int(date), "timestamp": int(self.clock())}))
        logger.debug(f"Entry {profile.total_entries - 1} accepted for {short_hex(sender)} (aggregated={user_agg is not None})")

    def _authorize_global(self, sender: str, events: list[LedgerEvent]) -> AggregateSnapshot:
        snapshot = self._global.snapshot()
        for handle in snapshot.handles:
            self.engine.allow(handle, sender)
        return snapshot

    # ── Reads ────────────────────────────────────────────────────────

    def _entry(self, sender: str, index: int) -> EncryptedSleepEntry:
        entries = self._entries.get(sender, [])
        if not 0 <= index < len(entries):
            raise InvalidIndex()
        return entries[index]

    def _user_aggregate(self, sender: str, user: str) -> AggregateSnapshot:
        if sender != user:
            raise Unauthorized()
        return self._require_aggregate(user).snapshot()

    # ── Helpers ──────────────────────────────────────────────────────

    def _require_profile(self, user: str) -> Profile:
        try:
            return self._profiles[user]
        except KeyError:
            raise ProfileNotCreated() from None

    def _require_aggregate(self, user: str) -> _Aggregate:
        self._require_profile(user)
        return self._user_aggregates[user]

    def _zero_aggregate(self) -> _Aggregate:
        handles = [self.engine.trivial_encrypt(0, AGGREGATE_TYPE) for _ in range(3)]
        for handle in handles:
            self.engine.allow(handle, self.address)
        return _Aggregate(*handles)

    def _fold(self, aggregate: _Aggregate, entry: EncryptedSleepEntry, readers: tuple[str, ...]) -> _Aggregate:
        """Homomorphically add the aggregated fields of *entry*; returns a new aggregate."""
        folded = replace(
            aggregate,
            sum_duration=self.engine.add(aggregate.sum_duration, self.engine.cast(entry.duration, AGGREGATE_TYPE)),
            sum_deep_sleep=self.engine.add(
                aggregate.sum_deep_sleep, self.engine.cast(entry.deep_sleep_ratio, AGGREGATE_TYPE)
            ),
            sum_score=self.engine.add(aggregate.sum_score, self.engine.cast(entry.sleep_score, AGGREGATE_TYPE)),
            count=aggregate.count + 1,
        )
        for handle in folded.snapshot().handles:
            for reader in readers:
                self.engine.allow(handle, reader)
        return folded


# Event names as published on an EventBus
EVENT_TOPICS = {
    "ProfileCreated": PROFILE_CREATED,
    "SleepDataSubmitted": SLEEP_DATA_SUBMITTED,
    "PrivacySettingsUpdated": PRIVACY_SETTINGS_UPDATED,
    "LeaderboardParticipationUpdated": LEADERBOARD_PARTICIPATION_UPDATED,
}


class LedgerConnection:
    """A ledger handle bound to one caller address (``msg.sender``)."""

    def __init__(self, ledger: SleepGuardLedger, account: str):
        self._ledger = ledger
        self.address = ledger.address
        self.account = normalize_address(account)

    # Writes

    async def create_profile(self, allow_aggregation: bool, allow_anonymous_report: bool) -> PendingTransaction:
        return await self._ledger._transact(
            self.account, lambda s, ev: self._ledger._create_profile(s, ev, allow_aggregation, allow_anonymous_report)
        )

    async def update_privacy_settings(self, allow_aggregation: bool, allow_anonymous_report: bool) -> PendingTransaction:
        return await self._ledger._transact(
            self.account, lambda s, ev: self._ledger._update_privacy(s, ev, allow_aggregation, allow_anonymous_report)
        )

    async def update_leaderboard_participation(self, join: bool) -> PendingTransaction:
        return await self._ledger._transact(self.account, lambda s, ev: self._ledger._update_leaderboard(s, ev, join))

    async def submit_sleep_data(self, date: int, handles: Sequence[Handle], proof: bytes) -> PendingTransaction:
        return await self._ledger._transact(
            self.account, lambda s, ev: self._ledger._submit(s, ev, date, tuple(handles), proof)
        )

    async def authorize_global_stats(self) -> PendingTransaction:
        """First step of global disclosure: grant the caller rights over the current sums."""
        return await self._ledger._transact(self.account, self._ledger._authorize_global)

    # Reads

    async def has_profile(self, user: str) -> bool:
        await asyncio.sleep(0)
        return normalize_address(user) in self._ledger._profiles

    async def get_profile(self, user: str) -> Profile | None:
        await asyncio.sleep(0)
        profile = self._ledger._profiles.get(normalize_address(user))
        return replace(profile) if profile is not None else None

    async def get_user_entries_count(self, user: str) -> int:
        await asyncio.sleep(0)
        profile = self._ledger._profiles.get(normalize_address(user))
        return profile.total_entries if profile is not None else 0

    async def get_user_sleep_data(self, index: int) -> EncryptedSleepEntry:
        await asyncio.sleep(0)
        return self._ledger._entry(self.account, index)

    async def get_user_aggregated_stats(self, user: str) -> AggregateSnapshot:
        await asyncio.sleep(0)
        return self._ledger._user_aggregate(self.account, normalize_address(user))

    async def total_participants(self) -> int:
        await asyncio.sleep(0)
        return self._ledger._global.count

    async def get_global_average_stats(self) -> AggregateSnapshot:
        """Second step of global disclosure: read the current sums."""
        await asyncio.sleep(0)
        return self._ledger._global.snapshot()
