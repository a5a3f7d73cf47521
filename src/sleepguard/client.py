"""
Client session: the use cases a user performs against SleepGuard.

Every long-running step runs inside a named phase. Phase transitions are
published on the session's ``EventBus`` and mirrored in ``message`` so a
stalled step can be told apart from a failed one; a failure is stamped with
the phase it happened in before it propagates.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from enum import StrEnum

from loguru import logger

from .core.events import PHASE_COMPLETED, PHASE_FAILED, PHASE_STARTED, Event, EventBus
from .core.exceptions import (
    DisclosureRejected,
    GrantExpired,
    GrantScopeMismatch,
    SleepGuardError,
    TransportError,
)
from .core.types import ClearValue
from .decryption import TRANSPORT_ERRORS, BatchDecryptor
from .fhe.types import Handle, HandleRef
from .grants import DecryptionGrant, DecryptionGrantManager
from .ledger.models import AggregateSnapshot, Profile, Receipt
from .ledger.store import EVENT_TOPICS, LedgerAggregateStore
from .payload import FIELD_NAMES, EncryptedPayloadBuilder, SleepEntry, to_day_timestamp
from .stats import AggregatedStats, GlobalStats, global_statistics, user_statistics
from .wallet import Wallet


class Phase(StrEnum):
    CREATING_PROFILE = "creating profile"
    UPDATING_SETTINGS = "updating settings"
    ENCRYPTING = "encrypting"
    SUBMITTING = "submitting"
    CONFIRMING = "waiting for confirmation"
    FETCHING = "fetching"
    SIGNING = "signing"
    DECRYPTING = "decrypting"
    AUTHORIZING = "authorizing"


@dataclass
class DecryptedEntries:
    """Entries that decrypted, plus the indices that did not."""

    entries: list[SleepEntry] = field(default_factory=list)
    failed_indices: list[int] = field(default_factory=list)
    total: int = 0

    @property
    def partial(self) -> bool:
        return bool(self.failed_indices)


class SleepGuardClient:
    """One user's session against a ledger."""

    def __init__(
        self,
        ledger: LedgerAggregateStore,
        wallet: Wallet,
        payload_builder: EncryptedPayloadBuilder,
        grants: DecryptionGrantManager,
        decryptor: BatchDecryptor,
        events: EventBus | None = None,
    ):
        self.ledger = ledger
        self.wallet = wallet
        self.payload_builder = payload_builder
        self.grants = grants
        self.decryptor = decryptor
        self.events = events or EventBus()
        self.message = ""
        self._decrypt_lock = asyncio.Lock()
        self._authorized_global: tuple[Handle, ...] = ()

    @property
    def address(self) -> str:
        return self.wallet.address

    @property
    def ledger_address(self) -> str:
        return self.ledger.address

    # ── Phases ───────────────────────────────────────────────────────

    @asynccontextmanager
    async def _phase(self, phase: Phase, message: str) -> AsyncIterator[None]:
        self.message = message
        await self.events.emit(Event(PHASE_STARTED, {"phase": str(phase), "message": message}, source="client"))
        try:
            yield
        except SleepGuardError as e:
            if e.phase is None:
                e.phase = str(phase)
            await self._phase_failed(phase, e)
            raise
        except TRANSPORT_ERRORS as e:
            err = TransportError(f"{phase} failed: {e}", phase=str(phase))
            await self._phase_failed(phase, err)
            raise err from e
        await self.events.emit(Event(PHASE_COMPLETED, {"phase": str(phase)}, source="client"))

    async def _phase_failed(self, phase: Phase, error: SleepGuardError) -> None:
        self.message = f"Failed while {phase}: {error}"
        logger.warning(self.message)
        await self.events.emit(
            Event(PHASE_FAILED, {"phase": str(phase), "error": type(error).__name__}, source="client")
        )

    async def _confirm(self, tx) -> Receipt:
        async with self._phase(Phase.CONFIRMING, "Waiting for confirmation..."):
            receipt = await tx.wait()
        for ev in receipt.events:
            await self.events.emit(Event(EVENT_TOPICS.get(ev.name, ev.name), dict(ev.args), source="ledger"))
        return receipt

    # ── Profile ──────────────────────────────────────────────────────

    async def has_profile(self) -> bool:
        return await self.ledger.has_profile(self.address)

    async def get_profile(self) -> Profile | None:
        return await self.ledger.get_profile(self.address)

    async def create_profile(self, allow_aggregation: bool, allow_anonymous_report: bool) -> Receipt:
        async with self._phase(Phase.CREATING_PROFILE, "Creating profile..."):
            tx = await self.ledger.create_profile(allow_aggregation, allow_anonymous_report)
        receipt = await self._confirm(tx)
        self.message = "Profile created successfully!"
        return receipt

    async def update_privacy_settings(self, allow_aggregation: bool, allow_anonymous_report: bool) -> Receipt:
        async with self._phase(Phase.UPDATING_SETTINGS, "Updating settings..."):
            tx = await self.ledger.update_privacy_settings(allow_aggregation, allow_anonymous_report)
        receipt = await self._confirm(tx)
        self.message = "Settings updated!"
        return receipt

    async def update_leaderboard_participation(self, join: bool) -> Receipt:
        async with self._phase(Phase.UPDATING_SETTINGS, "Updating leaderboard participation..."):
            tx = await self.ledger.update_leaderboard_participation(join)
        receipt = await self._confirm(tx)
        self.message = "Settings updated!"
        return receipt

    # ── Submission ───────────────────────────────────────────────────

    async def submit_sleep_data(self, entry: SleepEntry) -> Receipt:
        """Encrypt *entry* client-side and submit it. Ledger rejections are not retried."""
        async with self._phase(Phase.ENCRYPTING, "Encrypting data..."):
            payload = self.payload_builder.build(entry, self.ledger_address, self.address)

        async with self._phase(Phase.SUBMITTING, "Submitting to ledger..."):
            tx = await self.ledger.submit_sleep_data(to_day_timestamp(entry.date), payload.handles, payload.proof)

        receipt = await self._confirm(tx)
        self.message = "Sleep data submitted successfully!"
        return receipt

    async def get_entries_count(self) -> int:
        return await self.ledger.get_user_entries_count(self.address)

    # ── Disclosure ───────────────────────────────────────────────────

    async def _grant(self, scope: Sequence[str]) -> DecryptionGrant:
        async with self._phase(Phase.SIGNING, "Requesting decryption signature..."):
            return await self.grants.load_or_sign(self.wallet, scope)

    async def _decrypt(self, handles: Sequence[Handle]) -> dict[str, ClearValue]:
        """Decrypt *handles* minted by this ledger; regenerate the grant and retry once if it lapsed."""
        refs = [HandleRef(h, self.ledger_address) for h in handles]
        scope = [self.ledger_address]
        grant = await self._grant(scope)
        async with self._phase(Phase.DECRYPTING, f"Decrypting {len(refs)} values..."):
            try:
                return await self.decryptor.decrypt(refs, grant)
            except (GrantExpired, GrantScopeMismatch) as e:
                logger.info(f"Grant rejected ({type(e).__name__}); regenerating once")
                self.grants.invalidate(self.address)
        grant = await self._grant(scope)
        async with self._phase(Phase.DECRYPTING, f"Decrypting {len(refs)} values..."):
            return await self.decryptor.decrypt(refs, grant)

    async def get_user_data(self) -> DecryptedEntries:
        """Decrypt every entry one at a time; entries that fail are reported, not hidden."""
        async with self._decrypt_lock:
            async with self._phase(Phase.FETCHING, "Fetching data..."):
                count = await self.ledger.get_user_entries_count(self.address)
            result = DecryptedEntries(total=count)
            if count == 0:
                self.message = "No entries yet"
                return result

            for index in range(count):
                async with self._phase(Phase.FETCHING, f"Fetching entry {index + 1} of {count}..."):
                    encrypted = await self.ledger.get_user_sleep_data(index)
                try:
                    values = await self._decrypt(encrypted.handles)
                except DisclosureRejected as e:
                    logger.warning(f"Entry {index} could not be decrypted: {e}")
                    result.failed_indices.append(index)
                    continue
                by_field = {name: values[h.hex] for name, h in zip(FIELD_NAMES, encrypted.handles, strict=True)}
                result.entries.append(SleepEntry.from_field_values(encrypted.date, by_field))

            if result.partial:
                self.message = f"Decrypted {len(result.entries)} of {count} entries ({len(result.failed_indices)} failed)"
            else:
                self.message = f"Decrypted {len(result.entries)} entries"
            return result

    async def get_aggregated_stats(self) -> AggregatedStats:
        """Decrypt this user's running sums and average them."""
        async with self._decrypt_lock:
            async with self._phase(Phase.FETCHING, "Fetching aggregated stats..."):
                total = await self.ledger.get_user_entries_count(self.address)
                snapshot = await self.ledger.get_user_aggregated_stats(self.address) if total else None
            if snapshot is None or snapshot.count == 0:
                self.message = "No data available"
                return AggregatedStats()
            stats = user_statistics(*await self._decrypt_sums(snapshot), snapshot.count)
            self.message = "Stats loaded"
            return stats

    async def get_global_stats(self) -> GlobalStats:
        """Authorize this caller over the global sums if needed, then decrypt them."""
        async with self._decrypt_lock:
            async with self._phase(Phase.FETCHING, "Fetching global stats..."):
                participants = await self.ledger.total_participants()
            if participants == 0:
                self.message = "No global data available"
                return GlobalStats()

            snapshot = await self._authorized_global_snapshot()
            if snapshot.count == 0:
                return GlobalStats()
            stats = global_statistics(*await self._decrypt_sums(snapshot), snapshot.count)
            self.message = "Global stats loaded successfully"
            return stats

    async def _authorized_global_snapshot(self) -> AggregateSnapshot:
        async with self._phase(Phase.FETCHING, "Reading global aggregate..."):
            snapshot = await self.ledger.get_global_average_stats()
        if snapshot.handles == self._authorized_global:
            return snapshot

        async with self._phase(Phase.AUTHORIZING, "Authorizing access to global stats..."):
            tx = await self.ledger.authorize_global_stats()
        receipt = await self._confirm(tx)
        authorized: AggregateSnapshot = receipt.return_value
        self._authorized_global = authorized.handles

        async with self._phase(Phase.FETCHING, "Reading global aggregate..."):
            snapshot = await self.ledger.get_global_average_stats()
        if snapshot.handles != authorized.handles:
            # Another submission landed between the two steps; use what was authorized.
            return authorized
        return snapshot

    async def _decrypt_sums(self, snapshot: AggregateSnapshot) -> tuple[int, int, int]:
        values = await self._decrypt(snapshot.handles)
        return tuple(int(values[h.hex]) for h in snapshot.handles)  # type: ignore[return-value]
