"""
Decryption grant derivation and caching.

A grant is an ephemeral X25519 key pair plus the subject's signature over a
structured-data authorization that binds the public key to a scope (a set of
ledger addresses) and a validity window. Signing is interactive, so a grant
is reused for as long as it stays valid:

    ABSENT ──sign──▶ VALID ──now ≥ start+duration──▶ EXPIRED ──▶ regenerate
                       └──requested scope ⊄ cached scope──▶ SCOPE_MISMATCH ──▶ regenerate

The cache is written only after the signature succeeds, so a declined or
abandoned signing request leaves any previous entry untouched.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Protocol

from loguru import logger
from nacl.public import PrivateKey

from .core.config import MAX_GRANT_DURATION_DAYS
from .core.exceptions import ConfigurationError, ValidationError
from .core.utils.addresses import normalize_address
from .core.utils.logging import short_hex
from .typed_data import build_decryption_authorization

SECONDS_PER_DAY = 86400


class GrantState(StrEnum):
    ABSENT = "absent"
    VALID = "valid"
    EXPIRED = "expired"
    SCOPE_MISMATCH = "scope_mismatch"


@dataclass(frozen=True)
class DecryptionGrant:
    """Signed, time-boxed authorization to disclose handles to ``public_key``."""

    public_key: bytes
    private_key: bytes = field(repr=False)
    signature: bytes
    verify_key: bytes
    user_address: str
    contract_addresses: frozenset[str]
    start_timestamp: int
    duration_days: int
    document: dict[str, Any] = field(repr=False, compare=False)

    @property
    def expires_at(self) -> int:
        return self.start_timestamp + self.duration_days * SECONDS_PER_DAY

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at

    def covers(self, addresses: Iterable[str]) -> bool:
        return {normalize_address(a) for a in addresses} <= self.contract_addresses

    def state_for(self, addresses: Iterable[str], now: float) -> GrantState:
        if self.is_expired(now):
            return GrantState.EXPIRED
        if not self.covers(addresses):
            return GrantState.SCOPE_MISMATCH
        return GrantState.VALID


class TypedDataSigner(Protocol):
    address: str
    verify_key: bytes

    async def sign_typed_data(self, document: dict[str, Any]) -> bytes: ...


class GrantStore(Protocol):
    """Where grants live between uses. Keyed by subject address."""

    def get(self, subject: str) -> DecryptionGrant | None: ...

    def put(self, grant: DecryptionGrant) -> None: ...

    def remove(self, subject: str) -> None: ...


class InMemoryGrantStore:
    """Process-lifetime grant storage."""

    def __init__(self) -> None:
        self._grants: dict[str, DecryptionGrant] = {}

    def get(self, subject: str) -> DecryptionGrant | None:
        return self._grants.get(subject)

    def put(self, grant: DecryptionGrant) -> None:
        self._grants[grant.user_address] = grant

    def remove(self, subject: str) -> None:
        self._grants.pop(subject, None)

    def __len__(self) -> int:
        return len(self._grants)


class DecryptionGrantManager:
    """Derive, cache and re-derive decryption grants."""

    def __init__(
        self,
        chain_id: int,
        verifying_contract: str,
        duration_days: int = 7,
        store: GrantStore | None = None,
        clock: Callable[[], float] = time.time,
    ):
        if not 1 <= duration_days <= MAX_GRANT_DURATION_DAYS:
            raise ConfigurationError(f"Grant duration must be 1..{MAX_GRANT_DURATION_DAYS} days, got {duration_days}")
        self.chain_id = chain_id
        self.verifying_contract = normalize_address(verifying_contract)
        self.duration_days = duration_days
        self.store: GrantStore = store if store is not None else InMemoryGrantStore()
        self.clock = clock

    def state(self, subject: str, scope: Iterable[str]) -> GrantState:
        """Current state of the cached grant for *subject* against *scope*."""
        grant = self.store.get(normalize_address(subject))
        if grant is None:
            return GrantState.ABSENT
        return grant.state_for(scope, self.clock())

    def invalidate(self, subject: str) -> None:
        self.store.remove(normalize_address(subject))

    async def load_or_sign(self, signer: TypedDataSigner, scope: Iterable[str]) -> DecryptionGrant:
        """Return a VALID grant for (signer, scope), signing a new one only if needed.

        Raises:
            GrantDenied: the signer declined; the cache is left as it was.
        """
        subject = normalize_address(signer.address)
        requested = frozenset(normalize_address(a) for a in scope)
        if not requested:
            raise ValidationError("A grant needs at least one ledger address in scope")

        grant = self.store.get(subject)
        if grant is None:
            return await self._sign_new(signer, subject, requested)

        state = grant.state_for(requested, self.clock())
        if state is GrantState.VALID:
            return grant
        logger.info(f"Decryption grant for {short_hex(subject)} is {state}; regenerating")
        return await self._sign_new(signer, subject, requested)

    async def _sign_new(self, signer: TypedDataSigner, subject: str, scope: frozenset[str]) -> DecryptionGrant:
        key = PrivateKey.generate()
        public_key = bytes(key.public_key)
        start = int(self.clock())
        document = build_decryption_authorization(
            public_key="0x" + public_key.hex(),
            contract_addresses=scope,
            user_address=subject,
            start_timestamp=start,
            duration_days=self.duration_days,
            chain_id=self.chain_id,
            verifying_contract=self.verifying_contract,
        )
        signature = await signer.sign_typed_data(document)

        grant = DecryptionGrant(
            public_key=public_key,
            private_key=bytes(key),
            signature=signature,
            verify_key=signer.verify_key,
            user_address=subject,
            contract_addresses=scope,
            start_timestamp=start,
            duration_days=self.duration_days,
            document=document,
        )
        self.store.put(grant)
        logger.debug(f"Signed decryption grant for {short_hex(subject)} valid {self.duration_days}d")
        return grant
