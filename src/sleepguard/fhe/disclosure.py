"""
Key-management side of a user disclosure request.

Given a batch of handle references and a signed decryption authorization,
the service checks the signature, the validity window, the scope and the
ACL for every handle, then returns each cleartext sealed to the grant's
X25519 public key. Any failing check rejects the whole batch: the
authorization covers the batch as a unit.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from dataclasses import dataclass

from loguru import logger
from nacl.public import PublicKey, SealedBox

from ..core.exceptions import (
    DisclosureRejected,
    GrantExpired,
    GrantScopeMismatch,
    ValidationError,
)
from ..core.utils.addresses import normalize_address
from ..core.utils.logging import short_hex
from ..typed_data import build_decryption_authorization
from ..wallet import verify_typed_data
from .engine import HomomorphicEngine
from .types import HandleRef

MAX_DURATION_DAYS = 365
CLEARTEXT_BYTES = 32


@dataclass(frozen=True)
class UserDecryptRequest:
    handles: tuple[HandleRef, ...]
    public_key: bytes
    signature: bytes
    verify_key: bytes
    user_address: str
    contract_addresses: tuple[str, ...]
    start_timestamp: int
    duration_days: int


def encode_cleartext(value: int | bool) -> bytes:
    return int(value).to_bytes(CLEARTEXT_BYTES, "big")


def decode_cleartext(raw: bytes) -> int:
    return int.from_bytes(raw, "big")


class DisclosureService:
    """Serves user decryption requests against a ``HomomorphicEngine``."""

    def __init__(
        self,
        engine: HomomorphicEngine,
        verifying_contract: str,
        clock: Callable[[], float] = time.time,
    ):
        self.engine = engine
        self.verifying_contract = normalize_address(verifying_contract)
        self.clock = clock
        self.requests_served = 0

    async def user_decrypt(self, request: UserDecryptRequest) -> dict[str, bytes]:
        """Return ``{handle_hex: sealed_cleartext}`` for every handle in *request*."""
        await asyncio.sleep(0)
        if not request.handles:
            raise DisclosureRejected("Empty disclosure request")

        user = normalize_address(request.user_address)
        document = build_decryption_authorization(
            public_key="0x" + request.public_key.hex(),
            contract_addresses=request.contract_addresses,
            user_address=user,
            start_timestamp=request.start_timestamp,
            duration_days=request.duration_days,
            chain_id=self.engine.chain_id,
            verifying_contract=self.verifying_contract,
        )
        verify_typed_data(document, request.signature, request.verify_key, user)

        now = self.clock()
        if request.duration_days > MAX_DURATION_DAYS:
            raise DisclosureRejected(f"Authorization window longer than {MAX_DURATION_DAYS} days")
        if now < request.start_timestamp:
            raise DisclosureRejected("Authorization is not yet valid")
        if now >= request.start_timestamp + request.duration_days * 86400:
            raise GrantExpired("Decryption authorization has expired")

        scope = {normalize_address(a) for a in request.contract_addresses}
        box = SealedBox(PublicKey(request.public_key))
        sealed: dict[str, bytes] = {}
        for ref in request.handles:
            if ref.ledger_address not in scope:
                raise GrantScopeMismatch(f"Ledger {short_hex(ref.ledger_address)} is outside the authorized scope")
            if not self.engine.exists(ref.handle):
                raise DisclosureRejected(f"Unknown handle {short_hex(ref.handle.hex)}")
            if not self.engine.is_allowed(ref.handle, user) or not self.engine.is_allowed(ref.handle, ref.ledger_address):
                raise DisclosureRejected(f"{short_hex(user)} may not decrypt {short_hex(ref.handle.hex)}")
            try:
                value = self.engine.reveal(ref.handle)
            except ValidationError as e:
                raise DisclosureRejected(str(e)) from e
            sealed[ref.handle.hex] = box.encrypt(encode_cleartext(value))

        self.requests_served += 1
        logger.debug(f"Disclosed {len(sealed)} handles to {short_hex(user)}")
        return sealed
