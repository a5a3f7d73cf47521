"""
Batch decryption against a decryption grant.

One call is one disclosure request. The grant must be VALID and cover every
ledger address in the batch; otherwise nothing is sent. If the disclosure
side rejects the batch, the whole batch fails and no partial mapping is
returned. Use ``decrypt_each`` when one bad group must not block the rest.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Protocol

from loguru import logger
from nacl.exceptions import CryptoError
from nacl.public import PrivateKey, SealedBox

from .core.exceptions import (
    DisclosureRejected,
    GrantExpired,
    GrantScopeMismatch,
    SleepGuardError,
    TransportError,
    ValidationError,
)
from .core.types import ClearValue
from .fhe.disclosure import UserDecryptRequest, decode_cleartext
from .fhe.types import EncryptedKind, HandleRef
from .grants import DecryptionGrant, GrantState

TRANSPORT_ERRORS = (ConnectionError, TimeoutError, OSError)


class DisclosureGateway(Protocol):
    async def user_decrypt(self, request: UserDecryptRequest) -> dict[str, bytes]: ...


@dataclass
class BatchOutcome:
    """Per-group results from ``decrypt_each``; failed groups map to None."""

    values: list[dict[str, ClearValue] | None] = field(default_factory=list)
    failures: dict[int, SleepGuardError] = field(default_factory=dict)

    @property
    def partial(self) -> bool:
        return bool(self.failures)


class BatchDecryptor:
    def __init__(self, gateway: DisclosureGateway, clock: Callable[[], float] = time.time):
        self.gateway = gateway
        self.clock = clock

    async def decrypt(self, refs: Sequence[HandleRef], grant: DecryptionGrant) -> dict[str, ClearValue]:
        """Disclose every handle in *refs* in a single request.

        Returns:
            ``{handle_hex: value}`` with ints for euintN handles and bools for ebool.
        """
        if not refs:
            raise ValidationError("Nothing to decrypt")

        addresses = {ref.ledger_address for ref in refs}
        state = grant.state_for(addresses, self.clock())
        if state is GrantState.EXPIRED:
            raise GrantExpired("Decryption grant has expired")
        if state is GrantState.SCOPE_MISMATCH:
            missing = sorted(addresses - grant.contract_addresses)
            raise GrantScopeMismatch(f"Grant does not cover {', '.join(missing)}")

        unique = tuple(dict.fromkeys(refs))
        request = UserDecryptRequest(
            handles=unique,
            public_key=grant.public_key,
            signature=grant.signature,
            verify_key=grant.verify_key,
            user_address=grant.user_address,
            contract_addresses=tuple(sorted(grant.contract_addresses)),
            start_timestamp=grant.start_timestamp,
            duration_days=grant.duration_days,
        )
        try:
            sealed = await self.gateway.user_decrypt(request)
        except SleepGuardError:
            raise
        except TRANSPORT_ERRORS as e:
            raise TransportError(f"Disclosure request failed: {e}") from e

        box = SealedBox(PrivateKey(grant.private_key))
        result: dict[str, ClearValue] = {}
        for ref in unique:
            key = ref.handle.hex
            if key not in sealed:
                raise DisclosureRejected(f"Disclosure response is missing {key}")
            try:
                raw = decode_cleartext(box.decrypt(sealed[key]))
            except CryptoError as e:
                raise DisclosureRejected("Disclosure response was not sealed to this grant") from e
            result[key] = self._typed(ref, raw)
        logger.debug(f"Decrypted {len(result)} handles in one request")
        return result

    async def decrypt_each(self, groups: Sequence[Sequence[HandleRef]], grant: DecryptionGrant) -> BatchOutcome:
        """Decrypt each group as its own request; a rejected group does not stop the others."""
        outcome = BatchOutcome()
        for index, group in enumerate(groups):
            try:
                outcome.values.append(await self.decrypt(group, grant))
            except DisclosureRejected as e:
                logger.warning(f"Decryption of group {index} failed: {e}")
                outcome.values.append(None)
                outcome.failures[index] = e
        return outcome

    @staticmethod
    def _typed(ref: HandleRef, raw: int) -> ClearValue:
        enc_type = ref.handle.type
        if raw > enc_type.max_value:
            raise DisclosureRejected(f"Cleartext for {ref.handle.hex} exceeds {enc_type}")
        if enc_type.kind is EncryptedKind.BOOL:
            return raw != 0
        return raw

