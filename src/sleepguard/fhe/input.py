"""
Client-side encrypted input builder.

Values are encrypted under the engine's Paillier public key, then bound to a
(ledger address, submitter address, chain id) triple: each handle is derived
from its ciphertext, its position and that triple, and the input proof
carries the ciphertexts plus a binding digest over all handles. Replaying the
proof for another submitter or ledger produces different handles and fails
verification.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass

from phe import paillier

from ..core.exceptions import ValidationError
from ..core.utils.addresses import normalize_address
from .types import EBOOL, EUINT8, EUINT16, EUINT32, EUINT64, EncryptedType, Handle, derive_handle

PROOF_VERSION = 1
MAX_INPUT_BITS = 2048


def input_handle_seed(ciphertext: int, index: int, ledger_address: str, user_address: str, chain_id: int) -> bytes:
    """Seed for the handle of the *index*-th value of an encrypted input."""
    return b"|".join(
        [
            b"input",
            str(ciphertext).encode(),
            str(index).encode(),
            ledger_address.encode(),
            user_address.encode(),
            str(chain_id).encode(),
        ]
    )


def binding_digest(handles: list[Handle], ledger_address: str, user_address: str, chain_id: int) -> str:
    h = hashlib.sha256()
    for handle in handles:
        h.update(handle.value)
    h.update(ledger_address.encode())
    h.update(user_address.encode())
    h.update(str(chain_id).encode())
    return h.hexdigest()


@dataclass(frozen=True)
class EncryptedInputResult:
    handles: tuple[Handle, ...]
    input_proof: bytes


class EncryptedInput:
    """Accumulates typed plaintext values and encrypts them as one input.

    Usage::

        result = (
            EncryptedInput(public_key, chain_id, ledger, user)
            .add16(1380)
            .add8(45)
            .encrypt()
        )
    """

    def __init__(
        self,
        public_key: paillier.PaillierPublicKey,
        chain_id: int,
        ledger_address: str,
        user_address: str,
    ):
        self.public_key = public_key
        self.chain_id = chain_id
        self.ledger_address = normalize_address(ledger_address)
        self.user_address = normalize_address(user_address)
        self._values: list[tuple[int, EncryptedType]] = []

    def add(self, value: int | bool, enc_type: EncryptedType) -> EncryptedInput:
        """Append *value* as *enc_type*. Raises before anything is encrypted."""
        checked = enc_type.check(value)
        bits = sum(t.width for _, t in self._values) + enc_type.width
        if bits > MAX_INPUT_BITS:
            raise ValidationError(f"Encrypted input exceeds {MAX_INPUT_BITS} bits")
        self._values.append((checked, enc_type))
        return self

    def add_bool(self, value: bool) -> EncryptedInput:
        return self.add(value, EBOOL)

    def add8(self, value: int) -> EncryptedInput:
        return self.add(value, EUINT8)

    def add16(self, value: int) -> EncryptedInput:
        return self.add(value, EUINT16)

    def add32(self, value: int) -> EncryptedInput:
        return self.add(value, EUINT32)

    def add64(self, value: int) -> EncryptedInput:
        return self.add(value, EUINT64)

    def __len__(self) -> int:
        return len(self._values)

    def encrypt(self) -> EncryptedInputResult:
        if not self._values:
            raise ValidationError("Encrypted input has no values")

        handles: list[Handle] = []
        items = []
        for index, (value, enc_type) in enumerate(self._values):
            ciphertext = self.public_key.encrypt(value).ciphertext()
            seed = input_handle_seed(ciphertext, index, self.ledger_address, self.user_address, self.chain_id)
            handles.append(derive_handle(seed, enc_type))
            items.append({"type": enc_type.code, "ciphertext": str(ciphertext)})

        proof = {
            "version": PROOF_VERSION,
            "chain_id": self.chain_id,
            "ledger": self.ledger_address,
            "user": self.user_address,
            "ciphertexts": items,
            "binding": binding_digest(handles, self.ledger_address, self.user_address, self.chain_id),
        }
        return EncryptedInputResult(tuple(handles), json.dumps(proof, sort_keys=True).encode())
