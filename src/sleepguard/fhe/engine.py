"""
Additively homomorphic ciphertext store backed by Paillier (``phe``).

The engine plays the role of the trusted coprocessor: it verifies encrypted
inputs, keeps the ciphertext behind every handle, performs homomorphic
addition on behalf of the ledger, and keeps the access-control list that
decides who may have a handle disclosed. The ledger never sees a cleartext.
"""

from __future__ import annotations

import json
import secrets
from collections import defaultdict
from collections.abc import Sequence
from dataclasses import dataclass

from loguru import logger
from phe import paillier

from ..core.exceptions import InvalidProof, ValidationError
from ..core.utils.addresses import normalize_address
from ..core.utils.logging import short_hex
from .input import PROOF_VERSION, EncryptedInput, binding_digest, input_handle_seed
from .types import EncryptedType, Handle, derive_handle, type_from_code

DEFAULT_KEY_LENGTH = 2048


@dataclass
class _Ciphertext:
    number: paillier.EncryptedNumber
    type: EncryptedType


class HomomorphicEngine:
    """Paillier-backed handle store with ACL and homomorphic addition."""

    def __init__(self, chain_id: int, key_length: int = DEFAULT_KEY_LENGTH):
        self.chain_id = chain_id
        self._public_key, self._private_key = paillier.generate_paillier_keypair(n_length=key_length)
        self._store: dict[bytes, _Ciphertext] = {}
        self._acl: dict[bytes, set[str]] = defaultdict(set)

    @property
    def public_key(self) -> paillier.PaillierPublicKey:
        return self._public_key

    def create_encrypted_input(self, ledger_address: str, user_address: str) -> EncryptedInput:
        return EncryptedInput(self._public_key, self.chain_id, ledger_address, user_address)

    # ── Inputs ───────────────────────────────────────────────────────

    def verify_input(
        self,
        handles: Sequence[Handle],
        proof: bytes,
        ledger_address: str,
        user_address: str,
    ) -> list[Handle]:
        """Check that *proof* binds *handles* to (ledger, user) and register the ciphertexts.

        Raises:
            InvalidProof: on any mismatch; nothing is registered in that case.
        """
        ledger_address = normalize_address(ledger_address)
        user_address = normalize_address(user_address)
        try:
            doc = json.loads(proof)
            items = doc["ciphertexts"]
            if doc["version"] != PROOF_VERSION or doc["chain_id"] != self.chain_id:
                raise InvalidProof("Proof was produced for another network")
            if doc["ledger"] != ledger_address or doc["user"] != user_address:
                raise InvalidProof("Proof is bound to another ledger or submitter")
            if len(items) != len(handles):
                raise InvalidProof("Proof does not cover the submitted handles")

            pending: dict[bytes, _Ciphertext] = {}
            for index, (item, handle) in enumerate(zip(items, handles, strict=True)):
                enc_type = type_from_code(int(item["type"]))
                ciphertext = int(item["ciphertext"])
                seed = input_handle_seed(ciphertext, index, ledger_address, user_address, self.chain_id)
                if derive_handle(seed, enc_type) != handle:
                    raise InvalidProof(f"Handle {index} does not match its ciphertext")
                number = paillier.EncryptedNumber(self._public_key, ciphertext, 0)
                # Stands in for the zero-knowledge range proof of a real input.
                if not 0 <= self._private_key.decrypt(number) <= enc_type.max_value:
                    raise InvalidProof(f"Value {index} exceeds {enc_type}")
                pending[handle.value] = _Ciphertext(number, enc_type)

            if doc["binding"] != binding_digest(list(handles), ledger_address, user_address, self.chain_id):
                raise InvalidProof("Binding digest mismatch")
        except InvalidProof:
            raise
        except (KeyError, TypeError, ValueError, ValidationError) as e:
            raise InvalidProof(f"Malformed input proof: {e}") from e

        self._store.update(pending)
        logger.debug(f"Verified encrypted input of {len(pending)} values for {short_hex(user_address)}")
        return list(handles)

    # ── Arithmetic ───────────────────────────────────────────────────

    def trivial_encrypt(self, value: int, enc_type: EncryptedType) -> Handle:
        """Encrypt a public constant, e.g. the zero an aggregate starts from."""
        number = self._public_key.encrypt(enc_type.check(value))
        return self._mint(number, enc_type, b"trivial")

    def cast(self, handle: Handle, enc_type: EncryptedType) -> Handle:
        """Re-type *handle* as a wider integer type."""
        source = self._get(handle)
        if enc_type.width < source.type.width:
            raise ValidationError(f"Cannot narrow {source.type} to {enc_type}")
        return self._mint(source.number, enc_type, b"cast" + handle.value)

    def add(self, lhs: Handle, rhs: Handle) -> Handle:
        """Homomorphic addition; result takes the wider of the two types."""
        a, b = self._get(lhs), self._get(rhs)
        result_type = a.type if a.type.width >= b.type.width else b.type
        return self._mint(a.number + b.number, result_type, b"add" + lhs.value + rhs.value)

    def type_of(self, handle: Handle) -> EncryptedType:
        return self._get(handle).type

    def exists(self, handle: Handle) -> bool:
        return handle.value in self._store

    # ── Access control ───────────────────────────────────────────────

    def allow(self, handle: Handle, account: str) -> None:
        self._get(handle)
        self._acl[handle.value].add(normalize_address(account))

    def is_allowed(self, handle: Handle, account: str) -> bool:
        return normalize_address(account) in self._acl.get(handle.value, ())

    # ── Disclosure (used by the key-management side only) ────────────

    def reveal(self, handle: Handle) -> int | bool:
        ct = self._get(handle)
        return ct.type.decode(self._private_key.decrypt(ct.number))

    def _get(self, handle: Handle) -> _Ciphertext:
        try:
            return self._store[handle.value]
        except KeyError:
            raise ValidationError(f"Unknown handle {short_hex(handle.hex)}") from None

    def _mint(self, number: paillier.EncryptedNumber, enc_type: EncryptedType, tag: bytes) -> Handle:
        handle = derive_handle(tag + secrets.token_bytes(16), enc_type)
        self._store[handle.value] = _Ciphertext(number, enc_type)
        return handle
