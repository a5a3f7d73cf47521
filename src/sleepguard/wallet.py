"""
Subject keys and structured-data signing.

A ``Wallet`` holds an ed25519 signing key (PyNaCl). Its address is derived
from the verification key. Signing is an interactive, user-facing step: an
optional ``approver`` callback sees the document and may decline, which
surfaces as ``GrantDenied``.
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Awaitable, Callable
from typing import Any

from loguru import logger
from nacl.exceptions import BadSignatureError
from nacl.signing import SigningKey, VerifyKey

from .core.exceptions import GrantDenied, SignatureVerificationError
from .core.utils.addresses import derive_address, normalize_address
from .typed_data import hash_typed_data

Approver = Callable[[dict[str, Any]], bool | Awaitable[bool]]


class Wallet:
    """An account able to sign decryption authorizations."""

    def __init__(self, signing_key: SigningKey | None = None, approver: Approver | None = None):
        self._signing_key = signing_key or SigningKey.generate()
        self.approver = approver
        self.signature_requests = 0

    @classmethod
    def from_seed(cls, seed: bytes, approver: Approver | None = None) -> Wallet:
        return cls(SigningKey(seed), approver=approver)

    @property
    def verify_key(self) -> bytes:
        return bytes(self._signing_key.verify_key)

    @property
    def address(self) -> str:
        return derive_address(self.verify_key)

    async def sign_typed_data(self, document: dict[str, Any]) -> bytes:
        """Ask the holder to sign *document*. Raises GrantDenied if declined."""
        self.signature_requests += 1
        if self.approver is not None:
            approved = self.approver(document)
            if inspect.isawaitable(approved):
                approved = await approved
            if not approved:
                logger.info(f"Signature request declined by {self.address}")
                raise GrantDenied("User declined to sign the decryption authorization")
        await asyncio.sleep(0)
        return self._signing_key.sign(hash_typed_data(document)).signature

    def __repr__(self) -> str:
        return f"Wallet({self.address})"


def verify_typed_data(document: dict[str, Any], signature: bytes, verify_key: bytes, expected_address: str) -> None:
    """Check that *signature* over *document* was made by *expected_address*.

    Raises:
        SignatureVerificationError: key does not belong to the address, or the
            signature does not verify.
    """
    if derive_address(verify_key) != normalize_address(expected_address):
        raise SignatureVerificationError("Verification key does not belong to the signer address")
    try:
        VerifyKey(verify_key).verify(hash_typed_data(document), signature)
    except BadSignatureError as e:
        raise SignatureVerificationError("Invalid authorization signature") from e
