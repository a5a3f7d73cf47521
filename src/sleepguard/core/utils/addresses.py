"""Account and ledger address helpers."""

import hashlib

from ..exceptions import ValidationError

ADDRESS_BYTES = 20


def derive_address(public_key: bytes) -> str:
    """Derive a 20-byte hex address from a public verification key."""
    return "0x" + hashlib.sha256(public_key).digest()[-ADDRESS_BYTES:].hex()


def normalize_address(address: str) -> str:
    """Return *address* lower-cased, validating its shape."""
    if not isinstance(address, str) or not address.startswith("0x") or len(address) != 2 + 2 * ADDRESS_BYTES:
        raise ValidationError(f"Not a valid address: {address!r}")
    try:
        int(address, 16)
    except ValueError as e:
        raise ValidationError(f"Not a valid address: {address!r}") from e
    return address.lower()
