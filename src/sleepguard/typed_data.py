"""
Structured-data (EIP-712 style) documents for decryption authorizations.

A document has the shape ``{domain, primaryType, types, message}``. Its
digest is ``H(0x1901 || H(domain) || H(message))`` where each struct hash is
``H(typeHash || encoded fields)``, mirroring EIP-712 with SHA-256 as ``H``.
"""

from __future__ import annotations

import hashlib
from collections.abc import Iterable
from typing import Any

from .core.exceptions import ValidationError
from .core.utils.addresses import normalize_address

DECRYPTION_DOMAIN_NAME = "Decryption"
DECRYPTION_DOMAIN_VERSION = "1"
USER_DECRYPT_PRIMARY_TYPE = "UserDecryptRequestVerification"

EIP712_DOMAIN_FIELDS = [
    {"name": "name", "type": "string"},
    {"name": "version", "type": "string"},
    {"name": "chainId", "type": "uint256"},
    {"name": "verifyingContract", "type": "address"},
]

USER_DECRYPT_FIELDS = [
    {"name": "publicKey", "type": "bytes"},
    {"name": "contractAddresses", "type": "address[]"},
    {"name": "userAddress", "type": "address"},
    {"name": "startTimestamp", "type": "uint256"},
    {"name": "durationDays", "type": "uint256"},
]


def _h(data: bytes) -> bytes:
    return hashlib.sha256(data).digest()


def build_decryption_authorization(
    public_key: str,
    contract_addresses: Iterable[str],
    user_address: str,
    start_timestamp: int,
    duration_days: int,
    chain_id: int,
    verifying_contract: str,
) -> dict[str, Any]:
    """Build the document a subject signs to authorize disclosure to *public_key*."""
    return {
        "domain": {
            "name": DECRYPTION_DOMAIN_NAME,
            "version": DECRYPTION_DOMAIN_VERSION,
            "chainId": chain_id,
            "verifyingContract": normalize_address(verifying_contract),
        },
        "primaryType": USER_DECRYPT_PRIMARY_TYPE,
        "types": {
            "EIP712Domain": EIP712_DOMAIN_FIELDS,
            USER_DECRYPT_PRIMARY_TYPE: USER_DECRYPT_FIELDS,
        },
        "message": {
            "publicKey": public_key,
            "contractAddresses": sorted(normalize_address(a) for a in contract_addresses),
            "userAddress": normalize_address(user_address),
            "startTimestamp": int(start_timestamp),
            "durationDays": int(duration_days),
        },
    }


def encode_type(primary: str, types: dict[str, list[dict[str, str]]]) -> str:
    fields = ",".join(f"{f['type']} {f['name']}" for f in types[primary])
    return f"{primary}({fields})"


def _encode_value(type_name: str, value: Any, types: dict) -> bytes:
    if type_name.endswith("[]"):
        inner = type_name[:-2]
        return _h(b"".join(_encode_value(inner, v, types) for v in value))
    if type_name in types:
        return hash_struct(type_name, value, types)
    if type_name == "string":
        return _h(str(value).encode())
    if type_name == "bytes":
        text = value[2:] if isinstance(value, str) and value.startswith("0x") else value
        return _h(bytes.fromhex(text) if isinstance(text, str) else bytes(text))
    if type_name == "address":
        return bytes.fromhex(normalize_address(value)[2:]).rjust(32, b"\x00")
    if type_name == "bool":
        return int(bool(value)).to_bytes(32, "big")
    if type_name.startswith("uint"):
        if int(value) < 0:
            raise ValidationError(f"{type_name} cannot be negative")
        return int(value).to_bytes(32, "big")
    raise ValidationError(f"Unsupported typed-data field type: {type_name}")


def hash_struct(primary: str, data: dict[str, Any], types: dict) -> bytes:
    parts = [_h(encode_type(primary, types).encode())]
    for field in types[primary]:
        try:
            value = data[field["name"]]
        except KeyError:
            raise ValidationError(f"{primary} is missing field {field['name']}") from None
        parts.append(_encode_value(field["type"], value, types))
    return _h(b"".join(parts))


def hash_typed_data(document: dict[str, Any]) -> bytes:
    """Digest that is actually signed."""
    types = document["types"]
    domain_hash = hash_struct("EIP712Domain", document["domain"], types)
    message_hash = hash_struct(document["primaryType"], document["message"], types)
    return _h(b"\x19\x01" + domain_hash + message_hash)
