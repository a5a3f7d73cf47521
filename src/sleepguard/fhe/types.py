"""
Encrypted value types and ciphertext handles.

A handle is a 32-byte opaque reference to a ciphertext held by the engine.
Every handle carries its declared type as a tagged ``EncryptedType`` and the
type code is also embedded in byte 30 of the handle itself, so a handle read
back from the ledger as hex can be re-tagged without ledger knowledge.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from enum import StrEnum

from ..core.exceptions import ValidationError, WidthOverflowError
from ..core.utils.addresses import normalize_address

HANDLE_BYTES = 32
HANDLE_VERSION = 0
_TYPE_BYTE = 30


class EncryptedKind(StrEnum):
    BOOL = "ebool"
    UINT = "euint"


@dataclass(frozen=True)
class EncryptedType:
    """Tagged variant describing what a handle decrypts to."""

    kind: EncryptedKind
    width: int
    code: int

    @property
    def name(self) -> str:
        return "ebool" if self.kind is EncryptedKind.BOOL else f"euint{self.width}"

    @property
    def max_value(self) -> int:
        return (1 << self.width) - 1

    def check(self, value: int | bool) -> int:
        """Return *value* as an int, raising if it does not fit this type."""
        if self.kind is EncryptedKind.BOOL:
            if not isinstance(value, bool):
                raise WidthOverflowError(f"{self.name} expects a bool, got {value!r}")
            return int(value)
        if isinstance(value, bool) or not isinstance(value, int):
            raise WidthOverflowError(f"{self.name} expects an int, got {value!r}")
        if not 0 <= value <= self.max_value:
            raise WidthOverflowError(f"{value} does not fit {self.name} (0..{self.max_value})")
        return value

    def decode(self, raw: int) -> int | bool:
        """Interpret a raw decrypted integer with this type's wrap-around semantics."""
        wrapped = raw % (1 << self.width)
        if self.kind is EncryptedKind.BOOL:
            return wrapped != 0
        return wrapped

    def __str__(self) -> str:
        return self.name


EBOOL = EncryptedType(EncryptedKind.BOOL, 1, 0)
EUINT8 = EncryptedType(EncryptedKind.UINT, 8, 2)
EUINT16 = EncryptedType(EncryptedKind.UINT, 16, 3)
EUINT32 = EncryptedType(EncryptedKind.UINT, 32, 4)
EUINT64 = EncryptedType(EncryptedKind.UINT, 64, 5)

_BY_CODE = {t.code: t for t in (EBOOL, EUINT8, EUINT16, EUINT32, EUINT64)}


def type_from_code(code: int) -> EncryptedType:
    try:
        return _BY_CODE[code]
    except KeyError:
        raise ValidationError(f"Unknown encrypted type code {code}") from None


@dataclass(frozen=True)
class Handle:
    """Opaque 256-bit ciphertext reference plus its declared type."""

    value: bytes
    type: EncryptedType

    def __post_init__(self):
        if len(self.value) != HANDLE_BYTES:
            raise ValidationError(f"Handle must be {HANDLE_BYTES} bytes, got {len(self.value)}")
        if self.value[_TYPE_BYTE] != self.type.code:
            raise ValidationError(f"Handle type byte does not match declared type {self.type}")

    @property
    def hex(self) -> str:
        return "0x" + self.value.hex()

    @classmethod
    def from_hex(cls, text: str) -> Handle:
        raw = bytes.fromhex(text[2:] if text.startswith("0x") else text)
        if len(raw) != HANDLE_BYTES:
            raise ValidationError(f"Handle must be {HANDLE_BYTES} bytes, got {len(raw)}")
        return cls(raw, type_from_code(raw[_TYPE_BYTE]))

    def __str__(self) -> str:
        return self.hex


def derive_handle(seed: bytes, enc_type: EncryptedType) -> Handle:
    """Derive a handle from *seed*, stamping the type code and version."""
    digest = hashlib.sha256(seed).digest()
    return Handle(digest[:_TYPE_BYTE] + bytes([enc_type.code, HANDLE_VERSION]), enc_type)


@dataclass(frozen=True)
class HandleRef:
    """A handle paired with the ledger address that minted it."""

    handle: Handle
    ledger_address: str

    def __post_init__(self):
        object.__setattr__(self, "ledger_address", normalize_address(self.ledger_address))
