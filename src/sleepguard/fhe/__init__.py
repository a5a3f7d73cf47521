"""
Homomorphic encryption primitive: typed handles, encrypted inputs, the
Paillier-backed engine and the disclosure service.
"""

from .disclosure import DisclosureService, UserDecryptRequest
from .engine import HomomorphicEngine
from .input import EncryptedInput, EncryptedInputResult
from .types import (
    EBOOL,
    EUINT8,
    EUINT16,
    EUINT32,
    EUINT64,
    EncryptedKind,
    EncryptedType,
    Handle,
    HandleRef,
)

__all__ = [
    "DisclosureService",
    "EBOOL",
    "EUINT16",
    "EUINT32",
    "EUINT64",
    "EUINT8",
    "EncryptedInput",
    "EncryptedInputResult",
    "EncryptedKind",
    "EncryptedType",
    "Handle",
    "HandleRef",
    "HomomorphicEngine",
    "UserDecryptRequest",
]
