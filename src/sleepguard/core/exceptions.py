"""
SleepGuard exception hierarchy.

All sleepguard exceptions inherit from SleepGuardError, making it easy for
consumers to catch library-level errors while still distinguishing specific
failure modes. Each error may carry the client phase it failed in.
"""

from __future__ import annotations


class SleepGuardError(Exception):
    """Base exception class for all sleepguard errors."""

    def __init__(self, message: str = "", *, phase: str | None = None):
        super().__init__(message)
        self.phase = phase


class ConfigurationError(SleepGuardError):
    """Raised for configuration errors (missing keys, invalid values)."""


# ── Validation (client side, before any round-trip) ──────────────────


class ValidationError(SleepGuardError):
    """Raised when input fails client-side validation."""


class FieldRangeError(ValidationError):
    """A plaintext field is outside its declared domain."""

    def __init__(self, field: str, value: object, low: int, high: int | float):
        super().__init__(f"{field}={value!r} is outside the allowed range {low}..{high}")
        self.field = field
        self.value = value


class WidthOverflowError(ValidationError):
    """A value does not fit the encrypted integer width it is declared as."""


class HandleLayoutError(ValidationError):
    """Wrong number, order or type of ciphertext handles."""


# ── Ledger rejections (reverts) ──────────────────────────────────────


class LedgerError(SleepGuardError):
    """Raised when the ledger rejects a call. ``reason`` is the revert name."""

    reason = "LedgerError"

    def __init__(self, message: str = "", *, phase: str | None = None):
        super().__init__(message or self.reason, phase=phase)


class ProfileAlreadyExists(LedgerError):
    reason = "ProfileAlreadyExists"


class ProfileNotCreated(LedgerError):
    reason = "ProfileNotCreated"


class DataAlreadySubmittedForDate(LedgerError):
    reason = "DataAlreadySubmittedForDate"


class InvalidIndex(LedgerError):
    reason = "InvalidIndex"


class Unauthorized(LedgerError):
    reason = "Unauthorized"


class InvalidProof(LedgerError):
    reason = "InvalidProof"


# ── Authorization (signing the decryption grant) ─────────────────────


class AuthorizationError(SleepGuardError):
    """Raised when a decryption grant cannot be established."""


class GrantDenied(AuthorizationError):
    """The subject declined to sign the authorization."""


class SignatureVerificationError(AuthorizationError):
    """The authorization signature does not verify against the subject."""


# ── Disclosure ───────────────────────────────────────────────────────


class DisclosureError(SleepGuardError):
    """Raised when a disclosure request cannot be served."""


class GrantExpired(DisclosureError):
    """The grant's validity window has elapsed."""


class GrantScopeMismatch(DisclosureError):
    """A handle's ledger address is not covered by the grant scope."""


class DisclosureRejected(DisclosureError):
    """The disclosure mechanism rejected the batch as a whole."""


class TransportError(SleepGuardError):
    """Raised for network / RPC failures talking to a collaborator."""
