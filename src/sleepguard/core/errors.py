"""Short user-facing messages for sleepguard errors.

Keeps internal details (handles, keys, tracebacks) out of what end users
see, while naming the phase a failure happened in.
"""

from __future__ import annotations

from .exceptions import (
    AuthorizationError,
    DataAlreadySubmittedForDate,
    DisclosureError,
    GrantDenied,
    LedgerError,
    ProfileAlreadyExists,
    ProfileNotCreated,
    SleepGuardError,
    TransportError,
    ValidationError,
)


def friendly_error_message(error: Exception) -> str:
    """Return a short, user-readable message for *error*."""
    if isinstance(error, ValidationError):
        text = f"Invalid input: {error}"
    elif isinstance(error, ProfileAlreadyExists):
        text = "You already have a profile."
    elif isinstance(error, ProfileNotCreated):
        text = "Create a profile before submitting sleep data."
    elif isinstance(error, DataAlreadySubmittedForDate):
        text = "Sleep data for this date has already been submitted."
    elif isinstance(error, LedgerError):
        text = f"The ledger rejected the request ({error.reason})."
    elif isinstance(error, GrantDenied):
        text = "Decryption was not authorized: the signature request was declined."
    elif isinstance(error, AuthorizationError):
        text = "Decryption authorization could not be verified."
    elif isinstance(error, DisclosureError):
        text = "Your data could not be decrypted right now."
    elif isinstance(error, TransportError):
        text = "Having trouble reaching the network. Please try again."
    else:
        text = "Something unexpected happened. Please try again."

    phase = getattr(error, "phase", None) if isinstance(error, SleepGuardError) else None
    return f"{text} (failed while {phase})" if phase else text
