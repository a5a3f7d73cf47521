"""
Sleep entries and their encrypted payloads.

The ledger maps submitted handles to fields by position, so the field layout
below is fixed: bedtime, wake time, duration in tenths of an hour, deep sleep
ratio, wake count, sleep score. Reordering it silently corrupts every entry.
"""

from __future__ import annotations

import calendar
import math
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import date as date_cls
from datetime import datetime, timezone
from typing import Any

from phe import paillier

from .core.exceptions import FieldRangeError, HandleLayoutError, ValidationError
from .core.utils.addresses import normalize_address
from .fhe.input import EncryptedInput
from .fhe.types import EUINT8, EUINT16, EncryptedType, Handle

DURATION_SCALE = 10
SECONDS_PER_DAY = 86400
MINUTES_PER_DAY = 1440


@dataclass(frozen=True)
class FieldSpec:
    name: str
    type: EncryptedType
    low: int
    high: int


SLEEP_FIELD_LAYOUT: tuple[FieldSpec, ...] = (
    FieldSpec("bedtime", EUINT16, 0, 1439),
    FieldSpec("wake_time", EUINT16, 0, 1439),
    FieldSpec("duration", EUINT16, 0, EUINT16.max_value),
    FieldSpec("deep_sleep_ratio", EUINT8, 0, 100),
    FieldSpec("wake_count", EUINT8, 0, 50),
    FieldSpec("sleep_score", EUINT8, 1, 10),
)

FIELD_NAMES = tuple(f.name for f in SLEEP_FIELD_LAYOUT)


def to_day_timestamp(value: int | date_cls | datetime) -> int:
    """Normalize a date-like value to a unix timestamp."""
    if isinstance(value, datetime):
        return int(value.replace(tzinfo=value.tzinfo or timezone.utc).timestamp())
    if isinstance(value, date_cls):
        return calendar.timegm(value.timetuple())
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValidationError(f"Invalid entry date: {value!r}")
    return value


def day_key(timestamp: int) -> int:
    """Calendar day (UTC) a timestamp falls on; one entry per user per day key."""
    return timestamp // SECONDS_PER_DAY


@dataclass
class SleepEntry:
    """One night of plaintext sleep metrics."""

    date: int
    bedtime: int  # minutes after midnight
    wake_time: int  # minutes after midnight
    duration: float  # hours
    deep_sleep_ratio: int  # percent
    wake_count: int
    sleep_score: int  # 1..10

    @property
    def duration_tenths(self) -> int:
        return encode_duration(self.duration)

    def field_values(self) -> dict[str, int]:
        return {
            "bedtime": self.bedtime,
            "wake_time": self.wake_time,
            "duration": self.duration_tenths,
            "deep_sleep_ratio": self.deep_sleep_ratio,
            "wake_count": self.wake_count,
            "sleep_score": self.sleep_score,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> SleepEntry:
        try:
            return cls(
                date=to_day_timestamp(data["date"]),
                bedtime=data["bedtime"],
                wake_time=data["wake_time"],
                duration=_duration_of(data),
                deep_sleep_ratio=data["deep_sleep_ratio"],
                wake_count=data["wake_count"],
                sleep_score=data["sleep_score"],
            )
        except KeyError as e:
            raise ValidationError(f"Sleep entry is missing field {e.args[0]!r}") from None

    @classmethod
    def from_field_values(cls, date: int, values: Mapping[str, int]) -> SleepEntry:
        """Rebuild an entry from decrypted field values (duration in tenths)."""
        return cls(
            date=date,
            bedtime=int(values["bedtime"]),
            wake_time=int(values["wake_time"]),
            duration=int(values["duration"]) / DURATION_SCALE,
            deep_sleep_ratio=int(values["deep_sleep_ratio"]),
            wake_count=int(values["wake_count"]),
            sleep_score=int(values["sleep_score"]),
        )


def _duration_of(data: Mapping[str, Any]) -> float:
    if "duration" not in data:
        return duration_from_times(data["bedtime"], data["wake_time"])
    try:
        return float(data["duration"])
    except (TypeError, ValueError):
        raise ValidationError(f"duration must be a number of hours, got {data['duration']!r}") from None


def duration_from_times(bedtime: int, wake_time: int) -> float:
    """Hours slept between two minute-of-day times; waking at or before bedtime means the next day."""
    for name, value in (("bedtime", bedtime), ("wake_time", wake_time)):
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValidationError(f"{name} must be an integer, got {value!r}")
        if not 0 <= value < MINUTES_PER_DAY:
            raise FieldRangeError(name, value, 0, MINUTES_PER_DAY - 1)
    minutes = wake_time - bedtime
    if minutes <= 0:
        minutes += MINUTES_PER_DAY
    return minutes / 60


def encode_duration(hours: float) -> int:
    """Hours to tenths of an hour. Rounds, so 2.3h is 23 and not 22."""
    if isinstance(hours, bool) or not isinstance(hours, int | float):
        raise ValidationError(f"duration must be a number, got {hours!r}")
    if not math.isfinite(hours) or hours < 0:
        raise FieldRangeError("duration", hours, 0, EUINT16.max_value / DURATION_SCALE)
    return int(round(hours * DURATION_SCALE))


def validate_fields(values: Mapping[str, int]) -> list[int]:
    """Check every field against its domain and width; return them in layout order."""
    ordered: list[int] = []
    for spec in SLEEP_FIELD_LAYOUT:
        if spec.name not in values:
            raise ValidationError(f"Missing field {spec.name!r}")
        value = values[spec.name]
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValidationError(f"{spec.name} must be an integer, got {value!r}")
        if value >= 0:
            spec.type.check(value)
        if not spec.low <= value <= spec.high:
            raise FieldRangeError(spec.name, value, spec.low, spec.high)
        ordered.append(value)
    return ordered


def validate_layout(handles: Sequence[Handle]) -> None:
    """Raise unless *handles* match the fixed six-field layout and types."""
    if len(handles) != len(SLEEP_FIELD_LAYOUT):
        raise HandleLayoutError(f"Expected {len(SLEEP_FIELD_LAYOUT)} handles, got {len(handles)}")
    for spec, handle in zip(SLEEP_FIELD_LAYOUT, handles, strict=True):
        if handle.type != spec.type:
            raise HandleLayoutError(f"{spec.name} must be {spec.type}, got {handle.type}")


@dataclass(frozen=True)
class EncryptedPayload:
    """Six ordered handles plus the proof binding them to (ledger, submitter)."""

    handles: tuple[Handle, ...]
    proof: bytes
    ledger_address: str
    submitter: str

    def by_field(self) -> dict[str, Handle]:
        return dict(zip(FIELD_NAMES, self.handles, strict=True))


class EncryptedPayloadBuilder:
    """Turns plaintext sleep metrics into an encrypted, proof-bound payload.

    Pure client-side: validation happens before anything is encrypted and
    nothing talks to the ledger.
    """

    def __init__(self, public_key: paillier.PaillierPublicKey, chain_id: int):
        self.public_key = public_key
        self.chain_id = chain_id

    def build(self, entry: SleepEntry, ledger_address: str, submitter: str) -> EncryptedPayload:
        return self.build_fields(entry.field_values(), ledger_address, submitter)

    def build_fields(self, values: Mapping[str, int], ledger_address: str, submitter: str) -> EncryptedPayload:
        ordered = validate_fields(values)
        ledger_address = normalize_address(ledger_address)
        submitter = normalize_address(submitter)

        enc_input = EncryptedInput(self.public_key, self.chain_id, ledger_address, submitter)
        for spec, value in zip(SLEEP_FIELD_LAYOUT, ordered, strict=True):
            enc_input.add(value, spec.type)
        result = enc_input.encrypt()

        validate_layout(result.handles)
        return EncryptedPayload(result.handles, result.input_proof, ledger_address, submitter)
