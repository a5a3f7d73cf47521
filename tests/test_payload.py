"""Tests for sleepguard.payload."""

import random
from datetime import date

import pytest

from sleepguard.core.exceptions import FieldRangeError, HandleLayoutError, ValidationError, WidthOverflowError
from sleepguard.fhe.types import EUINT8, EUINT16, EUINT32, derive_handle
from sleepguard.payload import (
    FIELD_NAMES,
    SLEEP_FIELD_LAYOUT,
    EncryptedPayloadBuilder,
    SleepEntry,
    day_key,
    duration_from_times,
    encode_duration,
    to_day_timestamp,
    validate_fields,
    validate_layout,
)

USER = "0x" + "aa" * 20


@pytest.fixture
def builder(network):
    return EncryptedPayloadBuilder(network.engine.public_key, network.chain_id)


class TestBuild:
    def test_handles_follow_field_layout(self, network, builder, make_entry):
        entry = make_entry()
        payload = builder.build(entry, network.ledger.address, USER)

        assert len(payload.handles) == 6
        assert [h.type for h in payload.handles] == [EUINT16, EUINT16, EUINT16, EUINT8, EUINT8, EUINT8]

        network.engine.verify_input(payload.handles, payload.proof, network.ledger.address, USER)
        revealed = {name: network.engine.reveal(h) for name, h in payload.by_field().items()}
        assert revealed == {
            "bedtime": 1380,
            "wake_time": 420,
            "duration": 80,
            "deep_sleep_ratio": 45,
            "wake_count": 2,
            "sleep_score": 8,
        }

    def test_payload_is_bound_to_submitter(self, network, builder, make_entry):
        from sleepguard.core.exceptions import InvalidProof

        payload = builder.build(make_entry(), network.ledger.address, USER)
        with pytest.raises(InvalidProof):
            network.engine.verify_input(payload.handles, payload.proof, network.ledger.address, "0x" + "bb" * 20)

    def test_invalid_entry_is_not_encrypted(self, network, builder, make_entry):
        with pytest.raises(FieldRangeError):
            builder.build(make_entry(sleep_score=11), network.ledger.address, USER)

    def test_bad_address(self, builder, make_entry):
        with pytest.raises(ValidationError):
            builder.build(make_entry(), "ledger", USER)


def random_field_values(rng):
    """Any valid plaintext entry, duration in tenths across the full euint16 range."""
    return {spec.name: rng.randint(spec.low, spec.high) for spec in SLEEP_FIELD_LAYOUT}


LOWEST = {spec.name: spec.low for spec in SLEEP_FIELD_LAYOUT}
HIGHEST = {spec.name: spec.high for spec in SLEEP_FIELD_LAYOUT}


class TestFieldOrder:
    @pytest.mark.parametrize(
        "values",
        [LOWEST, HIGHEST] + [random_field_values(random.Random(seed)) for seed in range(8)],
        ids=["lowest", "highest"] + [f"seed{seed}" for seed in range(8)],
    )
    def test_every_field_lands_in_its_slot(self, network, builder, values):
        payload = builder.build_fields(values, network.ledger.address, USER)
        network.engine.verify_input(payload.handles, payload.proof, network.ledger.address, USER)

        revealed = [network.engine.reveal(h) for h in payload.handles]
        assert revealed == [values[name] for name in FIELD_NAMES]
        assert [h.type for h in payload.handles] == [spec.type for spec in SLEEP_FIELD_LAYOUT]

    def test_layout_bounds(self):
        assert HIGHEST == {
            "bedtime": 1439,
            "wake_time": 1439,
            "duration": 65535,
            "deep_sleep_ratio": 100,
            "wake_count": 50,
            "sleep_score": 10,
        }
        assert LOWEST["sleep_score"] == 1


class TestValidateFields:
    def _values(self, **overrides):
        values = dict(bedtime=1380, wake_time=420, duration=80, deep_sleep_ratio=45, wake_count=2, sleep_score=8)
        values.update(overrides)
        return values

    def test_returns_layout_order(self):
        assert validate_fields(self._values()) == [1380, 420, 80, 45, 2, 8]

    @pytest.mark.parametrize(
        "field,value",
        [
            ("bedtime", 1440),
            ("wake_time", -1),
            ("deep_sleep_ratio", 101),
            ("wake_count", 51),
            ("sleep_score", 0),
            ("sleep_score", 11),
        ],
    )
    def test_out_of_range(self, field, value):
        with pytest.raises(FieldRangeError) as exc_info:
            validate_fields(self._values(**{field: value}))
        assert exc_info.value.field == field

    def test_width_overflow_reported_before_range(self):
        with pytest.raises(WidthOverflowError):
            validate_fields(self._values(deep_sleep_ratio=300))
        with pytest.raises(WidthOverflowError):
            validate_fields(self._values(duration=70000))

    def test_missing_field(self):
        values = self._values()
        del values["wake_count"]
        with pytest.raises(ValidationError, match="wake_count"):
            validate_fields(values)

    @pytest.mark.parametrize("value", [True, 7.5, "8"])
    def test_non_integer(self, value):
        with pytest.raises(ValidationError):
            validate_fields(self._values(sleep_score=value))


class TestDuration:
    @pytest.mark.parametrize("hours,tenths", [(8.0, 80), (2.3, 23), (7.7, 77), (0.1, 1), (9, 90)])
    def test_encode(self, hours, tenths):
        assert encode_duration(hours) == tenths

    def test_rejects_non_numbers(self):
        with pytest.raises(ValidationError):
            encode_duration("8")

    @pytest.mark.parametrize("hours", [float("nan"), float("inf"), float("-inf"), -0.04, -1])
    def test_rejects_non_finite_and_negative(self, hours):
        with pytest.raises(FieldRangeError) as exc_info:
            encode_duration(hours)
        assert exc_info.value.field == "duration"

    @pytest.mark.parametrize(
        "bedtime,wake_time,hours",
        [(1380, 420, 8.0), (1320, 390, 8.5), (60, 540, 8.0), (0, 1439, 1439 / 60), (600, 600, 24.0)],
    )
    def test_from_times_wraps_overnight(self, bedtime, wake_time, hours):
        assert duration_from_times(bedtime, wake_time) == pytest.approx(hours)

    def test_from_times_checks_range(self):
        with pytest.raises(FieldRangeError):
            duration_from_times(1440, 420)
        with pytest.raises(ValidationError):
            duration_from_times(1380, "7:00")


class TestSleepEntry:
    def test_from_dict(self):
        entry = SleepEntry.from_dict(
            {
                "date": date(2025, 1, 2),
                "bedtime": 1380,
                "wake_time": 420,
                "duration": "7.5",
                "deep_sleep_ratio": 40,
                "wake_count": 1,
                "sleep_score": 9,
            }
        )
        assert entry.date == 1735776000
        assert entry.duration_tenths == 75

    def test_from_dict_derives_missing_duration(self):
        entry = SleepEntry.from_dict(
            {"date": 0, "bedtime": 1380, "wake_time": 420, "deep_sleep_ratio": 40, "wake_count": 1, "sleep_score": 9}
        )
        assert entry.duration == 8.0
        assert entry.duration_tenths == 80

    @pytest.mark.parametrize("duration", ["eight", None, [8]])
    def test_from_dict_non_numeric_duration(self, duration):
        with pytest.raises(ValidationError, match="duration"):
            SleepEntry.from_dict(
                {
                    "date": 0,
                    "bedtime": 1380,
                    "wake_time": 420,
                    "duration": duration,
                    "deep_sleep_ratio": 40,
                    "wake_count": 1,
                    "sleep_score": 9,
                }
            )

    def test_from_dict_missing_field(self):
        with pytest.raises(ValidationError, match="bedtime"):
            SleepEntry.from_dict({"date": 0})

    def test_from_field_values(self):
        entry = SleepEntry.from_field_values(
            100,
            {"bedtime": 1380, "wake_time": 420, "duration": 75, "deep_sleep_ratio": 40, "wake_count": 1, "sleep_score": 9},
        )
        assert entry.duration == 7.5
        assert entry.field_values()["duration"] == 75


class TestDates:
    def test_timestamps_pass_through(self):
        assert to_day_timestamp(1_700_000_000) == 1_700_000_000

    @pytest.mark.parametrize("value", [-1, True, "2025-01-01", 1.5])
    def test_invalid(self, value):
        with pytest.raises(ValidationError):
            to_day_timestamp(value)

    def test_day_key_groups_by_utc_day(self):
        assert day_key(86400) == day_key(86400 * 2 - 1)
        assert day_key(86400 * 2) != day_key(86400)


class TestValidateLayout:
    def _handles(self, types):
        return [derive_handle(bytes([i]), t) for i, t in enumerate(types)]

    def test_accepts_layout(self):
        validate_layout(self._handles([EUINT16, EUINT16, EUINT16, EUINT8, EUINT8, EUINT8]))

    def test_wrong_count(self):
        with pytest.raises(HandleLayoutError):
            validate_layout(self._handles([EUINT16] * 5))

    def test_wrong_type(self):
        with pytest.raises(HandleLayoutError, match="duration"):
            validate_layout(self._handles([EUINT16, EUINT16, EUINT32, EUINT8, EUINT8, EUINT8]))


def test_field_names():
    assert FIELD_NAMES == ("bedtime", "wake_time", "duration", "deep_sleep_ratio", "wake_count", "sleep_score")
