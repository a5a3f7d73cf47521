"""Turn decrypted running sums into averages.

Durations are summed in tenths of an hour, so the duration average is
divided by the same scale used at submission. The law is a property of the
field encoding and applies unchanged to per-user and global aggregates.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass

from .core.exceptions import ValidationError
from .payload import DURATION_SCALE


@dataclass(frozen=True)
class SleepStatistics:
    avg_duration: float = 0.0  # hours
    avg_deep_sleep: float = 0.0  # percent
    avg_score: float = 0.0
    count: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class AggregatedStats(SleepStatistics):
    """A user's own averages; ``count`` is their number of aggregated entries."""

    @property
    def total_entries(self) -> int:
        return self.count


@dataclass(frozen=True)
class GlobalStats(SleepStatistics):
    """Averages across every consenting submission."""

    @property
    def participants(self) -> int:
        return self.count


def reconstruct(sum_duration: int, sum_deep_sleep: int, sum_score: int, count: int) -> SleepStatistics:
    """Average decrypted sums over *count* entries; zero-valued when count is 0."""
    if count < 0:
        raise ValidationError(f"Entry count cannot be negative: {count}")
    if count == 0:
        return SleepStatistics()
    return SleepStatistics(
        avg_duration=sum_duration / count / DURATION_SCALE,
        avg_deep_sleep=sum_deep_sleep / count,
        avg_score=sum_score / count,
        count=count,
    )


def user_statistics(sum_duration: int, sum_deep_sleep: int, sum_score: int, count: int) -> AggregatedStats:
    return AggregatedStats(**asdict(reconstruct(sum_duration, sum_deep_sleep, sum_score, count)))


def global_statistics(sum_duration: int, sum_deep_sleep: int, sum_score: int, participants: int) -> GlobalStats:
    return GlobalStats(**asdict(reconstruct(sum_duration, sum_deep_sleep, sum_score, participants)))
