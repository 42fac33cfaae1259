"""
Driver activity samples.

An ``ActivitySample`` is one atomic block of driver activity, either decoded
from a tachograph download or derived from a manual clock entry. These are
the only input the compliance evaluator reads.
"""

from dataclasses import dataclass, replace
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Dict, Iterable, List, Tuple

from .exceptions import InvalidActivityData


class ActivityType(Enum):
    """Driver activity as recorded by the tachograph."""
    DRIVING = "driving"
    BREAK = "break"
    REST = "rest"
    OTHER_WORK = "other_work"
    AVAILABILITY = "availability"


class SampleSource(Enum):
    """Where an activity sample came from."""
    TACHOGRAPH = "tachograph"
    MANUAL_CLOCK = "manual_clock"


# Activities that interrupt driving for break and daily rest purposes
RESTING_ACTIVITIES = (ActivityType.BREAK, ActivityType.REST)


@dataclass(frozen=True)
class ActivitySample:
    """Represents a period of a single activity for one driver."""
    driver_id: str
    vehicle_id: str
    timestamp_start: datetime
    timestamp_end: datetime
    activity_type: ActivityType
    source: SampleSource = SampleSource.TACHOGRAPH

    @property
    def duration_minutes(self) -> float:
        return (self.timestamp_end - self.timestamp_start).total_seconds() / 60

    @property
    def is_resting(self) -> bool:
        return self.activity_type in RESTING_ACTIVITIES

    def minutes_by_day(self) -> List[Tuple[date, float]]:
        """Split the sample at midnight and return minutes per calendar day."""
        parts = []
        cursor = self.timestamp_start
        while cursor < self.timestamp_end:
            next_midnight = datetime.combine(
                cursor.date() + timedelta(days=1), datetime.min.time(), tzinfo=cursor.tzinfo
            )
            part_end = min(next_midnight, self.timestamp_end)
            parts.append((cursor.date(), (part_end - cursor).total_seconds() / 60))
            cursor = part_end
        return parts

    def to_dict(self) -> Dict:
        return {
            'driver_id': self.driver_id,
            'vehicle_id': self.vehicle_id,
            'timestamp_start': self.timestamp_start.isoformat(),
            'timestamp_end': self.timestamp_end.isoformat(),
            'activity_type': self.activity_type.value,
            'source': self.source.value,
        }


def normalize_samples(samples: Iterable[ActivitySample]) -> List[ActivitySample]:
    """
    Sort samples chronologically and enforce the ordering invariants.

    Raises:
        InvalidActivityData: a sample ends before it starts, or two samples
            of the same driver overlap in time.
    """
    ordered = sorted(samples, key=lambda s: (s.timestamp_start, s.timestamp_end, s.driver_id))
    last_end_by_driver: Dict[str, datetime] = {}

    for sample in ordered:
        if sample.timestamp_end <= sample.timestamp_start:
            raise InvalidActivityData(
                "Activity sample must end after it starts",
                details={
                    'driver_id': sample.driver_id,
                    'timestamp_start': sample.timestamp_start.isoformat(),
                    'timestamp_end': sample.timestamp_end.isoformat(),
                },
            )
        last_end = last_end_by_driver.get(sample.driver_id)
        if last_end is not None and sample.timestamp_start < last_end:
            raise InvalidActivityData(
                "Activity samples overlap for the same driver",
                details={
                    'driver_id': sample.driver_id,
                    'overlap_start': sample.timestamp_start.isoformat(),
                    'previous_end': last_end.isoformat(),
                },
            )
        last_end_by_driver[sample.driver_id] = sample.timestamp_end

    return ordered


def resolve_overlaps(samples: Iterable[ActivitySample]) -> List[ActivitySample]:
    """
    Chronological samples with overlaps removed, per driver.

    The earlier sample keeps the contested time; a later sample is clipped to
    start where the earlier one ends, or dropped when fully covered.
    """
    ordered = sorted(samples, key=lambda s: (s.timestamp_start, s.timestamp_end, s.driver_id))
    last_end_by_driver: Dict[str, datetime] = {}
    result = []

    for sample in ordered:
        last_end = last_end_by_driver.get(sample.driver_id)
        if last_end is not None and sample.timestamp_start < last_end:
            if sample.timestamp_end <= last_end:
                continue
            sample = replace(sample, timestamp_start=last_end)
        result.append(sample)
        last_end_by_driver[sample.driver_id] = sample.timestamp_end

    return result


def clip_to_free_time(
    samples: Iterable[ActivitySample],
    occupied: Iterable[Tuple[datetime, datetime]]
) -> List[ActivitySample]:
    """
    Remove the parts of ``samples`` already covered by ``occupied`` intervals.

    Both inputs belong to one driver. A partly covered sample keeps its
    uncovered pieces; a fully covered sample is dropped.
    """
    intervals = sorted(occupied)
    result = []

    for sample in samples:
        cursor = sample.timestamp_start
        for start, end in intervals:
            if start >= sample.timestamp_end:
                break
            if end <= cursor:
                continue
            if start > cursor:
                result.append(replace(sample, timestamp_start=cursor, timestamp_end=start))
            cursor = max(cursor, end)
            if cursor >= sample.timestamp_end:
                break
        if cursor < sample.timestamp_end:
            result.append(replace(sample, timestamp_start=cursor))

    return result
