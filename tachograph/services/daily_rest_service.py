"""
Daily rest roll-up.

Builds one ``DailyRest`` row per driver and calendar day from stored
activity samples. Samples crossing midnight are split between the two days.

A day's row is settled once a later day has begun: rebuilding only writes
days that have no row yet and the latest day of the driver's history,
unless ``recompute`` is requested explicitly.
"""

import logging
from datetime import date, datetime, time, timedelta
from typing import Dict, Iterable, List, Optional

from django.db import transaction
from django.utils import timezone

from ..models import ActivitySample as ActivitySampleModel
from ..models import DailyRest, TimeEntry
from .activity import ActivitySample, ActivityType, SampleSource, resolve_overlaps
from .wtd_config import WTDConfig

logger = logging.getLogger(__name__)


def day_bounds(day: date):
    """Aware datetimes for the start of ``day`` and of the next day."""
    tz = timezone.get_current_timezone()
    start = timezone.make_aware(datetime.combine(day, time.min), tz)
    end = timezone.make_aware(datetime.combine(day + timedelta(days=1), time.min), tz)
    return start, end


def date_range(start_date: date, end_date: date) -> List[date]:
    return [start_date + timedelta(days=i) for i in range((end_date - start_date).days + 1)]


def to_activity_sample(row: ActivitySampleModel) -> ActivitySample:
    """Convert a stored sample into the evaluator's value type, in local time."""
    return ActivitySample(
        driver_id=row.driver_id,
        vehicle_id=row.vehicle_id,
        timestamp_start=timezone.localtime(row.timestamp_start),
        timestamp_end=timezone.localtime(row.timestamp_end),
        activity_type=ActivityType(row.activity_type),
        source=SampleSource(row.source),
    )


def load_samples(driver_id: str, start_date: date, end_date: date) -> List[ActivitySample]:
    """Stored samples of a driver overlapping the given days."""
    window_start, _ = day_bounds(start_date)
    _, window_end = day_bounds(end_date)
    rows = ActivitySampleModel.objects.filter(
        driver_id=driver_id,
        timestamp_start__lt=window_end,
        timestamp_end__gt=window_start,
    ).order_by('timestamp_start')
    return resolve_overlaps(to_activity_sample(row) for row in rows)


class DailyRestService:
    """
    Maintains ``DailyRest`` rows.

    Usage:
        service = DailyRestService()
        service.rebuild_from_samples(driver_id, date(2024, 1, 15), date(2024, 1, 21), org_id)
    """

    def __init__(self, config: Optional[WTDConfig] = None):
        self.config = config or WTDConfig()

    def classify(self, duration_hours: float) -> str:
        if self.config.reduced_daily_rest_hours <= duration_hours < self.config.daily_rest_hours:
            return 'reduced_rest'
        return 'daily_rest'

    def rest_hours_by_day(
        self,
        samples: Iterable[ActivitySample],
        start_date: date,
        end_date: date
    ) -> Dict[date, float]:
        """Rest and break hours per day, for days that have any samples."""
        hours: Dict[date, float] = {}
        for sample in samples:
            for day, minutes in sample.minutes_by_day():
                if day < start_date or day > end_date:
                    continue
                hours.setdefault(day, 0.0)
                if sample.is_resting:
                    hours[day] += minutes / 60
        return {day: round(value, 2) for day, value in sorted(hours.items())}

    def rebuild_from_samples(
        self,
        driver_id: str,
        start_date: date,
        end_date: date,
        organization_id: str,
        recompute: bool = False
    ) -> Dict:
        """
        Derive daily rest rows for a driver from stored samples.

        Args:
            driver_id: Driver to roll up
            start_date: First day (inclusive)
            end_date: Last day (inclusive)
            organization_id: Owning organization
            recompute: Also rewrite settled days

        Returns:
            Dict with ``created``, ``updated`` and ``skipped`` day lists
        """
        if end_date < start_date:
            raise ValueError("end_date must not be before start_date")

        samples = load_samples(driver_id, start_date, end_date)
        hours_by_day = self.rest_hours_by_day(samples, start_date, end_date)
        latest_day = self._latest_activity_day(driver_id)

        result = {'created': [], 'updated': [], 'skipped': []}

        for day, duration in hours_by_day.items():
            rest_type = self.classify(duration)
            with transaction.atomic():
                row, created = DailyRest.objects.select_for_update().get_or_create(
                    driver_id=driver_id,
                    rest_date=day,
                    defaults={
                        'organization_id': organization_id,
                        'duration_hours': duration,
                        'rest_type': rest_type,
                        'notes': 'Derived from tachograph activity',
                    },
                )
                if created:
                    result['created'].append(day.isoformat())
                    continue

                settled = latest_day is not None and day < latest_day
                if settled and not recompute:
                    result['skipped'].append(day.isoformat())
                    continue

                if row.duration_hours != duration or row.rest_type != rest_type:
                    row.duration_hours = duration
                    row.rest_type = rest_type
                    row.save(update_fields=['duration_hours', 'rest_type', 'updated_at'])
                    result['updated'].append(day.isoformat())
                else:
                    result['skipped'].append(day.isoformat())

        logger.info(
            f"Daily rest rebuild for driver {driver_id} {start_date}..{end_date}: "
            f"{len(result['created'])} created, {len(result['updated'])} updated, "
            f"{len(result['skipped'])} skipped"
        )
        return result

    def auto_record_rest_days(
        self,
        driver_id: str,
        start_date: date,
        end_date: date,
        organization_id: str
    ) -> int:
        """
        Record a full 24h rest for every day without any recorded activity.

        A day counts as a rest day when it has no time entry, no daily rest
        row and no activity samples.

        Returns:
            Number of rest days created
        """
        if end_date < start_date:
            raise ValueError("end_date must not be before start_date")

        days = date_range(start_date, end_date)
        worked_days = set(
            TimeEntry.objects.filter(
                driver_id=driver_id, entry_date__range=(start_date, end_date)
            ).values_list('entry_date', flat=True)
        )
        for sample in load_samples(driver_id, start_date, end_date):
            worked_days.update(day for day, _ in sample.minutes_by_day())

        created_count = 0
        for day in days:
            if day in worked_days:
                continue
            with transaction.atomic():
                _, created = DailyRest.objects.get_or_create(
                    driver_id=driver_id,
                    rest_date=day,
                    defaults={
                        'organization_id': organization_id,
                        'duration_hours': 24,
                        'rest_type': 'daily_rest',
                        'notes': 'Auto-recorded rest day (no time entry)',
                    },
                )
            if created:
                created_count += 1

        logger.info(f"Auto-recorded {created_count} rest days for driver {driver_id}")
        return created_count

    @staticmethod
    def _latest_activity_day(driver_id: str) -> Optional[date]:
        latest = (
            ActivitySampleModel.objects.filter(driver_id=driver_id)
            .order_by('-timestamp_end')
            .values_list('timestamp_end', flat=True)
            .first()
        )
        if latest is None:
            return None
        # A sample ending exactly at midnight belongs to the previous day
        return (timezone.localtime(latest) - timedelta(microseconds=1)).date()
