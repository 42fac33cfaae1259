"""
Periodic compliance sweep.

For one ISO week, finds every driver with activity, time entries or daily
rest and, per driver and in order:

1. Rebuilds daily rest from activity samples
2. Records rest days with no activity
3. Auto-records the weekly rest and materializes its violations

Drivers run in parallel when ``workers > 1``; the steps of one driver always
run sequentially in a single worker.
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, List, Optional

from django.db import DatabaseError, connection

from ..models import ActivitySample as ActivitySampleModel
from ..models import DailyRest, TimeEntry
from .daily_rest_service import DailyRestService, day_bounds
from .weekly_rest_service import WeeklyRestService, week_bounds
from .wtd_config import WTDConfig

logger = logging.getLogger(__name__)


@dataclass
class SweepReport:
    week_start: date
    week_end: date
    results: List[Dict] = field(default_factory=list)
    elapsed_seconds: float = 0.0

    @property
    def errors(self) -> List[Dict]:
        return [r for r in self.results if r['status'] == 'error']

    def count(self, status: str) -> int:
        return sum(1 for r in self.results if r['status'] == status)

    def to_dict(self) -> Dict:
        return {
            'week_start': self.week_start.isoformat(),
            'week_end': self.week_end.isoformat(),
            'drivers': len(self.results),
            'errors': len(self.errors),
            'elapsed_seconds': round(self.elapsed_seconds, 2),
            'results': self.results,
        }


class ComplianceSweepService:
    """
    Batch weekly aggregation across drivers.

    Usage:
        report = ComplianceSweepService().run(date(2024, 1, 15), workers=4)
    """

    def __init__(
        self,
        config: Optional[WTDConfig] = None,
        daily_rest: Optional[DailyRestService] = None,
        weekly_rest: Optional[WeeklyRestService] = None
    ):
        self.config = config or WTDConfig.from_settings()
        self.daily_rest = daily_rest or DailyRestService(self.config)
        self.weekly_rest = weekly_rest or WeeklyRestService(self.config)

    def drivers_for_week(self, week_start: date, organization_id: Optional[str] = None) -> List[Dict]:
        """Drivers with any stored activity in the week, with their organization."""
        week_start, week_end = week_bounds(week_start)
        window_start, _ = day_bounds(week_start)
        _, window_end = day_bounds(week_end)

        sources = [
            ActivitySampleModel.objects.filter(
                timestamp_start__lt=window_end, timestamp_end__gt=window_start
            ).exclude(driver_id=''),
            TimeEntry.objects.filter(entry_date__range=(week_start, week_end)),
            DailyRest.objects.filter(rest_date__range=(week_start, week_end)),
        ]

        drivers: Dict[str, str] = {}
        for queryset in sources:
            if organization_id:
                queryset = queryset.filter(organization_id=organization_id)
            for driver_id, org in queryset.order_by().values_list('driver_id', 'organization_id').distinct():
                drivers.setdefault(driver_id, org)

        return [{'driver_id': d, 'organization_id': o} for d, o in sorted(drivers.items())]

    def run_driver(self, driver_id: str, organization_id: str, week_start: date, today: Optional[date] = None) -> Dict:
        """All sweep steps for one driver, sequentially."""
        week_start, week_end = week_bounds(week_start)
        try:
            rebuild = self.daily_rest.rebuild_from_samples(driver_id, week_start, week_end, organization_id)
            rest_days = self.daily_rest.auto_record_rest_days(driver_id, week_start, week_end, organization_id)
            weekly = self.weekly_rest.auto_record(driver_id, week_start, organization_id, today=today)
        except (DatabaseError, ValueError) as e:
            logger.error(f"Sweep failed for driver {driver_id} week {week_start}: {e}")
            return {'driver_id': driver_id, 'status': 'error', 'error': str(e)}

        return {
            'driver_id': driver_id,
            'status': weekly['status'],
            'daily_rest_created': len(rebuild['created']),
            'daily_rest_updated': len(rebuild['updated']),
            'rest_days_recorded': rest_days,
            'infringements_created': weekly['infringements_created'],
            'message': weekly['message'],
        }

    def run(
        self,
        week_start: date,
        organization_id: Optional[str] = None,
        workers: int = 1,
        today: Optional[date] = None
    ) -> SweepReport:
        """
        Sweep one week for all drivers.

        Per-driver failures are collected in the report, never raised.
        """
        week_start, week_end = week_bounds(week_start)
        report = SweepReport(week_start=week_start, week_end=week_end)
        drivers = self.drivers_for_week(week_start, organization_id)
        start = time.time()

        logger.info(f"Compliance sweep for week {week_start}: {len(drivers)} drivers, {workers} workers")

        if workers <= 1:
            for driver in drivers:
                report.results.append(
                    self.run_driver(driver['driver_id'], driver['organization_id'], week_start, today)
                )
        else:
            def worker(driver):
                try:
                    return self.run_driver(driver['driver_id'], driver['organization_id'], week_start, today)
                finally:
                    connection.close()

            with ThreadPoolExecutor(max_workers=workers) as executor:
                futures = {executor.submit(worker, d): d['driver_id'] for d in drivers}
                for future in as_completed(futures):
                    report.results.append(future.result())
            report.results.sort(key=lambda r: r['driver_id'])

        report.elapsed_seconds = time.time() - start
        logger.info(
            f"Compliance sweep for week {week_start} done in {report.elapsed_seconds:.1f}s: "
            f"{report.count('recorded')} recorded, {report.count('already_recorded')} already recorded, "
            f"{report.count('missing')} missing, {len(report.errors)} errors"
        )
        return report
