"""
Weekly Rest Aggregator.

Rolls daily work and rest figures into ISO weeks (Monday to Sunday) and
tracks the weekly rest state of each driver:

    no_record -> full_weekly_rest       (>= 45h rest, terminal)
    no_record -> reduced_weekly_rest    (>= 24h and < 45h, compensation owed)
              -> compensated_rest       (compensation linked within 3 weeks)
    no_record -> missing                (< 24h rest, terminal violation, no row)

Reduced weekly rest must be compensated within 3 weeks after the end of the
reduced week.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import date, timedelta
from enum import Enum
from typing import Dict, List, Optional

from django.db import DatabaseError, IntegrityError, transaction
from django.db.models import Sum
from django.utils import timezone

from ..models import DailyRest, TimeEntry, WeeklyRest
from .compliance_service import (
    AssessmentWarning,
    ComplianceAssessment,
    Violation,
    ViolationKind,
    WarningKind,
    batch_severity,
)
from .exceptions import CompensationWindowError
from .infringement_service import InfringementMaterializer
from .wtd_config import WTDConfig

logger = logging.getLogger(__name__)


class WeeklyRestClassification(Enum):
    FULL = "full_weekly_rest"
    REDUCED = "reduced_weekly_rest"
    MISSING = "missing"


def week_bounds(day: date):
    """Monday and Sunday of the ISO week containing ``day``."""
    monday = day - timedelta(days=day.weekday())
    return monday, monday + timedelta(days=6)


def weekly_source_id(driver_id: str, week_start: date) -> str:
    """Deterministic assessment id for one driver and week."""
    return str(uuid.uuid5(uuid.NAMESPACE_URL, f"weekly-rest/{driver_id}/{week_start.isoformat()}"))


@dataclass
class WeeklyRestAnalysis:
    """Result of analysing one driver week."""
    driver_id: str
    week_start: date
    week_end: date
    total_work_hours: float = 0.0
    total_rest_hours: float = 0.0
    daily_rest_hours: float = 0.0
    classification: Optional[str] = None
    compensation_required: bool = False
    compensation_deadline: Optional[date] = None
    weekly_rest_id: Optional[str] = None
    rest_type: Optional[str] = None
    compensation_date: Optional[date] = None
    violations: List[Violation] = field(default_factory=list)
    warnings: List[AssessmentWarning] = field(default_factory=list)
    store_available: bool = True

    @property
    def is_compliant(self) -> bool:
        return not self.violations

    def to_assessment(self) -> ComplianceAssessment:
        return ComplianceAssessment(
            source_id=weekly_source_id(self.driver_id, self.week_start),
            violations=tuple(self.violations),
            warnings=tuple(self.warnings),
        )

    def to_dict(self) -> Dict:
        return {
            'driver_id': self.driver_id,
            'week_start': self.week_start.isoformat(),
            'week_end': self.week_end.isoformat(),
            'total_work_hours': round(self.total_work_hours, 2),
            'total_rest_hours': round(self.total_rest_hours, 2),
            'daily_rest_hours': round(self.daily_rest_hours, 2),
            'classification': self.classification,
            'compensation_required': self.compensation_required,
            'compensation_deadline': self.compensation_deadline.isoformat() if self.compensation_deadline else None,
            'weekly_rest_id': self.weekly_rest_id,
            'rest_type': self.rest_type,
            'compensation_date': self.compensation_date.isoformat() if self.compensation_date else None,
            'is_compliant': self.is_compliant,
            'violations': [v.to_dict() for v in self.violations],
            'warnings': [w.to_dict() for w in self.warnings],
            'store_available': self.store_available,
        }


class WeeklyRestService:
    """
    Weekly rest analysis, recording and compensation tracking.

    Usage:
        service = WeeklyRestService()
        analysis = service.analyze(driver_id, date(2024, 1, 15))
        result = service.auto_record(driver_id, date(2024, 1, 15), org_id)
    """

    def __init__(self, config: Optional[WTDConfig] = None, materializer: Optional[InfringementMaterializer] = None):
        self.config = config or WTDConfig()
        self.materializer = materializer or InfringementMaterializer(self.config)

    def classify(self, total_rest_hours: float) -> WeeklyRestClassification:
        if total_rest_hours >= self.config.full_weekly_rest_hours:
            return WeeklyRestClassification.FULL
        if total_rest_hours >= self.config.reduced_weekly_rest_hours:
            return WeeklyRestClassification.REDUCED
        return WeeklyRestClassification.MISSING

    def compensation_deadline(self, week_end: date) -> date:
        return week_end + timedelta(weeks=self.config.compensation_period_weeks)

    def analyze(self, driver_id: str, week_start: date) -> WeeklyRestAnalysis:
        """
        Analyse one ISO week for a driver.

        ``week_start`` may be any day of the week; it is moved back to Monday.
        If the store cannot be read the analysis comes back empty with
        ``store_available=False``.
        """
        week_start, week_end = week_bounds(week_start)
        analysis = WeeklyRestAnalysis(driver_id=driver_id, week_start=week_start, week_end=week_end)

        try:
            work_hours = TimeEntry.objects.filter(
                driver_id=driver_id, entry_date__range=(week_start, week_end)
            ).aggregate(total=Sum('total_hours'))['total'] or 0.0
            daily_rest_hours = DailyRest.objects.filter(
                driver_id=driver_id, rest_date__range=(week_start, week_end)
            ).aggregate(total=Sum('duration_hours'))['total'] or 0.0
            record = WeeklyRest.objects.filter(driver_id=driver_id, week_start_date=week_start).first()
        except DatabaseError as e:
            logger.warning(f"Weekly rest store unavailable for driver {driver_id}: {e}")
            analysis.store_available = False
            return analysis

        analysis.total_work_hours = float(work_hours)
        analysis.daily_rest_hours = float(daily_rest_hours)
        analysis.total_rest_hours = float(record.total_rest_hours) if record else float(daily_rest_hours)

        if record:
            analysis.weekly_rest_id = str(record.id)
            analysis.rest_type = record.rest_type
            analysis.compensation_date = record.compensation_date

        self._check_working_time(analysis)
        self._check_rest(analysis, record)

        severity = batch_severity(len(analysis.violations), self.config)
        analysis.violations = [
            Violation(kind=v.kind, detail=v.detail, severity=severity) for v in analysis.violations
        ]
        return analysis

    def _check_working_time(self, analysis: WeeklyRestAnalysis) -> None:
        hours = analysis.total_work_hours
        limit = self.config.max_weekly_working_hours
        if hours > limit:
            analysis.violations.append(Violation(
                kind=ViolationKind.WEEKLY_WORKING_TIME.value,
                detail=f"Weekly working time ({hours:.1f}h) exceeds WTD limit ({limit:g}h)",
                severity='medium',
            ))
        elif hours > self.config.weekly_working_warning_hours:
            analysis.warnings.append(AssessmentWarning(
                kind=WarningKind.WEEKLY_WORKING_TIME_APPROACHING.value,
                detail=f"Weekly working time ({hours:.1f}h) approaching WTD limit ({limit:g}h)",
            ))

    def _check_rest(self, analysis: WeeklyRestAnalysis, record: Optional[WeeklyRest]) -> None:
        classification = self.classify(analysis.total_rest_hours)
        analysis.classification = classification.value

        if classification == WeeklyRestClassification.MISSING:
            analysis.violations.append(Violation(
                kind=ViolationKind.WEEKLY_REST_MISSING.value,
                detail=(
                    f"No weekly rest period recorded: {analysis.total_rest_hours:.1f}h rest "
                    f"(min: {self.config.reduced_weekly_rest_hours:g}h)"
                ),
                severity='medium',
            ))
            return

        if classification == WeeklyRestClassification.REDUCED:
            compensated = record is not None and record.rest_type == 'compensated_rest'
            analysis.compensation_required = not compensated
            analysis.compensation_deadline = self.compensation_deadline(analysis.week_end)
            if not compensated and (record is None or record.compensation_date is None):
                analysis.warnings.append(AssessmentWarning(
                    kind=WarningKind.COMPENSATION_NOT_SCHEDULED.value,
                    detail=(
                        "Compensation for reduced weekly rest not scheduled "
                        f"(due by {analysis.compensation_deadline.isoformat()})"
                    ),
                ))

    # =========================================================================
    # Recording
    # =========================================================================

    def auto_record(
        self,
        driver_id: str,
        week_start: date,
        organization_id: str,
        today: Optional[date] = None
    ) -> Dict:
        """
        Record the weekly rest of a finished week, once.

        The row is created by a single ``get_or_create`` under the
        (driver_id, week_start_date) unique constraint. Violations of the
        week are materialized as infringements keyed by the week.

        Returns:
            Dict with ``status`` (recorded, already_recorded, missing,
            not_finished, unavailable), ``message`` and the analysis
        """
        week_start, week_end = week_bounds(week_start)
        today = today or timezone.localdate()

        if week_end >= today:
            return {
                'status': 'not_finished',
                'message': f"Week of {week_start.isoformat()} has not ended yet",
                'weekly_rest': None,
                'infringements_created': 0,
            }

        analysis = self.analyze(driver_id, week_start)
        if not analysis.store_available:
            return {
                'status': 'unavailable',
                'message': 'Weekly rest store unavailable',
                'weekly_rest': None,
                'infringements_created': 0,
            }

        infringements_created = self._materialize(analysis, organization_id)
        classification = WeeklyRestClassification(analysis.classification)

        if classification == WeeklyRestClassification.MISSING:
            logger.info(f"No weekly rest for driver {driver_id} week {week_start}")
            return {
                'status': 'missing',
                'message': 'No weekly rest period recorded',
                'weekly_rest': None,
                'analysis': analysis.to_dict(),
                'infringements_created': infringements_created,
            }

        reduced = classification == WeeklyRestClassification.REDUCED
        try:
            with transaction.atomic():
                record, created = WeeklyRest.objects.get_or_create(
                    driver_id=driver_id,
                    week_start_date=week_start,
                    defaults={
                        'organization_id': organization_id,
                        'week_end_date': week_end,
                        'total_rest_hours': round(analysis.total_rest_hours, 2),
                        'rest_type': classification.value,
                        'compensation_required': reduced,
                        'notes': 'Auto-recorded from daily rest',
                    },
                )
        except IntegrityError:
            record, created = WeeklyRest.objects.get(driver_id=driver_id, week_start_date=week_start), False
        except DatabaseError as e:
            logger.warning(f"Weekly rest store unavailable for driver {driver_id} week {week_start}: {e}")
            return {
                'status': 'unavailable',
                'message': 'Weekly rest store unavailable',
                'weekly_rest': None,
                'analysis': analysis.to_dict(),
                'infringements_created': infringements_created,
            }

        if not created:
            return {
                'status': 'already_recorded',
                'message': 'Weekly rest already recorded for this week',
                'weekly_rest': record,
                'analysis': analysis.to_dict(),
                'infringements_created': infringements_created,
            }

        logger.info(
            f"Recorded {classification.value} ({analysis.total_rest_hours:.1f}h) "
            f"for driver {driver_id} week {week_start}"
        )
        return {
            'status': 'recorded',
            'message': f"Weekly rest recorded: {classification.value}",
            'weekly_rest': record,
            'analysis': analysis.to_dict(),
            'infringements_created': infringements_created,
        }

    def _materialize(self, analysis: WeeklyRestAnalysis, organization_id: str) -> int:
        if not analysis.violations:
            return 0
        return self.materializer.materialize(
            analysis.to_assessment(),
            driver_id=analysis.driver_id,
            vehicle_id=None,
            organization_id=organization_id,
            incident_date=analysis.week_end,
            entity_type='weekly_rest',
        )

    def link_compensation(self, weekly_rest: WeeklyRest, compensation_date: date, notes: str = '') -> WeeklyRest:
        """
        Attach compensation rest to a reduced week.

        Raises:
            CompensationWindowError: the week is not a reduced week, or the
                date lies outside the week end .. week end + 3 weeks window
        """
        if weekly_rest.rest_type != 'reduced_weekly_rest':
            raise CompensationWindowError(
                "Only reduced weekly rest can be compensated",
                details={'rest_type': weekly_rest.rest_type},
            )

        deadline = self.compensation_deadline(weekly_rest.week_end_date)
        if not (weekly_rest.week_end_date < compensation_date <= deadline):
            raise CompensationWindowError(
                f"Compensation must be taken after {weekly_rest.week_end_date.isoformat()} "
                f"and by {deadline.isoformat()}",
                details={
                    'compensation_date': compensation_date.isoformat(),
                    'week_end_date': weekly_rest.week_end_date.isoformat(),
                    'deadline': deadline.isoformat(),
                },
            )

        weekly_rest.compensation_date = compensation_date
        weekly_rest.rest_type = 'compensated_rest'
        weekly_rest.compensation_required = False
        if notes:
            weekly_rest.notes = notes
        weekly_rest.save(update_fields=['compensation_date', 'rest_type', 'compensation_required', 'notes', 'updated_at'])

        logger.info(f"Linked compensation on {compensation_date} to weekly rest {weekly_rest.id}")
        return weekly_rest
