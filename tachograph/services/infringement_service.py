"""
Violation-to-Infringement Materializer.

Turns the violations of a ``ComplianceAssessment`` into persisted
``Infringement`` rows and one summary ``ComplianceAlert``.

Idempotency:
============
- Infringements are keyed by (source_assessment_id, violation_kind)
- Alerts are keyed by (entity_id, alert_type)
- Both keys are unique constraints in the database and every write is a
  ``get_or_create`` inside its own savepoint, so a repeated or concurrent
  call for the same assessment creates nothing new

Writes are best-effort: a failed insert is logged and skipped, never raised
to the caller that owns the upload.
"""

import logging
import uuid
from datetime import date
from typing import Dict, Optional

from django.db import DatabaseError, IntegrityError, transaction
from django.db.models import Count
from django.utils import timezone

from ..models import ComplianceAlert, Infringement
from .compliance_service import ComplianceAssessment, batch_severity
from .exceptions import DownstreamWriteFailure, InvalidTransition, PermissionDenied
from .wtd_config import WTDConfig

logger = logging.getLogger(__name__)


REVIEWER_ROLES = ('admin', 'compliance_officer')

# Allowed review transitions
STATUS_TRANSITIONS = {
    'open': 'reviewed',
    'reviewed': 'resolved',
}

ALERT_TYPE_VIOLATION = 'violation_detected'

ALERT_SOURCES = {
    'tachograph': ('Tachograph Violations Detected', 'tachograph data'),
    'weekly_rest': ('Weekly Rest Violations Detected', 'weekly rest data'),
}


def infringement_number(source_assessment_id: str, violation_kind: str) -> str:
    """Stable, human-readable number for an infringement key."""
    digest = uuid.uuid5(uuid.NAMESPACE_URL, f"{source_assessment_id}/{violation_kind}")
    return f"INF-{digest.hex[:12].upper()}"


class InfringementMaterializer:
    """
    Persists assessment violations as infringements and alerts.

    Usage:
        materializer = InfringementMaterializer()
        created = materializer.materialize(assessment, driver_id, vehicle_id, organization_id)
    """

    def __init__(self, config: Optional[WTDConfig] = None):
        self.config = config or WTDConfig()

    def materialize(
        self,
        assessment: ComplianceAssessment,
        driver_id: Optional[str],
        vehicle_id: Optional[str],
        organization_id: str,
        incident_date: Optional[date] = None,
        entity_type: str = 'tachograph'
    ) -> int:
        """
        Create infringements and the summary alert for an assessment.

        Args:
            assessment: Evaluator output with a ``source_id``
            driver_id: Driver the violations belong to; without one no
                infringements are created
            vehicle_id: Vehicle involved, if any
            organization_id: Owning organization
            incident_date: Date recorded on the infringements
            entity_type: Alert entity type

        Returns:
            Number of infringements created by this call
        """
        if not assessment.violations:
            return 0
        if not assessment.source_id:
            raise ValueError("Assessment has no source_id to key infringements on")

        incident_date = incident_date or self._incident_date(assessment)
        created_count = 0

        if not driver_id:
            logger.info(
                f"Assessment {assessment.source_id} has {assessment.violations_detected} "
                f"violations but no driver; skipping infringements"
            )
        else:
            for violation in assessment.violations:
                try:
                    created = self._create_infringement(
                        assessment.source_id, violation, driver_id,
                        vehicle_id, organization_id, incident_date
                    )
                except DownstreamWriteFailure as e:
                    logger.warning(f"{e.message}: {e.details}")
                    continue
                if created:
                    created_count += 1

        try:
            self._create_alert(assessment, organization_id, created_count, entity_type)
        except DownstreamWriteFailure as e:
            logger.warning(f"{e.message}: {e.details}")

        logger.info(
            f"Materialized assessment {assessment.source_id}: "
            f"{created_count} of {assessment.violations_detected} infringements created"
        )
        return created_count

    def _create_infringement(self, source_id, violation, driver_id, vehicle_id, organization_id, incident_date) -> bool:
        try:
            with transaction.atomic():
                _, created = Infringement.objects.get_or_create(
                    source_assessment_id=source_id,
                    violation_kind=violation.kind,
                    defaults={
                        'infringement_number': infringement_number(source_id, violation.kind),
                        'organization_id': organization_id,
                        'driver_id': driver_id,
                        'vehicle_id': vehicle_id or '',
                        'description': violation.detail,
                        'severity': violation.severity,
                        'status': 'open',
                        'incident_date': incident_date,
                    },
                )
        except IntegrityError:
            # Lost a race with a concurrent insert of the same key
            return False
        except DatabaseError as e:
            raise DownstreamWriteFailure(
                "Failed to create infringement",
                details={'source_id': source_id, 'kind': violation.kind, 'reason': str(e)},
            )
        return created

    def _create_alert(self, assessment, organization_id, created_count, entity_type) -> bool:
        count = assessment.violations_detected
        title, source = ALERT_SOURCES.get(entity_type, ALERT_SOURCES['tachograph'])
        try:
            with transaction.atomic():
                _, created = ComplianceAlert.objects.get_or_create(
                    entity_id=assessment.source_id,
                    alert_type=ALERT_TYPE_VIOLATION,
                    defaults={
                        'organization_id': organization_id,
                        'entity_type': entity_type,
                        'title': title,
                        'description': (
                            f"{count} violations found in {source}. "
                            f"{created_count} infringement records created automatically."
                        ),
                        'severity': batch_severity(count, self.config),
                    },
                )
        except IntegrityError:
            return False
        except DatabaseError as e:
            raise DownstreamWriteFailure(
                "Failed to create compliance alert",
                details={'source_id': assessment.source_id, 'reason': str(e)},
            )
        return created

    @staticmethod
    def _incident_date(assessment: ComplianceAssessment) -> date:
        if assessment.driving_minutes_by_day:
            return date.fromisoformat(assessment.driving_minutes_by_day[0][0])
        return timezone.localdate()

    # =========================================================================
    # Review
    # =========================================================================

    def review(
        self,
        infringement_id,
        new_status: str,
        reviewer_id: str,
        reviewer_role: str,
        notes: str = ''
    ) -> Infringement:
        """
        Move an infringement one step along open -> reviewed -> resolved.

        Raises:
            PermissionDenied: reviewer is not admin or compliance officer
            InvalidTransition: the requested status is not the next step
            Infringement.DoesNotExist: unknown id
        """
        if reviewer_role not in REVIEWER_ROLES:
            raise PermissionDenied(
                "Only admins and compliance officers can review infringements",
                details={'role': reviewer_role, 'allowed': list(REVIEWER_ROLES)},
            )

        with transaction.atomic():
            infringement = Infringement.objects.select_for_update().get(id=infringement_id)
            expected = STATUS_TRANSITIONS.get(infringement.status)
            if new_status != expected:
                raise InvalidTransition(
                    f"Cannot move infringement from {infringement.status} to {new_status}",
                    details={'current_status': infringement.status, 'requested_status': new_status},
                )

            now = timezone.now()
            infringement.status = new_status
            infringement.reviewed_by = reviewer_id
            if notes:
                infringement.review_notes = notes
            update_fields = ['status', 'reviewed_by', 'review_notes']
            if new_status == 'reviewed':
                infringement.reviewed_at = now
                update_fields.append('reviewed_at')
            else:
                infringement.resolved_at = now
                update_fields.append('resolved_at')
            infringement.save(update_fields=update_fields)

        logger.info(f"Infringement {infringement.infringement_number} moved to {new_status} by {reviewer_id}")
        return infringement

    # =========================================================================
    # Statistics
    # =========================================================================

    def stats(self, organization_id: Optional[str] = None) -> Dict:
        """Infringement totals by status and severity."""
        queryset = Infringement.objects.all()
        if organization_id:
            queryset = queryset.filter(organization_id=organization_id)

        by_status = {value: 0 for value, _ in Infringement.STATUS_CHOICES}
        for row in queryset.values('status').annotate(count=Count('id')):
            by_status[row['status']] = row['count']

        by_severity = {value: 0 for value, _ in Infringement.SEVERITY_CHOICES}
        for row in queryset.values('severity').annotate(count=Count('id')):
            by_severity[row['severity']] = row['count']

        return {
            'total': sum(by_status.values()),
            'by_status': by_status,
            'by_severity': by_severity,
        }
