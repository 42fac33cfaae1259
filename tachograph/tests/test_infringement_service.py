"""
Tests for the Violation-to-Infringement Materializer.
"""

import pytest
from datetime import date, datetime, timedelta, timezone
from unittest import mock
from django.db import OperationalError
from django.test import TestCase
from tachograph.models import ComplianceAlert, Infringement
from tachograph.services.activity import ActivitySample, ActivityType
from tachograph.services.compliance_service import ComplianceEvaluator, EvaluationContext
from tachograph.services.exceptions import InvalidTransition, PermissionDenied
from tachograph.services.infringement_service import InfringementMaterializer, infringement_number


def long_drive_assessment(source_id='src-1', max_speed=0):
    """600 minutes of driving without a break: two violations."""
    start = datetime(2024, 1, 15, 6, 0, tzinfo=timezone.utc)
    samples = [ActivitySample(
        driver_id='drv-1',
        vehicle_id='veh-1',
        timestamp_start=start,
        timestamp_end=start + timedelta(minutes=600),
        activity_type=ActivityType.DRIVING,
    )]
    return ComplianceEvaluator().evaluate(samples, EvaluationContext(source_id=source_id, max_speed=max_speed))


class TestMaterialize(TestCase):
    """Test materializing assessments into infringements."""

    def setUp(self):
        """Set up test fixtures."""
        self.materializer = InfringementMaterializer()
        self.assessment = long_drive_assessment()

    def test_creates_one_infringement_per_violation(self):
        """Test one infringement per violation."""
        created = self.materializer.materialize(self.assessment, 'drv-1', 'veh-1', 'org-1')

        assert created == 2
        kinds = set(Infringement.objects.values_list('violation_kind', flat=True))
        assert kinds == {'driving_time_violation', 'rest_period_violation'}
        infringement = Infringement.objects.get(violation_kind='driving_time_violation')
        assert infringement.status == 'open'
        assert infringement.severity == 'medium'
        assert infringement.incident_date == date(2024, 1, 15)
        assert infringement.description == "Exceeded daily driving limit: 10h 0m (max: 9h 0m)"

    def test_materialize_is_idempotent(self):
        """Test that materializing twice creates nothing new."""
        first = self.materializer.materialize(self.assessment, 'drv-1', 'veh-1', 'org-1')
        second = self.materializer.materialize(self.assessment, 'drv-1', 'veh-1', 'org-1')

        assert first == 2
        assert second == 0
        assert Infringement.objects.count() == 2
        assert ComplianceAlert.objects.count() == 1

    def test_alert_summarizes_batch(self):
        """Test that one alert summarizes the batch."""
        self.materializer.materialize(self.assessment, 'drv-1', 'veh-1', 'org-1')

        alert = ComplianceAlert.objects.get()
        assert alert.entity_id == 'src-1'
        assert alert.alert_type == 'violation_detected'
        assert alert.title == 'Tachograph Violations Detected'
        assert alert.severity == 'medium'
        assert alert.description == (
            "2 violations found in tachograph data. 2 infringement records created automatically."
        )

    def test_high_severity_alert(self):
        """Test the alert severity for high severity violations."""
        assessment = long_drive_assessment(source_id='src-2', max_speed=110)

        self.materializer.materialize(assessment, 'drv-1', 'veh-1', 'org-1')

        assert ComplianceAlert.objects.get().severity == 'high'
        assert set(Infringement.objects.values_list('severity', flat=True)) == {'high'}

    def test_no_driver_creates_alert_only(self):
        """Test that an assessment without a driver only alerts."""
        created = self.materializer.materialize(self.assessment, None, 'veh-1', 'org-1')

        assert created == 0
        assert Infringement.objects.count() == 0
        assert ComplianceAlert.objects.count() == 1

    def test_compliant_assessment_writes_nothing(self):
        """Test that a compliant assessment writes nothing."""
        assessment = ComplianceEvaluator().evaluate([], EvaluationContext(source_id='src-3'))

        assert self.materializer.materialize(assessment, 'drv-1', 'veh-1', 'org-1') == 0
        assert ComplianceAlert.objects.count() == 0

    def test_write_failure_is_logged_not_raised(self):
        """Test that a write failure is logged and not raised."""
        with mock.patch.object(
            Infringement.objects, 'get_or_create', side_effect=OperationalError('table locked')
        ):
            created = self.materializer.materialize(self.assessment, 'drv-1', 'veh-1', 'org-1')

        assert created == 0
        assert Infringement.objects.count() == 0
        assert ComplianceAlert.objects.count() == 1

    def test_infringement_number_is_stable(self):
        """Test that infringement numbers are stable."""
        assert infringement_number('src-1', 'speed_violation') == infringement_number('src-1', 'speed_violation')
        assert infringement_number('src-1', 'speed_violation') != infringement_number('src-2', 'speed_violation')


class TestReview(TestCase):
    """Test the infringement review workflow."""

    def setUp(self):
        """Set up test fixtures."""
        self.materializer = InfringementMaterializer()
        self.materializer.materialize(long_drive_assessment(), 'drv-1', 'veh-1', 'org-1')
        self.infringement = Infringement.objects.get(violation_kind='driving_time_violation')

    def test_open_to_reviewed_to_resolved(self):
        """Test moving from open to reviewed to resolved."""
        reviewed = self.materializer.review(self.infringement.id, 'reviewed', 'user-1', 'compliance_officer')
        assert reviewed.status == 'reviewed'
        assert reviewed.reviewed_at is not None

        resolved = self.materializer.review(self.infringement.id, 'resolved', 'user-2', 'admin', notes='Driver briefed')
        assert resolved.status == 'resolved'
        assert resolved.resolved_at is not None
        assert resolved.review_notes == 'Driver briefed'

    def test_cannot_skip_review(self):
        """Test that resolving an open infringement is rejected."""
        with pytest.raises(InvalidTransition):
            self.materializer.review(self.infringement.id, 'resolved', 'user-1', 'admin')

        self.infringement.refresh_from_db()
        assert self.infringement.status == 'open'

    def test_cannot_reopen(self):
        """Test that a resolved infringement cannot be reopened."""
        self.materializer.review(self.infringement.id, 'reviewed', 'user-1', 'admin')
        self.materializer.review(self.infringement.id, 'resolved', 'user-1', 'admin')

        with pytest.raises(InvalidTransition):
            self.materializer.review(self.infringement.id, 'open', 'user-1', 'admin')

    def test_driver_cannot_review(self):
        """Test that a driver cannot review infringements."""
        with pytest.raises(PermissionDenied):
            self.materializer.review(self.infringement.id, 'reviewed', 'drv-1', 'driver')


class TestStats(TestCase):
    """Test infringement statistics."""

    def test_counts_by_status_and_severity(self):
        """Test counts by status and severity."""
        materializer = InfringementMaterializer()
        materializer.materialize(long_drive_assessment('src-1'), 'drv-1', 'veh-1', 'org-1')
        materializer.materialize(long_drive_assessment('src-2', max_speed=120), 'drv-2', 'veh-2', 'org-1')
        materializer.materialize(long_drive_assessment('src-3'), 'drv-3', 'veh-3', 'org-2')
        first = Infringement.objects.filter(source_assessment_id='src-1').first()
        materializer.review(first.id, 'reviewed', 'user-1', 'admin')

        stats = materializer.stats('org-1')

        assert stats['total'] == 5
        assert stats['by_status'] == {'open': 4, 'reviewed': 1, 'resolved': 0}
        assert stats['by_severity'] == {'medium': 2, 'high': 3}
        assert materializer.stats()['total'] == 7
