"""
Tests for the weekly compliance sweep and its management command.
"""

from datetime import date, timedelta
from io import StringIO
from unittest import mock
from django.core.management import call_command
from django.db import OperationalError
from django.test import TestCase
from tachograph.models import DailyRest, Infringement, TimeEntry, WeeklyRest
from tachograph.services.sweep_service import ComplianceSweepService


MONDAY = date(2024, 1, 15)
AFTER_WEEK = date(2024, 1, 22)


def seed_week():
    # drv-rested: weekend rest only, the weekdays become 24h rest days
    for offset in (5, 6):
        DailyRest.objects.create(
            organization_id='org-1', driver_id='drv-rested',
            rest_date=MONDAY + timedelta(days=offset), duration_hours=25,
        )
    # drv-busy: worked every day with a single short rest
    for offset in range(7):
        TimeEntry.objects.create(
            organization_id='org-1', driver_id='drv-busy',
            entry_date=MONDAY + timedelta(days=offset), total_hours=8,
        )
    DailyRest.objects.create(
        organization_id='org-1', driver_id='drv-busy',
        rest_date=MONDAY + timedelta(days=6), duration_hours=10,
    )
    TimeEntry.objects.create(
        organization_id='org-2', driver_id='drv-other',
        entry_date=MONDAY, total_hours=8,
    )


class TestComplianceSweep(TestCase):
    """Test the weekly compliance sweep."""

    def setUp(self):
        """Set up test fixtures."""
        seed_week()
        self.service = ComplianceSweepService()

    def test_drivers_for_week(self):
        """Test finding drivers with activity in a week."""
        drivers = self.service.drivers_for_week(date(2024, 1, 17))

        assert [d['driver_id'] for d in drivers] == ['drv-busy', 'drv-other', 'drv-rested']
        assert self.service.drivers_for_week(MONDAY, organization_id='org-2') == [
            {'driver_id': 'drv-other', 'organization_id': 'org-2'}
        ]

    def test_run_records_each_driver(self):
        """Test that the sweep records each driver."""
        report = self.service.run(MONDAY, organization_id='org-1', today=AFTER_WEEK)

        results = {r['driver_id']: r for r in report.results}
        assert results['drv-rested']['status'] == 'recorded'
        assert results['drv-rested']['rest_days_recorded'] == 5
        assert results['drv-busy']['status'] == 'missing'
        assert results['drv-busy']['infringements_created'] == 1
        assert WeeklyRest.objects.get(driver_id='drv-rested').rest_type == 'full_weekly_rest'
        assert not WeeklyRest.objects.filter(driver_id='drv-busy').exists()

    def test_second_run_is_idempotent(self):
        """Test that a second sweep records nothing new."""
        self.service.run(MONDAY, organization_id='org-1', today=AFTER_WEEK)

        report = self.service.run(MONDAY, organization_id='org-1', today=AFTER_WEEK)

        results = {r['driver_id']: r for r in report.results}
        assert results['drv-rested']['status'] == 'already_recorded'
        assert results['drv-rested']['rest_days_recorded'] == 0
        assert results['drv-busy']['infringements_created'] == 0
        assert WeeklyRest.objects.count() == 1
        assert Infringement.objects.filter(driver_id='drv-busy').count() == 1

    def test_unfinished_week(self):
        """Test that an unfinished week is not swept."""
        report = self.service.run(MONDAY, organization_id='org-1', today=MONDAY + timedelta(days=3))

        assert {r['status'] for r in report.results} == {'not_finished'}
        assert WeeklyRest.objects.count() == 0

    def test_driver_failure_is_reported(self):
        """Test that a failing driver is reported."""
        with mock.patch.object(
            self.service.daily_rest, 'rebuild_from_samples', side_effect=OperationalError('database is locked')
        ):
            report = self.service.run(MONDAY, organization_id='org-1', today=AFTER_WEEK)

        assert len(report.errors) == 2
        assert report.errors[0]['error'] == 'database is locked'
        assert report.to_dict()['errors'] == 2

    def test_parallel_workers_collect_all_drivers(self):
        """Test that parallel workers cover all drivers."""
        def fake_run_driver(driver_id, organization_id, week_start, today=None):
            return {'driver_id': driver_id, 'status': 'recorded'}

        with mock.patch.object(self.service, 'run_driver', side_effect=fake_run_driver):
            report = self.service.run(MONDAY, workers=3, today=AFTER_WEEK)

        assert [r['driver_id'] for r in report.results] == ['drv-busy', 'drv-other', 'drv-rested']
        assert report.count('recorded') == 3


class TestRunComplianceSweepCommand(TestCase):
    """Test the run_compliance_sweep command."""

    def setUp(self):
        """Set up test fixtures."""
        seed_week()

    def test_command_output(self):
        """Test the command output."""
        out = StringIO()

        call_command('run_compliance_sweep', '--week-start', '2024-01-15', '--organization', 'org-1', stdout=out)

        output = out.getvalue()
        assert 'drv-rested: recorded' in output
        assert 'drv-busy: missing' in output
        assert '1 recorded' in output
        assert '1 missing' in output
