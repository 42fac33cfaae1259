"""
Run the weekly compliance sweep.

Usage:
    python manage.py run_compliance_sweep --week-start 2024-01-15
    python manage.py run_compliance_sweep --week-start 2024-01-15 --organization org-1 --workers 4
"""

from django.core.management.base import BaseCommand, CommandError
from django.utils.dateparse import parse_date

from tachograph.services import ComplianceSweepService


class Command(BaseCommand):
    help = "Rebuild daily rest and record weekly rest for every driver active in a week"

    def add_arguments(self, parser):
        parser.add_argument(
            '--week-start', required=True,
            help="Any date in the ISO week to sweep (YYYY-MM-DD)",
        )
        parser.add_argument(
            '--organization', default=None,
            help="Only sweep drivers of this organization",
        )
        parser.add_argument(
            '--workers', type=int, default=1,
            help="Number of parallel driver workers (default: 1)",
        )

    def handle(self, *args, **options):
        week_start = parse_date(options['week_start'])
        if week_start is None:
            raise CommandError(f"Invalid --week-start {options['week_start']!r}, expected YYYY-MM-DD")
        if options['workers'] < 1:
            raise CommandError("--workers must be at least 1")

        report = ComplianceSweepService().run(
            week_start,
            organization_id=options['organization'],
            workers=options['workers'],
        )

        for result in report.results:
            detail = result.get('message') or result.get('error', '')
            self.stdout.write(f"  {result['driver_id']}: {result['status']} -- {detail}")

        summary = (
            f"Week {report.week_start}..{report.week_end}: {len(report.results)} drivers, "
            f"{report.count('recorded')} recorded, {report.count('already_recorded')} already recorded, "
            f"{report.count('missing')} missing, {len(report.errors)} errors "
            f"in {report.elapsed_seconds:.1f}s"
        )
        if report.errors:
            self.stdout.write(self.style.WARNING(summary))
        else:
            self.stdout.write(self.style.SUCCESS(summary))
