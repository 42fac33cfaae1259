"""
Tachograph Compliance Models.

Stores tachograph uploads, decoded driver activity, daily and weekly rest
roll-ups, and the infringements and alerts raised from violations.

Driver, vehicle and organization identifiers belong to external systems and
are kept as opaque strings.
"""

from django.db import models
from django.core.validators import MinValueValidator
import uuid


class TachographRecord(models.Model):
    """
    One accepted tachograph upload and its analysis.
    """
    FILE_TYPE_CHOICES = [
        ('ddd', 'DDD (Generation 1)'),
        ('tgd', 'TGD (Generation 1)'),
        ('c1b', 'C1B Driver Card (Generation 1)'),
        ('v1b', 'V1B Vehicle Unit (Generation 1)'),
        ('v2b', 'V2B Vehicle Unit (Generation 2)'),
        ('esm', 'ESM Smart Tachograph'),
    ]
    VERIFICATION_STATUS_CHOICES = [
        ('verified', 'Verified'),
        ('failed', 'Failed'),
    ]
    DATA_INTEGRITY_CHOICES = [
        ('intact', 'Intact'),
        ('suspicious', 'Suspicious'),
        ('corrupted', 'Corrupted'),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    # Identity
    organization_id = models.CharField(max_length=100, db_index=True)
    vehicle_id = models.CharField(max_length=100, db_index=True)
    driver_id = models.CharField(max_length=100, blank=True, default='', db_index=True)

    # Stored artifact
    file_type = models.CharField(max_length=10, choices=FILE_TYPE_CHOICES)
    file_name = models.CharField(max_length=255)
    file = models.CharField(max_length=500, help_text="Storage path of the uploaded file")
    file_size_bytes = models.PositiveIntegerField(default=0)

    # Download window
    record_date = models.DateField()
    download_date = models.DateTimeField()
    period_start = models.DateTimeField(null=True, blank=True)
    period_end = models.DateTimeField(null=True, blank=True)
    next_download_due = models.DateField(null=True, blank=True)

    # Device
    device_type = models.CharField(max_length=50, blank=True, default='')
    generation_type = models.CharField(max_length=20, blank=True, default='')
    download_method = models.CharField(max_length=50, blank=True, default='')
    bluetooth_download = models.BooleanField(default=False)
    remote_download = models.BooleanField(default=False)
    smart_features = models.JSONField(default=dict, blank=True)

    # Analysis
    verification_status = models.CharField(max_length=20, choices=VERIFICATION_STATUS_CHOICES)
    issues_found = models.PositiveIntegerField(default=0)
    data_integrity = models.CharField(max_length=20, choices=DATA_INTEGRITY_CHOICES, default='intact')
    analysis_results = models.JSONField(default=dict, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'tachograph_records'
        ordering = ['-download_date']
        verbose_name = 'Tachograph Record'
        verbose_name_plural = 'Tachograph Records'

    def __str__(self):
        return f"{self.file_type.upper()} {self.file_name} ({self.vehicle_id})"


class ActivitySample(models.Model):
    """
    A decoded block of driver activity. Append-only.
    """
    ACTIVITY_TYPE_CHOICES = [
        ('driving', 'Driving'),
        ('break', 'Break'),
        ('rest', 'Rest'),
        ('other_work', 'Other Work'),
        ('availability', 'Availability'),
    ]
    SOURCE_CHOICES = [
        ('tachograph', 'Tachograph'),
        ('manual_clock', 'Manual Clock'),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    record = models.ForeignKey(
        TachographRecord, on_delete=models.CASCADE, related_name='samples', null=True, blank=True
    )

    organization_id = models.CharField(max_length=100, db_index=True)
    driver_id = models.CharField(max_length=100, db_index=True)
    vehicle_id = models.CharField(max_length=100)

    timestamp_start = models.DateTimeField()
    timestamp_end = models.DateTimeField()
    activity_type = models.CharField(max_length=20, choices=ACTIVITY_TYPE_CHOICES)
    source = models.CharField(max_length=20, choices=SOURCE_CHOICES, default='tachograph')

    class Meta:
        db_table = 'activity_samples'
        ordering = ['driver_id', 'timestamp_start']
        verbose_name = 'Activity Sample'
        verbose_name_plural = 'Activity Samples'

    def __str__(self):
        return f"{self.driver_id} {self.activity_type} {self.timestamp_start:%Y-%m-%d %H:%M}"

    @property
    def duration_minutes(self):
        return (self.timestamp_end - self.timestamp_start).total_seconds() / 60


class TimeEntry(models.Model):
    """
    A clock in / clock out entry for one driver and day.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    organization_id = models.CharField(max_length=100, db_index=True)
    driver_id = models.CharField(max_length=100, db_index=True)
    entry_date = models.DateField()

    clock_in = models.DateTimeField(null=True, blank=True)
    clock_out = models.DateTimeField(null=True, blank=True)
    break_minutes = models.PositiveIntegerField(default=0)
    total_hours = models.FloatField(default=0, validators=[MinValueValidator(0)])

    class Meta:
        db_table = 'time_entries'
        ordering = ['driver_id', 'entry_date']
        unique_together = ['driver_id', 'entry_date']
        verbose_name = 'Time Entry'
        verbose_name_plural = 'Time Entries'

    def __str__(self):
        return f"{self.driver_id} {self.entry_date}: {self.total_hours}h"


class DailyRest(models.Model):
    """
    Rest taken by a driver on one calendar day.
    """
    REST_TYPE_CHOICES = [
        ('daily_rest', 'Daily Rest'),
        ('reduced_rest', 'Reduced Daily Rest'),
        ('weekly_rest', 'Weekly Rest'),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    organization_id = models.CharField(max_length=100, db_index=True)
    driver_id = models.CharField(max_length=100, db_index=True)
    rest_date = models.DateField()
    duration_hours = models.FloatField(default=0, validators=[MinValueValidator(0)])
    rest_type = models.CharField(max_length=20, choices=REST_TYPE_CHOICES, default='daily_rest')
    notes = models.TextField(blank=True, default='')

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'daily_rest'
        ordering = ['driver_id', 'rest_date']
        unique_together = ['driver_id', 'rest_date']
        verbose_name = 'Daily Rest'
        verbose_name_plural = 'Daily Rest'

    def __str__(self):
        return f"{self.driver_id} {self.rest_date}: {self.duration_hours}h {self.rest_type}"


class WeeklyRest(models.Model):
    """
    Weekly rest record for one driver and ISO week (Monday start).
    """
    REST_TYPE_CHOICES = [
        ('full_weekly_rest', 'Full Weekly Rest (45h)'),
        ('reduced_weekly_rest', 'Reduced Weekly Rest (24h)'),
        ('compensated_rest', 'Compensated Rest'),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    organization_id = models.CharField(max_length=100, db_index=True)
    driver_id = models.CharField(max_length=100, db_index=True)
    week_start_date = models.DateField()
    week_end_date = models.DateField()

    total_rest_hours = models.FloatField(validators=[MinValueValidator(0)])
    rest_type = models.CharField(max_length=25, choices=REST_TYPE_CHOICES)
    compensation_required = models.BooleanField(default=False)
    compensation_date = models.DateField(null=True, blank=True)
    notes = models.TextField(blank=True, default='')

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'weekly_rest'
        ordering = ['-week_start_date']
        unique_together = ['driver_id', 'week_start_date']
        verbose_name = 'Weekly Rest'
        verbose_name_plural = 'Weekly Rest'

    def __str__(self):
        return f"{self.driver_id} week of {self.week_start_date}: {self.total_rest_hours}h"


class Infringement(models.Model):
    """
    A persisted WTD violation awaiting human review.

    Created once per (source assessment, violation kind). The engine never
    edits or deletes an infringement; only the review status moves.
    """
    STATUS_CHOICES = [
        ('open', 'Open'),
        ('reviewed', 'Reviewed'),
        ('resolved', 'Resolved'),
    ]
    SEVERITY_CHOICES = [
        ('medium', 'Medium'),
        ('high', 'High'),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    infringement_number = models.CharField(max_length=50, unique=True)

    source_assessment_id = models.CharField(max_length=100, db_index=True)
    violation_kind = models.CharField(max_length=50)

    organization_id = models.CharField(max_length=100, db_index=True)
    driver_id = models.CharField(max_length=100, db_index=True)
    vehicle_id = models.CharField(max_length=100, blank=True, default='')

    description = models.TextField()
    severity = models.CharField(max_length=10, choices=SEVERITY_CHOICES)
    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default='open')
    incident_date = models.DateField()

    # Review
    reviewed_by = models.CharField(max_length=100, blank=True, default='')
    reviewed_at = models.DateTimeField(null=True, blank=True)
    resolved_at = models.DateTimeField(null=True, blank=True)
    review_notes = models.TextField(blank=True, default='')

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'infringements'
        ordering = ['-created_at']
        unique_together = ['source_assessment_id', 'violation_kind']
        verbose_name = 'Infringement'
        verbose_name_plural = 'Infringements'

    def __str__(self):
        return f"{self.infringement_number}: {self.violation_kind} ({self.status})"


class ComplianceAlert(models.Model):
    """
    Summary alert raised when an assessment contains violations.
    """
    SEVERITY_CHOICES = [
        ('medium', 'Medium'),
        ('high', 'High'),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    organization_id = models.CharField(max_length=100, db_index=True)
    entity_type = models.CharField(max_length=50)
    entity_id = models.CharField(max_length=100)
    alert_type = models.CharField(max_length=50)
    title = models.CharField(max_length=255)
    description = models.TextField()
    severity = models.CharField(max_length=10, choices=SEVERITY_CHOICES)

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'compliance_alerts'
        ordering = ['-created_at']
        unique_together = ['entity_id', 'alert_type']
        verbose_name = 'Compliance Alert'
        verbose_name_plural = 'Compliance Alerts'

    def __str__(self):
        return f"{self.title} ({self.entity_type} {self.entity_id})"
