"""
Admin configuration for tachograph compliance models.
"""

from django.contrib import admin
from .models import (
    TachographRecord,
    ActivitySample,
    TimeEntry,
    DailyRest,
    WeeklyRest,
    Infringement,
    ComplianceAlert,
)


@admin.register(TachographRecord)
class TachographRecordAdmin(admin.ModelAdmin):
    list_display = ['id', 'file_type', 'file_name', 'vehicle_id', 'driver_id', 'verification_status', 'download_date']
    list_filter = ['file_type', 'verification_status', 'data_integrity']
    search_fields = ['file_name', 'vehicle_id', 'driver_id']
    readonly_fields = ['id', 'created_at', 'analysis_results']


@admin.register(ActivitySample)
class ActivitySampleAdmin(admin.ModelAdmin):
    list_display = ['driver_id', 'activity_type', 'timestamp_start', 'timestamp_end', 'source']
    list_filter = ['activity_type', 'source']
    search_fields = ['driver_id', 'vehicle_id']


@admin.register(TimeEntry)
class TimeEntryAdmin(admin.ModelAdmin):
    list_display = ['driver_id', 'entry_date', 'clock_in', 'clock_out', 'total_hours']
    list_filter = ['entry_date']


@admin.register(DailyRest)
class DailyRestAdmin(admin.ModelAdmin):
    list_display = ['driver_id', 'rest_date', 'duration_hours', 'rest_type']
    list_filter = ['rest_type', 'rest_date']


@admin.register(WeeklyRest)
class WeeklyRestAdmin(admin.ModelAdmin):
    list_display = ['driver_id', 'week_start_date', 'total_rest_hours', 'rest_type', 'compensation_required']
    list_filter = ['rest_type', 'compensation_required']


@admin.register(Infringement)
class InfringementAdmin(admin.ModelAdmin):
    list_display = ['infringement_number', 'violation_kind', 'driver_id', 'severity', 'status', 'incident_date']
    list_filter = ['status', 'severity', 'violation_kind']
    search_fields = ['infringement_number', 'driver_id', 'source_assessment_id']
    readonly_fields = ['id', 'infringement_number', 'source_assessment_id', 'violation_kind', 'created_at']


@admin.register(ComplianceAlert)
class ComplianceAlertAdmin(admin.ModelAdmin):
    list_display = ['title', 'entity_type', 'entity_id', 'severity', 'created_at']
    list_filter = ['severity', 'alert_type']
