"""
Serializers for the Tachograph Compliance API.

Handles validation of uploads, activity samples and review requests, and
serialization of stored records.
"""

import base64
import binascii

from rest_framework import serializers
from .models import (
    TachographRecord,
    WeeklyRest,
    DailyRest,
    Infringement,
    ComplianceAlert,
)


class TachographUploadSerializer(serializers.Serializer):
    """
    Input serializer for tachograph uploads.

    ``file_type`` is validated by the ingest service so that unknown types
    come back as ``InvalidFormat`` rather than a generic validation error.
    """
    organization_id = serializers.CharField(max_length=100)
    caller_role = serializers.CharField(max_length=50)
    vehicle_id = serializers.CharField(max_length=100)
    driver_id = serializers.CharField(max_length=100, required=False, allow_blank=True, allow_null=True)
    file_type = serializers.CharField(max_length=10)
    file_name = serializers.CharField(max_length=255)
    file_data = serializers.CharField(help_text="Base64 encoded file contents")
    download_date = serializers.DateTimeField()
    period_start = serializers.DateTimeField(required=False, allow_null=True)
    period_end = serializers.DateTimeField(required=False, allow_null=True)
    device_metadata = serializers.DictField(required=False, default=dict)

    def validate_file_data(self, value):
        try:
            return base64.b64decode(value, validate=True)
        except (binascii.Error, ValueError):
            raise serializers.ValidationError('file_data must be valid base64.')

    def validate(self, data):
        """Validate the download period."""
        start = data.get('period_start')
        end = data.get('period_end')
        if start and end and end < start:
            raise serializers.ValidationError({
                'period_end': 'Period end cannot be before period start.'
            })
        return data


class ActivitySampleInputSerializer(serializers.Serializer):
    """
    One activity sample posted for evaluation.
    """
    driver_id = serializers.CharField(max_length=100)
    vehicle_id = serializers.CharField(max_length=100, required=False, default='')
    timestamp_start = serializers.DateTimeField()
    timestamp_end = serializers.DateTimeField()
    activity_type = serializers.ChoiceField(choices=['driving', 'break', 'rest', 'other_work', 'availability'])
    source = serializers.ChoiceField(choices=['tachograph', 'manual_clock'], default='manual_clock')


class EvaluateInputSerializer(serializers.Serializer):
    """
    Input serializer for evaluating samples without storing them.
    """
    samples = ActivitySampleInputSerializer(many=True)
    file_type = serializers.CharField(max_length=10, required=False, default='ddd')
    max_speed = serializers.FloatField(required=False, default=0, min_value=0)
    card_coverage_complete = serializers.BooleanField(required=False, default=True)
    tamper_signals = serializers.ListField(child=serializers.CharField(), required=False, default=list)
    low_confidence = serializers.BooleanField(required=False, default=False)
    source_id = serializers.CharField(max_length=100, required=False, allow_null=True, default=None)


class WeeklyRestAutoRecordSerializer(serializers.Serializer):
    driver_id = serializers.CharField(max_length=100)
    organization_id = serializers.CharField(max_length=100)
    week_start = serializers.DateField()


class CompensationSerializer(serializers.Serializer):
    compensation_date = serializers.DateField()
    notes = serializers.CharField(required=False, allow_blank=True, default='')


class DailyRestRangeSerializer(serializers.Serializer):
    """
    Driver and inclusive date range for daily rest operations.
    """
    driver_id = serializers.CharField(max_length=100)
    organization_id = serializers.CharField(max_length=100)
    start_date = serializers.DateField()
    end_date = serializers.DateField()
    recompute = serializers.BooleanField(required=False, default=False)

    def validate(self, data):
        if data['end_date'] < data['start_date']:
            raise serializers.ValidationError({
                'end_date': 'End date cannot be before start date.'
            })
        if (data['end_date'] - data['start_date']).days > 62:
            raise serializers.ValidationError({
                'end_date': 'Date range cannot exceed 62 days.'
            })
        return data


class InfringementStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=['reviewed', 'resolved'])
    reviewer_id = serializers.CharField(max_length=100)
    reviewer_role = serializers.CharField(max_length=50)
    notes = serializers.CharField(required=False, allow_blank=True, default='')


# =============================================================================
# Model Serializers
# =============================================================================

class TachographRecordModelSerializer(serializers.ModelSerializer):
    """
    Model serializer for tachograph records.
    """
    samples_count = serializers.SerializerMethodField()

    class Meta:
        model = TachographRecord
        fields = [
            'id', 'organization_id', 'vehicle_id', 'driver_id',
            'file_type', 'file_name', 'file', 'file_size_bytes',
            'record_date', 'download_date', 'period_start', 'period_end',
            'next_download_due', 'device_type', 'generation_type',
            'download_method', 'bluetooth_download', 'remote_download',
            'smart_features', 'verification_status', 'issues_found',
            'data_integrity', 'analysis_results', 'samples_count', 'created_at'
        ]
        read_only_fields = fields

    def get_samples_count(self, obj):
        return obj.samples.count()


class WeeklyRestModelSerializer(serializers.ModelSerializer):
    class Meta:
        model = WeeklyRest
        fields = [
            'id', 'organization_id', 'driver_id', 'week_start_date', 'week_end_date',
            'total_rest_hours', 'rest_type', 'compensation_required',
            'compensation_date', 'notes', 'created_at', 'updated_at'
        ]
        read_only_fields = fields


class DailyRestModelSerializer(serializers.ModelSerializer):
    class Meta:
        model = DailyRest
        fields = [
            'id', 'organization_id', 'driver_id', 'rest_date',
            'duration_hours', 'rest_type', 'notes'
        ]
        read_only_fields = fields


class InfringementModelSerializer(serializers.ModelSerializer):
    class Meta:
        model = Infringement
        fields = [
            'id', 'infringement_number', 'source_assessment_id', 'violation_kind',
            'organization_id', 'driver_id', 'vehicle_id', 'description',
            'severity', 'status', 'incident_date', 'reviewed_by',
            'reviewed_at', 'resolved_at', 'review_notes', 'created_at'
        ]
        read_only_fields = fields


class ComplianceAlertModelSerializer(serializers.ModelSerializer):
    class Meta:
        model = ComplianceAlert
        fields = [
            'id', 'organization_id', 'entity_type', 'entity_id', 'alert_type',
            'title', 'description', 'severity', 'created_at'
        ]
        read_only_fields = fields


class HealthCheckSerializer(serializers.Serializer):
    """
    Serializer for health check response.
    """
    status = serializers.CharField()
    message = serializers.CharField()
    version = serializers.CharField()
    timestamp = serializers.DateTimeField()
