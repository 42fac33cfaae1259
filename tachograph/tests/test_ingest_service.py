"""
Tests for the Tachograph File Ingestor.

Files are written to a temporary FileSystemStorage per test.
"""

import json
import os
import shutil
import tempfile
import pytest
from datetime import date, datetime, timezone
from unittest import mock
from django.core.files.storage import FileSystemStorage
from django.db import OperationalError
from django.test import TestCase
from tachograph.models import ActivitySample, ComplianceAlert, DailyRest, Infringement, TachographRecord
from tachograph.services.activity import normalize_samples
from tachograph.services.compliance_service import ComplianceEvaluator, EvaluationContext
from tachograph.services.decoders import V2BDecoder
from tachograph.services.exceptions import (
    CorruptedFile,
    InvalidFormat,
    PermissionDenied,
    StorageFailure,
)
from tachograph.services.infringement_service import InfringementMaterializer
from tachograph.services.ingest_service import TachographIngestService, TachographUpload


DOWNLOAD_DATE = datetime(2024, 1, 16, 8, 0, tzinfo=timezone.utc)


def export_bytes(activities, **extra):
    envelope = {
        'activities': activities,
        'recorder': {'serial': 'GB-TACHO-0000000001', 'model': 'test-recorder'},
    }
    envelope.update(extra)
    return json.dumps(envelope).encode('utf-8')


LONG_DRIVE = [
    {'type': 'driving', 'start': '2024-01-15T06:00:00Z', 'end': '2024-01-15T16:00:00Z'},
]

COMPLIANT_DAY = [
    {'type': 'rest', 'start': '2024-01-15T00:00:00Z', 'end': '2024-01-15T06:00:00Z'},
    {'type': 'driving', 'start': '2024-01-15T06:00:00Z', 'end': '2024-01-15T10:00:00Z'},
    {'type': 'break', 'start': '2024-01-15T10:00:00Z', 'end': '2024-01-15T10:45:00Z'},
    {'type': 'driving', 'start': '2024-01-15T10:45:00Z', 'end': '2024-01-15T14:00:00Z'},
]


class IngestTestCase(TestCase):
    """Base test case with a temporary file storage."""

    def setUp(self):
        """Set up test fixtures."""
        self.media_root = tempfile.mkdtemp()
        self.storage = FileSystemStorage(location=self.media_root)
        self.service = TachographIngestService(storage=self.storage)

    def tearDown(self):
        """Remove the temporary storage."""
        shutil.rmtree(self.media_root, ignore_errors=True)

    def make_upload(self, file_type='v2b', payload=None, driver_id='drv-1', file_name=None):
        """Build an upload of the compliant day unless a payload is given."""
        return TachographUpload(
            vehicle_id='veh-1',
            driver_id=driver_id,
            file_type=file_type,
            file_name=file_name or f'download.{file_type}',
            file_bytes=export_bytes(COMPLIANT_DAY) if payload is None else payload,
            download_date=DOWNLOAD_DATE,
        )

    def stored_files(self):
        """Paths of all files in the temporary storage."""
        found = []
        for root, _, files in os.walk(self.media_root):
            found.extend(os.path.join(root, f) for f in files)
        return found


class TestIngestValidation(IngestTestCase):
    """Test rejection of invalid uploads."""

    def test_short_ddd_is_corrupted_and_not_stored(self):
        """Test that a short DDD file is rejected before anything is stored."""
        upload = self.make_upload(file_type='ddd', payload=b'\x00' * 50)

        with pytest.raises(CorruptedFile) as excinfo:
            self.service.ingest(upload, 'org-1', 'admin')

        assert excinfo.value.to_dict()['data_integrity'] == 'corrupted'
        assert TachographRecord.objects.count() == 0
        assert Infringement.objects.count() == 0
        assert self.stored_files() == []

    def test_unknown_file_type_rejected_before_storage(self):
        """Test that an unknown file type is rejected before storage."""
        upload = self.make_upload(file_type='pdf')

        with pytest.raises(InvalidFormat):
            self.service.ingest(upload, 'org-1', 'admin')

        assert self.stored_files() == []

    def test_role_without_upload_permission(self):
        """Test that a viewer cannot upload."""
        with pytest.raises(PermissionDenied):
            self.service.ingest(self.make_upload(), 'org-1', 'viewer')

        assert TachographRecord.objects.count() == 0

    def test_overlapping_activity_is_corrupted(self):
        """Test that overlapping activity in one file is corrupted."""
        payload = export_bytes([
            {'type': 'driving', 'start': '2024-01-15T06:00:00Z', 'end': '2024-01-15T10:00:00Z'},
            {'type': 'break', 'start': '2024-01-15T09:00:00Z', 'end': '2024-01-15T09:45:00Z'},
        ])

        with pytest.raises(CorruptedFile):
            self.service.ingest(self.make_upload(payload=payload), 'org-1', 'driver')

        assert self.stored_files() == []


class TestIngestAnalysis(IngestTestCase):
    """Test compliance analysis of uploads."""

    def test_compliant_upload(self):
        """Test a compliant upload is stored as verified."""
        result = self.service.ingest(self.make_upload(), 'org-1', 'driver')

        assert result.violations_detected is False
        assert result.infringements_created == 0
        record = TachographRecord.objects.get(id=result.record_id)
        assert record.verification_status == 'verified'
        assert record.data_integrity == 'intact'
        assert record.samples.count() == 4
        assert record.next_download_due == date(2024, 2, 13)
        assert record.generation_type == 'generation_2'
        assert record.smart_features['card_insertion_tracking'] is True

    def test_v2b_long_drive_creates_two_infringements_once(self):
        """Test that a long drive creates two infringements exactly once."""
        payload = export_bytes(LONG_DRIVE)
        result = self.service.ingest(self.make_upload(payload=payload), 'org-1', 'compliance_officer')

        assert result.violations_detected is True
        assert result.infringements_created == 2
        assert result.analysis_results['driving_time_violation'] is True
        assert result.analysis_results['rest_period_violation'] is True
        assert result.analysis_results['severity'] == 'medium'
        assert Infringement.objects.filter(source_assessment_id=result.record_id).count() == 2

        # Retrying with the same assessment creates nothing new
        record = TachographRecord.objects.get(id=result.record_id)
        samples = normalize_samples(V2BDecoder().decode(payload, 'drv-1', 'veh-1').samples)
        assessment = ComplianceEvaluator().evaluate(
            samples, EvaluationContext(source_id=result.record_id, capabilities=V2BDecoder.capabilities)
        )
        again = InfringementMaterializer().materialize(assessment, 'drv-1', 'veh-1', 'org-1', record.record_date)

        assert again == 0
        assert Infringement.objects.count() == 2
        assert ComplianceAlert.objects.count() == 1
        assert record.verification_status == 'failed'
        assert record.issues_found == 2

    def test_binary_payload_is_stored_as_suspicious(self):
        """Test that a binary payload is stored with suspicious integrity."""
        upload = self.make_upload(file_type='ddd', payload=bytes(range(256)))

        result = self.service.ingest(upload, 'org-1', 'admin')

        record = TachographRecord.objects.get(id=result.record_id)
        assert record.data_integrity == 'suspicious'
        assert record.generation_type == 'generation_1'
        assert record.samples.count() == 0
        assert [w['kind'] for w in result.analysis_results['warnings']] == ['analysis_degraded']
        assert result.violations_detected is False

    def test_daily_rest_refreshed_from_samples(self):
        """Test that daily rest is rebuilt from the uploaded samples."""
        self.service.ingest(self.make_upload(), 'org-1', 'driver')

        rest = DailyRest.objects.get(driver_id='drv-1', rest_date=date(2024, 1, 15))
        assert rest.duration_hours == 6.75

    def test_same_upload_twice_stores_activity_once(self):
        """Test that re-uploading a download does not duplicate its activity."""
        self.service.ingest(self.make_upload(), 'org-1', 'driver')
        second = self.service.ingest(self.make_upload(), 'org-1', 'driver')

        assert TachographRecord.objects.count() == 2
        assert ActivitySample.objects.count() == 4
        assert TachographRecord.objects.get(id=second.record_id).samples.count() == 0
        rest = DailyRest.objects.get(driver_id='drv-1', rest_date=date(2024, 1, 15))
        assert rest.duration_hours == 6.75

    def test_overlapping_download_stores_only_new_time(self):
        """Test that an overlapping download keeps only activity not stored yet."""
        self.service.ingest(self.make_upload(), 'org-1', 'driver')
        payload = export_bytes([
            {'type': 'driving', 'start': '2024-01-15T12:00:00Z', 'end': '2024-01-15T15:00:00Z'},
        ])

        second = self.service.ingest(self.make_upload(payload=payload), 'org-1', 'driver')

        stored = TachographRecord.objects.get(id=second.record_id).samples.get()
        assert stored.timestamp_start == datetime(2024, 1, 15, 14, 0, tzinfo=timezone.utc)
        assert stored.timestamp_end == datetime(2024, 1, 15, 15, 0, tzinfo=timezone.utc)
        assert ActivitySample.objects.count() == 5

    def test_other_drivers_activity_is_not_clipped(self):
        """Test that stored activity of another driver does not clip an upload."""
        self.service.ingest(self.make_upload(), 'org-1', 'driver')

        second = self.service.ingest(self.make_upload(driver_id='drv-2'), 'org-1', 'driver')

        assert TachographRecord.objects.get(id=second.record_id).samples.count() == 4
        assert ActivitySample.objects.filter(driver_id='drv-2').count() == 4

    def test_upload_without_driver_creates_no_infringements(self):
        """Test that an upload without a driver only raises an alert."""
        upload = self.make_upload(payload=export_bytes(LONG_DRIVE), driver_id=None)

        result = self.service.ingest(upload, 'org-1', 'admin')

        assert result.violations_detected is True
        assert result.infringements_created == 0
        assert ComplianceAlert.objects.filter(entity_id=result.record_id).count() == 1


class TestIngestStorage(IngestTestCase):
    """Test file storage and persistence failures."""

    def test_file_path_is_scoped_to_organization_and_vehicle(self):
        """Test the stored file path layout."""
        result = self.service.ingest(self.make_upload(), 'org-1', 'admin')

        assert result.file_path.startswith('tachograph-files/org-1/veh-1/')
        assert result.file_path.endswith('-download.v2b')
        assert self.storage.exists(result.file_path)

    def test_same_upload_twice_never_overwrites(self):
        """Test that a repeated upload is stored as a new file."""
        first = self.service.ingest(self.make_upload(), 'org-1', 'admin')
        second = self.service.ingest(self.make_upload(), 'org-1', 'admin')

        assert first.file_path != second.file_path
        assert len(self.stored_files()) == 2
        assert TachographRecord.objects.count() == 2

    def test_transient_storage_error_is_retried_once(self):
        """Test that a transient storage error is retried once."""
        storage = mock.Mock()
        storage.save.side_effect = [OSError('timeout'), 'tachograph-files/org-1/veh-1/stored.v2b']
        service = TachographIngestService(storage=storage)

        result = service.ingest(self.make_upload(), 'org-1', 'admin')

        assert storage.save.call_count == 2
        assert result.file_path == 'tachograph-files/org-1/veh-1/stored.v2b'

    def test_persistent_storage_error_aborts_upload(self):
        """Test that a persistent storage error aborts the upload."""
        storage = mock.Mock()
        storage.save.side_effect = OSError('disk full')
        service = TachographIngestService(storage=storage)

        with pytest.raises(StorageFailure):
            service.ingest(self.make_upload(), 'org-1', 'admin')

        assert storage.save.call_count == 2
        assert TachographRecord.objects.count() == 0

    def test_record_failure_removes_stored_file(self):
        """Test that a failed record insert removes the stored file."""
        with mock.patch.object(
            TachographRecord.objects, 'create', side_effect=OperationalError('disk I/O error')
        ):
            with pytest.raises(StorageFailure):
                self.service.ingest(self.make_upload(), 'org-1', 'admin')

        assert self.stored_files() == []
        assert ActivitySample.objects.count() == 0

    def test_alerting_failure_does_not_fail_upload(self):
        """Test that an infringement failure does not fail the upload."""
        payload = export_bytes(LONG_DRIVE)
        with mock.patch.object(
            InfringementMaterializer, 'materialize', side_effect=OperationalError('connection lost')
        ):
            result = self.service.ingest(self.make_upload(payload=payload), 'org-1', 'admin')

        assert result.violations_detected is True
        assert result.infringements_created == 0
        assert TachographRecord.objects.filter(id=result.record_id).exists()
