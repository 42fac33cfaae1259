"""
Tachograph File Ingestor.

Accepts one uploaded tachograph download and runs it through the pipeline:

1. Role check (admin, driver, compliance_officer)
2. File type validation (``InvalidFormat``, nothing stored)
3. Integrity heuristic (``CorruptedFile``, nothing stored)
4. Decode and normalize samples (``CorruptedFile`` on bad activity data)
5. Evaluate against WTD rules
6. Store the raw artifact, retrying a transient failure once
7. Persist the record and its samples in one transaction; on failure the
   stored artifact is removed and ``StorageFailure`` raised
8. Best-effort: materialize infringements and refresh daily rest
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from django.conf import settings
from django.core.files.base import ContentFile
from django.core.files.storage import default_storage
from django.db import DatabaseError, transaction
from django.utils import timezone

from ..models import ActivitySample as ActivitySampleModel
from ..models import TachographRecord
from .compliance_service import ComplianceEvaluator, EvaluationContext
from .daily_rest_service import DailyRestService
from .decoders import DecodedDownload, FileFormat, get_decoder
from .exceptions import (
    AnalysisDegraded,
    CorruptedFile,
    InvalidActivityData,
    PermissionDenied,
    StorageFailure,
)
from .activity import ActivitySample, clip_to_free_time, normalize_samples
from .infringement_service import InfringementMaterializer
from .wtd_config import WTDConfig

logger = logging.getLogger(__name__)


UPLOAD_ROLES = ('admin', 'driver', 'compliance_officer')

DEFAULT_TACHOGRAPH_CONFIG = {
    'STORAGE_PREFIX': 'tachograph-files',
    'DOWNLOAD_INTERVAL_DAYS': 28,
}


def tachograph_settings() -> Dict:
    values = dict(DEFAULT_TACHOGRAPH_CONFIG)
    values.update(getattr(settings, 'TACHOGRAPH_CONFIG', {}) or {})
    return values


@dataclass
class TachographUpload:
    """One tachograph download as received from the caller."""
    vehicle_id: str
    file_type: str
    file_name: str
    file_bytes: bytes
    download_date: datetime
    driver_id: Optional[str] = None
    period_start: Optional[datetime] = None
    period_end: Optional[datetime] = None
    device_metadata: Dict = field(default_factory=dict)


@dataclass
class IngestResult:
    record_id: str
    file_path: str
    analysis_results: Dict
    violations_detected: bool
    infringements_created: int
    message: str

    def to_dict(self) -> Dict:
        return {
            'success': True,
            'record_id': self.record_id,
            'file_path': self.file_path,
            'analysis_results': self.analysis_results,
            'violations_detected': self.violations_detected,
            'infringements_created': self.infringements_created,
            'message': self.message,
        }


class TachographIngestService:
    """
    Ingests tachograph downloads.

    Usage:
        service = TachographIngestService()
        result = service.ingest(upload, organization_id='org-1', caller_role='admin')
    """

    def __init__(
        self,
        config: Optional[WTDConfig] = None,
        storage=None,
        materializer: Optional[InfringementMaterializer] = None,
        daily_rest: Optional[DailyRestService] = None
    ):
        self.config = config or WTDConfig.from_settings()
        self.storage = storage or default_storage
        self.evaluator = ComplianceEvaluator(self.config)
        self.materializer = materializer or InfringementMaterializer(self.config)
        self.daily_rest = daily_rest or DailyRestService(self.config)
        self.settings = tachograph_settings()

    def ingest(self, upload: TachographUpload, organization_id: str, caller_role: str) -> IngestResult:
        """
        Validate, analyse, store and persist one upload.

        Raises:
            PermissionDenied: caller role may not upload
            InvalidFormat: unsupported file type
            CorruptedFile: payload fails integrity or activity checks
            StorageFailure: artifact or record could not be written
        """
        if caller_role not in UPLOAD_ROLES:
            raise PermissionDenied(
                "Insufficient permissions to upload tachograph files",
                details={'role': caller_role, 'allowed': list(UPLOAD_ROLES)},
            )

        file_format = FileFormat.parse(upload.file_type)
        decoder = get_decoder(file_format)
        decoder.check_integrity(upload.file_bytes)

        try:
            decoded = decoder.decode(upload.file_bytes, upload.driver_id, upload.vehicle_id)
        except AnalysisDegraded as e:
            logger.warning(f"{e.message} for {upload.file_name}; analysis marked low confidence")
            decoded = DecodedDownload(low_confidence=True, recorder_metadata=dict(e.details))
        try:
            samples = normalize_samples(decoded.samples)
        except InvalidActivityData as e:
            raise CorruptedFile(e.message, details=e.details)

        source_id = str(uuid.uuid4())
        context = EvaluationContext(
            source_id=source_id,
            capabilities=decoder.capabilities,
            max_speed=decoded.max_speed,
            card_coverage_complete=decoded.card_coverage_complete,
            tamper_signals=tuple(decoded.tamper_signals),
            low_confidence=decoded.low_confidence,
        )
        assessment = self.evaluator.evaluate(samples, context)

        analysis_results = assessment.to_dict()
        analysis_results['file_type'] = file_format.value
        analysis_results['file_size'] = len(upload.file_bytes)
        analysis_results['generation'] = decoder.capabilities.generation.value
        analysis_results['recorder'] = decoded.recorder_metadata
        if decoder.capabilities.is_smart:
            analysis_results['smart_tachograph_features'] = decoder.capabilities.to_dict()

        file_path = self._store_artifact(upload, organization_id, file_format)

        try:
            record = self._persist(
                source_id, upload, organization_id, file_format, decoder,
                file_path, assessment, analysis_results, samples
            )
        except DatabaseError as e:
            logger.error(f"Failed to persist tachograph record for {upload.file_name}: {e}")
            self._remove_artifact(file_path)
            raise StorageFailure(
                "Failed to save tachograph record",
                details={'file_name': upload.file_name, 'reason': str(e)},
            )

        infringements_created = self._materialize(assessment, upload, organization_id, record)
        self._refresh_daily_rest(samples, upload, organization_id)

        if assessment.violations:
            message = (
                f"File uploaded and analyzed. {assessment.violations_detected} violations detected, "
                f"{infringements_created} infringements created."
            )
        else:
            message = "File uploaded and analyzed successfully. No violations detected."

        logger.info(
            f"Ingested {file_format.value} file {upload.file_name} for vehicle {upload.vehicle_id}: "
            f"record {record.id}, {assessment.violations_detected} violations"
        )
        return IngestResult(
            record_id=str(record.id),
            file_path=file_path,
            analysis_results=analysis_results,
            violations_detected=bool(assessment.violations),
            infringements_created=infringements_created,
            message=message,
        )

    # =========================================================================
    # Storage
    # =========================================================================

    def build_file_path(self, upload: TachographUpload, organization_id: str) -> str:
        """``<prefix>/<organization>/<vehicle>/<timestamp>-<file name>``"""
        stamp = int(upload.download_date.timestamp() * 1000)
        file_name = upload.file_name.replace('/', '_').replace('\\', '_')
        return f"{self.settings['STORAGE_PREFIX']}/{organization_id}/{upload.vehicle_id}/{stamp}-{file_name}"

    def _store_artifact(self, upload: TachographUpload, organization_id: str, file_format: FileFormat) -> str:
        path = self.build_file_path(upload, organization_id)
        last_error = None
        for attempt in (1, 2):
            try:
                # Storage picks a free name if the path is taken, so nothing is overwritten
                return self.storage.save(path, ContentFile(upload.file_bytes))
            except OSError as e:
                last_error = e
                logger.warning(f"Storage attempt {attempt} failed for {path}: {e}")
        raise StorageFailure(
            "Failed to upload file",
            details={'path': path, 'file_type': file_format.value, 'reason': str(last_error)},
        )

    def _remove_artifact(self, file_path: str) -> None:
        try:
            self.storage.delete(file_path)
        except OSError as e:
            logger.error(f"Failed to remove orphaned artifact {file_path}: {e}")

    # =========================================================================
    # Persistence
    # =========================================================================

    def _persist(self, source_id, upload, organization_id, file_format, decoder,
                 file_path, assessment, analysis_results, samples) -> TachographRecord:
        metadata = upload.device_metadata or {}
        capabilities = decoder.capabilities
        interval = timedelta(days=self.settings['DOWNLOAD_INTERVAL_DAYS'])
        download_date = self._aware(upload.download_date)
        smart_features = capabilities.to_dict() if capabilities.is_smart else {}

        with transaction.atomic():
            record = TachographRecord.objects.create(
                id=source_id,
                organization_id=organization_id,
                vehicle_id=upload.vehicle_id,
                driver_id=upload.driver_id or '',
                file_type=file_format.value,
                file_name=upload.file_name,
                file=file_path,
                file_size_bytes=len(upload.file_bytes),
                record_date=timezone.localtime(download_date).date(),
                download_date=download_date,
                period_start=self._aware(upload.period_start),
                period_end=self._aware(upload.period_end),
                next_download_due=(download_date + interval).date(),
                device_type=metadata.get('device_type', ''),
                generation_type=metadata.get('generation_type') or capabilities.generation.value,
                download_method=metadata.get('download_method', ''),
                bluetooth_download=bool(metadata.get('bluetooth_download', False)),
                remote_download=bool(metadata.get('remote_download', capabilities.remote_download)),
                smart_features=smart_features,
                verification_status='failed' if assessment.violations else 'verified',
                issues_found=assessment.violations_detected,
                data_integrity=assessment.data_integrity,
                analysis_results=analysis_results,
            )
            new_samples = self._unstored_samples(samples)
            ActivitySampleModel.objects.bulk_create([
                ActivitySampleModel(
                    record=record,
                    organization_id=organization_id,
                    driver_id=sample.driver_id,
                    vehicle_id=sample.vehicle_id,
                    timestamp_start=sample.timestamp_start,
                    timestamp_end=sample.timestamp_end,
                    activity_type=sample.activity_type.value,
                    source=sample.source.value,
                )
                for sample in new_samples
            ])
        if len(new_samples) != len(samples):
            logger.info(
                f"Record {record.id}: stored {len(new_samples)} of {len(samples)} samples, "
                f"the rest overlapped stored activity"
            )
        return record

    @staticmethod
    def _unstored_samples(samples) -> List[ActivitySample]:
        """
        Samples clipped to time not yet covered by stored activity of the same driver.

        Re-uploads and overlapping downloads would otherwise store the same
        activity twice. Must run inside the persisting transaction.
        """
        result = [s for s in samples if not s.driver_id]
        by_driver: Dict[str, List[ActivitySample]] = {}
        for sample in samples:
            if sample.driver_id:
                by_driver.setdefault(sample.driver_id, []).append(sample)

        for driver_id, driver_samples in by_driver.items():
            window_start = min(s.timestamp_start for s in driver_samples)
            window_end = max(s.timestamp_end for s in driver_samples)
            occupied = ActivitySampleModel.objects.select_for_update().filter(
                driver_id=driver_id,
                timestamp_start__lt=window_end,
                timestamp_end__gt=window_start,
            ).values_list('timestamp_start', 'timestamp_end')
            result.extend(clip_to_free_time(driver_samples, list(occupied)))

        return result

    def _materialize(self, assessment, upload, organization_id, record) -> int:
        try:
            return self.materializer.materialize(
                assessment,
                driver_id=upload.driver_id,
                vehicle_id=upload.vehicle_id,
                organization_id=organization_id,
                incident_date=record.record_date,
            )
        except DatabaseError as e:
            logger.error(f"Failed to create infringements for record {record.id}: {e}")
            return 0

    def _refresh_daily_rest(self, samples, upload, organization_id) -> None:
        drivers = {s.driver_id for s in samples if s.driver_id}
        for driver_id in drivers:
            driver_samples = [s for s in samples if s.driver_id == driver_id]
            start_date = min(timezone.localtime(s.timestamp_start).date() for s in driver_samples)
            end_date = max(timezone.localtime(s.timestamp_end).date() for s in driver_samples)
            try:
                self.daily_rest.rebuild_from_samples(driver_id, start_date, end_date, organization_id)
            except DatabaseError as e:
                logger.warning(f"Daily rest refresh failed for driver {driver_id}: {e}")

    @staticmethod
    def _aware(value: Optional[datetime]) -> Optional[datetime]:
        if value is not None and timezone.is_naive(value):
            return timezone.make_aware(value)
        return value
