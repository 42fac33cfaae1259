"""
Tachograph Compliance API Views.

REST API for the driver hours and tachograph compliance engine:
- Health check
- Tachograph upload, records and ad-hoc evaluation
- Weekly rest analysis, recording and compensation
- Daily rest roll-up
- Infringement review and statistics
- Compliance alerts
- WTD configuration
"""

import logging
from datetime import datetime
from django.shortcuts import get_object_or_404
from django.utils.dateparse import parse_date
from rest_framework import status
from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework.decorators import api_view

from .models import TachographRecord, WeeklyRest, DailyRest, Infringement, ComplianceAlert
from .serializers import (
    TachographUploadSerializer,
    EvaluateInputSerializer,
    WeeklyRestAutoRecordSerializer,
    CompensationSerializer,
    DailyRestRangeSerializer,
    InfringementStatusSerializer,
    TachographRecordModelSerializer,
    WeeklyRestModelSerializer,
    DailyRestModelSerializer,
    InfringementModelSerializer,
    ComplianceAlertModelSerializer,
    HealthCheckSerializer,
)
from .services import (
    ComplianceEvaluator,
    DailyRestService,
    InfringementMaterializer,
    TachographIngestService,
    WeeklyRestService,
)
from .services.activity import ActivitySample, ActivityType, SampleSource
from .services.compliance_service import EvaluationContext
from .services.decoders import FileFormat, get_decoder
from .services.exceptions import (
    ComplianceEngineError,
    CompensationWindowError,
    InvalidActivityData,
    InvalidFormat,
    InvalidTransition,
    PermissionDenied,
    StorageFailure,
)
from .services.ingest_service import TachographUpload
from .services.wtd_config import WTDConfig

logger = logging.getLogger(__name__)


ERROR_STATUS = {
    PermissionDenied: status.HTTP_403_FORBIDDEN,
    StorageFailure: status.HTTP_500_INTERNAL_SERVER_ERROR,
    InvalidTransition: status.HTTP_409_CONFLICT,
}


def error_response(error: ComplianceEngineError) -> Response:
    """Structured error response for an engine error."""
    for error_class, status_code in ERROR_STATUS.items():
        if isinstance(error, error_class):
            break
    else:
        status_code = status.HTTP_400_BAD_REQUEST
    return Response(error.to_dict(), status=status_code)


def validation_error(errors) -> Response:
    return Response(
        {'error': 'ValidationError', 'details': errors},
        status=status.HTTP_400_BAD_REQUEST
    )


class HealthCheckView(APIView):
    """
    Health check endpoint for monitoring and load balancers.

    GET /api/health/
    """

    def get(self, request):
        """Return health status of the API."""
        data = {
            'status': 'healthy',
            'message': 'Tachograph Compliance API is running',
            'version': '1.0.0',
            'timestamp': datetime.now()
        }
        serializer = HealthCheckSerializer(data)
        return Response(serializer.data, status=status.HTTP_200_OK)


# =============================================================================
# Tachograph Service - /api/tachograph/
# =============================================================================

class TachographUploadView(APIView):
    """
    POST /api/tachograph/upload
    Validate, analyse and store a tachograph download.
    """

    def post(self, request):
        """
        Request:
        {
            "organization_id": "org-1",
            "caller_role": "compliance_officer",
            "vehicle_id": "veh-1",
            "driver_id": "drv-1",
            "file_type": "v2b",
            "file_name": "download.v2b",
            "file_data": "<base64>",
            "download_date": "2024-01-16T08:00:00Z"
        }

        Response (201):
        {
            "record_id": "...",
            "analysis_results": {...},
            "violations_detected": true,
            "infringements_created": 2
        }
        """
        serializer = TachographUploadSerializer(data=request.data)
        if not serializer.is_valid():
            return validation_error(serializer.errors)

        data = serializer.validated_data
        upload = TachographUpload(
            vehicle_id=data['vehicle_id'],
            driver_id=data.get('driver_id') or None,
            file_type=data['file_type'],
            file_name=data['file_name'],
            file_bytes=data['file_data'],
            download_date=data['download_date'],
            period_start=data.get('period_start'),
            period_end=data.get('period_end'),
            device_metadata=data.get('device_metadata') or {},
        )

        try:
            result = TachographIngestService().ingest(
                upload,
                organization_id=data['organization_id'],
                caller_role=data['caller_role'],
            )
        except ComplianceEngineError as e:
            logger.warning(f"Tachograph upload rejected ({e.code}): {e.message}")
            return error_response(e)
        except Exception as e:
            logger.exception(f"Tachograph upload failed: {e}")
            return Response(
                {'error': 'Tachograph upload failed', 'details': str(e)},
                status=status.HTTP_500_INTERNAL_SERVER_ERROR
            )

        return Response(result.to_dict(), status=status.HTTP_201_CREATED)


class TachographRecordListView(APIView):
    """
    GET /api/tachograph/records/ - List tachograph records
    """

    def get(self, request):
        """List records, optionally filtered by organization, vehicle or driver."""
        records = TachographRecord.objects.all().order_by('-download_date')
        for field in ('organization_id', 'vehicle_id', 'driver_id'):
            value = request.query_params.get(field)
            if value:
                records = records.filter(**{field: value})
        serializer = TachographRecordModelSerializer(records, many=True)
        return Response(serializer.data, status=status.HTTP_200_OK)


class TachographRecordDetailView(APIView):
    """
    GET /api/tachograph/records/{id}/ - Record with its analysis
    """

    def get(self, request, record_id):
        record = get_object_or_404(TachographRecord, id=record_id)
        return Response(TachographRecordModelSerializer(record).data, status=status.HTTP_200_OK)


class EvaluateView(APIView):
    """
    POST /api/tachograph/evaluate
    Evaluate activity samples against WTD rules without storing anything.
    """

    def post(self, request):
        serializer = EvaluateInputSerializer(data=request.data)
        if not serializer.is_valid():
            return validation_error(serializer.errors)

        data = serializer.validated_data
        try:
            capabilities = get_decoder(FileFormat.parse(data['file_type'])).capabilities
            samples = [
                ActivitySample(
                    driver_id=s['driver_id'],
                    vehicle_id=s['vehicle_id'],
                    timestamp_start=s['timestamp_start'],
                    timestamp_end=s['timestamp_end'],
                    activity_type=ActivityType(s['activity_type']),
                    source=SampleSource(s['source']),
                )
                for s in data['samples']
            ]
            context = EvaluationContext(
                source_id=data.get('source_id'),
                capabilities=capabilities,
                max_speed=data['max_speed'],
                card_coverage_complete=data['card_coverage_complete'],
                tamper_signals=tuple(data['tamper_signals']),
                low_confidence=data['low_confidence'],
            )
            assessment = ComplianceEvaluator(WTDConfig.from_settings()).evaluate(samples, context)
        except (InvalidFormat, InvalidActivityData) as e:
            return error_response(e)

        return Response(assessment.to_dict(), status=status.HTTP_200_OK)


# =============================================================================
# Weekly Rest Service - /api/weekly-rest/
# =============================================================================

class WeeklyRestListView(APIView):
    """
    GET /api/weekly-rest/?driver_id= - List weekly rest records
    """

    def get(self, request):
        records = WeeklyRest.objects.all().order_by('-week_start_date')
        for field in ('driver_id', 'organization_id'):
            value = request.query_params.get(field)
            if value:
                records = records.filter(**{field: value})
        return Response(WeeklyRestModelSerializer(records, many=True).data, status=status.HTTP_200_OK)


class WeeklyRestAnalysisView(APIView):
    """
    GET /api/weekly-rest/analysis?driver_id=...&week_start=YYYY-MM-DD
    """

    def get(self, request):
        driver_id = request.query_params.get('driver_id')
        week_start = request.query_params.get('week_start')

        if not driver_id or not week_start:
            return Response(
                {'error': 'Missing required parameters: driver_id, week_start'},
                status=status.HTTP_400_BAD_REQUEST
            )

        week_date = parse_date(week_start)
        if week_date is None:
            return Response(
                {'error': 'Invalid week_start, expected YYYY-MM-DD', 'details': week_start},
                status=status.HTTP_400_BAD_REQUEST
            )

        analysis = WeeklyRestService(WTDConfig.from_settings()).analyze(driver_id, week_date)
        return Response(analysis.to_dict(), status=status.HTTP_200_OK)


class WeeklyRestAutoRecordView(APIView):
    """
    POST /api/weekly-rest/auto-record
    Record a finished week once; repeats report "already recorded".
    """

    def post(self, request):
        serializer = WeeklyRestAutoRecordSerializer(data=request.data)
        if not serializer.is_valid():
            return validation_error(serializer.errors)

        data = serializer.validated_data
        result = WeeklyRestService(WTDConfig.from_settings()).auto_record(
            data['driver_id'], data['week_start'], data['organization_id']
        )

        record = result.get('weekly_rest')
        body = {
            'status': result['status'],
            'message': result['message'],
            'weekly_rest': WeeklyRestModelSerializer(record).data if record else None,
            'analysis': result.get('analysis'),
            'infringements_created': result['infringements_created'],
        }
        response_status = {
            'recorded': status.HTTP_201_CREATED,
            'not_finished': status.HTTP_400_BAD_REQUEST,
            'unavailable': status.HTTP_503_SERVICE_UNAVAILABLE,
        }.get(result['status'], status.HTTP_200_OK)
        return Response(body, status=response_status)


class WeeklyRestCompensationView(APIView):
    """
    POST /api/weekly-rest/{id}/compensation
    Link compensation rest to a reduced week.
    """

    def post(self, request, weekly_rest_id):
        weekly_rest = get_object_or_404(WeeklyRest, id=weekly_rest_id)
        serializer = CompensationSerializer(data=request.data)
        if not serializer.is_valid():
            return validation_error(serializer.errors)

        try:
            weekly_rest = WeeklyRestService(WTDConfig.from_settings()).link_compensation(
                weekly_rest,
                serializer.validated_data['compensation_date'],
                notes=serializer.validated_data['notes'],
            )
        except CompensationWindowError as e:
            return error_response(e)

        return Response(WeeklyRestModelSerializer(weekly_rest).data, status=status.HTTP_200_OK)


# =============================================================================
# Daily Rest Service - /api/daily-rest/
# =============================================================================

class DailyRestListView(APIView):
    """
    GET /api/daily-rest/?driver_id=&start_date=&end_date= - List daily rest rows
    """

    def get(self, request):
        rows = DailyRest.objects.all().order_by('-rest_date')
        for field in ('driver_id', 'organization_id'):
            value = request.query_params.get(field)
            if value:
                rows = rows.filter(**{field: value})
        start_date = parse_date(request.query_params.get('start_date') or '')
        end_date = parse_date(request.query_params.get('end_date') or '')
        if start_date:
            rows = rows.filter(rest_date__gte=start_date)
        if end_date:
            rows = rows.filter(rest_date__lte=end_date)
        return Response(DailyRestModelSerializer(rows, many=True).data, status=status.HTTP_200_OK)


class DailyRestRebuildView(APIView):
    """
    POST /api/daily-rest/rebuild
    Derive daily rest rows from stored activity samples.
    """

    def post(self, request):
        serializer = DailyRestRangeSerializer(data=request.data)
        if not serializer.is_valid():
            return validation_error(serializer.errors)

        data = serializer.validated_data
        result = DailyRestService(WTDConfig.from_settings()).rebuild_from_samples(
            data['driver_id'],
            data['start_date'],
            data['end_date'],
            data['organization_id'],
            recompute=data['recompute'],
        )
        return Response(result, status=status.HTTP_200_OK)


class DailyRestAutoRecordView(APIView):
    """
    POST /api/daily-rest/auto-record
    Record 24h rest for days without any activity.
    """

    def post(self, request):
        serializer = DailyRestRangeSerializer(data=request.data)
        if not serializer.is_valid():
            return validation_error(serializer.errors)

        data = serializer.validated_data
        created = DailyRestService(WTDConfig.from_settings()).auto_record_rest_days(
            data['driver_id'], data['start_date'], data['end_date'], data['organization_id']
        )
        return Response(
            {'message': f'{created} rest days recorded', 'rest_days_created': created},
            status=status.HTTP_200_OK
        )


# =============================================================================
# Infringement Service - /api/infringements/
# =============================================================================

class InfringementListView(APIView):
    """
    GET /api/infringements/ - List infringements
    """

    def get(self, request):
        infringements = Infringement.objects.all().order_by('-created_at')
        for field in ('organization_id', 'driver_id', 'status', 'severity', 'source_assessment_id'):
            value = request.query_params.get(field)
            if value:
                infringements = infringements.filter(**{field: value})
        return Response(InfringementModelSerializer(infringements, many=True).data, status=status.HTTP_200_OK)


class InfringementStatusView(APIView):
    """
    PUT /api/infringements/{id}/status
    Move an infringement along open -> reviewed -> resolved.
    """

    def put(self, request, infringement_id):
        serializer = InfringementStatusSerializer(data=request.data)
        if not serializer.is_valid():
            return validation_error(serializer.errors)

        data = serializer.validated_data
        get_object_or_404(Infringement, id=infringement_id)
        try:
            infringement = InfringementMaterializer().review(
                infringement_id,
                data['status'],
                reviewer_id=data['reviewer_id'],
                reviewer_role=data['reviewer_role'],
                notes=data['notes'],
            )
        except (PermissionDenied, InvalidTransition) as e:
            return error_response(e)

        return Response(InfringementModelSerializer(infringement).data, status=status.HTTP_200_OK)


class InfringementStatsView(APIView):
    """
    GET /api/infringements/stats?organization_id=
    """

    def get(self, request):
        stats = InfringementMaterializer().stats(request.query_params.get('organization_id'))
        return Response(stats, status=status.HTTP_200_OK)


class ComplianceAlertListView(APIView):
    """
    GET /api/compliance-alerts/ - List compliance alerts
    """

    def get(self, request):
        alerts = ComplianceAlert.objects.all().order_by('-created_at')
        for field in ('organization_id', 'entity_type', 'entity_id', 'severity'):
            value = request.query_params.get(field)
            if value:
                alerts = alerts.filter(**{field: value})
        return Response(ComplianceAlertModelSerializer(alerts, many=True).data, status=status.HTTP_200_OK)


# =============================================================================
# WTD Configuration Service
# =============================================================================

class WTDConfigView(APIView):
    """
    GET /api/config/wtd - Active WTD thresholds
    """

    def get(self, request):
        config = WTDConfig.from_settings()

        return Response({
            'daily_driving': {
                'max_minutes': config.max_daily_driving_minutes,
                'warning_margin_minutes': config.driving_warning_margin_minutes,
                'description': '9 hours driving per day'
            },
            'breaks': {
                'max_continuous_driving_minutes': config.max_continuous_driving_minutes,
                'full_break_minutes': config.full_break_minutes,
                'split_break_minutes': [config.split_break_first_minutes, config.split_break_second_minutes],
                'description': '45-minute break after 4.5 hours driving, may be split 15 + 30'
            },
            'speed': {
                'max_speed_kmh': config.max_speed_kmh,
            },
            'weekly_rest': {
                'full_hours': config.full_weekly_rest_hours,
                'reduced_hours': config.reduced_weekly_rest_hours,
                'compensation_period_weeks': config.compensation_period_weeks,
                'description': '45 hours weekly rest, reducible to 24 with compensation within 3 weeks'
            },
            'weekly_working_time': {
                'max_hours': config.max_weekly_working_hours,
                'warning_hours': config.weekly_working_warning_hours,
            },
            'daily_rest': {
                'regular_hours': config.daily_rest_hours,
                'reduced_hours': config.reduced_daily_rest_hours,
            },
            'severity': {
                'high_above_violations': config.high_severity_violation_count,
            },
        }, status=status.HTTP_200_OK)


@api_view(['GET'])
def api_root(request):
    """
    GET /api/
    API documentation and endpoint listing.
    """
    return Response({
        'name': 'Tachograph Compliance API',
        'version': '1.0.0',
        'description': 'Driver hours and tachograph compliance engine (WTD)',
        'endpoints': {
            'health': {
                'GET /api/health/': 'Health check'
            },
            'tachograph': {
                'POST /api/tachograph/upload': 'Upload and analyse a tachograph file',
                'GET /api/tachograph/records/': 'List tachograph records',
                'GET /api/tachograph/records/{id}/': 'Get tachograph record',
                'POST /api/tachograph/evaluate': 'Evaluate activity samples'
            },
            'weekly_rest': {
                'GET /api/weekly-rest/': 'List weekly rest records',
                'GET /api/weekly-rest/analysis': 'Analyse a driver week',
                'POST /api/weekly-rest/auto-record': 'Record a finished week',
                'POST /api/weekly-rest/{id}/compensation': 'Link compensation rest'
            },
            'daily_rest': {
                'GET /api/daily-rest/': 'List daily rest rows',
                'POST /api/daily-rest/rebuild': 'Rebuild daily rest from activity',
                'POST /api/daily-rest/auto-record': 'Record rest days'
            },
            'infringements': {
                'GET /api/infringements/': 'List infringements',
                'PUT /api/infringements/{id}/status': 'Review an infringement',
                'GET /api/infringements/stats': 'Infringement statistics'
            },
            'alerts': {
                'GET /api/compliance-alerts/': 'List compliance alerts'
            },
            'config': {
                'GET /api/config/wtd': 'Get WTD thresholds'
            }
        }
    })
