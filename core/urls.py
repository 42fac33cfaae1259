"""
URL configuration for the Tachograph Compliance project.

Complete API URL structure:
- /api/ - API root
- /api/health/ - Health check
- /api/tachograph/ - Uploads, records and evaluation
- /api/weekly-rest/ - Weekly rest analysis and recording
- /api/daily-rest/ - Daily rest roll-up
- /api/infringements/ - Infringement review and statistics
- /api/compliance-alerts/ - Compliance alerts
- /api/config/ - WTD configuration
"""

from django.contrib import admin
from django.urls import path, include
from tachograph.views import (
    HealthCheckView,
    api_root,
    # Weekly Rest
    WeeklyRestListView,
    WeeklyRestAnalysisView,
    WeeklyRestAutoRecordView,
    WeeklyRestCompensationView,
    # Daily Rest
    DailyRestListView,
    DailyRestRebuildView,
    DailyRestAutoRecordView,
    # Infringements
    InfringementListView,
    InfringementStatusView,
    InfringementStatsView,
    # Alerts
    ComplianceAlertListView,
    # WTD Config
    WTDConfigView,
)

urlpatterns = [
    # Admin
    path('admin/', admin.site.urls),

    # API root - Documentation
    path('api/', api_root, name='api_root'),

    # Health check endpoint
    path('api/health/', HealthCheckView.as_view(), name='health_check'),

    # ==========================================================================
    # Tachograph Uploads & Records - Uses tachograph app urls
    # ==========================================================================
    path('api/tachograph/', include('tachograph.urls', namespace='tachograph')),

    # ==========================================================================
    # Weekly Rest Service
    # ==========================================================================
    path('api/weekly-rest/', WeeklyRestListView.as_view(), name='weekly_rest_list'),
    path('api/weekly-rest/analysis', WeeklyRestAnalysisView.as_view(), name='weekly_rest_analysis'),
    path('api/weekly-rest/auto-record', WeeklyRestAutoRecordView.as_view(), name='weekly_rest_auto_record'),
    path('api/weekly-rest/<uuid:weekly_rest_id>/compensation', WeeklyRestCompensationView.as_view(), name='weekly_rest_compensation'),

    # ==========================================================================
    # Daily Rest Service
    # ==========================================================================
    path('api/daily-rest/', DailyRestListView.as_view(), name='daily_rest_list'),
    path('api/daily-rest/rebuild', DailyRestRebuildView.as_view(), name='daily_rest_rebuild'),
    path('api/daily-rest/auto-record', DailyRestAutoRecordView.as_view(), name='daily_rest_auto_record'),

    # ==========================================================================
    # Infringements & Alerts
    # ==========================================================================
    path('api/infringements/', InfringementListView.as_view(), name='infringement_list'),
    path('api/infringements/stats', InfringementStatsView.as_view(), name='infringement_stats'),
    path('api/infringements/<uuid:infringement_id>/status', InfringementStatusView.as_view(), name='infringement_status'),
    path('api/compliance-alerts/', ComplianceAlertListView.as_view(), name='compliance_alert_list'),

    # ==========================================================================
    # WTD Configuration Service
    # ==========================================================================
    path('api/config/wtd', WTDConfigView.as_view(), name='config_wtd'),
]
