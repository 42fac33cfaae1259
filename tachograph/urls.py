"""
URL configuration for tachograph app.

URL patterns for tachograph uploads, records and evaluation.
"""

from django.urls import path
from .views import (
    TachographUploadView,
    TachographRecordListView,
    TachographRecordDetailView,
    EvaluateView,
)

app_name = 'tachograph'

urlpatterns = [
    # POST /api/tachograph/upload - Upload and analyse a download
    path('upload', TachographUploadView.as_view(), name='upload'),

    # GET /api/tachograph/records/
    path('records/', TachographRecordListView.as_view(), name='record_list'),

    # GET /api/tachograph/records/{id}/
    path('records/<uuid:record_id>/', TachographRecordDetailView.as_view(), name='record_detail'),

    # POST /api/tachograph/evaluate - Evaluate samples without storing
    path('evaluate', EvaluateView.as_view(), name='evaluate'),
]
