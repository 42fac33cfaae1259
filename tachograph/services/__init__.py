"""
Services package for the tachograph compliance engine.

Contains business logic separated from views for clean architecture.
"""

from .compliance_service import ComplianceEvaluator
from .daily_rest_service import DailyRestService
from .infringement_service import InfringementMaterializer
from .ingest_service import TachographIngestService
from .sweep_service import ComplianceSweepService
from .weekly_rest_service import WeeklyRestService

__all__ = [
    'ComplianceEvaluator',
    'DailyRestService',
    'InfringementMaterializer',
    'TachographIngestService',
    'ComplianceSweepService',
    'WeeklyRestService',
]
