"""
Working Time Directive (WTD) thresholds.

Regulatory limits used by the compliance evaluator and the rest aggregators:
=========================================================================
1. Daily driving: max 9 hours (540 minutes)
2. Continuous driving: max 4.5 hours (270 minutes) before a 45-minute break,
   which may be split 15 + 30
3. Speed: 90 km/h (UK HGV motorway limit)
4. Weekly rest: 45 hours regular, 24 hours reduced
5. Reduced weekly rest must be compensated within 3 weeks
6. Weekly working time: max 60 hours, warning above 55

All values can be overridden with the ``WTD_CONFIG`` Django setting.
"""

from dataclasses import dataclass, fields, asdict
from typing import Dict, Optional

from django.conf import settings


WTD_WEEKLY_REST = {
    'FULL_WEEKLY_REST': 45,
    'REDUCED_WEEKLY_REST': 24,
    'COMPENSATION_REQUIRED': True,
    'COMPENSATION_PERIOD': 3,
}


@dataclass
class WTDConfig:
    """
    Configuration for WTD rules.
    All values can be adjusted for different regulations or testing.
    """
    # Daily driving
    max_daily_driving_minutes: int = 540
    driving_warning_margin_minutes: int = 30

    # Breaks
    max_continuous_driving_minutes: int = 270
    full_break_minutes: int = 45
    split_break_first_minutes: int = 15
    split_break_second_minutes: int = 30

    # Speed
    max_speed_kmh: float = 90.0

    # Severity escalation
    high_severity_violation_count: int = 2

    # Weekly rest (hours)
    full_weekly_rest_hours: float = WTD_WEEKLY_REST['FULL_WEEKLY_REST']
    reduced_weekly_rest_hours: float = WTD_WEEKLY_REST['REDUCED_WEEKLY_REST']
    compensation_period_weeks: int = WTD_WEEKLY_REST['COMPENSATION_PERIOD']

    # Weekly working time (hours)
    max_weekly_working_hours: float = 60.0
    weekly_working_warning_hours: float = 55.0

    # Daily rest (hours)
    daily_rest_hours: float = 11.0
    reduced_daily_rest_hours: float = 9.0

    @classmethod
    def from_settings(cls, overrides: Optional[Dict] = None) -> 'WTDConfig':
        """Build a config from the ``WTD_CONFIG`` setting plus explicit overrides."""
        values = dict(getattr(settings, 'WTD_CONFIG', {}) or {})
        values.update(overrides or {})
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in values.items() if k in known})

    def to_dict(self) -> Dict:
        return asdict(self)
