"""
WTD Compliance Rule Evaluator.

Turns a set of driver activity samples into a ``ComplianceAssessment``.
The evaluator is a pure function of its inputs: no clock, no randomness,
no database access. Identical samples and context always produce the same
violations.

Rules Implemented:
==================
1. Daily driving time: total driving in the window must not exceed 9 hours
2. Breaks: more than 4.5 hours of driving needs a qualifying break (15 minutes
   or more), and no stretch may exceed 4.5 hours without one. Stretches that
   exceed 4.5 hours without the full 45 minutes (or 15 + 30) only warn
3. Speed: recorded maximum must not exceed 90 km/h
4. Card insertion: recorders that track it (Generation 2 / Smart) must show
   the driver card present for the whole journey
5. Data integrity: tamper signals from the decoder are reported as their own
   violation and mark the data suspicious

Severity: every violation in an assessment is ``high`` when the assessment
holds more than 2 violations, otherwise ``medium``.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple

from .activity import ActivitySample, ActivityType, normalize_samples
from .decoders import DecoderCapabilities, TachographGeneration
from .wtd_config import WTDConfig

logger = logging.getLogger(__name__)


class ViolationKind(Enum):
    """Violation categories. The value is the persisted infringement kind."""
    DRIVING_TIME = "driving_time_violation"
    REST_PERIOD = "rest_period_violation"
    SPEED = "speed_violation"
    CARD_INSERTION = "card_insertion_violation"
    MANIPULATION = "manipulation_detected"
    WEEKLY_WORKING_TIME = "weekly_working_time_violation"
    WEEKLY_REST_MISSING = "weekly_rest_missing"


class WarningKind(Enum):
    DRIVING_TIME_APPROACHING = "driving_time_approaching"
    ANALYSIS_DEGRADED = "analysis_degraded"
    BREAK_PATTERN_INCOMPLETE = "break_pattern_incomplete"
    WEEKLY_WORKING_TIME_APPROACHING = "weekly_working_time_approaching"
    COMPENSATION_NOT_SCHEDULED = "compensation_not_scheduled"


class DataIntegrity(Enum):
    INTACT = "intact"
    SUSPICIOUS = "suspicious"
    CORRUPTED = "corrupted"


SEVERITY_MEDIUM = "medium"
SEVERITY_HIGH = "high"


def format_minutes(minutes: float) -> str:
    """Format a minute count as ``9h 0m``."""
    total = int(round(minutes))
    return f"{total // 60}h {total % 60}m"


def batch_severity(violation_count: int, config: Optional[WTDConfig] = None) -> str:
    """Severity shared by every violation of one assessment."""
    threshold = (config or WTDConfig()).high_severity_violation_count
    return SEVERITY_HIGH if violation_count > threshold else SEVERITY_MEDIUM


@dataclass(frozen=True)
class Violation:
    """A single rule breach."""
    kind: str
    detail: str
    severity: str

    def to_dict(self) -> Dict:
        return {'kind': self.kind, 'detail': self.detail, 'severity': self.severity}


@dataclass(frozen=True)
class AssessmentWarning:
    """A finding that is not (yet) a breach."""
    kind: str
    detail: str

    def to_dict(self) -> Dict:
        return {'kind': self.kind, 'detail': self.detail}


@dataclass(frozen=True)
class EvaluationContext:
    """
    Everything the evaluator needs besides the samples.

    Decoder signals (speed, card coverage, tamper flags, confidence) arrive
    here so that the rules never branch on the file type itself.
    """
    source_id: Optional[str] = None
    capabilities: DecoderCapabilities = DecoderCapabilities(generation=TachographGeneration.GENERATION_1)
    max_speed: float = 0.0
    card_coverage_complete: bool = True
    tamper_signals: Tuple[str, ...] = ()
    low_confidence: bool = False


@dataclass(frozen=True)
class ComplianceAssessment:
    """Immutable evaluator output for one analysis unit."""
    source_id: Optional[str]
    violations: Tuple[Violation, ...] = ()
    warnings: Tuple[AssessmentWarning, ...] = ()
    data_integrity: str = DataIntegrity.INTACT.value
    driving_time_total_minutes: int = 0
    rest_periods_count: int = 0
    max_speed: float = 0.0
    longest_continuous_driving_minutes: int = 0
    driving_minutes_by_day: Tuple[Tuple[str, int], ...] = ()
    evaluated: bool = True

    @property
    def violations_detected(self) -> int:
        return len(self.violations)

    @property
    def is_compliant(self) -> bool:
        return not self.violations

    @property
    def severity(self) -> Optional[str]:
        if not self.violations:
            return None
        return self.violations[0].severity

    def has_violation(self, kind) -> bool:
        value = kind.value if isinstance(kind, ViolationKind) else kind
        return any(v.kind == value for v in self.violations)

    def violation(self, kind) -> Optional[Violation]:
        value = kind.value if isinstance(kind, ViolationKind) else kind
        return next((v for v in self.violations if v.kind == value), None)

    def to_dict(self) -> Dict:
        """Serialize for storage in ``TachographRecord.analysis_results``."""
        data = {
            'source_id': self.source_id,
            'evaluated': self.evaluated,
            'valid_format': True,
            'data_integrity': self.data_integrity,
            'violations_detected': self.violations_detected,
            'severity': self.severity,
            'driving_time_total': self.driving_time_total_minutes,
            'rest_periods': self.rest_periods_count,
            'max_speed': self.max_speed,
            'longest_continuous_driving': self.longest_continuous_driving_minutes,
            'driving_minutes_by_day': dict(self.driving_minutes_by_day),
            'violations': [v.to_dict() for v in self.violations],
            'warnings': [w.to_dict() for w in self.warnings],
        }
        # Flat per-rule flags, as read by the dashboards
        flags = {
            ViolationKind.DRIVING_TIME: 'driving_time',
            ViolationKind.REST_PERIOD: 'rest_period',
            ViolationKind.SPEED: 'speed',
            ViolationKind.CARD_INSERTION: 'card_insertion',
        }
        for kind, prefix in flags.items():
            found = self.violation(kind)
            data[f'{prefix}_violation'] = found is not None
            data[f'{prefix}_details'] = found.detail if found else ''
        manipulation = self.violation(ViolationKind.MANIPULATION)
        data['manipulation_detected'] = manipulation is not None
        data['manipulation_details'] = manipulation.detail if manipulation else ''
        return data


class ComplianceEvaluator:
    """
    Evaluates activity samples against WTD limits.

    Usage:
        evaluator = ComplianceEvaluator()
        assessment = evaluator.evaluate(samples, EvaluationContext(source_id=record_id))
    """

    def __init__(self, config: Optional[WTDConfig] = None):
        self.config = config or WTDConfig()

    def evaluate(
        self,
        samples: Iterable[ActivitySample],
        context: Optional[EvaluationContext] = None
    ) -> ComplianceAssessment:
        """
        Evaluate samples for one analysis unit.

        Args:
            samples: Activity samples of the window (any order)
            context: Decoder signals and source identity

        Returns:
            ComplianceAssessment with ordered violations and warnings

        Raises:
            InvalidActivityData: samples are inverted or overlap
        """
        context = context or EvaluationContext()
        ordered = normalize_samples(samples)

        driving_total = sum(
            s.duration_minutes for s in ordered if s.activity_type == ActivityType.DRIVING
        )
        qualifying_breaks = self._count_qualifying_breaks(ordered)
        longest_stretch = self._longest_continuous_driving(ordered)
        longest_before_full_break = self._longest_driving_before_full_break(ordered)

        findings: List[Tuple[ViolationKind, str]] = []
        warnings: List[AssessmentWarning] = []

        findings.extend(self._check_daily_driving(driving_total, warnings))
        break_findings = self._check_breaks(driving_total, qualifying_breaks, longest_stretch)
        findings.extend(break_findings)
        if not break_findings:
            self._check_break_pattern(longest_before_full_break, warnings)
        findings.extend(self._check_speed(context.max_speed))
        findings.extend(self._check_card_insertion(context))
        findings.extend(self._check_data_integrity(context))

        data_integrity = DataIntegrity.INTACT
        if context.tamper_signals:
            data_integrity = DataIntegrity.SUSPICIOUS
        if context.low_confidence:
            data_integrity = DataIntegrity.SUSPICIOUS
            warnings.append(AssessmentWarning(
                kind=WarningKind.ANALYSIS_DEGRADED.value,
                detail="Decoder reported low-confidence data; results may be incomplete",
            ))

        severity = batch_severity(len(findings), self.config)
        violations = tuple(
            Violation(kind=kind.value, detail=detail, severity=severity)
            for kind, detail in findings
        )

        logger.debug(
            f"Evaluated {len(ordered)} samples for source {context.source_id}: "
            f"{format_minutes(driving_total)} driving, {len(violations)} violations"
        )

        return ComplianceAssessment(
            source_id=context.source_id,
            violations=violations,
            warnings=tuple(warnings),
            data_integrity=data_integrity.value,
            driving_time_total_minutes=int(round(driving_total)),
            rest_periods_count=qualifying_breaks,
            max_speed=context.max_speed,
            longest_continuous_driving_minutes=int(round(longest_stretch)),
            driving_minutes_by_day=self._driving_by_day(ordered),
        )

    # =========================================================================
    # Rules
    # =========================================================================

    def _check_daily_driving(self, driving_total: float, warnings: List[AssessmentWarning]):
        limit = self.config.max_daily_driving_minutes
        if driving_total > limit:
            return [(
                ViolationKind.DRIVING_TIME,
                f"Exceeded daily driving limit: {format_minutes(driving_total)} "
                f"(max: {format_minutes(limit)})"
            )]
        if driving_total > limit - self.config.driving_warning_margin_minutes:
            warnings.append(AssessmentWarning(
                kind=WarningKind.DRIVING_TIME_APPROACHING.value,
                detail=f"Driving time {format_minutes(driving_total)} approaching "
                       f"daily limit ({format_minutes(limit)})",
            ))
        return []

    def _check_breaks(self, driving_total: float, qualifying_breaks: int, longest_stretch: float):
        limit = self.config.max_continuous_driving_minutes
        if driving_total <= limit:
            return []
        if qualifying_breaks == 0:
            return [(
                ViolationKind.REST_PERIOD,
                f"Insufficient rest periods: {qualifying_breaks} breaks recorded for "
                f"{format_minutes(driving_total)} driving"
            )]
        if longest_stretch > limit:
            return [(
                ViolationKind.REST_PERIOD,
                f"Continuous driving of {format_minutes(longest_stretch)} without a "
                f"{self.config.split_break_first_minutes}m break (max: {format_minutes(limit)}); "
                f"{qualifying_breaks} breaks recorded"
            )]
        return []

    def _check_break_pattern(self, longest_before_full_break: float, warnings: List[AssessmentWarning]):
        limit = self.config.max_continuous_driving_minutes
        if longest_before_full_break > limit:
            warnings.append(AssessmentWarning(
                kind=WarningKind.BREAK_PATTERN_INCOMPLETE.value,
                detail=f"Driving of {format_minutes(longest_before_full_break)} before a full "
                       f"{self.config.full_break_minutes}m break (or "
                       f"{self.config.split_break_first_minutes}m + {self.config.split_break_second_minutes}m split)",
            ))

    def _check_speed(self, max_speed: float):
        if max_speed > self.config.max_speed_kmh:
            return [(
                ViolationKind.SPEED,
                f"Maximum recorded speed {max_speed:g} km/h exceeds "
                f"{self.config.max_speed_kmh:g} km/h limit"
            )]
        return []

    def _check_card_insertion(self, context: EvaluationContext):
        if context.capabilities.card_insertion_tracking and not context.card_coverage_complete:
            return [(
                ViolationKind.CARD_INSERTION,
                "Driver card not inserted for portions of journey"
            )]
        return []

    def _check_data_integrity(self, context: EvaluationContext):
        if context.tamper_signals:
            return [(
                ViolationKind.MANIPULATION,
                "Possible data tampering detected in tachograph records: "
                + "; ".join(context.tamper_signals)
            )]
        return []

    # =========================================================================
    # Aggregates
    # =========================================================================

    def _count_qualifying_breaks(self, samples: List[ActivitySample]) -> int:
        minimum = self.config.split_break_first_minutes
        return sum(1 for s in samples if s.is_resting and s.duration_minutes >= minimum)

    def _longest_continuous_driving(self, samples: List[ActivitySample]) -> float:
        """
        Longest driving accumulation between qualifying breaks.

        Any break or rest of 15 minutes or more resets the counter. Other work
        and availability do not interrupt driving.
        """
        minimum = self.config.split_break_first_minutes
        accumulated = 0.0
        longest = 0.0

        for sample in samples:
            if sample.activity_type == ActivityType.DRIVING:
                accumulated += sample.duration_minutes
                longest = max(longest, accumulated)
            elif sample.is_resting and sample.duration_minutes >= minimum:
                accumulated = 0.0

        return longest

    def _longest_driving_before_full_break(self, samples: List[ActivitySample]) -> float:
        """
        Longest driving accumulation between full breaks.

        A single break of 45 minutes resets the counter, as does a 15 minute
        break followed later by a 30 minute break.
        """
        accumulated = 0.0
        longest = 0.0
        has_first_part = False

        for sample in samples:
            if sample.activity_type == ActivityType.DRIVING:
                accumulated += sample.duration_minutes
                longest = max(longest, accumulated)
            elif sample.is_resting:
                minutes = sample.duration_minutes
                if minutes >= self.config.full_break_minutes:
                    accumulated = 0.0
                    has_first_part = False
                elif has_first_part and minutes >= self.config.split_break_second_minutes:
                    accumulated = 0.0
                    has_first_part = False
                elif minutes >= self.config.split_break_first_minutes:
                    has_first_part = True

        return longest

    @staticmethod
    def _driving_by_day(samples: List[ActivitySample]) -> Tuple[Tuple[str, int], ...]:
        minutes: Dict[str, float] = {}
        for sample in samples:
            if sample.activity_type != ActivityType.DRIVING:
                continue
            for day, part in sample.minutes_by_day():
                minutes[day.isoformat()] = minutes.get(day.isoformat(), 0.0) + part
        return tuple((day, int(round(value))) for day, value in sorted(minutes.items()))
