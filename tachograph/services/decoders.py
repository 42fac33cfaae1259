"""
Tachograph download decoders.

Each supported file format is a member of the ``FileFormat`` tagged variant
and maps to one decoder class. Differences between recorder generations
(Generation 1, Generation 2, Smart tachograph) are expressed as
``DecoderCapabilities`` flags rather than branches in the rule evaluator.

Supported formats:
==================
- ddd: driver card / vehicle unit download (Generation 1)
- tgd: legacy tachograph download (Generation 1)
- c1b: driver card download (Generation 1)
- v1b: vehicle unit download (Generation 1)
- v2b: vehicle unit download (Generation 2, card insertion tracking)
- esm: Smart tachograph download (Generation 2 v2, satellite positioning)

Byte-level decoding of the binary formats is delegated to external tooling.
The decoders here read the normalized activity export such tooling produces:

    {
        "activities": [
            {"type": "driving", "start": "2024-01-15T06:00:00Z", "end": "2024-01-15T10:00:00Z"}
        ],
        "max_speed": 87,
        "card_coverage_complete": true,
        "tamper_signals": [],
        "low_confidence": false,
        "recorder": {"serial": "..."}
    }

A payload that is not such an export raises ``AnalysisDegraded``; the ingest
continues with an empty, low-confidence decode and ``data_integrity = suspicious``.
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone as dt_timezone
from enum import Enum
from typing import Dict, List, Optional, Type

from django.conf import settings
from django.utils.dateparse import parse_datetime
from django.utils.module_loading import import_string

from .activity import ActivitySample, ActivityType, SampleSource
from .exceptions import AnalysisDegraded, CorruptedFile, InvalidFormat

logger = logging.getLogger(__name__)


class FileFormat(Enum):
    """Tachograph download file formats."""
    DDD = "ddd"
    TGD = "tgd"
    C1B = "c1b"
    V1B = "v1b"
    V2B = "v2b"
    ESM = "esm"

    @classmethod
    def parse(cls, value: str) -> 'FileFormat':
        """Resolve a file type string, raising ``InvalidFormat`` for unknown types."""
        try:
            return cls((value or '').strip().lower())
        except ValueError:
            raise InvalidFormat(
                "Invalid file type. Supported formats: DDD, TGD, C1B, V1B (Gen1), V2B (Gen2), ESM",
                details={
                    'file_type': value,
                    'supported': [f.value for f in cls],
                },
            )


class TachographGeneration(Enum):
    """Recorder hardware generation."""
    GENERATION_1 = "generation_1"
    GENERATION_2 = "generation_2"
    SMART_2 = "smart_2"


@dataclass(frozen=True)
class DecoderCapabilities:
    """Features a recorder generation provides to the analysis."""
    generation: TachographGeneration
    satellite_positioning: bool = False
    remote_download: bool = False
    card_insertion_tracking: bool = False
    enhanced_security: bool = False

    @property
    def is_smart(self) -> bool:
        return self.generation != TachographGeneration.GENERATION_1

    def to_dict(self) -> Dict:
        return {
            'generation': self.generation.value,
            'satellite_positioning': self.satellite_positioning,
            'remote_download': self.remote_download,
            'card_insertion_tracking': self.card_insertion_tracking,
            'enhanced_security': self.enhanced_security,
        }


@dataclass
class DecodedDownload:
    """Normalized result of decoding one tachograph file."""
    samples: List[ActivitySample] = field(default_factory=list)
    max_speed: float = 0.0
    card_coverage_complete: bool = True
    tamper_signals: List[str] = field(default_factory=list)
    low_confidence: bool = False
    recorder_metadata: Dict = field(default_factory=dict)


class BaseTachographDecoder:
    """
    Base decoder reading the normalized activity export.

    Subclasses set ``file_format``, ``capabilities`` and, where the format has
    a known minimum size, ``min_payload_bytes``.
    """

    file_format: FileFormat = None
    capabilities = DecoderCapabilities(generation=TachographGeneration.GENERATION_1)
    min_payload_bytes: int = 0

    def check_integrity(self, payload: bytes) -> None:
        """
        Apply the minimum integrity heuristic before anything is stored.

        Raises:
            CorruptedFile: payload shorter than the format minimum
        """
        if len(payload) < self.min_payload_bytes:
            raise CorruptedFile(
                f"{self.file_format.value.upper()} file is too short to be a valid download",
                details={
                    'file_type': self.file_format.value,
                    'file_size': len(payload),
                    'min_size': self.min_payload_bytes,
                },
            )

    def decode(self, payload: bytes, driver_id: Optional[str], vehicle_id: str) -> DecodedDownload:
        """Decode a payload into activity samples and recorder signals."""
        try:
            envelope = json.loads(payload.decode('utf-8'))
        except ValueError:
            return self.decode_binary(payload, driver_id, vehicle_id)

        if not isinstance(envelope, dict):
            raise CorruptedFile(
                "Activity export must be a JSON object",
                details={'file_type': self.file_format.value},
            )
        return self.decode_export(envelope, driver_id, vehicle_id)

    def decode_binary(self, payload: bytes, driver_id: Optional[str], vehicle_id: str) -> DecodedDownload:
        """
        Raw binary downloads carry no activity export.

        Raises:
            AnalysisDegraded: always; callers continue with an empty,
                low-confidence decode
        """
        raise AnalysisDegraded(
            f"No activity export in {self.file_format.value} payload",
            details={
                'decoder': self.__class__.__name__,
                'generation': self.capabilities.generation.value,
                'file_size': len(payload),
                'reason': 'binary payload without activity export',
            },
        )

    def decode_export(self, envelope: Dict, driver_id: Optional[str], vehicle_id: str) -> DecodedDownload:
        driver = str(envelope.get('driver_id') or driver_id or '')
        vehicle = str(envelope.get('vehicle_id') or vehicle_id)

        activities = self._field(envelope, 'activities', list, [])
        samples = [
            self._parse_activity(raw, index, driver, vehicle)
            for index, raw in enumerate(activities)
        ]

        try:
            max_speed = float(envelope.get('max_speed') or 0)
        except (TypeError, ValueError):
            raise CorruptedFile(
                "Invalid max_speed in activity export",
                details={'max_speed': envelope.get('max_speed')},
            )

        tamper_signals = [str(s) for s in self._field(envelope, 'tamper_signals', list, [])]
        recorder = dict(self._field(envelope, 'recorder', dict, {}))
        recorder.setdefault('decoder', self.__class__.__name__)
        recorder.setdefault('generation', self.capabilities.generation.value)

        return DecodedDownload(
            samples=samples,
            max_speed=max_speed,
            card_coverage_complete=self._field(envelope, 'card_coverage_complete', bool, True),
            tamper_signals=tamper_signals,
            low_confidence=self._field(envelope, 'low_confidence', bool, False),
            recorder_metadata=recorder,
        )

    def _field(self, envelope: Dict, name: str, expected: type, default):
        """Typed envelope field; missing or null gives ``default``."""
        value = envelope.get(name)
        if value is None:
            return default
        if not isinstance(value, expected):
            raise CorruptedFile(
                f"Invalid {name} in activity export",
                details={
                    'file_type': self.file_format.value,
                    'field': name,
                    'expected': expected.__name__,
                    'received': type(value).__name__,
                },
            )
        return value

    def _parse_activity(self, raw: Dict, index: int, driver_id: str, vehicle_id: str) -> ActivitySample:
        if not isinstance(raw, dict):
            raise CorruptedFile(
                f"Invalid activity record at position {index}",
                details={'index': index, 'reason': f"expected object, got {type(raw).__name__}"},
            )
        try:
            activity_type = ActivityType(raw['type'])
            start = self._parse_timestamp(raw['start'])
            end = self._parse_timestamp(raw['end'])
        except (KeyError, TypeError, ValueError) as e:
            raise CorruptedFile(
                f"Invalid activity record at position {index}",
                details={'index': index, 'reason': str(e)},
            )
        return ActivitySample(
            driver_id=str(raw.get('driver_id') or driver_id),
            vehicle_id=vehicle_id,
            timestamp_start=start,
            timestamp_end=end,
            activity_type=activity_type,
            source=SampleSource.TACHOGRAPH,
        )

    @staticmethod
    def _parse_timestamp(value: str) -> datetime:
        parsed = parse_datetime(value)
        if parsed is None:
            raise ValueError(f"unparseable timestamp {value!r}")
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=dt_timezone.utc)
        return parsed


class Generation1Decoder(BaseTachographDecoder):
    capabilities = DecoderCapabilities(generation=TachographGeneration.GENERATION_1)


class DDDDecoder(Generation1Decoder):
    """Legacy DDD downloads carry a fixed header; anything under 100 bytes is corrupt."""
    file_format = FileFormat.DDD
    min_payload_bytes = 100


class TGDDecoder(Generation1Decoder):
    file_format = FileFormat.TGD


class C1BDecoder(Generation1Decoder):
    file_format = FileFormat.C1B


class V1BDecoder(Generation1Decoder):
    file_format = FileFormat.V1B


class V2BDecoder(BaseTachographDecoder):
    file_format = FileFormat.V2B
    capabilities = DecoderCapabilities(
        generation=TachographGeneration.GENERATION_2,
        satellite_positioning=True,
        card_insertion_tracking=True,
        enhanced_security=True,
    )


class ESMDecoder(BaseTachographDecoder):
    file_format = FileFormat.ESM
    capabilities = DecoderCapabilities(
        generation=TachographGeneration.SMART_2,
        satellite_positioning=True,
        remote_download=True,
        card_insertion_tracking=True,
        enhanced_security=True,
    )


DECODERS: Dict[FileFormat, Type[BaseTachographDecoder]] = {
    FileFormat.DDD: DDDDecoder,
    FileFormat.TGD: TGDDecoder,
    FileFormat.C1B: C1BDecoder,
    FileFormat.V1B: V1BDecoder,
    FileFormat.V2B: V2BDecoder,
    FileFormat.ESM: ESMDecoder,
}


def get_decoder(file_format: FileFormat) -> BaseTachographDecoder:
    """
    Return a decoder instance for a file format.

    The ``TACHOGRAPH_DECODERS`` setting may map format values to dotted
    paths of replacement decoder classes.
    """
    overrides = getattr(settings, 'TACHOGRAPH_DECODERS', {}) or {}
    dotted_path = overrides.get(file_format.value)
    if dotted_path:
        return import_string(dotted_path)()
    return DECODERS[file_format]()
