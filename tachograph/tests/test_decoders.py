"""
Tests for tachograph file decoders.
"""

import json
import pytest
from datetime import timezone
from django.test import override_settings
from tachograph.services.activity import ActivityType
from tachograph.services.decoders import (
    DDDDecoder,
    ESMDecoder,
    FileFormat,
    TachographGeneration,
    V2BDecoder,
    get_decoder,
)
from tachograph.services.exceptions import AnalysisDegraded, CorruptedFile, InvalidFormat


def export_bytes(activities, **extra):
    envelope = {
        'activities': activities,
        'recorder': {'serial': 'GB-TACHO-0000000001', 'model': 'test-recorder'},
    }
    envelope.update(extra)
    return json.dumps(envelope).encode('utf-8')


class TestFileFormat:
    """Test file type parsing."""

    def test_parse_is_case_insensitive(self):
        """Test that file types are matched regardless of case and padding."""
        assert FileFormat.parse('DDD') == FileFormat.DDD
        assert FileFormat.parse(' esm ') == FileFormat.ESM

    def test_unknown_type_rejected(self):
        """Test that an unsupported file type raises InvalidFormat."""
        with pytest.raises(InvalidFormat) as excinfo:
            FileFormat.parse('pdf')

        assert excinfo.value.details['file_type'] == 'pdf'
        assert 'v2b' in excinfo.value.details['supported']


class TestDecoderCapabilities:
    """Test capability flags per recorder generation."""

    def test_generation_1_formats(self):
        """Test that Generation 1 formats have no smart features."""
        for file_format in (FileFormat.DDD, FileFormat.TGD, FileFormat.C1B, FileFormat.V1B):
            capabilities = get_decoder(file_format).capabilities
            assert capabilities.generation == TachographGeneration.GENERATION_1
            assert not capabilities.card_insertion_tracking
            assert not capabilities.is_smart

    def test_generation_2_and_smart(self):
        """Test V2B and ESM capability flags."""
        assert V2BDecoder.capabilities.card_insertion_tracking
        assert V2BDecoder.capabilities.satellite_positioning
        assert not V2BDecoder.capabilities.remote_download
        assert ESMDecoder.capabilities.generation == TachographGeneration.SMART_2
        assert ESMDecoder.capabilities.remote_download

    def test_decoder_override_from_settings(self):
        """Test replacing a decoder through TACHOGRAPH_DECODERS."""
        with override_settings(TACHOGRAPH_DECODERS={'v1b': 'tachograph.services.decoders.V2BDecoder'}):
            assert isinstance(get_decoder(FileFormat.V1B), V2BDecoder)


class TestDDDDecoder:
    """Test DDD decoding and integrity checks."""

    def setup_method(self):
        """Set up test fixtures."""
        self.decoder = DDDDecoder()

    def test_short_payload_is_corrupted(self):
        """Test that a DDD payload under 100 bytes is corrupted."""
        with pytest.raises(CorruptedFile) as excinfo:
            self.decoder.check_integrity(b'x' * 99)

        assert excinfo.value.to_dict()['data_integrity'] == 'corrupted'
        assert excinfo.value.details['min_size'] == 100

    def test_minimum_payload_accepted(self):
        """Test that a 100 byte DDD payload passes the integrity check."""
        self.decoder.check_integrity(b'x' * 100)

    def test_decode_activity_export(self):
        """Test decoding activities and recorder signals from an export."""
        payload = export_bytes(
            [
                {'type': 'driving', 'start': '2024-01-15T06:00:00Z', 'end': '2024-01-15T10:00:00Z'},
                {'type': 'break', 'start': '2024-01-15T10:00:00Z', 'end': '2024-01-15T10:45:00Z'},
            ],
            max_speed=87,
        )

        decoded = self.decoder.decode(payload, 'drv-1', 'veh-1')

        assert len(decoded.samples) == 2
        assert decoded.samples[0].activity_type == ActivityType.DRIVING
        assert decoded.samples[0].duration_minutes == 240
        assert decoded.samples[0].driver_id == 'drv-1'
        assert decoded.max_speed == 87.0
        assert decoded.low_confidence is False
        assert decoded.recorder_metadata['decoder'] == 'DDDDecoder'

    def test_naive_timestamps_are_utc(self):
        """Test that timestamps without an offset are read as UTC."""
        payload = export_bytes([{'type': 'rest', 'start': '2024-01-15T00:00:00', 'end': '2024-01-15T08:00:00'}])

        decoded = self.decoder.decode(payload, 'drv-1', 'veh-1')

        assert decoded.samples[0].timestamp_start.tzinfo == timezone.utc

    def test_binary_payload_degrades_analysis(self):
        """Test that a binary payload without an export raises AnalysisDegraded."""
        with pytest.raises(AnalysisDegraded) as excinfo:
            self.decoder.decode(bytes(range(256)), 'drv-1', 'veh-1')

        assert excinfo.value.code == 'AnalysisDegraded'
        assert excinfo.value.details['decoder'] == 'DDDDecoder'
        assert excinfo.value.details['generation'] == 'generation_1'
        assert excinfo.value.details['file_size'] == 256

    def test_invalid_activity_record(self):
        """Test that an unknown activity type is corrupted."""
        payload = export_bytes([{'type': 'sleeping', 'start': '2024-01-15T00:00:00Z', 'end': '2024-01-15T08:00:00Z'}])

        with pytest.raises(CorruptedFile) as excinfo:
            self.decoder.decode(payload, 'drv-1', 'veh-1')

        assert excinfo.value.details['index'] == 0

    def test_activity_record_must_be_object(self):
        """Test that a non-object activity entry is corrupted."""
        payload = export_bytes(['driving'])

        with pytest.raises(CorruptedFile) as excinfo:
            self.decoder.decode(payload, 'drv-1', 'veh-1')

        assert excinfo.value.details['index'] == 0

    def test_non_object_export(self):
        """Test that a JSON export which is not an object is corrupted."""
        with pytest.raises(CorruptedFile):
            self.decoder.decode(json.dumps(['not', 'an', 'object']).encode('utf-8'), 'drv-1', 'veh-1')


class TestExportFieldTypes:
    """Test type checks on activity export fields."""

    def setup_method(self):
        """Set up test fixtures."""
        self.decoder = V2BDecoder()

    @pytest.mark.parametrize('name,value,expected', [
        ('activities', 5, 'list'),
        ('activities', {'type': 'driving'}, 'list'),
        ('recorder', 'x', 'dict'),
        ('card_coverage_complete', 'false', 'bool'),
        ('low_confidence', 0, 'bool'),
        ('tamper_signals', 'abc', 'list'),
    ])
    def test_wrong_field_type_is_corrupted(self, name, value, expected):
        """Test that a field of the wrong JSON type is corrupted."""
        envelope = {'activities': [], name: value}

        with pytest.raises(CorruptedFile) as excinfo:
            self.decoder.decode(json.dumps(envelope).encode('utf-8'), 'drv-1', 'veh-1')

        assert excinfo.value.details['field'] == name
        assert excinfo.value.details['expected'] == expected
        assert excinfo.value.to_dict()['data_integrity'] == 'corrupted'

    def test_string_false_does_not_mark_coverage_complete(self):
        """Test that card coverage is only read from a JSON boolean."""
        with pytest.raises(CorruptedFile):
            self.decoder.decode(export_bytes([], card_coverage_complete='false'), 'drv-1', 'veh-1')

    def test_null_fields_use_defaults(self):
        """Test that null fields fall back to their defaults."""
        envelope = {
            'activities': None,
            'recorder': None,
            'card_coverage_complete': None,
            'tamper_signals': None,
            'low_confidence': None,
        }

        decoded = self.decoder.decode(json.dumps(envelope).encode('utf-8'), 'drv-1', 'veh-1')

        assert decoded.samples == []
        assert decoded.card_coverage_complete is True
        assert decoded.tamper_signals == []
        assert decoded.low_confidence is False
        assert decoded.recorder_metadata['decoder'] == 'V2BDecoder'


class TestV2BDecoder:
    """Test Generation 2 decoding."""

    def test_card_coverage_and_tamper_signals(self):
        """Test reading card coverage and tamper signals."""
        payload = export_bytes(
            [],
            card_coverage_complete=False,
            tamper_signals=['speed pulses missing'],
        )

        decoded = V2BDecoder().decode(payload, None, 'veh-1')

        assert decoded.card_coverage_complete is False
        assert decoded.tamper_signals == ['speed pulses missing']
        assert decoded.recorder_metadata['generation'] == 'generation_2'

    def test_no_minimum_size(self):
        """Test that V2B has no minimum payload size."""
        V2BDecoder().check_integrity(b'{}')
