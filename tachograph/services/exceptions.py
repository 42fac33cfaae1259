"""
Error taxonomy for the tachograph compliance engine.

Every error carries a machine-readable ``code`` (the class name) and a
``details`` dict so the API layer can return a structured error object that
identifies which validation failed.
"""

from typing import Dict, Optional


class ComplianceEngineError(Exception):
    """Base class for all compliance engine errors."""

    def __init__(self, message: str, details: Optional[Dict] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    @property
    def code(self) -> str:
        return self.__class__.__name__

    def to_dict(self) -> Dict:
        return {
            'error': self.code,
            'message': self.message,
            'details': self.details,
        }


class InvalidFormat(ComplianceEngineError):
    """Unsupported tachograph file type. Raised before anything is stored."""
    pass


class CorruptedFile(ComplianceEngineError):
    """Payload fails the minimum integrity heuristic. Nothing is stored."""

    data_integrity = 'corrupted'

    def to_dict(self) -> Dict:
        data = super().to_dict()
        data['data_integrity'] = self.data_integrity
        return data


class StorageFailure(ComplianceEngineError):
    """Artifact or record write failed; the upload is aborted with no partial record."""
    pass


class AnalysisDegraded(ComplianceEngineError):
    """Decoder signalled low-confidence data. Analysis proceeds as suspicious."""
    pass


class DownstreamWriteFailure(ComplianceEngineError):
    """Infringement or alert creation failed. Logged, never surfaced to the uploader."""
    pass


class InvalidActivityData(ComplianceEngineError):
    """Activity samples break the ordering invariants (inverted or overlapping)."""
    pass


class InvalidTransition(ComplianceEngineError):
    """Infringement status change outside open -> reviewed -> resolved."""
    pass


class CompensationWindowError(ComplianceEngineError):
    """Compensation rest falls outside the regulatory window."""
    pass


class PermissionDenied(ComplianceEngineError):
    """Caller role is not allowed to perform the operation."""
    pass
