"""
Error taxonomy for Clast.

Every error carries an ``error_type`` string so the UI layer can pick a
message without inspecting exception classes (same values are passed to
the orchestrator's ``on_error`` callback).
"""

from typing import Optional


class ClastError(Exception):
    """Base class for all Clast errors."""

    error_type = "error"

    def __init__(self, message: str = "") -> None:
        super().__init__(message)
        self.message = message


class ValidationError(ClastError):
    """Local input rejected at the boundary (empty goal, bad duration, no evidence)."""

    error_type = "validation"


class ConfigurationError(ClastError):
    """Verification endpoint (or judge API key) is missing or unusable."""

    error_type = "not_configured"


class TransportError(ClastError):
    """Network failure, timeout, or non-2xx response from the verification service."""

    error_type = "transport"

    def __init__(self, message: str = "", status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ProtocolError(ClastError):
    """Response body is not valid JSON or does not match the expected shape."""

    error_type = "protocol"


class InvalidScoreError(ProtocolError):
    """Score outside [0, 1]."""

    error_type = "invalid_score"


class AuthorizationError(ClastError):
    """App-blocking needs OS permission (Screen Time / Family Controls)."""

    error_type = "not_authorized"


class BlockingError(ClastError):
    """App-blocking failed for a reason other than authorization."""

    error_type = "blocking"


class EvidenceExtractionError(ClastError):
    """Text could not be recognized in an evidence image."""

    error_type = "extraction"

    def __init__(self, message: str = "", image_index: Optional[int] = None) -> None:
        super().__init__(message)
        self.image_index = image_index


class SessionStateError(ClastError):
    """A transition was requested in a phase that does not allow it."""

    error_type = "invalid_state"
