"""
Client for the remote progress verification service.

The service receives the session goal, running summary, the user's note
and the newly scraped evidence text, and answers with a score, a break
decision, a short reason and an updated summary:

    POST <endpoint>
    {"sessionGoal", "sessionStateSummary", "userProgressNote", "scrapedTextDelta"}
    -> {"score", "allowBreak", "reason", "updatedSummary"}

One attempt per call; failures are raised to the caller.
"""

import json
import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol

import httpx

import config
from core.errors import (
    ConfigurationError,
    InvalidScoreError,
    ProtocolError,
    TransportError,
)

logger = logging.getLogger(__name__)

# Longest response excerpt included in protocol error logs
_LOG_BODY_LIMIT = 500


@dataclass(frozen=True)
class VerificationRequest:
    session_goal: str
    session_state_summary: str
    user_progress_note: str
    scraped_text_delta: str

    def to_payload(self) -> Dict[str, str]:
        return {
            "sessionGoal": self.session_goal,
            "sessionStateSummary": self.session_state_summary,
            "userProgressNote": self.user_progress_note,
            "scrapedTextDelta": self.scraped_text_delta,
        }


@dataclass(frozen=True)
class VerificationResponse:
    score: float
    allow_break: bool
    reason: str
    updated_summary: str

    @classmethod
    def from_payload(cls, data: Any) -> "VerificationResponse":
        """
        Validate a decoded response body.

        Args:
            data: Decoded JSON value.

        Returns:
            The validated response.

        Raises:
            ProtocolError: If a field is missing or has the wrong type.
            InvalidScoreError: If score is outside [0, 1].
        """
        if not isinstance(data, dict):
            raise ProtocolError("Response body is not a JSON object")

        missing = [k for k in ("score", "allowBreak", "reason", "updatedSummary") if k not in data]
        if missing:
            raise ProtocolError(f"Response missing fields: {', '.join(missing)}")

        score = data["score"]
        # bool is an int subclass, reject it explicitly
        if isinstance(score, bool) or not isinstance(score, (int, float)):
            raise ProtocolError(f"score must be a number, got {type(score).__name__}")
        if not isinstance(data["allowBreak"], bool):
            raise ProtocolError("allowBreak must be a boolean")
        if not isinstance(data["reason"], str) or not isinstance(data["updatedSummary"], str):
            raise ProtocolError("reason and updatedSummary must be strings")

        score = float(score)
        if math.isnan(score) or not 0.0 <= score <= 1.0:
            raise InvalidScoreError(f"Score out of valid range (0.0-1.0): {score}")

        return cls(
            score=score,
            allow_break=data["allowBreak"],
            reason=data["reason"],
            updated_summary=data["updatedSummary"],
        )


class Verifier(Protocol):
    """Anything that can judge a progress submission."""

    async def verify_progress(
        self,
        session_goal: str,
        current_summary: str,
        user_note: str,
        scraped_delta: str,
    ) -> VerificationResponse:
        ...


class ProgressVerifier:
    """HTTP client for the verification endpoint."""

    def __init__(
        self,
        endpoint: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """
        Args:
            endpoint: Full verification URL (defaults to config.VERIFICATION_ENDPOINT).
            timeout: Hard request deadline in seconds (defaults to config.VERIFICATION_TIMEOUT).
            transport: Optional httpx transport (tests pass httpx.MockTransport).
        """
        self.endpoint = config.VERIFICATION_ENDPOINT if endpoint is None else endpoint
        self.timeout = timeout or config.VERIFICATION_TIMEOUT
        self._transport = transport
        logger.info(self.configuration_status())

    @property
    def is_configured(self) -> bool:
        return config.is_verification_configured(self.endpoint) if self.endpoint else False

    def configuration_status(self) -> str:
        if self.is_configured:
            return f"Verification API configured: {self.endpoint}"
        return "Verification API not configured. Set CLAST_API_URL in your .env file."

    async def verify_progress(
        self,
        session_goal: str,
        current_summary: str,
        user_note: str,
        scraped_delta: str,
    ) -> VerificationResponse:
        """
        Ask the service whether the submitted progress earns a break.

        Raises:
            ConfigurationError: Endpoint missing or invalid.
            TransportError: Network failure, timeout or non-2xx status.
            ProtocolError: Malformed body (InvalidScoreError for bad scores).
        """
        request = VerificationRequest(
            session_goal=session_goal,
            session_state_summary=current_summary,
            user_progress_note=user_note,
            scraped_text_delta=scraped_delta,
        )
        return await self._call_verification_api(request)

    async def _call_verification_api(self, request: VerificationRequest) -> VerificationResponse:
        if not self.is_configured:
            raise ConfigurationError(
                "API not configured. Set CLAST_API_URL to your verification service."
            )

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(
                    self.endpoint,
                    json=request.to_payload(),
                    headers={"Content-Type": "application/json"},
                )
        except httpx.TimeoutException as e:
            logger.warning(f"Verification request timed out after {self.timeout}s: {e}")
            raise TransportError(f"Request timed out after {self.timeout:g}s") from e
        except (httpx.InvalidURL, httpx.UnsupportedProtocol) as e:
            raise ConfigurationError(f"Invalid API endpoint: {self.endpoint}") from e
        except httpx.RequestError as e:
            logger.warning(f"Verification request failed: {e}")
            raise TransportError(f"Network error: {e}") from e

        if not response.is_success:
            message = self._extract_error_message(response)
            logger.warning(f"Verification service returned {response.status_code}: {message}")
            raise TransportError(message, status_code=response.status_code)

        return self._parse_response(response)

    @staticmethod
    def _extract_error_message(response: httpx.Response) -> str:
        """Use the server's {"error": ...} message when present, else "HTTP <code>"."""
        try:
            body = response.json()
        except (json.JSONDecodeError, ValueError):
            body = None
        if isinstance(body, dict) and isinstance(body.get("error"), str):
            return f"Server error: {body['error']}"
        return f"HTTP {response.status_code}"

    @staticmethod
    def _parse_response(response: httpx.Response) -> VerificationResponse:
        try:
            data = response.json()
        except (json.JSONDecodeError, ValueError) as e:
            logger.error(
                f"Failed to decode verification response: {e}. "
                f"Body: {response.text[:_LOG_BODY_LIMIT]!r}"
            )
            raise ProtocolError(f"Failed to parse response: {e}") from e

        try:
            result = VerificationResponse.from_payload(data)
        except ProtocolError as e:
            logger.error(f"Invalid verification response: {e}. Body: {response.text[:_LOG_BODY_LIMIT]!r}")
            raise

        logger.info(f"Verification result: score={result.score:.2f}, allowBreak={result.allow_break}")
        return result


def create_verifier(backend: Optional[str] = None) -> Verifier:
    """
    Create a verifier based on the configured backend.

    Args:
        backend: "remote" (HTTP service) or "openai" (local judge),
                 defaults to config.VERIFIER_BACKEND.
    """
    backend = (backend or config.VERIFIER_BACKEND).lower()

    if backend == "openai":
        from ai.judge import LocalProgressJudge
        logger.info("Using local OpenAI progress judge")
        return LocalProgressJudge()
    if backend != "remote":
        logger.warning(f"Unknown verifier backend '{backend}', defaulting to remote. "
                       f"Supported backends: 'remote', 'openai'")
    return ProgressVerifier()
