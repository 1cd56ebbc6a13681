"""
Interview AI service client.

Speaks the service's JSON envelope (``{success, data, message}``) over a
single lazily created httpx.AsyncClient and implements every oracle
protocol: question generation, transcription, synthesis and feedback.
"""

import base64
import binascii
import logging
from typing import Any

import httpx
from pydantic import ValidationError

from interview_rehearsal.config import get_settings
from interview_rehearsal.errors import QuotaExhaustedError, SynthesisError, TransientNetworkError
from interview_rehearsal.oracles.base import (
    FeedbackRequest,
    QuestionReply,
    QuestionRequest,
    TranscriptionResult,
)
from interview_rehearsal.orchestrator.schemas import VoiceParameters

logger = logging.getLogger(__name__)

QUOTA_HTTP_CODES = frozenset({429, 503})
_QUOTA_MARKERS = ("resource_exhausted", "quota", "rate limit")


def is_quota_message(message: str | None) -> bool:
    """Check whether an error message describes rate-limit or quota exhaustion."""
    lowered = (message or "").lower()
    return any(marker in lowered for marker in _QUOTA_MARKERS)


class InterviewServiceClient:
    """
    Client for the interview AI service.

    Implements QuestionOracle, TranscriptionOracle, SynthesisOracle and
    FeedbackOracle against one base URL.
    """

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        api_key: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Initialize the service client.

        Args:
            base_url: Service base URL (uses config if not provided).
            timeout: Request timeout in seconds (uses config if not provided).
            api_key: Optional bearer token (uses config if not provided).
            transport: Custom httpx transport, mainly for tests.
        """
        settings = get_settings()
        self._base_url = (base_url or settings.service_base_url).rstrip("/")
        self._timeout = timeout or settings.service_timeout
        self._api_key = api_key if api_key is not None else settings.service_api_key
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None:
            headers = {"Accept": "application/json"}
            if self._api_key:
                headers["Authorization"] = f"Bearer {self._api_key}"
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self._timeout,
                headers=headers,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def _post(self, endpoint: str, payload: dict[str, Any], quota_aware: bool = False) -> dict[str, Any]:
        """
        POST a JSON payload and unwrap the response envelope.

        Args:
            endpoint: Path relative to the base URL.
            payload: JSON body.
            quota_aware: Map 429/503 and quota messages to QuotaExhaustedError.

        Returns:
            The envelope's ``data`` object.

        Raises:
            QuotaExhaustedError: On quota signals when ``quota_aware``.
            TransientNetworkError: On transport errors, HTTP errors or malformed bodies.
        """
        client = await self._get_client()
        try:
            response = await client.post(endpoint, json=payload)
        except httpx.TimeoutException as e:
            raise TransientNetworkError(f"Request to {endpoint} timed out") from e
        except httpx.HTTPError as e:
            raise TransientNetworkError(f"Network error: {e}") from e

        status = response.status_code
        if quota_aware and status in QUOTA_HTTP_CODES:
            logger.warning(f"[VOICE][TTS] {endpoint} answered {status}, quota exhausted")
            raise QuotaExhaustedError(status_code=status)

        try:
            body = response.json()
        except ValueError as e:
            logger.warning(f"Malformed response from {endpoint} (status {status}, {len(response.content)} bytes)")
            raise TransientNetworkError(f"Malformed response from {endpoint}", status_code=status) from e

        if not isinstance(body, dict):
            raise TransientNetworkError(f"Unexpected response shape from {endpoint}", status_code=status)

        if not response.is_success or not body.get("success"):
            message = body.get("message") or "Request failed"
            errors = body.get("errors")
            if isinstance(errors, dict) and errors:
                details = "; ".join(f"{key}: {', '.join(map(str, val))}" for key, val in errors.items())
                message = f"{message} ({details})"
            if quota_aware and is_quota_message(message):
                raise QuotaExhaustedError(message, status_code=status)
            raise TransientNetworkError(message, status_code=status)

        data = body.get("data")
        return data if isinstance(data, dict) else {}

    async def next_line(self, request: QuestionRequest) -> QuestionReply:
        """Request the opening line, the next question or the closing statement."""
        common = {
            "cv_data": request.cv_data,
            "jd_data": request.job_data,
            "interviewer_persona": request.persona.model_dump(mode="json") if request.persona else None,
            "language": request.language,
            "question_style": request.question_style,
            "target_questions": request.target_turns,
            "interview_type": request.interview_type.value,
        }
        if request.is_opening:
            data = await self._post("/interviews/start", common)
        else:
            data = await self._post(
                "/interviews/respond",
                {
                    **common,
                    "conversation_history": request.history,
                    "candidate_response": request.last_response,
                    "questions_asked": request.turn_index,
                },
            )
        message = data.get("interviewer_message")
        return QuestionReply(message=message if isinstance(message, str) else None)

    async def transcribe(self, audio: bytes, mime_type: str, language: str) -> TranscriptionResult:
        """Send a clip for transcription and filler analysis."""
        data = await self._post(
            "/voice/transcribe",
            {
                "audio_data": base64.b64encode(audio).decode("ascii"),
                "mime_type": mime_type,
                "language": language,
            },
        )
        try:
            return TranscriptionResult.model_validate(data)
        except ValidationError as e:
            raise TransientNetworkError(f"Malformed transcription result: {e.error_count()} errors") from e

    async def synthesize(self, text: str, voice: VoiceParameters) -> bytes:
        """
        Synthesize speech.

        Returns:
            Raw 24 kHz 16-bit mono PCM; empty if the service sent no audio.

        Raises:
            QuotaExhaustedError: On 429/503 or a quota message.
            SynthesisError: If the audio payload is not valid base64.
        """
        data = await self._post(
            "/voice/synthesize",
            {"text": text, "gender": voice.gender.value, "style": voice.style.value},
            quota_aware=True,
        )
        content = data.get("audio_content") or ""
        try:
            return base64.b64decode(content)
        except (binascii.Error, ValueError) as e:
            raise SynthesisError("Synthesis returned a malformed audio payload") from e

    async def probe(self) -> bool:
        """Ping the synthesis endpoint; any failure means unavailable."""
        try:
            data = await self._post("/voice/ping", {}, quota_aware=True)
        except QuotaExhaustedError:
            logger.info("[VOICE][TTS] quota probe: exhausted")
            return False
        except TransientNetworkError as e:
            logger.info(f"[VOICE][TTS] quota probe failed: {e}")
            return False
        return bool(data.get("available", True))

    async def generate_feedback(self, request: FeedbackRequest) -> dict[str, Any]:
        """Request scored feedback for the question/answer pairs."""
        return await self._post(
            "/feedback/generate",
            {
                "qa_pairs": [pair.model_dump() for pair in request.qa_pairs],
                "cv_data": request.cv_data,
                "jd_data": request.job_data,
                "language": request.language,
            },
        )
