"""
Oracle boundary.

Request/response models and protocols for the external generative
collaborators: question generation, transcription, speech synthesis and
feedback generation. Every oracle is async and may raise
TransientNetworkError; the synthesis oracle may also raise
QuotaExhaustedError.
"""

from typing import Any, Literal, Protocol, runtime_checkable

from pydantic import BaseModel, Field

from interview_rehearsal.metrics.delivery import FillerWordCounts
from interview_rehearsal.orchestrator.schemas import (
    InterviewerPersona,
    InterviewType,
    VoiceParameters,
)

# Lines used when the question oracle answers without any text.
FALLBACK_OPENING = "Hello! Tell me about yourself."
FALLBACK_QUESTION = "That's interesting. Can you tell me more about your experience?"
FALLBACK_CLOSING = "Thank you for your time. Best of luck!"

# Phrase synthesized by the quota probe.
PROBE_PHRASE = "This is a voice test."

Confidence = Literal["high", "medium", "low"]


class QuestionRequest(BaseModel):
    """Everything the question oracle needs to produce the next interviewer line."""

    persona: InterviewerPersona | None = Field(default=None, description="Active interviewer persona")
    cv_data: dict[str, Any] | None = Field(default=None)
    job_data: dict[str, Any] | None = Field(default=None)
    history: list[dict[str, str]] = Field(default_factory=list, description="Transcript so far")
    last_response: str | None = Field(default=None, description="Candidate reply, None for the opening")
    turn_index: int = Field(default=0, ge=0, description="Candidate turns already completed")
    target_turns: int = Field(default=1, ge=1)
    question_style: str = Field(default="balanced")
    language: str = Field(default="en")
    interview_type: InterviewType = Field(default=InterviewType.FULL)
    closing: bool = Field(default=False, description="Ask for a closing statement instead of a question")

    @property
    def is_opening(self) -> bool:
        return self.last_response is None

    def fallback_line(self) -> str:
        """Generic line substituted when the oracle returns no text."""
        if self.is_opening:
            return FALLBACK_OPENING
        return FALLBACK_CLOSING if self.closing else FALLBACK_QUESTION


class QuestionReply(BaseModel):
    """Question oracle output; ``message`` may be missing or blank."""

    message: str | None = Field(default=None)


class TranscriptionMetrics(BaseModel):
    """The transcription oracle's own analysis of a clip."""

    word_count: int = Field(default=0, ge=0)
    filler_words: FillerWordCounts = Field(default_factory=FillerWordCounts)


class TranscriptionResult(BaseModel):
    """Transcription oracle output."""

    transcript: str = Field(default="")
    language: str = Field(default="en")
    is_empty: bool = Field(default=False)
    confidence: Confidence = Field(default="high")
    metrics: TranscriptionMetrics = Field(default_factory=TranscriptionMetrics)

    def is_valid_speech(self, min_chars: int = 2) -> bool:
        """
        Check whether the result can be accepted as a candidate response.

        Requires at least ``min_chars`` characters after trimming, no empty
        flag and no low-confidence flag.
        """
        if self.is_empty or self.confidence == "low":
            return False
        return len(self.transcript.strip()) >= min_chars


class QuestionAnswerPair(BaseModel):
    """An interviewer line with the candidate reply that followed it."""

    question: str
    answer: str
    skipped: bool = False


class FeedbackRequest(BaseModel):
    """Input for the feedback-generation oracle."""

    qa_pairs: list[QuestionAnswerPair] = Field(default_factory=list)
    cv_data: dict[str, Any] | None = Field(default=None)
    job_data: dict[str, Any] | None = Field(default=None)
    language: str = Field(default="en")


@runtime_checkable
class QuestionOracle(Protocol):
    """Produces interviewer lines."""

    async def next_line(self, request: QuestionRequest) -> QuestionReply: ...


@runtime_checkable
class TranscriptionOracle(Protocol):
    """Turns recorded audio into text plus delivery analysis."""

    async def transcribe(self, audio: bytes, mime_type: str, language: str) -> TranscriptionResult: ...


@runtime_checkable
class SynthesisOracle(Protocol):
    """Remote speech synthesis returning raw 24 kHz 16-bit mono PCM."""

    async def synthesize(self, text: str, voice: VoiceParameters) -> bytes: ...

    async def probe(self) -> bool: ...


@runtime_checkable
class FeedbackOracle(Protocol):
    """Scores a finished interview; returns the raw, unvalidated payload."""

    async def generate_feedback(self, request: FeedbackRequest) -> dict[str, Any]: ...
