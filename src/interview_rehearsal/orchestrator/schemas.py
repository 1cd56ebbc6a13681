"""
Pydantic schemas for the orchestrator module.

Defines data models for session configuration, interviewer personas,
transcript entries, and session snapshots.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


def _now_utc() -> datetime:
    """Get current UTC datetime (timezone-aware)."""
    return datetime.now(timezone.utc)


# Content stored in the candidate slot when a question is skipped.
SKIP_SENTINEL = "[SKIPPED]"
# What the question oracle receives as the "last response" for a skipped turn.
SKIP_PROMPT = "[SKIP] Skip this question."


class Speaker(str, Enum):
    """Role of the speaker in a transcript entry."""

    INTERVIEWER = "interviewer"
    CANDIDATE = "candidate"


class InterviewType(str, Enum):
    """Kinds of interview, each with its own turn target."""

    FULL = "full"
    BEHAVIORAL = "behavioral"
    TECHNICAL = "technical"
    QUICK = "quick"

    @property
    def target_turns(self) -> int:
        """Number of candidate turns before the interviewer closes."""
        return INTERVIEW_TURN_TARGETS[self]


INTERVIEW_TURN_TARGETS: dict[InterviewType, int] = {
    InterviewType.FULL: 8,
    InterviewType.BEHAVIORAL: 5,
    InterviewType.TECHNICAL: 5,
    InterviewType.QUICK: 3,
}


class SessionPhase(str, Enum):
    """States of the conversation state machine."""

    IDLE = "idle"
    ACTIVE = "active"
    COMPLETING = "completing"
    COMPLETE = "complete"
    ABORTED = "aborted"


class SynthesisEngine(str, Enum):
    """Voice synthesis engines behind the synthesis facade."""

    GENERATIVE = "generative"
    ON_DEVICE = "on_device"


class VoiceGender(str, Enum):
    """Vocal register requested from the synthesis engines."""

    FEMALE = "female"
    MALE = "male"


class VoiceStyle(str, Enum):
    """Delivery style requested from the synthesis engines."""

    PROFESSIONAL = "professional"
    FRIENDLY = "friendly"


# Persona styles collapse onto the two delivery styles the synthesis oracle knows.
_PERSONA_STYLE_MAP: dict[str, VoiceStyle] = {
    "formal": VoiceStyle.PROFESSIONAL,
    "technical": VoiceStyle.PROFESSIONAL,
    "professional": VoiceStyle.PROFESSIONAL,
    "casual": VoiceStyle.FRIENDLY,
    "behavioral": VoiceStyle.FRIENDLY,
    "friendly": VoiceStyle.FRIENDLY,
}


class InterviewerPersona(BaseModel):
    """
    An interviewer persona produced by the (external) persona generator.

    Only the fields the orchestrator needs for presentation and voice
    selection are modelled; everything else is kept in ``details`` and
    forwarded to the question oracle untouched.
    """

    name: str = Field(default="Interviewer", description="Display name of the interviewer")
    first_name: str | None = Field(default=None, description="First name, used for short labels")
    role: str = Field(default="", description="Interviewer job title")
    company: str = Field(default="", description="Interviewer company")
    gender: str | None = Field(default=None, description="Declared gender, if known")
    style: str | None = Field(default=None, description="Interviewing style (formal, casual, ...)")
    device_voice: str | None = Field(
        default=None,
        description="Preferred on-device voice name assigned to this persona",
    )
    details: dict[str, Any] = Field(default_factory=dict, description="Additional persona data")

    @property
    def role_display(self) -> str:
        """Role and company joined for display, or whichever is present."""
        if self.role and self.company:
            return f"{self.role} · {self.company}"
        return self.role or self.company

    @property
    def short_name(self) -> str:
        """First name for compact labels."""
        if self.first_name:
            return self.first_name
        return self.name.split(" ")[0] if self.name else "Interviewer"


class VoiceParameters(BaseModel):
    """Vocal register and delivery style, frozen for a session's lifetime."""

    model_config = ConfigDict(frozen=True)

    gender: VoiceGender = Field(default=VoiceGender.FEMALE, description="Vocal register")
    style: VoiceStyle = Field(default=VoiceStyle.PROFESSIONAL, description="Delivery style")

    @classmethod
    def from_persona(cls, persona: InterviewerPersona | None) -> "VoiceParameters":
        """
        Derive voice parameters from an interviewer persona.

        Args:
            persona: Persona to derive from; None yields the defaults.

        Returns:
            A new, immutable VoiceParameters instance.
        """
        if persona is None:
            return cls()
        gender = VoiceGender.MALE if (persona.gender or "").strip().lower() == "male" else VoiceGender.FEMALE
        style = _PERSONA_STYLE_MAP.get((persona.style or "").strip().lower(), VoiceStyle.PROFESSIONAL)
        return cls(gender=gender, style=style)


class TranscriptEntry(BaseModel):
    """A single transcript entry. Immutable once appended."""

    model_config = ConfigDict(frozen=True)

    role: Speaker = Field(..., description="Role of the speaker")
    content: str = Field(..., description="Spoken or typed text, or the skip sentinel")
    timestamp: datetime = Field(default_factory=_now_utc, description="When the entry was appended")

    @property
    def is_skip(self) -> bool:
        """True if this entry marks a deliberately skipped turn."""
        return self.role == Speaker.CANDIDATE and self.content == SKIP_SENTINEL


class SessionConfig(BaseModel):
    """Configuration for an interview session."""

    interview_type: InterviewType = Field(default=InterviewType.FULL, description="Kind of interview")
    target_turns: int | None = Field(
        default=None,
        ge=1,
        description="Explicit turn target; defaults to the interview type's target",
    )
    language: str = Field(default="en", description="Interview language code")
    question_style: str = Field(default="balanced", description="Question style hint")
    personas: list[InterviewerPersona] = Field(
        default_factory=list,
        description="Interviewer personas; the first one opens the interview",
    )
    cv_data: dict[str, Any] | None = Field(default=None, description="Parsed CV, forwarded to oracles")
    job_data: dict[str, Any] | None = Field(default=None, description="Parsed job description, forwarded to oracles")
    voice_enabled: bool = Field(default=True, description="Narrate interviewer lines")
    tts_engine: SynthesisEngine = Field(
        default=SynthesisEngine.ON_DEVICE,
        description="Preferred synthesis engine",
    )

    def resolved_target_turns(self) -> int:
        """Get the effective turn target for this configuration."""
        return self.target_turns or self.interview_type.target_turns


class SessionSnapshot(BaseModel):
    """Read-only view of a session handed to the presentation layer."""

    session_id: UUID | None = Field(default=None, description="Session identifier, None when idle")
    generation: int = Field(default=0, description="Reset generation this snapshot belongs to")
    phase: SessionPhase = Field(default=SessionPhase.IDLE, description="State machine phase")
    transcript: list[TranscriptEntry] = Field(default_factory=list, description="Ordered transcript")
    questions_asked: int = Field(default=0, description="Candidate turns completed")
    target_turns: int = Field(default=0, description="Configured turn target")
    is_complete: bool = Field(default=False, description="True once the closing line was delivered")
    interviewer_name: str = Field(default="Interviewer", description="Active interviewer display name")
    interviewer_index: int = Field(default=0, description="Active interviewer persona index")
    retry_available: bool = Field(default=False, description="A failed turn can be retried")
