"""
Orchestrator module for managing the interview session flow.

``InterviewOrchestrator`` lives in
``interview_rehearsal.orchestrator.session_orchestrator``; it depends on the
oracle and voice packages, which in turn import the schemas exported here.
"""

from interview_rehearsal.orchestrator.schemas import (
    SKIP_SENTINEL,
    InterviewerPersona,
    InterviewType,
    SessionConfig,
    SessionPhase,
    SessionSnapshot,
    Speaker,
    SynthesisEngine,
    TranscriptEntry,
    VoiceGender,
    VoiceParameters,
    VoiceStyle,
)
from interview_rehearsal.orchestrator.events import EventChannel, SessionEvent, SessionEventType
from interview_rehearsal.orchestrator.session_state import InterviewSession

__all__ = [
    "SKIP_SENTINEL",
    "EventChannel",
    "InterviewSession",
    "InterviewType",
    "InterviewerPersona",
    "SessionConfig",
    "SessionEvent",
    "SessionEventType",
    "SessionPhase",
    "SessionSnapshot",
    "Speaker",
    "SynthesisEngine",
    "TranscriptEntry",
    "VoiceGender",
    "VoiceParameters",
    "VoiceStyle",
]
