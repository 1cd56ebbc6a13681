"""Voice subsystem: audio I/O, speech capture, transcription and synthesis."""

from interview_rehearsal.voice.audio_io import AudioIO, AudioIOConfig
from interview_rehearsal.voice.capture import CapturedClip, CaptureConfig, SpeechCaptureService
from interview_rehearsal.voice.synthesis import (
    GenerativeEngine,
    OnDeviceEngine,
    SynthesisResult,
    VoiceSynthesisFacade,
)

__all__ = [
    "AudioIO",
    "AudioIOConfig",
    "CaptureConfig",
    "CapturedClip",
    "GenerativeEngine",
    "OnDeviceEngine",
    "SpeechCaptureService",
    "SynthesisResult",
    "VoiceSynthesisFacade",
]
