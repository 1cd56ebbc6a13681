"""Speech capture service.

Owns the microphone for push-to-talk recording, rejects clips that are too
short or too small, and hands accepted clips to the transcription oracle.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable

from interview_rehearsal.config import get_settings
from interview_rehearsal.errors import (
    NoAudioCapturedError,
    NoSpeechDetectedError,
    RecordingTooShortError,
    SessionStateError,
)
from interview_rehearsal.oracles.base import TranscriptionOracle, TranscriptionResult
from interview_rehearsal.voice.audio_io import AudioIO

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CapturedClip:
    audio: bytes
    duration_ms: float
    mime_type: str = "audio/wav"

    @property
    def size(self) -> int:
        return len(self.audio)


@dataclass(frozen=True)
class CaptureConfig:
    min_capture_ms: int = 500
    min_audio_bytes: int = 1000
    min_transcript_chars: int = 2

    @classmethod
    def from_settings(cls) -> "CaptureConfig":
        settings = get_settings()
        return cls(min_capture_ms=settings.min_capture_ms, min_audio_bytes=settings.min_audio_bytes)


class SpeechCaptureService:
    """Explicit start/stop recording plus transcription and validation."""

    def __init__(
        self,
        audio: AudioIO,
        transcriber: TranscriptionOracle,
        config: CaptureConfig | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
        before_capture: Callable[[], None] | None = None,
    ) -> None:
        self._audio = audio
        self._transcriber = transcriber
        self._config = config or CaptureConfig.from_settings()
        self._clock = clock
        # Called before the microphone opens, typically to silence playback.
        self._before_capture = before_capture
        self._started_at: float | None = None

    @property
    def config(self) -> CaptureConfig:
        return self._config

    @property
    def is_recording(self) -> bool:
        return self._started_at is not None

    async def start(self) -> None:
        """Open the microphone and begin buffering."""
        if self._started_at is not None:
            raise SessionStateError("A recording is already in progress")
        if self._before_capture is not None:
            self._before_capture()
        await self._audio.start_recording()
        self._started_at = self._clock()
        logger.info("[VOICE][CAPTURE] recording started")

    async def stop(self) -> CapturedClip:
        """Finalize the buffer.

        Raises:
            RecordingTooShortError: Below the minimum capture time.
            NoAudioCapturedError: Below the minimum payload size.
        """
        if self._started_at is None:
            raise SessionStateError("No recording in progress")
        started, self._started_at = self._started_at, None
        samples = await self._audio.stop_recording()
        duration_ms = (self._clock() - started) * 1000.0
        payload = self._audio.encode_wav(samples) if len(samples) else b""
        clip = CapturedClip(audio=payload, duration_ms=duration_ms)
        self.validate_clip(clip)
        logger.info(f"[VOICE][CAPTURE] recording stopped duration={duration_ms:.0f}ms bytes={clip.size}")
        return clip

    async def cancel(self) -> None:
        """Stop recording and drop the buffer."""
        if self._started_at is None:
            return
        self._started_at = None
        await self._audio.cancel_recording()
        logger.info("[VOICE][CAPTURE] recording cancelled")

    def validate_clip(self, clip: CapturedClip) -> None:
        """Reject clips below the duration or size thresholds."""
        if clip.duration_ms < self._config.min_capture_ms:
            logger.info(f"[VOICE][CAPTURE] rejected: too short ({clip.duration_ms:.0f}ms)")
            raise RecordingTooShortError(clip.duration_ms, self._config.min_capture_ms)
        if clip.size < self._config.min_audio_bytes:
            logger.info(f"[VOICE][CAPTURE] rejected: payload {clip.size} bytes")
            raise NoAudioCapturedError("No audio captured. Please check your microphone.")

    async def transcribe(self, clip: CapturedClip, language: str) -> TranscriptionResult:
        """Send a clip to the transcription oracle and accept only valid speech.

        Raises:
            NoSpeechDetectedError: Empty, too short or low-confidence result.
        """
        result = await self._transcriber.transcribe(clip.audio, clip.mime_type, language)
        self.validate(result)
        return result

    def validate(self, result: TranscriptionResult) -> None:
        if not result.is_valid_speech(self._config.min_transcript_chars):
            logger.info(
                f"[VOICE][CAPTURE] no usable speech (empty={result.is_empty}, "
                f"confidence={result.confidence}, chars={len(result.transcript.strip())})"
            )
            raise NoSpeechDetectedError("No speech detected. Please try again and speak clearly.")
