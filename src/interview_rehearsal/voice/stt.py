"""Speech-to-text (offline).

Local transcription oracle built on `faster-whisper`.
"""

from __future__ import annotations

import asyncio
import io
import logging
from dataclasses import dataclass

from interview_rehearsal.config import get_settings
from interview_rehearsal.metrics.delivery import (
    clean_transcript,
    count_words,
    detect_filler_words,
    filler_lexicon_for,
)
from interview_rehearsal.oracles.base import TranscriptionMetrics, TranscriptionResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class STTConfig:
    model_size: str = "small"
    # CPU by default; CUDA needs cuDNN present.
    device: str = "cpu"  # cpu|cuda|auto
    compute_type: str | None = None  # e.g. int8, float16
    vad_filter: bool = True
    min_avg_logprob: float = -1.2
    max_no_speech_prob: float = 0.9

    @classmethod
    def from_settings(cls) -> "STTConfig":
        settings = get_settings()
        return cls(
            model_size=settings.stt_model,
            device=settings.stt_device,
            min_avg_logprob=settings.min_avg_logprob,
            max_no_speech_prob=settings.max_no_speech_prob,
        )


@dataclass(frozen=True)
class RawTranscription:
    text: str
    avg_logprob: float | None = None
    no_speech_prob: float | None = None


class WhisperTranscriber:
    """faster-whisper wrapper implementing the transcription oracle."""

    def __init__(self, config: STTConfig | None = None) -> None:
        self._config = config or STTConfig.from_settings()
        self._model = None

    @property
    def config(self) -> STTConfig:
        return self._config

    def _load_model(self):
        if self._model is not None:
            return self._model

        try:
            from faster_whisper import WhisperModel  # type: ignore
        except Exception as e:  # pragma: no cover
            raise RuntimeError(
                "faster-whisper is required for local transcription. Install with: pip install -e '.[voice]'"
            ) from e

        device = "cpu" if self._config.device == "auto" else self._config.device
        kwargs = {}
        if self._config.compute_type:
            kwargs["compute_type"] = self._config.compute_type

        logger.info(f"[VOICE][STT] loading whisper model={self._config.model_size} device={device}")
        self._model = WhisperModel(self._config.model_size, device=device, **kwargs)
        return self._model

    def _transcribe_sync(self, audio: bytes, language: str | None) -> RawTranscription:
        model = self._load_model()
        segments, _info = model.transcribe(
            io.BytesIO(audio),
            language=language,
            vad_filter=self._config.vad_filter,
        )
        texts: list[str] = []
        logprobs: list[float] = []
        no_speech: list[float] = []
        for s in segments:
            if s.text and s.text.strip():
                texts.append(s.text.strip())
            logprobs.append(s.avg_logprob)
            no_speech.append(s.no_speech_prob)
        return RawTranscription(
            text=" ".join(texts).strip(),
            avg_logprob=sum(logprobs) / len(logprobs) if logprobs else None,
            no_speech_prob=max(no_speech) if no_speech else None,
        )

    def to_result(self, raw: RawTranscription, language: str) -> TranscriptionResult:
        """Clean a raw transcription and derive the empty/confidence flags and metrics."""
        transcript = clean_transcript(raw.text)
        is_empty = not transcript or (
            raw.no_speech_prob is not None and raw.no_speech_prob >= self._config.max_no_speech_prob
        )
        if is_empty:
            return TranscriptionResult(transcript="", language=language, is_empty=True, confidence="low")

        confidence = "high"
        if raw.avg_logprob is not None and raw.avg_logprob <= self._config.min_avg_logprob:
            confidence = "low"
        return TranscriptionResult(
            transcript=transcript,
            language=language,
            is_empty=False,
            confidence=confidence,
            metrics=TranscriptionMetrics(
                word_count=count_words(transcript),
                filler_words=detect_filler_words(transcript, filler_lexicon_for(language)),
            ),
        )

    async def transcribe(self, audio: bytes, mime_type: str, language: str) -> TranscriptionResult:
        """Transcribe a WAV clip in a worker thread."""
        logger.debug(f"[VOICE][STT] transcribing {len(audio)} bytes ({mime_type})")
        raw = await asyncio.to_thread(self._transcribe_sync, audio, language or None)
        return self.to_result(raw, language)
