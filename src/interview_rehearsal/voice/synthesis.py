"""Voice synthesis facade.

One synthesize-and-speak contract over two engines:

- the generative engine round-trips to the synthesis oracle and plays the
  returned 24 kHz 16-bit mono PCM through AudioIO;
- the on-device engine asks the platform speech stack (`pyttsx3`) to speak
  directly, so synthesis and playback are the same call.

Quota exhaustion on the generative engine flips the facade to the
on-device engine for the rest of the session, with a single notification.
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, Sequence

import numpy as np

from interview_rehearsal.errors import QuotaExhaustedError, SynthesisError
from interview_rehearsal.oracles.base import SynthesisOracle
from interview_rehearsal.orchestrator.schemas import (
    SynthesisEngine,
    VoiceGender,
    VoiceParameters,
    VoiceStyle,
)
from interview_rehearsal.voice.audio_io import AudioIO, decode_pcm16
from interview_rehearsal.voice.speakable import to_speakable

logger = logging.getLogger(__name__)

FALLBACK_NOTICE = "Premium voice quota reached. Switched to the on-device voice for the rest of this session."

# Generative voice per (style, gender).
VOICE_MAP: dict[tuple[VoiceStyle, VoiceGender], str] = {
    (VoiceStyle.PROFESSIONAL, VoiceGender.FEMALE): "Kore",
    (VoiceStyle.PROFESSIONAL, VoiceGender.MALE): "Fenrir",
    (VoiceStyle.FRIENDLY, VoiceGender.FEMALE): "Leda",
    (VoiceStyle.FRIENDLY, VoiceGender.MALE): "Puck",
}

_MALE_HINTS = re.compile(r"\b(male|david|james|mark|daniel|thomas)\b", re.IGNORECASE)
_FEMALE_HINTS = re.compile(r"\b(female|zira|susan|hazel|samantha|kate|victoria|karen)\b", re.IGNORECASE)


def voice_name_for(voice: VoiceParameters) -> str:
    """Generative voice name for a set of voice parameters."""
    return VOICE_MAP[(voice.style, voice.gender)]


@dataclass(frozen=True)
class SynthesisResult:
    engine: SynthesisEngine
    audio: bytes | None = None  # generative engine only
    played: bool = False
    cancelled: bool = False
    fell_back: bool = False  # served on-device after a generative failure


@dataclass(frozen=True)
class DeviceVoice:
    id: str
    name: str
    language: str = ""
    gender: str = ""
    local: bool = True


def select_fallback_voice(
    voices: Sequence[DeviceVoice],
    language: str,
    gender: VoiceGender,
) -> DeviceVoice | None:
    """Best-effort on-device voice choice.

    Platform voices rarely declare a gender, so it is guessed from common
    OS voice names. Scoring: language prefix +10, gender hint +5, opposite
    hint -5, local voice +1. Ties keep the earliest voice.
    """
    if not voices:
        return None

    prefix = (language or "en").lower()[:2]
    lang_voices = [v for v in voices if v.language.lower().startswith(prefix)]
    pool = lang_voices or list(voices)
    check, anti = (_MALE_HINTS, _FEMALE_HINTS) if gender == VoiceGender.MALE else (_FEMALE_HINTS, _MALE_HINTS)

    best = pool[0]
    best_score = -999
    for v in pool:
        label = f"{v.name} {v.gender}"
        score = 0
        if v.language.lower().startswith(prefix):
            score += 10
        if check.search(label):
            score += 5
        if anti.search(label):
            score -= 5
        if v.local:
            score += 1
        if score > best_score:
            best, best_score = v, score
    return best


class GenerativeEngine:
    """Remote synthesis oracle plus PCM playback."""

    def __init__(self, oracle: SynthesisOracle, audio: AudioIO, sample_rate: int = 24000) -> None:
        self._oracle = oracle
        self._audio = audio
        self._sample_rate = sample_rate

    async def synthesize(self, text: str, voice: VoiceParameters) -> bytes:
        """Fetch PCM for a line.

        Raises:
            QuotaExhaustedError: Rate limit or quota signal from the oracle.
            SynthesisError: Audio missing, truncated to nothing, or silent.
        """
        pcm = await self._oracle.synthesize(text, voice)
        if len(pcm) % 2:
            logger.warning(f"[VOICE][TTS] odd PCM length {len(pcm)}, dropping trailing byte")
            pcm = pcm[:-1]
        samples = decode_pcm16(pcm)
        if samples.size == 0 or not np.any(samples):
            raise SynthesisError("Synthesis returned empty or silent audio")
        return pcm

    async def play(self, pcm: bytes) -> bool:
        """Play fetched PCM. Returns False if interrupted by ``stop()``."""
        try:
            return await self._audio.play_pcm(pcm, self._sample_rate)
        except RuntimeError as e:
            raise SynthesisError(f"Audio playback failed: {e}") from e

    async def probe(self) -> bool:
        return await self._oracle.probe()

    def stop(self) -> None:
        self._audio.stop_playback()


class OnDeviceEngine:
    """Platform speech through `pyttsx3`, driven from a worker thread."""

    def __init__(self, language: str = "en", rate: int | None = None, driver_name: str | None = None) -> None:
        self._language = language
        self._rate = rate
        self._driver_name = driver_name
        self._engine: Any = None
        self._preferred_voice: str | None = None
        self._speaking = False

    @property
    def language(self) -> str:
        return self._language

    def set_language(self, language: str) -> None:
        self._language = language or "en"

    def set_preferred_voice(self, name: str | None) -> None:
        """Use a named platform voice (persona assignment) when it exists."""
        self._preferred_voice = name or None

    def _require_pyttsx3(self):
        try:
            import pyttsx3  # type: ignore

            return pyttsx3
        except Exception as e:  # pragma: no cover
            raise RuntimeError(
                "pyttsx3 is required for on-device speech. Install with: pip install -e '.[voice]'. "
                "On Linux the espeak-ng package must also be installed."
            ) from e

    def _get_engine(self):
        if self._engine is None:
            pyttsx3 = self._require_pyttsx3()
            self._engine = pyttsx3.init(self._driver_name) if self._driver_name else pyttsx3.init()
            if self._rate:
                self._engine.setProperty("rate", self._rate)
        return self._engine

    @staticmethod
    def _voice_language(raw: Any) -> str:
        langs = getattr(raw, "languages", None) or []
        for lang in langs:
            if isinstance(lang, bytes):
                # espeak prefixes a priority byte.
                lang = lang.decode("utf-8", errors="ignore").lstrip("\x00\x01\x02\x03\x04\x05\x06\x07\x08\t")
            if lang:
                return str(lang).replace("_", "-")
        vid = str(getattr(raw, "id", ""))
        m = re.search(r"\b([a-z]{2})[-_][A-Za-z]{2}\b", vid)
        return m.group(1) if m else ""

    def list_voices(self) -> list[DeviceVoice]:
        engine = self._get_engine()
        voices = []
        for raw in engine.getProperty("voices") or []:
            voices.append(
                DeviceVoice(
                    id=str(raw.id),
                    name=str(getattr(raw, "name", "") or raw.id),
                    language=self._voice_language(raw),
                    gender=str(getattr(raw, "gender", "") or ""),
                )
            )
        return voices

    def resolve_voice(self, voice: VoiceParameters) -> DeviceVoice | None:
        voices = self.list_voices()
        if self._preferred_voice:
            wanted = self._preferred_voice.lower()
            match = next((v for v in voices if v.name == self._preferred_voice), None) or next(
                (v for v in voices if wanted in v.name.lower()), None
            )
            if match is not None:
                return match
        return select_fallback_voice(voices, self._language, voice.gender)

    def _speak_sync(self, text: str, voice: VoiceParameters) -> None:
        engine = self._get_engine()
        chosen = self.resolve_voice(voice)
        if chosen is not None:
            engine.setProperty("voice", chosen.id)
        engine.say(text)
        engine.runAndWait()

    async def speak(self, text: str, voice: VoiceParameters) -> bool:
        """Speak a line. Returns False if interrupted by ``stop()``."""
        self._speaking = True
        try:
            await asyncio.to_thread(self._speak_sync, text, voice)
        except asyncio.CancelledError:
            self.stop()
            raise
        except RuntimeError as e:
            raise SynthesisError(f"On-device speech failed: {e}") from e
        finally:
            was_speaking, self._speaking = self._speaking, False
        return was_speaking

    def stop(self) -> None:
        if not self._speaking:
            return
        self._speaking = False
        if self._engine is not None:
            self._engine.stop()


class VoiceSynthesisFacade:
    """Single synthesis/playback interface with quota fallback.

    At most one synthesis is in flight; starting another or calling
    ``stop()`` cancels the pending network call and silences output.
    """

    def __init__(
        self,
        on_device: OnDeviceEngine,
        generative: GenerativeEngine | None = None,
        *,
        engine: SynthesisEngine = SynthesisEngine.ON_DEVICE,
        notifier: Callable[[str], None] | None = None,
    ) -> None:
        self._on_device = on_device
        self._generative = generative
        self._engine = SynthesisEngine.ON_DEVICE
        self._notifier = notifier
        self._quota_exhausted = False
        self._fallback_notified = False
        self._probe_verdict: bool | None = None
        self._epoch = 0
        self._inflight: asyncio.Task | None = None
        self.configure(engine)

    @property
    def engine(self) -> SynthesisEngine:
        """Configured engine."""
        return self._engine

    @property
    def active_engine(self) -> SynthesisEngine:
        """Engine actually in use, accounting for quota fallback."""
        if self._engine == SynthesisEngine.GENERATIVE and self._quota_exhausted:
            return SynthesisEngine.ON_DEVICE
        return self._engine

    @property
    def is_using_fallback(self) -> bool:
        return self._engine == SynthesisEngine.GENERATIVE and self._quota_exhausted

    @property
    def has_generative(self) -> bool:
        return self._generative is not None

    @property
    def is_busy(self) -> bool:
        return self._inflight is not None and not self._inflight.done()

    def set_notifier(self, notifier: Callable[[str], None] | None) -> None:
        self._notifier = notifier

    def set_language(self, language: str) -> None:
        self._on_device.set_language(language)

    def set_device_voice(self, name: str | None) -> None:
        self._on_device.set_preferred_voice(name)

    def configure(self, engine: SynthesisEngine) -> None:
        """Select the engine and start a fresh fallback cycle.

        Raises:
            ValueError: Generative engine requested but none is wired.
        """
        engine = SynthesisEngine(engine)
        if engine == SynthesisEngine.GENERATIVE and self._generative is None:
            raise ValueError("Generative synthesis is not available with this backend")
        self.stop()
        self._engine = engine
        self._quota_exhausted = False
        self._fallback_notified = False
        self._probe_verdict = None
        logger.info(f"[VOICE][TTS] engine configured: {engine.value}")

    def stop(self) -> None:
        """Abort pending synthesis and silence any output."""
        self._epoch += 1
        if self._inflight is not None and not self._inflight.done():
            self._inflight.cancel()
        if self._generative is not None:
            self._generative.stop()
        self._on_device.stop()

    async def synthesize_and_speak(self, text: str, voice: VoiceParameters) -> SynthesisResult:
        """Synthesize a line and play it to completion.

        Returns a cancelled result (instead of raising) when ``stop()`` or a
        newer request aborted this one.

        Raises:
            TransientNetworkError: Generative call failed for a non-quota reason.
            SynthesisError: On-device speech or PCM playback failed.
        """
        self.stop()
        epoch = self._epoch
        task = asyncio.ensure_future(self._run(text, voice))
        self._inflight = task
        try:
            return await task
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if current is not None and current.cancelling():
                raise
            logger.debug(f"[VOICE][TTS] synthesis cancelled (epoch {epoch} -> {self._epoch})")
            return SynthesisResult(engine=self.active_engine, cancelled=True)
        finally:
            if self._inflight is task:
                self._inflight = None

    async def _run(self, text: str, voice: VoiceParameters) -> SynthesisResult:
        speakable = to_speakable(text)
        if not speakable:
            return SynthesisResult(engine=self.active_engine)

        if self.active_engine == SynthesisEngine.GENERATIVE and self._generative is not None:
            try:
                pcm = await self._generative.synthesize(speakable, voice)
            except QuotaExhaustedError as e:
                logger.warning(f"[VOICE][TTS] quota exhausted ({e.status_code}), switching to on-device")
                self._activate_fallback()
                return await self._speak_on_device(speakable, voice, fell_back=True)
            except SynthesisError as e:
                logger.warning(f"[VOICE][TTS] unusable generative audio ({e}), speaking this line on-device")
                return await self._speak_on_device(speakable, voice, fell_back=True)

            self._probe_verdict = None
            logger.debug(f"[VOICE][TTS] playing {len(pcm)} bytes voice={voice_name_for(voice)}")
            completed = await self._generative.play(pcm)
            return SynthesisResult(
                engine=SynthesisEngine.GENERATIVE,
                audio=pcm,
                played=completed,
                cancelled=not completed,
            )

        return await self._speak_on_device(speakable, voice)

    async def _speak_on_device(self, text: str, voice: VoiceParameters, fell_back: bool = False) -> SynthesisResult:
        completed = await self._on_device.speak(text, voice)
        return SynthesisResult(
            engine=SynthesisEngine.ON_DEVICE,
            played=completed,
            cancelled=not completed,
            fell_back=fell_back,
        )

    def _activate_fallback(self) -> None:
        self._quota_exhausted = True
        if self._fallback_notified:
            return
        self._fallback_notified = True
        logger.info("[VOICE][TTS] fallback to on-device engine activated")
        if self._notifier is not None:
            self._notifier(FALLBACK_NOTICE)

    async def probe_quota(self, force: bool = False) -> bool:
        """Pre-flight check of generative availability.

        The verdict is cached until a successful generative call or
        ``configure()``; ``force`` re-probes anyway. An unavailable verdict
        activates the fallback.
        """
        if self._generative is None:
            return False
        if self._probe_verdict is not None and not force:
            return self._probe_verdict

        available = await self._generative.probe()
        self._probe_verdict = available
        logger.info(f"[VOICE][TTS] quota probe: {'available' if available else 'unavailable'}")
        if not available and self._engine == SynthesisEngine.GENERATIVE:
            self._activate_fallback()
        return available
