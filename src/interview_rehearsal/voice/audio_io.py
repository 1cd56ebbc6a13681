"""Microphone and speaker access for voice interviews.

Hardware I/O only; nothing here knows about sessions or oracles. Capture is
push-to-talk, captured audio is wrapped as WAV in memory, and playback keeps
at most one output running.
"""

from __future__ import annotations

import asyncio
import io
import logging
import wave
from dataclasses import dataclass

import numpy as np

logger = logging.getLogger(__name__)

_PORTAUDIO_HINT = (
    "Voice mode needs sounddevice and PortAudio: pip install -e '.[voice]' "
    "(Debian/Ubuntu also: apt-get install portaudio19-dev)."
)


@dataclass(frozen=True)
class AudioIOConfig:
    capture_sample_rate: int = 16000
    playback_sample_rate: int = 24000
    channels: int = 1
    dtype: str = "int16"


def decode_pcm16(pcm: bytes) -> np.ndarray:
    """Decode little-endian 16-bit PCM into float32 samples in [-1, 1).

    A trailing odd byte (truncated sample) is dropped.
    """
    if len(pcm) % 2:
        pcm = pcm[:-1]
    if not pcm:
        return np.zeros(0, dtype=np.float32)
    return np.frombuffer(pcm, dtype="<i2").astype(np.float32) / 32768.0


def _load_sounddevice():
    try:
        import sounddevice as sd  # type: ignore
    except Exception as e:  # pragma: no cover
        raise RuntimeError(_PORTAUDIO_HINT) from e
    return sd


class AudioIO:
    """Owns the input stream and the output device for one process."""

    def __init__(self, config: AudioIOConfig | None = None) -> None:
        self._config = config or AudioIOConfig()
        self._input = None
        self._chunks: list[np.ndarray] = []
        self._playback_id = 0
        self._playing = False

    @property
    def config(self) -> AudioIOConfig:
        return self._config

    @property
    def is_recording(self) -> bool:
        return self._input is not None

    @property
    def is_playing(self) -> bool:
        return self._playing

    def _empty_capture(self) -> np.ndarray:
        return np.zeros((0, self._config.channels), dtype=np.int16)

    async def start_recording(self) -> None:
        """Open the microphone and buffer chunks until stopped."""
        if self._input is not None:
            raise RuntimeError("Recording already in progress")
        sd = _load_sounddevice()
        self._chunks = []

        def on_chunk(indata, frames, time_info, status):  # noqa: ANN001
            if status:
                logger.debug(f"[VOICE][CAPTURE] input status: {status}")
            self._chunks.append(indata.copy())

        self._input = sd.InputStream(
            samplerate=self._config.capture_sample_rate,
            channels=self._config.channels,
            dtype=self._config.dtype,
            callback=on_chunk,
        )
        await asyncio.to_thread(self._input.start)

    async def stop_recording(self) -> np.ndarray:
        """Close the microphone; returns int16 samples shaped [samples, channels]."""
        stream, self._input = self._input, None
        if stream is None:
            return self._empty_capture()
        await asyncio.to_thread(stream.stop)
        await asyncio.to_thread(stream.close)

        chunks, self._chunks = self._chunks, []
        return np.concatenate(chunks, axis=0) if chunks else self._empty_capture()

    async def cancel_recording(self) -> None:
        """Close the microphone and drop the buffered audio."""
        await self.stop_recording()

    def encode_wav(self, audio: np.ndarray) -> bytes:
        """Wrap int16 samples in an in-memory WAV container."""
        samples = audio.reshape(-1, 1) if audio.ndim == 1 else audio
        buf = io.BytesIO()
        with wave.open(buf, "wb") as out:
            out.setnchannels(self._config.channels)
            out.setsampwidth(np.dtype(np.int16).itemsize)
            out.setframerate(self._config.capture_sample_rate)
            out.writeframes(samples.astype(np.int16, copy=False).tobytes())
        return buf.getvalue()

    async def play_pcm(self, pcm: bytes, sample_rate: int | None = None) -> bool:
        """Play 16-bit mono PCM. Starting playback stops any previous one.

        Returns True if playback ran to the end, False if it was stopped.
        """
        sd = _load_sounddevice()
        samples = decode_pcm16(pcm)
        self.stop_playback()
        self._playback_id += 1
        my_id = self._playback_id
        if samples.size == 0:
            return True

        self._playing = True
        sd.play(samples, samplerate=sample_rate or self._config.playback_sample_rate, blocking=False)
        try:
            await asyncio.to_thread(sd.wait)
        except asyncio.CancelledError:
            if my_id == self._playback_id:
                self.stop_playback()
            raise
        finally:
            if my_id == self._playback_id:
                self._playing = False
        return my_id == self._playback_id

    def stop_playback(self) -> None:
        """Silence any active output immediately."""
        self._playback_id += 1
        if not self._playing:
            return
        self._playing = False
        sd = _load_sounddevice()
        sd.stop()
        logger.debug("[VOICE][AUDIO] playback stopped")
