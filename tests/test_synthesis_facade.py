"""
Tests for the voice synthesis facade and its engines.

Engines and the synthesis oracle are fakes; no audio device is opened.
"""

import asyncio

import numpy as np
import pytest

from interview_rehearsal.errors import QuotaExhaustedError, SynthesisError, TransientNetworkError
from interview_rehearsal.orchestrator.schemas import SynthesisEngine, VoiceGender, VoiceParameters
from interview_rehearsal.voice.synthesis import (
    FALLBACK_NOTICE,
    DeviceVoice,
    GenerativeEngine,
    VoiceSynthesisFacade,
    select_fallback_voice,
    voice_name_for,
)

VOICE = VoiceParameters()


def tone_pcm(samples: int = 240) -> bytes:
    return (np.ones(samples, dtype=np.int16) * 1000).tobytes()


class FakeSynthesisOracle:
    def __init__(self, responses: list) -> None:
        self.responses = list(responses)
        self.calls: list[str] = []
        self.probes = 0
        self.probe_result = True
        self.gate: asyncio.Event | None = None

    async def synthesize(self, text: str, voice: VoiceParameters) -> bytes:
        self.calls.append(text)
        if self.gate is not None:
            await self.gate.wait()
        response = self.responses.pop(0) if self.responses else tone_pcm()
        if isinstance(response, Exception):
            raise response
        return response

    async def probe(self) -> bool:
        self.probes += 1
        return self.probe_result


class FakeAudio:
    def __init__(self) -> None:
        self.played: list[bytes] = []
        self.stopped = 0

    async def play_pcm(self, pcm: bytes, sample_rate: int) -> bool:
        self.played.append(pcm)
        return True

    def stop_playback(self) -> None:
        self.stopped += 1


class FakeOnDeviceEngine:
    def __init__(self) -> None:
        self.spoken: list[str] = []
        self.stops = 0

    def set_language(self, language: str) -> None:
        self.language = language

    def set_preferred_voice(self, name) -> None:
        self.preferred = name

    async def speak(self, text: str, voice: VoiceParameters) -> bool:
        self.spoken.append(text)
        return True

    def stop(self) -> None:
        self.stops += 1


def make_facade(oracle: FakeSynthesisOracle, notices: list[str] | None = None):
    audio = FakeAudio()
    device = FakeOnDeviceEngine()
    facade = VoiceSynthesisFacade(
        device,
        GenerativeEngine(oracle, audio),
        engine=SynthesisEngine.GENERATIVE,
        notifier=notices.append if notices is not None else None,
    )
    return facade, audio, device


class TestQuotaFallback:
    @pytest.mark.asyncio
    async def test_quota_switches_to_on_device_with_one_notice(self) -> None:
        notices: list[str] = []
        oracle = FakeSynthesisOracle([QuotaExhaustedError(status_code=429)])
        facade, audio, device = make_facade(oracle, notices)

        results = [await facade.synthesize_and_speak(f"Question {i}?", VOICE) for i in range(3)]

        assert [r.engine for r in results] == [SynthesisEngine.ON_DEVICE] * 3
        assert results[0].fell_back
        assert device.spoken == ["Question 0?", "Question 1?", "Question 2?"]
        assert oracle.calls == ["Question 0?"]
        assert audio.played == []
        assert notices == [FALLBACK_NOTICE]
        assert facade.is_using_fallback
        assert facade.active_engine == SynthesisEngine.ON_DEVICE

    @pytest.mark.asyncio
    async def test_configure_starts_a_fresh_cycle(self) -> None:
        notices: list[str] = []
        oracle = FakeSynthesisOracle([QuotaExhaustedError(), QuotaExhaustedError()])
        facade, _, _ = make_facade(oracle, notices)

        await facade.synthesize_and_speak("One", VOICE)
        facade.configure(SynthesisEngine.GENERATIVE)
        assert not facade.is_using_fallback
        await facade.synthesize_and_speak("Two", VOICE)

        assert notices == [FALLBACK_NOTICE, FALLBACK_NOTICE]

    @pytest.mark.asyncio
    async def test_other_network_errors_propagate(self) -> None:
        oracle = FakeSynthesisOracle([TransientNetworkError("boom", status_code=500)])
        facade, _, device = make_facade(oracle)

        with pytest.raises(TransientNetworkError):
            await facade.synthesize_and_speak("Hello", VOICE)
        assert device.spoken == []
        assert not facade.is_using_fallback

    def test_generative_requires_engine(self) -> None:
        facade = VoiceSynthesisFacade(FakeOnDeviceEngine())
        with pytest.raises(ValueError):
            facade.configure(SynthesisEngine.GENERATIVE)
        assert facade.engine == SynthesisEngine.ON_DEVICE


class TestProbe:
    @pytest.mark.asyncio
    async def test_probe_verdict_is_cached(self) -> None:
        oracle = FakeSynthesisOracle([])
        facade, _, _ = make_facade(oracle)

        assert await facade.probe_quota() is True
        assert await facade.probe_quota() is True
        assert oracle.probes == 1
        assert await facade.probe_quota(force=True) is True
        assert oracle.probes == 2

    @pytest.mark.asyncio
    async def test_unavailable_probe_activates_fallback_once(self) -> None:
        notices: list[str] = []
        oracle = FakeSynthesisOracle([])
        oracle.probe_result = False
        facade, _, device = make_facade(oracle, notices)

        assert await facade.probe_quota() is False
        assert await facade.probe_quota(force=True) is False
        assert notices == [FALLBACK_NOTICE]

        await facade.synthesize_and_speak("Hi", VOICE)
        assert device.spoken == ["Hi"]
        assert oracle.calls == []

    @pytest.mark.asyncio
    async def test_successful_call_clears_probe_cache(self) -> None:
        oracle = FakeSynthesisOracle([])
        facade, _, _ = make_facade(oracle)
        await facade.probe_quota()
        await facade.synthesize_and_speak("Hello", VOICE)
        await facade.probe_quota()
        assert oracle.probes == 2

    @pytest.mark.asyncio
    async def test_probe_without_generative_engine(self) -> None:
        facade = VoiceSynthesisFacade(FakeOnDeviceEngine())
        assert await facade.probe_quota() is False


class TestAudioHandling:
    @pytest.mark.asyncio
    async def test_generative_audio_is_played(self) -> None:
        oracle = FakeSynthesisOracle([tone_pcm()])
        facade, audio, device = make_facade(oracle)

        result = await facade.synthesize_and_speak("Tell me about **your** last project.", VOICE)

        assert result.engine == SynthesisEngine.GENERATIVE
        assert result.played
        assert oracle.calls == ["Tell me about your last project."]
        assert len(audio.played) == 1
        assert device.spoken == []

    @pytest.mark.asyncio
    async def test_odd_byte_count_is_trimmed(self) -> None:
        pcm = tone_pcm(100) + b"\x01"
        oracle = FakeSynthesisOracle([pcm])
        facade, audio, _ = make_facade(oracle)

        result = await facade.synthesize_and_speak("Hello", VOICE)
        assert len(result.audio) == 200
        assert audio.played == [pcm[:-1]]

    @pytest.mark.asyncio
    async def test_silent_audio_is_spoken_on_device(self) -> None:
        oracle = FakeSynthesisOracle([bytes(480)])
        facade, audio, device = make_facade(oracle)

        result = await facade.synthesize_and_speak("Hello", VOICE)
        assert result.engine == SynthesisEngine.ON_DEVICE
        assert result.fell_back
        assert device.spoken == ["Hello"]
        assert audio.played == []
        assert not facade.is_using_fallback

    @pytest.mark.asyncio
    async def test_empty_audio_raises_in_engine(self) -> None:
        engine = GenerativeEngine(FakeSynthesisOracle([b"\x01"]), FakeAudio())
        with pytest.raises(SynthesisError):
            await engine.synthesize("Hello", VOICE)

    @pytest.mark.asyncio
    async def test_playback_device_error_becomes_synthesis_error(self) -> None:
        class UnpluggedAudio(FakeAudio):
            async def play_pcm(self, pcm: bytes, sample_rate: int) -> bool:
                raise RuntimeError("PortAudio library not found")

        device = FakeOnDeviceEngine()
        facade = VoiceSynthesisFacade(
            device,
            GenerativeEngine(FakeSynthesisOracle([tone_pcm()]), UnpluggedAudio()),
            engine=SynthesisEngine.GENERATIVE,
        )

        with pytest.raises(SynthesisError, match="PortAudio"):
            await facade.synthesize_and_speak("Hello", VOICE)
        assert device.spoken == []
        assert not facade.is_busy

    @pytest.mark.asyncio
    async def test_stop_cancels_pending_synthesis(self) -> None:
        oracle = FakeSynthesisOracle([])
        oracle.gate = asyncio.Event()
        facade, audio, _ = make_facade(oracle)

        pending = asyncio.create_task(facade.synthesize_and_speak("Hello", VOICE))
        await asyncio.sleep(0)
        await asyncio.sleep(0)
        assert facade.is_busy

        facade.stop()
        result = await pending
        assert result.cancelled
        assert audio.played == []
        assert not facade.is_busy

    @pytest.mark.asyncio
    async def test_code_is_never_spoken(self) -> None:
        oracle = FakeSynthesisOracle([])
        facade, _, device = make_facade(oracle)
        facade.configure(SynthesisEngine.ON_DEVICE)

        result = await facade.synthesize_and_speak('{"message": "hi"}', VOICE)
        assert not result.played
        assert device.spoken == []


class TestVoiceSelection:
    def test_voice_map(self) -> None:
        assert voice_name_for(VOICE) == "Kore"

    def test_prefers_language_then_gender_hint(self) -> None:
        voices = [
            DeviceVoice(id="1", name="Microsoft David", language="en-US"),
            DeviceVoice(id="2", name="Microsoft Zira", language="en-US"),
            DeviceVoice(id="3", name="Hortense", language="fr-FR"),
        ]
        assert select_fallback_voice(voices, "en", VoiceGender.FEMALE).id == "2"
        assert select_fallback_voice(voices, "en", VoiceGender.MALE).id == "1"
        assert select_fallback_voice(voices, "fr", VoiceGender.MALE).id == "3"

    def test_no_voices(self) -> None:
        assert select_fallback_voice([], "en", VoiceGender.FEMALE) is None
