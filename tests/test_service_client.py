"""
Tests for the interview AI service client, using httpx.MockTransport.
"""

import base64
import json

import httpx
import pytest

from interview_rehearsal.errors import QuotaExhaustedError, SynthesisError, TransientNetworkError
from interview_rehearsal.oracles.base import FeedbackRequest, QuestionAnswerPair, QuestionRequest
from interview_rehearsal.oracles.service_client import InterviewServiceClient, is_quota_message
from interview_rehearsal.orchestrator.schemas import VoiceGender, VoiceParameters, VoiceStyle


def envelope(data=None, success: bool = True, message: str = "", errors=None) -> dict:
    body = {"success": success, "data": data, "message": message}
    if errors is not None:
        body["errors"] = errors
    return body


class Recorder:
    def __init__(self, status: int = 200, body=None, content: bytes | None = None) -> None:
        self.status = status
        self.body = body
        self.content = content
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.content is not None:
            return httpx.Response(self.status, content=self.content)
        return httpx.Response(self.status, json=self.body)

    def payload(self, index: int = -1) -> dict:
        return json.loads(self.requests[index].content)


def make_client(handler) -> InterviewServiceClient:
    return InterviewServiceClient(
        base_url="http://service.test/api",
        timeout=5,
        api_key="secret",
        transport=httpx.MockTransport(handler),
    )


class TestQuestions:
    @pytest.mark.asyncio
    async def test_opening_goes_to_start(self) -> None:
        recorder = Recorder(body=envelope({"interviewer_message": "Hi, I'm Dana."}))
        client = make_client(recorder)

        reply = await client.next_line(QuestionRequest(target_turns=3, job_data={"title": "SRE"}))

        assert reply.message == "Hi, I'm Dana."
        request = recorder.requests[0]
        assert request.url.path == "/api/interviews/start"
        assert request.headers["Authorization"] == "Bearer secret"
        assert recorder.payload()["jd_data"] == {"title": "SRE"}
        assert recorder.payload()["target_questions"] == 3
        await client.close()

    @pytest.mark.asyncio
    async def test_follow_up_goes_to_respond(self) -> None:
        recorder = Recorder(body=envelope({"interviewer_message": "Why?"}))
        client = make_client(recorder)
        history = [{"role": "interviewer", "content": "Hi"}, {"role": "candidate", "content": "Hello"}]

        await client.next_line(QuestionRequest(history=history, last_response="Hello", turn_index=2, target_turns=5))

        assert recorder.requests[0].url.path == "/api/interviews/respond"
        payload = recorder.payload()
        assert payload["conversation_history"] == history
        assert payload["candidate_response"] == "Hello"
        assert payload["questions_asked"] == 2
        await client.close()

    @pytest.mark.asyncio
    async def test_missing_message_yields_none(self) -> None:
        client = make_client(Recorder(body=envelope({})))
        reply = await client.next_line(QuestionRequest())
        assert reply.message is None
        await client.close()

    @pytest.mark.asyncio
    async def test_failure_envelope_becomes_transient_error(self) -> None:
        body = envelope(success=False, message="Validation failed", errors={"cv_data": ["is required"]})
        client = make_client(Recorder(status=422, body=body))
        with pytest.raises(TransientNetworkError) as exc_info:
            await client.next_line(QuestionRequest())
        assert "cv_data: is required" in str(exc_info.value)
        assert exc_info.value.status_code == 422
        await client.close()

    @pytest.mark.asyncio
    async def test_question_429_is_not_a_quota_signal(self) -> None:
        client = make_client(Recorder(status=429, body=envelope(success=False, message="Too many requests")))
        with pytest.raises(TransientNetworkError):
            await client.next_line(QuestionRequest())
        await client.close()

    @pytest.mark.asyncio
    async def test_malformed_body(self) -> None:
        client = make_client(Recorder(content=b"<html>oops</html>"))
        with pytest.raises(TransientNetworkError):
            await client.next_line(QuestionRequest())
        await client.close()

    @pytest.mark.asyncio
    async def test_connection_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        client = make_client(handler)
        with pytest.raises(TransientNetworkError):
            await client.next_line(QuestionRequest())
        await client.close()


class TestVoiceEndpoints:
    @pytest.mark.asyncio
    async def test_transcribe_sends_base64_audio(self) -> None:
        data = {
            "transcript": "I like it",
            "language": "en",
            "is_empty": False,
            "confidence": "medium",
            "metrics": {"word_count": 3, "filler_words": {"total_count": 1, "breakdown": {"like": 1}}},
        }
        recorder = Recorder(body=envelope(data))
        client = make_client(recorder)

        result = await client.transcribe(b"RIFFdata", "audio/wav", "en")

        assert result.transcript == "I like it"
        assert result.metrics.filler_words.total_count == 1
        assert base64.b64decode(recorder.payload()["audio_data"]) == b"RIFFdata"
        assert recorder.requests[0].url.path == "/api/voice/transcribe"
        await client.close()

    @pytest.mark.asyncio
    async def test_transcribe_rejects_malformed_result(self) -> None:
        client = make_client(Recorder(body=envelope({"confidence": "certain"})))
        with pytest.raises(TransientNetworkError):
            await client.transcribe(b"RIFF", "audio/wav", "en")
        await client.close()

    @pytest.mark.asyncio
    async def test_synthesize_decodes_pcm(self) -> None:
        pcm = b"\x10\x00\x20\x00"
        recorder = Recorder(body=envelope({"audio_content": base64.b64encode(pcm).decode()}))
        client = make_client(recorder)

        audio = await client.synthesize("Hello", VoiceParameters(gender=VoiceGender.MALE, style=VoiceStyle.FRIENDLY))

        assert audio == pcm
        assert recorder.payload() == {"text": "Hello", "gender": "male", "style": "friendly"}
        await client.close()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [429, 503])
    async def test_synthesize_quota_status(self, status: int) -> None:
        client = make_client(Recorder(status=status, body=envelope(success=False, message="Busy")))
        with pytest.raises(QuotaExhaustedError) as exc_info:
            await client.synthesize("Hello", VoiceParameters())
        assert exc_info.value.status_code == status
        await client.close()

    @pytest.mark.asyncio
    async def test_synthesize_quota_message(self) -> None:
        body = envelope(success=False, message="RESOURCE_EXHAUSTED: daily limit")
        client = make_client(Recorder(status=500, body=body))
        with pytest.raises(QuotaExhaustedError):
            await client.synthesize("Hello", VoiceParameters())
        await client.close()

    @pytest.mark.asyncio
    async def test_synthesize_bad_base64(self) -> None:
        client = make_client(Recorder(body=envelope({"audio_content": "not base64!!"})))
        with pytest.raises(SynthesisError):
            await client.synthesize("Hello", VoiceParameters())
        await client.close()

    @pytest.mark.asyncio
    async def test_probe(self) -> None:
        ok = make_client(Recorder(body=envelope({"available": True})))
        assert await ok.probe() is True
        await ok.close()

        exhausted = make_client(Recorder(status=429, body=envelope(success=False)))
        assert await exhausted.probe() is False
        await exhausted.close()


class TestFeedback:
    @pytest.mark.asyncio
    async def test_generate_feedback_returns_raw_data(self) -> None:
        data = {"scores": {"overall": 80, "content": 82, "delivery": 75}, "en": {"summary": "Well done"}}
        recorder = Recorder(body=envelope(data))
        client = make_client(recorder)

        payload = await client.generate_feedback(
            FeedbackRequest(qa_pairs=[QuestionAnswerPair(question="Q", answer="[SKIPPED]", skipped=True)])
        )

        assert payload == data
        assert recorder.requests[0].url.path == "/api/feedback/generate"
        assert recorder.payload()["qa_pairs"] == [{"question": "Q", "answer": "[SKIPPED]", "skipped": True}]
        await client.close()


def test_is_quota_message() -> None:
    assert is_quota_message("Quota exceeded for project")
    assert is_quota_message("rate limit hit")
    assert not is_quota_message("Internal error")
    assert not is_quota_message(None)
