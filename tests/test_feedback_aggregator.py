"""
Tests for feedback aggregation and visual summaries.
"""

import pytest

from interview_rehearsal.errors import IncompleteOracleResultError
from interview_rehearsal.feedback.aggregator import FeedbackAggregator, extract_qa_pairs, overall_score
from interview_rehearsal.feedback.visual import VisualSummary, summarize_frames
from interview_rehearsal.metrics.delivery import DeliveryMetrics, FillerWordCounts
from interview_rehearsal.oracles.base import FeedbackRequest
from interview_rehearsal.orchestrator.schemas import SKIP_SENTINEL, Speaker, TranscriptEntry


class FakeFeedbackOracle:
    def __init__(self, payload) -> None:
        self.payload = payload
        self.requests: list[FeedbackRequest] = []

    async def generate_feedback(self, request: FeedbackRequest):
        self.requests.append(request)
        return self.payload


def interviewer(text: str) -> TranscriptEntry:
    return TranscriptEntry(role=Speaker.INTERVIEWER, content=text)


def candidate(text: str) -> TranscriptEntry:
    return TranscriptEntry(role=Speaker.CANDIDATE, content=text)


@pytest.fixture
def transcript() -> list[TranscriptEntry]:
    return [
        interviewer("Tell me about yourself."),
        candidate("I am a backend engineer."),
        interviewer("Describe a conflict you solved."),
        candidate(SKIP_SENTINEL),
        interviewer("Thanks, that's all."),
    ]


@pytest.fixture
def metrics() -> DeliveryMetrics:
    return DeliveryMetrics(word_count=150, filler_words=FillerWordCounts(total_count=6, breakdown={"um": 6}))


PAYLOAD = {
    "scores": {"overall": 70, "content": 80, "delivery": 60},
    "en": {"summary": "Good start.", "strengths": ["Concise"]},
    "_meta": {"model": "test"},
}


class TestQuestionAnswerPairs:
    def test_pairs_keep_skip_status_and_drop_closing(self, transcript: list[TranscriptEntry]) -> None:
        pairs = extract_qa_pairs(transcript)
        assert len(pairs) == 2
        assert pairs[0].question == "Tell me about yourself."
        assert pairs[0].answer == "I am a backend engineer."
        assert not pairs[0].skipped
        assert pairs[1].answer == SKIP_SENTINEL
        assert pairs[1].skipped

    def test_empty_transcript(self) -> None:
        assert extract_qa_pairs([]) == []


class TestFeedbackAggregator:
    @pytest.mark.asyncio
    async def test_blends_delivery_without_visual(self, transcript, metrics) -> None:
        oracle = FakeFeedbackOracle(PAYLOAD)
        report = await FeedbackAggregator(oracle).aggregate(transcript, metrics, elapsed_seconds=60, language="en")

        # Local delivery is 78 (pace 85, fillers 70); blended with the oracle's 60.
        assert report.delivery_analysis.overall_score == 78
        assert report.scores.delivery == 69
        assert report.scores.content == 80
        assert report.scores.visual is None
        assert report.scores.overall == 76
        assert report.speech_metrics.pace_wpm == 150
        assert metrics.pace_wpm is None
        assert len(oracle.requests[0].qa_pairs) == 2
        assert report.localized == {"en": {"summary": "Good start.", "strengths": ["Concise"]}}
        assert report.text_for("fr")["summary"] == "Good start."

    @pytest.mark.asyncio
    async def test_applies_visual_weights_when_data_exists(self, transcript, metrics) -> None:
        visual = VisualSummary(frame_count=12, eye_contact_score=90, confidence_score=90, overall_visual_score=90)
        report = await FeedbackAggregator(FakeFeedbackOracle(PAYLOAD)).aggregate(
            transcript, metrics, elapsed_seconds=60, visual=visual
        )
        assert report.scores.visual == 90
        assert report.scores.overall == 79
        assert report.visual_analysis == visual

    @pytest.mark.asyncio
    async def test_ignores_visual_without_frames(self, transcript, metrics) -> None:
        report = await FeedbackAggregator(FakeFeedbackOracle(PAYLOAD)).aggregate(
            transcript, metrics, elapsed_seconds=60, visual=VisualSummary()
        )
        assert report.scores.visual is None
        assert report.visual_analysis is None
        assert report.scores.overall == 76

    @pytest.mark.asyncio
    async def test_missing_scores_fail(self, transcript, metrics) -> None:
        oracle = FakeFeedbackOracle({"en": {"summary": "Nice"}})
        with pytest.raises(IncompleteOracleResultError):
            await FeedbackAggregator(oracle).aggregate(transcript, metrics, elapsed_seconds=60)

    @pytest.mark.asyncio
    async def test_non_numeric_scores_use_defaults(self, transcript) -> None:
        oracle = FakeFeedbackOracle({"scores": {"content": "great", "delivery": None}})
        report = await FeedbackAggregator(oracle).aggregate(transcript, DeliveryMetrics())
        assert report.scores.content == 70
        # Local delivery with no words is 50 (no pace data, no fillers).
        assert report.scores.delivery == 60


class TestOverallScore:
    def test_weights(self) -> None:
        assert overall_score(80, 70, None) == 76
        assert overall_score(80, 70, 60) == 73


class TestVisualSummary:
    def test_summarize_frames(self) -> None:
        frames = [
            {"eye_contact": {"score": 80}, "confidence_score": 60, "posture": {"assessment": "good"}},
            {"eye_contact": {"score": 70}, "confidence_score": 80, "posture": {"assessment": "slouching"}},
        ]
        summary = summarize_frames(frames)
        assert summary.frame_count == 2
        assert summary.eye_contact_score == 75
        assert summary.confidence_score == 70
        assert summary.posture == "good"
        assert summary.overall_visual_score == 73
        assert summary.has_data
        assert len(summary.strengths["en"]) == 3
        assert summary.areas_for_improvement["fr"] == []

    def test_no_frames(self) -> None:
        summary = summarize_frames([])
        assert summary.posture == "no_data"
        assert not summary.has_data

    def test_low_scores_become_improvements(self) -> None:
        summary = summarize_frames([{"eye_contact": {"score": 40}, "confidence_score": 50}])
        assert summary.posture == "no_data"
        assert summary.areas_for_improvement["en"] == [
            "Look at the camera more often",
            "Work on appearing more confident",
        ]
        assert summary.strengths["en"] == []
