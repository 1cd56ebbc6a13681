"""
Feedback aggregation.

Turns a finished session (transcript, delivery metrics and an optional
visual summary) into one scored report: the feedback oracle provides the
qualitative scores and text, which are then blended with locally
computed delivery and visual sub-scores.
"""

import logging
from datetime import datetime, timezone
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field

from interview_rehearsal.errors import IncompleteOracleResultError
from interview_rehearsal.feedback.visual import VisualSummary, summarize_frames
from interview_rehearsal.metrics.delivery import DeliveryMetrics
from interview_rehearsal.metrics.scoring import DeliveryAnalysis, analyze_delivery, round_half_up
from interview_rehearsal.oracles.base import FeedbackOracle, FeedbackRequest, QuestionAnswerPair
from interview_rehearsal.orchestrator.schemas import SKIP_SENTINEL, Speaker, TranscriptEntry

logger = logging.getLogger(__name__)

INCOMPLETE_RESULT_MESSAGE = "Feedback generation returned incomplete data. Please try again."

DEFAULT_CONTENT_SCORE = 70
DEFAULT_DELIVERY_SCORE = 70

WEIGHTS_WITH_VISUAL = {"content": 0.5, "delivery": 0.3, "visual": 0.2}
WEIGHTS_WITHOUT_VISUAL = {"content": 0.6, "delivery": 0.4}


def _now_utc() -> datetime:
    """Get current UTC datetime (timezone-aware)."""
    return datetime.now(timezone.utc)


class FeedbackScores(BaseModel):
    """Final blended scores, 0-100."""

    overall: int = Field(..., ge=0, le=100)
    content: int = Field(..., ge=0, le=100)
    delivery: int = Field(..., ge=0, le=100)
    visual: int | None = Field(default=None, ge=0, le=100, description="Present only with visual data")


class FeedbackReport(BaseModel):
    """Scored feedback for one session."""

    scores: FeedbackScores
    localized: dict[str, dict[str, Any]] = Field(
        default_factory=dict,
        description="Oracle text (summary, strengths, ...) keyed by language code",
    )
    qa_pairs: list[QuestionAnswerPair] = Field(default_factory=list)
    speech_metrics: DeliveryMetrics = Field(default_factory=DeliveryMetrics)
    delivery_analysis: DeliveryAnalysis | None = Field(default=None)
    visual_analysis: VisualSummary | None = Field(default=None)
    session_id: UUID | None = Field(default=None)
    generation: int = Field(default=0)
    generated_at: datetime = Field(default_factory=_now_utc)

    def text_for(self, language: str) -> dict[str, Any]:
        """Localized text for a language, falling back to English, then anything."""
        if language in self.localized:
            return self.localized[language]
        if "en" in self.localized:
            return self.localized["en"]
        return next(iter(self.localized.values()), {})


def extract_qa_pairs(transcript: list[TranscriptEntry]) -> list[QuestionAnswerPair]:
    """
    Pair each interviewer line with the candidate entry that follows it.

    The closing line has no reply and produces no pair.

    Args:
        transcript: Ordered transcript.

    Returns:
        Question/answer pairs in conversation order, skip status preserved.
    """
    pairs: list[QuestionAnswerPair] = []
    question: str | None = None
    for entry in transcript:
        if entry.role == Speaker.INTERVIEWER:
            question = entry.content
        elif entry.role == Speaker.CANDIDATE and question is not None:
            pairs.append(
                QuestionAnswerPair(
                    question=question,
                    answer=entry.content,
                    skipped=entry.content == SKIP_SENTINEL,
                )
            )
            question = None
    return pairs


def _score(value: Any, default: int) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    return max(0, min(100, round_half_up(float(value))))


def overall_score(content: int, delivery: int, visual: int | None) -> int:
    """Weighted overall score; visual weight applies only when a visual score exists."""
    if visual:
        w = WEIGHTS_WITH_VISUAL
        total = content * w["content"] + delivery * w["delivery"] + visual * w["visual"]
    else:
        w = WEIGHTS_WITHOUT_VISUAL
        total = content * w["content"] + delivery * w["delivery"]
    return round_half_up(total)


class FeedbackAggregator:
    """
    Merges session artifacts into a scored report via the feedback oracle.
    """

    def __init__(self, oracle: FeedbackOracle) -> None:
        """
        Initialize the aggregator.

        Args:
            oracle: Feedback-generation oracle.
        """
        self._oracle = oracle

    async def aggregate(
        self,
        transcript: list[TranscriptEntry],
        metrics: DeliveryMetrics,
        *,
        elapsed_seconds: float = 0.0,
        visual: VisualSummary | list[dict[str, Any]] | None = None,
        cv_data: dict[str, Any] | None = None,
        job_data: dict[str, Any] | None = None,
        language: str = "en",
        session_id: UUID | None = None,
        generation: int = 0,
    ) -> FeedbackReport:
        """
        Build the feedback report.

        Args:
            transcript: Full session transcript.
            metrics: Delivery metrics; pace is derived here if not yet set.
            elapsed_seconds: Session duration used to derive pace.
            visual: Visual summary or raw per-frame analyses.
            cv_data: Parsed CV forwarded to the oracle.
            job_data: Parsed job description forwarded to the oracle.
            language: Session language.
            session_id: Session the report belongs to.
            generation: Reset generation the report belongs to.

        Returns:
            The scored report.

        Raises:
            IncompleteOracleResultError: If the oracle payload lacks its scores.
            TransientNetworkError: If the oracle call fails.
        """
        metrics = metrics.snapshot()
        metrics.finalize_pace(elapsed_seconds)

        pairs = extract_qa_pairs(transcript)
        logger.info(f"[FEEDBACK] generating for {len(pairs)} pairs, {metrics.word_count} words")
        payload = await self._oracle.generate_feedback(
            FeedbackRequest(qa_pairs=pairs, cv_data=cv_data, job_data=job_data, language=language)
        )

        scores = payload.get("scores") if isinstance(payload, dict) else None
        if not isinstance(scores, dict):
            keys = list(payload.keys()) if isinstance(payload, dict) else type(payload).__name__
            logger.warning(f"[FEEDBACK] incomplete oracle result, keys={keys}")
            raise IncompleteOracleResultError(INCOMPLETE_RESULT_MESSAGE)

        content = _score(scores.get("content"), DEFAULT_CONTENT_SCORE)
        delivery = _score(scores.get("delivery"), DEFAULT_DELIVERY_SCORE)

        analysis = analyze_delivery(metrics)
        if analysis.overall_score:
            delivery = round_half_up((delivery + analysis.overall_score) / 2)

        summary = summarize_frames(visual) if isinstance(visual, list) else visual
        visual_score = summary.overall_visual_score if summary is not None and summary.has_data else None

        report = FeedbackReport(
            scores=FeedbackScores(
                overall=overall_score(content, delivery, visual_score),
                content=content,
                delivery=delivery,
                visual=visual_score,
            ),
            localized={k: v for k, v in payload.items() if k not in ("scores", "_meta") and isinstance(v, dict)},
            qa_pairs=pairs,
            speech_metrics=metrics,
            delivery_analysis=analysis,
            visual_analysis=summary if visual_score is not None else None,
            session_id=session_id,
            generation=generation,
        )
        logger.info(
            f"[FEEDBACK] report ready overall={report.scores.overall} content={content} "
            f"delivery={delivery} visual={visual_score}"
        )
        return report
