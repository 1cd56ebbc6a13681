"""
Local delivery sub-scores.

Pace and filler-ratio scoring bands used by the feedback aggregator to
blend a locally computed delivery score with the feedback oracle's own.
"""

import math

from pydantic import BaseModel, Field

from interview_rehearsal.metrics.delivery import DeliveryMetrics


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero for positive scores."""
    return int(math.floor(value + 0.5))


class PaceAssessment(BaseModel):
    """Speaking pace with its sub-score."""

    wpm: int = Field(default=0, ge=0)
    score: int = Field(default=0, ge=0, le=100)
    assessment: str = Field(default="No data")


class FillerAssessment(BaseModel):
    """Filler-word usage with its sub-score."""

    count: int = Field(default=0, ge=0)
    percentage: float = Field(default=0.0, ge=0.0)
    score: int = Field(default=100, ge=0, le=100)


class DeliveryAnalysis(BaseModel):
    """Locally computed delivery sub-scores."""

    pace: PaceAssessment = Field(default_factory=PaceAssessment)
    filler_words: FillerAssessment = Field(default_factory=FillerAssessment)
    overall_score: int = Field(default=0, ge=0, le=100)


def assess_pace(wpm: int) -> PaceAssessment:
    """
    Score a words-per-minute value.

    130 up to (not including) 150 is excellent; 120-160 inclusive is good;
    100-180 is slightly slow or fast; any other positive pace scores 50.

    Args:
        wpm: Words per minute.

    Returns:
        The pace assessment.
    """
    if 130 <= wpm < 150:
        score, label = 100, "Excellent"
    elif 120 <= wpm <= 160:
        score, label = 85, "Good"
    elif 100 <= wpm <= 180:
        score, label = 70, "Slightly slow" if wpm < 120 else "Slightly fast"
    elif wpm > 0:
        score, label = 50, "Too slow" if wpm < 100 else "Too fast"
    else:
        score, label = 0, "No data"
    return PaceAssessment(wpm=max(wpm, 0), score=score, assessment=label)


def score_filler_usage(percentage: float) -> int:
    """Score a filler ratio given in percent; each band's upper bound is inclusive."""
    if percentage <= 1:
        return 100
    if percentage <= 2:
        return 85
    if percentage <= 4:
        return 70
    if percentage <= 6:
        return 55
    return 40


def filler_percentage(fillers: int, words: int) -> float:
    """Filler words as a percentage of all words (at least one word assumed)."""
    return fillers * 100 / max(words, 1)


def analyze_delivery(metrics: DeliveryMetrics) -> DeliveryAnalysis:
    """
    Compute the local delivery sub-scores from session metrics.

    The pace must already have been finalized; a missing pace counts as no data.

    Args:
        metrics: Cumulative session delivery metrics.

    Returns:
        Pace and filler assessments plus their rounded mean.
    """
    pace = assess_pace(metrics.pace_wpm or 0)
    fillers = metrics.filler_words.total_count
    percentage = filler_percentage(fillers, metrics.word_count)
    filler = FillerAssessment(
        count=fillers,
        percentage=round(percentage, 2),
        score=score_filler_usage(percentage),
    )
    return DeliveryAnalysis(
        pace=pace,
        filler_words=filler,
        overall_score=round_half_up((pace.score + filler.score) / 2),
    )
