"""Delivery metrics and local delivery scoring."""

from interview_rehearsal.metrics.delivery import (
    DeliveryMetrics,
    FillerWordCounts,
    MetricsDelta,
    clean_transcript,
    count_words,
    detect_filler_words,
    filler_lexicon_for,
)
from interview_rehearsal.metrics.scoring import DeliveryAnalysis, analyze_delivery, round_half_up

__all__ = [
    "DeliveryAnalysis",
    "DeliveryMetrics",
    "FillerWordCounts",
    "MetricsDelta",
    "analyze_delivery",
    "clean_transcript",
    "count_words",
    "detect_filler_words",
    "filler_lexicon_for",
    "round_half_up",
]
