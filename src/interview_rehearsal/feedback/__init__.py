"""Post-session feedback aggregation."""

from interview_rehearsal.feedback.aggregator import (
    FeedbackAggregator,
    FeedbackReport,
    FeedbackScores,
    extract_qa_pairs,
)
from interview_rehearsal.feedback.visual import VisualSummary, summarize_frames

__all__ = [
    "FeedbackAggregator",
    "FeedbackReport",
    "FeedbackScores",
    "VisualSummary",
    "extract_qa_pairs",
    "summarize_frames",
]
