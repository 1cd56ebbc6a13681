"""
Oracle boundary: protocols, request/response models and backends.
"""

from interview_rehearsal.oracles.base import (
    FeedbackOracle,
    FeedbackRequest,
    QuestionAnswerPair,
    QuestionOracle,
    QuestionReply,
    QuestionRequest,
    SynthesisOracle,
    TranscriptionOracle,
    TranscriptionResult,
)

__all__ = [
    "FeedbackOracle",
    "FeedbackRequest",
    "QuestionAnswerPair",
    "QuestionOracle",
    "QuestionReply",
    "QuestionRequest",
    "SynthesisOracle",
    "TranscriptionOracle",
    "TranscriptionResult",
]
