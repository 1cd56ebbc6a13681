"""
Visual analysis summary.

Aggregates per-frame analyses produced by the (external) video subsystem
into one summary the feedback aggregator can blend in.
"""

from typing import Any, Literal

from pydantic import BaseModel, Field

from interview_rehearsal.metrics.scoring import round_half_up

PostureRating = Literal["good", "needs_improvement", "no_data"]

_STRENGTHS = {
    "eye": {"en": "Good eye contact", "fr": "Bon contact visuel"},
    "confidence": {"en": "Confident presence", "fr": "Présence confiante"},
    "posture": {"en": "Good posture", "fr": "Bonne posture"},
}

_IMPROVEMENTS = {
    "eye": {"en": "Look at the camera more often", "fr": "Regardez la caméra plus souvent"},
    "confidence": {"en": "Work on appearing more confident", "fr": "Travaillez sur votre confiance"},
    "posture": {"en": "Sit up straighter", "fr": "Tenez-vous plus droit"},
}


class VisualSummary(BaseModel):
    """Aggregated visual assessment of a session."""

    frame_count: int = Field(default=0, ge=0)
    eye_contact_score: int = Field(default=0, description="Average eye-contact score")
    confidence_score: int = Field(default=0, description="Average confidence score")
    posture: PostureRating = Field(default="no_data")
    overall_visual_score: int = Field(default=0)
    strengths: dict[str, list[str]] = Field(default_factory=dict)
    areas_for_improvement: dict[str, list[str]] = Field(default_factory=dict)

    @property
    def has_data(self) -> bool:
        return self.frame_count > 0 and self.overall_visual_score > 0


def _average(values: list[float]) -> int:
    return round_half_up(sum(values) / len(values)) if values else 0


def _assess_posture(postures: list[str]) -> PostureRating:
    if not postures:
        return "no_data"
    good = sum(1 for p in postures if p == "good")
    return "good" if good >= len(postures) / 2 else "needs_improvement"


def _localized(keys: list[str], table: dict[str, dict[str, str]]) -> dict[str, list[str]]:
    return {lang: [table[key][lang] for key in keys] for lang in ("en", "fr")}


def summarize_frames(frames: list[dict[str, Any]]) -> VisualSummary:
    """
    Aggregate per-frame analyses.

    Each frame may carry ``eye_contact.score``, ``confidence_score`` and
    ``posture.assessment``; missing fields are ignored.

    Args:
        frames: Per-frame analysis dicts.

    Returns:
        The visual summary; an empty summary when there are no frames.
    """
    if not frames:
        return VisualSummary()

    eye_scores: list[float] = []
    confidence_scores: list[float] = []
    postures: list[str] = []
    for frame in frames:
        eye = frame.get("eye_contact")
        if isinstance(eye, dict) and isinstance(eye.get("score"), (int, float)):
            eye_scores.append(float(eye["score"]))
        if isinstance(frame.get("confidence_score"), (int, float)):
            confidence_scores.append(float(frame["confidence_score"]))
        posture = frame.get("posture")
        if isinstance(posture, dict) and posture.get("assessment"):
            postures.append(str(posture["assessment"]))

    avg_eye = _average(eye_scores)
    avg_confidence = _average(confidence_scores)
    rating = _assess_posture(postures)

    strengths = []
    if avg_eye >= 70:
        strengths.append("eye")
    if avg_confidence >= 70:
        strengths.append("confidence")
    if rating == "good":
        strengths.append("posture")

    improvements = []
    if 0 < avg_eye < 70:
        improvements.append("eye")
    if 0 < avg_confidence < 70:
        improvements.append("confidence")
    if postures and rating != "good":
        improvements.append("posture")

    return VisualSummary(
        frame_count=len(frames),
        eye_contact_score=avg_eye,
        confidence_score=avg_confidence,
        posture=rating,
        overall_visual_score=round_half_up((avg_eye + avg_confidence) / 2),
        strengths=_localized(strengths, _STRENGTHS),
        areas_for_improvement=_localized(improvements, _IMPROVEMENTS),
    )
