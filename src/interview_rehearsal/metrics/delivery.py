"""
Delivery metrics collection.

Accumulates word counts, filler-word counts and per-turn response latency
across a session. Spoken turns contribute the transcription oracle's own
analysis; typed turns are tokenized and scanned locally.
"""

from __future__ import annotations

import logging
import re
from functools import lru_cache
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field

if TYPE_CHECKING:
    from interview_rehearsal.oracles.base import TranscriptionResult

logger = logging.getLogger(__name__)

# Fixed lexicon scanned for typed responses.
TYPED_FILLER_LEXICON: tuple[str, ...] = ("um", "uh", "like", "you know", "basically", "actually")

# Per-language lexicons used when transcribing speech locally.
SPOKEN_FILLER_LEXICONS: dict[str, tuple[str, ...]] = {
    "en": ("um", "uh", "like", "you know", "basically", "actually", "literally", "so", "well", "i mean"),
    "fr": ("euh", "ben", "genre", "en fait", "voilà", "du coup", "quoi", "bah"),
}

_EMPTY_MARKER_RE = re.compile(r"\[EMPTY\]", re.IGNORECASE)
_SILENCE_MARKER_RE = re.compile(r"\[(SILENCE|NO SPEECH|INAUDIBLE)\]", re.IGNORECASE)
_WRAPPING_QUOTES_RE = re.compile(r'^"(.*)"$', re.DOTALL)


class FillerWordCounts(BaseModel):
    """Filler-word totals with a per-term breakdown."""

    total_count: int = Field(default=0, ge=0, description="Total filler words")
    breakdown: dict[str, int] = Field(default_factory=dict, description="Occurrences per filler term")

    def merged(self, other: "FillerWordCounts") -> "FillerWordCounts":
        """Return a new instance with ``other`` added to this one."""
        breakdown = dict(self.breakdown)
        for term, count in other.breakdown.items():
            breakdown[term] = breakdown.get(term, 0) + count
        return FillerWordCounts(total_count=self.total_count + other.total_count, breakdown=breakdown)


class MetricsDelta(BaseModel):
    """Metrics contributed by a single candidate turn, staged until the turn commits."""

    word_count: int = Field(default=0, ge=0)
    filler_words: FillerWordCounts = Field(default_factory=FillerWordCounts)
    response_time: float | None = Field(default=None, description="Seconds since the previous interviewer line")

    @classmethod
    def from_text(cls, text: str, response_time: float | None = None) -> "MetricsDelta":
        """Analyse a typed response with whitespace tokenization and the typed lexicon."""
        return cls(
            word_count=count_words(text),
            filler_words=detect_filler_words(text, TYPED_FILLER_LEXICON),
            response_time=response_time,
        )

    @classmethod
    def from_transcription(
        cls,
        result: "TranscriptionResult",
        response_time: float | None = None,
    ) -> "MetricsDelta":
        """Take the transcription oracle's own analysis of a spoken response."""
        return cls(
            word_count=result.metrics.word_count,
            filler_words=result.metrics.filler_words,
            response_time=response_time,
        )


class DeliveryMetrics(BaseModel):
    """
    Cumulative delivery metrics owned by one session.

    Pace is derived once, at session end, from total words and total
    elapsed time; until then ``pace_wpm`` stays None.
    """

    word_count: int = Field(default=0, ge=0, description="Cumulative word count")
    filler_words: FillerWordCounts = Field(default_factory=FillerWordCounts)
    response_times: list[float] = Field(
        default_factory=list,
        description="Per-turn response latency in seconds",
    )
    pace_wpm: int | None = Field(default=None, description="Words per minute, set at session end")

    def apply(self, delta: MetricsDelta) -> None:
        """
        Add a committed turn's metrics to the running totals.

        Args:
            delta: Metrics staged for the turn.
        """
        self.word_count += delta.word_count
        self.filler_words = self.filler_words.merged(delta.filler_words)
        if delta.response_time is not None:
            self.response_times.append(round(delta.response_time, 3))

    def finalize_pace(self, elapsed_seconds: float) -> int:
        """
        Derive words-per-minute from total words and elapsed time.

        Computed only once; later calls return the stored value.

        Args:
            elapsed_seconds: Total session time. Non-positive values fall back to one minute.

        Returns:
            The pace in words per minute.
        """
        if self.pace_wpm is not None:
            return self.pace_wpm
        duration = elapsed_seconds if elapsed_seconds > 0 else 60.0
        self.pace_wpm = int(round(self.word_count / duration * 60)) if duration > 0 else 0
        logger.debug(f"[METRICS] pace finalized words={self.word_count} elapsed={duration:.1f}s wpm={self.pace_wpm}")
        return self.pace_wpm

    def snapshot(self) -> "DeliveryMetrics":
        """Deep copy, so later mutation cannot leak into a report in progress."""
        return self.model_copy(deep=True)


def count_words(text: str) -> int:
    """Count whitespace-separated tokens."""
    return len((text or "").split())


@lru_cache(maxsize=64)
def _filler_pattern(term: str) -> re.Pattern[str]:
    return re.compile(r"\b" + re.escape(term) + r"\b", re.IGNORECASE)


def detect_filler_words(text: str, lexicon: tuple[str, ...] = TYPED_FILLER_LEXICON) -> FillerWordCounts:
    """
    Scan text for filler terms using word-boundary matching.

    Args:
        text: Text to scan.
        lexicon: Filler terms to look for.

    Returns:
        Totals and a breakdown containing only the terms that occurred.
    """
    lowered = (text or "").lower()
    breakdown: dict[str, int] = {}
    for term in lexicon:
        count = len(_filler_pattern(term).findall(lowered))
        if count:
            breakdown[term] = count
    return FillerWordCounts(total_count=sum(breakdown.values()), breakdown=breakdown)


def filler_lexicon_for(language: str) -> tuple[str, ...]:
    """Spoken filler lexicon for a language, English when unknown."""
    return SPOKEN_FILLER_LEXICONS.get((language or "en").lower()[:2], SPOKEN_FILLER_LEXICONS["en"])


def clean_transcript(raw: str) -> str:
    """
    Normalize raw transcription output.

    An ``[EMPTY]`` marker anywhere means no speech. Silence markers are
    removed, and a single pair of wrapping quotes is stripped.
    """
    if not raw or _EMPTY_MARKER_RE.search(raw):
        return ""
    text = _SILENCE_MARKER_RE.sub("", raw).strip()
    m = _WRAPPING_QUOTES_RE.match(text)
    if m and '"' not in m.group(1):
        text = m.group(1)
    return text.strip()
