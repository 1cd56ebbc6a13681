"""
Error taxonomy for interview sessions.

Every failure the orchestrator surfaces falls into one of a handful of
categories, each with its own recovery policy:

- TransientNetworkError: retryable by user action, state untouched.
- QuotaExhaustedError: switches synthesis to the on-device engine, not fatal.
- InvalidInputError: rejected before any state is mutated.
- IncompleteOracleResultError: feedback generation aborts, caller may retry.
- OperationCancelledError: user-initiated abort or a stale result; a no-op.
"""


class InterviewError(Exception):
    """Base class for all interview session errors."""


class TransientNetworkError(InterviewError):
    """A network or oracle call failed in a way the user can retry."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class QuotaExhaustedError(InterviewError):
    """The generative synthesis oracle reported rate-limit or quota exhaustion."""

    def __init__(self, message: str = "API quota exceeded", status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class InvalidInputError(InterviewError):
    """Input rejected before mutating any state."""


class EmptyResponseError(InvalidInputError):
    """The candidate submitted an empty response."""


class RecordingTooShortError(InvalidInputError):
    """The captured clip is shorter than the minimum capture duration."""

    def __init__(self, duration_ms: float, min_ms: int) -> None:
        super().__init__(f"Recording too short ({duration_ms:.0f} ms < {min_ms} ms)")
        self.duration_ms = duration_ms
        self.min_ms = min_ms


class NoAudioCapturedError(InvalidInputError):
    """The captured clip is empty or smaller than the minimum payload size."""


class NoSpeechDetectedError(InvalidInputError):
    """Transcription returned no usable speech (empty, too short, or low confidence)."""


class IncompleteOracleResultError(InterviewError):
    """The feedback oracle returned a payload without the required score structure."""


class SynthesisError(InterviewError):
    """Generative synthesis returned audio that cannot be played."""


class OperationCancelledError(InterviewError):
    """The operation was cancelled by the user or superseded by a reset."""


class SessionStateError(InterviewError, RuntimeError):
    """An operation was requested in a state that does not allow it."""
