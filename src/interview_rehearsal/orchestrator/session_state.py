"""
Interview session state management.

Tracks one interview session: the append-only transcript, the turn
counter, the phase of the conversation state machine, the locked voice
parameters and the session's delivery metrics.
"""

import logging
import time
from typing import Callable
from uuid import UUID, uuid4

from interview_rehearsal.errors import SessionStateError
from interview_rehearsal.metrics.delivery import DeliveryMetrics, MetricsDelta
from interview_rehearsal.orchestrator.schemas import (
    SKIP_SENTINEL,
    InterviewerPersona,
    SessionConfig,
    SessionPhase,
    SessionSnapshot,
    Speaker,
    TranscriptEntry,
    VoiceParameters,
)

logger = logging.getLogger(__name__)

_ALLOWED_TRANSITIONS: dict[SessionPhase, frozenset[SessionPhase]] = {
    SessionPhase.IDLE: frozenset({SessionPhase.ACTIVE, SessionPhase.ABORTED}),
    SessionPhase.ACTIVE: frozenset({SessionPhase.COMPLETING, SessionPhase.ABORTED}),
    SessionPhase.COMPLETING: frozenset({SessionPhase.COMPLETE, SessionPhase.ABORTED}),
    SessionPhase.COMPLETE: frozenset(),
    SessionPhase.ABORTED: frozenset(),
}


class InterviewSession:
    """
    Manages the mutable state of an interview session.

    The transcript only grows, interviewer and candidate entries strictly
    alternate (a skip occupies the candidate slot), and ``questions_asked``
    never exceeds the configured target.
    """

    def __init__(
        self,
        config: SessionConfig,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Initialize session state.

        Args:
            config: Session configuration.
            clock: Monotonic clock in seconds, injectable for tests.
        """
        self._session_id: UUID = uuid4()
        self._config = config
        self._clock = clock
        self._target_turns = config.resolved_target_turns()
        # Private copies so later edits to the caller's personas cannot move the voice.
        self._personas: list[InterviewerPersona] = [p.model_copy(deep=True) for p in config.personas]
        self._interviewer_index = 0
        self._voice = VoiceParameters.from_persona(self.active_persona)
        self._transcript: list[TranscriptEntry] = []
        self._questions_asked = 0
        self._phase = SessionPhase.IDLE
        self._metrics = DeliveryMetrics()
        self._started_at: float | None = None
        self._ended_at: float | None = None
        self._last_question_at: float | None = None

    @property
    def session_id(self) -> UUID:
        """Get the unique session identifier."""
        return self._session_id

    @property
    def config(self) -> SessionConfig:
        """Get the session configuration."""
        return self._config

    @property
    def phase(self) -> SessionPhase:
        """Get the state machine phase."""
        return self._phase

    @property
    def target_turns(self) -> int:
        return self._target_turns

    @property
    def questions_asked(self) -> int:
        """Get the number of completed candidate turns."""
        return self._questions_asked

    @property
    def transcript(self) -> list[TranscriptEntry]:
        """Get a copy of the transcript."""
        return self._transcript.copy()

    @property
    def metrics(self) -> DeliveryMetrics:
        return self._metrics

    @property
    def voice(self) -> VoiceParameters:
        """Get the locked voice parameters."""
        return self._voice

    @property
    def personas(self) -> list[InterviewerPersona]:
        return self._personas.copy()

    @property
    def interviewer_index(self) -> int:
        return self._interviewer_index

    @property
    def active_persona(self) -> InterviewerPersona | None:
        """Get the active interviewer persona, if any."""
        if not self._personas:
            return None
        return self._personas[self._interviewer_index]

    @property
    def interviewer_name(self) -> str:
        persona = self.active_persona
        return persona.name if persona else "Interviewer"

    @property
    def is_complete(self) -> bool:
        """Check if the closing line has been delivered."""
        return self._phase == SessionPhase.COMPLETE

    @property
    def is_finished(self) -> bool:
        """Check if the session reached a terminal phase."""
        return self._phase in (SessionPhase.COMPLETE, SessionPhase.ABORTED)

    @property
    def last_entry(self) -> TranscriptEntry | None:
        return self._transcript[-1] if self._transcript else None

    @property
    def next_turn_is_closing(self) -> bool:
        """True when the next committed candidate turn reaches the target."""
        return self._questions_asked + 1 >= self._target_turns

    def transition(self, phase: SessionPhase) -> None:
        """
        Move the state machine to a new phase.

        Args:
            phase: Target phase.

        Raises:
            SessionStateError: If the transition is not allowed.
        """
        if phase not in _ALLOWED_TRANSITIONS[self._phase]:
            raise SessionStateError(f"Cannot move session from {self._phase.value} to {phase.value}")
        logger.debug(f"[SESSION] {self._session_id} {self._phase.value} -> {phase.value}")
        self._phase = phase
        if phase in (SessionPhase.COMPLETE, SessionPhase.ABORTED) and self._ended_at is None:
            self._ended_at = self._clock()

    def begin(self, opening_line: str) -> TranscriptEntry:
        """
        Start the session with the interviewer's opening line.

        Args:
            opening_line: First interviewer line.

        Returns:
            The appended transcript entry.
        """
        self.transition(SessionPhase.ACTIVE)
        self._started_at = self._clock()
        return self._append_interviewer(opening_line)

    def response_latency(self) -> float | None:
        """Seconds since the last interviewer line was appended."""
        if self._last_question_at is None:
            return None
        return max(self._clock() - self._last_question_at, 0.0)

    def commit_turn(
        self,
        candidate_content: str,
        interviewer_line: str,
        delta: MetricsDelta | None = None,
    ) -> tuple[TranscriptEntry, TranscriptEntry]:
        """
        Commit a candidate turn together with the interviewer's reply.

        Both entries, the turn counter and the metrics delta are applied
        together so a failed oracle call leaves the session untouched.

        Args:
            candidate_content: Candidate text, or the skip sentinel.
            interviewer_line: The next question or the closing statement.
            delta: Metrics contributed by the candidate turn.

        Returns:
            The candidate entry and the interviewer entry.

        Raises:
            SessionStateError: If the session is not accepting turns.
        """
        if self._phase != SessionPhase.ACTIVE:
            raise SessionStateError(f"Session is {self._phase.value}, not accepting turns")
        if self._questions_asked >= self._target_turns:
            raise SessionStateError("Turn target already reached")
        last = self.last_entry
        if last is None or last.role != Speaker.INTERVIEWER:
            raise SessionStateError("Candidate entry must follow an interviewer line")

        candidate = TranscriptEntry(role=Speaker.CANDIDATE, content=candidate_content)
        self._transcript.append(candidate)
        interviewer = self._append_interviewer(interviewer_line)
        self._questions_asked += 1
        if delta is not None:
            self._metrics.apply(delta)
        logger.info(
            f"[SESSION] turn {self._questions_asked}/{self._target_turns} committed "
            f"(skip={candidate_content == SKIP_SENTINEL}, chars={len(candidate_content)})"
        )
        return candidate, interviewer

    def switch_interviewer(self, index: int) -> InterviewerPersona:
        """
        Make another persona the active interviewer.

        Progress is untouched; the voice is re-locked from the new persona.

        Args:
            index: Persona index.

        Returns:
            The new active persona.

        Raises:
            SessionStateError: If the index is out of range.
        """
        if not 0 <= index < len(self._personas):
            raise SessionStateError(f"No interviewer at index {index}")
        self._interviewer_index = index
        self._voice = VoiceParameters.from_persona(self._personas[index])
        return self._personas[index]

    def elapsed_seconds(self) -> float:
        """Seconds between the opening line and the end (or now)."""
        if self._started_at is None:
            return 0.0
        end = self._ended_at if self._ended_at is not None else self._clock()
        return max(end - self._started_at, 0.0)

    def finalize_metrics(self) -> DeliveryMetrics:
        """Derive pace once and return a snapshot of the metrics."""
        self._metrics.finalize_pace(self.elapsed_seconds())
        return self._metrics.snapshot()

    def snapshot(self, generation: int = 0, retry_available: bool = False) -> SessionSnapshot:
        """
        Build a read-only view of the session.

        Args:
            generation: Orchestrator generation the view belongs to.
            retry_available: Whether a failed turn is waiting for a retry.
        """
        return SessionSnapshot(
            session_id=self._session_id,
            generation=generation,
            phase=self._phase,
            transcript=self.transcript,
            questions_asked=self._questions_asked,
            target_turns=self._target_turns,
            is_complete=self.is_complete,
            interviewer_name=self.interviewer_name,
            interviewer_index=self._interviewer_index,
            retry_available=retry_available,
        )

    def conversation_history(self) -> list[dict[str, str]]:
        """Get the transcript as role/content dicts for oracle context."""
        return [{"role": entry.role.value, "content": entry.content} for entry in self._transcript]

    def _append_interviewer(self, content: str) -> TranscriptEntry:
        last = self.last_entry
        if last is not None and last.role != Speaker.CANDIDATE:
            raise SessionStateError("Interviewer lines must alternate with candidate entries")
        entry = TranscriptEntry(role=Speaker.INTERVIEWER, content=content)
        self._transcript.append(entry)
        self._last_question_at = self._clock()
        return entry
