"""
Tests for InterviewSession state handling.
"""

import pytest

from interview_rehearsal.errors import SessionStateError
from interview_rehearsal.metrics.delivery import MetricsDelta
from interview_rehearsal.orchestrator.schemas import (
    SKIP_SENTINEL,
    InterviewerPersona,
    InterviewType,
    SessionConfig,
    SessionPhase,
    Speaker,
    VoiceGender,
    VoiceParameters,
    VoiceStyle,
)
from interview_rehearsal.orchestrator.session_state import InterviewSession


class FakeClock:
    def __init__(self, now: float = 100.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


class TestInterviewSession:
    """Tests for InterviewSession."""

    @pytest.fixture
    def clock(self) -> FakeClock:
        return FakeClock()

    @pytest.fixture
    def session(self, clock: FakeClock) -> InterviewSession:
        config = SessionConfig(
            interview_type=InterviewType.QUICK,
            personas=[InterviewerPersona(name="Claire Dubois", gender="female", style="casual")],
        )
        return InterviewSession(config, clock=clock)

    def test_initial_state(self, session: InterviewSession) -> None:
        """A new session is idle with an empty transcript."""
        assert session.phase == SessionPhase.IDLE
        assert session.transcript == []
        assert session.questions_asked == 0
        assert session.target_turns == 3
        assert session.interviewer_name == "Claire Dubois"
        assert session.voice == VoiceParameters(gender=VoiceGender.FEMALE, style=VoiceStyle.FRIENDLY)

    def test_begin_appends_opening(self, session: InterviewSession) -> None:
        entry = session.begin("Welcome!")
        assert session.phase == SessionPhase.ACTIVE
        assert entry.role == Speaker.INTERVIEWER
        assert session.last_entry == entry

    def test_commit_turn_appends_pair_and_counts(self, session: InterviewSession) -> None:
        session.begin("Welcome!")
        candidate, interviewer = session.commit_turn(
            "I like Python",
            "Why?",
            MetricsDelta(word_count=3, response_time=2.0),
        )

        assert candidate.role == Speaker.CANDIDATE
        assert interviewer.role == Speaker.INTERVIEWER
        assert session.questions_asked == 1
        assert [e.content for e in session.transcript] == ["Welcome!", "I like Python", "Why?"]
        assert session.metrics.word_count == 3
        assert session.metrics.response_times == [2.0]

    def test_commit_requires_active_phase(self, session: InterviewSession) -> None:
        with pytest.raises(SessionStateError):
            session.commit_turn("Answer", "Question")

    def test_commit_stops_at_target(self, session: InterviewSession) -> None:
        session.begin("Welcome!")
        for i in range(3):
            session.commit_turn(f"Answer {i}", f"Question {i}")
        assert session.next_turn_is_closing

        with pytest.raises(SessionStateError):
            session.commit_turn("Extra", "Extra question")
        assert session.questions_asked == 3

    def test_skip_entry(self, session: InterviewSession) -> None:
        session.begin("Welcome!")
        candidate, _ = session.commit_turn(SKIP_SENTINEL, "Next question")
        assert candidate.is_skip
        assert session.metrics.word_count == 0

    def test_transcript_is_a_copy(self, session: InterviewSession) -> None:
        session.begin("Welcome!")
        session.transcript.clear()
        assert len(session.transcript) == 1

    def test_illegal_transitions_are_rejected(self, session: InterviewSession) -> None:
        with pytest.raises(SessionStateError):
            session.transition(SessionPhase.COMPLETE)
        session.begin("Welcome!")
        session.transition(SessionPhase.ABORTED)
        assert session.is_finished
        with pytest.raises(SessionStateError):
            session.transition(SessionPhase.ACTIVE)

    def test_next_turn_is_closing(self, session: InterviewSession) -> None:
        session.begin("Welcome!")
        session.commit_turn("One", "Q2")
        assert not session.next_turn_is_closing
        session.commit_turn("Two", "Q3")
        assert session.next_turn_is_closing

    def test_response_latency_and_elapsed(self, session: InterviewSession, clock: FakeClock) -> None:
        assert session.response_latency() is None
        session.begin("Welcome!")
        clock.now += 12.5
        assert session.response_latency() == 12.5

        session.transition(SessionPhase.ABORTED)
        clock.now += 100
        assert session.elapsed_seconds() == 12.5

    def test_finalize_metrics_derives_pace_once(self, session: InterviewSession, clock: FakeClock) -> None:
        session.begin("Welcome!")
        session.commit_turn("words " * 10, "Q", MetricsDelta(word_count=10))
        clock.now += 30
        session.transition(SessionPhase.ABORTED)

        metrics = session.finalize_metrics()
        assert metrics.pace_wpm == 20
        clock.now += 30
        assert session.finalize_metrics().pace_wpm == 20

    def test_voice_is_locked_against_persona_edits(self) -> None:
        persona = InterviewerPersona(name="Marc", gender="male", style="formal")
        session = InterviewSession(SessionConfig(personas=[persona]))
        persona.gender = "female"
        assert session.voice.gender == VoiceGender.MALE

    def test_switch_interviewer(self) -> None:
        config = SessionConfig(
            personas=[
                InterviewerPersona(name="A", gender="female"),
                InterviewerPersona(name="B", gender="male", style="technical"),
            ]
        )
        session = InterviewSession(config)
        persona = session.switch_interviewer(1)
        assert persona.name == "B"
        assert session.interviewer_index == 1
        assert session.voice == VoiceParameters(gender=VoiceGender.MALE, style=VoiceStyle.PROFESSIONAL)
        with pytest.raises(SessionStateError):
            session.switch_interviewer(2)

    def test_explicit_target_overrides_type(self) -> None:
        session = InterviewSession(SessionConfig(interview_type=InterviewType.FULL, target_turns=2))
        assert session.target_turns == 2

    def test_snapshot(self, session: InterviewSession) -> None:
        session.begin("Welcome!")
        snapshot = session.snapshot(generation=4, retry_available=True)
        assert snapshot.session_id == session.session_id
        assert snapshot.generation == 4
        assert snapshot.retry_available
        assert snapshot.phase == SessionPhase.ACTIVE
        assert len(snapshot.transcript) == 1
