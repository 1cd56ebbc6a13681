"""
Interview session orchestrator.

Drives the conversation state machine: requests interviewer lines from the
question oracle, commits candidate turns, narrates lines through the
synthesis facade, detects completion and hands the finished session to
the feedback aggregator.

Every reset (and every early end) increments a generation counter.
Oracle, synthesis and feedback results are compared against the
generation they were requested under and discarded when it has moved on.
"""

from __future__ import annotations

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, Awaitable, Callable, TypeVar

from interview_rehearsal.config import get_settings
from interview_rehearsal.errors import (
    EmptyResponseError,
    InterviewError,
    OperationCancelledError,
    SessionStateError,
    SynthesisError,
    TransientNetworkError,
)
from interview_rehearsal.feedback.aggregator import FeedbackAggregator, FeedbackReport
from interview_rehearsal.feedback.visual import VisualSummary
from interview_rehearsal.metrics.delivery import MetricsDelta
from interview_rehearsal.oracles.base import QuestionOracle, QuestionRequest
from interview_rehearsal.orchestrator.events import EventChannel, SessionEventType
from interview_rehearsal.orchestrator.schemas import (
    SKIP_PROMPT,
    SKIP_SENTINEL,
    SessionConfig,
    SessionPhase,
    SessionSnapshot,
    Speaker,
    SynthesisEngine,
)
from interview_rehearsal.orchestrator.session_state import InterviewSession
from interview_rehearsal.voice.capture import CapturedClip, SpeechCaptureService
from interview_rehearsal.voice.synthesis import VoiceSynthesisFacade

T = TypeVar("T")


@dataclass(frozen=True)
class PendingTurn:
    """A candidate turn whose interviewer reply has not arrived yet."""

    content: str
    prompt: str
    delta: MetricsDelta | None = None

    @property
    def is_skip(self) -> bool:
        return self.content == SKIP_SENTINEL


class InterviewOrchestrator:
    """
    Orchestrates one interview session at a time.

    Turn requests are strictly sequential: a second request while one is in
    flight is rejected. The microphone and the speaker are owned by the
    capture service and the synthesis facade injected here.
    """

    def __init__(
        self,
        question_oracle: QuestionOracle,
        aggregator: FeedbackAggregator,
        synthesis: VoiceSynthesisFacade | None = None,
        capture: SpeechCaptureService | None = None,
        events: EventChannel | None = None,
        *,
        auto_feedback: bool | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Initialize the orchestrator.

        Args:
            question_oracle: Produces interviewer lines.
            aggregator: Builds the feedback report after a session.
            synthesis: Voice facade; None disables narration.
            capture: Speech capture service; None disables spoken responses.
            events: Event channel; a new one is created if None.
            auto_feedback: Generate feedback on completion (uses config if None).
            clock: Monotonic clock passed to sessions.
        """
        self._logger = logging.getLogger(__name__)
        self._questions = question_oracle
        self._aggregator = aggregator
        self._synthesis = synthesis
        self._capture = capture
        self._events = events or EventChannel()
        self._auto_feedback = get_settings().auto_feedback if auto_feedback is None else auto_feedback
        self._clock = clock

        self._session: InterviewSession | None = None
        self._generation = 0
        self._pending: PendingTurn | None = None
        self._turn_lock = asyncio.Lock()
        self._turn_generation: int | None = None
        self._inflight: set[asyncio.Task] = set()
        self._background: set[asyncio.Task] = set()
        self._speech_task: asyncio.Task | None = None
        self._feedback_task: asyncio.Task | None = None
        self._feedback_generation: int | None = None
        self._last_report: FeedbackReport | None = None
        self._feedback_error: InterviewError | None = None
        self._visual: VisualSummary | list[dict[str, Any]] | None = None

        if self._synthesis is not None:
            self._synthesis.set_notifier(self._notify)

    @property
    def events(self) -> EventChannel:
        return self._events

    @property
    def session(self) -> InterviewSession | None:
        """Get the current session, if any."""
        return self._session

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def phase(self) -> SessionPhase:
        return self._session.phase if self._session else SessionPhase.IDLE

    @property
    def last_report(self) -> FeedbackReport | None:
        """Most recent feedback report; survives resets."""
        return self._last_report

    @property
    def feedback_error(self) -> InterviewError | None:
        """Failure of the latest feedback attempt for the current session."""
        return self._feedback_error

    @property
    def retry_available(self) -> bool:
        return self._pending is not None

    @property
    def is_busy(self) -> bool:
        """Check if a turn is being processed."""
        return self._turn_lock.locked()

    def snapshot(self) -> SessionSnapshot:
        """Read-only view of the current session."""
        if self._session is None:
            return SessionSnapshot(generation=self._generation)
        return self._session.snapshot(generation=self._generation, retry_available=self._pending is not None)

    def set_visual_analysis(self, visual: VisualSummary | list[dict[str, Any]] | None) -> None:
        """Attach a visual summary (or raw frame analyses) for the next feedback run."""
        self._visual = visual

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    async def start_session(self, config: SessionConfig) -> SessionSnapshot:
        """
        Start a new session and request the opening line.

        Any previous session is abandoned first; its report, if any, stays
        available through ``last_report``.

        Args:
            config: Session configuration.

        Returns:
            Snapshot with the opening line in the transcript.

        Raises:
            TransientNetworkError: If the opening line could not be fetched;
                ``retry_turn()`` tries again.
            OperationCancelledError: If a reset superseded the request.
        """
        self._abandon()
        session = InterviewSession(config, clock=self._clock)
        self._session = session
        self._feedback_error = None
        self._visual = None
        self._configure_voice(config, session)
        self._logger.info(
            f"[SESSION] starting {session.session_id} type={config.interview_type.value} "
            f"target={session.target_turns} voice={config.voice_enabled}"
        )
        return await self._open(session)

    async def _open(self, session: InterviewSession) -> SessionSnapshot:
        async with self._exclusive_turn():
            generation = self._generation
            config = session.config
            request = QuestionRequest(
                persona=session.active_persona,
                cv_data=config.cv_data,
                job_data=config.job_data,
                target_turns=session.target_turns,
                question_style=config.question_style,
                language=config.language,
                interview_type=config.interview_type,
            )
            self._pending = PendingTurn(content="", prompt="")
            try:
                reply = await self._await_current(self._questions.next_line(request), generation)
            except TransientNetworkError as e:
                self._logger.warning(f"[SESSION] opening line failed: {e}")
                self._events.publish(SessionEventType.TURN_FAILED, generation, error=str(e), retry_available=True)
                raise

            self._pending = None
            line = self._resolve_line(reply.message, request)
            session.begin(line)
            self._events.publish(
                SessionEventType.SESSION_STARTED,
                generation,
                session_id=str(session.session_id),
                target_turns=session.target_turns,
                interviewer=session.interviewer_name,
            )
            self._events.publish(
                SessionEventType.INTERVIEWER_LINE,
                generation,
                content=line,
                interviewer=session.interviewer_name,
                closing=False,
            )
            self._speak(session, line, generation)
            return self.snapshot()

    async def end_early(self) -> SessionSnapshot:
        """
        End the session before the turn target.

        Pending oracle, synthesis and capture work is cancelled. Feedback
        can still be generated for whatever was answered.
        """
        session = self._session
        if session is None or session.is_finished:
            return self.snapshot()

        self._generation += 1
        self._cancel_inflight()
        self._pending = None
        session.transition(SessionPhase.ABORTED)
        self._logger.info(f"[SESSION] {session.session_id} ended early after {session.questions_asked} turns")
        self._events.publish(
            SessionEventType.SESSION_ABORTED,
            self._generation,
            questions_asked=session.questions_asked,
        )
        if self._auto_feedback and session.questions_asked > 0:
            self._schedule_feedback(session)
        return self.snapshot()

    async def reset(self) -> SessionSnapshot:
        """
        Abandon the current session and return to idle.

        The previous report, if one exists, stays available; any feedback
        still being generated for the abandoned run is discarded when it
        resolves.
        """
        session = self._session
        self._abandon()
        if session is not None:
            self._logger.info(f"[SESSION] {session.session_id} reset (generation {self._generation})")
        self._session = None
        self._feedback_error = None
        self._visual = None
        self._events.publish(SessionEventType.SESSION_RESET, self._generation)
        return self.snapshot()

    async def shutdown(self) -> None:
        """Abandon everything and close the event channel."""
        self._abandon()
        tasks = [t for t in (self._feedback_task, self._speech_task) if t is not None and not t.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._events.close()

    # ------------------------------------------------------------------
    # Candidate turns
    # ------------------------------------------------------------------

    async def submit_response(self, text: str) -> SessionSnapshot:
        """
        Submit a typed response.

        Raises:
            EmptyResponseError: If the text is blank (nothing is mutated).
            TransientNetworkError: If the next line could not be fetched.
        """
        if not text or not text.strip():
            raise EmptyResponseError("Please enter a response")
        session = self._require_active()
        content = text.strip()
        async with self._exclusive_turn():
            self._stop_speech()
            delta = MetricsDelta.from_text(content, session.response_latency())
            return await self._run_turn(session, PendingTurn(content=content, prompt=content, delta=delta))

    async def submit_audio(self, clip: CapturedClip) -> SessionSnapshot:
        """
        Submit a recorded clip: transcribe, validate and run the turn.

        Raises:
            RecordingTooShortError / NoAudioCapturedError: Clip rejected.
            NoSpeechDetectedError: Transcription found no usable speech.
            TransientNetworkError: Transcription or question generation failed.
        """
        if self._capture is None:
            raise SessionStateError("Speech capture is not available")
        session = self._require_active()
        self._capture.validate_clip(clip)
        async with self._exclusive_turn():
            generation = self._generation
            latency = session.response_latency()
            result = await self._await_current(
                self._capture.transcribe(clip, session.config.language),
                generation,
            )
            content = result.transcript.strip()
            delta = MetricsDelta.from_transcription(result, latency)
            return await self._run_turn(session, PendingTurn(content=content, prompt=content, delta=delta))

    async def start_recording(self) -> SessionSnapshot:
        """Silence narration and open the microphone."""
        if self._capture is None:
            raise SessionStateError("Speech capture is not available")
        self._require_active()
        if self._turn_in_progress():
            raise SessionStateError("A turn is already in progress")
        self._stop_speech()
        await self._capture.start()
        return self.snapshot()

    async def finish_recording(self) -> SessionSnapshot:
        """Close the microphone and submit the clip."""
        if self._capture is None:
            raise SessionStateError("Speech capture is not available")
        clip = await self._capture.stop()
        return await self.submit_audio(clip)

    async def cancel_recording(self) -> None:
        if self._capture is not None:
            await self._capture.cancel()

    async def skip_turn(self) -> SessionSnapshot:
        """Skip the current question; the skip occupies the candidate slot."""
        session = self._require_active()
        async with self._exclusive_turn():
            return await self._run_turn(session, PendingTurn(content=SKIP_SENTINEL, prompt=SKIP_PROMPT))

    async def retry_turn(self) -> SessionSnapshot:
        """
        Resend the turn that failed last, without re-counting its metrics.

        Raises:
            SessionStateError: If nothing is waiting for a retry.
        """
        session = self._session
        pending = self._pending
        if session is None or pending is None:
            raise SessionStateError("Nothing to retry")
        if session.phase == SessionPhase.IDLE:
            return await self._open(session)
        self._require_active()
        async with self._exclusive_turn():
            return await self._run_turn(session, pending)

    async def _run_turn(self, session: InterviewSession, turn: PendingTurn) -> SessionSnapshot:
        generation = self._generation
        closing = session.next_turn_is_closing
        config = session.config
        request = QuestionRequest(
            persona=session.active_persona,
            cv_data=config.cv_data,
            job_data=config.job_data,
            history=session.conversation_history() + [{"role": Speaker.CANDIDATE.value, "content": turn.content}],
            last_response=turn.prompt,
            turn_index=session.questions_asked,
            target_turns=session.target_turns,
            question_style=config.question_style,
            language=config.language,
            interview_type=config.interview_type,
            closing=closing,
        )
        self._pending = turn
        try:
            reply = await self._await_current(self._questions.next_line(request), generation)
        except TransientNetworkError as e:
            self._logger.warning(f"[SESSION] turn {session.questions_asked + 1} failed: {e}")
            self._events.publish(SessionEventType.TURN_FAILED, generation, error=str(e), retry_available=True)
            raise

        line = self._resolve_line(reply.message, request)
        session.commit_turn(turn.content, line, turn.delta)
        self._pending = None

        if turn.is_skip:
            self._events.publish(SessionEventType.TURN_SKIPPED, generation, questions_asked=session.questions_asked)
        else:
            self._events.publish(
                SessionEventType.CANDIDATE_RESPONSE,
                generation,
                content=turn.content,
                questions_asked=session.questions_asked,
            )
        self._events.publish(
            SessionEventType.INTERVIEWER_LINE,
            generation,
            content=line,
            interviewer=session.interviewer_name,
            closing=closing,
        )
        if closing:
            session.transition(SessionPhase.COMPLETING)
        self._speak(session, line, generation)
        return self.snapshot()

    # ------------------------------------------------------------------
    # Presentation
    # ------------------------------------------------------------------

    async def switch_interviewer(self, index: int) -> SessionSnapshot:
        """Make another persona the active interviewer; progress is unchanged."""
        session = self._session
        if session is None or session.is_finished:
            raise SessionStateError("No session in progress")
        persona = session.switch_interviewer(index)
        if self._synthesis is not None:
            self._synthesis.set_device_voice(persona.device_voice)
        self._logger.info(f"[SESSION] interviewer switched to #{index} ({persona.short_name})")
        self._events.publish(
            SessionEventType.INTERVIEWER_SWITCHED,
            self._generation,
            index=index,
            interviewer=persona.name,
            role=persona.role_display,
        )
        return self.snapshot()

    async def stop_speaking(self) -> SessionSnapshot:
        """Silence narration immediately."""
        self._stop_speech()
        return self.snapshot()

    async def wait_for_speech(self) -> None:
        """Wait until the current line has been spoken (or stopped)."""
        task = self._speech_task
        if task is not None and not task.done():
            await asyncio.gather(task, return_exceptions=True)

    async def check_tts_quota(self, force: bool = False) -> bool:
        """Pre-flight the generative synthesis engine."""
        if self._synthesis is None:
            return False
        return await self._synthesis.probe_quota(force=force)

    def _configure_voice(self, config: SessionConfig, session: InterviewSession) -> None:
        if self._synthesis is None or not config.voice_enabled:
            return
        engine = config.tts_engine
        if engine == SynthesisEngine.GENERATIVE and not self._synthesis.has_generative:
            self._logger.warning("[VOICE][TTS] generative engine unavailable, using on-device voice")
            engine = SynthesisEngine.ON_DEVICE
        self._synthesis.configure(engine)
        self._synthesis.set_language(config.language)
        persona = session.active_persona
        self._synthesis.set_device_voice(persona.device_voice if persona else None)

    def _speak(self, session: InterviewSession, line: str, generation: int) -> None:
        if self._synthesis is None or not session.config.voice_enabled:
            self._after_speech(session, generation)
            return
        if self._speech_task is not None and not self._speech_task.done():
            self._speech_task.cancel()
        self._speech_task = asyncio.create_task(self._speak_line(session, line, generation))

    async def _speak_line(self, session: InterviewSession, line: str, generation: int) -> None:
        try:
            result = await self._synthesis.synthesize_and_speak(line, session.voice)
            if result.fell_back:
                self._logger.info(f"[VOICE][TTS] line spoken on-device ({len(line)} chars)")
        except (TransientNetworkError, SynthesisError) as e:
            self._logger.warning(f"[VOICE][TTS] narration failed: {e}")
            if generation == self._generation:
                self._events.publish(SessionEventType.NOTIFICATION, generation, message=f"Voice playback failed: {e}")
        finally:
            if self._speech_task is asyncio.current_task():
                self._after_speech(session, generation)

    def _after_speech(self, session: InterviewSession, generation: int) -> None:
        if generation != self._generation or self._session is not session:
            return
        if session.phase == SessionPhase.COMPLETING:
            self._complete(session)

    def _complete(self, session: InterviewSession) -> None:
        session.transition(SessionPhase.COMPLETE)
        metrics = session.finalize_metrics()
        self._logger.info(
            f"[SESSION] {session.session_id} complete: {session.questions_asked} turns, "
            f"{metrics.word_count} words, {metrics.pace_wpm} wpm"
        )
        self._events.publish(
            SessionEventType.SESSION_COMPLETED,
            self._generation,
            questions_asked=session.questions_asked,
            pace_wpm=metrics.pace_wpm,
        )
        if self._auto_feedback:
            self._schedule_feedback(session)

    def _stop_speech(self) -> None:
        if self._synthesis is not None:
            self._synthesis.stop()

    def _notify(self, message: str) -> None:
        self._events.publish(SessionEventType.NOTIFICATION, self._generation, message=message)

    # ------------------------------------------------------------------
    # Feedback
    # ------------------------------------------------------------------

    async def generate_feedback(self) -> FeedbackReport:
        """
        Generate (or join the generation of) the report for the finished session.

        Returns:
            The feedback report.

        Raises:
            SessionStateError: If no finished session exists.
            IncompleteOracleResultError: If the oracle payload was incomplete.
            TransientNetworkError: If the oracle call failed.
            OperationCancelledError: If a reset discarded the run.
        """
        session = self._session
        if session is None or not session.is_finished:
            raise SessionStateError("Feedback is available once the session has ended")
        report = self._last_report
        if report is not None and report.session_id == session.session_id:
            return report

        task = self._schedule_feedback(session)
        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if current is not None and current.cancelling():
                raise
            raise OperationCancelledError("Feedback generation was cancelled") from None

    def _schedule_feedback(self, session: InterviewSession) -> asyncio.Task:
        task = self._feedback_task
        if task is not None and not task.done() and self._feedback_generation == self._generation:
            return task
        generation = self._generation
        self._feedback_error = None
        task = asyncio.create_task(self._produce_feedback(session, generation))
        task.add_done_callback(self._on_feedback_done)
        self._feedback_task = task
        self._feedback_generation = generation
        return task

    async def _produce_feedback(self, session: InterviewSession, generation: int) -> FeedbackReport:
        config = session.config
        try:
            report = await self._aggregator.aggregate(
                session.transcript,
                session.metrics,
                elapsed_seconds=session.elapsed_seconds(),
                visual=self._visual,
                cv_data=config.cv_data,
                job_data=config.job_data,
                language=config.language,
                session_id=session.session_id,
                generation=generation,
            )
        except InterviewError as e:
            if generation == self._generation:
                self._feedback_error = e
                self._logger.warning(f"[FEEDBACK] generation failed: {e}")
                self._events.publish(SessionEventType.FEEDBACK_FAILED, generation, error=str(e))
            raise

        if generation != self._generation:
            self._logger.info(f"[FEEDBACK] discarding stale report (generation {generation} != {self._generation})")
            raise OperationCancelledError("Feedback belongs to an abandoned session")

        self._last_report = report
        self._events.publish(SessionEventType.FEEDBACK_READY, generation, overall=report.scores.overall)
        return report

    @staticmethod
    def _on_feedback_done(task: asyncio.Task) -> None:
        # Failures were already published; retrieve them so they are not reported as unhandled.
        if not task.cancelled():
            task.exception()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _require_active(self) -> InterviewSession:
        session = self._session
        if session is None or session.phase != SessionPhase.ACTIVE:
            state = session.phase.value if session else "idle"
            raise SessionStateError(f"No active session (state: {state})")
        return session

    def _turn_in_progress(self) -> bool:
        return self._turn_lock.locked() and self._turn_generation == self._generation

    @asynccontextmanager
    async def _exclusive_turn(self) -> AsyncIterator[None]:
        """Hold the turn lock for the current generation.

        A turn from the current generation makes the request fail. A holder
        left over from an abandoned generation has already been cancelled, so
        the request waits for it to unwind instead.
        """
        if self._turn_in_progress():
            raise SessionStateError("A turn is already in progress")
        generation = self._generation
        self._turn_generation = generation
        async with self._turn_lock:
            if generation != self._generation:
                raise OperationCancelledError("Superseded by a reset")
            yield

    async def _await_current(self, work: Awaitable[T], generation: int) -> T:
        """Run oracle work as a tracked task and drop its result if the generation moved on."""
        task = asyncio.ensure_future(work)
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)
        try:
            result = await task
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if current is not None and current.cancelling():
                raise
            raise OperationCancelledError("Superseded by a reset") from None
        if generation != self._generation:
            raise OperationCancelledError("Superseded by a reset")
        return result

    def _resolve_line(self, message: str | None, request: QuestionRequest) -> str:
        line = (message or "").strip()
        if not line:
            self._logger.warning("[SESSION] question oracle returned no text, using fallback line")
            line = request.fallback_line()
        return line

    def _cancel_inflight(self) -> None:
        for task in list(self._inflight):
            task.cancel()
        if self._speech_task is not None and not self._speech_task.done():
            self._speech_task.cancel()
        self._stop_speech()
        if self._capture is not None and self._capture.is_recording:
            task = asyncio.ensure_future(self._capture.cancel())
            self._background.add(task)
            task.add_done_callback(self._background.discard)

    def _abandon(self) -> None:
        self._generation += 1
        self._cancel_inflight()
        self._pending = None
        session = self._session
        if session is not None and not session.is_finished:
            session.transition(SessionPhase.ABORTED)
            self._events.publish(SessionEventType.SESSION_ABORTED, self._generation, questions_asked=session.questions_asked)
