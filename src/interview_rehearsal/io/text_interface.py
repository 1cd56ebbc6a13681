"""
Text-based interview interface.

Provides a command-line interface for rehearsing interviews via text
input/output. Interviewer lines arrive through the orchestrator's event
channel and are printed as they are published.
"""

import asyncio
from abc import ABC, abstractmethod

from interview_rehearsal.errors import (
    InterviewError,
    InvalidInputError,
    OperationCancelledError,
    SessionStateError,
    TransientNetworkError,
)
from interview_rehearsal.feedback.aggregator import FeedbackReport
from interview_rehearsal.orchestrator.events import SessionEvent, SessionEventType
from interview_rehearsal.orchestrator.schemas import SessionConfig, SessionPhase
from interview_rehearsal.orchestrator.session_orchestrator import InterviewOrchestrator

HELP_TEXT = """Commands:
  /skip      skip the current question
  /retry     resend the last failed turn
  /end       end the interview now
  /reset     abandon this interview and start over
  /switch N  hand over to interviewer N
  /stop      stop the interviewer's voice
  /quit      leave without feedback"""


class InterviewInterface(ABC):
    """Abstract base class for interview interfaces."""

    @abstractmethod
    async def run(self) -> None:
        """Run the interview interface."""
        ...

    @abstractmethod
    async def send_message(self, message: str) -> None:
        """
        Send a message to the user.

        Args:
            message: Message to display.
        """
        ...

    @abstractmethod
    async def receive_input(self) -> str:
        """
        Receive input from the user.

        Returns:
            User's input string.
        """
        ...


class TextInterface(InterviewInterface):
    """
    Command-line text interface for interviews.

    Provides a simple REPL: plain lines are answers, lines starting with
    ``/`` are session commands.
    """

    help_text = HELP_TEXT

    def __init__(self, orchestrator: InterviewOrchestrator, config: SessionConfig) -> None:
        """
        Initialize the text interface.

        Args:
            orchestrator: Interview orchestrator to drive.
            config: Configuration used for every session started here.
        """
        self._orchestrator = orchestrator
        self._config = config
        self._quit = False

    async def run(self) -> None:
        """Run the interactive interview session."""
        print("\n" + "=" * 60)
        print("Interview Rehearsal")
        print("=" * 60 + "\n")
        print(self.help_text)

        print("\n" + "-" * 60)
        print("Starting Interview")
        print("-" * 60 + "\n")

        await self._start()

        while not self._quit:
            phase = self._orchestrator.phase
            if phase == SessionPhase.ACTIVE:
                await self._take_turn()
            elif phase == SessionPhase.COMPLETING:
                await self._orchestrator.wait_for_speech()
                await self._flush_events()
            elif phase == SessionPhase.IDLE:
                # Opening line failed; only /retry, /reset or /quit make sense.
                await self._handle_line(await self.receive_input())
            else:
                await self._flush_events()
                await self._finish()
                break

        await self._orchestrator.shutdown()

    async def send_message(self, message: str) -> None:
        """
        Display a message to the terminal.

        Args:
            message: Message to display.
        """
        print(f"\n{message}\n")

    async def receive_input(self) -> str:
        """
        Get input from the terminal.

        Returns:
            User's input string.
        """
        return await self._get_input("You: ")

    async def _get_input(self, prompt: str) -> str:
        """
        Get input with a specific prompt without blocking the event loop.

        Args:
            prompt: Prompt to display.

        Returns:
            User's input.
        """
        try:
            return await asyncio.to_thread(input, prompt)
        except EOFError:
            return "/quit"

    async def _start(self) -> None:
        try:
            await self._orchestrator.start_session(self._config)
        except TransientNetworkError as e:
            await self.send_message(f"Could not start the interview: {e}. Type /retry to try again.")
        await self._flush_events()

    async def _take_turn(self) -> None:
        await self._handle_line(await self.receive_input())

    async def _handle_line(self, line: str) -> None:
        text = line.strip()
        if text.startswith("/"):
            await self._handle_command(text)
        else:
            await self._submit(self._orchestrator.submit_response(text))

    async def _submit(self, operation) -> None:
        """Await a turn operation and report recoverable failures."""
        try:
            await operation
        except InvalidInputError as e:
            await self.send_message(str(e))
        except TransientNetworkError as e:
            await self.send_message(f"Connection problem: {e}. Type /retry to resend.")
        except OperationCancelledError:
            pass
        except SessionStateError as e:
            await self.send_message(str(e))
        await self._flush_events()

    async def _handle_command(self, text: str) -> None:
        command, _, arg = text.partition(" ")
        command = command.lower()
        orchestrator = self._orchestrator

        if command == "/skip":
            await self._submit(orchestrator.skip_turn())
        elif command == "/retry":
            await self._submit(orchestrator.retry_turn())
        elif command == "/end":
            await orchestrator.end_early()
            await self._flush_events()
        elif command == "/reset":
            await orchestrator.reset()
            await self._flush_events()
            await self.send_message("Starting over.")
            await self._start()
        elif command == "/switch":
            try:
                await orchestrator.switch_interviewer(int(arg) - 1)
            except (ValueError, SessionStateError) as e:
                await self.send_message(f"Cannot switch interviewer: {e}")
            await self._flush_events()
        elif command == "/stop":
            await orchestrator.stop_speaking()
        elif command in ("/quit", "/exit"):
            self._quit = True
        else:
            print(self.help_text)

    async def _flush_events(self) -> None:
        generation = self._orchestrator.generation
        for event in self._orchestrator.events.drain():
            if event.generation != generation and event.event_type != SessionEventType.SESSION_RESET:
                continue
            await self._render_event(event)

    async def _render_event(self, event: SessionEvent) -> None:
        data = event.data
        kind = event.event_type
        if kind == SessionEventType.INTERVIEWER_LINE:
            await self.send_message(f"{data.get('interviewer', 'Interviewer')}: {data.get('content', '')}")
        elif kind == SessionEventType.TURN_SKIPPED:
            print("(question skipped)")
        elif kind == SessionEventType.NOTIFICATION:
            print(f"[!] {data.get('message', '')}")
        elif kind == SessionEventType.INTERVIEWER_SWITCHED:
            role = data.get("role")
            print(f"(now speaking with {data.get('interviewer')}{f', {role}' if role else ''})")
        elif kind == SessionEventType.SESSION_ABORTED:
            print(f"(interview ended after {data.get('questions_asked', 0)} answers)")
        elif kind == SessionEventType.FEEDBACK_FAILED:
            print(f"[!] Feedback failed: {data.get('error', '')}")

    async def _finish(self) -> None:
        snapshot = self._orchestrator.snapshot()
        if snapshot.questions_asked == 0:
            print("\nNo answers recorded, skipping feedback.")
            return

        print("\nGenerating feedback...")
        while True:
            try:
                report = await self._orchestrator.generate_feedback()
            except OperationCancelledError:
                return
            except InterviewError as e:
                await self.send_message(f"Feedback failed: {e}")
                again = await self._get_input("Try again? [y/N]: ")
                if again.strip().lower() in ("y", "yes"):
                    continue
                return
            await self._display_report(report)
            return

    async def _display_report(self, report: FeedbackReport) -> None:
        """
        Display the feedback report.

        Args:
            report: Feedback report to display.
        """
        scores = report.scores
        print("\n" + "=" * 60)
        print("Interview Feedback")
        print("=" * 60)
        print(f"\nOverall Score: {scores.overall}/100")
        print(f"  Content:  {scores.content}")
        print(f"  Delivery: {scores.delivery}")
        if scores.visual is not None:
            print(f"  Visual:   {scores.visual}")

        analysis = report.delivery_analysis
        if analysis is not None:
            print(f"\nPace: {analysis.pace.wpm} wpm ({analysis.pace.assessment})")
            print(f"Filler words: {analysis.filler_words.count} ({analysis.filler_words.percentage}%)")

        text = report.text_for(self._config.language)
        if text.get("summary"):
            print(f"\n{text['summary']}")
        for title, key in (("Strengths", "strengths"), ("To improve", "improvements")):
            items = text.get(key) or []
            if items:
                print(f"\n{title}:")
                for item in items:
                    if isinstance(item, dict):
                        item = item.get("suggestion") or item.get("area") or ""
                    print(f"  - {item}")

        print("\n" + "=" * 60)
