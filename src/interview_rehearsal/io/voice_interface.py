"""Voice-based interview interface.

Push-to-talk on top of the text interface: Enter starts and stops a
recording, typed lines are still accepted as answers, and ``/`` commands
behave exactly as in text mode. The orchestrator owns the microphone and
the speaker through its capture service and synthesis facade.
"""

from __future__ import annotations

from interview_rehearsal.errors import SessionStateError
from interview_rehearsal.io.text_interface import HELP_TEXT, TextInterface

VOICE_HELP_TEXT = HELP_TEXT + """
  /cancel    while recording: discard the clip (or just 'c')"""

RECORDING_PROMPT = "[Voice] Recording... press Enter to stop, /cancel to discard. "

CANCEL_COMMANDS = ("/cancel", "c")


class VoiceInterface(TextInterface):
    help_text = VOICE_HELP_TEXT

    async def run(self) -> None:
        print("\n" + "=" * 60)
        print("Interview Rehearsal - Voice Mode")
        print("=" * 60 + "\n")
        print("Press Enter to start recording, Enter again to stop. Typed answers also work.")
        await super().run()

    async def receive_input(self) -> str:
        return await self._get_input("\n[Voice] Press Enter to record (or type): ")

    async def _take_turn(self) -> None:
        line = await self.receive_input()
        if line.strip():
            await self._handle_line(line)
            return

        try:
            await self._orchestrator.start_recording()
        except SessionStateError as e:
            await self.send_message(str(e))
            return
        except RuntimeError as e:
            # Missing or broken audio backend.
            await self.send_message(f"Microphone unavailable: {e}")
            return

        stop = await self._get_input(RECORDING_PROMPT)
        if stop.strip().lower() in CANCEL_COMMANDS:
            await self._orchestrator.cancel_recording()
            print("(recording discarded)")
            return
        print("[Voice] Transcribing...", flush=True)
        await self._submit(self._orchestrator.finish_recording())
