"""
Main entry point for the Interview Rehearsal application.
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any

from interview_rehearsal.config import get_settings
from interview_rehearsal.feedback.aggregator import FeedbackAggregator
from interview_rehearsal.io.text_interface import TextInterface
from interview_rehearsal.models.llm_client import LLMClient
from interview_rehearsal.oracles.llm_oracles import LLMFeedbackOracle, LLMQuestionOracle
from interview_rehearsal.oracles.service_client import InterviewServiceClient
from interview_rehearsal.orchestrator.events import EventChannel
from interview_rehearsal.orchestrator.schemas import (
    InterviewerPersona,
    InterviewType,
    SessionConfig,
    SynthesisEngine,
)
from interview_rehearsal.orchestrator.session_orchestrator import InterviewOrchestrator
from interview_rehearsal.voice.audio_io import AudioIO, AudioIOConfig
from interview_rehearsal.voice.capture import CaptureConfig, SpeechCaptureService
from interview_rehearsal.voice.synthesis import GenerativeEngine, OnDeviceEngine, VoiceSynthesisFacade


def setup_logging() -> None:
    """Configure application logging."""
    settings = get_settings()
    logging.basicConfig(
        level=logging.DEBUG if settings.debug else getattr(logging, settings.log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )


def build_parser() -> argparse.ArgumentParser:
    settings = get_settings()
    parser = argparse.ArgumentParser(prog="interview-rehearsal")
    parser.add_argument("--mode", choices=["text", "voice"], default="text", help="Run in text or voice mode")
    parser.add_argument(
        "--interview-type",
        choices=[t.value for t in InterviewType],
        default=InterviewType.FULL.value,
        help="Kind of interview (sets the number of questions)",
    )
    parser.add_argument("--target-turns", type=int, default=None, help="Override the number of questions")
    parser.add_argument("--language", default=settings.interview_language, help="Interview language code")
    parser.add_argument("--question-style", default=settings.question_style, help="Question style hint")
    parser.add_argument(
        "--tts-engine",
        choices=[e.value for e in SynthesisEngine],
        default=settings.tts_engine,
        help="Preferred voice synthesis engine",
    )
    parser.add_argument("--no-voice", action="store_true", help="Do not narrate interviewer lines")
    parser.add_argument(
        "--backend",
        choices=["service", "local"],
        default=settings.oracle_backend,
        help="Interview AI service or local Ollama/faster-whisper models",
    )
    parser.add_argument("--cv-file", type=Path, default=None, help="Parsed CV as JSON")
    parser.add_argument("--job-file", type=Path, default=None, help="Parsed job description as JSON")
    parser.add_argument("--personas-file", type=Path, default=None, help="Interviewer personas as a JSON list")
    return parser


def _load_json(path: Path | None) -> Any:
    if path is None:
        return None
    return json.loads(path.expanduser().read_text(encoding="utf-8"))


def build_session_config(args: argparse.Namespace) -> SessionConfig:
    """Build the session configuration from parsed arguments."""
    personas = _load_json(args.personas_file) or []
    if isinstance(personas, dict):
        personas = [personas]
    return SessionConfig(
        interview_type=InterviewType(args.interview_type),
        target_turns=args.target_turns,
        language=args.language,
        question_style=args.question_style,
        personas=[InterviewerPersona.model_validate(p) for p in personas],
        cv_data=_load_json(args.cv_file),
        job_data=_load_json(args.job_file),
        voice_enabled=not args.no_voice,
        tts_engine=SynthesisEngine(args.tts_engine),
    )


async def run_interview(argv: list[str] | None = None) -> None:
    """
    Run an interactive interview rehearsal.

    This is the main async entry point that wires the oracles, voice
    components and orchestrator for the selected backend, then runs the
    chosen interface.
    """
    settings = get_settings()
    logger = logging.getLogger(__name__)

    args = build_parser().parse_args(argv)
    config = build_session_config(args)

    logger.info(f"Initializing Interview Rehearsal (backend={args.backend}, mode={args.mode})...")

    service: InterviewServiceClient | None = None
    audio = AudioIO(
        AudioIOConfig(
            capture_sample_rate=settings.capture_sample_rate,
            playback_sample_rate=settings.playback_sample_rate,
        )
    )
    if args.backend == "service":
        service = InterviewServiceClient()
        question_oracle = feedback_oracle = transcriber = service
        generative = GenerativeEngine(service, audio, sample_rate=settings.playback_sample_rate)
    else:
        logger.debug(f"Using LLM model: {settings.llm_model_name}")
        llm_client = LLMClient(model=settings.llm_model_name, timeout=settings.llm_timeout)
        question_oracle = LLMQuestionOracle(llm_client)
        feedback_oracle = LLMFeedbackOracle(llm_client)
        transcriber = None
        generative = None

    synthesis = None
    if config.voice_enabled:
        synthesis = VoiceSynthesisFacade(OnDeviceEngine(language=config.language), generative)

    capture = None
    if args.mode == "voice":
        if transcriber is None:
            # Lazy import so text mode doesn't require faster-whisper.
            from interview_rehearsal.voice.stt import WhisperTranscriber

            transcriber = WhisperTranscriber()
        capture = SpeechCaptureService(audio, transcriber, CaptureConfig.from_settings())

    orchestrator = InterviewOrchestrator(
        question_oracle,
        FeedbackAggregator(feedback_oracle),
        synthesis=synthesis,
        capture=capture,
        events=EventChannel(),
    )

    if args.mode == "voice":
        from interview_rehearsal.io.voice_interface import VoiceInterface

        interface = VoiceInterface(orchestrator, config)
    else:
        interface = TextInterface(orchestrator, config)

    logger.info("Starting interview session...")
    try:
        await interface.run()
    finally:
        if service is not None:
            await service.close()


def main() -> None:
    """Main entry point for the application."""
    setup_logging()

    try:
        asyncio.run(run_interview(sys.argv[1:]))
    except KeyboardInterrupt:
        print("\nInterview session terminated by user.")
        sys.exit(0)
    except Exception as e:
        logging.error(f"Application error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
