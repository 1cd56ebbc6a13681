"""
Application configuration using pydantic-settings.

Loads configuration from environment variables and .env files.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Oracle backend
    oracle_backend: Literal["service", "local"] = Field(
        default="service",
        description="Where question/feedback/transcription/synthesis calls go",
    )
    service_base_url: str = Field(
        default="http://localhost:8080/api",
        description="Base URL of the interview AI service",
    )
    service_timeout: float = Field(
        default=60.0,
        description="Timeout in seconds for interview service requests",
    )
    service_api_key: str | None = Field(
        default=None,
        description="Optional bearer token for the interview service",
    )

    # LLM Configuration (Ollama, local backend)
    llm_model_name: str = Field(
        default="gpt-oss:20b",
        description="Ollama model name used by the local backend",
    )
    llm_timeout: int = Field(
        default=120,
        description="Timeout in seconds for LLM requests",
    )
    llm_max_retries: int = Field(
        default=1,
        description="Number of retries on LLM failure",
    )

    # Interview defaults
    interview_language: str = Field(default="en", description="Interview language code")
    question_style: str = Field(
        default="balanced",
        description="Question style hint passed to the question oracle",
    )
    auto_feedback: bool = Field(
        default=True,
        description="Generate feedback automatically once a session completes",
    )

    # Voice synthesis
    tts_engine: Literal["generative", "on_device"] = Field(
        default="on_device",
        description="Preferred synthesis engine at session start",
    )
    playback_sample_rate: int = Field(
        default=24000,
        description="Sample rate of generative PCM audio",
    )

    # Speech capture
    capture_sample_rate: int = Field(default=16000, description="Microphone sample rate")
    min_capture_ms: int = Field(
        default=500,
        description="Clips shorter than this are rejected as too short",
    )
    min_audio_bytes: int = Field(
        default=1000,
        description="Clips smaller than this are rejected as empty",
    )

    # Local transcription (faster-whisper)
    stt_model: str = Field(default="small", description="faster-whisper model size")
    stt_device: str = Field(default="cpu", description="faster-whisper device (cpu|cuda|auto)")
    min_avg_logprob: float = Field(
        default=-1.2,
        description="At or below this average log-probability a transcript is low confidence",
    )
    max_no_speech_prob: float = Field(
        default=0.9,
        description="At or above this no-speech probability a transcript is empty",
    )

    # Application
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )
    debug: bool = Field(
        default=False,
        description="Enable debug mode",
    )


@lru_cache
def get_settings() -> Settings:
    """
    Get cached application settings.

    Returns:
        Settings: Application settings instance.
    """
    return Settings()
