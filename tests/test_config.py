from interview_rehearsal.config import Settings


def test_defaults(monkeypatch):
    for name in ("ORACLE_BACKEND", "TTS_ENGINE", "MIN_CAPTURE_MS", "AUTO_FEEDBACK"):
        monkeypatch.delenv(name, raising=False)
    settings = Settings(_env_file=None)
    assert settings.oracle_backend == "service"
    assert settings.tts_engine == "on_device"
    assert settings.min_capture_ms == 500
    assert settings.min_audio_bytes == 1000
    assert settings.auto_feedback is True


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("ORACLE_BACKEND", "local")
    monkeypatch.setenv("MIN_CAPTURE_MS", "800")
    monkeypatch.setenv("AUTO_FEEDBACK", "false")
    settings = Settings(_env_file=None)
    assert settings.oracle_backend == "local"
    assert settings.min_capture_ms == 800
    assert settings.auto_feedback is False
