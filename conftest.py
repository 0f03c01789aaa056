import pytest

from fortune_teller.config import API_KEY_ENV, VOICE_ID_ENV


@pytest.fixture(autouse=True)
def clean_speech_env(monkeypatch):
    """Keep a developer's real ElevenLabs credentials out of every test."""
    monkeypatch.delenv(VOICE_ID_ENV, raising=False)
    monkeypatch.delenv(API_KEY_ENV, raising=False)
    yield
