"""Tests for fortune_teller.tts — ElevenLabsSpeech."""

import pytest
import httpx
from unittest.mock import AsyncMock, MagicMock, patch

from fortune_teller.payloads import build_speech_request
from fortune_teller.tts import ELEVENLABS_TTS_ENDPOINT, ElevenLabsSpeech, SpeechError


def _mock_response(content: bytes = b"", status: int = 200, text: str = "") -> MagicMock:
    resp = MagicMock()
    resp.status_code = status
    resp.content = content
    resp.text = text
    resp.headers = {"Content-Type": "audio/mpeg"}
    resp.raise_for_status = MagicMock(
        side_effect=None if status < 400 else httpx.HTTPStatusError(
            "", request=MagicMock(), response=resp
        )
    )
    return resp


@pytest.fixture
def speech() -> ElevenLabsSpeech:
    return ElevenLabsSpeech("voice123", "xi-secret")


@pytest.fixture
def request_body():
    return build_speech_request("The moon is red.", "eleven_multilingual_v2", 0.6, 0.75)


class TestElevenLabsSpeech:
    async def test_returns_audio_bytes(self, speech, request_body) -> None:
        mock_post = AsyncMock(return_value=_mock_response(b"ID3\x03mpegdata"))
        with patch("httpx.AsyncClient.post", mock_post):
            audio = await speech(request_body)
        assert audio == b"ID3\x03mpegdata"

    async def test_voice_id_in_url(self, speech, request_body) -> None:
        mock_post = AsyncMock(return_value=_mock_response(b"x"))
        with patch("httpx.AsyncClient.post", mock_post):
            await speech(request_body)
        assert mock_post.call_args[0][0] == f"{ELEVENLABS_TTS_ENDPOINT}/voice123"

    async def test_trailing_slash_stripped_from_endpoint(self, request_body) -> None:
        speech = ElevenLabsSpeech("v", "k", endpoint="http://localhost:9000/tts/")
        mock_post = AsyncMock(return_value=_mock_response(b"x"))
        with patch("httpx.AsyncClient.post", mock_post):
            await speech(request_body)
        assert mock_post.call_args[0][0] == "http://localhost:9000/tts/v"

    async def test_headers(self, speech, request_body) -> None:
        mock_post = AsyncMock(return_value=_mock_response(b"x"))
        with patch("httpx.AsyncClient.post", mock_post):
            await speech(request_body)
        headers = mock_post.call_args.kwargs["headers"]
        assert headers["xi-api-key"] == "xi-secret"
        assert headers["Accept"] == "audio/mpeg"
        assert headers["Content-Type"] == "application/json"

    async def test_sends_snapped_voice_settings(self, speech, request_body) -> None:
        mock_post = AsyncMock(return_value=_mock_response(b"x"))
        with patch("httpx.AsyncClient.post", mock_post):
            await speech(request_body)
        assert mock_post.call_args.kwargs["json"] == {
            "text": "The moon is red.",
            "model_id": "eleven_multilingual_v2",
            "voice_settings": {"stability": 0.5, "similarity_boost": 0.75},
        }

    async def test_http_error_keeps_body(self, speech, request_body) -> None:
        resp = _mock_response(status=401, text='{"detail": "invalid api key"}')
        mock_post = AsyncMock(return_value=resp)
        with patch("httpx.AsyncClient.post", mock_post):
            with pytest.raises(SpeechError, match="HTTP 401") as exc_info:
                await speech(request_body)
        assert "invalid api key" in exc_info.value.body

    async def test_timeout_raises_speech_error(self, speech, request_body) -> None:
        mock_post = AsyncMock(side_effect=httpx.TimeoutException("slow"))
        with patch("httpx.AsyncClient.post", mock_post):
            with pytest.raises(SpeechError, match="timed out"):
                await speech(request_body)

    async def test_connect_error_raises_speech_error(self, speech, request_body) -> None:
        mock_post = AsyncMock(side_effect=httpx.ConnectError("no route"))
        with patch("httpx.AsyncClient.post", mock_post):
            with pytest.raises(SpeechError, match="Cannot reach ElevenLabs") as exc_info:
                await speech(request_body)
        assert exc_info.value.body == ""
