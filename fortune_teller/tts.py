"""ElevenLabs text-to-speech transport.

    POST {endpoint}/{voice_id}
    {"text": ..., "model_id": ..., "voice_settings": {"stability": ..., "similarity_boost": ...}}

A successful response is an MPEG audio stream. Error responses usually carry a
JSON or text body explaining what went wrong (bad key, unknown voice, quota),
which is kept on the raised SpeechError.
"""

from __future__ import annotations

import logging
from typing import Protocol

import httpx

from fortune_teller.models import SpeechRequest

logger = logging.getLogger(__name__)

ELEVENLABS_TTS_ENDPOINT = "https://api.elevenlabs.io/v1/text-to-speech"


class SpeechTransport(Protocol):
    async def __call__(self, request: SpeechRequest) -> bytes: ...


class ElevenLabsSpeech:
    """Async HTTP client for the ElevenLabs text-to-speech route.

    Args:
        voice_id: ElevenLabs voice to render with.
        api_key:  Sent as the xi-api-key header.
        endpoint: Base URL of the text-to-speech route.
        timeout:  HTTP timeout in seconds. Defaults to 120.
    """

    def __init__(
        self,
        voice_id: str,
        api_key: str,
        endpoint: str = ELEVENLABS_TTS_ENDPOINT,
        timeout: float = 120.0,
    ) -> None:
        self._url = f"{endpoint.rstrip('/')}/{voice_id}"
        self._api_key = api_key
        self._timeout = timeout

    def _headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Accept": "audio/mpeg",
            "xi-api-key": self._api_key,
        }

    async def __call__(self, request: SpeechRequest) -> bytes:
        logger.debug("tts call url=%s chars=%d", self._url, len(request.text))

        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.post(self._url, json=request.model_dump(), headers=self._headers())
                resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise SpeechError(
                f"ElevenLabs returned HTTP {e.response.status_code}",
                body=_error_body(e.response),
            ) from e
        except httpx.TimeoutException as e:
            raise SpeechError(f"ElevenLabs timed out after {self._timeout}s") from e
        except httpx.HTTPError as e:
            raise SpeechError(f"Cannot reach ElevenLabs: {e}") from e

        logger.debug(
            "tts response bytes=%d content-type=%s",
            len(resp.content), resp.headers.get("Content-Type", ""),
        )
        return resp.content


def _error_body(response: httpx.Response) -> str:
    try:
        return response.text
    except (UnicodeDecodeError, httpx.ResponseNotRead) as e:
        return f"(failed to read error body: {e})"


class SpeechError(RuntimeError):
    """Raised when speech synthesis fails. `body` holds the server's explanation."""

    def __init__(self, message: str, body: str = "") -> None:
        super().__init__(message)
        self.body = body
