"""Chat transport — HTTP connection to an OpenAI-compatible chat endpoint.

The orchestrator injects a transport callable matching the protocol:

    async def __call__(self, request: ChatRequest) -> str: ...

The return value is the raw response body. Decoding it is the parser's job,
since local models (LM Studio, llama.cpp server) return all sorts of shapes.

Production code constructs an HttpChat from config and hands it to the
Orchestrator. Tests use in-memory stubs instead.
"""

from __future__ import annotations

import logging
from typing import Protocol

import httpx

from fortune_teller.models import ChatRequest

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Protocol: every chat transport must match this signature
# ---------------------------------------------------------------------------

class ChatTransport(Protocol):
    async def __call__(self, request: ChatRequest) -> str: ...


# ---------------------------------------------------------------------------
# HttpChat: connects to a real backend
# ---------------------------------------------------------------------------

class HttpChat:
    """Async HTTP client for /v1/chat/completions style endpoints.

    POST {endpoint}  {"model": ..., "messages": [{"role": ..., "content": ...}]}

    Args:
        endpoint: Full URL of the chat-completions route.
        api_key:  Bearer token, or empty string if not required.
        timeout:  HTTP timeout in seconds. Defaults to 120.
    """

    def __init__(self, endpoint: str, api_key: str = "", timeout: float = 120.0) -> None:
        self._endpoint = endpoint
        self._api_key = api_key
        self._timeout = timeout

    def _headers(self) -> dict[str, str]:
        headers: dict[str, str] = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    async def __call__(self, request: ChatRequest) -> str:
        body = request.model_dump()
        logger.debug(
            "chat call url=%s model=%s messages=%d",
            self._endpoint, request.model, len(request.messages),
        )

        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.post(self._endpoint, json=body, headers=self._headers())
                resp.raise_for_status()
        except httpx.ConnectError as e:
            raise TransportError(f"Cannot connect to chat backend at {self._endpoint}") from e
        except httpx.HTTPStatusError as e:
            raise TransportError(
                f"Chat backend returned HTTP {e.response.status_code}"
            ) from e
        except httpx.TimeoutException as e:
            raise TransportError(f"Chat backend timed out after {self._timeout}s") from e
        except httpx.HTTPError as e:
            raise TransportError(f"Chat request failed: {e}") from e

        logger.debug("chat response len=%d", len(resp.text))
        return resp.text


# ---------------------------------------------------------------------------
# TransportError: raised by HttpChat for connection and protocol failures
# ---------------------------------------------------------------------------

class TransportError(RuntimeError):
    """Raised when the chat backend cannot be reached or returns an error."""
