"""Core domain models.

Wire payloads (chat and speech requests, the chat-completion envelope) and the
structured fortune reply all pass through these types. Pydantic is used for
validation and serialisation at every data boundary.
"""

from __future__ import annotations

from typing import Literal, Union

from pydantic import BaseModel, ConfigDict, Field

Role = Literal["system", "user", "assistant"]


class ChatMessage(BaseModel):
    """A single entry in the append-only conversation transcript."""

    model_config = ConfigDict(frozen=True)

    role: Role
    content: str


# ---------------------------------------------------------------------------
# Outbound requests
# ---------------------------------------------------------------------------

class ChatRequest(BaseModel):
    model: str
    messages: list[ChatMessage]


class VoiceSettings(BaseModel):
    stability: float
    similarity_boost: float


class SpeechRequest(BaseModel):
    text: str
    model_id: str
    voice_settings: VoiceSettings


# ---------------------------------------------------------------------------
# Inbound chat-completion envelope (strict decode)
# ---------------------------------------------------------------------------

class CompletionMessage(BaseModel):
    content: str


class CompletionChoice(BaseModel):
    message: CompletionMessage


class ChatCompletion(BaseModel):
    """The subset of an OpenAI-compatible response the parser reads."""

    choices: list[CompletionChoice]


# ---------------------------------------------------------------------------
# Fortune replies
# ---------------------------------------------------------------------------

class FortuneJson(BaseModel):
    """Schema the model is asked to reply with, decoded strictly."""

    model_config = ConfigDict(strict=True)

    spoken: str
    choices: list[str] = Field(default_factory=list)


class FortuneResponse(BaseModel):
    """A parsed reply with exactly three normalized choices."""

    model_config = ConfigDict(frozen=True)

    spoken: str
    choices: list[str] = Field(min_length=3, max_length=3)


class ParseSuccess(BaseModel):
    model_config = ConfigDict(frozen=True)

    response: FortuneResponse
    canonical_json: str  # appended to the transcript as the assistant turn


class ParseFailure(BaseModel):
    model_config = ConfigDict(frozen=True)

    reason: str


ParseOutcome = Union[ParseSuccess, ParseFailure]
