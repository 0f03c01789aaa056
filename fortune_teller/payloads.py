"""Outbound request bodies for the chat and speech endpoints.

Retries are not encoded here; the orchestrator owns them.
"""

from collections.abc import Iterable

from fortune_teller.models import ChatMessage, ChatRequest, SpeechRequest, VoiceSettings

# Only these stability presets sound meaningfully different.
STABILITY_PRESETS: tuple[float, ...] = (0.0, 0.5, 1.0)


def clamp_unit(value: float) -> float:
    return min(1.0, max(0.0, value))


def snap_stability(value: float) -> float:
    """Clamp to [0, 1] and snap to the nearest preset.

    Ties go to the earlier preset: 0.25 -> 0.0, 0.75 -> 0.5.
    """
    clamped = clamp_unit(value)
    closest = STABILITY_PRESETS[0]
    best = abs(clamped - closest)
    for preset in STABILITY_PRESETS[1:]:
        distance = abs(clamped - preset)
        if distance < best:
            best = distance
            closest = preset
    return closest


def build_chat_request(model: str, messages: Iterable[ChatMessage]) -> ChatRequest:
    return ChatRequest(model=model, messages=list(messages))


def build_speech_request(
    text: str,
    model_id: str,
    stability: float,
    similarity_boost: float,
) -> SpeechRequest:
    return SpeechRequest(
        text=text,
        model_id=model_id,
        voice_settings=VoiceSettings(
            stability=snap_stability(stability),
            similarity_boost=clamp_unit(similarity_boost),
        ),
    )
