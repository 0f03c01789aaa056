"""Fortune teller configuration.

Stored as a single JSON file; every field has a default so a missing file or a
partial file both work. The result is frozen; the conversation core treats it
as read-only for the lifetime of the session.

ElevenLabs credentials may live in the file or in the environment
(ELEVENLABS_VOICE_ID / ELEVENLABS_API_KEY, typically from .env). The
environment is consulted only when the file leaves the field blank.
"""

from __future__ import annotations

import os
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from fortune_teller.prompts import DEFAULT_CHOICE_PROMPT, DEFAULT_INTRO_CHOICE_PROMPT
from fortune_teller.tts import ELEVENLABS_TTS_ENDPOINT

VOICE_ID_ENV = "ELEVENLABS_VOICE_ID"
API_KEY_ENV = "ELEVENLABS_API_KEY"

DEFAULT_SYSTEM_PROMPT = (
    "You are Bartholomew the Bone-Seer, a spooky skeletal fortune teller who speaks in "
    "short, dramatic sentences. Always stay in character. Every reply MUST consist solely "
    'of valid JSON matching this schema: {"spoken":"STRING","choices":["STRING","STRING","STRING"]}. '
    'The "spoken" field contains ONLY the words Bartholomew speaks aloud (no names, no stage '
    'directions, no extra quotes). The "choices" array MUST contain exactly three short, '
    "distinct player options. Do NOT add any text before or after the JSON. If you cannot "
    'comply, reply with {"spoken":"I cannot see the future","choices":["Try again",'
    '"Consult another seer","Leave the crypt"]}.'
)

DEFAULT_USER_PROMPT = (
    "It is Halloween night and a curious visitor arrives to have their fortune read. "
    "Greet them with an unsettling introduction and offer exactly three mysterious choices "
    "for how the reading should proceed. "
    "Remember: reply ONLY with the JSON described in the system prompt."
)


class ConfigError(Exception):
    """Raised when the config file cannot be read or fails validation."""


class FortuneConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    # Chat backend (LM Studio by default)
    llm_endpoint: str = "http://127.0.0.1:1234/v1/chat/completions"
    llm_model: str = "default"
    llm_api_key: str = ""
    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    user_prompt: str = DEFAULT_USER_PROMPT
    choice_prompt: str = DEFAULT_CHOICE_PROMPT
    intro_choice_prompt: str = DEFAULT_INTRO_CHOICE_PROMPT
    request_timeout: float = 120.0

    # Scripted intro
    intro_clip: Path | None = None
    intro_spoken: str = ""
    intro_question_clip: Path | None = None
    intro_question: str = ""
    intro_choices: list[str] = Field(default_factory=list)

    # ElevenLabs
    speech_enabled: bool = True
    elevenlabs_voice_id: str = ""
    elevenlabs_model_id: str = ""
    elevenlabs_api_key: str = ""
    stability: float = 0.5  # snapped to 0 / 0.5 / 1 before sending
    similarity_boost: float = 0.75
    speech_endpoint: str = ELEVENLABS_TTS_ENDPOINT

    # Playback
    talking_parameter: str = "IsTalking"
    start_delay: float = 1.0
    log_transcript: bool = True
    skip_key: str = "space"

    # Background music
    background_music: Path | None = None
    background_music_volume: float = 0.35
    background_music_loop: bool = True
    play_background_music_on_start: bool = True

    hide_dialogue_ui: bool = False

    @property
    def has_intro(self) -> bool:
        return self.intro_clip is not None or bool(self.intro_spoken.strip())

    @property
    def has_intro_question(self) -> bool:
        if not self.intro_question.strip():
            return False
        return any(c.strip() for c in self.intro_choices)

    def resolve_paths(self, base: Path) -> FortuneConfig:
        """Return a copy with relative clip paths anchored at `base`."""
        updates: dict[str, Path] = {}
        for name in ("intro_clip", "intro_question_clip", "background_music"):
            path = getattr(self, name)
            if path is not None and not path.is_absolute():
                updates[name] = base / path
        return self.model_copy(update=updates) if updates else self


def load_config(path: Path | None = None) -> FortuneConfig:
    """Read config from `path`, returning defaults when there is no file."""
    if path is None or not path.is_file():
        return FortuneConfig()
    try:
        config = FortuneConfig.model_validate_json(path.read_text())
    except (OSError, ValidationError) as e:
        raise ConfigError(f"Invalid config file {path}: {e}") from e
    return config.resolve_paths(path.parent)


def resolve_credentials(config: FortuneConfig) -> tuple[str, str]:
    """Return (voice_id, api_key), falling back to the environment for blank fields."""
    voice_id = config.elevenlabs_voice_id.strip() or os.getenv(VOICE_ID_ENV, "").strip()
    api_key = config.elevenlabs_api_key.strip() or os.getenv(API_KEY_ENV, "").strip()
    return voice_id, api_key
