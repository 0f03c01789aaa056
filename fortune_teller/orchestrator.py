"""Conversation orchestrator — runs the fortune-telling session.

Startup flow:
  1. Greeting text, choices hidden; warn once about missing speech credentials.
  2. Intro playback (clip or timed text, skippable); the intro line is logged.
  3. Either the scripted intro question with pre-authored choices (no backend
     call), or the opening turn built from user_prompt.

Turn flow (select_choice / trigger):
  1. Drop the trigger while the intro runs or a request is already in flight.
  2. Append the player's contribution to the transcript.
  3. Chat request → parse, up to MAX_RETRIES attempts. A transport failure
     aborts immediately; a parse failure appends RETRY_REMINDER and retries.
  4. Append the canonical JSON as the assistant turn.
  5. Speak the line (ElevenLabs → player), falling back to silent text.
  6. Present the normalized choices.

An aborted turn re-presents the previous choices so the player is never stuck.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from enum import Enum
from pathlib import Path

from fortune_teller.choices import normalize
from fortune_teller.config import FortuneConfig, resolve_credentials
from fortune_teller.llm import ChatTransport, HttpChat, TransportError
from fortune_teller.models import ParseOutcome, ParseSuccess
from fortune_teller.parser import parse
from fortune_teller.payloads import build_chat_request, build_speech_request
from fortune_teller.playback import (
    AudioClip,
    BackgroundMusic,
    MusicChannel,
    PlaybackError,
    PlaybackSynchronizer,
    Player,
    load_clip,
)
from fortune_teller.prompts import (
    RETRY_REMINDER,
    PromptError,
    build_system_prompt,
    choice_message,
)
from fortune_teller.session import Session
from fortune_teller.tts import ElevenLabsSpeech, SpeechError, SpeechTransport
from fortune_teller.ui import Animator, DialogueUI, DialogueView

logger = logging.getLogger(__name__)

MAX_RETRIES = 3

GREETING_TEXT = "The fortune teller prepares to speak..."
CONTEMPLATING_TEXT = "The fortune teller contemplates..."


class State(str, Enum):
    IDLE = "idle"
    INTRO_PLAYBACK = "intro_playback"
    INTRO_QUESTION = "intro_question"
    STEADY_STATE = "steady_state"
    REQUEST_IN_FLIGHT = "request_in_flight"
    SPEECH_PLAYBACK = "speech_playback"
    CANCELLED = "cancelled"
    ERROR = "error"


# Player input is only accepted once the intro has finished.
_TRIGGER_STATES = frozenset({State.STEADY_STATE, State.ERROR})
_CHOICE_STATES = _TRIGGER_STATES | {State.INTRO_QUESTION}


class Orchestrator:
    """Single-conversation state machine.

    Args:
        config:        Read-only session configuration.
        ui:            Text + choice display collaborator.
        player:        Speech/intro audio collaborator.
        chat:          Chat transport; defaults to HttpChat built from config.
        speech:        Speech transport; defaults to ElevenLabsSpeech when
                       credentials are available at start().
        animator:      Receives the talking flag, optional.
        music_channel: Separate output for background music, optional.
        parse_reply:   Raw body → ParseOutcome; defaults to parser.parse.
        session:       Pre-built session context; defaults to a fresh one.
    """

    def __init__(
        self,
        config: FortuneConfig,
        *,
        ui: DialogueUI,
        player: Player,
        chat: ChatTransport | None = None,
        speech: SpeechTransport | None = None,
        animator: Animator | None = None,
        music_channel: MusicChannel | None = None,
        parse_reply: Callable[[str], ParseOutcome] = parse,
        session: Session | None = None,
    ) -> None:
        self.config = config
        self.session = session or Session(build_system_prompt(config.system_prompt))
        self.state = State.IDLE
        self._chat = chat if chat is not None else HttpChat(
            config.llm_endpoint, api_key=config.llm_api_key, timeout=config.request_timeout
        )
        self._speech = speech
        self._speech_enabled = False
        self._view = DialogueView(ui, hidden=config.hide_dialogue_ui)
        self._playback = PlaybackSynchronizer(player, animator, config.talking_parameter)
        self._music = BackgroundMusic(music_channel) if music_channel is not None else None
        self._parse = parse_reply

    @property
    def speech_enabled(self) -> bool:
        return self._speech_enabled

    # ------------------------------------------------------------------
    # Host-facing events
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Run the startup sequence. Only valid once, from IDLE."""
        if self.state is not State.IDLE:
            logger.warning("start() called in state %s; ignored", self.state.value)
            return

        self._view.show_text(GREETING_TEXT)
        self._view.lock_choices()
        self._configure_speech()
        self._configure_music()

        await self._run_intro()
        if self.config.has_intro_question:
            await self._run_intro_question()
            return

        self.state = State.STEADY_STATE
        await self._advance(self.config.user_prompt)

    async def select_choice(self, index: int) -> None:
        """Handle a click on choice button `index` (0..2)."""
        if self.session.request_in_flight:
            logger.debug("choice %d ignored: request in flight", index)
            return
        if self.state not in _CHOICE_STATES:
            logger.debug("choice %d ignored in state %s", index, self.state.value)
            return
        choice = self.session.choice_at(index)
        if choice is None:
            return

        self._view.show_text(f"You choose: {choice}\n\n{CONTEMPLATING_TEXT}")
        self._view.lock_choices()

        if self.session.awaiting_intro_choice:
            self.session.awaiting_intro_choice = False
            message = self._render_choice(self.config.intro_choice_prompt, choice, self.config.user_prompt)
        else:
            message = self._render_choice(self.config.choice_prompt, choice)
        await self._advance(message)

    async def trigger(self, user_message: str | None = None) -> None:
        """Run a turn without a choice, e.g. free text or a retry after an abort."""
        if self.state not in _TRIGGER_STATES:
            logger.debug("trigger ignored in state %s", self.state.value)
            return
        await self._advance(user_message)

    def request_skip(self) -> bool:
        """Skip the intro clip or text currently playing. Returns whether anything was skipped."""
        return self._playback.cancel()

    def play_background_music(
        self, clip: AudioClip | None = None, loop: bool = True, volume: float | None = None
    ) -> None:
        if self._music is not None:
            self._music.play(clip, loop=loop, volume=volume)

    def stop_background_music(self) -> None:
        if self._music is not None:
            self._music.stop()

    # ------------------------------------------------------------------
    # Startup
    # ------------------------------------------------------------------

    def _configure_speech(self) -> None:
        if not self.config.speech_enabled:
            logger.info("Speech disabled by config; replies will be shown as text.")
            self._speech_enabled = False
            return

        voice_id, api_key = resolve_credentials(self.config)
        if not voice_id:
            logger.warning(
                "ElevenLabs voice ID not set (config or ELEVENLABS_VOICE_ID). "
                "Choices will be shown but audio will be silent."
            )
        if not api_key:
            logger.warning(
                "ElevenLabs API key not set (config or ELEVENLABS_API_KEY). "
                "Choices will be shown but audio will be silent."
            )
        if not (voice_id and api_key):
            self._speech_enabled = False
            return

        if self._speech is None:
            self._speech = ElevenLabsSpeech(
                voice_id,
                api_key,
                endpoint=self.config.speech_endpoint,
                timeout=self.config.request_timeout,
            )
        self._speech_enabled = True

    def _configure_music(self) -> None:
        if self._music is None:
            return
        self._music.configure(
            self._load_clip(self.config.background_music),
            volume=self.config.background_music_volume,
            loop=self.config.background_music_loop,
            autoplay=self.config.play_background_music_on_start,
        )

    async def _run_intro(self) -> None:
        if not self.config.has_intro:
            return

        self.state = State.INTRO_PLAYBACK
        text = self.config.intro_spoken.strip()
        clip = self._load_clip(self.config.intro_clip)
        if clip is not None:
            skipped = await self._play_scripted(clip, text)
        elif text:
            self._view.show_text(text)
            skipped = await self._playback.hold(min(5.0, max(1.0, len(text) * 0.05)))
        else:
            return

        if skipped:
            self.state = State.CANCELLED
        # logged even when skipped: the model should know what it already said
        self.session.log.append_assistant(text)

    async def _run_intro_question(self) -> None:
        self.state = State.INTRO_QUESTION
        self._view.set_choices_visible(False)

        question = self.config.intro_question.strip()
        clip = self._load_clip(self.config.intro_question_clip)
        if clip is not None:
            if await self._play_scripted(clip, question):
                self.state = State.CANCELLED
        else:
            self._view.show_text(question)
        self.session.log.append_assistant(question)

        self._present_choices(normalize(self.config.intro_choices))
        self.session.awaiting_intro_choice = True
        self.state = State.INTRO_QUESTION

    async def _play_scripted(self, clip: AudioClip, text: str) -> bool:
        """Play a pre-recorded clip with its text on screen. Returns True if skipped."""
        if self.config.start_delay > 0:
            await asyncio.sleep(self.config.start_delay)
        if text:
            self._view.show_text(text)
        try:
            played = await self._playback.play(clip, skippable=True)
        except PlaybackError as e:
            logger.error("Could not play clip %r: %s", clip.name, e)
            return False
        return played.cancelled

    # ------------------------------------------------------------------
    # Turns
    # ------------------------------------------------------------------

    async def _advance(self, user_message: str | None) -> None:
        if self.session.request_in_flight:
            logger.debug("turn dropped: request in flight")
            return

        self.session.request_in_flight = True
        self.state = State.REQUEST_IN_FLIGHT
        try:
            if user_message and user_message.strip():
                self.session.log.append_user(user_message)
            self._view.set_choices_visible(False)

            outcome = await self._request_reply()
            if outcome is None:
                self._restore_choices()
                return

            self.session.log.append_assistant(outcome.canonical_json)
            spoken = outcome.response.spoken
            self._view.show_text("")
            if spoken:
                await self._play_speech(spoken)
            else:
                logger.warning("Received empty spoken text.")

            self._present_choices(outcome.response.choices)
            self.state = State.STEADY_STATE
        finally:
            self.session.request_in_flight = False

    async def _request_reply(self) -> ParseSuccess | None:
        for attempt in range(1, MAX_RETRIES + 1):
            request = build_chat_request(self.config.llm_model, self.session.log.snapshot())
            try:
                raw = await self._chat(request)
            except TransportError as e:
                logger.error("LLM request failed: %s", e)
                return None

            if self.config.log_transcript:
                logger.info("LLM raw response (attempt %d): %s", attempt, raw)

            outcome = self._parse(raw)
            if isinstance(outcome, ParseSuccess):
                return outcome

            if self.config.log_transcript:
                logger.warning("Unusable reply (attempt %d): %s", attempt, outcome.reason)
            if attempt < MAX_RETRIES:
                self.session.log.append_user(RETRY_REMINDER)

        logger.error("Failed to parse LLM response after %d attempts.", MAX_RETRIES)
        return None

    async def _play_speech(self, spoken: str) -> None:
        self.state = State.SPEECH_PLAYBACK
        if not self._speech_enabled or self._speech is None:
            self._view.show_text(spoken)
            return

        request = build_speech_request(
            spoken,
            self.config.elevenlabs_model_id,
            self.config.stability,
            self.config.similarity_boost,
        )
        try:
            audio = await self._speech(request)
        except SpeechError as e:
            logger.error("ElevenLabs TTS request failed: %s\n%s", e, e.body)
            self._view.show_text(spoken)
            return

        clip = AudioClip(data=audio or b"", name="speech")
        self._view.show_text(spoken)
        if clip.is_empty:
            logger.error("Received empty audio clip from ElevenLabs.")
            return

        try:
            await self._playback.play(clip)
        except PlaybackError as e:
            logger.error("Speech playback failed: %s", e)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _present_choices(self, choices: list[str]) -> None:
        self.session.current_choices = list(choices)
        self._view.show_choices(self.session.current_choices)

    def _restore_choices(self) -> None:
        self.state = State.ERROR
        if self.session.current_choices:
            self._view.show_choices(self.session.current_choices)

    def _render_choice(self, template: str, choice: str, user_prompt: str = "") -> str:
        try:
            return choice_message(template, choice, user_prompt)
        except PromptError as e:
            logger.error("Choice prompt template failed, sending the choice as-is: %s", e)
            return choice

    def _load_clip(self, path: Path | None) -> AudioClip | None:
        if path is None:
            return None
        try:
            return load_clip(path)
        except OSError as e:
            logger.warning("Could not load audio clip %s: %s", path, e)
            return None
