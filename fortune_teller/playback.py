"""Audio playback with a single suspension point per clip.

PlaybackSynchronizer owns at most one PlaybackSession at a time. Playback the
player may skip (the scripted intro) races the clip against a skip signal;
assistant speech always plays to the end. The talking flag is raised for the
duration of every clip so an animation rig can move the jaw.

Background music runs on its own channel and takes no part in turn-taking.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from fortune_teller.payloads import clamp_unit
from fortune_teller.ui import Animator

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AudioClip:
    """Opaque encoded audio (MPEG from ElevenLabs, or a file on disk)."""

    data: bytes
    name: str = ""

    @property
    def is_empty(self) -> bool:
        return not self.data


def load_clip(path: Path) -> AudioClip:
    return AudioClip(data=path.read_bytes(), name=path.name)


class PlaybackError(RuntimeError):
    """Raised when a clip cannot be played."""


class Player(Protocol):
    async def play(self, clip: AudioClip) -> None:
        """Return once the clip finishes or stop() is called."""
        ...

    def stop(self) -> None: ...


@dataclass
class PlaybackSession:
    clip: AudioClip
    skippable: bool = False
    cancelled: bool = False


class PlaybackSynchronizer:
    def __init__(
        self,
        player: Player,
        animator: Animator | None = None,
        talking_parameter: str = "IsTalking",
    ) -> None:
        self._player = player
        self._animator = animator
        self._talking_parameter = talking_parameter
        self._skip = asyncio.Event()
        self._skippable_wait = False
        self._session: PlaybackSession | None = None

    @property
    def session(self) -> PlaybackSession | None:
        return self._session

    def cancel(self) -> bool:
        """Signal a skip. Only a skippable clip or hold reacts; returns whether one did."""
        if not self._skippable_wait:
            return False
        self._skip.set()
        return True

    async def play(self, clip: AudioClip, skippable: bool = False) -> PlaybackSession:
        if self._session is not None:
            raise PlaybackError("Another clip is already playing")

        session = PlaybackSession(clip=clip, skippable=skippable)
        self._session = session
        self._skip.clear()
        self._set_talking(True)
        try:
            if skippable:
                session.cancelled = await self._play_until_skipped(clip)
            else:
                await self._player.play(clip)
        finally:
            self._set_talking(False)
            self._session = None

        logger.debug("clip %r finished cancelled=%s", clip.name, session.cancelled)
        return session

    async def hold(self, seconds: float, skippable: bool = True) -> bool:
        """Wait while text is on screen. Returns True when cut short by a skip."""
        if not skippable:
            await asyncio.sleep(seconds)
            return False

        self._skip.clear()
        self._skippable_wait = True
        try:
            await asyncio.wait_for(self._skip.wait(), timeout=seconds)
            return True
        except asyncio.TimeoutError:
            return False
        finally:
            self._skippable_wait = False

    async def _play_until_skipped(self, clip: AudioClip) -> bool:
        self._skippable_wait = True
        play_task = asyncio.ensure_future(self._player.play(clip))
        skip_task = asyncio.ensure_future(self._skip.wait())
        try:
            done, _ = await asyncio.wait(
                {play_task, skip_task}, return_when=asyncio.FIRST_COMPLETED
            )
            if play_task in done:
                play_task.result()
                return False
            return True
        finally:
            self._skippable_wait = False
            skip_task.cancel()
            if not play_task.done():
                self._player.stop()
                play_task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await play_task

    def _set_talking(self, talking: bool) -> None:
        if self._animator is None or not self._talking_parameter:
            return
        self._animator.set_bool(self._talking_parameter, talking)


# ---------------------------------------------------------------------------
# Background music
# ---------------------------------------------------------------------------

class MusicChannel(Protocol):
    @property
    def is_playing(self) -> bool: ...

    def start(self, clip: AudioClip, loop: bool, volume: float) -> None: ...

    def stop(self) -> None:
        """Release the current track. Safe to call when nothing is playing."""
        ...


class BackgroundMusic:
    DEFAULT_VOLUME = 0.35

    def __init__(self, channel: MusicChannel) -> None:
        self._channel = channel
        self.clip: AudioClip | None = None
        self.loop = True
        self.volume = self.DEFAULT_VOLUME

    def configure(
        self,
        clip: AudioClip | None,
        volume: float = DEFAULT_VOLUME,
        loop: bool = True,
        autoplay: bool = True,
    ) -> None:
        """Apply music settings; restarts only when the clip changes."""
        if clip is None:
            self.stop()
            self.clip = None
            return

        restart = clip != self.clip
        self.clip = clip
        self.volume = clamp_unit(volume)
        self.loop = loop

        if restart and self._channel.is_playing:
            self._channel.stop()
        if autoplay and not self._channel.is_playing:
            self._channel.start(self.clip, self.loop, self.volume)

    def play(self, clip: AudioClip | None = None, loop: bool = True, volume: float | None = None) -> None:
        if clip is not None and clip != self.clip:
            self.stop()
            self.clip = clip
        if self.clip is None:
            return

        self.loop = loop
        if volume is not None:
            self.volume = clamp_unit(volume)
        if not self._channel.is_playing:
            self._channel.start(self.clip, self.loop, self.volume)

    def stop(self) -> None:
        # Also called once a one-shot track has ended so the channel can release it.
        self._channel.stop()
