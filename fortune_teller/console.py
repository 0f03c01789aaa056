"""Terminal host for the fortune teller.

Text goes to stdout, choices are picked by typing 1-3, a blank line (or the
configured skip key name) skips the intro, and anything else is sent to the
fortune teller as free text. Audio is played with ffplay from FFmpeg.
"""

from __future__ import annotations

import asyncio
import logging
import subprocess
import sys
import tempfile
from pathlib import Path

from fortune_teller.config import FortuneConfig
from fortune_teller.orchestrator import Orchestrator
from fortune_teller.playback import AudioClip, PlaybackError

logger = logging.getLogger(__name__)

FFPLAY = "ffplay"


class ConsoleUI:
    def __init__(self, out=None) -> None:
        self._out = out or sys.stdout
        self._choices: list[str] = []
        self._visible = False
        self.interactable = False

    def display_text(self, text: str) -> None:
        if text:
            print(f"\n{text}", file=self._out, flush=True)

    def present_choices(self, choices: list[str]) -> None:
        self._choices = list(choices)

    def set_interactable(self, interactable: bool) -> None:
        self.interactable = interactable

    def set_visible(self, visible: bool) -> None:
        if visible and not self._visible and self._choices:
            for i, choice in enumerate(self._choices, start=1):
                print(f"  {i}. {choice}", file=self._out)
            self._out.flush()
        self._visible = visible


class FfplayPlayer:
    """Pipes a clip into `ffplay -nodisp -autoexit -`."""

    def __init__(self) -> None:
        self._proc: asyncio.subprocess.Process | None = None

    async def play(self, clip: AudioClip) -> None:
        try:
            self._proc = await asyncio.create_subprocess_exec(
                FFPLAY, "-nodisp", "-autoexit", "-loglevel", "quiet", "-",
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.DEVNULL,
            )
        except FileNotFoundError as e:
            raise PlaybackError(f"{FFPLAY} not found on PATH") from e

        proc = self._proc
        try:
            proc.stdin.write(clip.data)
            await proc.stdin.drain()
            proc.stdin.close()
        except (BrokenPipeError, ConnectionResetError):
            logger.debug("%s closed its input early", FFPLAY)
        await proc.wait()
        self._proc = None

    def stop(self) -> None:
        if self._proc is not None and self._proc.returncode is None:
            self._proc.terminate()


class FfplayMusic:
    """Background music channel; ffplay needs a file to loop, so the clip is written to disk."""

    def __init__(self) -> None:
        self._proc: subprocess.Popen | None = None
        self._path: Path | None = None

    @property
    def is_playing(self) -> bool:
        return self._proc is not None and self._proc.poll() is None

    def start(self, clip: AudioClip, loop: bool, volume: float) -> None:
        self.stop()
        with tempfile.NamedTemporaryFile(suffix=".mp3", delete=False) as tmp:
            tmp.write(clip.data)
            self._path = Path(tmp.name)
        args = [FFPLAY, "-nodisp", "-loglevel", "quiet", "-volume", str(round(volume * 100))]
        args += ["-loop", "0"] if loop else ["-autoexit"]
        try:
            self._proc = subprocess.Popen(
                [*args, str(self._path)],
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
            )
        except FileNotFoundError:
            logger.warning("%s not found on PATH; background music disabled", FFPLAY)
            self._proc = None

    def stop(self) -> None:
        """Stop ffplay if it is still running and remove the temp file either way."""
        if self._proc is not None:
            if self._proc.poll() is None:
                self._proc.terminate()
                self._proc.wait()
            self._proc = None
        if self._path is not None:
            self._path.unlink(missing_ok=True)
            self._path = None


async def run_console(config: FortuneConfig, audio: bool = True) -> None:
    """Run the orchestrator and feed it stdin until EOF or 'q'."""
    if not audio:
        config = config.model_copy(update={"speech_enabled": False})
    orchestrator = Orchestrator(
        config,
        ui=ConsoleUI(),
        player=FfplayPlayer(),
        music_channel=FfplayMusic() if audio else None,
    )

    tasks: set[asyncio.Task] = set()

    def finished(task: asyncio.Task) -> None:
        tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Fortune teller task failed: %s", exc, exc_info=exc)

    def spawn(coro) -> None:
        task = asyncio.create_task(coro)
        tasks.add(task)
        task.add_done_callback(finished)

    spawn(orchestrator.start())
    skip_words = {"", config.skip_key.strip().lower()}
    try:
        while True:
            line = await asyncio.to_thread(sys.stdin.readline)
            if not line:
                break
            entry = line.strip()
            if entry.lower() == "q":
                break
            if entry.lower() in skip_words:
                orchestrator.request_skip()
            elif entry in ("1", "2", "3"):
                spawn(orchestrator.select_choice(int(entry) - 1))
            else:
                spawn(orchestrator.trigger(entry))
    finally:
        orchestrator.stop_background_music()
        pending = list(tasks)
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
