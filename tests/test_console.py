"""Tests for fortune_teller.console — ffplay music channel and the stdin loop."""

import io
import logging
import sys
from pathlib import Path

import pytest

from fortune_teller import console
from fortune_teller.config import FortuneConfig
from fortune_teller.console import FfplayMusic, run_console
from fortune_teller.playback import AudioClip

CLIP = AudioClip(data=b"ID3music", name="crypt.mp3")


class FakePopen:
    instances: list["FakePopen"] = []

    def __init__(self, args, stdout=None, stderr=None) -> None:
        self.args = args
        self.returncode = None
        self.terminated = False
        FakePopen.instances.append(self)

    def poll(self):
        return self.returncode

    def terminate(self) -> None:
        self.terminated = True
        self.returncode = -15

    def wait(self):
        return self.returncode


@pytest.fixture
def popen(monkeypatch):
    FakePopen.instances = []
    monkeypatch.setattr(console.subprocess, "Popen", FakePopen)
    return FakePopen


def _clip_path(proc: FakePopen) -> Path:
    return Path(proc.args[-1])


# ---------------------------------------------------------------------------
# FfplayMusic
# ---------------------------------------------------------------------------

class TestFfplayMusic:
    def test_writes_clip_and_passes_volume(self, popen) -> None:
        music = FfplayMusic()
        music.start(CLIP, loop=True, volume=0.35)
        proc = popen.instances[-1]
        assert _clip_path(proc).read_bytes() == b"ID3music"
        assert proc.args[proc.args.index("-volume") + 1] == "35"
        assert "-loop" in proc.args
        assert music.is_playing
        music.stop()

    def test_one_shot_track_uses_autoexit(self, popen) -> None:
        music = FfplayMusic()
        music.start(CLIP, loop=False, volume=1.0)
        assert "-autoexit" in popen.instances[-1].args
        assert "-loop" not in popen.instances[-1].args
        music.stop()

    def test_temp_file_removed_after_track_ended_by_itself(self, popen) -> None:
        music = FfplayMusic()
        music.start(CLIP, loop=False, volume=0.5)
        proc = popen.instances[-1]
        path = _clip_path(proc)

        proc.returncode = 0
        assert music.is_playing is False
        music.stop()

        assert not path.exists()
        assert proc.terminated is False

    def test_restart_removes_previous_file(self, popen) -> None:
        music = FfplayMusic()
        music.start(CLIP, loop=True, volume=0.5)
        first = popen.instances[-1]
        music.start(AudioClip(data=b"other"), loop=True, volume=0.5)
        second = popen.instances[-1]

        assert first.terminated is True
        assert not _clip_path(first).exists()
        assert _clip_path(second).read_bytes() == b"other"
        music.stop()
        assert not _clip_path(second).exists()

    def test_stop_without_start(self) -> None:
        FfplayMusic().stop()

    def test_missing_ffplay(self, monkeypatch) -> None:
        def missing(*args, **kwargs):
            raise FileNotFoundError("ffplay")

        monkeypatch.setattr(console.subprocess, "Popen", missing)
        music = FfplayMusic()
        music.start(CLIP, loop=True, volume=0.5)
        assert music.is_playing is False
        music.stop()


# ---------------------------------------------------------------------------
# run_console
# ---------------------------------------------------------------------------

class RecordingOrchestrator:
    instances: list["RecordingOrchestrator"] = []

    def __init__(self, config, **kwargs) -> None:
        self.config = config
        self.events: list[tuple] = []
        self.music_stopped = False
        RecordingOrchestrator.instances.append(self)

    async def start(self) -> None:
        self.events.append(("start",))

    async def select_choice(self, index: int) -> None:
        self.events.append(("choice", index))

    async def trigger(self, user_message=None) -> None:
        self.events.append(("trigger", user_message))

    def request_skip(self) -> bool:
        self.events.append(("skip",))
        return True

    def stop_background_music(self) -> None:
        self.music_stopped = True


class FailingOrchestrator(RecordingOrchestrator):
    async def start(self) -> None:
        raise RuntimeError("backend exploded")


class TestRunConsole:
    async def test_input_dispatch(self, monkeypatch) -> None:
        RecordingOrchestrator.instances = []
        monkeypatch.setattr(console, "Orchestrator", RecordingOrchestrator)
        monkeypatch.setattr(sys, "stdin", io.StringIO("\n2\nwhat lies ahead?\nq\n"))

        await run_console(FortuneConfig(), audio=False)

        orch = RecordingOrchestrator.instances[-1]
        assert orch.events == [
            ("start",), ("skip",), ("choice", 1), ("trigger", "what lies ahead?"),
        ]
        assert orch.music_stopped is True

    async def test_no_audio_disables_speech(self, monkeypatch) -> None:
        RecordingOrchestrator.instances = []
        monkeypatch.setattr(console, "Orchestrator", RecordingOrchestrator)
        monkeypatch.setattr(sys, "stdin", io.StringIO(""))

        await run_console(FortuneConfig(), audio=False)

        assert RecordingOrchestrator.instances[-1].config.speech_enabled is False

    async def test_task_failure_logged(self, monkeypatch, caplog) -> None:
        monkeypatch.setattr(console, "Orchestrator", FailingOrchestrator)
        monkeypatch.setattr(sys, "stdin", io.StringIO("q\n"))

        with caplog.at_level(logging.ERROR, logger="fortune_teller.console"):
            await run_console(FortuneConfig(), audio=False)

        assert "backend exploded" in caplog.text
