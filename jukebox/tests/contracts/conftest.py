"""
Shared pytest fixtures for Jukebox contract tests.

Contract tests use test doubles (fakes, stubs) to avoid real dependencies.
No ffmpeg binary, audio device or real timer thread is needed.
"""

import sys
from unittest.mock import MagicMock, patch

import pytest

from jukebox.playback_core.audio_format import AudioFormat
from jukebox.tests.contracts.test_doubles import (
    CD_FORMAT,
    FakeProbe,
    FakeResolver,
    ManualScheduler,
    PlayerHarness,
)

JUKEBOX_ENV_VARS = (
    "JUKEBOX_FFMPEG_PATH",
    "JUKEBOX_FFPROBE_PATH",
    "JUKEBOX_BUNDLED_DIR",
    "JUKEBOX_PREFER_NATIVE",
    "JUKEBOX_FORCE_NATIVE",
    "JUKEBOX_FORCE_BUNDLED",
    "JUKEBOX_OUTPUT_SINK_MODE",
    "JUKEBOX_OUTPUT_DEVICE",
    "JUKEBOX_PROGRESS_INTERVAL",
    "JUKEBOX_SKIP_DELAY",
    "JUKEBOX_ADVANCE_DELAY",
    "JUKEBOX_PROBE_TIMEOUT",
    "JUKEBOX_KILL_GRACE",
    "JUKEBOX_LOG_LEVEL",
)


@pytest.fixture
def cd_format():
    """16-bit stereo 44.1kHz."""
    return CD_FORMAT


@pytest.fixture
def mono_24bit_format():
    return AudioFormat(channels=1, sample_rate=48000, bit_depth=24)


@pytest.fixture
def fake_resolver():
    return FakeResolver()


@pytest.fixture
def fake_probe():
    return FakeProbe()


@pytest.fixture
def manual_scheduler():
    return ManualScheduler()


@pytest.fixture
def harness():
    """Player over an [A, B] queue, wired to test doubles, recording events."""
    h = PlayerHarness(tracks=["/music/a.mp3", "/music/b.mp3"])
    yield h
    h.player.destroy()


@pytest.fixture
def empty_harness():
    """Player over an empty queue."""
    h = PlayerHarness()
    yield h
    h.player.destroy()


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    """
    Environment with no JUKEBOX_* variables and no .env file.

    Each variable is set then deleted so monkeypatch restores it even if a
    test's .env load writes it into os.environ.
    """
    for name in JUKEBOX_ENV_VARS:
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)
    monkeypatch.setenv("JUKEBOX_ENV_FILE", str(tmp_path / "missing.env"))
    return monkeypatch


@pytest.fixture
def fake_sounddevice():
    """
    A MagicMock standing in for the sounddevice module.

    jukebox.outputs.sounddevice_sink is re-imported against it, so these
    tests run on hosts without PortAudio. sys.modules is restored afterwards.
    """
    fake_sd = MagicMock(name="sounddevice")
    with patch.dict(sys.modules, {"sounddevice": fake_sd}):
        sys.modules.pop("jukebox.outputs.sounddevice_sink", None)
        yield fake_sd
