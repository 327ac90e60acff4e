"""
Playback Core module for Jukebox.

This package contains the track queue, the audio format model, the
per-track session state and the timer abstraction. The Player state
machine lives in jukebox.playback_core.player and is re-exported from
the top-level jukebox package.
"""

from jukebox.playback_core.audio_format import AudioFormat
from jukebox.playback_core.track_queue import TrackQueue
from jukebox.playback_core.session import PlaybackSession, PlayerState, StopCause
from jukebox.playback_core.scheduler import Scheduler, ThreadingScheduler

__all__ = [
    "AudioFormat",
    "TrackQueue",
    "PlaybackSession",
    "PlayerState",
    "StopCause",
    "Scheduler",
    "ThreadingScheduler",
]
