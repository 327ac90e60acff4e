"""
Playback session state for Jukebox.

A PlaybackSession holds everything tied to the one track currently
loaded: the track, its decoder and sink, the progress anchor and the
stop cause. Resource callbacks are bound to the session that created
them, so a callback arriving after the player has moved on still sees
why its own session ended.
"""

import enum
import time
from dataclasses import dataclass, field
from typing import Any, Optional

from jukebox.playback_core.audio_format import AudioFormat


class PlayerState(enum.Enum):
    """Player state enumeration."""
    IDLE = 1
    LOADING = 2  # probing + opening sink
    PLAYING = 3  # sink open, decoder streaming
    STOPPING = 4  # teardown in flight
    DESTROYED = 5


class StopCause(enum.Enum):
    """Why a session is ending (or UNKNOWN while it still runs)."""
    UNKNOWN = 1
    USER_STOP = 2  # stop(), skip(), pause() or destroy()
    NATURAL_END = 3  # decoder consumed the whole input
    FAILED = 4  # unsuppressed error tore the session down


@dataclass(eq=False)
class PlaybackSession:
    """
    Transient state for exactly one loaded track.

    Sessions compare by identity: the player decides whether a callback is
    current by checking ``session is self._session``.
    """
    track: str
    cause: StopCause = StopCause.UNKNOWN
    audio_format: Optional[AudioFormat] = None
    decoder: Optional[Any] = None
    sink: Optional[Any] = None
    start_time: Optional[float] = None
    created_at: float = field(default_factory=time.monotonic)

    @property
    def intentional_stop(self) -> bool:
        return self.cause is StopCause.USER_STOP

    def mark_user_stop(self) -> None:
        """Latch the intentional-stop cause. Never cleared for this session."""
        self.cause = StopCause.USER_STOP

    def mark_decoded(self) -> None:
        """
        Record that the decoder finished the whole input.

        An intentional stop that already landed wins: a decoder that happens
        to reach EOF while being killed must not turn the stop into a
        natural end.
        """
        if self.cause is StopCause.UNKNOWN:
            self.cause = StopCause.NATURAL_END

    def mark_failed(self) -> None:
        if self.cause is not StopCause.USER_STOP:
            self.cause = StopCause.FAILED

    def mark_started(self) -> None:
        """Anchor progress at the moment the sink opened."""
        self.start_time = time.monotonic()

    def elapsed(self) -> float:
        if self.start_time is None:
            return 0.0
        return time.monotonic() - self.start_time
