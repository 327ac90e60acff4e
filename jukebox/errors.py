"""
Error taxonomy for Jukebox.

Every failure the player can surface through its ``error`` event is one of
these. Resource callbacks never raise them; the player catches, classifies
and either suppresses (intentional-stop echoes) or emits them.
"""

from typing import Optional


# Sink error codes
SINK_WRITE_AFTER_END = "SINK_WRITE_AFTER_END"
SINK_OPEN_FAILED = "SINK_OPEN_FAILED"
SINK_WRITE_FAILED = "SINK_WRITE_FAILED"


class JukeboxError(Exception):
    """Base class for all Jukebox errors."""
    pass


class ResolutionError(JukeboxError):
    """No usable ffmpeg/ffprobe pair could be resolved."""
    pass


class TrackNotFoundError(JukeboxError):
    """A track reference points at a file that does not exist."""

    def __init__(self, path: str):
        super().__init__(f"File not found: {path}")
        self.path = path


class ProbeError(JukeboxError):
    """A track could not be probed (unreadable, or no audio stream)."""

    def __init__(self, message: str, path: Optional[str] = None):
        super().__init__(message)
        self.path = path


class DecodeError(JukeboxError):
    """
    The decode task failed.

    ``forced`` is True when the failure is the expected result of
    FFmpegDecoder.kill() rather than a genuine decoding problem.
    """

    def __init__(
        self,
        message: str,
        forced: bool = False,
        returncode: Optional[int] = None,
        stderr_tail: str = "",
    ):
        super().__init__(message)
        self.forced = forced
        self.returncode = returncode
        self.stderr_tail = stderr_tail


class SinkError(JukeboxError):
    """The audio output sink failed."""

    def __init__(self, message: str, code: str = SINK_WRITE_FAILED):
        super().__init__(message)
        self.code = code

    @property
    def is_write_after_end(self) -> bool:
        return self.code == SINK_WRITE_AFTER_END
